"""
Mimic Brain - voice conversation server

The main FastAPI application entry point. Voice sessions are opened by the
transport integration through ``mimic_brain.voice.launcher`` and are
controlled through the API mounted here.
"""

# Load .env file FIRST, before any other imports
from pathlib import Path
from dotenv import load_dotenv
_env_root = Path(__file__).parent.parent
load_dotenv(_env_root / ".env", override=True)
load_dotenv(_env_root / ".env.local", override=True)

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api import router as api_router
from .config import settings
from .utils.tempfiles import cleanup_stale_files
from .voice.launcher import get_session_registry

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("mimic.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Handles startup (temp and lock directories) and shutdown (closing
    every open voice session).
    """
    # --- Startup ---
    logger.info("Mimic Brain starting up (bot_id=%s)", settings.conversation.bot_id)

    settings.lock.lock_dir.mkdir(parents=True, exist_ok=True)
    settings.tts.temp_dir.mkdir(parents=True, exist_ok=True)
    cleanup_stale_files(settings.tts.temp_dir, settings.conversation.temp_max_age_s)

    yield

    # --- Shutdown ---
    logger.info("Mimic Brain shutting down...")
    await get_session_registry().close_all()
    logger.info("Mimic Brain shutdown complete")


# Create the FastAPI application
app = FastAPI(
    title="Mimic Brain",
    description="Multi-speaker voice conversation server.",
    version="0.1.0",
    lifespan=lifespan,
)

# Include API routers with /api/v1 prefix
app.include_router(api_router, prefix="/api/v1")
