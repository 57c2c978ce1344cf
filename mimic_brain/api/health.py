"""
Health check endpoints.
"""

from fastapi import APIRouter

from ..config import settings
from ..voice.launcher import get_session_registry

router = APIRouter(tags=["Health"])


@router.get("/ping")
async def ping():
    """Simple endpoint to verify server is running."""
    return {"status": "ok", "message": "pong"}


@router.get("/health")
async def health():
    """Health check with open voice sessions."""
    sessions = get_session_registry().list()
    return {
        "status": "ok",
        "bot_id": settings.conversation.bot_id,
        "sessions": len(sessions),
        "running": sum(1 for s in sessions if s.running),
        "services": {
            "stt": settings.stt.model,
            "llm": settings.llm.model,
            "tts": settings.tts.model_id,
        },
    }
