"""
Run the Mimic Brain API server: ``python -m mimic_brain``.
"""

import asyncio

import uvicorn

from .config import settings
from .main import app


async def _serve() -> None:
    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
    server = uvicorn.Server(config)
    await server.serve()


if __name__ == "__main__":
    asyncio.run(_serve())
