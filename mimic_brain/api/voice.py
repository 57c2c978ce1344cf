"""
Voice session control endpoints.

Provides REST API for:
- Listing open voice sessions and their conversation state
- Switching reply mode and persona
- Direct text injection (speak a given line)
- Per-speaker conversation history stats and reset
"""

import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ..services.exceptions import ServiceError
from ..voice.launcher import get_session_registry
from ..voice.orchestrator import ReplyMode
from ..voice.session import VoiceSession

logger = logging.getLogger("mimic.api.voice")

router = APIRouter(prefix="/voice", tags=["voice"])


class ModeRequest(BaseModel):
    mode: ReplyMode


class PersonaRequest(BaseModel):
    persona: str = Field(min_length=1)


class SayRequest(BaseModel):
    text: str = Field(min_length=1, max_length=1000)


def _get_session(key: str) -> VoiceSession:
    session = get_session_registry().get(key)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Voice session not found: {key}")
    return session


@router.get("/sessions")
async def list_sessions():
    """Snapshot of every open voice session."""
    return {
        "sessions": [
            s.orchestrator.snapshot() | {"running": s.running}
            for s in get_session_registry().list()
        ]
    }


@router.get("/sessions/{key}")
async def get_session(key: str):
    session = _get_session(key)
    return session.orchestrator.snapshot() | {
        "running": session.running,
        "active_speakers": session.receiver.active_speakers,
        "personas": session.orchestrator.personas.keys(),
    }


@router.put("/sessions/{key}/mode")
async def set_mode(key: str, request: ModeRequest):
    session = _get_session(key)
    session.orchestrator.set_mode(request.mode)
    return {"mode": session.orchestrator.state.mode.value}


@router.put("/sessions/{key}/persona")
async def set_persona(key: str, request: PersonaRequest):
    session = _get_session(key)
    if not await session.orchestrator.switch_persona(request.persona):
        raise HTTPException(status_code=400, detail=f"Unknown persona: {request.persona}")
    return {"persona": session.orchestrator.state.persona_key}


@router.post("/sessions/{key}/say")
async def say(key: str, request: SayRequest):
    """Speak ``text`` in the active persona's voice."""
    session = _get_session(key)
    if not request.text.strip():
        raise HTTPException(status_code=422, detail="Text is empty")
    if not session.orchestrator.playback.accepting:
        raise HTTPException(status_code=409, detail="Playback in progress")
    try:
        played = await session.orchestrator.say(request.text)
    except ServiceError as e:
        logger.error("Direct text injection failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e))
    if not played:
        raise HTTPException(status_code=409, detail="Playback in progress")
    return {"status": "playing", "persona": session.orchestrator.state.persona_key}


@router.get("/sessions/{key}/speakers/{speaker_id}/stats")
async def speaker_stats(key: str, speaker_id: str):
    session = _get_session(key)
    return {"speaker_id": speaker_id, **session.orchestrator.generator.stats(speaker_id)}


@router.delete("/sessions/{key}/speakers/{speaker_id}/history")
async def clear_speaker_history(key: str, speaker_id: str):
    session = _get_session(key)
    session.orchestrator.generator.clear_history(speaker_id)
    logger.info("Cleared conversation history for speaker %s in %s", speaker_id, key)
    return {"status": "cleared", "speaker_id": speaker_id}
