"""
ElevenLabs speech synthesis backend.

Synthesized audio is written as ``tts_<ms>_<suffix>.mp3`` into the temp
directory; the playback slot deletes each file once it has played.
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from pathlib import Path
from typing import Any, Optional

import httpx

from ..exceptions import SynthesisError, TransientServiceError

logger = logging.getLogger("mimic.services.tts.elevenlabs")

SERVICE = "elevenlabs"


class ElevenLabsSynthesizer:
    """Text-to-speech via the ElevenLabs REST API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = "https://api.elevenlabs.io/v1",
        model_id: str = "eleven_turbo_v2_5",
        temp_dir: Path = Path("temp"),
        stability: float = 0.5,
        similarity_boost: float = 0.75,
        style: float = 0.0,
        use_speaker_boost: bool = True,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key or os.environ.get("ELEVENLABS_API_KEY", "")
        self.base_url = base_url.rstrip("/")
        self.model_id = model_id
        self.temp_dir = Path(temp_dir)
        self.voice_settings = {
            "stability": stability,
            "similarity_boost": similarity_boost,
            "style": style,
            "use_speaker_boost": use_speaker_boost,
        }
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"xi-api-key": self.api_key},
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def synthesize(self, text: str, voice_id: str) -> Path:
        """Synthesize ``text`` with ``voice_id`` and return the mp3 path."""
        logger.info("Synthesizing %d chars with voice %s", len(text), voice_id)
        payload = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": self.voice_settings,
        }
        try:
            response = await self._get_client().post(
                f"{self.base_url}/text-to-speech/{voice_id}",
                json=payload,
                headers={"Accept": "audio/mpeg"},
            )
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise TransientServiceError(SERVICE, f"request failed: {e}") from e

        if not response.is_success:
            raise SynthesisError(
                SERVICE,
                f"HTTP {response.status_code}: {response.text[:200]}",
                response.status_code,
            )

        self.temp_dir.mkdir(parents=True, exist_ok=True)
        path = self.temp_dir / f"tts_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}.mp3"
        path.write_bytes(response.content)
        logger.debug("TTS audio saved to %s (%d bytes)", path, len(response.content))
        return path

    async def list_voices(self) -> list[dict[str, Any]]:
        """Return the voices available to this API key."""
        try:
            response = await self._get_client().get(f"{self.base_url}/voices")
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Failed to fetch voices: %s", e)
            raise
        return response.json().get("voices", [])
