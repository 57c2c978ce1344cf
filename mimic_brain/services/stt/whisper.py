"""
Whisper transcription backend.

Uses the OpenAI-compatible ``/audio/transcriptions`` endpoint. Transient
failures (connection resets, timeouts, 429, 5xx) are retried here with
linear backoff so the orchestrator only sees an error once every attempt
has failed.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Optional

import httpx

from ..exceptions import (
    PermanentServiceError,
    QuotaExceededError,
    RateLimitedError,
    TransientServiceError,
)

logger = logging.getLogger("mimic.services.stt.whisper")

SERVICE = "whisper"


class WhisperTranscriber:
    """Speech-to-text via an OpenAI-compatible Whisper API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = "https://api.openai.com/v1",
        model: str = "whisper-1",
        language: Optional[str] = "en",
        timeout: float = 60.0,
        max_attempts: int = 3,
        backoff_seconds: float = 2.0,
        rate_limit_backoff_seconds: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY", "")
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.language = language
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.rate_limit_backoff_seconds = rate_limit_backoff_seconds
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, wav_bytes: bytes) -> str:
        data = {"model": self.model, "response_format": "json"}
        if self.language:
            data["language"] = self.language
        try:
            response = await self._get_client().post(
                f"{self.base_url}/audio/transcriptions",
                data=data,
                files={"file": ("audio.wav", wav_bytes, "audio/wav")},
            )
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise TransientServiceError(SERVICE, f"request failed: {e}") from e

        if response.status_code == 429:
            raise RateLimitedError(SERVICE)
        if response.status_code >= 500:
            raise TransientServiceError(
                SERVICE, f"server error {response.status_code}", response.status_code
            )
        if response.status_code >= 400:
            body = response.text
            if "insufficient_quota" in body:
                raise QuotaExceededError(SERVICE, "quota exhausted", response.status_code)
            raise PermanentServiceError(
                SERVICE, f"HTTP {response.status_code}: {body[:200]}", response.status_code
            )

        return (response.json().get("text") or "").strip()

    async def transcribe(self, wav_bytes: bytes) -> str:
        """Transcribe a WAV utterance, retrying transient failures."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                text = await self._request(wav_bytes)
                logger.info("Transcribed %d bytes: %r", len(wav_bytes), text)
                return text
            except TransientServiceError as e:
                if attempt >= self.max_attempts:
                    logger.error(
                        "Transcription failed after %d attempts: %s", attempt, e
                    )
                    raise
                if isinstance(e, RateLimitedError):
                    delay = self.rate_limit_backoff_seconds * attempt
                else:
                    delay = self.backoff_seconds * attempt
                logger.warning(
                    "Transcription attempt %d/%d failed (%s), retrying in %.1fs",
                    attempt, self.max_attempts, e, delay,
                )
                await asyncio.sleep(delay)
        # max_attempts >= 1 guarantees the loop returns or raises
        raise AssertionError("unreachable")
