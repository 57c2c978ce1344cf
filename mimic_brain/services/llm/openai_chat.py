"""
OpenAI-compatible chat backend with per-speaker rolling history.

Each speaker gets a history that starts with the active persona's system
prompt and keeps the last ``max_history`` user/assistant messages. The
generator fails open: errors become a short spoken fallback rather than
an exception.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any, Optional

import httpx

from ..protocols import Message

if TYPE_CHECKING:
    from ...config import PersonaProfile

logger = logging.getLogger("mimic.services.llm.openai_chat")

QUOTA_MESSAGE = (
    "I'm having trouble connecting to my AI service right now. "
    "Please check your API quota."
)
FALLBACK_MESSAGE = "I'm sorry, I didn't catch that. Could you please repeat?"


class OpenAIChatGenerator:
    """Reply generation via ``/chat/completions``."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4-turbo-preview",
        max_history: int = 10,
        presence_penalty: float = 0.6,
        frequency_penalty: float = 0.3,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY", "")
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.max_history = max_history
        self.presence_penalty = presence_penalty
        self.frequency_penalty = frequency_penalty
        self.timeout = timeout
        self._client = client
        self._histories: dict[str, list[Message]] = {}

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def history(self, speaker_id: str, system_prompt: str = "") -> list[Message]:
        if speaker_id not in self._histories:
            self._histories[speaker_id] = [Message(role="system", content=system_prompt)]
        return self._histories[speaker_id]

    def _append(self, speaker_id: str, role: str, content: str) -> None:
        history = self._histories[speaker_id]
        history.append(Message(role=role, content=content))
        if len(history) > self.max_history + 1:
            self._histories[speaker_id] = [history[0]] + history[-self.max_history:]

    def clear_history(self, speaker_id: str) -> None:
        self._histories.pop(speaker_id, None)

    def clear_all(self) -> None:
        """Drop every speaker's history (used on persona switch)."""
        self._histories.clear()

    def stats(self, speaker_id: str) -> dict[str, int]:
        history = self._histories.get(speaker_id, [])
        return {
            "total_messages": sum(1 for m in history if m.role != "system"),
            "user_messages": sum(1 for m in history if m.role == "user"),
            "assistant_messages": sum(1 for m in history if m.role == "assistant"),
        }

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def _complete(self, messages: list[Message], persona: "PersonaProfile") -> str:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_dict() for m in messages],
            "max_tokens": persona.max_tokens,
            "temperature": persona.temperature,
            "presence_penalty": self.presence_penalty,
            "frequency_penalty": self.frequency_penalty,
        }
        response = await self._get_client().post(
            f"{self.base_url}/chat/completions", json=payload
        )
        response.raise_for_status()
        data = response.json()
        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise ValueError(f"completion has no choices: {str(data)[:200]}")
        content = (choices[0].get("message", {}).get("content") or "").strip()
        logger.info("Chat completion: tokens=%s, content_len=%d", data.get("usage", {}), len(content))
        return content

    async def generate(self, speaker_id: str, text: str, persona: "PersonaProfile") -> str:
        """Generate a reply for ``speaker_id``; never raises on API errors."""
        self.history(speaker_id, persona.system_prompt)
        self._append(speaker_id, "user", text)
        try:
            reply = await self._complete(self._histories[speaker_id], persona)
        except httpx.HTTPStatusError as e:
            logger.error("Chat completion failed: %s", e)
            if "insufficient_quota" in e.response.text:
                return QUOTA_MESSAGE
            return FALLBACK_MESSAGE
        except httpx.HTTPError as e:
            logger.error("Chat completion failed: %s", e)
            return FALLBACK_MESSAGE
        except (ValueError, KeyError, IndexError, AttributeError) as e:
            logger.error("Malformed chat completion response: %s", e)
            return FALLBACK_MESSAGE

        self._append(speaker_id, "assistant", reply)
        return reply
