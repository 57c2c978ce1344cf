"""
Protocol definitions for the speech and text collaborators.

The orchestrator only depends on these protocols, so the concrete HTTP
clients can be swapped for other backends or fakes.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..config import PersonaProfile


@dataclass
class Message:
    """A chat message for LLM conversation."""
    role: str  # "system", "user", "assistant"
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@runtime_checkable
class Transcriber(Protocol):
    """Speech-to-text over a complete WAV utterance."""

    async def transcribe(self, wav_bytes: bytes) -> str:
        """Return the transcribed text (may be empty)."""
        ...


@runtime_checkable
class TextGenerator(Protocol):
    """Stateful per-speaker reply generation."""

    async def generate(self, speaker_id: str, text: str, persona: "PersonaProfile") -> str:
        """Generate a reply; fails open with a fixed fallback string."""
        ...

    def clear_history(self, speaker_id: str) -> None:
        ...

    def clear_all(self) -> None:
        ...

    def stats(self, speaker_id: str) -> dict[str, int]:
        """Message counts in the speaker's history."""
        ...


@runtime_checkable
class SpeechSynthesizer(Protocol):
    """Text-to-speech producing a playable audio file."""

    async def synthesize(self, text: str, voice_id: str) -> Path:
        """Synthesize ``text`` and return the path of the audio file."""
        ...
