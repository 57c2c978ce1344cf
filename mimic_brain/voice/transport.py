"""
Voice transport interfaces.

The voice-session layer (join/leave, network transport, encryption) lives
outside this package. These protocols describe the surface the pipeline
relies on, plus the frame decoders that turn transport frames into PCM.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Callable, Optional, Protocol, runtime_checkable

import numpy as np

logger = logging.getLogger("mimic.voice.transport")


class PlayerState(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"
    ERROR = "error"


@runtime_checkable
class AudioSink(Protocol):
    """Single-slot player attached to the voice session."""

    def play(self, path: Path) -> None:
        """Start playing an audio file. Returns immediately."""
        ...

    def stop(self) -> None:
        """Stop current playback."""
        ...

    def add_state_listener(self, callback: Callable[[PlayerState], None]) -> None:
        """Register a callback for idle/playing/error transitions."""
        ...


@runtime_checkable
class VoiceTransport(Protocol):
    """One joined voice session as seen by the pipeline."""

    session_key: str

    @property
    def sink(self) -> AudioSink:
        ...

    def add_speaking_listener(
        self,
        on_start: Callable[[str], None],
        on_end: Callable[[str], None],
    ) -> None:
        """Register speaking-start / speaking-stopped callbacks."""
        ...

    def subscribe(self, speaker_id: str, *, end_after_silence_ms: int) -> AsyncIterator[bytes]:
        """Stream a speaker's encoded frames; ends on sustained silence or unsubscribe."""
        ...

    def unsubscribe(self, speaker_id: str) -> None:
        ...

    async def update_identity(self, display_name: str, avatar_url: Optional[str]) -> None:
        """Best-effort display name / avatar change."""
        ...


class FrameDecoder(Protocol):
    """Turns transport frames into linear PCM16 at the configured format."""

    def decode(self, frame: bytes) -> bytes:
        ...

    def close(self) -> None:
        ...


class PcmPassthroughDecoder:
    """For transports that already deliver PCM16."""

    def decode(self, frame: bytes) -> bytes:
        return frame

    def close(self) -> None:
        pass


class OpusFrameDecoder:
    """Decode an Ogg-Opus byte stream to interleaved PCM16 using sphn."""

    def __init__(self, sample_rate: int = 48000, channels: int = 2):
        self.sample_rate = sample_rate
        self.channels = channels
        self._decoder: Optional[object] = None

    def _get_decoder(self) -> object:
        if self._decoder is None:
            try:
                import sphn
            except ImportError as exc:
                raise RuntimeError("sphn library required for Opus decoding") from exc
            self._decoder = sphn.OpusStreamReader(self.sample_rate)
        return self._decoder

    def decode(self, frame: bytes) -> bytes:
        decoder = self._get_decoder()
        decoder.append_bytes(frame)
        samples = decoder.read_pcm()
        if samples is None or len(samples) == 0:
            return b""
        samples = np.asarray(samples, dtype=np.float32)
        if samples.ndim == 2:
            # (channels, n) -> interleaved
            samples = samples.T.reshape(-1)
        elif self.channels == 2:
            samples = np.repeat(samples, 2)
        pcm = np.clip(samples * 32768.0, -32768, 32767).astype("<i2")
        return pcm.tobytes()

    def close(self) -> None:
        self._decoder = None
