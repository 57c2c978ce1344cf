"""
Utterance segmenter for the voice pipeline.

Decides whether a speaker's accumulated PCM buffer is a real utterance.
Two gates run once the endpointing delay has elapsed:
- duration: shorter than ``min_seconds`` is keyboard or incidental noise
- loudness: average absolute amplitude below ``min_amplitude`` is
  background noise
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .audio import average_amplitude, pcm_duration_seconds

logger = logging.getLogger("mimic.voice.segmenter")


@dataclass(frozen=True)
class Utterance:
    """A finalized, quality-gated span of one speaker's audio."""

    speaker_id: str
    pcm: bytes
    sample_rate: int
    channels: int
    bit_depth: int
    average_amplitude: float

    @property
    def byte_length(self) -> int:
        return len(self.pcm)

    @property
    def duration_seconds(self) -> float:
        return pcm_duration_seconds(
            len(self.pcm), self.sample_rate, self.channels, self.bit_depth
        )


class UtteranceSegmenter:
    """Quality gate between the per-speaker buffers and the orchestrator."""

    def __init__(
        self,
        sample_rate: int,
        channels: int,
        bit_depth: int = 16,
        min_seconds: float = 0.5,
        min_amplitude: float = 400.0,
    ):
        self.sample_rate = sample_rate
        self.channels = channels
        self.bit_depth = bit_depth
        self.min_seconds = min_seconds
        self.min_amplitude = min_amplitude

        logger.info(
            "UtteranceSegmenter: %dHz x%d, min=%.2fs (%d bytes), min_amplitude=%.0f",
            sample_rate, channels, min_seconds, self.min_bytes, min_amplitude,
        )

    @property
    def min_bytes(self) -> int:
        """Smallest buffer accepted, in bytes."""
        bytes_per_sample = self.bit_depth // 8
        return int(self.sample_rate * self.channels * bytes_per_sample * self.min_seconds)

    def segment(self, speaker_id: str, pcm: bytes) -> Optional[Utterance]:
        """Return an Utterance for ``pcm`` or None when a gate rejects it."""
        if len(pcm) < self.min_bytes:
            logger.debug(
                "Audio too short for speaker %s (%d bytes < %d), ignoring",
                speaker_id, len(pcm), self.min_bytes,
            )
            return None

        amplitude = average_amplitude(pcm)
        if amplitude < self.min_amplitude:
            logger.debug(
                "Audio too quiet for speaker %s (avg amplitude %.1f < %.0f), ignoring",
                speaker_id, amplitude, self.min_amplitude,
            )
            return None

        utterance = Utterance(
            speaker_id=speaker_id,
            pcm=pcm,
            sample_rate=self.sample_rate,
            channels=self.channels,
            bit_depth=self.bit_depth,
            average_amplitude=amplitude,
        )
        logger.info(
            "Captured %d bytes (%.2fs) from speaker %s (avg amplitude %.1f)",
            utterance.byte_length, utterance.duration_seconds, speaker_id, amplitude,
        )
        return utterance
