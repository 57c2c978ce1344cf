"""Speech synthesis backends."""

from .elevenlabs import ElevenLabsSynthesizer

__all__ = ["ElevenLabsSynthesizer"]
