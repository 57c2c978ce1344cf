"""Speech-to-text backends."""

from .whisper import WhisperTranscriber

__all__ = ["WhisperTranscriber"]
