"""
Speech and text collaborators for Mimic Brain.

This module provides:
- Protocol definitions for transcription, generation and synthesis
- The collaborator error taxonomy
- Concrete HTTP backends (Whisper, OpenAI chat, ElevenLabs)
"""

from .exceptions import (
    PermanentServiceError,
    QuotaExceededError,
    RateLimitedError,
    ServiceError,
    SynthesisError,
    TransientServiceError,
)
from .llm import OpenAIChatGenerator
from .protocols import Message, SpeechSynthesizer, TextGenerator, Transcriber
from .stt import WhisperTranscriber
from .tts import ElevenLabsSynthesizer

__all__ = [
    # Protocols
    "Message",
    "Transcriber",
    "TextGenerator",
    "SpeechSynthesizer",
    # Errors
    "ServiceError",
    "TransientServiceError",
    "RateLimitedError",
    "PermanentServiceError",
    "QuotaExceededError",
    "SynthesisError",
    # Backends
    "WhisperTranscriber",
    "OpenAIChatGenerator",
    "ElevenLabsSynthesizer",
]
