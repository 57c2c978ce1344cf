"""Text generation backends."""

from .openai_chat import FALLBACK_MESSAGE, QUOTA_MESSAGE, OpenAIChatGenerator

__all__ = ["OpenAIChatGenerator", "FALLBACK_MESSAGE", "QUOTA_MESSAGE"]
