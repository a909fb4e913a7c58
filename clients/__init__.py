# External service clients for the monitor worker
from .bluesky import AuthenticationError, BlueskyClient
from .gemini import GeminiClient
from .prompts import PromptStore, ps
from .wiphala import WiphalaClient

__all__ = [
    "BlueskyClient",
    "AuthenticationError",
    "GeminiClient",
    "WiphalaClient",
    "PromptStore",
    "ps",
]
