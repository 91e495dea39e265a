"""API module for the proxy."""

from .routes import chat_completions, health, list_models

__all__ = [
    "chat_completions",
    "health",
    "list_models",
]
