"""Normalized request/result shapes shared by both backends."""

from dataclasses import dataclass, field
from typing import Optional

DEFAULT_MAX_TOKENS = 8192
LEADING_USER_PLACEHOLDER = "(continue)"


@dataclass
class Turn:
    """One conversation turn. ``role`` is "user" or "assistant"."""

    role: str
    text: str


@dataclass
class ChatRequest:
    """Dialect-neutral chat request handed to a backend.

    Invariant: ``turns`` is non-empty and never starts with an assistant turn.
    """

    model: str
    turns: list[Turn]
    system: Optional[str] = None
    max_tokens: int = DEFAULT_MAX_TOKENS
    stream: bool = False
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    stop_sequences: list[str] = field(default_factory=list)
    session_id: Optional[str] = None
    include_usage: bool = False


@dataclass
class ChatResult:
    """A completed (non-streaming) generation."""

    model: str
    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    finish_reason: str = "stop"

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens
