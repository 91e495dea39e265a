"""Type definitions for the proxy."""

from .chat import (
    AnthropicMessage,
    AnthropicRequest,
    AnthropicResponse,
    AnthropicTextBlock,
    AnthropicUsage,
    ChatCompletionChunk,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    Choice,
    ContentPart,
    Delta,
    StreamOptions,
    Usage,
)
from .internal import (
    DEFAULT_MAX_TOKENS,
    LEADING_USER_PLACEHOLDER,
    ChatRequest,
    ChatResult,
    Turn,
)

__all__ = [
    "AnthropicMessage",
    "AnthropicRequest",
    "AnthropicResponse",
    "AnthropicTextBlock",
    "AnthropicUsage",
    "ChatCompletionChunk",
    "ChatCompletionRequest",
    "ChatCompletionResponse",
    "ChatMessage",
    "ChatRequest",
    "ChatResult",
    "Choice",
    "ContentPart",
    "DEFAULT_MAX_TOKENS",
    "Delta",
    "LEADING_USER_PLACEHOLDER",
    "StreamOptions",
    "Turn",
    "Usage",
]
