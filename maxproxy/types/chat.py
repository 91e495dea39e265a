"""Wire-format types for the two chat dialects the proxy speaks.

Types are separated into:
- OpenAI-compatible types: what downstream clients send and receive
- Anthropic types: what the upstream Messages API accepts and returns
"""

from typing import Any
from typing_extensions import TypedDict


# =============================================================================
# OpenAI-Compatible Types (downstream)
# =============================================================================


class ContentPart(TypedDict, total=False):
    """A content part for multi-part messages.

    Only ``text`` parts carry content the proxy forwards; other part types
    are dropped during normalization.
    """
    type: str
    text: str | None


class ChatMessage(TypedDict, total=False):
    """A message in an inbound chat conversation.

    Attributes:
        role: One of "system", "user", "assistant". Other roles are ignored.
        content: Plain text or a list of content parts.
    """
    role: str
    content: str | list[ContentPart] | None


class StreamOptions(TypedDict, total=False):
    include_usage: bool


class ChatCompletionRequest(TypedDict, total=False):
    """Inbound ``POST /v1/chat/completions`` body."""
    model: str
    messages: list[ChatMessage]
    stream: bool
    stream_options: StreamOptions
    max_tokens: int
    max_completion_tokens: int
    temperature: float
    top_p: float
    stop: str | list[str]
    session_id: str


class Usage(TypedDict):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class Delta(TypedDict, total=False):
    """Incremental message update in a streaming chunk."""
    role: str
    content: str


class Choice(TypedDict, total=False):
    index: int
    message: dict[str, Any]
    delta: Delta
    finish_reason: str | None


class ChatCompletionResponse(TypedDict, total=False):
    """Non-streaming ``chat.completion`` object."""
    id: str
    object: str
    created: int
    model: str
    choices: list[Choice]
    usage: Usage


class ChatCompletionChunk(TypedDict, total=False):
    """One ``chat.completion.chunk`` carried by an SSE ``data:`` frame."""
    id: str
    object: str
    created: int
    model: str
    choices: list[Choice]
    usage: Usage


# =============================================================================
# Anthropic Types (upstream)
# =============================================================================


class AnthropicMessage(TypedDict):
    role: str
    content: str


class AnthropicTextBlock(TypedDict, total=False):
    type: str
    text: str
    cache_control: dict[str, str]


class AnthropicUsage(TypedDict, total=False):
    input_tokens: int
    output_tokens: int


class AnthropicRequest(TypedDict, total=False):
    """Body sent to the upstream Messages endpoint."""
    model: str
    messages: list[AnthropicMessage]
    max_tokens: int
    system: str | list[AnthropicTextBlock]
    stream: bool
    temperature: float
    top_p: float
    stop_sequences: list[str]


class AnthropicResponse(TypedDict, total=False):
    """Non-streaming Messages API response."""
    id: str
    type: str
    role: str
    content: list[dict[str, Any]]
    model: str
    stop_reason: str | None
    usage: AnthropicUsage
