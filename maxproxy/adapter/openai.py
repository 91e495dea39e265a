"""OpenAI chat-completions dialect: request parsing and response shaping."""

import logging
import time
import uuid
from typing import Any, Mapping, Optional

from ..core.exceptions import InvalidRequestError, build_error_envelope
from ..core.sse import DONE_FRAME, encode_sse_data
from ..translator import DownstreamEvent, DownstreamEventType
from ..types import (
    DEFAULT_MAX_TOKENS,
    LEADING_USER_PLACEHOLDER,
    ChatCompletionChunk,
    ChatCompletionResponse,
    ChatRequest,
    ChatResult,
    Turn,
)

logger = logging.getLogger("maxproxy")

DEFAULT_MODEL = "claude-sonnet-4"
CONVERSATION_ROLES = ("user", "assistant")


def new_request_id() -> str:
    """24 hex characters, unique per request."""
    return uuid.uuid4().hex[:24]


def completion_id(request_id: str) -> str:
    return f"chatcmpl-{request_id}"


def content_text(content: Any) -> str:
    """Flatten a message ``content`` field (string or content parts) to text."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = []
        for part in content:
            if isinstance(part, str):
                texts.append(part)
            elif isinstance(part, Mapping) and part.get("type", "text") == "text":
                text = part.get("text")
                if isinstance(text, str):
                    texts.append(text)
        return "\n".join(texts)
    return str(content)


def _positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if value > 0 else None


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _stop_sequences(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, list):
        return [item for item in value if isinstance(item, str) and item]
    return []


def to_internal(
    payload: Mapping[str, Any], default_max_tokens: int = DEFAULT_MAX_TOKENS
) -> ChatRequest:
    """Validate an OpenAI chat body and convert it to a ``ChatRequest``.

    System messages are joined with a blank line into one system prompt.
    If the first remaining turn is from the assistant, a placeholder user
    turn is inserted in front of it.

    Raises:
        InvalidRequestError: ``messages`` is missing, empty or unusable.
    """
    messages = payload.get("messages")
    if not isinstance(messages, list) or not messages:
        raise InvalidRequestError(
            "messages is required and must be a non-empty array", code="invalid_messages"
        )

    system_parts: list[str] = []
    turns: list[Turn] = []
    for index, message in enumerate(messages):
        if not isinstance(message, Mapping):
            raise InvalidRequestError(
                f"messages[{index}] must be an object", code="invalid_messages"
            )
        role = message.get("role")
        text = content_text(message.get("content"))
        if role in ("system", "developer"):
            system_parts.append(text)
        elif role in CONVERSATION_ROLES:
            turns.append(Turn(role=role, text=text))
        else:
            logger.debug("Dropping message %d with unsupported role %r", index, role)

    if not turns:
        raise InvalidRequestError(
            "messages must include at least one user or assistant message",
            code="invalid_messages",
        )
    if turns[0].role == "assistant":
        turns.insert(0, Turn(role="user", text=LEADING_USER_PLACEHOLDER))

    model = payload.get("model")
    if not isinstance(model, str) or not model:
        model = DEFAULT_MODEL

    max_tokens = (
        _positive_int(payload.get("max_tokens"))
        or _positive_int(payload.get("max_completion_tokens"))
        or default_max_tokens
    )

    stream_options = payload.get("stream_options")
    include_usage = isinstance(stream_options, Mapping) and stream_options.get("include_usage") is True

    session_id = payload.get("session_id")
    if not isinstance(session_id, str) or not session_id:
        session_id = None

    return ChatRequest(
        model=model,
        turns=turns,
        system="\n\n".join(system_parts) if system_parts else None,
        max_tokens=max_tokens,
        stream=payload.get("stream") is True,
        temperature=_number(payload.get("temperature")),
        top_p=_number(payload.get("top_p")),
        stop_sequences=_stop_sequences(payload.get("stop")),
        session_id=session_id,
        include_usage=include_usage,
    )


def usage_block(input_tokens: int, output_tokens: int) -> dict[str, int]:
    return {
        "prompt_tokens": input_tokens,
        "completion_tokens": output_tokens,
        "total_tokens": input_tokens + output_tokens,
    }


def from_internal(
    result: ChatResult, request_id: str, created: Optional[int] = None
) -> ChatCompletionResponse:
    """Build the non-streaming chat.completion body."""
    return {
        "id": completion_id(request_id),
        "object": "chat.completion",
        "created": created if created is not None else int(time.time()),
        "model": result.model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": result.text},
                "finish_reason": result.finish_reason,
            }
        ],
        "usage": usage_block(result.input_tokens, result.output_tokens),
    }


class ChunkFormatter:
    """Render downstream events as OpenAI ``chat.completion.chunk`` SSE frames.

    Every chunk of one response shares the same id and ``created`` stamp.
    """

    def __init__(self, request_id: str, model: str, include_usage: bool = False) -> None:
        self.request_id = request_id
        self.model = model
        self.include_usage = include_usage
        self.created = int(time.time())

    def chunk(
        self,
        delta: dict[str, Any],
        finish_reason: Optional[str] = None,
        model: Optional[str] = None,
    ) -> ChatCompletionChunk:
        return {
            "id": completion_id(self.request_id),
            "object": "chat.completion.chunk",
            "created": self.created,
            "model": model or self.model,
            "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
        }

    def format(self, event: DownstreamEvent) -> bytes:
        if event.type is DownstreamEventType.ROLE:
            return encode_sse_data(self.chunk({"role": "assistant"}))
        if event.type is DownstreamEventType.CONTENT:
            return encode_sse_data(self.chunk({"content": event.text}))
        if event.type is DownstreamEventType.FINISH:
            body = self.chunk({}, finish_reason=event.finish_reason or "stop", model=event.model)
            if self.include_usage:
                body["usage"] = usage_block(event.input_tokens, event.output_tokens)
            return encode_sse_data(body)
        if event.type is DownstreamEventType.DONE:
            return DONE_FRAME
        return encode_sse_data(build_error_envelope(event.error or "stream error"))
