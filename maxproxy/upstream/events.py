"""Typed events decoded from the upstream Messages API stream."""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger("maxproxy")


class UpstreamEventType(str, Enum):
    MESSAGE_START = "message_start"
    CONTENT_DELTA = "content_delta"
    MESSAGE_DELTA = "message_delta"
    ERROR = "error"
    OTHER = "other"


@dataclass(frozen=True)
class UpstreamEvent:
    """One decoded upstream frame.

    Only the fields relevant to ``type`` are populated; token counts
    default to 0 when the upstream omits them.
    """

    type: UpstreamEventType
    text: str = ""
    model: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0
    error: Optional[str] = None

    @classmethod
    def message_start(cls, model: Optional[str], input_tokens: int = 0) -> "UpstreamEvent":
        return cls(UpstreamEventType.MESSAGE_START, model=model, input_tokens=input_tokens)

    @classmethod
    def content_delta(cls, text: str) -> "UpstreamEvent":
        return cls(UpstreamEventType.CONTENT_DELTA, text=text)

    @classmethod
    def message_delta(cls, output_tokens: int = 0) -> "UpstreamEvent":
        return cls(UpstreamEventType.MESSAGE_DELTA, output_tokens=output_tokens)

    @classmethod
    def failure(cls, message: str) -> "UpstreamEvent":
        return cls(UpstreamEventType.ERROR, error=message)

    @classmethod
    def other(cls) -> "UpstreamEvent":
        return cls(UpstreamEventType.OTHER)


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _token_count(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    return 0


def event_from_payload(payload: Any) -> UpstreamEvent:
    """Classify a decoded Messages API stream payload."""
    if not isinstance(payload, dict):
        return UpstreamEvent.other()

    event_type = payload.get("type")
    if event_type == "message_start":
        message = _mapping(payload.get("message"))
        usage = _mapping(message.get("usage"))
        return UpstreamEvent.message_start(
            model=message.get("model") or None,
            input_tokens=_token_count(usage.get("input_tokens")),
        )
    if event_type == "content_block_delta":
        delta = _mapping(payload.get("delta"))
        text = delta.get("text")
        if isinstance(text, str) and text:
            return UpstreamEvent.content_delta(text)
        return UpstreamEvent.other()
    if event_type == "message_delta":
        usage = _mapping(payload.get("usage"))
        return UpstreamEvent.message_delta(_token_count(usage.get("output_tokens")))
    if event_type == "error":
        error = payload.get("error") or {}
        message = error.get("message") if isinstance(error, dict) else None
        return UpstreamEvent.failure(f"Anthropic stream error: {message or error or 'unknown error'}")
    return UpstreamEvent.other()


def decode_upstream_event(data: Optional[str]) -> Optional[UpstreamEvent]:
    """Decode one SSE ``data:`` payload; unparseable frames yield None."""
    if not data or data == "[DONE]":
        return None
    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("Skipping undecodable upstream frame: %s", data[:100])
        return None
    return event_from_payload(payload)
