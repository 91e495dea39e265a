"""Upstream Messages API client."""

from .client import (
    AnthropicClient,
    IDENTITY_PREAMBLE,
    UpstreamStream,
    build_body,
    build_headers,
    is_oauth_token,
)
from .events import UpstreamEvent, UpstreamEventType, decode_upstream_event, event_from_payload

__all__ = [
    "AnthropicClient",
    "IDENTITY_PREAMBLE",
    "UpstreamEvent",
    "UpstreamEventType",
    "UpstreamStream",
    "build_body",
    "build_headers",
    "decode_upstream_event",
    "event_from_payload",
    "is_oauth_token",
]
