"""Upstream-to-downstream stream translation."""

from .stream import (
    DownstreamEvent,
    DownstreamEventType,
    StreamSession,
    StreamState,
    StreamTranslator,
)

__all__ = [
    "DownstreamEvent",
    "DownstreamEventType",
    "StreamSession",
    "StreamState",
    "StreamTranslator",
]
