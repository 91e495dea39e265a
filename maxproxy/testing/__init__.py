"""Testing utilities for in-process proxy simulations."""

from .fake_upstream import (
    FakeUpstream,
    UpstreamResponse,
    build_message_response,
    build_stream_events,
)
from .proxy_harness import TEST_OAUTH_TOKEN, ProxyHarness

__all__ = [
    "FakeUpstream",
    "ProxyHarness",
    "TEST_OAUTH_TOKEN",
    "UpstreamResponse",
    "build_message_response",
    "build_stream_events",
]
