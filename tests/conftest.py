"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

import sys
from typing import Any, Generator

import pytest

from maxproxy.core.upstream_transport import clear_upstream_transports
from maxproxy.testing import FakeUpstream, ProxyHarness

PYTHON = sys.executable


# =============================================================================
# Transport Registry Fixtures
# =============================================================================


@pytest.fixture
def clear_transport_registry() -> Generator[None, None, None]:
    """Clear upstream transport registry after test.

    Use this fixture in tests that register fake transports.
    """
    yield
    clear_upstream_transports()


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host environment overrides out of settings parsing."""
    for name in ("MAXPROXY_HOST", "MAXPROXY_PORT", "MAXPROXY_CONFIG"):
        monkeypatch.delenv(name, raising=False)


# =============================================================================
# Harness Configuration Builders
# =============================================================================


def build_cli_config(
    *,
    timeout_ms: int = 300000,
    wrapper: str | None = None,
) -> dict[str, Any]:
    """Build a config that routes chat requests through the CLI backend."""
    return {
        "proxy_settings": {"backend": "cli"},
        "cli": {"wrapper": wrapper, "timeout_ms": timeout_ms},
    }


# =============================================================================
# Harness Fixtures
# =============================================================================


@pytest.fixture
def fake_upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def proxy_harness(
    fake_upstream: FakeUpstream,
    clear_transport_registry: None,
) -> Generator[ProxyHarness, None, None]:
    """A proxy wired to ``fake_upstream`` with an OAuth-shaped static token.

    Usage:
        async def test_chat(fake_upstream, proxy_harness):
            fake_upstream.enqueue_message("hi")
            async with proxy_harness.make_async_client() as client:
                ...
    """
    harness = ProxyHarness(fake_upstream)
    yield harness
    harness.close()
