"""In-process transports for the Messages API host.

The proxy normally reaches the upstream over the network. Tests (and the
``ProxyHarness``) swap in an ``httpx`` transport for an origin so the real
client code talks to a fake app instead.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlsplit

import httpx

logger = logging.getLogger("maxproxy")

# origin ("host[:port]", lower-cased) -> transport
_overrides: dict[str, httpx.AsyncBaseTransport] = {}


def _origin(url_or_host: str) -> str:
    value = url_or_host.strip()
    if "://" in value:
        value = urlsplit(value).netloc
    return value.lower()


def register_upstream_transport(host: str, transport: httpx.AsyncBaseTransport) -> None:
    origin = _origin(host or "")
    if not origin:
        raise ValueError("host is required")
    _overrides[origin] = transport
    logger.debug("Upstream %s now served by %s", origin, type(transport).__name__)


def register_upstream_transport_for_url(url: str, transport: httpx.AsyncBaseTransport) -> None:
    """Route every request for ``url``'s origin (e.g. the Messages endpoint) to ``transport``."""
    register_upstream_transport(url, transport)


def clear_upstream_transports() -> None:
    _overrides.clear()


def get_upstream_transport(url: str) -> Optional[httpx.AsyncBaseTransport]:
    """Transport override for ``url``, or None to use the network."""
    if not url or "://" not in url:
        return None
    return _overrides.get(_origin(url))
