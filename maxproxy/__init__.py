"""maxproxy - OpenAI-compatible proxy for Claude

Exposes an OpenAI chat-completions endpoint and serves it with Claude
credentials already present on the machine.

This module provides:
- Credential resolution from the CLI's stores, cached until expiry
- A Messages API client with OAuth-aware header and body shaping
- Streaming translation from Messages API events to OpenAI chunks
- An alternate backend that drives the ``claude`` CLI as a subprocess

Example:
    >>> from maxproxy import create_app
    >>> import uvicorn
    >>> uvicorn.run(create_app(), host="127.0.0.1", port=3456)
"""

from .config_loader import load_config
from .context import ProxyContext, build_context
from .core import ProxyError
from .logging import setup_logging
from .main import create_app
from .settings import ProxySettings

__all__ = [
    "ProxyContext",
    "ProxyError",
    "ProxySettings",
    "build_context",
    "create_app",
    "load_config",
    "setup_logging",
]
