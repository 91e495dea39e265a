"""FastAPI application factory for maxproxy."""

import logging
import socket
from contextlib import asynccontextmanager
from typing import Any, Mapping, Optional

from fastapi import FastAPI

from .api.routes import chat_completions, health, list_models
from .config_loader import load_config
from .context import ProxyContext, build_context
from .settings import ProxySettings

logger = logging.getLogger("maxproxy")


def _log_startup(context: ProxyContext) -> None:
    settings = context.settings
    logger.info("maxproxy starting up...")
    logger.info("Configured bind address %s:%s", settings.host, settings.port)
    if settings.host == "0.0.0.0":
        hostname = socket.gethostname()
        logger.info("Reachable on local network at http://%s:%s", hostname, settings.port)
    logger.info("Backend: %s", context.backend.name)
    if settings.backend == "api":
        logger.info("Upstream: %s", settings.upstream.api_url)
    else:
        logger.info("CLI: %s (wrapper: %s)", settings.cli.command, settings.cli.wrapper or "none")
    logger.info("maxproxy ready to handle requests")


def create_app(
    config: Optional[Mapping[str, Any]] = None,
    *,
    context: Optional[ProxyContext] = None,
) -> FastAPI:
    """Build the proxy application.

    Args:
        config: Parsed configuration mapping; loaded from the default
            config file when neither this nor ``context`` is given.
        context: A prebuilt context, used as-is (tests inject one).

    Returns:
        The configured FastAPI application instance.
    """
    if context is None:
        if config is None:
            config = load_config()
        context = build_context(ProxySettings.from_config(config))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _log_startup(context)
        yield
        logger.info("maxproxy shutting down")

    app = FastAPI(title="maxproxy", lifespan=lifespan)
    app.state.proxy_context = context

    app.post("/v1/chat/completions")(chat_completions)
    app.get("/v1/models")(list_models)
    app.get("/health")(health)
    return app


__all__ = ["create_app"]
