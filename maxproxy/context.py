"""Per-application state handed to request handlers."""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from .auth import CredentialProvider, build_credential_provider
from .backends import ApiBackend, ChatBackend, CliBackend
from .backends.cli import ProcessFactory
from .settings import ProxySettings
from .upstream import AnthropicClient

logger = logging.getLogger("maxproxy")


@dataclass
class ProxyContext:
    """Everything a request needs: settings, credentials and the active backend.

    One instance lives on ``app.state.proxy_context`` for the app's lifetime.
    """

    settings: ProxySettings
    credentials: CredentialProvider
    backend: ChatBackend


def build_context(
    settings: ProxySettings,
    *,
    credentials: Optional[CredentialProvider] = None,
    process_factory: Optional[ProcessFactory] = None,
) -> ProxyContext:
    credentials = credentials or build_credential_provider(settings.auth)
    if settings.backend == "cli":
        backend: ChatBackend = CliBackend(settings.cli, process_factory)
    else:
        client = AnthropicClient(settings.upstream, credentials, settings.model_aliases)
        backend = ApiBackend(client)
    logger.info("Using %s backend", backend.name)
    return ProxyContext(settings=settings, credentials=credentials, backend=backend)


def get_context(request: Request) -> ProxyContext:
    return request.app.state.proxy_context
