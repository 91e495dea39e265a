"""Core module initialization."""

from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    CredentialsExpiredError,
    CredentialsMissingError,
    InvalidRequestError,
    ProcessError,
    ProcessExitError,
    ProcessNotFoundError,
    ProcessTimeoutError,
    ProxyError,
    UpstreamError,
    build_error_envelope,
)
from .models import MODEL_ALIASES, SUPPORTED_MODELS, cli_model_for, list_models, resolve_model
from .sse import DONE_FRAME, SSEDecoder, SSEEvent, encode_sse_data
from .upstream_transport import (
    clear_upstream_transports,
    get_upstream_transport,
    register_upstream_transport,
    register_upstream_transport_for_url,
)

__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "CredentialsExpiredError",
    "CredentialsMissingError",
    "DONE_FRAME",
    "InvalidRequestError",
    "MODEL_ALIASES",
    "ProcessError",
    "ProcessExitError",
    "ProcessNotFoundError",
    "ProcessTimeoutError",
    "ProxyError",
    "SSEDecoder",
    "SSEEvent",
    "SUPPORTED_MODELS",
    "UpstreamError",
    "build_error_envelope",
    "clear_upstream_transports",
    "cli_model_for",
    "encode_sse_data",
    "get_upstream_transport",
    "list_models",
    "register_upstream_transport",
    "register_upstream_transport_for_url",
    "resolve_model",
]
