"""Typed view over the loaded configuration mapping."""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .core.exceptions import ConfigurationError
from .types import DEFAULT_MAX_TOKENS

logger = logging.getLogger("maxproxy")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3456
DEFAULT_API_URL = "https://api.anthropic.com/v1/messages"
DEFAULT_API_VERSION = "2023-06-01"
DEFAULT_UPSTREAM_TIMEOUT = 600.0
DEFAULT_CLI_TIMEOUT_MS = 300000
DEFAULT_CLI_QUEUE_SIZE = 256
DEFAULT_AUTH_SOURCES = ("config", "auth_profiles", "claude_credentials", "keychain")
BACKENDS = ("api", "cli")


def _section(config: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = config.get(key)
    return value if isinstance(value, Mapping) else {}


def _as_int(value: Any, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid integer config value %r; using %s", value, default)
        return default


def _as_float(value: Any, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid numeric config value %r; using %s", value, default)
        return default


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class UpstreamSettings:
    api_url: str = DEFAULT_API_URL
    api_version: str = DEFAULT_API_VERSION
    timeout: float = DEFAULT_UPSTREAM_TIMEOUT
    default_max_tokens: int = DEFAULT_MAX_TOKENS


@dataclass
class AuthSettings:
    sources: tuple[str, ...] = DEFAULT_AUTH_SOURCES
    api_key: Optional[str] = None
    auth_profiles_path: Optional[str] = None
    claude_credentials_path: Optional[str] = None


@dataclass
class CliSettings:
    command: str = "claude"
    wrapper: Optional[str] = "unbuffer"
    timeout_ms: int = DEFAULT_CLI_TIMEOUT_MS
    cwd: Optional[str] = None
    queue_size: int = DEFAULT_CLI_QUEUE_SIZE


@dataclass
class ProxySettings:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    backend: str = "api"
    log_level: str = "INFO"
    upstream: UpstreamSettings = field(default_factory=UpstreamSettings)
    auth: AuthSettings = field(default_factory=AuthSettings)
    cli: CliSettings = field(default_factory=CliSettings)
    model_aliases: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: Optional[Mapping[str, Any]]) -> "ProxySettings":
        config = config or {}
        proxy_cfg = _section(config, "proxy_settings")
        server_cfg = _section(proxy_cfg, "server")
        logging_cfg = _section(proxy_cfg, "logging")
        upstream_cfg = _section(config, "upstream")
        auth_cfg = _section(config, "auth")
        cli_cfg = _section(config, "cli")

        # Environment variables take priority over the config file
        host = os.getenv("MAXPROXY_HOST") or _as_str(server_cfg.get("host")) or DEFAULT_HOST
        port = _as_int(
            os.getenv("MAXPROXY_PORT"),
            _as_int(server_cfg.get("port"), DEFAULT_PORT),
        )

        backend = (_as_str(proxy_cfg.get("backend")) or "api").lower()
        if backend not in BACKENDS:
            raise ConfigurationError(
                f"Unknown backend '{backend}'; expected one of {', '.join(BACKENDS)}"
            )

        sources_raw = auth_cfg.get("sources")
        if isinstance(sources_raw, (list, tuple)) and sources_raw:
            sources = tuple(str(item).strip() for item in sources_raw if str(item).strip())
        else:
            sources = DEFAULT_AUTH_SOURCES

        wrapper_raw = cli_cfg.get("wrapper", "unbuffer")
        aliases_raw = config.get("model_aliases")
        aliases = (
            {str(k): str(v) for k, v in aliases_raw.items()}
            if isinstance(aliases_raw, Mapping)
            else {}
        )

        return cls(
            host=host,
            port=port,
            backend=backend,
            log_level=_as_str(logging_cfg.get("level")) or "INFO",
            upstream=UpstreamSettings(
                api_url=_as_str(upstream_cfg.get("api_url")) or DEFAULT_API_URL,
                api_version=_as_str(upstream_cfg.get("api_version")) or DEFAULT_API_VERSION,
                timeout=_as_float(upstream_cfg.get("timeout"), DEFAULT_UPSTREAM_TIMEOUT),
                default_max_tokens=_as_int(
                    upstream_cfg.get("default_max_tokens"), DEFAULT_MAX_TOKENS
                ),
            ),
            auth=AuthSettings(
                sources=sources,
                api_key=_as_str(auth_cfg.get("api_key")),
                auth_profiles_path=_as_str(auth_cfg.get("auth_profiles_path")),
                claude_credentials_path=_as_str(auth_cfg.get("claude_credentials_path")),
            ),
            cli=CliSettings(
                command=_as_str(cli_cfg.get("command")) or "claude",
                wrapper=_as_str(wrapper_raw) if wrapper_raw else None,
                timeout_ms=_as_int(cli_cfg.get("timeout_ms"), DEFAULT_CLI_TIMEOUT_MS),
                cwd=_as_str(cli_cfg.get("cwd")),
                queue_size=_as_int(cli_cfg.get("queue_size"), DEFAULT_CLI_QUEUE_SIZE),
            ),
            model_aliases=aliases,
        )
