"""Standalone server entry point: ``maxproxy-server [port]``."""

from __future__ import annotations

import argparse
import sys
from datetime import datetime, timezone
from typing import Optional, Sequence

import uvicorn

from .auth import CredentialProvider
from .config_loader import load_config
from .context import build_context
from .logging import setup_logging
from .main import create_app
from .settings import ProxySettings


def parse_port(value: Optional[str], default: int) -> Optional[int]:
    """Return the port, or None when ``value`` is not a valid TCP port."""
    if value is None:
        return default
    try:
        port = int(value)
    except (TypeError, ValueError):
        return None
    if port < 1 or port > 65535:
        return None
    return port


def check_credentials(credentials: CredentialProvider) -> bool:
    print("Checking Claude CLI credentials...")
    status = credentials.verify()
    if not status.ok:
        print(f"Error: {status.error}", file=sys.stderr)
        print("Please run: claude auth login", file=sys.stderr)
        return False
    if status.expires_at is not None:
        remaining = status.expires_at - datetime.now(timezone.utc)
        expires_in = str(round(remaining.total_seconds() / 60))
    else:
        expires_in = "unknown"
    print(f"  Credentials: OK (expires in {expires_in} minutes)\n")
    return True


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="OpenAI-compatible proxy for Claude")
    parser.add_argument("port", nargs="?", help="Port to listen on (default from config, 3456)")
    parser.add_argument(
        "--config",
        help="Path to config YAML (default: MAXPROXY_CONFIG or configs/config_default.yaml)",
    )
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except RuntimeError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    settings = ProxySettings.from_config(config)

    port = parse_port(args.port, settings.port)
    if port is None:
        print(f"Invalid port: {args.port}", file=sys.stderr)
        return 1
    settings.port = port

    setup_logging(settings.log_level)
    print("maxproxy - OpenAI-compatible proxy for Claude")
    print("=============================================\n")

    context = build_context(settings)
    if settings.backend == "api" and not check_credentials(context.credentials):
        return 1

    app = create_app(context=context)
    print(f"Listening on http://{settings.host}:{settings.port}")
    print("Test with:")
    print(f"  curl -X POST http://localhost:{settings.port}/v1/chat/completions \\")
    print('    -H "Content-Type: application/json" \\')
    print('    -d \'{"model": "claude-sonnet-4", "messages": [{"role": "user", "content": "Hello!"}]}\'\n')
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
