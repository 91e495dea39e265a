"""Liveness endpoint."""

from datetime import datetime, timezone

PROVIDER_NAME = "anthropic-oauth"


async def health() -> dict:
    """GET /health"""
    return {
        "status": "ok",
        "provider": PROVIDER_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }
