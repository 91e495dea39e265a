"""Logging configuration for the proxy."""

import logging
import sys
from typing import Mapping, Optional

AUTH_HEADERS = {"authorization", "x-api-key"}


def setup_logging(level: str | int = logging.INFO) -> logging.Logger:
    """Set up logging with proper handlers and formatters."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger("maxproxy")
    logger.setLevel(level)

    # Clear any existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Propagate to root so pytest's caplog sees records
    logger.propagate = True

    return logger


def safe_headers_for_log(headers: Mapping[str, str]) -> dict[str, str]:
    """Copy headers with credentials masked."""
    masked: dict[str, str] = {}
    for key, value in headers.items():
        if key.lower() in AUTH_HEADERS:
            masked[key] = _mask(value)
        else:
            masked[key] = value
    return masked


def preview(text: Optional[str], limit: int = 100) -> str:
    """Single-line, truncated preview of a message for log lines."""
    if not text:
        return ""
    flat = text.replace("\n", " ")
    if len(flat) <= limit:
        return flat
    return f"{flat[:limit]}..."


def _mask(value: str) -> str:
    if len(value) <= 12:
        return "***"
    return f"{value[:8]}...{value[-4:]}"
