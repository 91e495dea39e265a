"""Logging module for the proxy."""

from .setup import preview, safe_headers_for_log, setup_logging

__all__ = [
    "preview",
    "safe_headers_for_log",
    "setup_logging",
]
