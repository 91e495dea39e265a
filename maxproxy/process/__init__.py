"""CLI subprocess reader."""

from .protocol import (
    LineBuffer,
    SubprocessEvent,
    SubprocessEventType,
    classify_line,
    strip_control_sequences,
)
from .reader import DEFAULT_TIMEOUT_MS, CliProcess, build_cli_args

__all__ = [
    "CliProcess",
    "DEFAULT_TIMEOUT_MS",
    "LineBuffer",
    "SubprocessEvent",
    "SubprocessEventType",
    "build_cli_args",
    "classify_line",
    "strip_control_sequences",
]
