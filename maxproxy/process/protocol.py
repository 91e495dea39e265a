"""Line protocol for the CLI's ``--output-format stream-json`` output.

The CLI runs under a PTY wrapper, so stdout may carry terminal control
sequences and CRLF line endings around the JSON lines. Stripping is best
effort and works on one read at a time. A CSI split after its ESC byte leaves
that ESC at the end of one read and the parameters at the start of the next,
so the orphan pattern only matches at the start of a read. Bracketed text
elsewhere, JSON string values included, is left as is. Anything more exotic
stays in the line, which then falls through to a raw event.
"""

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from ..core.exceptions import ProcessError

# OSC: ESC ] ... terminated by BEL or ST
_OSC_SEQUENCE = r"\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"
# CSI and two-byte escapes
_ESCAPE_SEQUENCE = r"\x1b(?:\[[0-?]*[ -/]*[@-~]|[@-Z\\-_])"
# CSI whose ESC byte ended the previous chunk
_ORPHAN_CSI = r"\A\[\d+(?:;\d+)*[A-HJKSTfhlmsu]"
# ESC cut off from the rest of its sequence
_TRAILING_ESC = r"\x1b\Z"

_OSC_RE = re.compile(_OSC_SEQUENCE)
_ESCAPE_RE = re.compile(_ESCAPE_SEQUENCE)
_ORPHAN_CSI_RE = re.compile(_ORPHAN_CSI)
_TRAILING_ESC_RE = re.compile(_TRAILING_ESC)


def strip_control_sequences(text: str) -> str:
    """Remove terminal control sequences and carriage returns from one read."""
    text = _ORPHAN_CSI_RE.sub("", text)
    text = _OSC_RE.sub("", text)
    text = _ESCAPE_RE.sub("", text)
    text = _TRAILING_ESC_RE.sub("", text)
    return text.replace("\r", "")


class LineBuffer:
    """Split decoded text on ``\\n``, carrying the unterminated tail forward."""

    def __init__(self) -> None:
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, text: str) -> list[str]:
        if not text:
            return []
        self._pending += text
        *lines, self._pending = self._pending.split("\n")
        return lines

    def flush(self) -> Optional[str]:
        """Return the unterminated tail, if any, and reset."""
        tail, self._pending = self._pending, ""
        return tail or None


class SubprocessEventType(str, Enum):
    CONTENT_DELTA = "content_delta"
    ASSISTANT = "assistant"
    RESULT = "result"
    MESSAGE = "message"
    RAW = "raw"
    ERROR = "error"
    CLOSE = "close"


@dataclass
class SubprocessEvent:
    type: SubprocessEventType
    data: Optional[dict[str, Any]] = None
    raw: Optional[str] = None
    exit_code: Optional[int] = None
    error: Optional[ProcessError] = None

    @classmethod
    def failure(cls, error: ProcessError) -> "SubprocessEvent":
        return cls(SubprocessEventType.ERROR, error=error)

    @classmethod
    def close(cls, exit_code: Optional[int]) -> "SubprocessEvent":
        return cls(SubprocessEventType.CLOSE, exit_code=exit_code)

    @property
    def delta_text(self) -> str:
        """Text of a content delta; empty for every other event."""
        if self.type is not SubprocessEventType.CONTENT_DELTA or not self.data:
            return ""
        delta = self.data["event"].get("delta")
        if not isinstance(delta, dict):
            return ""
        text = delta.get("text")
        return text if isinstance(text, str) else ""


def is_content_delta(message: Any) -> bool:
    if not isinstance(message, dict) or message.get("type") != "stream_event":
        return False
    event = message.get("event")
    return isinstance(event, dict) and event.get("type") == "content_block_delta"


def is_assistant_message(message: Any) -> bool:
    return (
        isinstance(message, dict)
        and message.get("type") == "assistant"
        and isinstance(message.get("message"), dict)
    )


def is_result_message(message: Any) -> bool:
    return isinstance(message, dict) and message.get("type") == "result"


def classify_line(line: str) -> Optional[SubprocessEvent]:
    """Turn one output line into an event; blank lines produce nothing.

    A line that is not valid JSON becomes a RAW event. Shape checks run in
    order content delta, assistant message, result, so each decoded line
    maps to exactly one event.
    """
    text = line.strip()
    if not text:
        return None
    try:
        message = json.loads(text)
    except json.JSONDecodeError:
        return SubprocessEvent(SubprocessEventType.RAW, raw=text)
    if not isinstance(message, dict):
        return SubprocessEvent(SubprocessEventType.RAW, raw=text)

    if is_content_delta(message):
        kind = SubprocessEventType.CONTENT_DELTA
    elif is_assistant_message(message):
        kind = SubprocessEventType.ASSISTANT
    elif is_result_message(message):
        kind = SubprocessEventType.RESULT
    else:
        kind = SubprocessEventType.MESSAGE
    return SubprocessEvent(kind, data=message)
