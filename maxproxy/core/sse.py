"""Server-sent events: the upstream decoder and downstream frame encoders."""

import codecs
import json
from dataclasses import dataclass, field
from typing import Any, Optional

DONE_FRAME = b"data: [DONE]\n\n"


@dataclass
class SSEEvent:
    """One event block. ``data`` joins every ``data:`` line with ``\\n``."""

    data: Optional[str]
    event: Optional[str] = None
    other_lines: list[str] = field(default_factory=list)

    def encode(self) -> bytes:
        lines = [f"event: {self.event}"] if self.event else []
        lines += self.other_lines
        if self.data is not None:
            lines += [f"data: {part}" if part else "data:" for part in self.data.split("\n")]
        return ("\n".join(lines) + "\n\n").encode("utf-8")


def _field_value(line: str, name: str) -> str:
    value = line[len(name) + 1:]
    return value[1:] if value.startswith(" ") else value


def _parse_block(block: str) -> SSEEvent:
    data: list[str] = []
    other: list[str] = []
    name: Optional[str] = None
    for line in block.split("\n"):
        if line.startswith("data:"):
            data.append(_field_value(line, "data"))
        elif line.startswith("event:"):
            name = _field_value(line, "event").strip()
        else:
            other.append(line)
    return SSEEvent(data="\n".join(data) if data else None, event=name, other_lines=other)


class SSEDecoder:
    """Turns an SSE byte stream into events, whatever the read boundaries.

    UTF-8 is decoded incrementally and a CR that ends a read is held back
    until the next one shows whether it starts a CRLF pair.
    """

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""
        self._held_cr = False

    def _normalize(self, text: str) -> str:
        if self._held_cr:
            text = "\r" + text
            self._held_cr = False
        if text.endswith("\r"):
            text = text[:-1]
            self._held_cr = True
        return text.replace("\r\n", "\n").replace("\r", "\n")

    def _drain(self) -> list[SSEEvent]:
        *blocks, self._pending = self._pending.split("\n\n")
        return [_parse_block(block) for block in blocks if block.strip()]

    def feed(self, chunk: bytes) -> list[SSEEvent]:
        if not chunk:
            return []
        self._pending += self._normalize(self._utf8.decode(chunk))
        return self._drain()

    def flush(self) -> list[SSEEvent]:
        """Events still buffered when the stream ends, terminated or not."""
        tail = self._utf8.decode(b"", final=True)
        if self._held_cr:
            tail += "\n"
            self._held_cr = False
        self._pending += tail.replace("\r\n", "\n").replace("\r", "\n")
        events = self._drain()
        rest, self._pending = self._pending.strip("\n"), ""
        if rest.strip():
            events.append(_parse_block(rest))
        return events


def encode_sse_data(payload: Any) -> bytes:
    """``data: <json>`` frame for one downstream chunk."""
    return b"data: " + json.dumps(payload, ensure_ascii=False).encode("utf-8") + b"\n\n"
