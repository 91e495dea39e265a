"""Stream translator: upstream events in, normalized downstream events out.

Per-request state machine::

    AWAITING_FIRST_DELTA -> STREAMING -> COMPLETED
                 \\             \\
                  +-> FAILED     +-> FAILED

Downstream event sequence on success::

    ROLE, CONTENT*, FINISH, DONE

ROLE is emitted exactly once, immediately before the first CONTENT (or
before FINISH when the upstream produced no text). FINISH/DONE and ERROR
are mutually exclusive terminal outputs and fire at most once.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Optional

from ..core.exceptions import ProxyError
from ..logging import preview
from ..upstream.events import UpstreamEvent, UpstreamEventType

logger = logging.getLogger("maxproxy")


class StreamState(str, Enum):
    AWAITING_FIRST_DELTA = "awaiting_first_delta"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


class DownstreamEventType(str, Enum):
    ROLE = "role"
    CONTENT = "content"
    FINISH = "finish"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class DownstreamEvent:
    type: DownstreamEventType
    text: str = ""
    finish_reason: Optional[str] = None
    model: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.type in (DownstreamEventType.DONE, DownstreamEventType.ERROR)


@dataclass
class StreamSession:
    """Mutable state owned by exactly one in-flight request."""

    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    first_chunk_sent: bool = False
    state: StreamState = StreamState.AWAITING_FIRST_DELTA
    parts: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(self.parts)

    @property
    def finished(self) -> bool:
        return self.state in (StreamState.COMPLETED, StreamState.FAILED)


class StreamTranslator:
    """Reshape upstream events into downstream events for one request."""

    def __init__(self, model: str, finish_reason: str = "stop") -> None:
        self.session = StreamSession(model=model)
        self.finish_reason = finish_reason

    @property
    def state(self) -> StreamState:
        return self.session.state

    def feed(self, event: UpstreamEvent) -> list[DownstreamEvent]:
        """Apply one upstream event and return the downstream events it causes."""
        session = self.session
        if session.finished:
            return []

        if event.type is UpstreamEventType.MESSAGE_START:
            if event.model:
                session.model = event.model
            session.input_tokens = event.input_tokens
            return []

        if event.type is UpstreamEventType.CONTENT_DELTA:
            out: list[DownstreamEvent] = []
            if not session.first_chunk_sent:
                out.append(self._role_event())
            session.state = StreamState.STREAMING
            session.parts.append(event.text)
            out.append(DownstreamEvent(DownstreamEventType.CONTENT, text=event.text))
            return out

        if event.type is UpstreamEventType.MESSAGE_DELTA:
            session.output_tokens = event.output_tokens
            return []

        if event.type is UpstreamEventType.ERROR:
            return self.fail(event.error or "upstream stream error")

        return []

    def finish(self) -> list[DownstreamEvent]:
        """Upstream ended cleanly: the only success exit."""
        session = self.session
        if session.finished:
            return []
        out: list[DownstreamEvent] = []
        if not session.first_chunk_sent:
            out.append(self._role_event())
        session.state = StreamState.COMPLETED
        out.append(
            DownstreamEvent(
                DownstreamEventType.FINISH,
                finish_reason=self.finish_reason,
                model=session.model,
                input_tokens=session.input_tokens,
                output_tokens=session.output_tokens,
            )
        )
        out.append(DownstreamEvent(DownstreamEventType.DONE))
        logger.info(
            "Stream completed: model=%s in=%s out=%s text=\"%s\"",
            session.model,
            session.input_tokens,
            session.output_tokens,
            preview(session.text),
        )
        return out

    def fail(self, message: str) -> list[DownstreamEvent]:
        session = self.session
        if session.finished:
            return []
        session.state = StreamState.FAILED
        logger.error("Stream failed: %s", message)
        return [DownstreamEvent(DownstreamEventType.ERROR, error=message)]

    async def translate(
        self, events: AsyncIterator[UpstreamEvent]
    ) -> AsyncIterator[DownstreamEvent]:
        """Drive the state machine over an upstream event iterator.

        The upstream iterator is always closed before this generator finishes.
        """
        try:
            try:
                async for event in events:
                    for out in self.feed(event):
                        yield out
                    if self.session.finished:
                        return
            except ProxyError as exc:
                for out in self.fail(exc.message):
                    yield out
                return
            except Exception as exc:
                logger.exception("Unexpected error while streaming")
                for out in self.fail(f"{exc.__class__.__name__}: {exc}"):
                    yield out
                return

            for out in self.finish():
                yield out
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()

    def _role_event(self) -> DownstreamEvent:
        self.session.first_chunk_sent = True
        return DownstreamEvent(DownstreamEventType.ROLE, model=self.session.model)
