"""Chat backends: the direct API and the CLI subprocess.

Both expose ``complete(request) -> ChatResult`` and
``open_stream(request)``, returning an object with ``events()`` (an async
iterator of ``UpstreamEvent``) and an idempotent ``aclose()``.
"""

from typing import AsyncIterator, Protocol

from ..types import ChatRequest, ChatResult
from ..upstream.events import UpstreamEvent
from .api import ApiBackend
from .cli import CliBackend, CliEventStream, render_prompt


class EventStream(Protocol):
    def events(self) -> AsyncIterator[UpstreamEvent]:
        ...

    async def aclose(self) -> None:
        ...


class ChatBackend(Protocol):
    name: str

    async def complete(self, request: ChatRequest) -> ChatResult:
        ...

    async def open_stream(self, request: ChatRequest) -> EventStream:
        ...


__all__ = [
    "ApiBackend",
    "ChatBackend",
    "CliBackend",
    "CliEventStream",
    "EventStream",
    "render_prompt",
]
