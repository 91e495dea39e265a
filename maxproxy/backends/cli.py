"""Backend that runs each request through the ``claude`` CLI."""

import contextlib
import logging
from typing import Any, AsyncIterator, Callable, Optional

from ..core.exceptions import ProcessError, ProcessExitError
from ..core.models import cli_model_for
from ..process import CliProcess, SubprocessEventType
from ..settings import CliSettings
from ..translator import DownstreamEventType, StreamTranslator
from ..types import ChatRequest, ChatResult
from ..upstream.events import UpstreamEvent

logger = logging.getLogger("maxproxy")

ProcessFactory = Callable[[], CliProcess]


def render_prompt(request: ChatRequest) -> str:
    """Flatten a normalized request into the single prompt the CLI accepts."""
    parts: list[str] = []
    if request.system:
        parts.append(request.system)
    for turn in request.turns:
        if turn.role == "assistant":
            parts.append(f"<previous_response>\n{turn.text}\n</previous_response>")
        else:
            parts.append(turn.text)
    return "\n\n".join(parts)


def _text_blocks(message: dict[str, Any]) -> list[str]:
    content = message.get("content")
    if isinstance(content, str):
        return [content] if content else []
    if not isinstance(content, list):
        return []
    return [
        block["text"]
        for block in content
        if isinstance(block, dict)
        and block.get("type") == "text"
        and isinstance(block.get("text"), str)
        and block["text"]
    ]


def _usage_count(usage: Any, key: str) -> int:
    if not isinstance(usage, dict):
        return 0
    value = usage.get(key)
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


class CliEventStream:
    """Adapts one CLI process to the upstream event stream the translator reads."""

    def __init__(self, process: CliProcess) -> None:
        self.process = process
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def events(self) -> AsyncIterator[UpstreamEvent]:
        saw_delta = False
        saw_assistant_text = False
        try:
            async for event in self.process.events():
                if event.type is SubprocessEventType.CONTENT_DELTA:
                    text = event.delta_text
                    if text:
                        saw_delta = True
                        yield UpstreamEvent.content_delta(text)

                elif event.type is SubprocessEventType.ASSISTANT:
                    message = event.data["message"]
                    model = message.get("model")
                    yield UpstreamEvent.message_start(
                        model if isinstance(model, str) and model else None,
                        _usage_count(message.get("usage"), "input_tokens"),
                    )
                    # Partial deltas already carried this message.
                    if not saw_delta:
                        for text in _text_blocks(message):
                            saw_assistant_text = True
                            yield UpstreamEvent.content_delta(text)

                elif event.type is SubprocessEventType.RESULT:
                    data = event.data
                    if data.get("is_error") or str(data.get("subtype", "")).startswith("error"):
                        detail = data.get("result") or data.get("subtype") or "unknown error"
                        raise ProcessError(f"CLI reported an error: {detail}")
                    result_text = data.get("result")
                    if not (saw_delta or saw_assistant_text) and isinstance(result_text, str) and result_text:
                        yield UpstreamEvent.content_delta(result_text)
                    usage = data.get("usage")
                    if isinstance(usage, dict):
                        yield UpstreamEvent.message_start(None, _usage_count(usage, "input_tokens"))
                        yield UpstreamEvent.message_delta(_usage_count(usage, "output_tokens"))

                elif event.type is SubprocessEventType.ERROR:
                    raise event.error or ProcessError("CLI process failed")

                elif event.type is SubprocessEventType.CLOSE:
                    if event.exit_code not in (0, None):
                        raise ProcessExitError(event.exit_code)
                    return
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.process.aclose()


class CliBackend:
    name = "cli"

    def __init__(
        self,
        settings: CliSettings,
        process_factory: Optional[ProcessFactory] = None,
    ) -> None:
        self.settings = settings
        self.process_factory = process_factory or self._default_process

    def _default_process(self) -> CliProcess:
        return CliProcess(
            command=self.settings.command,
            wrapper=self.settings.wrapper,
            timeout_ms=self.settings.timeout_ms,
            cwd=self.settings.cwd,
            queue_size=self.settings.queue_size,
        )

    async def open_stream(self, request: ChatRequest) -> CliEventStream:
        process = self.process_factory()
        model = cli_model_for(request.model)
        logger.info("Starting CLI request: model=%s session=%s", model, request.session_id)
        await process.start(render_prompt(request), model, request.session_id)
        return CliEventStream(process)

    async def complete(self, request: ChatRequest) -> ChatResult:
        """Run the CLI to completion and collect the whole reply.

        Raises:
            ProcessError: the child failed, timed out or could not start.
        """
        stream = await self.open_stream(request)
        translator = StreamTranslator(request.model)
        async with contextlib.aclosing(translator.translate(stream.events())) as downstream:
            async for event in downstream:
                if event.type is DownstreamEventType.ERROR:
                    raise ProcessError(event.error or "CLI process failed")
        session = translator.session
        return ChatResult(
            model=session.model,
            text=session.text,
            input_tokens=session.input_tokens,
            output_tokens=session.output_tokens,
        )
