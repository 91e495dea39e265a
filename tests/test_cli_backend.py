"""Tests for the CLI backend and its event mapping."""

from __future__ import annotations

from typing import Any, Optional

import pytest

from maxproxy.backends import CliBackend, CliEventStream, render_prompt
from maxproxy.core.exceptions import ProcessError, ProcessExitError, ProcessTimeoutError
from maxproxy.process import SubprocessEvent, SubprocessEventType
from maxproxy.settings import CliSettings
from maxproxy.translator import DownstreamEvent, DownstreamEventType
from maxproxy.types import ChatRequest, Turn
from maxproxy.upstream.events import UpstreamEventType

E = SubprocessEventType


def delta(text: str) -> SubprocessEvent:
    return SubprocessEvent(
        E.CONTENT_DELTA,
        data={"type": "stream_event", "event": {"type": "content_block_delta", "delta": {"text": text}}},
    )


def assistant(text: str, model: str = "claude-opus-4-20250514", input_tokens: int = 12) -> SubprocessEvent:
    return SubprocessEvent(
        E.ASSISTANT,
        data={
            "type": "assistant",
            "message": {
                "model": model,
                "content": [{"type": "text", "text": text}],
                "usage": {"input_tokens": input_tokens},
            },
        },
    )


def result(text: str = "", usage: Optional[dict[str, Any]] = None, **extra: Any) -> SubprocessEvent:
    data: dict[str, Any] = {"type": "result", "subtype": "success", "result": text, **extra}
    if usage is not None:
        data["usage"] = usage
    return SubprocessEvent(E.RESULT, data=data)


class FakeProcess:
    """Stands in for CliProcess, replaying a fixed event list."""

    def __init__(self, events: list[SubprocessEvent]) -> None:
        self._events = events
        self.started_with: Optional[tuple] = None
        self.close_calls = 0

    async def start(self, prompt: str, model: str, session_id: Optional[str] = None) -> None:
        self.started_with = (prompt, model, session_id)

    async def events(self):
        for event in self._events:
            yield event

    async def aclose(self) -> None:
        self.close_calls += 1


def _request(model: str = "opus", **kwargs: Any) -> ChatRequest:
    return ChatRequest(model=model, turns=[Turn("user", "Hi")], **kwargs)


async def _collect(stream: CliEventStream) -> list:
    return [event async for event in stream.events()]


class TestRenderPrompt:
    def test_single_user_turn(self):
        assert render_prompt(_request()) == "Hi"

    def test_system_and_history(self):
        request = ChatRequest(
            model="opus",
            system="Be brief",
            turns=[Turn("user", "Q1"), Turn("assistant", "A1"), Turn("user", "Q2")],
        )
        assert render_prompt(request) == (
            "Be brief\n\nQ1\n\n<previous_response>\nA1\n</previous_response>\n\nQ2"
        )


class TestCliEventStream:
    @pytest.mark.asyncio
    async def test_deltas_win_over_assistant_and_result_text(self):
        process = FakeProcess(
            [
                SubprocessEvent(E.MESSAGE, data={"type": "system"}),
                delta("Hel"),
                delta("lo"),
                assistant("Hello"),
                result("Hello", usage={"input_tokens": 12, "output_tokens": 3}),
                SubprocessEvent.close(0),
            ]
        )
        events = await _collect(CliEventStream(process))
        texts = [e.text for e in events if e.type is UpstreamEventType.CONTENT_DELTA]
        assert texts == ["Hel", "lo"]
        assert events[-1].type is UpstreamEventType.MESSAGE_DELTA
        assert events[-1].output_tokens == 3
        assert process.close_calls == 1

    @pytest.mark.asyncio
    async def test_assistant_text_used_without_deltas(self):
        process = FakeProcess([assistant("Whole reply"), result("Whole reply"), SubprocessEvent.close(0)])
        events = await _collect(CliEventStream(process))
        assert [e.text for e in events if e.type is UpstreamEventType.CONTENT_DELTA] == ["Whole reply"]
        start = events[0]
        assert start.type is UpstreamEventType.MESSAGE_START
        assert start.model == "claude-opus-4-20250514"
        assert start.input_tokens == 12

    @pytest.mark.asyncio
    async def test_each_assistant_message_text_is_forwarded(self):
        """Test that text from every assistant message reaches the client in order."""
        process = FakeProcess(
            [
                assistant("Let me check."),
                assistant("The answer is 42."),
                result("The answer is 42."),
                SubprocessEvent.close(0),
            ]
        )
        events = await _collect(CliEventStream(process))
        texts = [e.text for e in events if e.type is UpstreamEventType.CONTENT_DELTA]
        assert texts == ["Let me check.", "The answer is 42."]

    @pytest.mark.asyncio
    async def test_result_text_used_as_last_resort(self):
        process = FakeProcess([result("Only result"), SubprocessEvent.close(0)])
        events = await _collect(CliEventStream(process))
        assert [e.text for e in events if e.type is UpstreamEventType.CONTENT_DELTA] == ["Only result"]

    @pytest.mark.asyncio
    async def test_raw_lines_are_ignored(self):
        process = FakeProcess([SubprocessEvent(E.RAW, raw="noise"), delta("x"), SubprocessEvent.close(0)])
        events = await _collect(CliEventStream(process))
        assert [e.type for e in events] == [UpstreamEventType.CONTENT_DELTA]

    @pytest.mark.asyncio
    async def test_error_result_raises(self):
        process = FakeProcess([result("rate limited", is_error=True), SubprocessEvent.close(1)])
        with pytest.raises(ProcessError, match="rate limited"):
            await _collect(CliEventStream(process))
        assert process.close_calls == 1

    @pytest.mark.asyncio
    async def test_error_event_raises_attached_error(self):
        process = FakeProcess(
            [delta("partial"), SubprocessEvent.failure(ProcessTimeoutError(100)), SubprocessEvent.close(-15)]
        )
        stream = CliEventStream(process)
        seen = []
        with pytest.raises(ProcessTimeoutError):
            async for event in stream.events():
                seen.append(event)
        assert [e.text for e in seen] == ["partial"]
        assert stream.closed

    @pytest.mark.asyncio
    async def test_non_zero_exit_raises(self):
        process = FakeProcess([SubprocessEvent.close(2)])
        with pytest.raises(ProcessExitError, match="code 2"):
            await _collect(CliEventStream(process))

    @pytest.mark.asyncio
    async def test_aclose_is_idempotent(self):
        process = FakeProcess([])
        stream = CliEventStream(process)
        await stream.aclose()
        await stream.aclose()
        assert process.close_calls == 1


class TestCliBackend:
    @pytest.mark.asyncio
    async def test_open_stream_starts_process_with_family_model(self):
        process = FakeProcess([SubprocessEvent.close(0)])
        backend = CliBackend(CliSettings(), process_factory=lambda: process)
        await backend.open_stream(_request("claude-opus-4-20250514", session_id="s-9"))
        assert process.started_with == ("Hi", "opus", "s-9")

    @pytest.mark.asyncio
    async def test_unknown_model_runs_sonnet(self):
        process = FakeProcess([SubprocessEvent.close(0)])
        backend = CliBackend(CliSettings(), process_factory=lambda: process)
        await backend.open_stream(_request("gpt-4o"))
        assert process.started_with[1] == "sonnet"

    @pytest.mark.asyncio
    async def test_complete_collects_text_and_usage(self):
        process = FakeProcess(
            [
                delta("Hello"),
                delta(" world"),
                assistant("Hello world", input_tokens=9),
                result("Hello world", usage={"input_tokens": 9, "output_tokens": 2}),
                SubprocessEvent.close(0),
            ]
        )
        backend = CliBackend(CliSettings(), process_factory=lambda: process)
        chat_result = await backend.complete(_request())
        assert chat_result.text == "Hello world"
        assert chat_result.model == "claude-opus-4-20250514"
        assert chat_result.input_tokens == 9
        assert chat_result.output_tokens == 2
        assert process.close_calls == 1

    @pytest.mark.asyncio
    async def test_complete_raises_on_failure(self):
        process = FakeProcess([SubprocessEvent.failure(ProcessTimeoutError(50)), SubprocessEvent.close(-15)])
        backend = CliBackend(CliSettings(), process_factory=lambda: process)
        with pytest.raises(ProcessError, match="timed out after 50ms"):
            await backend.complete(_request())

    @pytest.mark.asyncio
    async def test_complete_closes_translation_on_failure(self, monkeypatch):
        """Test that the downstream generator is closed before complete() raises."""
        closed = []

        class FailingTranslator:
            def __init__(self, model: str) -> None:
                self.model = model

            async def translate(self, events):
                try:
                    yield DownstreamEvent(DownstreamEventType.ERROR, error="boom")
                    yield DownstreamEvent(DownstreamEventType.DONE)
                finally:
                    closed.append(True)

        monkeypatch.setattr("maxproxy.backends.cli.StreamTranslator", FailingTranslator)
        process = FakeProcess([SubprocessEvent.close(0)])
        backend = CliBackend(CliSettings(), process_factory=lambda: process)
        with pytest.raises(ProcessError, match="boom"):
            await backend.complete(_request())
        assert closed == [True]
