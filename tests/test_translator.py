"""Tests for the upstream-to-downstream stream translator."""

from __future__ import annotations

from typing import AsyncIterator, Iterable

import httpx
import pytest

from maxproxy.core.exceptions import UpstreamError
from maxproxy.translator import DownstreamEvent, DownstreamEventType, StreamState, StreamTranslator
from maxproxy.upstream.events import UpstreamEvent

T = DownstreamEventType


async def _aiter(events: Iterable[UpstreamEvent], error: Exception | None = None) -> AsyncIterator[UpstreamEvent]:
    for event in events:
        yield event
    if error is not None:
        raise error


async def _collect(translator: StreamTranslator, source: AsyncIterator[UpstreamEvent]) -> list[DownstreamEvent]:
    return [event async for event in translator.translate(source)]


def _happy_path(deltas: list[str]) -> list[UpstreamEvent]:
    return [
        UpstreamEvent.message_start("claude-opus-4-20250514", 11),
        *[UpstreamEvent.content_delta(d) for d in deltas],
        UpstreamEvent.other(),
        UpstreamEvent.message_delta(7),
    ]


class TestStreamTranslator:
    """Tests for the translator state machine."""

    @pytest.mark.asyncio
    async def test_success_sequence(self):
        translator = StreamTranslator("opus")
        out = await _collect(translator, _aiter(_happy_path(["Hel", "lo", "!"])))

        assert [e.type for e in out] == [T.ROLE, T.CONTENT, T.CONTENT, T.CONTENT, T.FINISH, T.DONE]
        finish = out[-2]
        assert finish.finish_reason == "stop"
        assert finish.model == "claude-opus-4-20250514"
        assert finish.input_tokens == 11
        assert finish.output_tokens == 7
        assert translator.state is StreamState.COMPLETED
        assert translator.session.text == "Hello!"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "deltas",
        [["a"], ["a", "b"], ["x"] * 50, ["multi\nline", " ", "ünïcödé", "end"]],
    )
    async def test_role_exactly_once_before_first_content(self, deltas):
        out = await _collect(StreamTranslator("m"), _aiter(_happy_path(deltas)))
        types = [e.type for e in out]
        assert types.count(T.ROLE) == 1
        assert types.index(T.ROLE) < types.index(T.CONTENT)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "deltas",
        [["a"], ["Hello", ", ", "world"], [str(i) for i in range(100)], ["same", "same", "same"]],
    )
    async def test_content_concatenation_preserves_order(self, deltas):
        out = await _collect(StreamTranslator("m"), _aiter(_happy_path(deltas)))
        assert [e.text for e in out if e.type is T.CONTENT] == deltas
        assert "".join(e.text for e in out if e.type is T.CONTENT) == "".join(deltas)

    @pytest.mark.asyncio
    async def test_empty_stream_still_announces_role(self):
        out = await _collect(StreamTranslator("m"), _aiter([]))
        assert [e.type for e in out] == [T.ROLE, T.FINISH, T.DONE]

    @pytest.mark.asyncio
    async def test_message_start_stays_awaiting_first_delta(self):
        translator = StreamTranslator("m")
        assert translator.feed(UpstreamEvent.message_start("full-model", 3)) == []
        assert translator.state is StreamState.AWAITING_FIRST_DELTA
        translator.feed(UpstreamEvent.content_delta("x"))
        assert translator.state is StreamState.STREAMING

    @pytest.mark.asyncio
    async def test_message_delta_emits_nothing(self):
        translator = StreamTranslator("m")
        assert translator.feed(UpstreamEvent.message_delta(5)) == []
        assert translator.session.output_tokens == 5

    @pytest.mark.asyncio
    async def test_missing_counts_default_to_zero(self):
        out = await _collect(StreamTranslator("m"), _aiter([UpstreamEvent.content_delta("x")]))
        finish = [e for e in out if e.type is T.FINISH][0]
        assert finish.input_tokens == 0
        assert finish.output_tokens == 0
        assert finish.model == "m"

    @pytest.mark.asyncio
    async def test_transport_failure_mid_stream(self):
        source = _aiter(
            [UpstreamEvent.content_delta("partial")],
            error=UpstreamError("Anthropic API stream failed: ReadError"),
        )
        translator = StreamTranslator("m")
        out = await _collect(translator, source)
        assert [e.type for e in out] == [T.ROLE, T.CONTENT, T.ERROR]
        assert "ReadError" in out[-1].error
        assert translator.state is StreamState.FAILED

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_error_event(self):
        source = _aiter([], error=httpx.ReadError("reset"))
        out = await _collect(StreamTranslator("m"), source)
        assert [e.type for e in out] == [T.ERROR]
        assert "ReadError" in out[0].error

    @pytest.mark.asyncio
    async def test_upstream_error_event_terminates(self):
        source = _aiter(
            [
                UpstreamEvent.content_delta("a"),
                UpstreamEvent.failure("Anthropic stream error: Overloaded"),
                UpstreamEvent.content_delta("never"),
            ]
        )
        out = await _collect(StreamTranslator("m"), source)
        assert [e.type for e in out] == [T.ROLE, T.CONTENT, T.ERROR]

    @pytest.mark.asyncio
    async def test_no_done_after_error(self):
        out = await _collect(StreamTranslator("m"), _aiter([], error=UpstreamError("x")))
        assert T.DONE not in [e.type for e in out]
        assert T.FINISH not in [e.type for e in out]

    def test_terminal_outputs_fire_once(self):
        translator = StreamTranslator("m")
        assert [e.type for e in translator.finish()] == [T.ROLE, T.FINISH, T.DONE]
        assert translator.finish() == []
        assert translator.fail("late") == []
        assert translator.feed(UpstreamEvent.content_delta("late")) == []

    def test_fail_then_finish_is_noop(self):
        translator = StreamTranslator("m")
        assert [e.type for e in translator.fail("boom")] == [T.ERROR]
        assert translator.finish() == []

    @pytest.mark.asyncio
    async def test_upstream_iterator_is_closed_when_consumer_stops(self):
        closed = []

        async def source():
            try:
                for i in range(10):
                    yield UpstreamEvent.content_delta(str(i))
            finally:
                closed.append(True)

        downstream = StreamTranslator("m").translate(source())
        await downstream.__anext__()
        await downstream.__anext__()
        await downstream.aclose()
        assert closed == [True]
