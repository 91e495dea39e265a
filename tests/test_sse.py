"""Tests for the SSE module."""

import json

from maxproxy.core.sse import DONE_FRAME, SSEDecoder, SSEEvent, encode_sse_data


def _decode_all(chunks: list[bytes]) -> list[SSEEvent]:
    decoder = SSEDecoder()
    events: list[SSEEvent] = []
    for chunk in chunks:
        events.extend(decoder.feed(chunk))
    events.extend(decoder.flush())
    return events


PAYLOAD = (
    b'event: message_start\ndata: {"type":"message_start"}\n\n'
    b'event: content_block_delta\ndata: {"type":"content_block_delta","delta":{"text":"Hi"}}\n\n'
    b'event: message_stop\ndata: {"type":"message_stop"}\n\n'
)


class TestSSEDecoder:
    """Tests for incremental SSE decoding."""

    def test_decodes_single_chunk(self):
        events = _decode_all([PAYLOAD])
        assert [e.event for e in events] == ["message_start", "content_block_delta", "message_stop"]
        assert json.loads(events[1].data)["delta"]["text"] == "Hi"

    def test_split_at_line_boundary_matches_single_chunk(self):
        """Test that a split exactly at a line boundary yields identical events."""
        boundary = PAYLOAD.index(b"\n\n") + 2
        split = _decode_all([PAYLOAD[:boundary], PAYLOAD[boundary:]])
        assert split == _decode_all([PAYLOAD])

    def test_every_split_point_matches_single_chunk(self):
        expected = _decode_all([PAYLOAD])
        for cut in range(1, len(PAYLOAD)):
            assert _decode_all([PAYLOAD[:cut], PAYLOAD[cut:]]) == expected

    def test_multibyte_character_split_across_chunks(self):
        raw = 'data: {"text":"héllo ✓"}\n\n'.encode("utf-8")
        cut = raw.index("✓".encode("utf-8")) + 1
        events = _decode_all([raw[:cut], raw[cut:]])
        assert json.loads(events[0].data)["text"] == "héllo ✓"

    def test_crlf_line_endings(self):
        events = _decode_all([b"data: one\r\n\r\ndata: two\r\n\r\n"])
        assert [e.data for e in events] == ["one", "two"]

    def test_crlf_split_between_chunks(self):
        raw = b"data: a\r\ndata: b\r\n\r\n"
        cut = raw.index(b"\n")
        assert [e.data for e in _decode_all([raw[:cut], raw[cut:]])] == ["a\nb"]

    def test_multiple_data_lines_are_joined(self):
        events = _decode_all([b"data: a\ndata: b\n\n"])
        assert events[0].data == "a\nb"

    def test_flush_returns_unterminated_event(self):
        decoder = SSEDecoder()
        assert decoder.feed(b"data: tail") == []
        flushed = decoder.flush()
        assert [e.data for e in flushed] == ["tail"]
        assert decoder.flush() == []

    def test_blank_events_are_skipped(self):
        assert _decode_all([b"\n\n\n\ndata: x\n\n"])[0].data == "x"


class TestEncoding:
    def test_encode_sse_data(self):
        frame = encode_sse_data({"a": "é"})
        assert frame == 'data: {"a": "é"}\n\n'.encode("utf-8")

    def test_done_frame_literal(self):
        assert DONE_FRAME == b"data: [DONE]\n\n"

    def test_event_round_trips_through_decoder(self):
        event = SSEEvent(data='{"type":"ping"}', event="ping")
        assert _decode_all([event.encode()]) == [event]
