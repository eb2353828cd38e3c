"""Tests for SSE frame parsing."""

from __future__ import annotations

import sys
from typing import List

import pytest

from agentlink.client.framing import FrameParser, decode_frame
from agentlink.models import AgentStep, ProtocolEvent

from conftest import split_every, sse_frame, sse_stream

STREAM = sse_stream(
    ("confirmed", {"question": "héllo wörld ✓"}),
    ("create_agent", {"agent_name": "developer_agent"}),
    ("ask", {"agent": "developer_agent", "question": "Proceed?"}),
    ("end", {"result": "日本語 done"}),
)


def parse_chunks(chunks: List[bytes]) -> List[ProtocolEvent]:
    parser = FrameParser()
    events = []
    for chunk in chunks:
        events.extend(parser.feed(chunk))
    events.extend(parser.flush())
    return events


class TestDecodeFrame:
    """Test decoding of a single frame."""

    def test_valid_frame(self) -> None:
        event = decode_frame('data: {"step": "confirmed", "data": {"x": 1}}')
        assert event == ProtocolEvent(step=AgentStep.CONFIRMED, data={"x": 1})

    def test_no_space_after_prefix(self) -> None:
        event = decode_frame('data:{"step": "end"}')
        assert event is not None
        assert event.step == AgentStep.END
        assert event.data == {}

    def test_trailing_carriage_return(self) -> None:
        event = decode_frame('data: {"step": "end", "data": {}}\r')
        assert event is not None
        assert event.step == AgentStep.END

    def test_data_line_after_other_fields(self) -> None:
        event = decode_frame('event: message\ndata: {"step": "notice", "data": {"message": "hi"}}')
        assert event is not None
        assert event.data == {"message": "hi"}

    @pytest.mark.parametrize(
        "frame",
        [
            "",
            ": keepalive",
            "data:",
            "data: not json",
            "data: [1, 2, 3]",
            'data: {"data": {}}',
            'data: {"step": 42}',
            'data: {"step": "no_such_step", "data": {}}',
            pytest.param(
                'data: {"step": "notice", "data": {"n": ' + "9" * 5000 + "}}",
                id="huge-integer",
                marks=pytest.mark.skipif(
                    not hasattr(sys, "get_int_max_str_digits"), reason="no int digit limit"
                ),
            ),
            pytest.param("data: " + "[" * 100_000 + "]" * 100_000, id="deep-nesting"),
        ],
    )
    def test_dropped_frames(self, frame: str) -> None:
        assert decode_frame(frame) is None

    def test_non_object_data_becomes_empty(self) -> None:
        event = decode_frame('data: {"step": "notice", "data": "text"}')
        assert event is not None
        assert event.data == {}


class TestFrameParser:
    """Test incremental parsing across network reads."""

    def test_whole_stream_in_one_chunk(self) -> None:
        events = parse_chunks([STREAM])
        assert [e.step for e in events] == [
            AgentStep.CONFIRMED,
            AgentStep.CREATE_AGENT,
            AgentStep.ASK,
            AgentStep.END,
        ]
        assert events[0].data["question"] == "héllo wörld ✓"
        assert events[3].data["result"] == "日本語 done"

    def test_every_split_point(self) -> None:
        """Splitting the stream at any byte offset yields the same events."""
        expected = parse_chunks([STREAM])
        for offset in range(1, len(STREAM)):
            assert parse_chunks([STREAM[:offset], STREAM[offset:]]) == expected, offset

    def test_single_byte_chunks(self) -> None:
        assert parse_chunks(split_every(STREAM, 1)) == parse_chunks([STREAM])

    def test_split_inside_multibyte_character(self) -> None:
        frame = sse_frame("notice", {"message": "✓"})
        cut = frame.index("✓".encode("utf-8")) + 1
        parser = FrameParser()
        assert parser.feed(frame[:cut]) == []
        events = parser.feed(frame[cut:])
        assert events[0].data["message"] == "✓"

    def test_noise_between_frames_is_skipped(self) -> None:
        payload = (
            b": keepalive\n\n"
            + sse_frame("confirmed")
            + b"data: {broken\n\n"
            + b'data: {"step": "mystery"}\n\n'
            + sse_frame("end")
        )
        events = parse_chunks(split_every(payload, 7))
        assert [e.step for e in events] == [AgentStep.CONFIRMED, AgentStep.END]

    def test_incomplete_frame_stays_pending(self) -> None:
        parser = FrameParser()
        assert parser.feed(b'data: {"step": "confirmed"') == []
        assert parser.pending == 'data: {"step": "confirmed"'

    def test_tail_without_delimiter_is_flushed(self) -> None:
        parser = FrameParser()
        assert parser.feed(sse_frame("confirmed") + b'data: {"step": "end"}') != []
        events = parser.flush()
        assert [e.step for e in events] == [AgentStep.END]
        assert parser.pending == ""

    def test_blank_tail_flushes_nothing(self) -> None:
        parser = FrameParser()
        parser.feed(sse_frame("end") + b"\n")
        assert parser.flush() == []
