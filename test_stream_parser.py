#!/usr/bin/env python3
"""
Tests for SSE decoding: line splitting, event classification and delta
extraction.
"""

import json

import pytest

from src.llm.exceptions import StreamingError
from src.llm.models import StreamAccumulator
from src.llm.streaming.models import MalformedEventPolicy, SSEEventType
from src.llm.streaming.parser import (
    SSELineDecoder,
    StreamingParser,
    accumulate_event,
    extract_delta,
    fold_events,
    parse_event_line,
)


def delta_line(text: str) -> str:
    return "data: " + json.dumps({"choices": [{"delta": {"content": text}}]})


class TestSSELineDecoder:
    """Incremental bytes-to-lines decoding."""

    def test_complete_lines_are_returned(self):
        decoder = SSELineDecoder()
        assert decoder.feed(b"data: a\ndata: b\n") == ["data: a", "data: b"]
        assert decoder.flush() == []

    def test_partial_line_is_held_until_next_chunk(self):
        decoder = SSELineDecoder()
        assert decoder.feed(b"data: {\"cho") == []
        assert decoder.feed(b"ices\": []}\n") == ['data: {"choices": []}']

    def test_tail_without_newline_is_flushed(self):
        decoder = SSELineDecoder()
        assert decoder.feed(b"data: [DONE]") == []
        assert decoder.flush() == ["data: [DONE]"]

    def test_multibyte_character_split_across_chunks(self):
        encoded = "data: héllo\n".encode()
        split_at = encoded.index(b"\xc3") + 1  # inside the two-byte é
        decoder = SSELineDecoder()
        lines = decoder.feed(encoded[:split_at]) + decoder.feed(encoded[split_at:])
        assert lines == ["data: héllo"]


class TestParseEventLine:
    """Classification of individual lines."""

    def test_delta_line(self):
        event = parse_event_line(delta_line("Hi"))
        assert event.event_type is SSEEventType.DELTA
        assert event.data == {"choices": [{"delta": {"content": "Hi"}}]}

    def test_done_sentinel(self):
        event = parse_event_line("data: [DONE]")
        assert event.event_type is SSEEventType.COMPLETION
        assert event.data is None

    def test_done_sentinel_with_surrounding_whitespace(self):
        assert parse_event_line("data:  [DONE] \r").event_type is SSEEventType.COMPLETION

    @pytest.mark.parametrize("line", ["", ": keep-alive", "event: message", "data:{}", " data: {}"])
    def test_lines_without_exact_prefix_are_ignored(self, line):
        assert parse_event_line(line).event_type is SSEEventType.IGNORED

    def test_non_json_payload_is_malformed(self):
        event = parse_event_line("data: {not json")
        assert event.event_type is SSEEventType.MALFORMED
        assert event.payload == "{not json"
        assert "JSON decode error" in event.error


class TestExtractDelta:
    """Path choices[0].delta.content with empty-string fallback."""

    def test_content_is_returned(self):
        assert extract_delta({"choices": [{"delta": {"content": "X"}}]}) == "X"

    @pytest.mark.parametrize("data", [
        {},
        {"choices": []},
        {"choices": [{}]},
        {"choices": [{"delta": {}}]},
        {"choices": [{"delta": {"role": "assistant"}}]},
        {"choices": [{"delta": {"content": None}}]},
        {"choices": "nope"},
        [1, 2, 3],
        "text",
    ])
    def test_missing_content_is_empty(self, data):
        assert extract_delta(data) == ""


class TestStreamingParser:
    """Parser orchestration and malformed-event policy."""

    def test_events_do_not_depend_on_chunk_boundaries(self):
        body = "\n".join([delta_line("Hel"), delta_line("lo"), "data: [DONE]", ""]).encode()

        whole = StreamingParser()
        events_whole = whole.feed(body) + whole.finish()

        byte_by_byte = StreamingParser()
        events_split = []
        for i in range(len(body)):
            events_split.extend(byte_by_byte.feed(body[i:i + 1]))
        events_split.extend(byte_by_byte.finish())

        assert events_split == events_whole
        assert fold_events(events_whole).content == "Hello"

    def test_malformed_line_is_ignored_and_counted(self):
        parser = StreamingParser()
        body = "\n".join([delta_line("A"), "data: {oops", delta_line("B"), ""]).encode()
        events = parser.feed(body)

        assert fold_events(events).content == "AB"
        stats = parser.get_stats()
        assert stats["malformed_events"] == 1
        assert stats["delta_events"] == 2

    def test_raise_policy_surfaces_malformed_line(self):
        parser = StreamingParser(malformed_policy=MalformedEventPolicy.RAISE)
        with pytest.raises(StreamingError, match="SSE parse error"):
            parser.feed(b"data: {oops\n")

    def test_done_contributes_nothing(self):
        parser = StreamingParser()
        events = parser.feed(f"{delta_line('A')}\ndata: [DONE]\n".encode())
        assert [e.event_type for e in events] == [SSEEventType.DELTA, SSEEventType.COMPLETION]
        assert fold_events(events).content == "A"

    def test_accumulate_event_skips_non_delta_events(self):
        acc = StreamAccumulator(content="ab")
        assert accumulate_event(acc, parse_event_line("data: [DONE]")) is acc
        assert accumulate_event(acc, parse_event_line(": ping")) is acc
        assert accumulate_event(acc, parse_event_line(delta_line("c"))).content == "abc"

    def test_fold_continues_from_existing_accumulator(self):
        events = [parse_event_line(delta_line("c"))]
        assert fold_events(events, StreamAccumulator(content="ab")).content == "abc"

    def test_reset_clears_state(self):
        parser = StreamingParser()
        parser.feed(b"data: [DO")
        parser.reset()
        assert parser.finish() == []
        assert parser.get_stats()["total_chunks"] == 0

    @pytest.mark.asyncio
    async def test_parse_stream_over_async_source(self):
        async def chunks():
            yield delta_line("one ").encode()[:10]
            yield delta_line("one ").encode()[10:] + b"\n"
            yield delta_line("two").encode()  # no trailing newline

        parser = StreamingParser()
        events = [event async for event in parser.parse_stream(chunks())]
        assert fold_events(events).content == "one two"
