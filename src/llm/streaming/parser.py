"""
SSE decoding for chat-completion streams.

Bytes are turned into lines by ``SSELineDecoder``, lines into
``StreamEvent`` values by ``parse_event_line`` and events into text by
``extract_delta``. ``StreamingParser`` strings the three together and keeps
counters for logging.
"""

from __future__ import annotations

import codecs
import json
from collections.abc import AsyncGenerator, AsyncIterable, Iterable
from typing import Any

import structlog

from ..exceptions import StreamingError
from ..models import StreamAccumulator
from .models import MalformedEventPolicy, SSEEventType, StreamEvent

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"

logger = structlog.get_logger(__name__)


class SSELineDecoder:
    """
    Incremental bytes-to-lines decoder.

    Multi-byte characters and lines split across chunk boundaries are held
    back until the rest arrives, so the lines produced do not depend on how
    the transport chunked the body.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> list[str]:
        """Decode ``chunk`` and return every line it completes."""
        text = self._pending + self._decoder.decode(chunk)
        *lines, self._pending = text.split("\n")
        return lines

    def flush(self) -> list[str]:
        """Return whatever is left once the byte source is exhausted."""
        text = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        return text.split("\n") if text else []


def parse_event_line(line: str) -> StreamEvent:
    """Classify one line of the stream."""
    if not line.startswith(DATA_PREFIX):
        return StreamEvent(event_type=SSEEventType.IGNORED, raw_line=line)

    payload = line[len(DATA_PREFIX):].strip()

    if payload == DONE_SENTINEL:
        return StreamEvent(
            event_type=SSEEventType.COMPLETION, raw_line=line, payload=payload
        )

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        return StreamEvent(
            event_type=SSEEventType.MALFORMED,
            raw_line=line,
            payload=payload,
            error=f"JSON decode error: {e}",
        )

    return StreamEvent(
        event_type=SSEEventType.DELTA, raw_line=line, payload=payload, data=data
    )


def extract_delta(data: Any) -> str:
    """Return ``choices[0].delta.content``, or ``""`` when any step is missing."""
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    choice = choices[0]
    if not isinstance(choice, dict):
        return ""
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


def accumulate_event(
    accumulator: StreamAccumulator, event: StreamEvent
) -> StreamAccumulator:
    """One fold step: delta events grow the accumulator, others leave it as is."""
    if not event.is_delta:
        return accumulator
    return accumulator.append(extract_delta(event.data))


def fold_events(
    events: Iterable[StreamEvent],
    accumulator: StreamAccumulator | None = None,
) -> StreamAccumulator:
    """Fold delta events into an accumulator, in order."""
    accumulator = accumulator or StreamAccumulator()
    for event in events:
        accumulator = accumulate_event(accumulator, event)
    return accumulator


class StreamingParser:
    """SSE parser with a configurable malformed-event policy and counters."""

    def __init__(
        self,
        malformed_policy: MalformedEventPolicy = MalformedEventPolicy.IGNORE_AND_CONTINUE,
    ):
        self.malformed_policy = malformed_policy
        self._decoder = SSELineDecoder()
        self.stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> dict[str, int]:
        return {
            'total_chunks': 0,
            'total_lines': 0,
            'delta_events': 0,
            'completion_events': 0,
            'malformed_events': 0,
            'ignored_lines': 0,
        }

    def feed(self, chunk: bytes) -> list[StreamEvent]:
        """Decode one chunk of the body into the events it completes."""
        self.stats['total_chunks'] += 1
        return self._parse_lines(self._decoder.feed(chunk))

    def finish(self) -> list[StreamEvent]:
        """Decode the tail left over after the body ended."""
        return self._parse_lines(self._decoder.flush())

    async def parse_stream(
        self, chunks: AsyncIterable[bytes]
    ) -> AsyncGenerator[StreamEvent]:
        """Yield events from an async byte source in arrival order."""
        async for chunk in chunks:
            for event in self.feed(chunk):
                yield event
        for event in self.finish():
            yield event

    def _parse_lines(self, lines: list[str]) -> list[StreamEvent]:
        events = []
        for line in lines:
            self.stats['total_lines'] += 1
            event = parse_event_line(line)

            if event.event_type is SSEEventType.MALFORMED:
                self.stats['malformed_events'] += 1
                self._handle_malformed(event)
                continue
            if event.event_type is SSEEventType.IGNORED:
                self.stats['ignored_lines'] += 1
                continue
            if event.event_type is SSEEventType.COMPLETION:
                self.stats['completion_events'] += 1
            else:
                self.stats['delta_events'] += 1
            events.append(event)
        return events

    def _handle_malformed(self, event: StreamEvent) -> None:
        if self.malformed_policy is MalformedEventPolicy.RAISE:
            raise StreamingError(f"SSE parse error: {event.error}")
        logger.debug(
            "Discarding malformed stream event",
            payload=event.payload,
            error=event.error,
        )

    def get_stats(self) -> dict[str, int]:
        """Get streaming statistics for monitoring."""
        return self.stats.copy()

    def reset(self) -> None:
        """Reset decoder state and counters for a new stream."""
        self._decoder = SSELineDecoder()
        self.stats = self._empty_stats()
