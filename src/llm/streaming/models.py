"""
Streaming-specific dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class SSEEventType(Enum):
    """Kinds of decoded server-sent-event lines."""
    DELTA = "delta"
    COMPLETION = "completion"
    MALFORMED = "malformed"
    IGNORED = "ignored"


class MalformedEventPolicy(Enum):
    """What to do with a ``data:`` line whose payload is not JSON."""
    IGNORE_AND_CONTINUE = "ignore_and_continue"
    RAISE = "raise"


@dataclass(frozen=True)
class StreamEvent:
    """One decoded line of the event stream."""
    event_type: SSEEventType
    raw_line: str
    payload: str | None = None
    data: Any = None
    error: str | None = None

    @property
    def is_delta(self) -> bool:
        return self.event_type is SSEEventType.DELTA
