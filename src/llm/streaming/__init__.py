"""
Streaming functionality for chat-completion responses.

- Incremental bytes-to-lines decoding
- ``data:`` event classification
- Delta extraction and accumulation
"""

from .models import MalformedEventPolicy, SSEEventType, StreamEvent
from .parser import (
    DATA_PREFIX,
    DONE_SENTINEL,
    SSELineDecoder,
    StreamingParser,
    accumulate_event,
    extract_delta,
    fold_events,
    parse_event_line,
)

__all__ = [
    "DATA_PREFIX",
    "DONE_SENTINEL",
    "MalformedEventPolicy",
    "SSEEventType",
    "SSELineDecoder",
    "StreamEvent",
    "StreamingParser",
    "extract_delta",
    "accumulate_event",
    "fold_events",
    "parse_event_line",
]
