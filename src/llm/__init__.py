"""
Chat value types and streaming support for the relay client.

This package provides:
- Immutable message and transcript dataclasses
- SSE decoding of chat-completion streams
- Error types shared by relay and consumer
"""

from __future__ import annotations

from .exceptions import LLMError, ProviderError, StreamingError
from .models import (
    APOLOGY_MESSAGE,
    ChatMessage,
    MessageRole,
    StreamAccumulator,
    Transcript,
)

__all__ = [
    "APOLOGY_MESSAGE",
    "ChatMessage",
    # Exceptions
    "LLMError",
    "MessageRole",
    "ProviderError",
    "StreamAccumulator",
    "StreamingError",
    "Transcript",
]
