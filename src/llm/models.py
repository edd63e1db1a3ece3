"""
Core chat dataclasses.

This module provides the value types shared by the stream consumer:
- Message roles and messages
- The append-only transcript and its reducers
- The per-send stream accumulator
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

APOLOGY_MESSAGE = "Sorry, something went wrong."


class MessageRole(Enum):
    """OpenAI-compatible message roles."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ChatMessage:
    """OpenAI-compatible message structure."""
    role: MessageRole
    content: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class Transcript:
    """
    Ordered, append-only sequence of chat messages.

    Every reducer returns a new transcript; the receiver is never modified,
    so a transcript handed to a renderer can't change underneath it.
    """
    messages: tuple[ChatMessage, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.messages)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(self.messages)

    def __getitem__(self, index: int) -> ChatMessage:
        return self.messages[index]

    @property
    def last(self) -> ChatMessage | None:
        return self.messages[-1] if self.messages else None

    def append(self, message: ChatMessage) -> Transcript:
        """Return a transcript with ``message`` added at the end."""
        return Transcript(self.messages + (message,))

    def replace_last_content(self, content: str) -> Transcript:
        """
        Return a transcript whose last element is ``{assistant, content}``.

        Raises:
            IndexError: If the transcript is empty.
        """
        if not self.messages:
            raise IndexError("cannot replace the last message of an empty transcript")
        updated = ChatMessage(role=MessageRole.ASSISTANT, content=content)
        return Transcript(self.messages[:-1] + (updated,))

    def apply_delta(self, delta: str) -> Transcript:
        """Return a transcript with ``delta`` appended to the last message."""
        if not self.messages:
            raise IndexError("cannot apply a delta to an empty transcript")
        return self.replace_last_content(self.messages[-1].content + delta)

    def to_payload(self) -> list[dict[str, Any]]:
        """Wire form: ``[{"role": ..., "content": ...}, ...]``."""
        return [message.to_payload() for message in self.messages]


@dataclass(frozen=True)
class StreamAccumulator:
    """Text received so far for one send; only ever grows."""
    content: str = ""
    delta_count: int = 0

    def append(self, delta: str) -> StreamAccumulator:
        return replace(
            self, content=self.content + delta, delta_count=self.delta_count + 1
        )
