"""
Error types for relay and streaming operations.

Each error carries the provider/model context it happened under so that
structured logs can tell an upstream rejection apart from a broken stream.
"""

from __future__ import annotations


class LLMError(Exception):
    """Base LLM error with rich context."""

    def __init__(
        self,
        message: str,
        provider: str = "voidai",
        model: str = "unknown",
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.status_code = status_code
        self.response_data = response_data or {}


class ProviderError(LLMError):
    """Upstream provider rejected the request or could not be reached."""
    pass


class StreamingError(LLMError):
    """Streaming-specific errors (missing body, bad status, broken read)."""
    pass
