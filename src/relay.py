"""
Relay to the upstream chat-completions API.

Merges the caller's body over fixed model parameters, attaches the bearer
credential and hands back the upstream response so its body can be streamed
to the caller unchanged. One attempt per request, no retries, no state kept
between requests.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, ConfigDict

from src.config import Configuration
from src.llm.exceptions import ProviderError
from src.logging_utils import log_operation

PROXY_ERROR_BODY = {"error": "Proxy error"}

STREAM_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}

logger = structlog.get_logger(__name__)


class ChatRequest(BaseModel):
    """
    Relay request body.

    Only ``messages`` is required. Any other key is an upstream generation
    parameter and is forwarded as-is.
    """
    model_config = ConfigDict(extra="allow")

    messages: list[dict[str, Any]]


class Relay:
    """Forwards one chat request upstream and exposes its streaming body."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        upstream_url: str,
        model: str,
        api_key_provider: Callable[[], str | None],
    ) -> None:
        self.http_client = http_client
        self.upstream_url = upstream_url
        self.model = model
        self.api_key_provider = api_key_provider

    @classmethod
    def from_config(cls, configuration: Configuration) -> Relay:
        """Build a relay with a pooled HTTP client from YAML settings."""
        relay_config = configuration.get_relay_config()
        http_config = configuration.get_http_client_config()

        http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=http_config["connect_timeout"],
                read=http_config["read_timeout"],
                write=http_config["write_timeout"],
                pool=http_config["pool_timeout"],
            ),
            limits=httpx.Limits(
                max_connections=http_config["max_connections"],
                max_keepalive_connections=http_config["max_keepalive"],
                keepalive_expiry=http_config["keepalive_expiry"],
            ),
        )
        upstream_url = (
            relay_config["base_url"].rstrip("/") + relay_config["completions_path"]
        )
        return cls(
            http_client,
            upstream_url,
            relay_config["model"],
            lambda: configuration.llm_api_key,
        )

    def build_upstream_body(self, body: dict[str, Any]) -> dict[str, Any]:
        """Shallow merge: the caller's keys win over the fixed defaults."""
        return {"model": self.model, "stream": True, **body}

    def build_headers(self) -> dict[str, str]:
        # A missing key is left for the upstream to reject.
        api_key = self.api_key_provider()
        if not api_key:
            logger.warning("No upstream API key configured")
            return {}
        return {"Authorization": f"Bearer {api_key}"}

    @log_operation("relay_open_upstream")
    async def open_stream(self, body: dict[str, Any]) -> httpx.Response:
        """
        Send the request upstream and return the response with its body unread.

        Raises:
            httpx.HTTPError: If the upstream cannot be reached.
            ProviderError: If the upstream answers with a non-2xx status.
        """
        request = self.http_client.build_request(
            "POST",
            self.upstream_url,
            json=self.build_upstream_body(body),
            headers=self.build_headers(),
        )
        response = await self.http_client.send(request, stream=True)

        if not response.is_success:
            error_text = await response.aread()
            await response.aclose()
            raise ProviderError(
                f"Upstream error {response.status_code}: "
                f"{error_text.decode(errors='replace')[:200]}",
                model=self.model,
                status_code=response.status_code,
            )

        return response

    async def iter_body(self, response: httpx.Response) -> AsyncGenerator[bytes]:
        """Yield the upstream body chunk by chunk, closing it when done."""
        chunk_count = 0
        try:
            async for chunk in response.aiter_bytes():
                chunk_count += 1
                yield chunk
        except httpx.HTTPError as e:
            # Headers are already sent; re-raising aborts the response so the
            # caller sees a broken read instead of a clean end of stream.
            logger.error(
                "Upstream stream broke mid-response",
                error_type=type(e).__name__,
                error_message=str(e),
                chunks_relayed=chunk_count,
            )
            raise
        finally:
            await response.aclose()
            logger.info("Upstream stream closed", chunks_relayed=chunk_count)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.http_client.aclose()

    async def __aenter__(self) -> Relay:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
