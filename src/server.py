"""HTTP surface of the relay."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from src.llm.exceptions import LLMError
from src.logging_utils import RelayErrorHandler
from src.relay import PROXY_ERROR_BODY, STREAM_HEADERS, ChatRequest, Relay

DEFAULT_ROUTE = "/api/voidai"


def create_app(relay: Relay, route: str = DEFAULT_ROUTE) -> FastAPI:
    """Create the relay application around an already-built ``Relay``."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        yield
        await relay.close()

    app = FastAPI(title="Crumb chat relay", lifespan=lifespan)
    app.state.relay = relay

    @app.post(route)
    async def relay_chat(request: Request) -> Response:
        """
        Forward a chat request upstream and stream the reply back.

        Any failure before the first byte is relayed (unreadable body,
        unreachable upstream, upstream rejection) answers 500 with the
        generic proxy error envelope.
        """
        try:
            body = await request.json()
            ChatRequest.model_validate(body)
            upstream = await relay.open_stream(body)
        except (ValueError, RecursionError, httpx.HTTPError, LLMError) as e:
            RelayErrorHandler.log_error(e, "relay_chat", {"route": route})
            return JSONResponse(PROXY_ERROR_BODY, status_code=500)

        return StreamingResponse(
            relay.iter_body(upstream),
            status_code=200,
            headers=STREAM_HEADERS,
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
