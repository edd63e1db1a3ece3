"""
Stream consumer for the chat relay.

Owns the transcript of one chat session, posts it to the relay and folds the
streamed reply into the trailing assistant message as it arrives:

- Idle -> Sending: user message and an empty assistant placeholder appended
- Sending -> Streaming: relay answered, body is read chunk by chunk
- Streaming -> Idle: body exhausted, or an apology replaces the reply
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx

from src.config import Configuration
from src.llm.exceptions import StreamingError
from src.llm.models import (
    APOLOGY_MESSAGE,
    ChatMessage,
    MessageRole,
    StreamAccumulator,
    Transcript,
)
from src.llm.streaming.models import MalformedEventPolicy
from src.llm.streaming.parser import StreamingParser, accumulate_event
from src.logging_utils import ContextualLogger, operation_context

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."

TranscriptListener = Callable[[Transcript, bool], None]


class StreamConsumer:
    """
    Drives one request/response cycle at a time against the relay.

    ``listener`` is the rendering collaborator: it is called with the current
    transcript and busy flag after every state change.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        relay_url: str,
        *,
        system_prompt: str | None = DEFAULT_SYSTEM_PROMPT,
        listener: TranscriptListener | None = None,
        transcript: Transcript | None = None,
        malformed_policy: MalformedEventPolicy = MalformedEventPolicy.IGNORE_AND_CONTINUE,
    ) -> None:
        self.http_client = http_client
        self.relay_url = relay_url
        self.system_prompt = system_prompt
        self.listener = listener
        self.malformed_policy = malformed_policy
        self._transcript = transcript or Transcript()
        self._busy = False
        self._owns_client = False
        self._log = ContextualLogger({"component": "stream_consumer"})

    @classmethod
    def from_config(
        cls,
        configuration: Configuration,
        listener: TranscriptListener | None = None,
    ) -> StreamConsumer:
        """Build a consumer with its own HTTP client from YAML settings."""
        client_config = configuration.get_client_config()
        timeout = httpx.Timeout(
            None,
            connect=client_config["connect_timeout"],
            read=client_config["read_timeout"],
        )
        consumer = cls(
            httpx.AsyncClient(timeout=timeout),
            client_config["relay_url"],
            system_prompt=client_config["system_prompt"],
            listener=listener,
        )
        consumer._owns_client = True
        return consumer

    @property
    def transcript(self) -> Transcript:
        return self._transcript

    @property
    def busy(self) -> bool:
        return self._busy

    async def send_message(self, text: str) -> bool:
        """
        Send ``text`` and stream the reply into the transcript.

        Returns:
            False when the send was rejected (blank input, or a reply is
            still streaming); True once the cycle has finished, whether the
            reply arrived or was replaced by the apology.
        """
        # Checked and set before the first await: one reply in flight at most.
        if self._busy:
            self._log.debug("Send rejected while busy")
            return False
        if not text.strip():
            return False

        outgoing = self._transcript.append(
            ChatMessage(role=MessageRole.USER, content=text)
        )
        self._busy = True
        self._set_transcript(
            outgoing.append(ChatMessage(role=MessageRole.ASSISTANT, content=""))
        )

        try:
            await self._stream_reply(outgoing)
        except (
            httpx.HTTPError, httpx.InvalidURL, httpx.StreamError, StreamingError
        ) as e:
            self._log.error(
                "Streaming reply failed, showing apology",
                error_type=type(e).__name__,
                error_message=str(e),
            )
            self._set_transcript(
                self._transcript.replace_last_content(APOLOGY_MESSAGE)
            )
        finally:
            self._busy = False
            self._notify()

        return True

    def build_request_body(self, outgoing: Transcript) -> dict[str, Any]:
        """Relay request body: optional system prompt, then the transcript."""
        messages = outgoing.to_payload()
        if self.system_prompt:
            system = ChatMessage(role=MessageRole.SYSTEM, content=self.system_prompt)
            messages.insert(0, system.to_payload())
        return {"messages": messages}

    async def _stream_reply(self, outgoing: Transcript) -> None:
        body = self.build_request_body(outgoing)
        parser = StreamingParser(malformed_policy=self.malformed_policy)
        accumulator = StreamAccumulator()

        async with operation_context(
            "stream_reply", context={"relay_url": self.relay_url}
        ) as op_logger:
            async with self.http_client.stream(
                "POST", self.relay_url, json=body
            ) as response:
                if not response.is_success:
                    raise StreamingError(
                        f"Relay responded with status {response.status_code}",
                        status_code=response.status_code,
                    )

                async for event in parser.parse_stream(response.aiter_bytes()):
                    if not event.is_delta:
                        continue
                    accumulator = accumulate_event(accumulator, event)
                    self._set_transcript(
                        self._transcript.replace_last_content(accumulator.content)
                    )

            op_logger.info(
                "Reply assembled",
                characters=len(accumulator.content),
                **parser.get_stats(),
            )

    def _set_transcript(self, transcript: Transcript) -> None:
        self._transcript = transcript
        self._notify()

    def _notify(self) -> None:
        if self.listener is not None:
            self.listener(self._transcript, self._busy)

    async def close(self) -> None:
        """Close the HTTP client if this consumer created it."""
        if self._owns_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> StreamConsumer:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
