"""SDK Client - Connects to a Codex HTTP server.

Usage:
    async with HttpServerClient("http://localhost:8081") as client:
        async for message in client.stream(Message.new(UserMessageEvent(message="hi"))):
            print(message.payload.kind)
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass

import httpx

from .errors import CodexHttpError
from .protocol.message import Message, decode, encode

logger = logging.getLogger(__name__)

JSON_HEADERS = {"Content-Type": "application/json"}


@dataclass
class SSEFrame:
    """One dispatched SSE frame."""

    event: str | None = None
    data: str | None = None


async def iter_sse_frames(lines: AsyncIterator[str]) -> AsyncIterator[SSEFrame]:
    """Parse SSE lines into frames.

    Comment lines (``:`` prefix) are skipped; multi-line data is joined
    with newlines; a blank line dispatches the pending frame.
    """
    event: str | None = None
    data: list[str] = []

    async for line in lines:
        if not line:
            if data or event is not None:
                yield SSEFrame(event=event, data="\n".join(data) if data else None)
            event, data = None, []
            continue
        if line.startswith(":"):
            continue

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event = value
        elif name == "data":
            data.append(value)

    if data:
        yield SSEFrame(event=event, data="\n".join(data))


class HttpServerClient:
    """Async client for POST /messages and GET /health."""

    def __init__(
        self,
        base_url: str = "http://localhost:8081",
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self._http_client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout, read=None),  # No read timeout for SSE
            transport=transport,
        )

    async def __aenter__(self) -> HttpServerClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def health(self) -> bool:
        """Check server liveness."""
        response = await self._http_client.get("/health")
        return response.status_code == 200 and response.text == "OK"

    async def send(self, message: Message) -> Message:
        """Send a message expecting a single JSON reply.

        Raises:
            httpx.HTTPStatusError: On a 4xx/5xx response
            CodexHttpError: If the server answered with an event stream
        """
        response = await self._http_client.post(
            "/messages", content=encode(message), headers=JSON_HEADERS
        )
        response.raise_for_status()

        if response.headers.get("content-type", "").startswith("text/event-stream"):
            raise CodexHttpError("Server answered with an event stream; use stream()")
        return decode(response.content)

    async def stream(self, message: Message) -> AsyncIterator[Message]:
        """Send a message and yield every message the server returns.

        Ping and keep-alive frames are skipped. A non-streaming reply is
        yielded as a single message.
        """
        async with self._http_client.stream(
            "POST", "/messages", content=encode(message), headers=JSON_HEADERS
        ) as response:
            if response.is_error:
                await response.aread()
            response.raise_for_status()

            if not response.headers.get("content-type", "").startswith("text/event-stream"):
                yield decode(await response.aread())
                return

            async for frame in iter_sse_frames(response.aiter_lines()):
                if frame.event == "ping" or frame.data is None:
                    continue
                yield decode(frame.data)

    async def close(self) -> None:
        """Close the client."""
        await self._http_client.aclose()
