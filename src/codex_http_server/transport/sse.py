"""Server-Sent Events (SSE) multiplexer.

Merges three independent sources into one outbound byte stream per
connection:
- data events from the session stream
- a keep-alive ping on a fixed wall-clock schedule
- the process-wide shutdown signal (plus client disconnects)

Wire format:
    data: {"id":"42","kind":"AgentMessage","message":"hi"}\\n\\n
    event: ping\\ndata: ping\\n\\n
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterable, Awaitable, Callable, Mapping
from enum import Enum
from typing import Any

from starlette.requests import ClientDisconnect
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from ..errors import MessageEncodeError
from ..protocol.events import EventMsg
from ..protocol.message import Message, encode
from .shutdown import ShutdownSignal

logger = logging.getLogger(__name__)

DEFAULT_PING_INTERVAL = 15.0
DEFAULT_IDLE_TIMEOUT = 30.0

PING_FRAME = b"event: ping\ndata: ping\n\n"
KEEPALIVE_FRAME = b": keep-alive\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}

SendFrame = Callable[[bytes], Awaitable[None]]

_EXHAUSTED = object()


class StreamEndReason(str, Enum):
    """Why a multiplexed stream ended."""

    COMPLETED = "completed"
    UPSTREAM_ERROR = "upstream_error"
    SERIALIZATION_ERROR = "serialization_error"
    DISCONNECTED = "disconnected"
    SHUTDOWN = "shutdown"
    IDLE_TIMEOUT = "idle_timeout"


def format_data_frame(data: bytes) -> bytes:
    """Wrap a JSON payload in an SSE data frame."""
    return b"data: " + data + b"\n\n"


class SSEMultiplexer:
    """Per-connection select loop over data, ping ticks and shutdown.

    Data events are written in exactly the order the source yields them.
    Pings are interleaved on their own schedule and never reorder data.
    A failed write ends the loop without requesting another event.
    """

    def __init__(
        self,
        events: AsyncIterable[EventMsg],
        *,
        request_id: str | None = None,
        shutdown: ShutdownSignal | None = None,
        ping_interval: float | None = DEFAULT_PING_INTERVAL,
        idle_timeout: float | None = DEFAULT_IDLE_TIMEOUT,
    ) -> None:
        """Initialize the multiplexer.

        Args:
            events: Filtered event stream for this connection
            request_id: Id of the originating request, echoed on every data frame
            shutdown: Process-wide shutdown signal
            ping_interval: Seconds between ping frames (None disables pings)
            idle_timeout: Bound on a single write and on output silence (None disables)
        """
        self._events = aiter(events)
        self.request_id = request_id
        self._shutdown = shutdown
        self._ping_interval = ping_interval or None
        self._idle_timeout = idle_timeout or None

        self.events_sent = 0
        self.pings_sent = 0
        self.end_reason: StreamEndReason | None = None

    def _data_frame(self, event: EventMsg) -> bytes:
        message = Message(id=self.request_id, routing_metadata=None, payload=event)
        return format_data_frame(encode(message))

    async def _next_event(self) -> Any:
        try:
            return await anext(self._events)
        except StopAsyncIteration:
            return _EXHAUSTED

    async def _write(self, send: SendFrame, frame: bytes) -> StreamEndReason | None:
        """Write one frame; returns an end reason if the connection is gone."""
        try:
            if self._idle_timeout is None:
                await send(frame)
            else:
                await asyncio.wait_for(send(frame), self._idle_timeout)
        except TimeoutError:
            logger.info(
                f"Write stalled for {self._idle_timeout}s, closing request: {self.request_id!r}"
            )
            return StreamEndReason.IDLE_TIMEOUT
        except (OSError, ClientDisconnect) as e:
            logger.info(f"Client disconnected from request {self.request_id!r}: {e!r}")
            return StreamEndReason.DISCONNECTED
        return None

    def _next_deadline(self, deadline: float, now: float) -> float:
        # Missed ticks are skipped rather than sent in a burst
        deadline += self._ping_interval
        if deadline <= now:
            deadline = now + self._ping_interval
        return deadline

    def _wait_timeout(self, now: float, next_ping: float | None, last_write: float) -> float | None:
        candidates = []
        if next_ping is not None:
            candidates.append(next_ping - now)
        if self._idle_timeout is not None:
            candidates.append(last_write + self._idle_timeout - now)
        if not candidates:
            return None
        return max(0.0, min(candidates))

    async def run(
        self,
        send: SendFrame,
        disconnected: Callable[[], Awaitable[Any]] | None = None,
    ) -> StreamEndReason:
        """Drive the stream until a terminating condition.

        Args:
            send: Writes one encoded frame to the client
            disconnected: Completes when the client goes away

        Returns:
            The reason the stream ended
        """
        loop = asyncio.get_running_loop()
        now = loop.time()
        next_ping = now + self._ping_interval if self._ping_interval else None
        last_write = now

        data_task: asyncio.Task | None = None
        shutdown_task = (
            asyncio.ensure_future(self._shutdown.wait()) if self._shutdown is not None else None
        )
        disconnect_task = (
            asyncio.ensure_future(disconnected()) if disconnected is not None else None
        )

        logger.debug(f"Starting SSE stream for request: {self.request_id!r}")
        reason: StreamEndReason | None = None

        try:
            while reason is None:
                if self._shutdown is not None and self._shutdown.fired:
                    reason = StreamEndReason.SHUTDOWN
                    break

                if data_task is None:
                    data_task = asyncio.ensure_future(self._next_event())

                waiters: set[asyncio.Future] = {data_task}
                if shutdown_task is not None:
                    waiters.add(shutdown_task)
                if disconnect_task is not None:
                    waiters.add(disconnect_task)

                done, _ = await asyncio.wait(
                    waiters,
                    timeout=self._wait_timeout(loop.time(), next_ping, last_write),
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if disconnect_task is not None and disconnect_task in done:
                    reason = StreamEndReason.DISCONNECTED
                    break

                if data_task in done:
                    task, data_task = data_task, None
                    try:
                        item = task.result()
                    except Exception as e:
                        logger.error(f"Event stream failed for request {self.request_id!r}: {e}")
                        reason = StreamEndReason.UPSTREAM_ERROR
                        break

                    if item is _EXHAUSTED:
                        logger.debug(f"Data stream ended for request: {self.request_id!r}")
                        reason = StreamEndReason.COMPLETED
                        break

                    try:
                        frame = self._data_frame(item)
                    except MessageEncodeError as e:
                        logger.error(f"Failed to serialize response: {e}")
                        reason = StreamEndReason.SERIALIZATION_ERROR
                        break

                    reason = await self._write(send, frame)
                    if reason is not None:
                        break
                    self.events_sent += 1
                    last_write = loop.time()

                now = loop.time()
                if next_ping is not None and now >= next_ping:
                    reason = await self._write(send, PING_FRAME)
                    if reason is not None:
                        break
                    self.pings_sent += 1
                    last_write = loop.time()
                    next_ping = self._next_deadline(next_ping, now)
                elif self._idle_timeout is not None and now - last_write >= self._idle_timeout:
                    reason = await self._write(send, KEEPALIVE_FRAME)
                    if reason is not None:
                        break
                    last_write = loop.time()

                if shutdown_task is not None and shutdown_task in done:
                    reason = StreamEndReason.SHUTDOWN
        finally:
            for task in (data_task, shutdown_task, disconnect_task):
                if task is not None and not task.done():
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await task
            await self._close_events()

        self.end_reason = reason
        logger.info(f"SSE stream closed for request {self.request_id!r}: {reason.value}")
        return reason

    async def _close_events(self) -> None:
        aclose = getattr(self._events, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            logger.warning(f"Error closing event stream for request {self.request_id!r}: {e}")


class SSEResponse(Response):
    """Streaming response driven by an SSEMultiplexer.

    Writes frames straight to the ASGI ``send`` so a failed write is seen
    by the multiplexer, and watches ``receive`` for client disconnects.
    """

    media_type = "text/event-stream"

    def __init__(
        self,
        multiplexer: SSEMultiplexer,
        status_code: int = 200,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self.multiplexer = multiplexer
        self.status_code = status_code
        self.background = None
        self.init_headers({**SSE_HEADERS, **(headers or {})})

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await send(
                {
                    "type": "http.response.start",
                    "status": self.status_code,
                    "headers": self.raw_headers,
                }
            )
        except (OSError, ClientDisconnect) as e:
            logger.info(f"Client gone before stream start: {e!r}")
            await self.multiplexer._close_events()
            return

        async def send_frame(frame: bytes) -> None:
            await send({"type": "http.response.body", "body": frame, "more_body": True})

        async def wait_disconnect() -> None:
            while True:
                message = await receive()
                if message["type"] == "http.disconnect":
                    return

        reason = await self.multiplexer.run(send_frame, wait_disconnect)

        if reason not in (StreamEndReason.DISCONNECTED, StreamEndReason.IDLE_TIMEOUT):
            # Client may already be gone; nothing left to deliver either way
            with contextlib.suppress(OSError, ClientDisconnect):
                await send({"type": "http.response.body", "body": b"", "more_body": False})
