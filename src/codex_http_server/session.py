"""Session stream: turns a raw agent event feed into a terminating stream.

The raw feed exposes a single suspendable ``next_event()`` that may run
forever. The session stream:
- Drops incremental events (deltas, token counts) before they reach clients
- Ends after a terminal event (TaskComplete or Error)
- Converts a fetch failure into one in-band Error event, then ends
- Ends quietly when the feed is exhausted
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterable
from typing import Protocol, runtime_checkable

from .protocol.events import ErrorEvent, EventMsg, is_incremental, is_terminal

logger = logging.getLogger(__name__)

# Returns True for events that must not be forwarded downstream
EventFilter = Callable[[EventMsg], bool]


def suppress_incremental(event: EventMsg) -> bool:
    """Default filter: suppress deltas and token-count telemetry."""
    return is_incremental(event)


def suppress_nothing(event: EventMsg) -> bool:
    return False


@runtime_checkable
class EventSource(Protocol):
    """Raw application event feed.

    ``next_event`` suspends until an event is available. Raising
    StopAsyncIteration means the feed is exhausted; any other exception
    is a runtime failure.
    """

    async def next_event(self) -> EventMsg: ...


class IteratorEventSource:
    """Adapts an (async) iterable of events to the EventSource protocol."""

    def __init__(self, events: AsyncIterable[EventMsg] | Iterable[EventMsg]):
        if isinstance(events, AsyncIterable):
            self._aiter: AsyncIterator[EventMsg] | None = aiter(events)
            self._iter = None
        else:
            self._aiter = None
            self._iter = iter(events)

    async def next_event(self) -> EventMsg:
        if self._aiter is not None:
            return await anext(self._aiter)
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration from None

    async def aclose(self) -> None:
        if self._aiter is not None and hasattr(self._aiter, "aclose"):
            await self._aiter.aclose()


def iterate_events(events: AsyncIterable[EventMsg] | Iterable[EventMsg]) -> IteratorEventSource:
    """Wrap an iterable of events as an EventSource."""
    return IteratorEventSource(events)


class SessionStream:
    """Filtered, terminating view over one session's event feed.

    One instance exists per accepted streaming request. It is an async
    iterator of the events that should reach the client, in upstream
    order.
    """

    def __init__(
        self,
        source: EventSource,
        *,
        request_id: str | None = None,
        routing_metadata: str | None = None,
        suppress: EventFilter = suppress_incremental,
        observer: Callable[[EventMsg], None] | None = None,
    ) -> None:
        """Initialize the session stream.

        Args:
            source: Raw event feed
            request_id: Id of the originating request, echoed on output
            routing_metadata: Routing metadata of the originating request
            suppress: Predicate selecting events that are consumed but not forwarded
            observer: Called with every suppressed event
        """
        self.source = source
        self.request_id = request_id
        self.routing_metadata = routing_metadata
        self._suppress = suppress
        self._observer = observer

        self.terminated = False
        self.end_reason: str | None = None
        self.forwarded_count = 0
        self.suppressed_count = 0

    def __aiter__(self) -> SessionStream:
        return self

    async def __anext__(self) -> EventMsg:
        while not self.terminated:
            try:
                event = await self.source.next_event()
            except StopAsyncIteration:
                logger.debug(f"Event source exhausted for request: {self.request_id!r}")
                self._finish("exhausted")
                break
            except Exception as e:
                logger.error(f"Codex runtime error: {e}")
                return self._fail(e)

            try:
                suppressed = self._suppress(event)
            except Exception as e:
                logger.error(f"Event filter failed on {event.kind}: {e}")
                return self._fail(e)

            if suppressed:
                self.suppressed_count += 1
                self._observe(event)
                continue

            if is_terminal(event):
                self._finish(event.kind)

            self.forwarded_count += 1
            return event

        raise StopAsyncIteration

    def _finish(self, reason: str) -> None:
        self.terminated = True
        self.end_reason = reason

    def _fail(self, error: Exception) -> ErrorEvent:
        self._finish("runtime_error")
        self.forwarded_count += 1
        return ErrorEvent(message=f"Codex runtime error: {error}")

    def _observe(self, event: EventMsg) -> None:
        if self._observer is None:
            return
        # Observer failures are logged and never end the stream
        try:
            self._observer(event)
        except Exception:
            logger.exception(f"Event observer failed on {event.kind}")

    async def aclose(self) -> None:
        """Terminate the session and release the event source."""
        if not self.terminated:
            self._finish("closed")

        close = getattr(self.source, "aclose", None) or getattr(self.source, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result
