"""Handler contract between the transport and business logic.

A handler receives the decoded request message and returns exactly one
of two results:
- Reply: a single message, sent back as a JSON response
- EventStream: a lazy sequence of events, sent back as SSE

Which request kinds produce which result is entirely the handler's
policy; the transport never inspects the payload kind.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from .protocol.events import EventMsg, TaskCompleteEvent
from .protocol.message import Message
from .session import SessionStream, iterate_events

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reply:
    """Single-message result."""

    message: Message


@dataclass(frozen=True)
class EventStream:
    """Streaming result: events delivered to the client as SSE."""

    events: AsyncIterator[EventMsg]


HandlerResult = Reply | EventStream


@runtime_checkable
class MessageHandler(Protocol):
    """Protocol for handling incoming HTTP messages.

    Implementations:
    - EchoHandler: echoes requests back (testing, default server mode)
    - AgentHandler: runs an agent conversation and streams its events

    Raise HandlerError (or any exception) to report a request-level
    failure; it is returned to the client as a 500 with the description.
    Implementations must be safe to call concurrently.
    """

    async def handle(self, request: Message) -> HandlerResult:
        """Handle a request, returning a reply or an event stream."""
        ...


class EchoHandler:
    """Echoes the request back.

    Requests whose kind is in ``stream_kinds`` are answered with an event
    stream (the request payload followed by TaskComplete); all others get
    the request message back as a single reply.
    """

    def __init__(self, stream_kinds: Iterable[str] = ()) -> None:
        self.stream_kinds = frozenset(stream_kinds)
        self.calls = 0

    async def handle(self, request: Message) -> HandlerResult:
        self.calls += 1
        logger.debug(f"Echoing request: id={request.id!r} kind={request.payload.kind}")

        if request.payload.kind not in self.stream_kinds:
            return Reply(request.model_copy())

        last_message = getattr(request.payload, "message", None)
        if not isinstance(last_message, str):
            last_message = None
        events = [request.payload, TaskCompleteEvent(last_agent_message=last_message)]
        return EventStream(
            SessionStream(
                iterate_events(events),
                request_id=request.id,
                routing_metadata=request.routing_metadata,
            )
        )
