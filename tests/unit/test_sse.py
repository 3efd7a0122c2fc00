"""Unit tests for the SSE multiplexer.

Drives SSEMultiplexer.run() with a recording send function and scripted
feeds, checking ordering, ping interleaving, disconnects and shutdown.
SSEResponse is driven through a fake ASGI receive/send pair.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from typing import Any

import pytest

from codex_http_server.protocol.events import AgentMessageEvent, EventMsg, TaskCompleteEvent
from codex_http_server.transport.shutdown import ShutdownSignal
from codex_http_server.transport.sse import (
    KEEPALIVE_FRAME,
    PING_FRAME,
    SSEMultiplexer,
    SSEResponse,
    StreamEndReason,
    format_data_frame,
)

# =============================================================================
# Helpers
# =============================================================================


class ScriptedFeed:
    """Async iterator over scripted events that counts pulls."""

    def __init__(self, events: Sequence[EventMsg], delay: float = 0.0):
        self._events = list(events)
        self._delay = delay
        self.pulled = 0
        self.closed = False

    def __aiter__(self) -> ScriptedFeed:
        return self

    async def __anext__(self) -> EventMsg:
        if self.pulled >= len(self._events):
            raise StopAsyncIteration
        if self._delay:
            await asyncio.sleep(self._delay)
        event = self._events[self.pulled]
        self.pulled += 1
        return event

    async def aclose(self) -> None:
        self.closed = True


class SilentFeed:
    """Feed that never produces an event."""

    def __init__(self) -> None:
        self.closed = False

    def __aiter__(self) -> SilentFeed:
        return self

    async def __anext__(self) -> EventMsg:
        await asyncio.Event().wait()
        raise AssertionError("unreachable")

    async def aclose(self) -> None:
        self.closed = True


class RecordingSend:
    """Records frames; optionally fails on the k-th data frame."""

    def __init__(self, fail_on_data_frame: int | None = None):
        self.frames: list[bytes] = []
        self._fail_on = fail_on_data_frame
        self._data_writes = 0

    async def __call__(self, frame: bytes) -> None:
        if frame.startswith(b"data: {"):
            self._data_writes += 1
            if self._fail_on is not None and self._data_writes == self._fail_on:
                raise ConnectionResetError("client went away")
        self.frames.append(frame)

    @property
    def data(self) -> list[dict]:
        return [
            json.loads(frame[len(b"data: ") : -2])
            for frame in self.frames
            if frame.startswith(b"data: {")
        ]

    @property
    def pings(self) -> int:
        return sum(1 for frame in self.frames if frame == PING_FRAME)


def messages(n: int) -> list[EventMsg]:
    return [AgentMessageEvent(message=f"m{i}") for i in range(n)]


# =============================================================================
# Frame format
# =============================================================================


class TestFrames:
    """Tests for SSE wire frames."""

    def test_data_frame(self) -> None:
        """Data frames are a data line followed by a blank line."""
        assert format_data_frame(b'{"kind":"X"}') == b'data: {"kind":"X"}\n\n'

    def test_ping_frame(self) -> None:
        """Pings are a named event with a fixed body."""
        assert PING_FRAME == b"event: ping\ndata: ping\n\n"

    def test_keepalive_is_comment(self) -> None:
        """Keep-alives are SSE comments that clients ignore."""
        assert KEEPALIVE_FRAME.startswith(b":")


# =============================================================================
# Data delivery
# =============================================================================


class TestDataDelivery:
    """Events are delivered in order, wrapped with the request id."""

    @pytest.mark.asyncio
    async def test_delivers_all_events_then_completes(self) -> None:
        """Every event is written, then the stream completes."""
        feed = ScriptedFeed(messages(5) + [TaskCompleteEvent()])
        send = RecordingSend()
        mux = SSEMultiplexer(feed, request_id="42", ping_interval=None)

        reason = await mux.run(send)

        assert reason is StreamEndReason.COMPLETED
        assert [d["message"] for d in send.data[:5]] == [f"m{i}" for i in range(5)]
        assert send.data[-1]["kind"] == "TaskComplete"
        assert mux.events_sent == 6
        assert feed.closed

    @pytest.mark.asyncio
    async def test_request_id_on_every_frame_without_routing(self) -> None:
        """Each frame echoes the request id and omits routing metadata."""
        send = RecordingSend()
        mux = SSEMultiplexer(ScriptedFeed(messages(3)), request_id="req-1", ping_interval=None)

        await mux.run(send)

        assert all(d["id"] == "req-1" for d in send.data)
        assert all("routing_metadata" not in d for d in send.data)

    @pytest.mark.asyncio
    async def test_no_id_when_request_had_none(self) -> None:
        """Requests without an id produce frames without one."""
        send = RecordingSend()

        await SSEMultiplexer(ScriptedFeed(messages(1)), ping_interval=None).run(send)

        assert send.data == [{"kind": "AgentMessage", "message": "m0"}]

    @pytest.mark.asyncio
    async def test_ordering_with_interleaved_pings(self) -> None:
        """With pings removed, output equals the upstream events in order."""
        upstream = messages(10)
        send = RecordingSend()
        mux = SSEMultiplexer(ScriptedFeed(upstream, delay=0.02), ping_interval=0.005)

        reason = await mux.run(send)

        assert reason is StreamEndReason.COMPLETED
        assert send.pings >= 1
        assert mux.pings_sent == send.pings
        assert [d["message"] for d in send.data] == [e.message for e in upstream]

    @pytest.mark.asyncio
    async def test_pings_fire_while_data_flows(self) -> None:
        """A busy data source does not starve the ticker."""
        send = RecordingSend()
        feed = ScriptedFeed(messages(100), delay=0.002)
        mux = SSEMultiplexer(feed, ping_interval=0.02)

        await mux.run(send)

        assert len(send.data) == 100
        assert send.pings >= 2

    @pytest.mark.asyncio
    async def test_raw_iterator_failure_ends_stream(self) -> None:
        """An exception from an unwrapped iterator ends the stream."""

        async def broken():
            yield AgentMessageEvent(message="ok")
            raise RuntimeError("boom")

        send = RecordingSend()
        reason = await SSEMultiplexer(broken(), ping_interval=None).run(send)

        assert reason is StreamEndReason.UPSTREAM_ERROR
        assert len(send.data) == 1


# =============================================================================
# Failure and termination paths
# =============================================================================


class TestTermination:
    """Write failures, serialization errors, shutdown and idle handling."""

    @pytest.mark.asyncio
    async def test_write_failure_stops_pulling_events(self) -> None:
        """After a failed write no further event is requested."""
        feed = ScriptedFeed(messages(10))
        send = RecordingSend(fail_on_data_frame=3)
        mux = SSEMultiplexer(feed, ping_interval=None)

        reason = await mux.run(send)

        assert reason is StreamEndReason.DISCONNECTED
        assert len(send.data) == 2
        assert feed.pulled == 3
        assert feed.closed

    @pytest.mark.asyncio
    async def test_serialization_failure_closes_connection(self) -> None:
        """An event that cannot be encoded ends the stream unwritten."""
        feed = ScriptedFeed([EventMsg(kind="Custom", blob=object()), *messages(3)])
        send = RecordingSend()

        reason = await SSEMultiplexer(feed, ping_interval=None).run(send)

        assert reason is StreamEndReason.SERIALIZATION_ERROR
        assert send.frames == []
        assert feed.pulled == 1
        assert feed.closed

    @pytest.mark.asyncio
    async def test_event_cannot_replace_request_id(self) -> None:
        """An event carrying an id field is never written over the request id."""
        feed = ScriptedFeed(
            [AgentMessageEvent(message="ok"), EventMsg.model_construct(kind="ToolCall", id="c-7")]
        )
        send = RecordingSend()

        reason = await SSEMultiplexer(feed, request_id="42", ping_interval=None).run(send)

        assert reason is StreamEndReason.SERIALIZATION_ERROR
        assert [d["id"] for d in send.data] == ["42"]

    @pytest.mark.asyncio
    async def test_shutdown_already_fired(self) -> None:
        """A stream started after shutdown writes nothing."""
        shutdown = ShutdownSignal()
        shutdown.fire("test")
        feed = ScriptedFeed(messages(3))
        send = RecordingSend()

        reason = await SSEMultiplexer(feed, shutdown=shutdown).run(send)

        assert reason is StreamEndReason.SHUTDOWN
        assert send.frames == []
        assert feed.closed

    @pytest.mark.asyncio
    async def test_shutdown_interrupts_silent_stream(self) -> None:
        """Shutdown ends a stream that is waiting on its source."""
        shutdown = ShutdownSignal()
        feed = SilentFeed()
        send = RecordingSend()
        mux = SSEMultiplexer(feed, shutdown=shutdown, ping_interval=0.01)

        loop = asyncio.get_running_loop()
        loop.call_later(0.1, shutdown.fire, "test")
        reason = await asyncio.wait_for(mux.run(send), timeout=2)

        assert reason is StreamEndReason.SHUTDOWN
        assert send.pings >= 2
        assert send.data == []
        assert feed.closed

    @pytest.mark.asyncio
    async def test_client_disconnect_signal(self) -> None:
        """A completed disconnect waiter ends the stream."""
        gone = asyncio.Event()
        feed = SilentFeed()
        mux = SSEMultiplexer(feed, ping_interval=None)

        asyncio.get_running_loop().call_later(0.05, gone.set)
        reason = await asyncio.wait_for(mux.run(RecordingSend(), gone.wait), timeout=2)

        assert reason is StreamEndReason.DISCONNECTED
        assert feed.closed

    @pytest.mark.asyncio
    async def test_ping_write_failure_disconnects(self) -> None:
        """A failed ping write is treated as a disconnect."""

        async def send(frame: bytes) -> None:
            raise BrokenPipeError("closed")

        feed = SilentFeed()
        reason = await asyncio.wait_for(
            SSEMultiplexer(feed, ping_interval=0.01).run(send), timeout=2
        )

        assert reason is StreamEndReason.DISCONNECTED
        assert feed.closed

    @pytest.mark.asyncio
    async def test_stalled_write_hits_idle_timeout(self) -> None:
        """A write that never completes is abandoned after the idle timeout."""

        async def stalled_send(frame: bytes) -> None:
            await asyncio.Event().wait()

        feed = ScriptedFeed(messages(2))
        mux = SSEMultiplexer(feed, ping_interval=None, idle_timeout=0.05)

        reason = await asyncio.wait_for(mux.run(stalled_send), timeout=2)

        assert reason is StreamEndReason.IDLE_TIMEOUT
        assert feed.pulled == 1

    @pytest.mark.asyncio
    async def test_keepalive_comment_when_silent(self) -> None:
        """Without pings, a silent stream still emits keep-alive comments."""
        shutdown = ShutdownSignal()
        send = RecordingSend()
        mux = SSEMultiplexer(
            SilentFeed(), shutdown=shutdown, ping_interval=None, idle_timeout=0.03
        )

        asyncio.get_running_loop().call_later(0.15, shutdown.fire, "test")
        await asyncio.wait_for(mux.run(send), timeout=2)

        assert KEEPALIVE_FRAME in send.frames
        assert send.pings == 0


# =============================================================================
# SSEResponse (ASGI)
# =============================================================================


class TestSSEResponse:
    """SSEResponse wires the multiplexer to ASGI receive/send."""

    @pytest.mark.asyncio
    async def test_disconnect_ends_stream_without_final_body(self) -> None:
        """http.disconnect ends the stream and no closing body is sent."""
        sent: list[dict[str, Any]] = []

        async def receive() -> dict[str, Any]:
            return {"type": "http.disconnect"}

        async def send(message: dict[str, Any]) -> None:
            sent.append(message)

        feed = SilentFeed()
        mux = SSEMultiplexer(feed, request_id="1", ping_interval=None)

        await asyncio.wait_for(SSEResponse(mux)({"type": "http"}, receive, send), timeout=2)

        assert mux.end_reason is StreamEndReason.DISCONNECTED
        assert sent[0]["type"] == "http.response.start"
        assert sent[0]["status"] == 200
        assert all(m.get("more_body", True) for m in sent[1:])
        assert feed.closed

    @pytest.mark.asyncio
    async def test_completed_stream_sends_final_body(self) -> None:
        """A completed stream ends the response with an empty final body."""
        sent: list[dict[str, Any]] = []

        async def receive() -> dict[str, Any]:
            await asyncio.Event().wait()
            raise AssertionError("unreachable")

        async def send(message: dict[str, Any]) -> None:
            sent.append(message)

        mux = SSEMultiplexer(ScriptedFeed(messages(2)), request_id="1", ping_interval=None)

        await asyncio.wait_for(SSEResponse(mux)({"type": "http"}, receive, send), timeout=2)

        headers = dict(sent[0]["headers"])
        assert headers[b"content-type"].startswith(b"text/event-stream")
        assert headers[b"x-accel-buffering"] == b"no"
        bodies = [m["body"] for m in sent[1:-1]]
        assert [json.loads(b[len(b"data: ") : -2])["message"] for b in bodies] == ["m0", "m1"]
        assert sent[-1] == {"type": "http.response.body", "body": b"", "more_body": False}
        assert mux.end_reason is StreamEndReason.COMPLETED
