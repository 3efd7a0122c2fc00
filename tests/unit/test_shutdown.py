"""Unit tests for the shutdown signal."""

import asyncio

import pytest

from codex_http_server.transport.shutdown import ShutdownSignal


class TestShutdownSignal:
    def test_initial_state(self) -> None:
        """A new signal has not fired and has no reason."""
        signal = ShutdownSignal()
        assert signal.fired is False
        assert signal.reason is None

    def test_fires_once(self) -> None:
        """Only the first fire() takes effect."""
        signal = ShutdownSignal()

        assert signal.fire("SIGINT") is True
        assert signal.fire("SIGTERM") is False
        assert signal.fired
        assert signal.reason == "SIGINT"

    @pytest.mark.asyncio
    async def test_wait_wakes_all_waiters(self) -> None:
        """Every waiter wakes when the signal fires."""
        signal = ShutdownSignal()
        waiters = [asyncio.create_task(signal.wait()) for _ in range(3)]
        await asyncio.sleep(0)
        assert not any(w.done() for w in waiters)

        signal.fire()
        await asyncio.wait_for(asyncio.gather(*waiters), timeout=1)

    @pytest.mark.asyncio
    async def test_wait_after_fire_returns_immediately(self) -> None:
        """Waiting on a fired signal returns at once."""
        signal = ShutdownSignal()
        signal.fire()
        await asyncio.wait_for(signal.wait(), timeout=1)
