"""Process-wide shutdown signal."""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)


class ShutdownSignal:
    """Write-once broadcast token observed by every in-flight stream.

    Created at server start and fired exactly once on an operator
    interrupt. Firing again is a no-op.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def fired(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def fire(self, reason: str = "shutdown") -> bool:
        """Fire the signal.

        Returns:
            True if this call fired it, False if it had already fired
        """
        if self._event.is_set():
            return False
        self._reason = reason
        self._event.set()
        logger.info(f"Shutdown signal fired: {reason}")
        return True

    async def wait(self) -> None:
        """Suspend until the signal fires."""
        await self._event.wait()
