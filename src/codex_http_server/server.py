"""Server lifecycle.

Binds the listener, serves the application with uvicorn and coordinates
graceful shutdown:
1. Bind failure is reported before anything is served
2. An operator interrupt fires the shutdown signal first, so every
   in-flight stream ends on its next select iteration
3. uvicorn then stops accepting, drains open connections for up to
   ``shutdown_grace`` seconds and force-closes the rest
"""

from __future__ import annotations

import logging
import signal
import socket
from types import FrameType

import uvicorn

from .app import create_app
from .config import ServerSettings
from .errors import ServerBindError
from .handler import MessageHandler
from .transport.shutdown import ShutdownSignal

logger = logging.getLogger(__name__)


class _ShutdownAwareServer(uvicorn.Server):
    """uvicorn server that fires the shutdown signal on interrupt."""

    def __init__(self, config: uvicorn.Config, shutdown: ShutdownSignal) -> None:
        super().__init__(config)
        self._shutdown = shutdown

    def handle_exit(self, sig: int, frame: FrameType | None) -> None:
        try:
            name = signal.Signals(sig).name
        except ValueError:
            name = str(sig)
        if self._shutdown.fire(f"signal {name}"):
            logger.info("Shutdown signal received, starting graceful shutdown...")
        super().handle_exit(sig, frame)


class HttpServer:
    """HTTP server with SSE support."""

    def __init__(self, handler: MessageHandler, settings: ServerSettings | None = None) -> None:
        self.handler = handler
        self.settings = settings or ServerSettings()
        self.shutdown_signal = ShutdownSignal()
        self.bound_address: tuple[str, int] | None = None
        self._server: _ShutdownAwareServer | None = None

    @property
    def started(self) -> bool:
        return self._server is not None and self._server.started

    def bind(self) -> socket.socket:
        """Bind the listening socket.

        Raises:
            ServerBindError: If the address cannot be bound
        """
        host, port = self.settings.host, self.settings.port
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        try:
            sock = socket.create_server((host, port), family=family)
        except OSError as e:
            raise ServerBindError(f"Failed to bind to address {self.settings.addr}: {e}") from e

        self.bound_address = sock.getsockname()[:2]
        return sock

    async def run(self) -> None:
        """Serve until shutdown."""
        sock = self.bind()
        host, port = self.bound_address

        app = create_app(self.handler, settings=self.settings, shutdown=self.shutdown_signal)
        config = uvicorn.Config(
            app,
            log_config=None,
            lifespan="off",
            timeout_graceful_shutdown=self.settings.shutdown_grace,
        )
        self._server = _ShutdownAwareServer(config, self.shutdown_signal)

        logger.info(f"Codex HTTP server listening on {host}:{port}")
        logger.info("Endpoint: POST /messages")

        try:
            await self._server.serve(sockets=[sock])
        finally:
            sock.close()
            # uvicorn re-raises a captured interrupt once serve() returns
            self.shutdown_signal.fire("server stopped")
            logger.info("Server stopped gracefully")

    def shutdown(self, reason: str = "shutdown requested") -> None:
        """Programmatic interrupt: fire the signal and stop serving."""
        self.shutdown_signal.fire(reason)
        if self._server is not None:
            self._server.should_exit = True
