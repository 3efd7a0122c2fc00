"""Codex HTTP Server - HTTP transport with Server-Sent Events streaming.

Accepts JSON messages on POST /messages and answers with either a single
JSON message or an SSE stream of events, depending on what the handler
returns.

Example:
    class MyHandler:
        async def handle(self, request: Message) -> HandlerResult:
            return Reply(request)

    asyncio.run(HttpServer(MyHandler(), ServerSettings(port=8080)).run())
"""

from .app import create_app
from .config import ServerSettings
from .errors import (
    CodexHttpError,
    ConfigError,
    HandlerError,
    MessageDecodeError,
    MessageEncodeError,
    ServerBindError,
)
from .handler import EchoHandler, EventStream, HandlerResult, MessageHandler, Reply
from .protocol import EventMsg, Message, decode, encode
from .server import HttpServer
from .session import EventSource, SessionStream, iterate_events
from .transport import ShutdownSignal, SSEMultiplexer, SSEResponse, StreamEndReason

__all__ = [
    "create_app",
    "HttpServer",
    "ServerSettings",
    # Handler contract
    "MessageHandler",
    "HandlerResult",
    "Reply",
    "EventStream",
    "EchoHandler",
    # Protocol
    "EventMsg",
    "Message",
    "encode",
    "decode",
    # Streaming
    "EventSource",
    "SessionStream",
    "iterate_events",
    "SSEMultiplexer",
    "SSEResponse",
    "StreamEndReason",
    "ShutdownSignal",
    # Errors
    "CodexHttpError",
    "ConfigError",
    "HandlerError",
    "MessageDecodeError",
    "MessageEncodeError",
    "ServerBindError",
]
