"""Transport layer: SSE multiplexing and shutdown coordination."""

from .shutdown import ShutdownSignal
from .sse import (
    KEEPALIVE_FRAME,
    PING_FRAME,
    SSEMultiplexer,
    SSEResponse,
    StreamEndReason,
    format_data_frame,
)

__all__ = [
    "ShutdownSignal",
    "SSEMultiplexer",
    "SSEResponse",
    "StreamEndReason",
    "format_data_frame",
    "PING_FRAME",
    "KEEPALIVE_FRAME",
]
