"""Message dispatch endpoint.

POST /messages decodes the body, invokes the handler and answers with
either a JSON message (Reply) or an SSE stream (EventStream).
"""

import logging

from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.routing import Route

from ..errors import MessageDecodeError, MessageEncodeError
from ..handler import EventStream, Reply
from ..protocol.message import decode, encode
from ..transport.sse import SSEMultiplexer, SSEResponse

logger = logging.getLogger(__name__)

SHUTTING_DOWN = "Server is shutting down"


async def handle_messages(request: Request) -> Response:
    """Handle POST /messages."""
    shutdown = request.app.state.shutdown
    if shutdown.fired:
        return PlainTextResponse(SHUTTING_DOWN, status_code=503)

    body = await request.body()
    try:
        message = decode(body)
    except MessageDecodeError as e:
        logger.warning(f"Rejected malformed message: {e}")
        return PlainTextResponse(f"Invalid message: {e}", status_code=400)

    logger.debug(f"Received HTTP request: id={message.id!r}")
    logger.debug(f"Event kind: {message.payload.kind}")

    handler = request.app.state.handler
    try:
        result = await handler.handle(message)
    except Exception as e:
        logger.error(f"Handler error: {e}")
        return PlainTextResponse(str(e), status_code=500)

    if isinstance(result, Reply):
        try:
            content = encode(result.message)
        except MessageEncodeError as e:
            logger.error(f"Failed to serialize response: {e}")
            return PlainTextResponse(str(e), status_code=500)
        return Response(content, media_type="application/json")

    if isinstance(result, EventStream):
        settings = request.app.state.settings
        multiplexer = SSEMultiplexer(
            result.events,
            request_id=message.id,
            shutdown=shutdown,
            ping_interval=settings.ping_interval,
            idle_timeout=settings.idle_timeout,
        )
        return SSEResponse(multiplexer)

    logger.error(f"Handler returned unsupported result: {type(result).__name__}")
    return PlainTextResponse("Handler returned an unsupported result", status_code=500)


message_routes = [
    Route("/messages", handle_messages, methods=["POST"]),
]
