"""Health check endpoint."""

from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.routing import Route

from .messages import SHUTTING_DOWN


async def health_check(request: Request) -> PlainTextResponse:
    """Liveness check."""
    if request.app.state.shutdown.fired:
        return PlainTextResponse(SHUTTING_DOWN, status_code=503)
    return PlainTextResponse("OK")


health_routes = [
    Route("/health", health_check, methods=["GET"]),
]
