"""Codex HTTP Server Application.

Creates the Starlette ASGI application with all routes:
- POST /messages - Message dispatch (JSON reply or SSE stream)
- GET /health - Liveness check
"""

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.routing import Route

from .config import ServerSettings
from .handler import MessageHandler
from .routes import health_routes, message_routes
from .transport.shutdown import ShutdownSignal


def create_app(
    handler: MessageHandler,
    *,
    settings: ServerSettings | None = None,
    shutdown: ShutdownSignal | None = None,
) -> Starlette:
    """Create the HTTP server application.

    Args:
        handler: Business logic invoked for every POST /messages
        settings: Server settings (defaults if omitted)
        shutdown: Shutdown signal shared with the server lifecycle

    Returns:
        Configured Starlette application
    """
    routes: list[Route] = []
    routes.extend(health_routes)
    routes.extend(message_routes)

    # Development-grade CORS: tighten at the edge for production
    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        ),
    ]

    app = Starlette(routes=routes, middleware=middleware)
    app.state.handler = handler
    app.state.settings = settings or ServerSettings()
    app.state.shutdown = shutdown or ShutdownSignal()
    return app
