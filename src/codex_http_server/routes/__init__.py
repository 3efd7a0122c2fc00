"""HTTP routes."""

from .health import health_routes
from .messages import message_routes

__all__ = ["health_routes", "message_routes"]
