"""Exception hierarchy for the HTTP server.

Each error maps to one layer of the request path:
- MessageDecodeError: malformed inbound body (400)
- HandlerError: business-logic failure reported by a handler (500)
- MessageEncodeError: outbound message cannot be serialized
- ServerBindError / ConfigError: fatal at startup
"""


class CodexHttpError(Exception):
    """Base class for all server errors."""


class MessageDecodeError(CodexHttpError):
    """Inbound bytes are not a valid message envelope."""


class MessageEncodeError(CodexHttpError):
    """A message could not be serialized to JSON."""


class HandlerError(CodexHttpError):
    """A handler rejected or failed to process a request.

    The string form is returned to the client as the error description.
    """


class ServerBindError(CodexHttpError):
    """The listener could not be bound to the configured address."""


class ConfigError(CodexHttpError):
    """Invalid server configuration."""
