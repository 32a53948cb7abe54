"""Error taxonomy for the client.

These exceptions never cross the public client boundary. They are raised
inside the request builder and the gate checks, caught by ``VXClient.call``,
logged, and turned into a falsy result.
"""

from __future__ import annotations


class VXError(Exception):
    """Base class for all client errors."""


class ConfigurationError(VXError):
    """A static operation model entry is malformed or unknown."""


class PreconditionError(VXError):
    """A login, studio or line-state gate is not satisfied."""


class ArgumentError(VXError):
    """A caller argument failed type, range or whitelist validation."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        argument: str | None = None,
        position: int | None = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.argument = argument
        self.position = position


class ProtocolError(VXError):
    """The far end rejected a request with an error acknowledgment."""


class TransportError(VXError):
    """The socket could not be opened, or is not connected."""


class ParseError(VXError):
    """An inbound line could not be turned into a message."""
