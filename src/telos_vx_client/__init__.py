"""Client for the line protocol of a broadcast-studio call-management appliance.

One persistent TCP connection carries requests, their correlated replies and
unsolicited state-change events. The inbound text grammar is not part of this
package: pass a line parser when creating the client.

Usage:
    from telos_vx_client import ClientConfig, VXClient

    async with VXClient(ClientConfig(host="10.0.0.5"), parser=parse_line) as client:
        if await client.cc.login("user", "secret"):
            await client.studio.select_studio(1)
            print(await client.line.get_line(1))
"""

from .bus import Channel, EventBus
from .client import VXClient
from .config import ClientConfig
from .connection import ConnectionState
from .errors import (
    ArgumentError,
    ConfigurationError,
    ParseError,
    PreconditionError,
    ProtocolError,
    TransportError,
    VXError,
)
from .log import configure_watchers
from .protocol import (
    OPERATIONS,
    InboundMessage,
    LineParser,
    OperationSpec,
    Request,
    build_request,
    get_operation,
    stringify,
)
from .session import SessionPhase, SessionState

__version__ = "0.1.0"

__all__ = [
    "OPERATIONS",
    "ArgumentError",
    "Channel",
    "ClientConfig",
    "ConfigurationError",
    "ConnectionState",
    "EventBus",
    "InboundMessage",
    "LineParser",
    "OperationSpec",
    "ParseError",
    "PreconditionError",
    "ProtocolError",
    "Request",
    "SessionPhase",
    "SessionState",
    "TransportError",
    "VXClient",
    "VXError",
    "build_request",
    "configure_watchers",
    "get_operation",
    "stringify",
]
