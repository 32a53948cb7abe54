"""Session state tracked from inbound acknowledgments and events."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .config import DEFAULT_PORT
from .connection import ConnectionState


class SessionPhase(str, Enum):
    """Where the session is in its lifecycle."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    STUDIO_SELECTED = "studio_selected"


@dataclass
class SessionState:
    """Connection endpoint plus the login/studio gates.

    ``authenticated`` and ``studio_selected`` are written only by the
    dispatcher; everything else reads them.
    """

    host: str | None = None
    port: int = DEFAULT_PORT
    connection: ConnectionState = ConnectionState.DISCONNECTED

    authenticated: bool = False
    studio_selected: bool = False

    # Last known studio properties (id, name, show_id, ...)
    studio: dict[str, Any] = field(default_factory=dict)
    show_id: Any = None
    # Last known properties per line id, merged from line events
    lines: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def phase(self) -> SessionPhase:
        if self.connection != ConnectionState.CONNECTED:
            return SessionPhase(self.connection.value)
        if self.authenticated and self.studio_selected:
            return SessionPhase.STUDIO_SELECTED
        if self.authenticated:
            return SessionPhase.AUTHENTICATED
        return SessionPhase.CONNECTED

    def line_state(self, line: Any) -> str | None:
        """Last reported state of a line, or None if never reported."""
        state = self.lines.get(_line_key(line), {}).get("state")
        return state if isinstance(state, str) else None

    def track_line(self, line: Any, properties: dict[str, Any]) -> None:
        self.lines.setdefault(_line_key(line), {}).update(properties)

    def reset(self) -> None:
        """Forget everything learned over the connection."""
        self.authenticated = False
        self.studio_selected = False
        self.studio = {}
        self.show_id = None
        self.lines = {}


def _line_key(line: Any) -> str:
    if isinstance(line, float) and line.is_integer():
        line = int(line)
    return str(line)
