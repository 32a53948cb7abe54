"""Typed per-namespace wrappers around ``VXClient.call``.

One async method per catalog entry. Each resolves to the reply properties,
``True`` for operations that expect no reply, or ``None`` on failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .client import VXClient


def _args(*values: Any) -> tuple[Any, ...]:
    """Drop trailing ``None`` values so optional arguments stay unset."""
    values_list = list(values)
    while values_list and values_list[-1] is None:
        values_list.pop()
    return tuple(values_list)


@dataclass
class CallControlAPI:
    """Call controller operations (``cc`` namespace)."""

    _client: VXClient

    async def studio_list(self) -> dict[str, Any] | None:
        return await self._client.call("studio_list")

    async def date(self) -> dict[str, Any] | None:
        return await self._client.call("date")

    async def get_server(self) -> dict[str, Any] | None:
        """Server id, version, capabilities and protocol version.

        Available before login.
        """
        return await self._client.call("get_server")

    async def set_mode(self, mode: str | None = None) -> bool | None:
        """Switch the client mode; ``TALENT`` (default) or ``PRODUCER``."""
        return await self._client.call("set_mode", *_args(mode))

    async def login(self, username: str | None = None, password: str | None = None) -> bool | None:
        """Log in. Resolves True when the far end reports ``logged=TRUE``."""
        return await self._client.call("login", *_args(username, password))

    async def ping(self) -> bool | None:
        return await self._client.call("ping")


@dataclass
class StudioAPI:
    """Studio operations."""

    _client: VXClient

    async def get_studio(self) -> dict[str, Any] | None:
        return await self._client.call("get_studio")

    async def show_list(self) -> dict[str, Any] | None:
        return await self._client.call("show_list")

    async def line_list(self) -> dict[str, Any] | None:
        return await self._client.call("line_list")

    async def hybrid_list(self) -> dict[str, Any] | None:
        return await self._client.call("hybrid_list")

    async def select_studio(self, studio_id: int) -> dict[str, Any] | None:
        """Select a studio; resolves to its properties or None if it does not exist."""
        return await self._client.call("select_studio", studio_id)

    async def select_show(self, show_id: int) -> dict[str, Any] | None:
        return await self._client.call("select_show", show_id)

    async def im(self, sender: str, message: str) -> bool | None:
        """Send an instant message to the other clients of the studio."""
        return await self._client.call("im", sender, message)

    async def set_busy_all(self, state: bool | None = None) -> bool | None:
        return await self._client.call("set_busy_all", *_args(state))

    async def drop_hybrid(self, hybrid: int) -> bool | None:
        return await self._client.call("drop_hybrid", hybrid)

    async def hold_hybrid(self, hybrid: int) -> bool | None:
        return await self._client.call("hold_hybrid", hybrid)


@dataclass
class LineAPI:
    """Line operations (``studio.line`` namespace).

    Options mappings accept ``handset``, ``hybrid`` and (for ``call_line``)
    ``port``; keys that are missing or invalid are left out of the request.
    """

    _client: VXClient

    async def get_line(self, line: int) -> dict[str, Any] | None:
        """Full state of one line, or None if the line does not exist."""
        return await self._client.call("get_line", line)

    async def get_caller_id(self, line: int) -> dict[str, Any] | None:
        return await self._client.call("get_caller_id", line)

    async def set_line_comment(self, line: int, comment: str) -> bool | None:
        return await self._client.call("set_line_comment", line, comment)

    async def set_caller_id(self, line: int, caller_id: str) -> bool | None:
        return await self._client.call("set_caller_id", line, caller_id)

    async def seize_line(self, line: int) -> bool | None:
        return await self._client.call("seize_line", line)

    async def call_line(
        self,
        line: int,
        number: str,
        options: dict[str, Any] | None = None,
    ) -> bool | None:
        """Dial ``number`` on ``line``."""
        return await self._client.call("call_line", *_args(line, number, options))

    async def take_line(self, line: int, options: dict[str, Any] | None = None) -> bool | None:
        return await self._client.call("take_line", *_args(line, options))

    async def take_next(self) -> bool | None:
        """Take the next line in the queue."""
        return await self._client.call("take_next")

    async def drop_line(self, line: int) -> bool | None:
        return await self._client.call("drop_line", line)

    async def lock_line(self, line: int) -> bool | None:
        """Lock an on-air line. Refused locally if the line is known not to be on air."""
        return await self._client.call("lock_line", line)

    async def unlock_line(self, line: int) -> bool | None:
        return await self._client.call("unlock_line", line)

    async def hold_line(self, line: int, ready: bool | None = None) -> bool | None:
        return await self._client.call("hold_line", *_args(line, ready))

    async def raise_line(self, line: int) -> bool | None:
        return await self._client.call("raise_line", line)


@dataclass
class BookAPI:
    """Address book operations (``studio.book`` namespace)."""

    _client: VXClient

    async def record_count(self) -> dict[str, Any] | None:
        return await self._client.call("record_count")

    async def record_list(self, range: tuple[int, int] | None = None) -> dict[str, Any] | None:
        """List records, optionally limited to ``(start, end)``."""
        return await self._client.call("record_list", *_args(range))

    async def add_record(self, record: dict[str, Any]) -> bool | None:
        """Add a record from a mapping with ``name``, ``number`` and optional ``type``."""
        return await self._client.call("add_record", record)

    async def update_record(self, record_id: int, changes: dict[str, Any]) -> bool | None:
        return await self._client.call("update_record", record_id, changes)

    async def delete_record(self, record_id: int) -> bool | None:
        return await self._client.call("delete_record", record_id)


@dataclass
class LogAPI:
    """Call log operations (``studio.log`` namespace)."""

    _client: VXClient

    async def log_count(self) -> dict[str, Any] | None:
        return await self._client.call("log_count")

    async def log_list(self, range: tuple[int, int] | None = None) -> dict[str, Any] | None:
        """List call log entries as mappings of start time, duration, direction and parties."""
        return await self._client.call("log_list", *_args(range))
