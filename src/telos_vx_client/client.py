"""Client for the studio call-management appliance.

Every operation goes through ``VXClient.call``: catalog lookup, gate checks,
request building, waiter registration, write, and wait for the correlated
reply. Nothing raises across this boundary; failures are logged and the call
resolves to ``None`` (or ``False`` for a rejected login).

Usage:
    client = VXClient(ClientConfig(host="10.0.0.5"), parser=parse_line)
    if await client.connect_login_select():
        line = await client.line.get_line(1)
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import replace
from typing import Any

from .api import BookAPI, CallControlAPI, LineAPI, LogAPI, StudioAPI
from .bus import Channel, EventBus
from .config import ClientConfig, valid_credential, valid_host, valid_port, valid_studio_id
from .connection import Connection, ConnectionState
from .correlation import Dispatcher, WaiterTable
from .errors import PreconditionError, TransportError, VXError
from .log import configure_watchers, stack_enabled
from .protocol.builder import Request, build_request, shape_reply
from .protocol.catalog import get_operation
from .protocol.messages import LineParser, safe_parse
from .protocol.model import OperationSpec
from .session import SessionPhase, SessionState

logger = logging.getLogger(__name__)


class VXClient:
    """One connection, one session, and the full operation catalog.

    Namespaced operations:
        client.cc      call controller (login, ping, server info, mode)
        client.studio  studio and show selection, lists, hybrids, IM
        client.line    line queries and call handling
        client.book    address book records
        client.log     call log
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        parser: LineParser,
        **overrides: Any,
    ):
        config = config or ClientConfig()
        if overrides:
            config = replace(config, **overrides)
        self.config = config.normalized()

        if self.config.log:
            configure_watchers(self.config.log)

        self.events = EventBus()
        self.session = SessionState(host=self.config.host, port=self.config.port)
        self._waiters = WaiterTable()
        self._dispatcher = Dispatcher(self.session, self._waiters, self.events)
        self._parser = parser
        self._connection = Connection(
            on_line=self._on_line,
            on_closed=self._on_closed,
            connect_timeout=self.config.connect_timeout,
        )
        self._connect_task: asyncio.Task[bool] | None = None

        self.cc = CallControlAPI(self)
        self.studio = StudioAPI(self)
        self.line = LineAPI(self)
        self.book = BookAPI(self)
        self.log = LogAPI(self)

    # Settings. Invalid values are ignored and the previous value kept.

    def set_host(self, host: str) -> None:
        if valid_host(host):
            self.config.host = host
            self.session.host = host

    def set_port(self, port: int) -> None:
        if valid_port(port):
            self.config.port = math.floor(port)
            self.session.port = self.config.port

    def set_username(self, username: str) -> None:
        if valid_credential(username):
            self.config.username = username

    def set_password(self, password: str) -> None:
        if valid_credential(password):
            self.config.password = password

    def set_studio_id(self, studio_id: int) -> None:
        if valid_studio_id(studio_id):
            self.config.studio_id = studio_id

    # State

    @property
    def is_connected(self) -> bool:
        return self._connection.is_connected

    @property
    def authenticated(self) -> bool:
        return self.session.authenticated

    @property
    def studio_selected(self) -> bool:
        return self.session.studio_selected

    @property
    def state(self) -> SessionPhase:
        return self.session.phase

    @property
    def pending(self) -> int:
        """Number of requests still waiting for a reply."""
        return len(self._waiters)

    # Lifecycle

    async def connect(self) -> bool:
        """Open the connection; False on refusal or after the connect timeout.

        A call made while another connect is in flight shares its outcome.
        """
        if self._connection.is_connected:
            return True
        if self._connect_task is None or self._connect_task.done():
            self._connect_task = asyncio.create_task(self._open())
        return await asyncio.shield(self._connect_task)

    async def _open(self) -> bool:
        host, port = self.config.host, self.config.port
        if not valid_host(host):
            logger.error("The host address has not been set", stack_info=stack_enabled())
            return False

        self.session.connection = ConnectionState.CONNECTING
        connected = await self._connection.open(host, port)
        self.session.connection = self._connection.state
        if connected:
            await self.events.publish(Channel.CONNECTED, {"host": host, "port": port})
        return connected

    async def disconnect(self) -> None:
        """Close the connection and fail every pending request."""
        was_connected = self._connection.is_connected
        await self._connection.close()
        if was_connected:
            await self._teardown()

    async def connect_login_select(self) -> bool:
        """Connect, log in and select the configured studio."""
        if not valid_host(self.config.host):
            logger.error(
                "The host address was not initialized before calling 'connect_login_select'",
                stack_info=stack_enabled(),
            )
            return False
        if not await self.connect():
            return False
        if not await self.cc.login(self.config.username, self.config.password):
            return False
        if not await self.studio.select_studio(self.config.studio_id):
            return False
        return True

    async def __aenter__(self) -> VXClient:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.disconnect()

    # Inbound

    async def _on_line(self, line: str) -> None:
        message = safe_parse(self._parser, line)
        if message is None:
            return
        await self._dispatcher.dispatch(message)

    async def _on_closed(self, error: Exception | None) -> None:
        if error is not None:
            await self.events.publish(Channel.SOCKET_ERROR, {"error": str(error)})
        await self._teardown()

    async def _teardown(self) -> None:
        failed = self._waiters.fail_all("Connection closed")
        if failed:
            logger.warning(f"Connection closed with {failed} request(s) still pending")
        self.session.reset()
        self.session.connection = ConnectionState.DISCONNECTED
        await self.events.publish(Channel.DISCONNECTED, None)

    # Operations

    async def call(self, name: str, *args: Any) -> Any:
        """Run one catalog operation.

        Returns:
            The reply properties for reply-expecting operations, True for
            fire-and-forget ones, or None (False for a rejected login) on
            any failure.
        """
        try:
            spec = get_operation(name)
            self._check_connection(spec)
            self._check_gates(spec)
            request = build_request(spec, args)
            self._check_line_state(spec, request)
            return await self._send(spec, request)
        except VXError as e:
            logger.error(str(e), stack_info=stack_enabled())
            return None

    def _check_connection(self, spec: OperationSpec) -> None:
        if not self._connection.is_connected:
            raise TransportError(
                f"The method '{spec.name}' requires a connection. Please connect first."
            )

    def _check_gates(self, spec: OperationSpec) -> None:
        if spec.requires_login and not self.session.authenticated:
            raise PreconditionError(
                f"The method '{spec.name}' requires authentication. Please login first."
            )
        if spec.requires_studio and not self.session.studio_selected:
            raise PreconditionError(
                f"The method '{spec.name}' requires a selected studio. "
                "Please select a studio first."
            )

    def _check_line_state(self, spec: OperationSpec, request: Request) -> None:
        if spec.line_state is None or request.id is None:
            return
        state = self.session.line_state(request.id)
        if state is not None and not spec.line_state.allows(state):
            raise PreconditionError(
                f"The method '{spec.name}' is not allowed while line {request.id} is {state}"
            )

    async def _send(self, spec: OperationSpec, request: Request) -> Any:
        if not spec.requires_reply:
            if not await self._connection.write(request.line):
                raise TransportError(f"The method '{spec.name}' could not be sent")
            return True

        key = spec.reply_key or request.key
        if spec.error_race:
            waiter = self._waiters.register_race(key, request.error_key)
        else:
            waiter = self._waiters.register(key)

        try:
            if not await self._connection.write(request.line):
                raise TransportError(f"The method '{spec.name}' could not be sent")
            result = await asyncio.wait_for(waiter.future, timeout=self.config.request_timeout)
        except TimeoutError:
            raise TransportError(
                f"No reply to '{spec.name}' within {self.config.request_timeout}s"
            ) from None
        finally:
            self._waiters.discard(waiter)

        if isinstance(result, dict):
            return shape_reply(spec, result)
        return result
