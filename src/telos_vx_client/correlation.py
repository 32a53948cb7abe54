"""Request/response correlation over one shared, ordered stream.

All logical requests share a single connection. Each reply-expecting
request registers a one-shot waiter under the key its reply will carry; the
dispatcher routes every inbound message either to the oldest waiter for its
key or, for unsolicited frames, onto the event bus.

Special operations (login, studio/show selection, ping) do not get replies
that echo the request, so they wait under fixed keys instead.

Everything here runs on the event loop that owns the connection. Waiters and
session flags are never touched from any other thread.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections import deque
from dataclasses import dataclass
from typing import Any

from .bus import Channel, EventBus
from .errors import ProtocolError, TransportError
from .protocol.builder import error_key, message_key
from .protocol.catalog import LOGIN_KEY, PING_KEY, SELECT_SHOW_KEY, SELECT_STUDIO_KEY
from .protocol.messages import InboundMessage, Operation
from .session import SessionState

logger = logging.getLogger(__name__)

STUDIO = "studio"
LINE = "line"

ERROR_STATUSES = frozenset({"ERR", "ERROR", "FAIL", "FAILED"})

STUDIO_ERROR = re.compile(r"studio with id .*does not exist", re.IGNORECASE)
SHOW_ERROR = re.compile(r"show .*does ?not exist", re.IGNORECASE)
LINE_ERROR = re.compile(r"non-?existing line", re.IGNORECASE)
KNOWN_ERRORS = (STUDIO_ERROR, SHOW_ERROR, LINE_ERROR)


@dataclass(eq=False)
class Waiter:
    """A single pending reply.

    An error waiter is always linked to the success waiter it races; it
    fails that waiter instead of completing a caller of its own.
    """

    key: str
    future: asyncio.Future[Any]
    linked: Waiter | None = None
    is_error: bool = False

    @property
    def done(self) -> bool:
        return self.future.done()


class WaiterTable:
    """Key -> FIFO of one-shot waiters.

    Registering under a key that already has a live waiter queues the new
    one behind it; each matching inbound message completes the oldest.
    """

    def __init__(self) -> None:
        self._waiters: dict[str, deque[Waiter]] = {}

    def __contains__(self, key: str) -> bool:
        return bool(self._waiters.get(key))

    def __len__(self) -> int:
        return sum(len(queue) for queue in self._waiters.values())

    def keys(self) -> list[str]:
        return [key for key, queue in self._waiters.items() if queue]

    def register(self, key: str) -> Waiter:
        """Register a waiter; the caller awaits ``waiter.future``."""
        future = asyncio.get_running_loop().create_future()
        waiter = Waiter(key=key, future=future)
        queue = self._waiters.setdefault(key, deque())
        if queue:
            logger.debug(f"Queueing waiter for {key} behind {len(queue)} pending")
        queue.append(waiter)
        return waiter

    def register_race(self, key: str, failure_key: str) -> Waiter:
        """Register a success waiter plus an error waiter that races it.

        Exactly one of them completes the caller: a reply under ``key``
        drops the error waiter, a rejection under ``failure_key`` fails the
        success waiter.
        """
        success = self.register(key)
        error = self.register(failure_key)
        error.is_error = True
        success.linked = error
        error.linked = success
        return success

    def first_with_prefix(self, prefix: str) -> str | None:
        for key in self.keys():
            if key.startswith(prefix):
                return key
        return None

    def _pop(self, key: str) -> Waiter | None:
        queue = self._waiters.get(key)
        while queue:
            waiter = queue.popleft()
            if not queue:
                del self._waiters[key]
            if not waiter.done:
                return waiter
            queue = self._waiters.get(key)
        return None

    def discard(self, waiter: Waiter) -> None:
        """Remove a waiter and its racing partner, if still registered."""
        for item in (waiter, waiter.linked):
            if item is None:
                continue
            queue = self._waiters.get(item.key)
            if queue and item in queue:
                queue.remove(item)
                if not queue:
                    del self._waiters[item.key]

    def resolve(self, key: str, value: Any) -> bool:
        """Complete the oldest waiter under ``key``. Returns False if none."""
        waiter = self._pop(key)
        if waiter is None:
            return False
        if waiter.is_error:
            return self._fail_linked(waiter, ProtocolError(str(value)))

        self.discard(waiter)
        waiter.future.set_result(value)
        return True

    def reject(self, key: str, error: Exception) -> bool:
        """Fail the oldest waiter under ``key`` (or the one it races)."""
        waiter = self._pop(key)
        if waiter is None:
            return False
        if waiter.is_error:
            return self._fail_linked(waiter, error)

        self.discard(waiter)
        waiter.future.set_exception(error)
        return True

    def _fail_linked(self, error_waiter: Waiter, error: Exception) -> bool:
        target = error_waiter.linked
        self.discard(error_waiter)
        error_waiter.future.set_result(None)
        if target is None or target.done:
            return False
        target.future.set_exception(error)
        return True

    def fail_all(self, reason: str = "Connection closed") -> int:
        """Fail every pending caller, e.g. when the connection goes away."""
        failed = 0
        for queue in list(self._waiters.values()):
            for waiter in queue:
                if waiter.done:
                    continue
                if waiter.is_error:
                    waiter.future.set_result(None)
                else:
                    waiter.future.set_exception(TransportError(reason))
                    failed += 1
        self._waiters.clear()
        return failed


def error_text(properties: dict[str, Any]) -> str | None:
    """Far-end error text of an acknowledgment, or None if it is not an error."""
    status = properties.get("status")
    text = properties.get("msg", properties.get("message"))
    text = text if isinstance(text, str) else None

    if isinstance(status, str) and status.upper() in ERROR_STATUSES:
        return text or status
    if text and any(pattern.search(text) for pattern in KNOWN_ERRORS):
        return text
    return None


class Dispatcher:
    """Routes parsed inbound messages to waiters, session state and the bus."""

    def __init__(self, session: SessionState, waiters: WaiterTable, bus: EventBus):
        self.session = session
        self.waiters = waiters
        self.bus = bus

    async def dispatch(self, message: InboundMessage) -> None:
        await self.bus.publish(Channel.MESSAGE, message)

        if message.is_operation(Operation.PONG):
            self.waiters.resolve(PING_KEY, True)
            await self.bus.publish(Channel.PONG, dict(message.properties))
        elif message.is_operation(Operation.INDI):
            await self._on_reply(message)
        elif message.is_operation(Operation.ACK):
            await self._on_ack(message)
        elif message.is_operation(Operation.EVENT, Operation.UPDATE):
            await self._on_event(message)
        elif message.is_operation(Operation.IM):
            await self.bus.publish(Channel.IM, dict(message.properties))
        else:
            logger.debug(f"Ignoring '{message.operation}' frame")

    async def _on_reply(self, message: InboundMessage) -> None:
        if message.namespace == STUDIO and message.sub_namespace == LINE:
            self._track_line(message)

        if self.waiters.resolve(message_key(message), dict(message.properties)):
            return

        # No caller waiting under the echoed key: treat it as a state update
        if message.namespace == STUDIO and message.sub_namespace is None:
            await self._on_studio(message, acknowledged=True)
        else:
            await self._on_event(message)

    async def _on_ack(self, message: InboundMessage) -> None:
        props = message.properties
        text = error_text(props)
        if text is not None:
            await self._on_error(message, text)
            return

        if message.namespace == "cc":
            logged = props.get("logged")
            await self._set_logged_in(logged if isinstance(logged, bool) else False)
        elif message.namespace == STUDIO and message.sub_namespace is None:
            await self._on_studio(message, acknowledged=True)
        else:
            logger.debug(
                f"Unsolicited acknowledgment for {message.namespace}.{message.sub_namespace}"
            )

    async def _set_logged_in(self, logged: bool) -> None:
        self.session.authenticated = logged
        self.waiters.resolve(LOGIN_KEY, logged)
        await self.bus.publish(Channel.LOGGED_IN, logged)

    async def _on_error(self, message: InboundMessage, text: str) -> None:
        if message.namespace == "cc":
            logger.error(f"Server rejected login: {text}")
            await self._set_logged_in(False)
            return

        target = self._error_target(message, text)
        if target is None or not self.waiters.reject(target, ProtocolError(text)):
            logger.warning(f"Unhandled error acknowledgment: {text}")

    def _error_target(self, message: InboundMessage, text: str) -> str | None:
        if SHOW_ERROR.search(text):
            return SELECT_SHOW_KEY
        if STUDIO_ERROR.search(text):
            return SELECT_STUDIO_KEY
        if LINE_ERROR.search(text) or message.sub_namespace == LINE:
            exact = error_key(STUDIO, LINE, message.id)
            if message.id is not None and exact in self.waiters:
                return exact
            return self.waiters.first_with_prefix(error_key(STUDIO, LINE))
        if message.namespace == STUDIO and message.sub_namespace is None:
            return SELECT_STUDIO_KEY if SELECT_STUDIO_KEY in self.waiters else SELECT_SHOW_KEY
        return None

    async def _on_studio(self, message: InboundMessage, acknowledged: bool) -> None:
        props = dict(message.properties)
        self.session.studio.update(props)

        if "id" in props:
            newly_selected = not self.session.studio_selected
            self.session.studio_selected = True
            resolved = self.waiters.resolve(SELECT_STUDIO_KEY, props)
            if acknowledged or resolved or newly_selected:
                await self.bus.publish(Channel.STUDIO_SELECTED, props)

        if "show_id" in props:
            changed = self.session.show_id != props["show_id"]
            self.session.show_id = props["show_id"]
            resolved = self.waiters.resolve(SELECT_SHOW_KEY, props)
            if acknowledged or resolved or changed:
                await self.bus.publish(Channel.SHOW_SELECTED, props)

    async def _on_event(self, message: InboundMessage) -> None:
        props = dict(message.properties)
        if message.namespace != STUDIO:
            logger.debug(f"Ignoring event for namespace {message.namespace}")
            return

        sub = message.sub_namespace
        if sub is None:
            await self._on_studio(message, acknowledged=False)
            await self.bus.publish(Channel.STUDIO, props)
        elif sub == LINE and message.id is not None:
            self._track_line(message)
            await self.bus.publish(Channel.LINE, {"line": message.id, "data": props})
        elif sub == "book":
            await self.bus.publish(Channel.BOOK, {"book": message.id, "data": props})
        elif sub == "show":
            await self.bus.publish(Channel.SHOW, {"show": message.id, "data": props})
        elif sub == "im":
            await self.bus.publish(Channel.IM, props)
        else:
            logger.debug(f"Ignoring event for studio.{sub}")

    def _track_line(self, message: InboundMessage) -> None:
        if message.id is not None and message.properties:
            self.session.track_line(message.id, dict(message.properties))
