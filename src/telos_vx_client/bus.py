"""Event bus for unsolicited and session-state broadcasts.

Every client owns one bus. The dispatcher publishes on well-known channels
regardless of whether a request was waiting for the same frame, so session
tracking and external subscribers see every state change.

Usage:
    unsubscribe = client.events.subscribe(Channel.LINE, on_line)
    async for channel, payload in client.events.stream(Channel.LINE):
        ...
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class Channel(str, Enum):
    """Well-known broadcast channels."""

    PONG = "pong"
    LOGGED_IN = "logged_in"
    STUDIO_SELECTED = "studio_selected"
    SHOW_SELECTED = "show_selected"
    STUDIO = "studio"
    LINE = "line"
    BOOK = "book"
    SHOW = "show"
    IM = "im"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    SOCKET_ERROR = "socket_error"
    MESSAGE = "message"  # Every parsed inbound message


# Callbacks receive (channel, payload); coroutine functions run as tasks
EventCallback = Callable[[str, Any], Awaitable[None] | None]

_ALL = "*"


class EventBus:
    """Channel-keyed publish/subscribe with wildcard support."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[EventCallback]] = {}
        self._tasks: set[asyncio.Future[Any]] = set()

    def subscribe(self, channel: Channel | str, callback: EventCallback) -> Callable[[], None]:
        """Subscribe to one channel.

        Returns:
            Unsubscribe function
        """
        return self._subscribe(_channel_name(channel), callback)

    def subscribe_all(self, callback: EventCallback) -> Callable[[], None]:
        """Subscribe to every channel."""
        return self._subscribe(_ALL, callback)

    def _subscribe(self, key: str, callback: EventCallback) -> Callable[[], None]:
        self._subscriptions.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            if key in self._subscriptions and callback in self._subscriptions[key]:
                self._subscriptions[key].remove(callback)

        return unsubscribe

    async def publish(self, channel: Channel | str, payload: Any = None) -> None:
        """Deliver a payload to channel and wildcard subscribers, in that order.

        Plain callbacks run before this returns. Coroutine callbacks are
        started as tasks, so a subscriber may await a request whose reply
        arrives through the same publisher.
        """
        name = _channel_name(channel)

        # Copies, so callbacks may unsubscribe while we iterate
        specific_subs = list(self._subscriptions.get(name, []))
        wildcard_subs = list(self._subscriptions.get(_ALL, []))

        for callback in specific_subs + wildcard_subs:
            try:
                result = callback(name, payload)
            except Exception:
                logger.exception(f"Error in subscriber for {name}")
                continue
            if inspect.isawaitable(result):
                self._track(name, asyncio.ensure_future(result))

    def _track(self, name: str, task: asyncio.Future[Any]) -> None:
        self._tasks.add(task)

        def done(task: asyncio.Future[Any]) -> None:
            self._tasks.discard(task)
            if task.cancelled():
                return
            error = task.exception()
            if error is not None:
                logger.error(f"Error in subscriber for {name}", exc_info=error)

        task.add_done_callback(done)

    @property
    def pending(self) -> int:
        """Number of coroutine subscribers still running."""
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every running coroutine subscriber to finish."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def stream(self, *channels: Channel | str) -> AsyncIterator[tuple[str, Any]]:
        """Yield ``(channel, payload)`` pairs as they are published.

        With no channels given, yields everything.
        """
        queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()

        def on_event(name: str, payload: Any) -> None:
            queue.put_nowait((name, payload))

        if channels:
            unsubscribers = [self.subscribe(channel, on_event) for channel in channels]
        else:
            unsubscribers = [self.subscribe_all(on_event)]

        try:
            while True:
                yield await queue.get()
        finally:
            for unsubscribe in unsubscribers:
                unsubscribe()

    def clear(self) -> None:
        """Drop all subscriptions."""
        self._subscriptions = {}


def _channel_name(channel: Channel | str) -> str:
    return channel.value if isinstance(channel, Channel) else channel
