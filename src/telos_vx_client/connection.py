"""TCP transport for the line-oriented control protocol.

One persistent connection per client. Frames are UTF-8 text terminated by a
newline in both directions.

Architecture:
- ``open()`` connects with a bounded timeout and starts a background reader
- The reader hands each non-empty line to the ``on_line`` coroutine, strictly
  in arrival order, one at a time
- ``write()`` sends one frame; a write always happens before any of its
  replies are processed because both run on the same event loop
- EOF or a socket error invokes ``on_closed`` with the error (None on EOF)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from .config import CONNECT_TIMEOUT
from .log import INPUT_LOGGER, OUTPUT_LOGGER

logger = logging.getLogger(__name__)
input_logger = logging.getLogger(INPUT_LOGGER)
output_logger = logging.getLogger(OUTPUT_LOGGER)

LineHandler = Callable[[str], Awaitable[None]]
CloseHandler = Callable[[Exception | None], Awaitable[None]]


class ConnectionState(str, Enum):
    """Socket lifecycle."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Connection:
    """Owns the socket, the connect timeout and the reader task."""

    def __init__(
        self,
        on_line: LineHandler,
        on_closed: CloseHandler | None = None,
        connect_timeout: float = CONNECT_TIMEOUT,
    ):
        self._on_line = on_line
        self._on_closed = on_closed
        self.connect_timeout = connect_timeout

        self._state = ConnectionState.DISCONNECTED
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    async def open(self, host: str, port: int) -> bool:
        """Connect to ``host:port``.

        Returns False, with the socket closed, if the connection is refused
        or does not complete within ``connect_timeout`` seconds.
        """
        async with self._lock:
            if self._state == ConnectionState.CONNECTED:
                return True

            self._state = ConnectionState.CONNECTING
            try:
                self._reader, self._writer = await asyncio.wait_for(
                    asyncio.open_connection(host, port),
                    timeout=self.connect_timeout,
                )
            except TimeoutError:
                self._state = ConnectionState.DISCONNECTED
                logger.error(f"Failed to connect to {host}:{port} within {self.connect_timeout}s")
                return False
            except OSError as e:
                self._state = ConnectionState.DISCONNECTED
                logger.error(f"Failed to connect to {host}:{port}: {e}")
                return False

            self._state = ConnectionState.CONNECTED
            self._reader_task = asyncio.create_task(self._read_loop())
            logger.info(f"Connected to {host}:{port}")
            return True

    async def close(self) -> None:
        """Close the socket and stop the reader. Safe to call repeatedly."""
        async with self._lock:
            if self._state == ConnectionState.DISCONNECTED:
                return
            self._state = ConnectionState.DISCONNECTED

            task = self._reader_task
            self._reader_task = None
            if task is not None and task is not asyncio.current_task():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

            await self._close_writer()
            logger.info("Disconnected")

    async def write(self, text: str) -> bool:
        """Send one frame. Returns False if nothing could be written."""
        if not text:
            return False
        if not self.is_connected or self._writer is None:
            logger.error(f"Cannot send '{text}': not connected")
            return False

        try:
            self._writer.write((text + "\n").encode("utf-8"))
            await self._writer.drain()
        except OSError as e:
            logger.error(f"Failed to send '{text}': {e}")
            await self._lost(e)
            return False

        output_logger.debug(text)
        return True

    async def _read_loop(self) -> None:
        """Read frames and hand them on until EOF, error or cancellation."""
        assert self._reader is not None
        error: Exception | None = None
        try:
            while True:
                raw = await self._reader.readline()
                if not raw:
                    logger.info("Connection closed by peer")
                    break

                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                if not line:
                    continue

                input_logger.debug(line)
                try:
                    await self._on_line(line)
                except Exception:
                    logger.exception(f"Error handling line: {line[:50]}")
        except asyncio.CancelledError:
            return
        except (OSError, ValueError) as e:
            # ValueError: a line longer than the stream limit
            logger.error(f"Read loop error: {e}")
            error = e

        await self._lost(error)

    async def _lost(self, error: Exception | None) -> None:
        """The peer went away underneath us."""
        if self._state == ConnectionState.DISCONNECTED:
            return
        self._state = ConnectionState.DISCONNECTED
        if self._reader_task is not asyncio.current_task():
            if self._reader_task is not None:
                self._reader_task.cancel()
        self._reader_task = None
        await self._close_writer()

        if self._on_closed is not None:
            await self._on_closed(error)

    async def _close_writer(self) -> None:
        writer = self._writer
        self._reader = None
        self._writer = None
        if writer is None:
            return
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()
