"""Pytest configuration and shared fixtures."""

import asyncio
import re

import pytest
import pytest_asyncio

from telos_vx_client import VXClient, log

# =============================================================================
# Minimal line parser
# =============================================================================

_HEAD = re.compile(
    r"^(?P<op>[a-z_]+)"
    r"(?: (?P<target>[^\s#]+)(?:#(?P<id>\S+))?)?"
    r"(?: (?P<props>.*))?$"
)


def _split_top_level(text: str) -> list[str]:
    """Split on commas outside quotes and brackets."""
    items, current, depth, quoted, escaped = [], [], 0, False, False
    for char in text:
        if escaped:
            current.append(char)
            escaped = False
            continue
        if char == "\\" and quoted:
            current.append(char)
            escaped = True
            continue
        if char == '"':
            quoted = not quoted
        elif not quoted and char == "[":
            depth += 1
        elif not quoted and char == "]":
            depth -= 1
        elif not quoted and depth == 0 and char == ",":
            items.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    if current or items:
        items.append("".join(current).strip())
    return items


def _value(token: str):
    if token.startswith('"') and token.endswith('"') and len(token) >= 2:
        return re.sub(r"\\(.)", r"\1", token[1:-1])
    if token.startswith("[") and token.endswith("]"):
        inner = token[1:-1].strip()
        return [_value(item) for item in _split_top_level(inner)] if inner else []
    if token == "TRUE":
        return True
    if token == "FALSE":
        return False
    if token == "NULL":
        return None
    try:
        return int(token)
    except ValueError:
        pass
    try:
        return float(token)
    except ValueError:
        return token


def parse_line(text: str):
    """Parse ``<op> <obj>[.<sub>][#<id>][ <name>[=<value>], ...]``.

    Good enough for test traffic; returns None for anything else.
    """
    match = _HEAD.match(text.strip())
    if match is None:
        return None

    namespace = sub = None
    if match["target"]:
        namespace, _, sub = match["target"].partition(".")
        sub = sub or None

    ident = match["id"]
    if ident is not None and ident.isdigit():
        ident = int(ident)

    props = {}
    for item in _split_top_level(match["props"] or ""):
        if not item:
            continue
        name, eq, token = item.partition("=")
        props[name.strip()] = _value(token.strip()) if eq else None

    return {"op": match["op"], "obj": namespace, "sub": sub, "id": ident, "props": props}


# =============================================================================
# Fake appliance
# =============================================================================


class FakeAppliance:
    """In-process TCP peer that records requests and sends scripted replies."""

    def __init__(self):
        self.received: list[str] = []
        self.greeting: list[str] = []
        self._replies: dict[str, list[str]] = {}
        self._writers: list[asyncio.StreamWriter] = []
        self._server: asyncio.Server | None = None
        self.port: int | None = None

    def reply(self, request: str, *lines: str) -> None:
        """Send ``lines`` whenever ``request`` is received."""
        self._replies[request] = list(lines)

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._writers.append(writer)
        for line in self.greeting:
            writer.write((line + "\n").encode("utf-8"))
        await writer.drain()

        try:
            while raw := await reader.readline():
                text = raw.decode("utf-8").rstrip("\r\n")
                self.received.append(text)
                for line in self._replies.get(text, []):
                    writer.write((line + "\n").encode("utf-8"))
                await writer.drain()
        except ConnectionError:
            pass

    async def send(self, line: str) -> None:
        """Push an unsolicited line to every connected client."""
        for writer in self._writers:
            writer.write((line + "\n").encode("utf-8"))
            await writer.drain()

    async def drop(self) -> None:
        """Close every client connection from the appliance side."""
        for writer in self._writers:
            writer.close()
        self._writers = []

    async def stop(self) -> None:
        await self.drop()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it holds or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("Condition not met in time")
        await asyncio.sleep(0.01)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def line_parser():
    return parse_line


@pytest.fixture
def wait_until():
    return _wait_until


@pytest.fixture(autouse=True)
def reset_logging():
    """Remove any console handler a test installed."""
    yield
    log.reset()


@pytest_asyncio.fixture
async def appliance():
    server = FakeAppliance()
    await server.start()
    yield server
    await server.stop()


@pytest_asyncio.fixture
async def make_client(appliance):
    """Factory for clients pointed at the fake appliance."""
    clients: list[VXClient] = []

    def factory(**overrides) -> VXClient:
        overrides.setdefault("host", "127.0.0.1")
        overrides.setdefault("port", appliance.port)
        overrides.setdefault("request_timeout", 2.0)
        client = VXClient(parser=parse_line, **overrides)
        clients.append(client)
        return client

    yield factory

    for client in clients:
        await client.disconnect()


@pytest_asyncio.fixture
async def ready_client(appliance, make_client):
    """A client that is connected, logged in and has studio 1 selected."""
    appliance.reply('login cc user="user", password=""', "ack cc logged=TRUE")
    appliance.reply("select studio id=1", 'ack studio id=1, name="Studio 1", show_id=3')
    client = make_client()
    assert await client.connect_login_select()
    return client
