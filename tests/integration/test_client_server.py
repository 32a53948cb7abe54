"""Integration tests for VXClient against an in-process appliance.

Covers:
- Connect, login and studio selection
- Connect timeout and refused connections
- Correlation of concurrent requests on the shared stream
- Error acknowledgments racing line queries
- Unsolicited events and session tracking
- Connection loss with requests still pending
"""

import asyncio
import socket

import pytest

from telos_vx_client import Channel, SessionPhase

LOGIN = 'login cc user="user", password=""'
GET_LINE = (
    "get studio.line#{} state, callstate, name, local, remote, hybrid, time, comment, "
    "direction, caller_id"
)
LINE_REPLY = (
    'indi studio.line#{} state="IDLE", callstate="IDLE", name="Line {}", local="", remote="", '
    'hybrid=0, time=0, comment="", direction="", caller_id=""'
)


def free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


# =============================================================================
# Tests: Connection lifecycle
# =============================================================================


class TestConnect:
    """Test opening and closing the connection."""

    @pytest.mark.asyncio
    async def test_connect_and_disconnect(self, make_client):
        client = make_client()
        events = []
        client.events.subscribe_all(lambda channel, _: events.append(channel))

        assert await client.connect() is True
        assert client.state == SessionPhase.CONNECTED

        await client.disconnect()

        assert client.is_connected is False
        assert client.state == SessionPhase.DISCONNECTED
        assert events == [Channel.CONNECTED.value, Channel.DISCONNECTED.value]

    @pytest.mark.asyncio
    async def test_login_ack_from_peer_authenticates(self, appliance, make_client, wait_until):
        """A peer that acknowledges the login on connect authenticates the session."""
        appliance.greeting = ["ack cc logged=TRUE"]
        client = make_client()

        assert await client.connect() is True
        await wait_until(lambda: client.authenticated)

        assert client.state == SessionPhase.AUTHENTICATED

    @pytest.mark.asyncio
    async def test_connect_timeout(self, make_client, monkeypatch):
        """A peer that never completes the handshake fails the connect."""

        async def never_connects(*args, **kwargs):
            await asyncio.Event().wait()

        monkeypatch.setattr(asyncio, "open_connection", never_connects)
        client = make_client(connect_timeout=0.1)

        assert await client.connect() is False
        assert client.is_connected is False
        assert client.state == SessionPhase.DISCONNECTED

    @pytest.mark.asyncio
    async def test_connection_refused(self, make_client):
        client = make_client(port=free_port())

        assert await client.connect() is False
        assert client.is_connected is False

    @pytest.mark.asyncio
    async def test_concurrent_connects_share_one_socket(self, make_client):
        client = make_client()

        results = await asyncio.gather(client.connect(), client.connect())

        assert results == [True, True]
        assert client.is_connected

    @pytest.mark.asyncio
    async def test_context_manager(self, make_client):
        client = make_client()

        async with client:
            assert client.is_connected

        assert not client.is_connected


class TestLoginSelect:
    """Test the login and studio selection sequence."""

    @pytest.mark.asyncio
    async def test_connect_login_select(self, ready_client, appliance):
        assert ready_client.state == SessionPhase.STUDIO_SELECTED
        assert ready_client.session.studio["name"] == "Studio 1"
        assert ready_client.session.show_id == 3
        assert appliance.received == [LOGIN, "select studio id=1"]

    @pytest.mark.asyncio
    async def test_rejected_login(self, appliance, make_client):
        appliance.reply(LOGIN, 'ack cc status="ERR", msg="Invalid password"')
        client = make_client()

        assert await client.connect_login_select() is False
        assert client.authenticated is False
        assert appliance.received == [LOGIN]

    @pytest.mark.asyncio
    async def test_missing_studio(self, appliance, make_client):
        appliance.reply(LOGIN, "ack cc logged=TRUE")
        appliance.reply("select studio id=7", 'ack studio msg="Studio with id 7 does not exist"')
        client = make_client(studio_id=7)

        assert await client.connect_login_select() is False
        assert client.authenticated is True
        assert client.studio_selected is False
        assert client.pending == 0

    @pytest.mark.asyncio
    async def test_select_show(self, ready_client, appliance):
        appliance.reply("select_show studio id=4", 'ack studio show_id=4, show_name="Drive"')

        result = await ready_client.studio.select_show(4)

        assert result == {"show_id": 4, "show_name": "Drive"}
        assert ready_client.session.show_id == 4

    @pytest.mark.asyncio
    async def test_ping(self, appliance, make_client):
        appliance.reply("ping cc", "pong cc")
        client = make_client()
        await client.connect()

        assert await client.cc.ping() is True


# =============================================================================
# Tests: Correlation
# =============================================================================


class TestCorrelation:
    """Test matching replies to their callers."""

    @pytest.mark.asyncio
    async def test_query_reply(self, ready_client, appliance):
        appliance.reply("get studio.line#1 caller_id", 'indi studio.line#1 caller_id="Jane"')

        assert await ready_client.line.get_caller_id(1) == {"caller_id": "Jane"}
        assert ready_client.pending == 0

    @pytest.mark.asyncio
    async def test_replies_in_reverse_order(self, ready_client, appliance):
        """Both replies arrive after the second request, newest first."""
        appliance.reply(GET_LINE.format(2), LINE_REPLY.format(2, 2), LINE_REPLY.format(1, 1))

        first = asyncio.create_task(ready_client.line.get_line(1))
        await asyncio.sleep(0.05)
        second = asyncio.create_task(ready_client.line.get_line(2))

        line1, line2 = await asyncio.wait_for(asyncio.gather(first, second), timeout=2)

        assert line1["name"] == "Line 1"
        assert line2["name"] == "Line 2"
        assert ready_client.pending == 0

    @pytest.mark.asyncio
    async def test_error_ack_fails_line_query(self, ready_client, appliance):
        appliance.reply(
            GET_LINE.format(9), 'ack studio.line#9 status="ERR", msg="Nonexisting line"'
        )

        assert await ready_client.line.get_line(9) is None
        assert ready_client.pending == 0

    @pytest.mark.asyncio
    async def test_reply_shaping(self, ready_client, appliance):
        appliance.reply("get studio.log count", "indi studio.log count=12")

        assert await ready_client.log.log_count() == {"log_count": 12}

    @pytest.mark.asyncio
    async def test_request_timeout(self, appliance, make_client):
        appliance.reply(LOGIN, "ack cc logged=TRUE")
        client = make_client(request_timeout=0.1)
        await client.connect()
        await client.cc.login()

        assert await client.cc.date() is None
        assert client.pending == 0

    @pytest.mark.asyncio
    async def test_fire_and_forget(self, ready_client, appliance, wait_until):
        assert await ready_client.line.call_line(1, "5551234", {"handset": True}) is True

        await wait_until(lambda: len(appliance.received) == 3)
        assert appliance.received[-1] == 'call studio.line#1 number="5551234", handset=TRUE'


# =============================================================================
# Tests: Events
# =============================================================================


class TestEvents:
    """Test unsolicited frames."""

    @pytest.mark.asyncio
    async def test_line_event(self, ready_client, appliance):
        stream = ready_client.events.stream(Channel.LINE)
        pending = asyncio.ensure_future(stream.__anext__())
        await asyncio.sleep(0)

        await appliance.send('event studio.line#2 state="RINGING", remote="5551234"')
        channel, payload = await asyncio.wait_for(pending, timeout=2)
        await stream.aclose()

        assert channel == "line"
        assert payload == {"line": 2, "data": {"state": "RINGING", "remote": "5551234"}}
        assert ready_client.session.line_state(2) == "RINGING"

    @pytest.mark.asyncio
    async def test_subscriber_can_make_requests(self, ready_client, appliance, wait_until):
        """A line subscriber queries the caller while the read loop keeps running."""
        appliance.reply("get studio.line#1 caller_id", 'indi studio.line#1 caller_id="555"')
        answers = []

        async def on_line(channel, payload):
            answers.append(await ready_client.line.get_caller_id(payload["line"]))

        ready_client.events.subscribe(Channel.LINE, on_line)

        await appliance.send('event studio.line#1 state="RINGING"')
        await wait_until(lambda: answers)

        assert answers == [{"caller_id": "555"}]
        assert ready_client.pending == 0

    @pytest.mark.asyncio
    async def test_instant_message(self, ready_client, appliance, wait_until):
        messages = []
        ready_client.events.subscribe(Channel.IM, lambda channel, payload: messages.append(payload))

        await appliance.send('im studio from="producer", message="Line 2 next"')
        await wait_until(lambda: messages)

        assert messages == [{"from": "producer", "message": "Line 2 next"}]

    @pytest.mark.asyncio
    async def test_unparseable_line_is_dropped(self, ready_client, appliance, wait_until):
        seen = []
        ready_client.events.subscribe(Channel.MESSAGE, lambda _, payload: seen.append(payload))

        await appliance.send("   #")
        await appliance.send("event studio busy_all=TRUE")
        await wait_until(lambda: seen)

        assert len(seen) == 1
        assert ready_client.session.studio["busy_all"] is True


# =============================================================================
# Tests: Connection loss
# =============================================================================


class TestConnectionLoss:
    """Test that pending requests fail when the connection goes away."""

    @pytest.mark.asyncio
    async def test_peer_close_fails_pending(self, ready_client, appliance, wait_until):
        events = []
        ready_client.events.subscribe(Channel.DISCONNECTED, lambda ch, _: events.append(ch))

        task = asyncio.create_task(ready_client.studio.get_studio())
        await wait_until(lambda: ready_client.pending == 1)

        await appliance.drop()

        assert await asyncio.wait_for(task, timeout=2) is None
        assert ready_client.pending == 0
        assert ready_client.is_connected is False
        assert ready_client.authenticated is False
        assert ready_client.studio_selected is False
        assert events == ["disconnected"]

    @pytest.mark.asyncio
    async def test_disconnect_fails_pending(self, ready_client, wait_until):
        task = asyncio.create_task(ready_client.book.record_count())
        await wait_until(lambda: ready_client.pending == 1)

        await ready_client.disconnect()

        assert await asyncio.wait_for(task, timeout=2) is None
        assert ready_client.pending == 0
