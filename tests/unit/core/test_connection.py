"""
Unit tests for core.connection module.

Tests:
- Event stream: Opened, MessageReceived, Closed, Failed (including connect timeouts)
- State helpers: mark_open(), mark_closed(), is_ready
- send() guard and close() cancellation
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from nostrdht.core.connection import Closed, Connection, Failed, MessageReceived, Opened
from nostrdht.exceptions import ConnectivityError
from nostrdht.models import ConnectionState
from tests.fixtures.relay import FakeTransport


URL = "wss://relay1.example.com"


def _connection(transport):
    events: asyncio.Queue = asyncio.Queue()
    return Connection(URL, transport, events, connect_timeout=1.0), events


async def _next(events):
    return await asyncio.wait_for(events.get(), timeout=1.0)


# =============================================================================
# Event stream
# =============================================================================


class TestConnectionEvents:
    """Events posted by the background task."""

    @pytest.mark.asyncio
    async def test_opened_then_messages(self):
        transport = FakeTransport(with_relays=False)
        conn, events = _connection(transport)
        conn.start()
        assert await _next(events) == Opened(conn)

        transport.latest(URL).feed('["NOTICE","hi"]')
        assert await _next(events) == MessageReceived(conn, '["NOTICE","hi"]')
        await conn.close()

    @pytest.mark.asyncio
    async def test_closed_by_relay(self):
        transport = FakeTransport(with_relays=False)
        conn, events = _connection(transport)
        conn.start()
        await _next(events)
        transport.latest(URL).drop()
        event = await _next(events)
        assert isinstance(event, Closed)
        assert event.connection is conn

    @pytest.mark.asyncio
    async def test_connect_failure(self):
        conn, events = _connection(FakeTransport(unreachable=[URL]))
        conn.start()
        event = await _next(events)
        assert isinstance(event, Failed)
        assert URL in event.error

    @pytest.mark.asyncio
    async def test_unexpected_connect_error_reported(self):
        transport = FakeTransport(with_relays=False)
        transport.connect = AsyncMock(side_effect=RuntimeError("boom"))
        conn, events = _connection(transport)
        conn.start()
        event = await _next(events)
        assert event == Failed(conn, "boom")

    @pytest.mark.asyncio
    async def test_connect_bounded_by_timeout(self):
        transport = FakeTransport(hanging=[URL])
        events: asyncio.Queue = asyncio.Queue()
        conn = Connection(URL, transport, events, connect_timeout=0.05)
        conn.start()
        event = await _next(events)
        assert isinstance(event, Failed)
        assert "timed out" in event.error
        assert transport.cancelled == [URL]

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        transport = FakeTransport(with_relays=False)
        conn, events = _connection(transport)
        conn.start()
        conn.start()
        await _next(events)
        assert transport.connect_calls == [URL]
        await conn.close()


# =============================================================================
# State and sending
# =============================================================================


class TestConnectionState:
    """State transitions and send()."""

    @pytest.mark.asyncio
    async def test_initial_state(self):
        conn, _ = _connection(FakeTransport())
        assert conn.state == ConnectionState.CONNECTING
        assert conn.opened_at is None
        assert not conn.is_ready

    @pytest.mark.asyncio
    async def test_ready_after_mark_open(self):
        transport = FakeTransport(with_relays=False)
        conn, events = _connection(transport)
        conn.start()
        await _next(events)
        assert not conn.is_ready
        conn.mark_open()
        assert conn.is_ready
        assert conn.opened_at is not None

        await conn.send('["CLOSE","a"]')
        assert transport.latest(URL).sent == ['["CLOSE","a"]']
        await conn.close()

    @pytest.mark.asyncio
    async def test_send_when_not_ready(self):
        conn, _ = _connection(FakeTransport())
        with pytest.raises(ConnectivityError, match="not open"):
            await conn.send("frame")

    @pytest.mark.asyncio
    async def test_mark_closed(self):
        conn, _ = _connection(FakeTransport())
        conn.mark_closed()
        assert conn.state == ConnectionState.CLOSED


class TestConnectionClose:
    """close()."""

    @pytest.mark.asyncio
    async def test_close_cancels_pending_connect(self):
        transport = FakeTransport(hanging=[URL])
        conn, events = _connection(transport)
        conn.start()
        await asyncio.sleep(0.01)
        await conn.close()
        assert transport.cancelled == [URL]
        assert conn.state == ConnectionState.CLOSED
        assert events.empty()

    @pytest.mark.asyncio
    async def test_close_open_connection_posts_nothing(self):
        transport = FakeTransport(with_relays=False)
        conn, events = _connection(transport)
        conn.start()
        await _next(events)
        await conn.close()
        assert transport.latest(URL).closed
        await asyncio.sleep(0.01)
        assert events.empty()

    @pytest.mark.asyncio
    async def test_close_twice(self):
        conn, _ = _connection(FakeTransport())
        await conn.close()
        await conn.close()
