"""
Unit tests for utils.transport module.

Tests:
- AiohttpWebSocketAdapter - frame handling, send errors, quiet close
- AiohttpTransport - SSL context selection, connect success and error mapping
"""

import ssl
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from nostrdht.exceptions import ConnectivityError, RelayTimeoutError
from nostrdht.utils.transport import AiohttpTransport, AiohttpWebSocketAdapter


def _msg(msg_type, data=None):
    msg = MagicMock()
    msg.type = msg_type
    msg.data = data
    return msg


def _adapter(ws=None, session=None):
    ws = ws or MagicMock()
    session = session or MagicMock()
    session.close = AsyncMock()
    return AiohttpWebSocketAdapter(ws, session, close_timeout=0.1), ws, session


# =============================================================================
# AiohttpWebSocketAdapter
# =============================================================================


class TestAdapterRecv:
    """AiohttpWebSocketAdapter.recv()."""

    @pytest.mark.asyncio
    async def test_text(self):
        adapter, ws, _ = _adapter()
        ws.receive = AsyncMock(return_value=_msg(aiohttp.WSMsgType.TEXT, '["NOTICE","x"]'))
        assert await adapter.recv() == '["NOTICE","x"]'

    @pytest.mark.asyncio
    async def test_binary_decoded(self):
        adapter, ws, _ = _adapter()
        ws.receive = AsyncMock(return_value=_msg(aiohttp.WSMsgType.BINARY, b'["EOSE","a"]'))
        assert await adapter.recv() == '["EOSE","a"]'

    @pytest.mark.asyncio
    async def test_ping_skipped(self):
        adapter, ws, _ = _adapter()
        ws.receive = AsyncMock(
            side_effect=[_msg(aiohttp.WSMsgType.PING), _msg(aiohttp.WSMsgType.TEXT, "frame")]
        )
        assert await adapter.recv() == "frame"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "msg_type",
        [aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR],
    )
    async def test_end_of_stream(self, msg_type):
        adapter, ws, _ = _adapter()
        ws.receive = AsyncMock(return_value=_msg(msg_type))
        assert await adapter.recv() is None


class TestAdapterSend:
    """AiohttpWebSocketAdapter.send()."""

    @pytest.mark.asyncio
    async def test_send(self):
        adapter, ws, _ = _adapter()
        ws.closed = False
        ws.send_str = AsyncMock()
        await adapter.send("frame")
        ws.send_str.assert_awaited_once_with("frame")

    @pytest.mark.asyncio
    async def test_send_when_closed(self):
        adapter, ws, _ = _adapter()
        ws.closed = True
        with pytest.raises(ConnectivityError, match="closed"):
            await adapter.send("frame")

    @pytest.mark.asyncio
    async def test_send_error_wrapped(self):
        adapter, ws, _ = _adapter()
        ws.closed = False
        ws.send_str = AsyncMock(side_effect=ConnectionResetError("reset"))
        with pytest.raises(ConnectivityError, match="reset"):
            await adapter.send("frame")


class TestAdapterClose:
    """AiohttpWebSocketAdapter.close()."""

    @pytest.mark.asyncio
    async def test_close_closes_ws_and_session(self):
        adapter, ws, session = _adapter()
        ws.close = AsyncMock()
        await adapter.close()
        ws.close.assert_awaited_once()
        session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_suppresses_errors(self):
        adapter, ws, session = _adapter()
        ws.close = AsyncMock(side_effect=aiohttp.ClientError("boom"))
        session.close = AsyncMock(side_effect=RuntimeError("boom"))
        await adapter.close()


# =============================================================================
# AiohttpTransport
# =============================================================================


class TestTransportSsl:
    """AiohttpTransport SSL context selection."""

    def test_verified_by_default(self):
        assert AiohttpTransport()._ssl_context() is True

    def test_insecure(self):
        ctx = AiohttpTransport(allow_insecure=True)._ssl_context()
        assert isinstance(ctx, ssl.SSLContext)
        assert ctx.verify_mode == ssl.CERT_NONE
        assert ctx.check_hostname is False


class TestTransportConnect:
    """AiohttpTransport.connect()."""

    @pytest.fixture
    def session(self):
        session = MagicMock()
        session.close = AsyncMock()
        with (
            patch("nostrdht.utils.transport.aiohttp.TCPConnector"),
            patch("nostrdht.utils.transport.aiohttp.ClientSession", return_value=session),
        ):
            yield session

    @pytest.mark.asyncio
    async def test_success(self, session):
        ws = MagicMock()
        session.ws_connect = AsyncMock(return_value=ws)
        adapter = await AiohttpTransport().connect("wss://relay.example.com", timeout=1.0)
        assert isinstance(adapter, AiohttpWebSocketAdapter)
        session.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_client_error(self, session):
        session.ws_connect = AsyncMock(side_effect=aiohttp.ClientConnectionError("refused"))
        with pytest.raises(ConnectivityError, match="refused"):
            await AiohttpTransport().connect("wss://relay.example.com", timeout=1.0)
        session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_timeout(self, session):
        session.ws_connect = AsyncMock(side_effect=TimeoutError())
        with pytest.raises(RelayTimeoutError):
            await AiohttpTransport().connect("wss://relay.example.com", timeout=1.0)
        session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_os_error(self, session):
        session.ws_connect = AsyncMock(side_effect=OSError("unreachable"))
        with pytest.raises(ConnectivityError, match="unreachable"):
            await AiohttpTransport().connect("wss://relay.example.com", timeout=1.0)
