"""WebSocket transport primitives for relay connections.

Defines the small interface the relay pool needs from a WebSocket library
([WebSocketTransport][nostrdht.utils.transport.WebSocketTransport] opens a
connection and returns a
[WebSocketAdapter][nostrdht.utils.transport.WebSocketAdapter] that sends and
receives text frames) and its aiohttp implementation. Tests substitute an
in-memory transport behind the same interface.

Note:
    TLS is verified by default. ``allow_insecure=True`` builds an SSL context
    with ``CERT_NONE`` for relays with self-signed or expired certificates;
    it disables all certificate checks and should only be enabled knowingly.

See Also:
    [nostrdht.core.connection.Connection][]: Drives one adapter and turns
        its lifecycle into pool events.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import ssl
from abc import ABC, abstractmethod
from typing import Final

import aiohttp

from nostrdht.exceptions import ConnectivityError, RelayTimeoutError


DEFAULT_HEARTBEAT: Final[float] = 30.0
DEFAULT_CLOSE_TIMEOUT: Final[float] = 5.0

logger = logging.getLogger(__name__)


class WebSocketAdapter(ABC):
    """An open WebSocket carrying NIP-01 text frames."""

    @property
    @abstractmethod
    def closed(self) -> bool:
        """True once the socket can no longer send."""

    @abstractmethod
    async def send(self, text: str) -> None:
        """Send one text frame.

        Raises:
            ConnectivityError: If the socket is closed or the write fails.
        """

    @abstractmethod
    async def recv(self) -> str | None:
        """Return the next text frame, or ``None`` once the connection is over."""

    @abstractmethod
    async def close(self) -> None:
        """Close the socket and release its resources. Never raises."""


class WebSocketTransport(ABC):
    """Factory for [WebSocketAdapter][nostrdht.utils.transport.WebSocketAdapter] instances."""

    @abstractmethod
    async def connect(self, url: str, timeout: float) -> WebSocketAdapter:  # noqa: ASYNC109
        """Open a WebSocket to *url*.

        Raises:
            RelayTimeoutError: If the handshake does not finish within *timeout*.
            ConnectivityError: On any other connection failure.
        """


class AiohttpWebSocketAdapter(WebSocketAdapter):
    """aiohttp-backed adapter; owns both the socket and its session."""

    def __init__(
        self,
        ws: aiohttp.ClientWebSocketResponse,
        session: aiohttp.ClientSession,
        close_timeout: float = DEFAULT_CLOSE_TIMEOUT,
    ) -> None:
        self._ws = ws
        self._session = session
        self._close_timeout = close_timeout

    @property
    def closed(self) -> bool:
        return self._ws.closed

    async def send(self, text: str) -> None:
        if self._ws.closed:
            raise ConnectivityError("WebSocket is closed")
        try:
            await self._ws.send_str(text)
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            raise ConnectivityError(f"Send failed: {e}") from e

    async def recv(self) -> str | None:
        while True:
            msg = await self._ws.receive()
            if msg.type == aiohttp.WSMsgType.TEXT:
                return msg.data
            if msg.type == aiohttp.WSMsgType.BINARY:
                return msg.data.decode("utf-8", errors="replace")
            if msg.type in (aiohttp.WSMsgType.PING, aiohttp.WSMsgType.PONG):
                continue
            # CLOSE, CLOSING, CLOSED, ERROR
            return None

    async def close(self) -> None:
        # aiohttp can raise ClientError, ServerDisconnectedError, etc. while closing
        with contextlib.suppress(Exception):
            await asyncio.wait_for(self._ws.close(), timeout=self._close_timeout)
        with contextlib.suppress(Exception):
            await asyncio.wait_for(self._session.close(), timeout=self._close_timeout)


class AiohttpTransport(WebSocketTransport):
    """Open relay connections with ``aiohttp.ClientSession.ws_connect``.

    A session is created per connection so that closing one relay never
    affects another.

    Args:
        heartbeat: Seconds between WebSocket pings; a missed pong closes the
            socket, which the pool sees as a normal close.
        close_timeout: Upper bound for closing a socket and its session.
        allow_insecure: Skip TLS certificate verification.
    """

    def __init__(
        self,
        *,
        heartbeat: float = DEFAULT_HEARTBEAT,
        close_timeout: float = DEFAULT_CLOSE_TIMEOUT,
        allow_insecure: bool = False,
    ) -> None:
        self._heartbeat = heartbeat
        self._close_timeout = close_timeout
        self._allow_insecure = allow_insecure

    def _ssl_context(self) -> ssl.SSLContext | bool:
        if not self._allow_insecure:
            return True
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        return ctx

    async def connect(self, url: str, timeout: float) -> WebSocketAdapter:  # noqa: ASYNC109
        connector = aiohttp.TCPConnector(ssl=self._ssl_context())
        session = aiohttp.ClientSession(connector=connector)

        try:
            ws = await asyncio.wait_for(
                session.ws_connect(
                    url,
                    timeout=aiohttp.ClientWSTimeout(ws_close=self._close_timeout),
                    heartbeat=self._heartbeat,
                    autoping=True,
                ),
                timeout=timeout,
            )
        except TimeoutError:
            await session.close()
            logger.debug("ws_connect_timeout url=%s timeout_s=%s", url, timeout)
            raise RelayTimeoutError(f"Connection timeout: {url}") from None
        except asyncio.CancelledError:
            await session.close()
            raise
        except (aiohttp.ClientError, ssl.SSLError, OSError) as e:
            await session.close()
            logger.debug("ws_connect_failed url=%s error=%s", url, e)
            raise ConnectivityError(f"Connection failed: {url} ({e})") from e

        return AiohttpWebSocketAdapter(ws, session, close_timeout=self._close_timeout)
