"""
A single relay connection and the events it reports to its pool.

A [Connection][nostrdht.core.connection.Connection] runs one background task
that opens the socket and then reads frames until the socket ends. It never
touches pool state: every lifecycle change is posted as a tagged
[TransportEvent][nostrdht.core.connection.TransportEvent] onto the pool's
ingestion queue, and the pool's single ingestion task applies it.

```text
connect() ok      -> Opened(conn)
each text frame   -> MessageReceived(conn, raw)
recv() -> None    -> Closed(conn, reason)
connect/recv error-> Failed(conn, error)
```

Exactly one of ``Closed`` or ``Failed`` ends a connection's event stream,
unless the connection is closed by its owner, in which case nothing more is
posted.

See Also:
    [ConnectionPool][nostrdht.core.pool.ConnectionPool]: Owner of every
        connection and sole consumer of its events.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass

from nostrdht.exceptions import ConnectivityError
from nostrdht.models.constants import ConnectionState
from nostrdht.utils.transport import WebSocketAdapter, WebSocketTransport


# ---------------------------------------------------------------------------
# Transport Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Opened:
    connection: Connection


@dataclass(frozen=True, slots=True)
class MessageReceived:
    connection: Connection
    raw: str


@dataclass(frozen=True, slots=True)
class Closed:
    connection: Connection
    reason: str = ""


@dataclass(frozen=True, slots=True)
class Failed:
    connection: Connection
    error: str


TransportEvent = Opened | MessageReceived | Closed | Failed


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------


class Connection:
    """One attempt at a live socket to one relay URL.

    A new ``Connection`` is created for every attempt; a closed connection is
    never reopened. ``state`` starts at ``CONNECTING`` and is advanced by the
    pool through [mark_open()][nostrdht.core.connection.Connection.mark_open]
    and [mark_closed()][nostrdht.core.connection.Connection.mark_closed].

    Attributes:
        url: Normalized relay URL.
        state: Current [ConnectionState][nostrdht.models.constants.ConnectionState].
        created_at: Monotonic time the attempt began.
        opened_at: Monotonic time the pool marked it open, or ``None``.
    """

    def __init__(
        self,
        url: str,
        transport: WebSocketTransport,
        events: asyncio.Queue[TransportEvent],
        *,
        connect_timeout: float,
    ) -> None:
        self.url = url
        self.state = ConnectionState.CONNECTING
        self.created_at = time.monotonic()
        self.opened_at: float | None = None
        self._transport = transport
        self._events = events
        self._connect_timeout = connect_timeout
        self._adapter: WebSocketAdapter | None = None
        self._task: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return f"Connection(url={self.url!r}, state={self.state.value})"

    @property
    def is_ready(self) -> bool:
        """True when the pool marked this connection open and its socket can still send."""
        return (
            self.state == ConnectionState.OPEN
            and self._adapter is not None
            and not self._adapter.closed
        )

    def start(self) -> None:
        """Begin connecting in the background. Returns immediately."""
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"relay:{self.url}")

    def mark_open(self) -> None:
        self.state = ConnectionState.OPEN
        self.opened_at = time.monotonic()

    def mark_closed(self) -> None:
        self.state = ConnectionState.CLOSED

    async def send(self, text: str) -> None:
        """Send one text frame.

        Raises:
            ConnectivityError: If the connection is not ready or the write fails.
        """
        if not self.is_ready or self._adapter is None:
            raise ConnectivityError(f"Connection to {self.url} is not open")
        await self._adapter.send(text)

    async def close(self) -> None:
        """Cancel the background task (including a pending connect) and close the socket.

        Idempotent. No further events are posted for this connection.
        """
        self.state = ConnectionState.CLOSED
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._adapter is not None:
            await self._adapter.close()

    async def _run(self) -> None:
        try:
            adapter = await asyncio.wait_for(
                self._transport.connect(self.url, self._connect_timeout),
                timeout=self._connect_timeout,
            )
        except asyncio.CancelledError:
            raise
        except TimeoutError:
            self._events.put_nowait(
                Failed(self, f"connect timed out after {self._connect_timeout}s")
            )
            return
        except Exception as e:  # Intentionally broad: a failed attempt must always be reported
            self._events.put_nowait(Failed(self, str(e) or type(e).__name__))
            return

        self._adapter = adapter
        self._events.put_nowait(Opened(self))

        try:
            while True:
                raw = await adapter.recv()
                if raw is None:
                    break
                self._events.put_nowait(MessageReceived(self, raw))
        except asyncio.CancelledError:
            raise
        except Exception as e:  # Intentionally broad: transport libraries raise many error types
            await adapter.close()
            self._events.put_nowait(Failed(self, str(e) or type(e).__name__))
            return

        await adapter.close()
        self._events.put_nowait(Closed(self, "connection closed by relay"))
