"""
Relay connection pool.

Keeps a target number of live WebSocket connections open across a ring of
relay URLs, despite individual relays failing, and fans outbound frames out
to every live connection.

Three pieces cooperate on one event loop:

* A **maintenance task** calls
  [maintain_one_step()][nostrdht.core.pool.ConnectionPool.maintain_one_step]
  every ``maintenance_interval`` seconds. Each step looks at the head of the
  ring, starts a connection attempt if that relay needs one, and rotates the
  URL to the tail, so every relay gets a turn every
  ``maintenance_interval x len(relays)`` seconds.
* Each [Connection][nostrdht.core.connection.Connection] posts
  ``Opened``/``MessageReceived``/``Closed``/``Failed`` events onto one
  ``asyncio.Queue``.
* A single **ingestion task** consumes that queue and is the only code that
  changes live-connection state, so no locks are needed.

Per-relay state machine:

```text
idle --attempt--> connecting --Opened--> open --Closed/Failed--> idle
                       |                                           ^
                       +------------------Failed-------------------+
```

Transport errors never reach callers: the relay goes back to ``idle`` and
is retried on a later ring turn according to
[PoolRetryConfig][nostrdht.core.pool.PoolRetryConfig].

Examples:
    ```python
    pool = ConnectionPool(PoolConfig(relays=["wss://nos.lol"]), on_frame=handle)
    async with pool:
        if await pool.wait_for_minimum_connections(1, timeout=30):
            result = await pool.broadcast(["EVENT", event.to_dict()])
    ```

See Also:
    [NostrDht][nostrdht.core.dht.NostrDht]: Facade that wires the pool to
        the registry and dispatcher.
    [AiohttpTransport][nostrdht.utils.transport.AiohttpTransport]: Default
        transport.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Self

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from nostrdht.exceptions import ConnectivityError
from nostrdht.models.constants import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_MAINTENANCE_INTERVAL,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_RELAYS,
    DEFAULT_TARGET_CONNECTIONS,
    ConnectionState,
    RetryPolicy,
)
from nostrdht.models.relay import Relay
from nostrdht.nips.nip01 import serialize
from nostrdht.utils.transport import AiohttpTransport, WebSocketTransport

from .callbacks import CallbackRunner
from .connection import Closed, Connection, Failed, MessageReceived, Opened, TransportEvent
from .logger import Logger
from .metrics import BROADCAST_MESSAGES, RELAY_CONNECT_ATTEMPTS, RELAY_CONNECTIONS
from .yaml import load_yaml


FrameCallback = Callable[[str, str], Any]
OpenListener = Callable[[Connection], Any]


# ---------------------------------------------------------------------------
# Configuration Models
# ---------------------------------------------------------------------------


class PoolRetryConfig(BaseModel):
    """Back-off applied to a relay after a failed or dropped connection.

    Note:
        ``FIXED`` (the default) applies no extra delay: the relay is retried
        on its next ring turn. ``LINEAR`` waits ``initial_delay * failures``
        and ``EXPONENTIAL`` waits ``initial_delay * 2^(failures - 1)``, both
        capped at ``max_delay``. A successful open resets the failure count.

    See Also:
        [PoolConfig][nostrdht.core.pool.PoolConfig]: Parent configuration that
            embeds this model.
    """

    policy: RetryPolicy = Field(default=RetryPolicy.FIXED, description="Back-off policy")
    initial_delay: float = Field(default=1.0, ge=0.0, description="Base retry delay (seconds)")
    max_delay: float = Field(default=300.0, ge=0.0, description="Maximum retry delay (seconds)")

    @field_validator("max_delay")
    @classmethod
    def validate_max_delay(cls, v: float, info: ValidationInfo) -> float:
        """Ensure max_delay >= initial_delay."""
        initial_delay = info.data.get("initial_delay", 1.0)
        if v < initial_delay:
            raise ValueError(f"max_delay ({v}) must be >= initial_delay ({initial_delay})")
        return v


class PoolConfig(BaseModel):
    """Relay list, connection target and timing for a
    [ConnectionPool][nostrdht.core.pool.ConnectionPool].

    Relay URLs are validated and normalized through
    [Relay][nostrdht.models.relay.Relay]; duplicates (after normalization)
    are dropped, keeping the first occurrence.
    """

    relays: list[str] = Field(
        default_factory=lambda: list(DEFAULT_RELAYS),
        min_length=1,
        description="Relay WebSocket URLs, in ring order",
    )
    target_connections: int = Field(
        default=DEFAULT_TARGET_CONNECTIONS, ge=1, description="Live connections to maintain"
    )
    maintenance_interval: float = Field(
        default=DEFAULT_MAINTENANCE_INTERVAL, gt=0.0, description="Seconds between ring steps"
    )
    poll_interval: float = Field(
        default=DEFAULT_POLL_INTERVAL,
        gt=0.0,
        description="Progress log period while waiting for connections",
    )
    connect_timeout: float = Field(
        default=DEFAULT_CONNECT_TIMEOUT, gt=0.0, description="WebSocket handshake timeout"
    )
    retry: PoolRetryConfig = Field(default_factory=PoolRetryConfig)

    @field_validator("relays")
    @classmethod
    def normalize_relays(cls, v: list[str]) -> list[str]:
        """Normalize every URL and drop duplicates."""
        seen: dict[str, None] = {}
        for raw in v:
            seen.setdefault(Relay(raw).url, None)
        return list(seen)


# ---------------------------------------------------------------------------
# Broadcast Result
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BroadcastResult:
    """Per-recipient outcome of one broadcast.

    Attributes:
        sent: Connections the frame was written to.
        skipped: Tracked connections that were not open (still connecting,
            or their socket already closed).
        failed: Open connections whose write raised.
        urls: Relay URLs the frame was written to.
    """

    sent: int = 0
    skipped: int = 0
    failed: int = 0
    urls: tuple[str, ...] = ()

    @property
    def total(self) -> int:
        return self.sent + self.skipped + self.failed


# ---------------------------------------------------------------------------
# Pool Class
# ---------------------------------------------------------------------------


class ConnectionPool:
    """Maintain live relay connections and broadcast to them.

    Args:
        config: Pool configuration; defaults to the built-in relay list.
        transport: WebSocket transport; defaults to
            [AiohttpTransport][nostrdht.utils.transport.AiohttpTransport].
        on_frame: Called as ``on_frame(url, raw)`` for every inbound text
            frame, from the ingestion task. May return an awaitable, which
            is awaited before the next event is processed.
        name: Label used in logs and metrics to tell pools apart.

    Note:
        Several pools can coexist in one process; all state lives on the
        instance.

    See Also:
        [PoolConfig][nostrdht.core.pool.PoolConfig]: Configuration model.
        [Connection][nostrdht.core.connection.Connection]: Per-attempt
            connection object.
    """

    def __init__(
        self,
        config: PoolConfig | None = None,
        transport: WebSocketTransport | None = None,
        *,
        on_frame: FrameCallback | None = None,
        name: str = "default",
    ) -> None:
        self._config = config or PoolConfig()
        self._transport = transport or AiohttpTransport()
        self._on_frame = on_frame
        self._name = name
        self._logger = Logger("pool")

        self._ring: deque[str] = deque()
        self._connections: dict[str, Connection] = {}
        self._failures: dict[str, int] = {}
        self._retry_at: dict[str, float] = {}
        self._events: asyncio.Queue[TransportEvent] = asyncio.Queue()
        self._live_changed = asyncio.Condition()
        self._open_listeners: list[OpenListener] = []
        self._listener_runner = CallbackRunner(self._logger)

        self._maintenance_task: asyncio.Task[None] | None = None
        self._ingest_task: asyncio.Task[None] | None = None
        self._started = False

    @classmethod
    def from_yaml(cls, config_path: str, **kwargs: Any) -> ConnectionPool:
        """Create a pool from a YAML file of [PoolConfig][nostrdht.core.pool.PoolConfig] fields.

        Raises:
            FileNotFoundError: If the configuration file does not exist.
        """
        return cls.from_dict(load_yaml(config_path), **kwargs)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any], **kwargs: Any) -> ConnectionPool:
        return cls(config=PoolConfig(**config_dict), **kwargs)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def config(self) -> PoolConfig:
        return self._config

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def live_count(self) -> int:
        """Connections the pool has marked ``OPEN``."""
        return sum(1 for c in self._connections.values() if c.state == ConnectionState.OPEN)

    @property
    def connecting_count(self) -> int:
        return sum(1 for c in self._connections.values() if c.state == ConnectionState.CONNECTING)

    @property
    def ready_count(self) -> int:
        """Open connections whose socket can currently send."""
        return sum(1 for c in self._connections.values() if c.is_ready)

    @property
    def connections(self) -> tuple[Connection, ...]:
        """Live (``OPEN``) connections."""
        return tuple(c for c in self._connections.values() if c.state == ConnectionState.OPEN)

    @property
    def relays(self) -> tuple[str, ...]:
        """Relay URLs in current ring order (configured order before start)."""
        return tuple(self._ring) if self._started else tuple(self._config.relays)

    def state_of(self, url: str) -> ConnectionState | None:
        """Current state of *url*'s connection, or ``None`` when idle."""
        conn = self._connections.get(url)
        return conn.state if conn is not None else None

    def add_open_listener(self, callback: OpenListener) -> None:
        """Call ``callback(connection)`` every time a connection opens.

        Listeners run from the ingestion task; coroutine listeners are
        scheduled as tasks. Their errors are logged and ignored.
        """
        self._open_listeners.append(callback)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Seed the ring and start the maintenance and ingestion tasks. Idempotent."""
        if self._started:
            return
        self._started = True
        self._ring = deque(self._config.relays)
        self._ingest_task = asyncio.create_task(self._ingest_loop(), name=f"pool:{self._name}:ingest")
        self._maintenance_task = asyncio.create_task(
            self._maintenance_loop(), name=f"pool:{self._name}:maintenance"
        )
        self._logger.info(
            "pool_started",
            pool=self._name,
            relays=len(self._ring),
            target=self._config.target_connections,
            interval_s=self._config.maintenance_interval,
        )

    async def shutdown(self) -> None:
        """Stop maintenance and ingestion, then close every connection.

        Pending connection attempts are cancelled. Idempotent; the pool can
        be started again afterwards.
        """
        if not self._started:
            return
        self._started = False

        tasks = [t for t in (self._maintenance_task, self._ingest_task) if t is not None]
        self._maintenance_task = self._ingest_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

        connections = list(self._connections.values())
        self._connections.clear()
        self._failures.clear()
        self._retry_at.clear()
        await asyncio.gather(*(c.close() for c in connections), return_exceptions=True)
        await self._listener_runner.cancel_all()

        while not self._events.empty():
            self._events.get_nowait()
            self._events.task_done()

        RELAY_CONNECTIONS.labels(pool=self._name).set(0)
        async with self._live_changed:
            self._live_changed.notify_all()
        self._logger.info("pool_stopped", pool=self._name, closed=len(connections))

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.shutdown()

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def _retry_delay(self, failures: int) -> float:
        """Compute the back-off delay after *failures* consecutive failures."""
        retry = self._config.retry
        if retry.policy == RetryPolicy.FIXED or failures <= 0:
            return 0.0
        if retry.policy == RetryPolicy.EXPONENTIAL:
            delay = retry.initial_delay * (2 ** (failures - 1))
        else:
            delay = retry.initial_delay * failures
        return float(min(delay, retry.max_delay))

    def maintain_one_step(self) -> None:
        """Advance the ring by one relay.

        Pops the head URL. If the pool is at its target (counting attempts
        still connecting), the relay already has an open or connecting
        connection, or it is inside its back-off window, nothing happens.
        Otherwise a connection attempt is started without waiting for it.
        The URL is always re-appended to the tail.
        """
        if not self._ring:
            return
        url = self._ring.popleft()
        try:
            if self.live_count + self.connecting_count >= self._config.target_connections:
                return
            existing = self._connections.get(url)
            if existing is not None and existing.state in (
                ConnectionState.OPEN,
                ConnectionState.CONNECTING,
            ):
                return
            if time.monotonic() < self._retry_at.get(url, 0.0):
                return
            self._open(url)
        finally:
            self._ring.append(url)

    def _open(self, url: str) -> None:
        conn = Connection(
            url,
            self._transport,
            self._events,
            connect_timeout=self._config.connect_timeout,
        )
        self._connections[url] = conn
        conn.start()
        RELAY_CONNECT_ATTEMPTS.labels(pool=self._name, outcome="started").inc()
        self._logger.debug("relay_connecting", url=url, attempt=self._failures.get(url, 0) + 1)

    async def _maintenance_loop(self) -> None:
        interval = self._config.maintenance_interval
        while True:
            self.maintain_one_step()
            await asyncio.sleep(interval)

    # -------------------------------------------------------------------------
    # Ingestion
    # -------------------------------------------------------------------------

    async def _ingest_loop(self) -> None:
        while True:
            event = await self._events.get()
            try:
                await self._handle_event(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:  # Intentionally broad: one bad event must not stop ingestion
                self._logger.error(
                    "transport_event_error",
                    url=event.connection.url,
                    event=type(event).__name__,
                    error=str(e),
                )
            finally:
                self._events.task_done()

    async def _handle_event(self, event: TransportEvent) -> None:
        conn = event.connection
        if self._connections.get(conn.url) is not conn:
            # Superseded or shut down; its socket has no owner anymore
            if isinstance(event, Opened):
                await conn.close()
            return

        if isinstance(event, Opened):
            await self._on_opened(conn)
        elif isinstance(event, MessageReceived):
            await self._on_message(conn, event.raw)
        elif isinstance(event, Closed):
            await self._on_lost(conn, outcome="closed", reason=event.reason)
        elif isinstance(event, Failed):
            await self._on_lost(conn, outcome="failed", reason=event.error)

    async def _on_opened(self, conn: Connection) -> None:
        conn.mark_open()
        self._failures.pop(conn.url, None)
        self._retry_at.pop(conn.url, None)
        live = self.live_count
        RELAY_CONNECT_ATTEMPTS.labels(pool=self._name, outcome="opened").inc()
        RELAY_CONNECTIONS.labels(pool=self._name).set(live)
        self._logger.info("relay_opened", url=conn.url, live=live)
        await self._notify_live_changed()
        for listener in list(self._open_listeners):
            self._listener_runner.invoke(listener, conn, url=conn.url)

    async def _on_message(self, conn: Connection, raw: str) -> None:
        if self._on_frame is None:
            return
        result = self._on_frame(conn.url, raw)
        if inspect.isawaitable(result):
            await result

    async def _on_lost(self, conn: Connection, *, outcome: str, reason: str) -> None:
        was_open = conn.state == ConnectionState.OPEN
        conn.mark_closed()
        del self._connections[conn.url]

        failures = self._failures.get(conn.url, 0) + 1
        self._failures[conn.url] = failures
        delay = self._retry_delay(failures)
        if delay > 0:
            self._retry_at[conn.url] = time.monotonic() + delay

        live = self.live_count
        RELAY_CONNECT_ATTEMPTS.labels(pool=self._name, outcome=outcome).inc()
        RELAY_CONNECTIONS.labels(pool=self._name).set(live)
        log = self._logger.warning if was_open else self._logger.debug
        log(
            f"relay_{outcome}",
            url=conn.url,
            reason=reason,
            failures=failures,
            retry_in_s=delay,
            live=live,
        )
        if was_open:
            await self._notify_live_changed()

    async def _notify_live_changed(self) -> None:
        async with self._live_changed:
            self._live_changed.notify_all()

    # -------------------------------------------------------------------------
    # Waiting
    # -------------------------------------------------------------------------

    async def wait_for_minimum_connections(
        self,
        n: int,
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> bool:
        """Wait until at least *n* connections are live.

        Wakes exactly when the live count changes; a progress line is logged
        every ``poll_interval`` seconds while waiting.

        Args:
            n: Required live connections.
            timeout: Seconds to wait; ``None`` waits indefinitely.

        Returns:
            True once ``live_count >= n``, False if *timeout* elapses first.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        poll = self._config.poll_interval

        async with self._live_changed:
            while self.live_count < n:
                if deadline is None:
                    remaining = poll
                else:
                    remaining = min(poll, deadline - loop.time())
                    if remaining <= 0:
                        self._logger.warning(
                            "minimum_connections_timeout",
                            pool=self._name,
                            live=self.live_count,
                            required=n,
                            timeout_s=timeout,
                        )
                        return False
                try:
                    await asyncio.wait_for(self._live_changed.wait(), timeout=remaining)
                except TimeoutError:
                    self._logger.debug(
                        "waiting_for_connections", pool=self._name, live=self.live_count, required=n
                    )
        self._logger.info("minimum_connections_reached", pool=self._name, live=self.live_count)
        return True

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    async def broadcast(self, message: list[Any] | str) -> BroadcastResult:
        """Send *message* to every ready connection.

        Connections that are still connecting, or whose socket closed before
        the pool processed the close, are skipped rather than queued. A write
        error on one relay does not affect the others.

        Args:
            message: A wire message (serialized here) or a pre-serialized frame.
        """
        text = message if isinstance(message, str) else serialize(message)
        sent = skipped = failed = 0
        urls: list[str] = []

        for conn in list(self._connections.values()):
            if not conn.is_ready:
                skipped += 1
                continue
            try:
                await conn.send(text)
            except ConnectivityError as e:
                failed += 1
                self._logger.warning("send_failed", url=conn.url, error=str(e))
                continue
            sent += 1
            urls.append(conn.url)

        for outcome, count in (("sent", sent), ("skipped", skipped), ("failed", failed)):
            if count:
                BROADCAST_MESSAGES.labels(pool=self._name, outcome=outcome).inc(count)
        result = BroadcastResult(sent=sent, skipped=skipped, failed=failed, urls=tuple(urls))
        self._logger.debug(
            "broadcast_completed", pool=self._name, sent=sent, skipped=skipped, failed=failed
        )
        return result

    async def send(self, url: str, message: list[Any] | str) -> bool:
        """Send *message* to one relay.

        Returns:
            True if the frame was written, False if *url* has no ready
            connection or the write failed.
        """
        conn = self._connections.get(url)
        if conn is None or not conn.is_ready:
            return False
        text = message if isinstance(message, str) else serialize(message)
        try:
            await conn.send(text)
        except ConnectivityError as e:
            self._logger.warning("send_failed", url=url, error=str(e))
            return False
        return True
