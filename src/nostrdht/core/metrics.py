"""
Prometheus metrics for the relay pool and message flow.

Module-level metric objects are process-wide singletons. They are always
updated (updates are cheap in-memory operations); exposition over HTTP only
happens when a [MetricsServer][nostrdht.core.metrics.MetricsServer] is
started, which the CLI does when ``metrics.enabled`` is set.

Metrics:
    RELAY_CONNECTIONS:        Live (open) relay connections per pool.
    RELAY_CONNECT_ATTEMPTS:   Connection outcomes (opened, failed, closed).
    BROADCAST_MESSAGES:       Per-recipient broadcast outcomes (sent, skipped, failed).
    INBOUND_MESSAGES:         Decoded inbound frames by message type.
    SERVICE_COUNTER:          Named cumulative counters per periodic service.
    SERVICE_GAUGE:            Named point-in-time values per periodic service.
"""

from __future__ import annotations

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, generate_latest
from pydantic import BaseModel, Field


class MetricsConfig(BaseModel):
    """Configuration for the Prometheus ``/metrics`` endpoint."""

    enabled: bool = Field(default=False, description="Serve metrics over HTTP")
    port: int = Field(default=8000, ge=1024, le=65535, description="Metrics HTTP port")
    host: str = Field(default="127.0.0.1", description="Metrics HTTP bind address")
    path: str = Field(default="/metrics", description="Metrics endpoint path")


RELAY_CONNECTIONS = Gauge(
    "nostrdht_relay_connections",
    "Live relay connections",
    ["pool"],
)

RELAY_CONNECT_ATTEMPTS = Counter(
    "nostrdht_relay_connect_attempts",
    "Relay connection lifecycle outcomes",
    ["pool", "outcome"],
)

BROADCAST_MESSAGES = Counter(
    "nostrdht_broadcast_messages",
    "Per-relay broadcast outcomes",
    ["pool", "outcome"],
)

INBOUND_MESSAGES = Counter(
    "nostrdht_inbound_messages",
    "Inbound relay frames by decoded type",
    ["type"],
)

SERVICE_COUNTER = Counter(
    "nostrdht_service_counter",
    "Cumulative service counters",
    ["service", "name"],
)

SERVICE_GAUGE = Gauge(
    "nostrdht_service_gauge",
    "Current service state",
    ["service", "name"],
)


class MetricsServer:
    """Async HTTP server exposing the Prometheus exposition format.

    Example:
        server = MetricsServer(MetricsConfig(enabled=True, port=8001))
        await server.start()
        ...
        await server.stop()
    """

    def __init__(self, config: MetricsConfig) -> None:
        self._config = config
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Bind the endpoint; no-op when metrics are disabled.

        Raises:
            OSError: If the port is already in use.
        """
        if not self._config.enabled:
            return

        app = web.Application()
        app.router.add_get(self._config.path, self._handle_metrics)

        self._runner = web.AppRunner(app, access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await site.start()

    async def stop(self) -> None:
        """Release the port. Idempotent."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    @staticmethod
    async def _handle_metrics(_request: web.Request) -> web.Response:
        return web.Response(body=generate_latest(), headers={"Content-Type": CONTENT_TYPE_LATEST})
