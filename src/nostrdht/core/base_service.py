"""
Abstract base class for periodic background services.

``BaseService[ConfigT]`` provides the lifecycle shared by every
interval-driven task in nostrdht: structured logging via
[Logger][nostrdht.core.logger.Logger], graceful shutdown via
``asyncio.Event``, interval-based cycling with
[run_forever()][nostrdht.core.base_service.BaseService.run_forever],
a consecutive failure limit, and Prometheus counters.

See Also:
    [Announcer][nostrdht.core.announcer.Announcer]: Re-publishes an event
        every ``interval`` seconds.
    [BaseServiceConfig][nostrdht.core.base_service.BaseServiceConfig]: Base
        configuration model.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from types import TracebackType
from typing import ClassVar, Generic, Self, TypeVar, cast

from pydantic import BaseModel, Field

from .logger import Logger
from .metrics import SERVICE_COUNTER, SERVICE_GAUGE


# ---------------------------------------------------------------------------
# Base Configuration
# ---------------------------------------------------------------------------


class BaseServiceConfig(BaseModel):
    """Base configuration shared by all services that run in a loop.

    Subclass this to add service-specific fields.
    """

    interval: float = Field(
        default=300.0,
        gt=0.0,
        description="Seconds between run cycles",
    )
    max_consecutive_failures: int = Field(
        default=5,
        ge=0,
        description="Stop after this many consecutive errors (0 = unlimited)",
    )


ConfigT = TypeVar("ConfigT", bound=BaseServiceConfig)


class BaseService(ABC, Generic[ConfigT]):
    """Abstract base class for periodic services.

    Subclasses set ``SERVICE_NAME`` and ``CONFIG_CLASS`` and implement
    [run()][nostrdht.core.base_service.BaseService.run].

    Attributes:
        SERVICE_NAME: Identifier used in logging and metrics.
        CONFIG_CLASS: Pydantic model used when no config is passed.
        _config: Typed service configuration.
        _logger: [Logger][nostrdht.core.logger.Logger] named after the service.
        _shutdown_event: Clear while running; set once shutdown is requested.
    """

    SERVICE_NAME: ClassVar[str]
    CONFIG_CLASS: ClassVar[type[BaseServiceConfig]]

    def __init__(self, config: ConfigT | None = None) -> None:
        self._config: ConfigT = (
            config if config is not None else cast("ConfigT", self.CONFIG_CLASS())
        )
        self._logger = Logger(self.SERVICE_NAME)
        self._shutdown_event = asyncio.Event()

    @property
    def config(self) -> ConfigT:
        """The typed service configuration (read-only)."""
        return self._config

    @abstractmethod
    async def run(self) -> None:
        """Execute one cycle of the service's main logic."""
        ...

    def request_shutdown(self) -> None:
        """Request a graceful shutdown; the current wait returns immediately."""
        self._shutdown_event.set()

    @property
    def is_running(self) -> bool:
        """Whether the service is still active (shutdown not yet requested)."""
        return not self._shutdown_event.is_set()

    async def wait(self, timeout: float) -> bool:  # noqa: ASYNC109
        """Wait for a shutdown request or *timeout* seconds.

        Returns:
            True if shutdown was requested during the wait, False if the
            timeout expired.
        """
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=timeout)
            return True
        except TimeoutError:
            return False

    async def run_forever(self) -> None:
        """Call [run()][nostrdht.core.base_service.BaseService.run] every ``config.interval`` seconds.

        The first cycle runs immediately. Exits when shutdown is requested or
        ``config.max_consecutive_failures`` cycles in a row have failed
        (``0`` disables the limit). The failure counter resets after each
        successful cycle. ``CancelledError``, ``KeyboardInterrupt``, and
        ``SystemExit`` always propagate without being counted as failures.
        """
        interval = self._config.interval
        max_consecutive_failures = self._config.max_consecutive_failures

        self._logger.info(
            "run_forever_started",
            interval=interval,
            max_consecutive_failures=max_consecutive_failures,
        )

        consecutive_failures = 0

        while self.is_running:
            try:
                await self.run()

                self.inc_counter("cycles_success")
                self.set_gauge("last_cycle_timestamp", time.time())
                self.set_gauge("consecutive_failures", 0)

                consecutive_failures = 0
                self._logger.debug("cycle_completed", next_cycle_s=interval)

            except (asyncio.CancelledError, KeyboardInterrupt, SystemExit):
                raise

            except Exception as e:  # Intentionally broad: top-level error boundary for run_forever
                consecutive_failures += 1

                self.inc_counter("cycles_failed")
                self.set_gauge("consecutive_failures", consecutive_failures)
                self.inc_counter(f"errors_{type(e).__name__}")

                self._logger.error(
                    "run_cycle_error",
                    error=str(e),
                    consecutive_failures=consecutive_failures,
                )

                if (
                    max_consecutive_failures > 0
                    and consecutive_failures >= max_consecutive_failures
                ):
                    self._logger.critical(
                        "max_consecutive_failures_reached",
                        failures=consecutive_failures,
                        limit=max_consecutive_failures,
                    )
                    break

            if await self.wait(interval):
                break

        self._logger.info("run_forever_stopped")

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Self:
        """Mark the service as running on context entry."""
        self._shutdown_event.clear()
        self._logger.info("service_started")
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        """Signal shutdown on context exit."""
        self._shutdown_event.set()
        self._logger.info("service_stopped")

    # -------------------------------------------------------------------------
    # Custom Metrics
    # -------------------------------------------------------------------------

    def set_gauge(self, name: str, value: float) -> None:
        """Set a named gauge for this service."""
        SERVICE_GAUGE.labels(service=self.SERVICE_NAME, name=name).set(value)

    def inc_counter(self, name: str, value: float = 1) -> None:
        """Increment a named counter for this service."""
        SERVICE_COUNTER.labels(service=self.SERVICE_NAME, name=name).inc(value)
