"""
Periodic re-announcement of a published message.

An [Announcer][nostrdht.core.announcer.Announcer] publishes once as soon as
it starts and then again every ``interval`` seconds (15 minutes by default),
so late-joining subscribers within their lookback window keep seeing the
data. It is the handle returned by
[NostrDht.announce_data()][nostrdht.core.dht.NostrDht.announce_data];
calling [stop()][nostrdht.core.announcer.Announcer.stop] ends the cycle.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, ClassVar

from pydantic import Field

from nostrdht.models.constants import DEFAULT_ANNOUNCE_INTERVAL

from .base_service import BaseService, BaseServiceConfig


if TYPE_CHECKING:
    from .pool import BroadcastResult


class AnnouncerConfig(BaseServiceConfig):
    """Re-announce cadence and failure tolerance."""

    interval: float = Field(
        default=DEFAULT_ANNOUNCE_INTERVAL,
        gt=0.0,
        description="Seconds between announcements",
    )


class Announcer(BaseService[AnnouncerConfig]):
    """Run ``publish()`` now and every ``config.interval`` seconds.

    Args:
        publish: Coroutine function performing one announcement.
        config: Cadence settings.
        label: Free-form context for log lines (e.g. ``"t/demo"``).

    Note:
        A cycle in which no relay received the message is logged but still
        counts as a success; only exceptions (for example a
        ``SigningError``) count toward ``max_consecutive_failures``.
    """

    SERVICE_NAME: ClassVar[str] = "announcer"
    CONFIG_CLASS: ClassVar[type[AnnouncerConfig]] = AnnouncerConfig

    def __init__(
        self,
        publish: Callable[[], Awaitable[BroadcastResult]],
        config: AnnouncerConfig | None = None,
        *,
        label: str = "",
    ) -> None:
        super().__init__(config)
        self._publish = publish
        self._label = label
        self._task: asyncio.Task[None] | None = None
        self.last_result: BroadcastResult | None = None

    @property
    def label(self) -> str:
        return self._label

    @property
    def is_active(self) -> bool:
        """True while the background loop is running."""
        return self._task is not None and not self._task.done()

    async def run(self) -> None:
        """Publish one announcement."""
        result = await self._publish()
        self.last_result = result
        self.inc_counter("announcements")
        self.inc_counter("relay_deliveries", result.sent)
        if result.sent:
            self._logger.info(
                "announcement_published", label=self._label, sent=result.sent, skipped=result.skipped
            )
        else:
            self._logger.warning("announcement_not_delivered", label=self._label, skipped=result.skipped)

    def start(self) -> None:
        """Spawn [run_forever()][nostrdht.core.base_service.BaseService.run_forever] as a task."""
        if self.is_active:
            return
        self._shutdown_event.clear()
        self._task = asyncio.create_task(self.run_forever(), name=f"announcer:{self._label}")

    async def stop(self) -> None:
        """Request shutdown and wait for the loop to exit. Idempotent."""
        self.request_shutdown()
        task, self._task = self._task, None
        if task is not None:
            await task
