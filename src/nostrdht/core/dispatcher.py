"""
Inbound frame routing.

[Dispatcher.on_inbound_frame()][nostrdht.core.dispatcher.Dispatcher.on_inbound_frame]
is installed as the pool's frame callback. It decodes each frame with
[parse_inbound()][nostrdht.nips.nip01.parse_inbound] and:

* ``EVENT``: optionally verifies id and signature, then hands the event to
  [SubscriptionRegistry.dispatch()][nostrdht.core.registry.SubscriptionRegistry.dispatch]
  under the frame's subscription id.
* ``OK``, ``EOSE``, ``CLOSED``, ``NOTICE``: logged, counted, and forwarded
  to the matching observer callback when one is set.
* Decode failures: logged at debug level, counted, dropped.

Nothing in here raises into the ingestion loop.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable
from typing import Any

from nostrdht.models.message import (
    ClosedMessage,
    DecodeFailure,
    EoseMessage,
    EventMessage,
    NoticeMessage,
    OkMessage,
)
from nostrdht.nips.nip01 import parse_inbound
from nostrdht.utils.keys import verify_event

from .callbacks import CallbackRunner
from .logger import Logger
from .metrics import INBOUND_MESSAGES
from .registry import SubscriptionRegistry


MessageObserver = Callable[[str, Any], Any]


class Dispatcher:
    """Route decoded relay messages to subscription handlers and observers.

    Args:
        registry: Registry that owns the subscription handlers.
        verify_events: Drop events whose id or signature does not verify.
        on_ok: Called as ``on_ok(url, OkMessage)``.
        on_eose: Called as ``on_eose(url, EoseMessage)``.
        on_closed: Called as ``on_closed(url, ClosedMessage)``.
        on_notice: Called as ``on_notice(url, NoticeMessage)``.

    Attributes:
        stats: Running counts by outcome (``dispatched``, ``unmatched``,
            ``invalid``, ``ok``, ``eose``, ``closed``, ``notice``,
            ``decode_failure``).
    """

    def __init__(  # noqa: PLR0913
        self,
        registry: SubscriptionRegistry,
        *,
        verify_events: bool = True,
        on_ok: MessageObserver | None = None,
        on_eose: MessageObserver | None = None,
        on_closed: MessageObserver | None = None,
        on_notice: MessageObserver | None = None,
    ) -> None:
        self._registry = registry
        self._verify_events = verify_events
        self._observers: dict[type, MessageObserver | None] = {
            OkMessage: on_ok,
            EoseMessage: on_eose,
            ClosedMessage: on_closed,
            NoticeMessage: on_notice,
        }
        self._logger = Logger("dispatcher")
        self._runner = CallbackRunner(self._logger)
        self.stats: Counter[str] = Counter()

    def on_inbound_frame(self, url: str, raw: str) -> None:
        """Decode and route one frame received from *url*."""
        message = parse_inbound(raw)

        if isinstance(message, DecodeFailure):
            self.stats["decode_failure"] += 1
            INBOUND_MESSAGES.labels(type="invalid").inc()
            self._logger.debug("frame_dropped", url=url, reason=message.reason)
            return

        INBOUND_MESSAGES.labels(type=message.TYPE.value).inc()

        if isinstance(message, EventMessage):
            self._route_event(url, message)
            return

        if isinstance(message, OkMessage):
            self.stats["ok"] += 1
            self._logger.debug(
                "event_acknowledged",
                url=url,
                event_id=message.event_id,
                accepted=message.accepted,
                message=message.message,
            )
        elif isinstance(message, EoseMessage):
            self.stats["eose"] += 1
            self._logger.debug("end_of_stored_events", url=url, subscription_id=message.subscription_id)
        elif isinstance(message, ClosedMessage):
            self.stats["closed"] += 1
            log = (
                self._logger.warning
                if message.subscription_id in self._registry
                else self._logger.debug
            )
            log(
                "subscription_closed_by_relay",
                url=url,
                subscription_id=message.subscription_id,
                message=message.message,
            )
        elif isinstance(message, NoticeMessage):
            self.stats["notice"] += 1
            self._logger.info("relay_notice", url=url, message=message.message)

        observer = self._observers.get(type(message))
        if observer is not None:
            self._runner.invoke(observer, url, message, url=url)

    async def cancel_pending(self) -> None:
        """Cancel running asynchronous observers."""
        await self._runner.cancel_all()

    def _route_event(self, url: str, message: EventMessage) -> None:
        event = message.event
        if self._verify_events and not verify_event(event):
            self.stats["invalid"] += 1
            self._logger.warning("invalid_event_dropped", url=url, event_id=event.id)
            return

        if self._registry.dispatch(message.subscription_id, event):
            self.stats["dispatched"] += 1
        else:
            self.stats["unmatched"] += 1
