"""
Subscription registry: subscription ids, (tag, topic) pairs and handlers.

Keeps three mappings in sync:

```text
(tag, topic)     -> {subscription_id, ...}
subscription_id  -> (tag, topic)          (via Subscription.key)
subscription_id  -> handler               (via Subscription.handler)
```

A (tag, topic) pair may carry several subscription ids, one per
[register()][nostrdht.core.registry.SubscriptionRegistry.register] call, so
two independent listeners on the same topic never receive each other's
``CLOSE``. Teardown is available per id
([unregister()][nostrdht.core.registry.SubscriptionRegistry.unregister]) and
per topic
([unregister_topic()][nostrdht.core.registry.SubscriptionRegistry.unregister_topic]).

The registry is mutated only from the event loop, so it holds no locks.

See Also:
    [Dispatcher][nostrdht.core.dispatcher.Dispatcher]: Calls
        [dispatch()][nostrdht.core.registry.SubscriptionRegistry.dispatch]
        for every decoded ``EVENT`` frame.
    [NostrDht][nostrdht.core.dht.NostrDht]: Pairs registry changes with
        ``REQ``/``CLOSE`` broadcasts.
"""

from __future__ import annotations

import secrets
from collections.abc import Iterator
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from nostrdht.models.constants import DEFAULT_SUBSCRIPTION_ID_LENGTH, SUBSCRIPTION_ID_CHARSET
from nostrdht.models.subscription import EventHandler, Subscription

from .callbacks import CallbackRunner
from .logger import Logger


if TYPE_CHECKING:
    from nostrdht.models.event import Event


class RegistryConfig(BaseModel):
    """Subscription id generation settings.

    Note:
        NIP-01 caps subscription ids at 64 characters; relays may reject
        longer ones.
    """

    id_length: int = Field(
        default=DEFAULT_SUBSCRIPTION_ID_LENGTH,
        ge=8,
        le=64,
        description="Characters per generated subscription id",
    )
    charset: str = Field(
        default=SUBSCRIPTION_ID_CHARSET,
        min_length=2,
        description="Alphabet subscription ids are drawn from",
    )


class SubscriptionRegistry:
    """In-memory registry of active subscriptions.

    Examples:
        ```python
        registry = SubscriptionRegistry()
        sub = registry.register("t", "demo", print)
        registry.dispatch(sub.subscription_id, event)   # print(event)
        registry.unregister(sub.subscription_id)
        ```
    """

    def __init__(self, config: RegistryConfig | None = None) -> None:
        self._config = config or RegistryConfig()
        self._by_id: dict[str, Subscription] = {}
        self._by_key: dict[tuple[str, str], dict[str, None]] = {}
        self._logger = Logger("registry")
        self._handlers = CallbackRunner(self._logger)

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, subscription_id: object) -> bool:
        return subscription_id in self._by_id

    def __iter__(self) -> Iterator[Subscription]:
        return iter(list(self._by_id.values()))

    @property
    def config(self) -> RegistryConfig:
        return self._config

    @property
    def pending_handlers(self) -> int:
        """Asynchronous handler invocations still running."""
        return len(self._handlers)

    def _new_id(self) -> str:
        charset, length = self._config.charset, self._config.id_length
        while True:
            candidate = "".join(secrets.choice(charset) for _ in range(length))
            if candidate not in self._by_id:
                return candidate
            self._logger.debug("subscription_id_collision")

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register(self, tag: str, topic: str, handler: EventHandler) -> Subscription:
        """Register *handler* for events tagged ``[tag, topic]``.

        Returns:
            The new [Subscription][nostrdht.models.subscription.Subscription];
            its ``subscription_id`` is unique among live subscriptions.

        Raises:
            TypeError: If *handler* is not callable.
            ValueError: If *tag* or *topic* is empty.
        """
        subscription = Subscription(
            subscription_id=self._new_id(),
            tag=tag,
            topic=topic,
            handler=handler,
        )
        self._by_id[subscription.subscription_id] = subscription
        self._by_key.setdefault(subscription.key, {})[subscription.subscription_id] = None
        self._logger.info(
            "subscription_registered",
            subscription_id=subscription.subscription_id,
            tag=tag,
            topic=topic,
        )
        return subscription

    def unregister(self, subscription_id: str) -> Subscription | None:
        """Remove one subscription and all of its mappings.

        Returns:
            The removed subscription, or ``None`` if the id was not registered.
        """
        subscription = self._by_id.pop(subscription_id, None)
        if subscription is None:
            return None
        ids = self._by_key.get(subscription.key)
        if ids is not None:
            ids.pop(subscription_id, None)
            if not ids:
                del self._by_key[subscription.key]
        self._logger.info(
            "subscription_unregistered",
            subscription_id=subscription_id,
            tag=subscription.tag,
            topic=subscription.topic,
        )
        return subscription

    def unregister_topic(self, tag: str, topic: str) -> list[Subscription]:
        """Remove every subscription listening on ``(tag, topic)``."""
        return [
            removed
            for subscription_id in self.ids_for(tag, topic)
            if (removed := self.unregister(subscription_id)) is not None
        ]

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get(self, subscription_id: str) -> Subscription | None:
        return self._by_id.get(subscription_id)

    def ids_for(self, tag: str, topic: str) -> tuple[str, ...]:
        """Subscription ids registered on ``(tag, topic)``, oldest first."""
        return tuple(self._by_key.get((tag, topic), ()))

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    def dispatch(self, subscription_id: str, event: Event) -> bool:
        """Deliver *event* to the handler registered under exactly *subscription_id*.

        Unknown ids are dropped silently: the subscription may have been
        closed while the relay still had events in flight. Coroutine handlers
        are scheduled as tasks. Handler errors are logged, never raised.

        Returns:
            True if a handler was found and invoked.
        """
        subscription = self._by_id.get(subscription_id)
        if subscription is None:
            self._logger.debug("dispatch_dropped", subscription_id=subscription_id)
            return False
        self._handlers.invoke(
            subscription.handler,
            event,
            subscription_id=subscription_id,
            event_id=event.id,
        )
        return True

    async def drain(self) -> None:
        """Wait for running asynchronous handlers to finish."""
        await self._handlers.drain()

    async def cancel_pending(self) -> None:
        """Cancel running asynchronous handlers."""
        await self._handlers.cancel_all()
