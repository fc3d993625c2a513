"""
High-level publish/subscribe facade over a relay pool.

[NostrDht][nostrdht.core.dht.NostrDht] owns one identity, one
[ConnectionPool][nostrdht.core.pool.ConnectionPool], one
[SubscriptionRegistry][nostrdht.core.registry.SubscriptionRegistry] and one
[Dispatcher][nostrdht.core.dispatcher.Dispatcher], and exposes the
operations an application uses: connect, publish (once or periodically),
subscribe, and unsubscribe per id or per topic.

Every registry change is paired with the matching wire message: subscribing
broadcasts a ``REQ`` and unsubscribing broadcasts one ``CLOSE`` per removed
id. Relays that open after a subscription was made receive the ``REQ`` when
they open, so a subscription eventually reaches every live relay.

Examples:
    ```python
    async with NostrDht.from_yaml("config/nostrdht.yaml") as dht:
        if not await dht.start_connections():
            raise SystemExit(1)
        sub_id = await dht.subscribe_to_data("t", "demo", print)
        announcer = await dht.announce_data("hello", "t", "demo")
        ...
        await announcer.stop()
        await dht.unsubscribe(sub_id)
    ```
"""

from __future__ import annotations

import functools
from types import TracebackType
from typing import Any, Self

from pydantic import BaseModel, Field, model_validator

from nostrdht.models.constants import (
    DEFAULT_EVENT_KIND,
    DEFAULT_LOOKBACK_SECONDS,
    MAX_EVENT_KIND,
)
from nostrdht.models.subscription import EventHandler
from nostrdht.nips.nip01 import (
    build_close_message,
    build_publish_message,
    build_subscribe_message,
)
from nostrdht.utils.keys import Keypair, KeysConfig
from nostrdht.utils.transport import WebSocketTransport

from .announcer import Announcer, AnnouncerConfig
from .connection import Connection
from .dispatcher import Dispatcher, MessageObserver
from .logger import Logger
from .metrics import MetricsConfig
from .pool import BroadcastResult, ConnectionPool, PoolConfig
from .registry import RegistryConfig, SubscriptionRegistry
from .yaml import load_yaml


class DhtConfig(BaseModel):
    """Top-level configuration.

    See Also:
        [PoolConfig][nostrdht.core.pool.PoolConfig],
        [RegistryConfig][nostrdht.core.registry.RegistryConfig],
        [KeysConfig][nostrdht.utils.keys.KeysConfig],
        [AnnouncerConfig][nostrdht.core.announcer.AnnouncerConfig],
        [MetricsConfig][nostrdht.core.metrics.MetricsConfig]: Embedded models.
    """

    pool: PoolConfig = Field(default_factory=PoolConfig)
    subscriptions: RegistryConfig = Field(default_factory=RegistryConfig)
    keys: KeysConfig = Field(default_factory=KeysConfig)
    kind: int = Field(
        default=DEFAULT_EVENT_KIND, ge=0, le=MAX_EVENT_KIND, description="Event kind used"
    )
    lookback_seconds: int = Field(
        default=DEFAULT_LOOKBACK_SECONDS, ge=0, description="REQ 'since' offset from now"
    )
    min_connections: int = Field(
        default=5, ge=1, description="Live relays required by start_connections()"
    )
    connect_timeout: float = Field(
        default=60.0, gt=0.0, description="Default start_connections() timeout (seconds)"
    )
    announce: AnnouncerConfig = Field(default_factory=AnnouncerConfig)
    verify_events: bool = Field(default=True, description="Drop events failing verification")
    resubscribe_on_open: bool = Field(
        default=True, description="Send active REQs to every newly opened relay"
    )
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @model_validator(mode="after")
    def validate_min_connections(self) -> Self:
        """Ensure the pool can actually reach min_connections."""
        reachable = min(self.pool.target_connections, len(self.pool.relays))
        if self.min_connections > reachable:
            raise ValueError(
                f"min_connections ({self.min_connections}) exceeds what the pool can hold "
                f"({reachable}: target_connections={self.pool.target_connections}, "
                f"relays={len(self.pool.relays)})"
            )
        return self


class NostrDht:
    """Publish and subscribe to tagged events across many relays.

    Args:
        config: Full configuration; defaults to built-in relays and a fresh
            identity.
        transport: WebSocket transport passed to the pool.
        keypair: Identity override; takes precedence over ``config.keys``.
        on_ok, on_eose, on_closed, on_notice: Optional observers forwarded to
            the [Dispatcher][nostrdht.core.dispatcher.Dispatcher].
    """

    def __init__(  # noqa: PLR0913
        self,
        config: DhtConfig | None = None,
        *,
        transport: WebSocketTransport | None = None,
        keypair: Keypair | None = None,
        on_ok: MessageObserver | None = None,
        on_eose: MessageObserver | None = None,
        on_closed: MessageObserver | None = None,
        on_notice: MessageObserver | None = None,
    ) -> None:
        self._config = config or DhtConfig()
        self._keypair = keypair or self._config.keys.keypair
        self._logger = Logger("dht")

        self._registry = SubscriptionRegistry(self._config.subscriptions)
        self._dispatcher = Dispatcher(
            self._registry,
            verify_events=self._config.verify_events,
            on_ok=on_ok,
            on_eose=on_eose,
            on_closed=on_closed,
            on_notice=on_notice,
        )
        self._pool = ConnectionPool(
            self._config.pool,
            transport,
            on_frame=self._dispatcher.on_inbound_frame,
        )
        if self._config.resubscribe_on_open:
            self._pool.add_open_listener(self._replay_subscriptions)
        self._announcers: set[Announcer] = set()

    @classmethod
    def from_yaml(cls, config_path: str, **kwargs: Any) -> NostrDht:
        """Create an instance from a YAML file of [DhtConfig][nostrdht.core.dht.DhtConfig] fields.

        Raises:
            FileNotFoundError: If the configuration file does not exist.
            ConfigurationError: If the file is not a YAML mapping.
            pydantic.ValidationError: If a value is invalid.
        """
        return cls.from_dict(load_yaml(config_path), **kwargs)

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> NostrDht:
        return cls(config=DhtConfig(**data), **kwargs)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def config(self) -> DhtConfig:
        return self._config

    @property
    def keypair(self) -> Keypair:
        return self._keypair

    @property
    def public_key(self) -> str:
        return self._keypair.public_key

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    @property
    def announcers(self) -> tuple[Announcer, ...]:
        """Announcers started by this instance and not yet stopped."""
        return tuple(a for a in self._announcers if a.is_active)

    # -------------------------------------------------------------------------
    # Connections
    # -------------------------------------------------------------------------

    async def start_connections(
        self,
        minimum: int | None = None,
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> bool:
        """Start the pool and wait for enough live relays.

        Args:
            minimum: Live relays required; defaults to ``config.min_connections``.
            timeout: Seconds to wait; defaults to ``config.connect_timeout``.

        Returns:
            True once the minimum is reached, False on timeout. The pool
            keeps connecting in the background either way.
        """
        required = self._config.min_connections if minimum is None else minimum
        wait_s = self._config.connect_timeout if timeout is None else timeout
        await self._pool.start()
        return await self._pool.wait_for_minimum_connections(required, timeout=wait_s)

    # -------------------------------------------------------------------------
    # Publishing
    # -------------------------------------------------------------------------

    async def publish(self, message: str, tag: str, topic: str) -> BroadcastResult:
        """Sign *message* as an event tagged ``[tag, topic]`` and broadcast it once.

        Raises:
            SigningError: If the event cannot be signed.
        """
        wire = build_publish_message(message, tag, topic, self._keypair, kind=self._config.kind)
        result = await self._pool.broadcast(wire)
        self._logger.debug(
            "event_published", event_id=wire[1]["id"], tag=tag, topic=topic, sent=result.sent
        )
        return result

    async def announce_data(self, message: str, tag: str, topic: str) -> Announcer:
        """Publish now and then every ``config.announce.interval`` seconds.

        Each cycle signs a fresh event with the current time, so relays
        never see a stale ``created_at``.

        Returns:
            The running [Announcer][nostrdht.core.announcer.Announcer]; call
            ``await announcer.stop()`` to end it.
        """
        announcer = Announcer(
            functools.partial(self.publish, message, tag, topic),
            self._config.announce,
            label=f"{tag}/{topic}",
        )
        self._announcers.add(announcer)
        announcer.start()
        return announcer

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def _subscribe_message(self, subscription_id: str, tag: str, topic: str) -> list[Any]:
        return build_subscribe_message(
            tag,
            topic,
            subscription_id,
            kind=self._config.kind,
            lookback_seconds=self._config.lookback_seconds,
        )

    async def subscribe_to_data(self, tag: str, topic: str, handler: EventHandler) -> str:
        """Register *handler* for events tagged ``[tag, topic]`` and send ``REQ``.

        Returns:
            The new subscription id.
        """
        subscription = self._registry.register(tag, topic, handler)
        result = await self._pool.broadcast(
            self._subscribe_message(subscription.subscription_id, tag, topic)
        )
        self._logger.info(
            "subscribed",
            subscription_id=subscription.subscription_id,
            tag=tag,
            topic=topic,
            sent=result.sent,
        )
        return subscription.subscription_id

    async def unsubscribe(self, subscription_id: str) -> bool:
        """Remove one subscription and broadcast its ``CLOSE``.

        Returns:
            False if *subscription_id* was not registered.
        """
        if self._registry.unregister(subscription_id) is None:
            return False
        await self._pool.broadcast(build_close_message(subscription_id))
        return True

    async def unsubscribe_from_data(self, tag: str, topic: str) -> list[str]:
        """Remove every subscription on ``(tag, topic)``, broadcasting one ``CLOSE`` each.

        Returns:
            The removed subscription ids (empty if there were none).
        """
        removed = [s.subscription_id for s in self._registry.unregister_topic(tag, topic)]
        for subscription_id in removed:
            await self._pool.broadcast(build_close_message(subscription_id))
        self._logger.info("unsubscribed_topic", tag=tag, topic=topic, removed=len(removed))
        return removed

    async def _replay_subscriptions(self, connection: Connection) -> None:
        replayed = 0
        for subscription in self._registry:
            message = self._subscribe_message(
                subscription.subscription_id, subscription.tag, subscription.topic
            )
            if await self._pool.send(connection.url, message):
                replayed += 1
        if replayed:
            self._logger.debug("subscriptions_replayed", url=connection.url, count=replayed)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Stop announcers, shut the pool down and cancel running handlers and observers."""
        for announcer in list(self._announcers):
            await announcer.stop()
        self._announcers.clear()
        await self._pool.shutdown()
        await self._registry.cancel_pending()
        await self._dispatcher.cancel_pending()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
