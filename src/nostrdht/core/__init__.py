"""Core layer: relay pool, subscription registry, dispatcher and facade.

Sits at the top of the diamond DAG, depending on
[nostrdht.models][nostrdht.models], [nostrdht.nips][nostrdht.nips] and
[nostrdht.utils][nostrdht.utils].

Attributes:
    NostrDht: Publish/subscribe facade wiring everything below together.
        See [NostrDht][nostrdht.core.dht.NostrDht].
    ConnectionPool: Maintains a target number of live relay connections and
        broadcasts to them. See [ConnectionPool][nostrdht.core.pool.ConnectionPool].
    SubscriptionRegistry: Maps subscription ids to (tag, topic) pairs and
        handlers.
    Dispatcher: Decodes inbound frames and routes events to handlers.
    Announcer: Periodic re-publisher built on
        [BaseService][nostrdht.core.base_service.BaseService].
    Logger: Structured logger supporting key=value and JSON output modes.
    MetricsServer: Prometheus ``/metrics`` HTTP endpoint.
    load_yaml: Safe YAML loading with ``yaml.safe_load()``.

Examples:
    ```python
    from nostrdht.core import NostrDht

    async with NostrDht() as dht:
        await dht.start_connections()
        await dht.publish("hello", "t", "demo")
    ```
"""

from .announcer import Announcer, AnnouncerConfig
from .base_service import BaseService, BaseServiceConfig, ConfigT
from .callbacks import CallbackRunner
from .connection import (
    Closed,
    Connection,
    Failed,
    MessageReceived,
    Opened,
    TransportEvent,
)
from .dht import DhtConfig, NostrDht
from .dispatcher import Dispatcher
from .logger import Logger, StructuredFormatter, format_kv_pairs, setup_logging
from .metrics import (
    BROADCAST_MESSAGES,
    INBOUND_MESSAGES,
    RELAY_CONNECT_ATTEMPTS,
    RELAY_CONNECTIONS,
    SERVICE_COUNTER,
    SERVICE_GAUGE,
    MetricsConfig,
    MetricsServer,
)
from .pool import BroadcastResult, ConnectionPool, PoolConfig, PoolRetryConfig
from .registry import RegistryConfig, SubscriptionRegistry
from .yaml import load_yaml


__all__ = [
    "BROADCAST_MESSAGES",
    "INBOUND_MESSAGES",
    "RELAY_CONNECTIONS",
    "RELAY_CONNECT_ATTEMPTS",
    "SERVICE_COUNTER",
    "SERVICE_GAUGE",
    "Announcer",
    "AnnouncerConfig",
    "BaseService",
    "BaseServiceConfig",
    "BroadcastResult",
    "CallbackRunner",
    "Closed",
    "ConfigT",
    "Connection",
    "ConnectionPool",
    "DhtConfig",
    "Dispatcher",
    "Failed",
    "Logger",
    "MessageReceived",
    "MetricsConfig",
    "MetricsServer",
    "NostrDht",
    "Opened",
    "PoolConfig",
    "PoolRetryConfig",
    "RegistryConfig",
    "StructuredFormatter",
    "SubscriptionRegistry",
    "TransportEvent",
    "format_kv_pairs",
    "load_yaml",
    "setup_logging",
]
