r"""nostrdht -- topic-based publish/subscribe over a pool of Nostr relays.

A process holds one Schnorr identity, publishes signed events tagged with a
topic, and subscribes to live streams of events matching a tag/topic
filter, aggregated across many independent and unreliable relays.

Architecture follows a **diamond DAG** dependency structure where imports
flow strictly downward:

```text
               core            Pool, registry, dispatcher, facade, logging
             /  |   \
          nips  |  utils       NIP-01 codec; keys and WebSocket transport
             \  |   /
              models           Pure frozen dataclasses (zero I/O)
```

Attributes:
    models: Events, filters, subscriptions, relays, inbound messages.
    utils: Key management, event hashing and signing, WebSocket transport.
    nips: NIP-01 message building and parsing.
    core: Connection pool, subscription registry, dispatcher, announcer,
        the [NostrDht][nostrdht.core.dht.NostrDht] facade, logging, metrics.

Note:
    Top-level imports (``from nostrdht import NostrDht``) use lazy loading
    and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("nostrdht")

__all__ = [
    "Announcer",
    "BroadcastResult",
    "ConnectionPool",
    "DhtConfig",
    "Dispatcher",
    "Event",
    "Filter",
    "Keypair",
    "Logger",
    "NostrDht",
    "PoolConfig",
    "Relay",
    "Subscription",
    "SubscriptionRegistry",
    "UnsignedEvent",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "Announcer": ("nostrdht.core", "Announcer"),
    "BroadcastResult": ("nostrdht.core", "BroadcastResult"),
    "ConnectionPool": ("nostrdht.core", "ConnectionPool"),
    "DhtConfig": ("nostrdht.core", "DhtConfig"),
    "Dispatcher": ("nostrdht.core", "Dispatcher"),
    "Logger": ("nostrdht.core", "Logger"),
    "NostrDht": ("nostrdht.core", "NostrDht"),
    "PoolConfig": ("nostrdht.core", "PoolConfig"),
    "SubscriptionRegistry": ("nostrdht.core", "SubscriptionRegistry"),
    "Event": ("nostrdht.models", "Event"),
    "Filter": ("nostrdht.models", "Filter"),
    "Relay": ("nostrdht.models", "Relay"),
    "Subscription": ("nostrdht.models", "Subscription"),
    "UnsignedEvent": ("nostrdht.models", "UnsignedEvent"),
    "Keypair": ("nostrdht.utils", "Keypair"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'nostrdht' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
