"""Pure frozen dataclasses for events, filters, relays, and inbound messages.

The models layer is the foundation of the diamond DAG. Apart from ``rfc3986``
for relay URL parsing it depends only on the standard library and performs no
I/O. Every model uses ``@dataclass(frozen=True, slots=True)`` and validates in
``__post_init__``, so invalid instances never escape the constructor.

Attributes:
    Event: Signed, content-addressed Nostr event.
    UnsignedEvent: The five hashed fields of an event.
    Filter: NIP-01 ``REQ`` filter (kinds, since, tag filters).
    Subscription: Registry entry binding an id to a (tag, topic) and handler.
    Relay: Normalized ``ws``/``wss`` relay URL.
    EventMessage, OkMessage, EoseMessage, ClosedMessage, NoticeMessage:
        Decoded relay-to-client messages.
    DecodeFailure: Marker for frames that could not be decoded.
"""

from .constants import (
    DEFAULT_EVENT_KIND,
    DEFAULT_LOOKBACK_SECONDS,
    DEFAULT_RELAYS,
    ConnectionState,
    MessageType,
    RetryPolicy,
)
from .event import Event, Tags, UnsignedEvent
from .message import (
    ClosedMessage,
    DecodeFailure,
    EoseMessage,
    EventMessage,
    InboundMessage,
    NoticeMessage,
    OkMessage,
)
from .relay import Relay
from .subscription import EventHandler, Filter, Subscription


__all__ = [
    "DEFAULT_EVENT_KIND",
    "DEFAULT_LOOKBACK_SECONDS",
    "DEFAULT_RELAYS",
    "ClosedMessage",
    "ConnectionState",
    "DecodeFailure",
    "EoseMessage",
    "Event",
    "EventHandler",
    "EventMessage",
    "Filter",
    "InboundMessage",
    "MessageType",
    "NoticeMessage",
    "OkMessage",
    "Relay",
    "RetryPolicy",
    "Subscription",
    "Tags",
    "UnsignedEvent",
]
