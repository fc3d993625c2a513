"""Shared constants for the models layer.

Defines the protocol defaults, relay list, and enumerations used across the
codec, the relay pool, and the subscription registry. Placing them here keeps
the lower layers free of circular imports.

See Also:
    [nostrdht.nips.nip01][]: Uses [MessageType][nostrdht.models.constants.MessageType]
        to frame outbound and classify inbound messages.
    [nostrdht.core.pool][]: Uses [ConnectionState][nostrdht.models.constants.ConnectionState]
        and [RetryPolicy][nostrdht.models.constants.RetryPolicy].
"""

from __future__ import annotations

import string
from enum import StrEnum
from typing import Final


# Application-specific ephemeral kind carried by every announcement
DEFAULT_EVENT_KIND: Final[int] = 29333
MAX_EVENT_KIND: Final[int] = 65535

DEFAULT_LOOKBACK_SECONDS: Final[int] = 10

DEFAULT_SUBSCRIPTION_ID_LENGTH: Final[int] = 64
SUBSCRIPTION_ID_CHARSET: Final[str] = string.digits + string.ascii_letters

DEFAULT_TARGET_CONNECTIONS: Final[int] = 5
DEFAULT_MAINTENANCE_INTERVAL: Final[float] = 0.5
DEFAULT_POLL_INTERVAL: Final[float] = 2.0
DEFAULT_CONNECT_TIMEOUT: Final[float] = 10.0
DEFAULT_ANNOUNCE_INTERVAL: Final[float] = 15 * 60.0

DEFAULT_RELAYS: Final[tuple[str, ...]] = tuple(
    f"wss://{host}"
    for host in (
        "relay.nostr.net",
        "relay.snort.social",
        "relay.piazza.today",
        "relay.exit.pub",
        "nostr.lu.ke",
        "nostr.mom",
        "relay.urbanzap.space",
        "nostr.data.haus",
        "nostr.sathoarder.com",
        "relay.nostromo.social",
        "relay.nostr.bg",
        "nostr.stakey.net",
        "nostr.vulpem.com",
        "a.nos.lol",
        "eu.purplerelay.com",
        "nostr2.sanhauf.com",
        "e.nos.lol",
    )
)


class MessageType(StrEnum):
    """First element of every NIP-01 wire message.

    Attributes:
        EVENT: Outbound publish, or inbound event delivered for a subscription.
        REQ: Outbound subscription request.
        CLOSE: Outbound subscription teardown.
        OK: Inbound acceptance/denial of a published event.
        EOSE: Inbound end of stored events for a subscription.
        CLOSED: Inbound server-side termination of a subscription.
        NOTICE: Inbound human-readable relay message.
    """

    EVENT = "EVENT"
    REQ = "REQ"
    CLOSE = "CLOSE"
    OK = "OK"
    EOSE = "EOSE"
    CLOSED = "CLOSED"
    NOTICE = "NOTICE"


class ConnectionState(StrEnum):
    """Lifecycle state of a single relay connection.

    A URL with no connection object is ``idle``; it enters ``connecting``
    when the pool opens a socket, ``open`` once the transport confirms the
    handshake, and ``closed`` on error or explicit close, after which the
    pool evicts it and the URL becomes idle again.
    """

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class RetryPolicy(StrEnum):
    """Delay strategy applied to a relay URL after a failed connection.

    Attributes:
        FIXED: Retry on the URL's next turn through the ring.
        LINEAR: Wait ``initial_delay * failures`` seconds.
        EXPONENTIAL: Wait ``initial_delay * 2 ** (failures - 1)`` seconds.
    """

    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"
