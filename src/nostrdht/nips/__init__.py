"""Nostr Implementation Possibilities -- protocol framing.

The NIPs layer sits in the middle of the diamond DAG, depending on
[nostrdht.models][nostrdht.models] and [nostrdht.utils][nostrdht.utils].
Only NIP-01 is implemented: the ``EVENT``/``REQ``/``CLOSE`` messages a client
sends and the ``EVENT``/``OK``/``EOSE``/``CLOSED``/``NOTICE`` messages it
receives.

Attributes:
    build_publish_message: Signed ``["EVENT", <event>]``.
    build_subscribe_message: ``["REQ", <id>, <filter>]`` with a lookback window.
    build_close_message: ``["CLOSE", <id>]``.
    serialize: Compact JSON text frame.
    parse_inbound: Frame decoder that never raises.
"""

from nostrdht.nips.nip01 import (
    build_close_message,
    build_publish_message,
    build_subscribe_message,
    parse_inbound,
    serialize,
)


__all__ = [
    "build_close_message",
    "build_publish_message",
    "build_subscribe_message",
    "parse_inbound",
    "serialize",
]
