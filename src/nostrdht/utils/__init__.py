"""Utilities shared by the NIPs and core layers.

Attributes:
    Keypair: Schnorr identity backed by ``nostr_sdk.Keys``.
    KeysConfig: Pydantic model resolving the identity from the environment.
    generate_keypair, compute_event_hash, sign, sign_event, verify_event:
        Event hashing and signature primitives.
    WebSocketTransport, WebSocketAdapter: Interface the relay pool drives.
    AiohttpTransport: aiohttp implementation of that interface.
"""

from nostrdht.utils.keys import (
    Keypair,
    KeysConfig,
    compute_event_hash,
    generate_keypair,
    load_keypair_from_env,
    sign,
    sign_event,
    verify_event,
)
from nostrdht.utils.transport import (
    AiohttpTransport,
    AiohttpWebSocketAdapter,
    WebSocketAdapter,
    WebSocketTransport,
)


__all__ = [
    "AiohttpTransport",
    "AiohttpWebSocketAdapter",
    "Keypair",
    "KeysConfig",
    "WebSocketAdapter",
    "WebSocketTransport",
    "compute_event_hash",
    "generate_keypair",
    "load_keypair_from_env",
    "sign",
    "sign_event",
    "verify_event",
]
