"""Nostr identity, event hashing, and signing.

Holds everything that touches key material: generating or loading the
process identity, computing the canonical NIP-01 event hash, producing the
Schnorr signature over it, and verifying received events. Key generation,
signing, and signature verification are delegated to ``nostr_sdk``; the
hash is computed locally with ``hashlib`` so the canonical serialization is
explicit and testable.

Warning:
    Private keys must never be written to configuration files or logs. Use
    the environment variable named by
    [KeysConfig.keys_env][nostrdht.utils.keys.KeysConfig] or let the client
    generate a throwaway identity per process.

Examples:
    ```python
    keypair = generate_keypair()
    unsigned = UnsignedEvent(pubkey=keypair.public_key, created_at=now,
                             kind=29333, tags=[["t", "demo"]], content="hello")
    event = sign_event(unsigned, keypair)
    assert verify_event(event)
    ```
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any

from nostr_sdk import Event as NostrEvent
from nostr_sdk import Keys
from pydantic import BaseModel, Field, model_validator

from nostrdht.exceptions import ConfigurationError, SigningError
from nostrdht.models.event import Event, UnsignedEvent


ENV_PRIVATE_KEY = "NOSTR_PRIVATE_KEY"  # pragma: allowlist secret

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Keypair:
    """A Schnorr identity backed by ``nostr_sdk.Keys``.

    Attributes:
        keys: The underlying SDK key object (holds the secret).
        public_key: x-only public key, 64 lowercase hex characters.
    """

    keys: Keys = field(repr=False)
    public_key: str = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "public_key", self.keys.public_key().to_hex())

    @property
    def private_key(self) -> str:
        """The secret key as 64 hex characters. Never log this."""
        return self.keys.secret_key().to_hex()

    @classmethod
    def parse(cls, secret: str) -> Keypair:
        """Load a keypair from an ``nsec1`` bech32 or 64-char hex secret key.

        Raises:
            ConfigurationError: If the secret cannot be parsed.
        """
        try:
            return cls(Keys.parse(secret.strip()))
        except Exception as e:  # nostr-sdk FFI errors share no Python base class
            raise ConfigurationError(f"Invalid private key: {e}") from None


def generate_keypair() -> Keypair:
    """Generate a fresh random identity."""
    return Keypair(Keys.generate())


def load_keypair_from_env(env_var: str = ENV_PRIVATE_KEY) -> Keypair | None:
    """Load a keypair from *env_var*, or return ``None`` if it is unset or empty.

    Raises:
        ConfigurationError: If the variable is set but holds an invalid key.
    """
    value = os.getenv(env_var)
    if not value:
        return None
    return Keypair.parse(value)


def serialize_commitment(unsigned: UnsignedEvent) -> str:
    """Return the canonical JSON text that the event id commits to.

    Compact separators and raw UTF-8 (``ensure_ascii=False``) as required by
    NIP-01; array order is part of the wire contract.
    """
    return json.dumps(unsigned.commitment(), separators=(",", ":"), ensure_ascii=False)


def compute_event_hash(unsigned: UnsignedEvent) -> str:
    """SHA-256 of the canonical serialization, as 64 lowercase hex characters.

    Deterministic: identical fields always produce an identical hash.

    Raises:
        SigningError: If a field holds text that is not encodable as UTF-8
            (lone surrogates).
    """
    try:
        data = serialize_commitment(unsigned).encode("utf-8")
    except UnicodeEncodeError as e:
        raise SigningError(f"Event is not valid UTF-8: {e.reason}") from None
    return hashlib.sha256(data).hexdigest()


def sign(event_hash: str, keypair: Keypair) -> str:
    """Schnorr-sign the raw bytes of *event_hash* and return the hex signature.

    Raises:
        SigningError: If the hash is not 32 bytes of hex or signing fails.
    """
    try:
        digest = bytes.fromhex(event_hash)
    except (TypeError, ValueError) as e:
        raise SigningError(f"Event hash is not valid hex: {e}") from None
    if len(digest) != 32:
        raise SigningError(f"Event hash must be 32 bytes, got {len(digest)}")

    try:
        return keypair.keys.sign_schnorr(digest)
    except Exception as e:  # nostr-sdk FFI errors share no Python base class
        raise SigningError(f"Schnorr signing failed: {e}") from e


def sign_event(unsigned: UnsignedEvent, keypair: Keypair) -> Event:
    """Hash and sign *unsigned*, returning the complete event.

    Raises:
        SigningError: If ``unsigned.pubkey`` does not belong to *keypair* or
            signing fails.
    """
    if unsigned.pubkey != keypair.public_key:
        raise SigningError("Event pubkey does not match the signing keypair")
    event_hash = compute_event_hash(unsigned)
    return unsigned.sign_with(event_hash, sign(event_hash, keypair))


def verify_event(event: Event) -> bool:
    """Return True if *event*'s id matches its fields and its signature verifies.

    The id is recomputed locally first, so tampered fields are rejected
    without touching the signature primitive. Never raises.
    """
    try:
        if compute_event_hash(event.unsigned()) != event.id:
            logger.debug("event_id_mismatch id=%s", event.id)
            return False
        return bool(NostrEvent.from_json(json.dumps(event.to_dict())).verify())
    except Exception as e:  # nostr-sdk FFI errors share no Python base class
        logger.debug("event_verify_failed id=%s error=%s", event.id, e)
        return False


class KeysConfig(BaseModel):
    """Pydantic model resolving the client identity at validation time.

    When the environment variable named by ``keys_env`` is set, its key is
    loaded; otherwise a fresh keypair is generated, giving the process a new
    identity on every start.

    Warning:
        ``keypair`` holds a live private key; never serialize this model.
    """

    model_config = {"arbitrary_types_allowed": True}

    keys_env: str = Field(
        default=ENV_PRIVATE_KEY,
        min_length=1,
        description="Environment variable holding an optional private key",
    )
    keypair: Keypair = Field(description="Resolved identity", exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _resolve_keypair(cls, data: Any) -> Any:
        if data is None:
            data = {}
        if isinstance(data, dict) and "keypair" not in data:
            data = dict(data)
            env_var = data.get("keys_env", ENV_PRIVATE_KEY)
            data["keypair"] = load_keypair_from_env(env_var) or generate_keypair()
        return data
