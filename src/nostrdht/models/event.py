"""
Immutable Nostr event models.

[UnsignedEvent][nostrdht.models.event.UnsignedEvent] holds the five fields
that feed the canonical NIP-01 hash; [Event][nostrdht.models.event.Event] is
the signed, content-addressed record that travels on the wire. Both are
frozen dataclasses validated at construction time, so any ``Event`` instance
is at least structurally well-formed. Cryptographic validity (hash and
signature) is checked by [verify_event()][nostrdht.utils.keys.verify_event].

See Also:
    [nostrdht.utils.keys][]: Computes the id and signature of an
        ``UnsignedEvent``.
    [nostrdht.nips.nip01][]: Wraps events into ``EVENT`` wire messages and
        parses them back out of inbound frames.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ._validation import validate_hex, validate_instance, validate_int
from .constants import MAX_EVENT_KIND


Tags = tuple[tuple[str, ...], ...]


def _freeze_tags(tags: Any) -> Tags:
    """Convert a sequence of string sequences into nested tuples."""
    if isinstance(tags, str) or not isinstance(tags, Sequence):
        raise TypeError(f"tags must be a sequence, got {type(tags).__name__}")
    frozen: list[tuple[str, ...]] = []
    for tag in tags:
        if isinstance(tag, str) or not isinstance(tag, Sequence):
            raise TypeError(f"each tag must be a sequence, got {type(tag).__name__}")
        for value in tag:
            validate_instance(value, str, "tag value")
        frozen.append(tuple(tag))
    return tuple(frozen)


@dataclass(frozen=True, slots=True)
class UnsignedEvent:
    """The hashed portion of a Nostr event.

    Attributes:
        pubkey: Author public key, 64 lowercase hex characters.
        created_at: Unix timestamp in seconds.
        kind: Event kind in ``[0, 65535]``.
        tags: Ordered tags, each an ordered tuple of strings.
        content: Arbitrary string payload.

    Raises:
        TypeError: If a field has the wrong type.
        ValueError: If a field is out of range or badly encoded.
    """

    pubkey: str
    created_at: int
    kind: int
    tags: Tags = field(default=())
    content: str = ""

    def __post_init__(self) -> None:
        validate_hex(self.pubkey, "pubkey", 64)
        validate_int(self.created_at, "created_at")
        validate_int(self.kind, "kind", maximum=MAX_EVENT_KIND)
        object.__setattr__(self, "tags", _freeze_tags(self.tags))
        validate_instance(self.content, str, "content")

    def commitment(self) -> list[Any]:
        """Return the canonical ``[0, pubkey, created_at, kind, tags, content]`` array."""
        return [
            0,
            self.pubkey,
            self.created_at,
            self.kind,
            [list(tag) for tag in self.tags],
            self.content,
        ]

    def sign_with(self, event_id: str, sig: str) -> Event:
        """Attach a precomputed id and signature, producing an [Event][nostrdht.models.event.Event]."""
        return Event(
            id=event_id,
            pubkey=self.pubkey,
            created_at=self.created_at,
            kind=self.kind,
            tags=self.tags,
            content=self.content,
            sig=sig,
        )


@dataclass(frozen=True, slots=True)
class Event:
    """Signed, content-addressed Nostr event.

    ``id`` is the SHA-256 of the canonical serialization of
    ``[0, pubkey, created_at, kind, tags, content]`` and ``sig`` is the
    Schnorr signature of ``id``'s raw bytes under ``pubkey``.

    Examples:
        ```python
        event = Event.from_dict(json.loads(raw)[2])
        event.tag_values("t")   # ('demo',)
        event.to_dict()["content"]
        ```
    """

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: Tags
    content: str
    sig: str

    def __post_init__(self) -> None:
        validate_hex(self.id, "id", 64)
        validate_hex(self.pubkey, "pubkey", 64)
        validate_int(self.created_at, "created_at")
        validate_int(self.kind, "kind", maximum=MAX_EVENT_KIND)
        object.__setattr__(self, "tags", _freeze_tags(self.tags))
        validate_instance(self.content, str, "content")
        validate_hex(self.sig, "sig", 128)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Event:
        """Build an Event from its NIP-01 JSON object.

        Raises:
            TypeError: If ``data`` is not a mapping or a field has the wrong type.
            ValueError: If a required field is missing or malformed.
        """
        validate_instance(data, Mapping, "event")
        try:
            return cls(
                id=data["id"],
                pubkey=data["pubkey"],
                created_at=data["created_at"],
                kind=data["kind"],
                tags=data.get("tags", []),
                content=data["content"],
                sig=data["sig"],
            )
        except KeyError as e:
            raise ValueError(f"event is missing field {e.args[0]!r}") from None

    def to_dict(self) -> dict[str, Any]:
        """Return the NIP-01 JSON object for this event."""
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    def unsigned(self) -> UnsignedEvent:
        """Return the hashed fields of this event."""
        return UnsignedEvent(
            pubkey=self.pubkey,
            created_at=self.created_at,
            kind=self.kind,
            tags=self.tags,
            content=self.content,
        )

    def tag_values(self, name: str) -> tuple[str, ...]:
        """Return the first value of every tag named *name*."""
        return tuple(tag[1] for tag in self.tags if len(tag) >= 2 and tag[0] == name)
