"""
Subscription filter and registry entry models.

A [Filter][nostrdht.models.subscription.Filter] is the ``REQ`` filter object
of NIP-01 restricted to what this client uses: a set of kinds, a ``since``
lower bound, and single-letter tag filters. A
[Subscription][nostrdht.models.subscription.Subscription] binds a
server-visible subscription id to a local (tag, topic) pair and a handler.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from ._validation import validate_int, validate_str_not_empty


if TYPE_CHECKING:
    from .event import Event


EventHandler = Callable[["Event"], Any]


@dataclass(frozen=True, slots=True)
class Filter:
    """NIP-01 ``REQ`` filter.

    Attributes:
        kinds: Accepted event kinds (empty means any kind).
        since: Oldest accepted ``created_at``, or ``None`` for no bound.
        tag_filter: Tag letter to accepted values, rendered as ``"#<letter>"``.
    """

    kinds: frozenset[int] = frozenset()
    since: int | None = None
    tag_filter: Mapping[str, frozenset[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "kinds", frozenset(self.kinds))
        for kind in self.kinds:
            validate_int(kind, "kind")
        if self.since is not None:
            validate_int(self.since, "since")
        frozen: dict[str, frozenset[str]] = {}
        for letter, values in self.tag_filter.items():
            validate_str_not_empty(letter, "tag name")
            frozen[letter] = frozenset(values)
        object.__setattr__(self, "tag_filter", MappingProxyType(frozen))

    @classmethod
    def for_topic(cls, tag: str, topic: str, *, kind: int, since: int | None = None) -> Filter:
        """Build the single-kind, single-tag filter used by topic subscriptions."""
        return cls(kinds=frozenset({kind}), since=since, tag_filter={tag: frozenset({topic})})

    def to_dict(self) -> dict[str, Any]:
        """Render the filter as its wire JSON object."""
        data: dict[str, Any] = {}
        if self.kinds:
            data["kinds"] = sorted(self.kinds)
        if self.since is not None:
            data["since"] = self.since
        for letter in sorted(self.tag_filter):
            data[f"#{letter}"] = sorted(self.tag_filter[letter])
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Filter:
        """Parse a wire filter object, ignoring keys this client does not use."""
        tag_filter = {
            key[1:]: frozenset(values)
            for key, values in data.items()
            if key.startswith("#") and len(key) > 1
        }
        return cls(
            kinds=frozenset(data.get("kinds", ())),
            since=data.get("since"),
            tag_filter=tag_filter,
        )

    def matches(self, event: Event) -> bool:
        """Return True if *event* satisfies every clause of this filter."""
        if self.kinds and event.kind not in self.kinds:
            return False
        if self.since is not None and event.created_at < self.since:
            return False
        for letter, accepted in self.tag_filter.items():
            if not accepted.intersection(event.tag_values(letter)):
                return False
        return True


@dataclass(frozen=True, slots=True)
class Subscription:
    """A registered subscription.

    Attributes:
        subscription_id: Opaque id sent to relays in ``REQ``/``CLOSE``.
        tag: Tag letter filtered on (e.g. ``"t"``).
        topic: Tag value filtered on.
        handler: Callback invoked once per delivered event.
        created_at: Registration time (unix seconds, float).
    """

    subscription_id: str
    tag: str
    topic: str
    handler: EventHandler = field(repr=False, compare=False)
    created_at: float = field(default_factory=time.time, compare=False)

    def __post_init__(self) -> None:
        validate_str_not_empty(self.subscription_id, "subscription_id")
        validate_str_not_empty(self.tag, "tag")
        validate_str_not_empty(self.topic, "topic")
        if not callable(self.handler):
            raise TypeError("handler must be callable")

    @property
    def key(self) -> tuple[str, str]:
        """The (tag, topic) pair this subscription listens on."""
        return (self.tag, self.topic)
