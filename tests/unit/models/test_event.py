"""
Unit tests for models.event module.

Tests:
- UnsignedEvent validation and canonical commitment array
- Event validation of id, pubkey, sig, kind, created_at and tags
- Event.from_dict() / to_dict() against the NIP-01 wire object
- tag_values() lookup
- Immutability
"""

from dataclasses import FrozenInstanceError

import pytest

from nostrdht.models import Event, UnsignedEvent


PUBKEY = "a" * 64
EVENT_ID = "b" * 64
SIG = "c" * 128


def _wire(**overrides):
    data = {
        "id": EVENT_ID,
        "pubkey": PUBKEY,
        "created_at": 1_700_000_000,
        "kind": 29333,
        "tags": [["t", "demo"]],
        "content": "hello",
        "sig": SIG,
    }
    data.update(overrides)
    return data


# =============================================================================
# UnsignedEvent
# =============================================================================


class TestUnsignedEvent:
    """UnsignedEvent construction and commitment."""

    def test_commitment_order(self):
        unsigned = UnsignedEvent(
            pubkey=PUBKEY, created_at=1, kind=29333, tags=[["t", "demo"]], content="hi"
        )
        assert unsigned.commitment() == [0, PUBKEY, 1, 29333, [["t", "demo"]], "hi"]

    def test_tags_frozen_to_tuples(self):
        unsigned = UnsignedEvent(pubkey=PUBKEY, created_at=1, kind=1, tags=[["t", "demo"]])
        assert unsigned.tags == (("t", "demo"),)

    def test_defaults(self):
        unsigned = UnsignedEvent(pubkey=PUBKEY, created_at=1, kind=1)
        assert unsigned.tags == ()
        assert unsigned.content == ""

    def test_uppercase_pubkey_rejected(self):
        with pytest.raises(ValueError, match="lowercase hex"):
            UnsignedEvent(pubkey="A" * 64, created_at=1, kind=1)

    def test_short_pubkey_rejected(self):
        with pytest.raises(ValueError, match="64 hex"):
            UnsignedEvent(pubkey="a" * 63, created_at=1, kind=1)

    def test_kind_out_of_range(self):
        with pytest.raises(ValueError, match="kind"):
            UnsignedEvent(pubkey=PUBKEY, created_at=1, kind=65536)

    def test_negative_created_at(self):
        with pytest.raises(ValueError, match="created_at"):
            UnsignedEvent(pubkey=PUBKEY, created_at=-1, kind=1)

    def test_bool_kind_rejected(self):
        with pytest.raises(TypeError, match="kind"):
            UnsignedEvent(pubkey=PUBKEY, created_at=1, kind=True)

    def test_string_tags_rejected(self):
        with pytest.raises(TypeError, match="tags"):
            UnsignedEvent(pubkey=PUBKEY, created_at=1, kind=1, tags="t")

    def test_non_string_tag_value_rejected(self):
        with pytest.raises(TypeError, match="tag value"):
            UnsignedEvent(pubkey=PUBKEY, created_at=1, kind=1, tags=[["t", 5]])

    def test_sign_with(self):
        unsigned = UnsignedEvent(pubkey=PUBKEY, created_at=1, kind=1, content="x")
        event = unsigned.sign_with(EVENT_ID, SIG)
        assert isinstance(event, Event)
        assert event.id == EVENT_ID
        assert event.sig == SIG
        assert event.unsigned() == unsigned


# =============================================================================
# Event
# =============================================================================


class TestEventFromDict:
    """Event.from_dict() parsing."""

    def test_valid(self):
        event = Event.from_dict(_wire())
        assert event.id == EVENT_ID
        assert event.tags == (("t", "demo"),)
        assert event.content == "hello"

    def test_missing_field(self):
        data = _wire()
        del data["sig"]
        with pytest.raises(ValueError, match="sig"):
            Event.from_dict(data)

    def test_missing_tags_defaults_empty(self):
        data = _wire()
        del data["tags"]
        assert Event.from_dict(data).tags == ()

    def test_not_a_mapping(self):
        with pytest.raises(TypeError):
            Event.from_dict(["not", "a", "dict"])

    def test_bad_sig_length(self):
        with pytest.raises(ValueError, match="sig"):
            Event.from_dict(_wire(sig="c" * 64))

    def test_kind_as_string(self):
        with pytest.raises(TypeError, match="kind"):
            Event.from_dict(_wire(kind="29333"))


class TestEventToDict:
    """Event.to_dict() rendering."""

    def test_round_trip(self):
        data = _wire()
        assert Event.from_dict(data).to_dict() == data

    def test_tags_rendered_as_lists(self):
        tags = Event.from_dict(_wire()).to_dict()["tags"]
        assert tags == [["t", "demo"]]
        assert isinstance(tags[0], list)


class TestEventTagValues:
    """Event.tag_values()."""

    def test_matching_tags(self):
        event = Event.from_dict(_wire(tags=[["t", "a"], ["p", PUBKEY], ["t", "b"]]))
        assert event.tag_values("t") == ("a", "b")

    def test_single_element_tag_ignored(self):
        event = Event.from_dict(_wire(tags=[["t"]]))
        assert event.tag_values("t") == ()


class TestEventImmutability:
    """Events are frozen."""

    def test_cannot_set_content(self):
        event = Event.from_dict(_wire())
        with pytest.raises(FrozenInstanceError):
            event.content = "changed"  # type: ignore[misc]
