"""Tests for models.event module."""

import json
from dataclasses import FrozenInstanceError

import pytest

from tests.conftest import PUBKEY, ZAPPER, hex_id, make_event
from zapview.models import DedupKey, Event, EventKind, Reference, Tag


def _payload(**overrides):
    data = {
        "id": hex_id("payload"),
        "pubkey": ZAPPER,
        "created_at": 1_700_000_000,
        "kind": 9735,
        "tags": [["p", PUBKEY], ["bolt11", "lnbc210n1p"]],
        "content": "",
        "sig": "f" * 128,
    }
    data.update(overrides)
    return data


class TestTag:
    """Tag parsing."""

    def test_from_list(self):
        tag = Tag.from_list(["e", "abc", "wss://relay.test"])
        assert tag.name == "e"
        assert tag.values == ("abc", "wss://relay.test")
        assert tag.value == "abc"

    def test_bare_tag_has_no_value(self):
        assert Tag.from_list(["t"]).value is None

    def test_empty_tag_rejected(self):
        with pytest.raises(ValueError, match="non-empty"):
            Tag.from_list([])

    def test_non_string_item_rejected(self):
        with pytest.raises(TypeError):
            Tag.from_list(["e", 1])

    def test_to_list(self):
        assert Tag("p", ("x",)).to_list() == ["p", "x"]


class TestConstruction:
    """Field validation in __post_init__."""

    def test_valid_event(self):
        event = make_event(kind=EventKind.ZAP_RECEIPT, tags=[["p", PUBKEY]])
        assert event.kind == 9735
        assert event.reference is None
        assert event.is_realtime is False
        assert event.zap is None

    def test_uppercase_id_rejected(self):
        with pytest.raises(ValueError, match="64 lowercase hex"):
            make_event(event_id="A" * 64)

    def test_short_pubkey_rejected(self):
        with pytest.raises(ValueError):
            make_event(pubkey="ab")

    def test_negative_created_at_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            make_event(created_at=-1)

    def test_bool_created_at_rejected(self):
        with pytest.raises(TypeError):
            Event(id=hex_id(), pubkey=ZAPPER, created_at=True, kind=1)

    def test_kind_out_of_range(self):
        with pytest.raises(ValueError, match="kind"):
            make_event(kind=70_000)

    def test_frozen(self):
        event = make_event()
        with pytest.raises(FrozenInstanceError):
            event.content = "changed"  # type: ignore[misc]


class TestIdentity:
    """Equality and hashing use the id only."""

    def test_same_id_equal(self):
        event_id = hex_id("same")
        a = make_event(event_id=event_id, content="a")
        b = make_event(event_id=event_id, content="b")
        assert a == b
        assert hash(a) == hash(b)
        assert len({a, b}) == 1

    def test_different_ids_not_equal(self):
        assert make_event() != make_event()

    def test_dedup_key(self):
        event = make_event(kind=9735, created_at=5, content="x")
        assert event.dedup_key == DedupKey(9735, ZAPPER, "x", 5)


class TestTags:
    """Tag accessors."""

    def test_find_tag_first_match(self):
        event = make_event(tags=[["e", "one"], ["e", "two"]])
        assert event.find_tag("e").value == "one"

    def test_find_tag_missing(self):
        assert make_event().find_tag("e") is None

    def test_find_tag_case_insensitive(self):
        event = make_event(tags=[["Bolt11", "lnbc1"]])
        assert event.find_tag("bolt11") is None
        assert event.find_tag("bolt11", case_insensitive=True).value == "lnbc1"

    def test_tag_values_skips_bare_tags(self):
        event = make_event(tags=[["e", "one"], ["e"], ["p", "x"], ["e", "two"]])
        assert event.tag_values("e") == ["one", "two"]


class TestReference:
    """Reference attachment happens once."""

    def test_attach_once(self):
        quoted = make_event(content="gm")
        first = Reference.from_event(quoted)
        second = Reference.from_event(make_event(content="other"))
        receipt = make_event(kind=9735)

        assert receipt.attach_reference(first) is True
        assert receipt.attach_reference(second) is False
        assert receipt.reference is first

    def test_reference_copies_event_fields(self):
        quoted = make_event(kind=30023, content="article", tags=[["d", "slug"]])
        reference = Reference.from_event(quoted)
        assert reference.id == quoted.id
        assert reference.kind == 30023
        assert reference.find_tag("d").value == "slug"


class TestSerialization:
    """from_dict / from_json / to_dict."""

    def test_from_dict(self):
        event = Event.from_dict(_payload())
        assert event.kind == 9735
        assert event.find_tag("p").value == PUBKEY
        assert event.sig == "f" * 128

    def test_to_dict_round_trip(self):
        data = _payload()
        assert Event.from_dict(data).to_dict() == data

    def test_from_json(self):
        event = Event.from_json(json.dumps(_payload()))
        assert event.id == hex_id("payload")

    def test_missing_field(self):
        data = _payload()
        del data["pubkey"]
        with pytest.raises(ValueError, match="pubkey"):
            Event.from_dict(data)

    def test_non_object_rejected(self):
        with pytest.raises(TypeError):
            Event.from_dict(["not", "an", "object"])

    def test_invalid_json(self):
        with pytest.raises(ValueError):
            Event.from_json("{not json")

    def test_tags_must_be_list(self):
        with pytest.raises(TypeError, match="tags"):
            Event.from_dict(_payload(tags="p"))
