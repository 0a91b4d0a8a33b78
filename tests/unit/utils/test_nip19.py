"""
Unit tests for utils.nip19 module.

Tests:
- decode() for npub, nprofile, note and nevent
- Malformed and unsupported identifiers decode to None
- Encoders for each identifier type
- Addressable-event coordinates
- shorten_identifier() display form
"""

import pytest

from tests.conftest import NPUB, PUBKEY, SENDER, SENDER_NPUB, hex_id
from zapview.core.exceptions import DecodeError
from zapview.models import IdentifierType
from zapview.utils.nip19 import (
    Coordinate,
    decode,
    decode_strict,
    encode_coordinate,
    encode_nevent,
    encode_note,
    encode_nprofile,
    encode_npub,
    parse_coordinate,
    parse_coordinate_strict,
    shorten_identifier,
)


# NIP-19 nprofile vector: PUBKEY with two relay hints
NPROFILE = (
    "nprofile1qqsrhuxx8l9ex335q7he0f09aej04zpazpl0ne2cgukyawd24mayt8gpp4mhxue69uhhytnc9e3k7mgpz4mhx"
    "ue69uhkg6nzv9ejuumpv34kytnrdaksjlyr9p"
)


# ============================================================================
# decode() Tests
# ============================================================================


class TestDecode:
    """Tests for decode()."""

    def test_npub(self) -> None:
        decoded = decode(NPUB)
        assert decoded is not None
        assert decoded.type == IdentifierType.NPUB
        assert decoded.pubkey == PUBKEY
        assert decoded.relays == ()

    def test_nostr_uri_prefix(self) -> None:
        decoded = decode(f"nostr:{NPUB}")
        assert decoded is not None
        assert decoded.pubkey == PUBKEY

    def test_surrounding_whitespace(self) -> None:
        decoded = decode(f"  {SENDER_NPUB}\n")
        assert decoded is not None
        assert decoded.pubkey == SENDER

    def test_nprofile(self) -> None:
        decoded = decode(NPROFILE)
        assert decoded is not None
        assert decoded.type == IdentifierType.NPROFILE
        assert decoded.pubkey == PUBKEY
        assert len(decoded.relays) == 2
        assert any("r.x.com" in relay for relay in decoded.relays)

    def test_note(self) -> None:
        event_id = hex_id("zapped note")
        decoded = decode(encode_note(event_id))
        assert decoded is not None
        assert decoded.type == IdentifierType.NOTE
        assert decoded.event_id == event_id
        assert decoded.target == event_id

    def test_nevent_with_author(self) -> None:
        event_id = hex_id("nevent")
        nevent = encode_nevent(event_id, kind=1, pubkey=PUBKEY, relays=["wss://relay.test"])
        assert nevent is not None and nevent.startswith("nevent1")

        decoded = decode(nevent)
        assert decoded is not None
        assert decoded.type == IdentifierType.NEVENT
        assert decoded.event_id == event_id
        assert decoded.pubkey == PUBKEY
        assert decoded.target == event_id

    @pytest.mark.parametrize(
        "identifier",
        [
            "",
            "garbage",
            "npub1invalid",
            NPUB[:-1] + ("q" if NPUB[-1] != "q" else "p"),
            "nsec1vl029mgpspedva04g90vltkh6fvh240zqtv9k0t9af8935ke9laqsnlfe5",
            "naddr1qqxnzd3exgersv33xymnsve3qgs8suecw4luyht9ekff89x4uacneapk8r5dyk0gmn6uwwurf6u9ruj",
        ],
    )
    def test_undecodable_returns_none(self, identifier: str) -> None:
        assert decode(identifier) is None

    def test_non_string_returns_none(self) -> None:
        assert decode(None) is None  # type: ignore[arg-type]

    def test_strict_raises(self) -> None:
        with pytest.raises(DecodeError, match="unsupported identifier prefix"):
            decode_strict("lnurl1dp68gurn8ghj7")


# ============================================================================
# Encoder Tests
# ============================================================================


class TestEncode:
    """Tests for the encoders."""

    def test_encode_npub(self) -> None:
        assert encode_npub(PUBKEY) == NPUB
        assert encode_npub(SENDER) == SENDER_NPUB

    def test_encode_npub_invalid(self) -> None:
        assert encode_npub("zz") is None

    def test_encode_note_invalid(self) -> None:
        assert encode_note("not-hex") is None

    def test_encode_nprofile(self) -> None:
        nprofile = encode_nprofile(PUBKEY, ["wss://relay.test"])
        assert nprofile is not None
        decoded = decode(nprofile)
        assert decoded is not None
        assert decoded.pubkey == PUBKEY
        assert any("relay.test" in relay for relay in decoded.relays)


# ============================================================================
# Coordinate Tests
# ============================================================================


class TestCoordinates:
    """Tests for kind:pubkey:d coordinates."""

    def test_encode(self) -> None:
        assert encode_coordinate(30023, PUBKEY, "slug") == f"30023:{PUBKEY}:slug"

    def test_parse(self) -> None:
        assert parse_coordinate(f"30023:{PUBKEY}:slug") == Coordinate(30023, PUBKEY, "slug")

    def test_d_may_contain_colons(self) -> None:
        coordinate = parse_coordinate(f"30023:{PUBKEY}:a:b:c")
        assert coordinate is not None
        assert coordinate.identifier == "a:b:c"

    def test_empty_d(self) -> None:
        coordinate = parse_coordinate(f"30009:{PUBKEY}:")
        assert coordinate == Coordinate(30009, PUBKEY, "")
        assert str(coordinate) == f"30009:{PUBKEY}:"

    @pytest.mark.parametrize(
        "value",
        [
            "30023",
            f"x:{PUBKEY}:d",
            f"70000:{PUBKEY}:d",
            "30023:ABC:d",
            f"-1:{PUBKEY}:d",
        ],
    )
    def test_malformed(self, value: str) -> None:
        assert parse_coordinate(value) is None
        with pytest.raises(DecodeError):
            parse_coordinate_strict(value)


# ============================================================================
# shorten_identifier() Tests
# ============================================================================


class TestShortenIdentifier:
    def test_npub(self) -> None:
        assert shorten_identifier(NPUB) == "npub180cvv0...h6w6"

    def test_invalid(self) -> None:
        assert shorten_identifier("whatever") == "unknown"
