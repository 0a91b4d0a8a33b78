"""NIP-19 identifier codec built on ``nostr_sdk``.

Decodes the four identifier kinds a view can be opened with (``npub``,
``nprofile``, ``note``, ``nevent``) into a
[DecodedIdentifier][zapview.models.identifier.DecodedIdentifier], and encodes
them back. Addressable-event coordinates (``kind:pubkey:d``) are plain
strings and handled here too.

Decode failures never cross this module's public functions:
[decode()][zapview.utils.nip19.decode] returns ``None`` and the encoders
return ``None`` on malformed input. The ``_strict`` variants raise
[DecodeError][zapview.core.exceptions.DecodeError] for callers that need
the reason.

Examples:
    ```python
    decoded = decode("npub180cvv07tjdrrgpa0j7j7tmnyl2yr6yr7l8j4s3evf6u64th6gkwsyjh6w6")
    decoded.pubkey  # "3bf0c63fcb93463407af97a5e5ee64fa883d107ef9e558472c4eb9aaaefa459d"
    ```
"""

from __future__ import annotations

import logging
from typing import NamedTuple

from nostr_sdk import EventId, Kind, Nip19Event, Nip19Profile, NostrSdkError, PublicKey, RelayUrl

from zapview.core.exceptions import DecodeError
from zapview.models import DecodedIdentifier, IdentifierType, is_hex64
from zapview.models.constants import EVENT_KIND_MAX


logger = logging.getLogger(__name__)


class Coordinate(NamedTuple):
    """Address of an addressable event: ``kind:pubkey:d``."""

    kind: int
    pubkey: str
    identifier: str

    def __str__(self) -> str:
        return f"{self.kind}:{self.pubkey}:{self.identifier}"


def _hrp(identifier: str) -> str:
    return identifier.split("1", 1)[0].lower()


def _relay_strings(relays: list[RelayUrl] | list[str]) -> tuple[str, ...]:
    return tuple(r if isinstance(r, str) else str(r) for r in relays)


def decode_strict(identifier: str) -> DecodedIdentifier:
    """Decode a NIP-19 identifier.

    Raises:
        DecodeError: On an unsupported prefix or malformed bech32 payload.
    """
    if not isinstance(identifier, str) or not identifier:
        raise DecodeError("identifier must be a non-empty string")
    identifier = identifier.strip()
    if identifier.startswith("nostr:"):
        identifier = identifier[len("nostr:") :]
    try:
        kind = IdentifierType(_hrp(identifier))
    except ValueError:
        raise DecodeError(f"unsupported identifier prefix: {identifier[:10]!r}") from None

    try:
        if kind == IdentifierType.NPUB:
            return DecodedIdentifier(kind, pubkey=PublicKey.parse(identifier).to_hex())
        if kind == IdentifierType.NOTE:
            return DecodedIdentifier(kind, event_id=EventId.parse(identifier).to_hex())
        if kind == IdentifierType.NPROFILE:
            profile = Nip19Profile.from_bech32(identifier)
            return DecodedIdentifier(
                kind,
                pubkey=profile.public_key().to_hex(),
                relays=_relay_strings(profile.relays()),
            )
        event = Nip19Event.from_bech32(identifier)
        author = event.author()
        return DecodedIdentifier(
            kind,
            event_id=event.event_id().to_hex(),
            pubkey=author.to_hex() if author is not None else None,
            relays=_relay_strings(event.relays()),
        )
    except (NostrSdkError, ValueError, TypeError) as e:
        raise DecodeError(f"malformed {kind} identifier: {e}") from e


def decode(identifier: str) -> DecodedIdentifier | None:
    """Decode a NIP-19 identifier, returning ``None`` when it is malformed."""
    try:
        return decode_strict(identifier)
    except DecodeError as e:
        logger.debug("identifier_decode_failed identifier=%s error=%s", str(identifier)[:16], e)
        return None


def _parse_relays(relays: list[str] | tuple[str, ...]) -> list[RelayUrl]:
    return [RelayUrl.parse(url) for url in relays]


def encode_npub(pubkey: str) -> str | None:
    try:
        return PublicKey.parse(pubkey).to_bech32()
    except NostrSdkError as e:
        logger.debug("npub_encode_failed error=%s", e)
        return None


def encode_note(event_id: str) -> str | None:
    try:
        return EventId.parse(event_id).to_bech32()
    except NostrSdkError as e:
        logger.debug("note_encode_failed error=%s", e)
        return None


def encode_nprofile(pubkey: str, relays: list[str] | tuple[str, ...] = ()) -> str | None:
    try:
        return Nip19Profile(PublicKey.parse(pubkey), _parse_relays(relays)).to_bech32()
    except NostrSdkError as e:
        logger.debug("nprofile_encode_failed error=%s", e)
        return None


def encode_nevent(
    event_id: str,
    kind: int | None = None,
    pubkey: str | None = None,
    relays: list[str] | tuple[str, ...] = (),
) -> str | None:
    try:
        author = PublicKey.parse(pubkey) if pubkey else None
        event_kind = Kind(kind) if kind is not None else None
        return Nip19Event(
            EventId.parse(event_id), author, event_kind, _parse_relays(relays)
        ).to_bech32()
    except NostrSdkError as e:
        logger.debug("nevent_encode_failed error=%s", e)
        return None


def encode_coordinate(kind: int, pubkey: str, identifier: str = "") -> str:
    """Return the ``kind:pubkey:d`` coordinate string."""
    return str(Coordinate(kind, pubkey, identifier))


def parse_coordinate_strict(value: str) -> Coordinate:
    """Parse ``kind:pubkey:d``; the ``d`` part may itself contain colons.

    Raises:
        DecodeError: If the kind is not an integer in range or the pubkey is
            not 64 lowercase hex characters.
    """
    parts = value.split(":", 2)
    if len(parts) != 3:
        raise DecodeError(f"coordinate must have three parts: {value[:32]!r}")
    kind_text, pubkey, d = parts
    if not kind_text.isdigit() or int(kind_text) > EVENT_KIND_MAX:
        raise DecodeError(f"coordinate kind is invalid: {kind_text!r}")
    if not is_hex64(pubkey):
        raise DecodeError("coordinate pubkey must be 64 lowercase hex characters")
    return Coordinate(int(kind_text), pubkey, d)


def parse_coordinate(value: str) -> Coordinate | None:
    """Parse ``kind:pubkey:d``, returning ``None`` when it is malformed."""
    try:
        return parse_coordinate_strict(value)
    except DecodeError:
        return None


def shorten_identifier(identifier: str) -> str:
    """Abbreviate a NIP-19 string for display: ``npub1abcdef...wxyz``."""
    if decode(identifier) is None:
        return "unknown"
    hrp = _hrp(identifier.strip())
    body = identifier.strip()[len(hrp) + 1 :]
    return f"{hrp}1{body[:6]}...{identifier.strip()[-4:]}"
