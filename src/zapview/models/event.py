"""
Nostr event records used throughout the ingestion core.

Relay payloads are parsed once, at the transport boundary, into
[Event][zapview.models.event.Event] instances with typed
[Tag][zapview.models.event.Tag] accessors. A zap receipt may quote another
event; once resolved, that event is held as an immutable
[Reference][zapview.models.event.Reference] and attached to the receipt.

See Also:
    [zapview.core.store][]: Deduplicates and orders events per view.
    [zapview.services.resolver][]: Resolves and attaches references.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, NamedTuple

from ._validation import validate_hex64, validate_instance, validate_str, validate_timestamp
from .constants import EVENT_KIND_MAX


if TYPE_CHECKING:
    from nostr_sdk import Event as NostrEvent

    from .zap import ZapDetails


class DedupKey(NamedTuple):
    """Secondary identity for relay-side near-duplicates lacking reliable ids."""

    kind: int
    pubkey: str
    content: str
    created_at: int


@dataclass(frozen=True, slots=True)
class Tag:
    """A single event tag: a name followed by its values.

    Attributes:
        name: First element of the raw tag array (``"e"``, ``"p"``, ...).
        values: Remaining elements, in order.
    """

    name: str
    values: tuple[str, ...] = ()

    @property
    def value(self) -> str | None:
        """First value of the tag, or ``None`` for a bare tag."""
        return self.values[0] if self.values else None

    @classmethod
    def from_list(cls, raw: Any) -> Tag:
        """Build a tag from a raw JSON array (``["e", "<id>", "<relay>"]``)."""
        if not isinstance(raw, list | tuple) or not raw:
            raise ValueError("tag must be a non-empty array")
        for item in raw:
            validate_str(item, "tag item")
        return cls(name=raw[0], values=tuple(raw[1:]))

    def to_list(self) -> list[str]:
        return [self.name, *self.values]


def _parse_tags(raw: Any) -> tuple[Tag, ...]:
    if not isinstance(raw, list | tuple):
        raise TypeError(f"tags must be a list, got {type(raw).__name__}")
    return tuple(Tag.from_list(item) for item in raw)


def find_tag(tags: tuple[Tag, ...], name: str, *, case_insensitive: bool = False) -> Tag | None:
    """Return the first tag called *name*, or ``None``."""
    if case_insensitive:
        wanted = name.lower()
        return next((tag for tag in tags if tag.name.lower() == wanted), None)
    return next((tag for tag in tags if tag.name == name), None)


@dataclass(frozen=True, slots=True)
class Event:
    """Immutable-identity Nostr event as received from a relay.

    Identity is ``id``: equality and hashing ignore every other field.
    Three slots are filled after construction, each through a dedicated
    method: ``reference`` (exactly once, see
    [attach_reference()][zapview.models.event.Event.attach_reference]),
    ``is_realtime`` and ``zap`` (on acceptance into a view, see
    [accept()][zapview.models.event.Event.accept]).

    Args:
        id: Event id, 64 lowercase hex characters.
        pubkey: Author public key, 64 lowercase hex characters.
        created_at: Unix timestamp (seconds).
        kind: Event kind (0-65535).
        tags: Parsed tags.
        content: Raw content string.
        sig: Schnorr signature hex, kept verbatim (may be empty).

    Raises:
        TypeError: If a field has the wrong type.
        ValueError: If id/pubkey are not 64-hex or the kind is out of range.

    Examples:
        ```python
        event = Event.from_dict(relay_payload)
        event.find_tag("bolt11", case_insensitive=True)
        event.dedup_key  # DedupKey(kind=9735, pubkey=..., ...)
        ```
    """

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: tuple[Tag, ...] = ()
    content: str = ""
    sig: str = field(default="", compare=False, repr=False)
    reference: Reference | None = field(default=None, init=False, compare=False, repr=False)
    is_realtime: bool = field(default=False, init=False, compare=False)
    zap: ZapDetails | None = field(default=None, init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        validate_hex64(self.id, "id")
        validate_hex64(self.pubkey, "pubkey")
        validate_timestamp(self.created_at, "created_at")
        validate_timestamp(self.kind, "kind")
        if self.kind > EVENT_KIND_MAX:
            raise ValueError(f"kind must be <= {EVENT_KIND_MAX}, got {self.kind}")
        validate_instance(self.tags, tuple, "tags")
        for tag in self.tags:
            validate_instance(tag, Tag, "tag")
        validate_str(self.content, "content")
        validate_str(self.sig, "sig")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Event):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @property
    def dedup_key(self) -> DedupKey:
        return DedupKey(self.kind, self.pubkey, self.content, self.created_at)

    def find_tag(self, name: str, *, case_insensitive: bool = False) -> Tag | None:
        """Return the first tag called *name* (optionally ignoring case)."""
        return find_tag(self.tags, name, case_insensitive=case_insensitive)

    def tag_values(self, name: str) -> list[str]:
        """Return the first value of every tag called *name*."""
        return [tag.values[0] for tag in self.tags if tag.name == name and tag.values]

    def attach_reference(self, reference: Reference) -> bool:
        """Attach a resolved reference once.

        Returns:
            ``True`` if the reference was attached, ``False`` if one was
            already present (the first value is kept).
        """
        if self.reference is not None:
            return False
        object.__setattr__(self, "reference", reference)
        return True

    def accept(self, *, realtime: bool, zap: ZapDetails | None) -> None:
        """Record the classification assigned when a view accepts the event."""
        object.__setattr__(self, "is_realtime", realtime)
        object.__setattr__(self, "zap", zap)

    def to_dict(self) -> dict[str, Any]:
        """Return the NIP-01 JSON object for this event."""
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [tag.to_list() for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Event:
        """Parse a NIP-01 event object.

        Raises:
            TypeError: If *data* is not a mapping or a field has the wrong type.
            ValueError: If a required field is missing or malformed.
        """
        if not isinstance(data, dict):
            raise TypeError(f"event must be an object, got {type(data).__name__}")
        try:
            return cls(
                id=data["id"],
                pubkey=data["pubkey"],
                created_at=data["created_at"],
                kind=data["kind"],
                tags=_parse_tags(data.get("tags", [])),
                content=data.get("content", ""),
                sig=data.get("sig", ""),
            )
        except KeyError as e:
            raise ValueError(f"event is missing field {e.args[0]!r}") from None

    @classmethod
    def from_json(cls, raw: str) -> Event:
        """Parse a JSON-encoded NIP-01 event.

        Raises:
            ValueError: On invalid JSON or a malformed event.
        """
        return cls.from_dict(json.loads(raw))

    @classmethod
    def from_nostr(cls, nostr_event: NostrEvent) -> Event:
        """Convert a ``nostr_sdk.Event`` received by the relay client."""
        return cls.from_json(nostr_event.as_json())


@dataclass(frozen=True, slots=True)
class Reference:
    """A resolved event quoted by a zap receipt through an ``e`` or ``a`` tag.

    Immutable once fetched; cached for the process lifetime under the tag
    value that quoted it (event id or ``kind:pubkey:d`` coordinate).
    """

    id: str
    kind: int
    pubkey: str
    content: str
    tags: tuple[Tag, ...]
    created_at: int

    @classmethod
    def from_event(cls, event: Event) -> Reference:
        return cls(
            id=event.id,
            kind=event.kind,
            pubkey=event.pubkey,
            content=event.content,
            tags=event.tags,
            created_at=event.created_at,
        )

    def find_tag(self, name: str) -> Tag | None:
        return find_tag(self.tags, name)
