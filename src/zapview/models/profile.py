"""
Sender profile parsed from kind-0 metadata.

Profiles are rebuilt from relay data on every process start; newer
metadata replaces older metadata by the kind-0 event's own ``created_at``
(see [ProfileCache][zapview.core.cache.ProfileCache]).
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from ._validation import validate_hex64, validate_timestamp


if TYPE_CHECKING:
    from .event import Event


DEFAULT_NAME = "anonymous"
NAMELESS = "nameless"


def sanitize_image_url(url: Any) -> str | None:
    """Return *url* if it is an absolute http(s) URL, otherwise ``None``."""
    if not isinstance(url, str) or not url:
        return None
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        return None
    return parts.geturl()


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


@dataclass(frozen=True, slots=True)
class Profile:
    """Display metadata for one pubkey.

    Attributes:
        pubkey: Owner of the profile (64 hex).
        name: Display-ready name: ``display_name``, else ``name``, else
            ``"nameless"``; ``"anonymous"`` for the default profile.
        display_name: ``display_name`` from the metadata, else ``name``.
        picture: Sanitized http(s) picture URL.
        nip05: Raw NIP-05 address as published (unverified).
        about: Free-form biography.
        event_created_at: ``created_at`` of the kind-0 event this profile
            came from; ``0`` for the default profile.
    """

    pubkey: str
    name: str = DEFAULT_NAME
    display_name: str = DEFAULT_NAME
    picture: str | None = None
    nip05: str | None = None
    about: str | None = None
    event_created_at: int = 0

    def __post_init__(self) -> None:
        validate_hex64(self.pubkey, "pubkey")
        validate_timestamp(self.event_created_at, "event_created_at")

    @property
    def is_default(self) -> bool:
        return self.event_created_at == 0 and self.name == DEFAULT_NAME

    @classmethod
    def default(cls, pubkey: str) -> Profile:
        """Fallback profile used when metadata is missing or unreadable."""
        return cls(pubkey=pubkey)

    @classmethod
    def from_content(cls, pubkey: str, content: str, created_at: int) -> Profile:
        """Parse kind-0 *content*; invalid JSON or a non-object yields the default."""
        try:
            data = json.loads(content)
        except (TypeError, ValueError):
            return cls.default(pubkey)
        if not isinstance(data, dict):
            return cls.default(pubkey)

        name = _optional_str(data.get("name"))
        display_name = _optional_str(data.get("display_name")) or _optional_str(
            data.get("displayName")
        )
        return cls(
            pubkey=pubkey,
            name=display_name or name or NAMELESS,
            display_name=display_name or name or NAMELESS,
            picture=sanitize_image_url(data.get("picture")),
            nip05=_optional_str(data.get("nip05")),
            about=_optional_str(data.get("about")),
            event_created_at=created_at,
        )

    @classmethod
    def from_event(cls, event: Event) -> Profile:
        return cls.from_content(event.pubkey, event.content, event.created_at)
