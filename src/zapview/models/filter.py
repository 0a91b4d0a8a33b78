"""
Immutable relay subscription filter.

[RelayFilter][zapview.models.filter.RelayFilter] mirrors the NIP-01 filter
object. Pagination derives new filters with
[with_until()][zapview.models.filter.RelayFilter.with_until] and
[with_limit()][zapview.models.filter.RelayFilter.with_limit]; incoming events
are checked against the view filter with
[matches()][zapview.models.filter.RelayFilter.matches].
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .constants import EventKind


if TYPE_CHECKING:
    from .event import Event
    from .identifier import DecodedIdentifier


@dataclass(frozen=True, slots=True)
class RelayFilter:
    """NIP-01 filter.

    Attributes:
        ids: Event ids to match.
        kinds: Event kinds to match.
        authors: Author pubkeys to match.
        tags: Single-letter tag filters, e.g. ``{"p": ("<hex>",)}``.
        since: Inclusive lower bound on ``created_at``.
        until: Inclusive upper bound on ``created_at``.
        limit: Maximum number of stored events requested.
    """

    ids: tuple[str, ...] = ()
    kinds: tuple[int, ...] = ()
    authors: tuple[str, ...] = ()
    tags: Mapping[str, tuple[str, ...]] = dataclasses.field(default_factory=dict)
    since: int | None = None
    until: int | None = None
    limit: int | None = None

    def __post_init__(self) -> None:
        for letter in self.tags:
            if len(letter) != 1:
                raise ValueError(f"tag filter keys must be single letters, got {letter!r}")
        if self.limit is not None and self.limit < 0:
            raise ValueError("limit must be non-negative")

    def __hash__(self) -> int:
        return hash(
            (
                self.ids,
                self.kinds,
                self.authors,
                tuple(sorted(self.tags.items())),
                self.since,
                self.until,
                self.limit,
            )
        )

    def matches(self, event: Event) -> bool:
        """Whether *event* satisfies this filter (``limit`` is ignored)."""
        if self.ids and event.id not in self.ids:
            return False
        if self.kinds and event.kind not in self.kinds:
            return False
        if self.authors and event.pubkey not in self.authors:
            return False
        if self.since is not None and event.created_at < self.since:
            return False
        if self.until is not None and event.created_at > self.until:
            return False
        for letter, values in self.tags.items():
            if not any(tag.name == letter and tag.value in values for tag in event.tags):
                return False
        return True

    def with_until(self, until: int | None) -> RelayFilter:
        return dataclasses.replace(self, until=until)

    def with_limit(self, limit: int | None) -> RelayFilter:
        return dataclasses.replace(self, limit=limit)

    def with_since(self, since: int | None) -> RelayFilter:
        return dataclasses.replace(self, since=since)

    def to_dict(self) -> dict[str, Any]:
        """Return the NIP-01 JSON shape (empty fields omitted)."""
        result: dict[str, Any] = {}
        if self.ids:
            result["ids"] = list(self.ids)
        if self.kinds:
            result["kinds"] = list(self.kinds)
        if self.authors:
            result["authors"] = list(self.authors)
        for letter, values in self.tags.items():
            result[f"#{letter}"] = list(values)
        if self.since is not None:
            result["since"] = self.since
        if self.until is not None:
            result["until"] = self.until
        if self.limit is not None:
            result["limit"] = self.limit
        return result

    @classmethod
    def build(
        cls,
        *,
        ids: Iterable[str] = (),
        kinds: Iterable[int] = (),
        authors: Iterable[str] = (),
        tags: Mapping[str, Iterable[str]] | None = None,
        since: int | None = None,
        until: int | None = None,
        limit: int | None = None,
    ) -> RelayFilter:
        """Build a filter from arbitrary iterables."""
        return cls(
            ids=tuple(ids),
            kinds=tuple(int(k) for k in kinds),
            authors=tuple(authors),
            tags={letter: tuple(values) for letter, values in (tags or {}).items()},
            since=since,
            until=until,
            limit=limit,
        )

    @classmethod
    def for_zaps(cls, decoded: DecodedIdentifier, limit: int | None = None) -> RelayFilter:
        """Zap receipts received by the profile or event *decoded* points at."""
        letter = "p" if decoded.is_profile else "e"
        return cls(
            kinds=(EventKind.ZAP_RECEIPT,),
            tags={letter: (decoded.target,)},
            limit=limit,
        )
