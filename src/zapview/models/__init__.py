"""Pure dataclasses with zero I/O for zap receipts, profiles and filters.

The models layer is the bottom of the import graph. It depends only on the
Python standard library; ``nostr_sdk`` types appear in annotations only.
Validation happens in ``__post_init__`` so invalid instances never escape
the constructor.

Attributes:
    Event: Relay event with typed [Tag][zapview.models.event.Tag] accessors,
        id-based identity and a lazily attached
        [Reference][zapview.models.event.Reference].
    Reference: Immutable quoted event resolved through an ``e``/``a`` tag.
    Profile: Kind-0 metadata with latest-wins ``event_created_at``.
    ZapDetails: Sender, comment and amount parsed from a receipt.
    AggregateStats: Count/total/max zap totals with ``add``/``merge``/``fold``.
    StatsSnapshot: Totals paired with their
        [StatsStatus][zapview.models.constants.StatsStatus].
    RelayFilter: NIP-01 filter with ``matches`` and pagination helpers.
    DecodedIdentifier: Decoded ``npub``/``nprofile``/``note``/``nevent``.

See Also:
    [zapview.models.constants][]: Shared constants and enumerations.
"""

from .constants import (
    EVENT_KIND_MAX,
    REFERENCE_KINDS,
    EventKind,
    IdentifierType,
    StatsStatus,
    ViewPhase,
    is_hex64,
)
from .event import DedupKey, Event, Reference, Tag
from .filter import RelayFilter
from .identifier import DecodedIdentifier
from .profile import Profile, sanitize_image_url
from .stats import AggregateStats, StatsSnapshot
from .zap import ZapDetails


__all__ = [
    "EVENT_KIND_MAX",
    "REFERENCE_KINDS",
    "AggregateStats",
    "DecodedIdentifier",
    "DedupKey",
    "Event",
    "EventKind",
    "IdentifierType",
    "Profile",
    "Reference",
    "RelayFilter",
    "StatsSnapshot",
    "StatsStatus",
    "Tag",
    "ViewPhase",
    "ZapDetails",
    "is_hex64",
    "sanitize_image_url",
]
