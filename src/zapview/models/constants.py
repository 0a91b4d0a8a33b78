"""Shared constants for the models layer.

Defines enumerations and other constants that are used across multiple
model modules. Placing them here avoids circular dependencies between
the models, core and utils layers.

See Also:
    [zapview.models.event][]: Uses [EventKind][zapview.models.constants.EventKind]
        to recognise zap receipts and profile metadata.
    [zapview.models.filter][]: Builds relay filters from
        [IdentifierType][zapview.models.constants.IdentifierType].
    [zapview.core.store][]: Tracks each view through
        [ViewPhase][zapview.models.constants.ViewPhase].
"""

from __future__ import annotations

import re
from enum import IntEnum, StrEnum
from typing import Final


class EventKind(IntEnum):
    """Well-known Nostr event kinds handled by the ingestion core.

    Attributes:
        SET_METADATA: Kind 0 -- user profile metadata (NIP-01).
        TEXT_NOTE: Kind 1 -- short text note (NIP-01).
        CHANNEL_CREATE: Kind 40 -- public chat channel creation (NIP-28).
        CHANNEL_MESSAGE: Kind 42 -- public chat channel message (NIP-28).
        ZAP_REQUEST: Kind 9734 -- zap request embedded in a receipt (NIP-57).
        ZAP_RECEIPT: Kind 9735 -- zap receipt published by a Lightning
            service (NIP-57).
        BADGE_DEFINITION: Kind 30009 -- badge definition (NIP-58).
        LONG_FORM: Kind 30023 -- long-form article (NIP-23).
        CURATION_SET: Kind 30030 -- emoji/curation set (NIP-51).
        HANDLER_INFO: Kind 31990 -- application handler information (NIP-89).
    """

    SET_METADATA = 0
    TEXT_NOTE = 1
    CHANNEL_CREATE = 40
    CHANNEL_MESSAGE = 42
    ZAP_REQUEST = 9734
    ZAP_RECEIPT = 9735
    BADGE_DEFINITION = 30_009
    LONG_FORM = 30_023
    CURATION_SET = 30_030
    HANDLER_INFO = 31_990


# Kinds a zap receipt may quote through its ``e`` or ``a`` tag.
REFERENCE_KINDS: Final[tuple[int, ...]] = (
    EventKind.TEXT_NOTE,
    EventKind.LONG_FORM,
    EventKind.CURATION_SET,
    EventKind.BADGE_DEFINITION,
    EventKind.CHANNEL_CREATE,
    EventKind.CHANNEL_MESSAGE,
    EventKind.HANDLER_INFO,
)

EVENT_KIND_MAX: Final[int] = 65_535

HEX64_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[0-9a-f]{64}$")


def is_hex64(value: object) -> bool:
    """Return True if *value* is a lowercase 64-character hex string."""
    return isinstance(value, str) and HEX64_PATTERN.match(value) is not None


class IdentifierType(StrEnum):
    """NIP-19 identifier types accepted as a view identifier.

    Attributes:
        NPUB: Bare public key; the view lists zaps received by a profile.
        NPROFILE: Public key with relay hints; same filter as ``NPUB``.
        NOTE: Bare event id; the view lists zaps received by an event.
        NEVENT: Event id with relay/author hints; same filter as ``NOTE``.
    """

    NPUB = "npub"
    NOTE = "note"
    NPROFILE = "nprofile"
    NEVENT = "nevent"

    @property
    def is_profile(self) -> bool:
        """Whether this identifier addresses a profile rather than an event."""
        return self in (IdentifierType.NPUB, IdentifierType.NPROFILE)


class ViewPhase(StrEnum):
    """Lifecycle phase of a single view.

    ``IDLE -> BACKFILL_IN_FLIGHT -> BACKFILL_COMPLETE
    [-> PAGINATION_IN_FLIGHT -> BACKFILL_COMPLETE]* -> CLOSED``
    """

    IDLE = "idle"
    BACKFILL_IN_FLIGHT = "backfill_in_flight"
    BACKFILL_COMPLETE = "backfill_complete"
    PAGINATION_IN_FLIGHT = "pagination_in_flight"
    CLOSED = "closed"


class StatsStatus(StrEnum):
    """Availability of a view's aggregate statistics.

    Attributes:
        LOADING: Baseline request still in flight.
        AVAILABLE: Baseline fetched (possibly served from cache).
        UNAVAILABLE: Baseline request timed out or failed; rendered as
            "stats unavailable", never as zero.
        DISABLED: No aggregation service is configured.
    """

    LOADING = "loading"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    DISABLED = "disabled"
