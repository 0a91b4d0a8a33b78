"""
Decoded NIP-19 view identifier.

Produced by [zapview.utils.nip19.decode][]; consumed by
[RelayFilter.for_zaps()][zapview.models.filter.RelayFilter.for_zaps] and the
stats client to pick the profile or event endpoint.
"""

from __future__ import annotations

from dataclasses import dataclass

from ._validation import validate_hex64
from .constants import IdentifierType


@dataclass(frozen=True, slots=True)
class DecodedIdentifier:
    """Result of decoding an ``npub``/``nprofile``/``note``/``nevent`` string.

    Attributes:
        type: Which NIP-19 entity was decoded.
        pubkey: Hex public key (profile identifiers, or the ``nevent`` author
            when present).
        event_id: Hex event id (event identifiers only).
        relays: Relay hints carried by ``nprofile``/``nevent``.
    """

    type: IdentifierType
    pubkey: str | None = None
    event_id: str | None = None
    relays: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.type.is_profile:
            if self.pubkey is None:
                raise ValueError(f"{self.type} identifier requires a pubkey")
            validate_hex64(self.pubkey, "pubkey")
        else:
            if self.event_id is None:
                raise ValueError(f"{self.type} identifier requires an event id")
            validate_hex64(self.event_id, "event_id")
            if self.pubkey is not None:
                validate_hex64(self.pubkey, "pubkey")

    @property
    def is_profile(self) -> bool:
        return self.type.is_profile

    @property
    def target(self) -> str:
        """The hex value a zap receipt must tag (``#p`` or ``#e``)."""
        return self.pubkey if self.is_profile else self.event_id  # type: ignore[return-value]
