"""
Process-wide caches held in one explicit context object.

Components receive a [CacheContext][zapview.core.context.CacheContext] at
construction instead of reaching for module-level singletons. A
[ZapView][zapview.services.zap_view.ZapView] owns one context for its
lifetime; tests build their own with
[CacheContext.init()][zapview.core.context.CacheContext.init] and discard it
with [teardown()][zapview.core.context.CacheContext.teardown].

Caches:
    profiles: Pubkey -> [Profile][zapview.models.profile.Profile], newest wins.
    references: Tag value (event id or coordinate) -> resolved
        [Reference][zapview.models.event.Reference].
    decoded: NIP-19 string -> [DecodedIdentifier][zapview.models.identifier.DecodedIdentifier].
    fragments: Event id -> rendered display fragment.
    images: Pubkey -> avatar URL, expiring after ``image_max_age``.
    nip05: Pubkey -> verified NIP-05 display string (``None`` = failed).
    stats: ``(view_id, identifier)`` -> aggregation baseline, expiring after
        ``stats_ttl``.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from zapview.models import AggregateStats, DecodedIdentifier, Reference

from .cache import BoundedCache, ProfileCache, TimedCache


class CacheConfig(BaseModel):
    """Capacities and lifetimes of the shared caches."""

    capacity: int = Field(default=1000, ge=1, description="Entries per cache")
    image_max_age: float = Field(default=3600.0, gt=0, description="Avatar URL lifetime (s)")
    stats_ttl: float = Field(default=300.0, gt=0, description="Stats baseline lifetime (s)")
    sweep_interval: float = Field(
        default=60.0, gt=0, description="Seconds between expired-entry sweeps"
    )


@dataclass(slots=True)
class CacheContext:
    """The set of caches shared by every view of one process."""

    profiles: ProfileCache
    references: BoundedCache[str, Reference]
    decoded: BoundedCache[str, DecodedIdentifier]
    fragments: BoundedCache[str, str]
    images: TimedCache[str, str]
    nip05: BoundedCache[str, str | None]
    stats: TimedCache[tuple[str, str], AggregateStats]
    config: CacheConfig = field(default_factory=CacheConfig)

    @classmethod
    def init(
        cls,
        config: CacheConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> CacheContext:
        """Build a fresh context from *config* (defaults when omitted)."""
        config = config or CacheConfig()
        capacity = config.capacity
        return cls(
            profiles=ProfileCache(capacity),
            references=BoundedCache(capacity, name="references"),
            decoded=BoundedCache(capacity, name="decoded"),
            fragments=BoundedCache(capacity, name="fragments"),
            images=TimedCache(capacity, config.image_max_age, clock=clock, name="images"),
            nip05=BoundedCache(capacity, name="nip05"),
            stats=TimedCache(capacity, config.stats_ttl, clock=clock, name="stats"),
            config=config,
        )

    def caches(self) -> dict[str, BoundedCache]:  # type: ignore[type-arg]
        return {
            "profiles": self.profiles,
            "references": self.references,
            "decoded": self.decoded,
            "fragments": self.fragments,
            "images": self.images,
            "nip05": self.nip05,
            "stats": self.stats,
        }

    def sweep_expired(self) -> int:
        """Delete expired entries from every timed cache; returns the count."""
        return sum(cache.sweep() for cache in self.caches().values() if isinstance(cache, TimedCache))

    def teardown(self) -> None:
        """Clear every cache. Idempotent."""
        for cache in self.caches().values():
            cache.clear()
