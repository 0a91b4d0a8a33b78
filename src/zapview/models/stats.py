"""
Aggregate zap statistics for a view.

[AggregateStats][zapview.models.stats.AggregateStats] is a small immutable
monoid: ``add`` folds in one amount, ``merge`` combines two partial totals
and ``fold`` re-derives totals from cached events. The rendering layer
receives a [StatsSnapshot][zapview.models.stats.StatsSnapshot] pairing the
totals with their availability.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .constants import StatsStatus


if TYPE_CHECKING:
    from .event import Event


def _as_int(value: Any) -> int:
    """Coerce a JSON number or numeric string to ``int`` (missing -> 0)."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        return int(value.strip() or 0)
    raise TypeError(f"expected a number, got {type(value).__name__}")


@dataclass(frozen=True, slots=True)
class AggregateStats:
    """Zap count, total and maximum amount, in millisatoshis."""

    count: int = 0
    total_msats: int = 0
    max_msats: int = 0

    def add(self, amount_msats: int) -> AggregateStats:
        """Return totals with one more zap of *amount_msats*."""
        return AggregateStats(
            count=self.count + 1,
            total_msats=self.total_msats + amount_msats,
            max_msats=max(self.max_msats, amount_msats),
        )

    def merge(self, other: AggregateStats | None) -> AggregateStats:
        if other is None:
            return self
        return AggregateStats(
            count=self.count + other.count,
            total_msats=self.total_msats + other.total_msats,
            max_msats=max(self.max_msats, other.max_msats),
        )

    @classmethod
    def fold(
        cls, events: Iterable[Event], baseline: AggregateStats | None = None
    ) -> AggregateStats:
        """Derive totals from *events* with a known positive amount.

        When a *baseline* is given, only real-time events are folded on top
        of it; the baseline already accounts for history.
        """
        stats = baseline or cls()
        for event in events:
            if baseline is not None and not event.is_realtime:
                continue
            amount = event.zap.amount_msats if event.zap is not None else None
            if amount:
                stats = stats.add(amount)
        return stats

    @classmethod
    def from_api(cls, payload: Any) -> AggregateStats | None:
        """Parse an aggregation-service response.

        Accepts the flat ``{"count", "msats", "maxMsats"}`` shape and the
        nested ``{"stats": {<id>: {"zaps_received": {...}}}}`` shape (``zaps``
        is accepted in place of ``zaps_received``). Returns ``None`` when the
        payload matches neither.

        Raises:
            TypeError: If a numeric field holds a non-numeric value.
            ValueError: If a numeric string cannot be parsed.
        """
        if not isinstance(payload, Mapping):
            return None

        if "count" in payload:
            return cls(
                count=_as_int(payload.get("count")),
                total_msats=_as_int(payload.get("msats")),
                max_msats=_as_int(payload.get("maxMsats", payload.get("max_msats"))),
            )

        nested = payload.get("stats")
        if not isinstance(nested, Mapping) or not nested:
            return None
        entry = next(iter(nested.values()))
        if not isinstance(entry, Mapping):
            return None
        zaps = entry.get("zaps_received") or entry.get("zaps") or {}
        if not isinstance(zaps, Mapping):
            return None
        return cls(
            count=_as_int(zaps.get("count")),
            total_msats=_as_int(zaps.get("msats")),
            max_msats=_as_int(zaps.get("max_msats")),
        )


@dataclass(frozen=True, slots=True)
class StatsSnapshot:
    """Statistics handed to the rendering layer.

    ``stats`` is ``None`` unless ``status`` is
    [AVAILABLE][zapview.models.constants.StatsStatus], so an unavailable
    baseline is never rendered as zero.
    """

    status: StatsStatus
    stats: AggregateStats | None = None

    @property
    def is_available(self) -> bool:
        return self.status == StatsStatus.AVAILABLE and self.stats is not None

    @classmethod
    def unavailable(cls) -> StatsSnapshot:
        return cls(StatsStatus.UNAVAILABLE)
