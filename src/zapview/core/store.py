"""
Per-view state and the store that owns it.

A [ViewState][zapview.core.store.ViewState] holds everything one view (one
feed instance) needs: its deduplicated, ``created_at``-descending event
list, the pagination cursor, the loading phase and the aggregate
statistics. Views never share mutable state; only the process-wide caches
in [CacheContext][zapview.core.context.CacheContext] are shared.

Invariants maintained by [add_event()][zapview.core.store.ViewState.add_event]:

* no two events with the same ``id`` (or the same
  ``(kind, pubkey, content, created_at)`` key) are stored;
* ``events[i].created_at >= events[i + 1].created_at`` after every mutation;
* ``last_event_time`` is the oldest stored ``created_at``.
"""

from __future__ import annotations

import asyncio
import bisect
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from zapview.models import (
    AggregateStats,
    DecodedIdentifier,
    DedupKey,
    Event,
    RelayFilter,
    StatsSnapshot,
    StatsStatus,
    ViewPhase,
)


if TYPE_CHECKING:
    from collections.abc import Iterator

    from .scheduler import Debouncer


class SubscriptionHandle(Protocol):
    """Anything a view can close to stop its event stream."""

    def close(self) -> None: ...


def _sort_key(event: Event) -> int:
    return -event.created_at


@dataclass(slots=True)
class PaginationState:
    """Scroll-driven backfill state of one view.

    Attributes:
        armed: The trigger is observed (set once backfill reached the
            initial load target).
        exhausted: A round returned zero new events; no further rounds run.
        rounds: Completed pagination rounds.
        debouncer: Collapses bursts of trigger fires.
        in_flight: The running round, shared by concurrent ``load_more`` calls.
        subscription: Handle of the running round's subscription.
        round_done: Resolved when the running round may stop waiting.
    """

    armed: bool = False
    exhausted: bool = False
    rounds: int = 0
    debouncer: Debouncer | None = None
    in_flight: asyncio.Future[int] | None = None
    subscription: SubscriptionHandle | None = None
    round_done: asyncio.Future[None] | None = None

    def finish_round(self) -> None:
        if self.round_done is not None and not self.round_done.done():
            self.round_done.set_result(None)

    def tear_down(self) -> None:
        """Disarm the trigger, close any round subscription and end its wait."""
        self.armed = False
        if self.debouncer is not None:
            self.debouncer.close()
            self.debouncer = None
        if self.subscription is not None:
            subscription, self.subscription = self.subscription, None
            subscription.close()
        self.finish_round()


@dataclass(slots=True, eq=False)
class ViewState:
    """State of one view.

    Attributes:
        view_id: Caller-chosen view identifier.
        identifier: NIP-19 string the view was opened with.
        decoded: Decoded form of ``identifier``.
        relay_urls: Relays the view subscribes to.
        base_filter: Zap-receipt filter without ``limit``/``until``.
        initial_load_count: Backfill size; pagination arms at or above it.
        events: Accepted events, ``created_at`` descending.
        phase: Current [ViewPhase][zapview.models.constants.ViewPhase].
        last_event_time: Oldest stored ``created_at`` (pagination cursor).
        baseline: Totals from the aggregation service, when available.
        realtime_delta: Totals of real-time events accepted since opening.
        stats_status: Availability of ``baseline``.
        subscription: Live subscription handle.
        pagination: Pagination state.
        tasks: Outstanding reference/profile resolution tasks.
    """

    view_id: str
    identifier: str
    decoded: DecodedIdentifier
    relay_urls: tuple[str, ...]
    base_filter: RelayFilter
    initial_load_count: int = 15
    events: list[Event] = field(default_factory=list)
    phase: ViewPhase = ViewPhase.IDLE
    last_event_time: int | None = None
    baseline: AggregateStats | None = None
    realtime_delta: AggregateStats = field(default_factory=AggregateStats)
    stats_status: StatsStatus = StatsStatus.LOADING
    subscription: SubscriptionHandle | None = None
    pagination: PaginationState = field(default_factory=PaginationState)
    tasks: set[asyncio.Task[Any]] = field(default_factory=set)
    _ids: set[str] = field(default_factory=set, init=False, repr=False)
    _dedup_keys: set[DedupKey] = field(default_factory=set, init=False, repr=False)

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self) -> Iterator[Event]:
        return iter(self.events)

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._ids

    @property
    def is_loading(self) -> bool:
        return self.phase in (ViewPhase.BACKFILL_IN_FLIGHT, ViewPhase.PAGINATION_IN_FLIGHT)

    @property
    def is_backfill_complete(self) -> bool:
        return self.phase in (ViewPhase.BACKFILL_COMPLETE, ViewPhase.PAGINATION_IN_FLIGHT)

    @property
    def no_results(self) -> bool:
        """Backfill finished and nothing was found (distinct from still loading)."""
        return self.is_backfill_complete and not self.events

    @property
    def is_closed(self) -> bool:
        return self.phase == ViewPhase.CLOSED

    def is_duplicate(self, event: Event) -> bool:
        return event.id in self._ids or event.dedup_key in self._dedup_keys

    def add_event(self, event: Event, realtime: bool) -> bool:
        """Insert *event* at its sorted position.

        Real-time events go before stored events with the same
        ``created_at``; historical events go after them.

        Returns:
            ``False`` if the event duplicates a stored one.
        """
        if self.is_duplicate(event):
            return False
        if realtime:
            index = bisect.bisect_left(self.events, -event.created_at, key=_sort_key)
        else:
            index = bisect.bisect_right(self.events, -event.created_at, key=_sort_key)
        self.events.insert(index, event)
        self._ids.add(event.id)
        self._dedup_keys.add(event.dedup_key)
        self.last_event_time = self.events[-1].created_at
        return True

    def record_realtime_amount(self, amount_msats: int) -> None:
        self.realtime_delta = self.realtime_delta.add(amount_msats)

    def stats_snapshot(self) -> StatsSnapshot:
        """Baseline merged with the real-time delta, or the bare status."""
        if self.baseline is None:
            status = (
                StatsStatus.UNAVAILABLE
                if self.stats_status == StatsStatus.AVAILABLE
                else self.stats_status
            )
            return StatsSnapshot(status)
        return StatsSnapshot(StatsStatus.AVAILABLE, self.baseline.merge(self.realtime_delta))

    def close_subscription(self) -> bool:
        """Close the live subscription once; later calls return ``False``."""
        if self.subscription is None:
            return False
        subscription, self.subscription = self.subscription, None
        subscription.close()
        return True


class ViewStateStore:
    """Registry of open views, keyed by view id."""

    def __init__(self) -> None:
        self._views: dict[str, ViewState] = {}

    def __len__(self) -> int:
        return len(self._views)

    def __contains__(self, view_id: object) -> bool:
        return view_id in self._views

    def create(self, view_id: str, **fields: Any) -> ViewState:
        """Create and register a new view.

        Raises:
            ValueError: If *view_id* is already registered.
        """
        if view_id in self._views:
            raise ValueError(f"view {view_id!r} already exists")
        state = ViewState(view_id=view_id, **fields)
        self._views[view_id] = state
        return state

    def get(self, view_id: str) -> ViewState | None:
        return self._views.get(view_id)

    def require(self, view_id: str) -> ViewState:
        """Return the view or raise ``KeyError``."""
        try:
            return self._views[view_id]
        except KeyError:
            raise KeyError(f"unknown view {view_id!r}") from None

    def remove(self, view_id: str) -> ViewState | None:
        return self._views.pop(view_id, None)

    def view_ids(self) -> list[str]:
        return list(self._views)
