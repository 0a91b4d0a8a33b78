"""
Subscription and pagination coordinator.

[SubscriptionCoordinator][zapview.services.coordinator.SubscriptionCoordinator]
drives every view through its lifecycle::

    IDLE -> BACKFILL_IN_FLIGHT -> BACKFILL_COMPLETE
         [-> PAGINATION_IN_FLIGHT -> BACKFILL_COMPLETE]* -> CLOSED

Incoming receipts are classified as real-time (``created_at`` within
``realtime_skew`` seconds of now) or historical and merged into the view's
ordered, deduplicated event list. Each accepted receipt spawns reference and
sender-profile resolution tasks; ingestion never waits for them.

Statistics follow one rule: exposed totals are the aggregation-service
baseline merged with the totals of real-time receipts accepted since the
view opened. Historical and paginated receipts are already part of the
baseline and never count twice.

See Also:
    [ViewStateStore][zapview.core.store.ViewStateStore]: Owns per-view state.
    [ZapView][zapview.services.zap_view.ZapView]: Facade wiring the
        coordinator to its collaborators.
"""

from __future__ import annotations

import asyncio
import functools
import time
from collections.abc import Callable, Coroutine, Sequence
from typing import Any

from zapview.core.context import CacheContext
from zapview.core.exceptions import TransportError
from zapview.core.logger import Logger
from zapview.core.metrics import ComponentMetrics
from zapview.core.scheduler import Debouncer, Scheduler
from zapview.core.store import PaginationState, ViewState, ViewStateStore
from zapview.models import (
    AggregateStats,
    DecodedIdentifier,
    Event,
    EventKind,
    RelayFilter,
    StatsSnapshot,
    StatsStatus,
    ViewPhase,
    ZapDetails,
    is_hex64,
)
from zapview.utils.bolt11 import decode_amount
from zapview.utils.nip19 import decode
from zapview.utils.transport import RelayTransport

from .configs import ViewConfig
from .profiles import ProfileResolver
from .resolver import ReferenceResolver
from .stats import StatsClient


ViewListener = Callable[[str, Event], None]


class SubscriptionCoordinator:
    """Owns view lifecycles, event ingestion and pagination.

    Args:
        transport: Relay transport for view and pagination subscriptions.
        context: Shared caches.
        references: Resolver for quoted events.
        profiles: Resolver for sender profiles.
        stats: Baseline client; ``None`` marks every view's stats DISABLED.
        store: View registry (a fresh one when omitted).
        scheduler: Timer source for debouncers.
        realtime_skew: Seconds within which an event counts as real-time.
        clock: Wall clock in Unix seconds.
    """

    def __init__(
        self,
        transport: RelayTransport,
        context: CacheContext,
        *,
        references: ReferenceResolver,
        profiles: ProfileResolver,
        stats: StatsClient | None = None,
        store: ViewStateStore | None = None,
        scheduler: Scheduler | None = None,
        realtime_skew: float = 5.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._transport = transport
        self._context = context
        self._references = references
        self._profiles = profiles
        self._stats = stats
        self._store = store if store is not None else ViewStateStore()
        self._scheduler = scheduler or Scheduler()
        self._realtime_skew = realtime_skew
        self._clock = clock
        self._configs: dict[str, ViewConfig] = {}
        self._backfilled: dict[str, asyncio.Event] = {}
        self._listeners: list[ViewListener] = []
        self._tasks: set[asyncio.Task[Any]] = set()
        self._logger = Logger("coordinator")
        self._metrics = ComponentMetrics("coordinator")

    @property
    def store(self) -> ViewStateStore:
        return self._store

    def config_for(self, view_id: str) -> ViewConfig | None:
        return self._configs.get(view_id)

    def add_listener(self, listener: ViewListener) -> Callable[[], None]:
        """Call *listener(view_id, event)* on acceptance and after resolution.

        Returns:
            A function removing the listener.
        """
        self._listeners.append(listener)
        return functools.partial(self._remove_listener, listener)

    def _remove_listener(self, listener: ViewListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, view_id: str, event: Event) -> None:
        for listener in list(self._listeners):
            try:
                listener(view_id, event)
            except Exception as e:  # Listener error boundary: ingestion continues
                self._logger.error("listener_failed", view_id=view_id, error=str(e))

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def decode_identifier(self, identifier: str) -> DecodedIdentifier | None:
        """Decode through the shared ``decoded`` cache."""
        cached = self._context.decoded.get(identifier)
        if cached is not None:
            return cached
        decoded = decode(identifier)
        if decoded is not None:
            self._context.decoded.set(identifier, decoded)
        return decoded

    async def initialize_view(self, view_id: str, config: ViewConfig) -> ViewState | None:
        """Open (or re-open) *view_id* and start its backfill.

        Re-initializing an open view closes its live subscription first and
        keeps its cached events; a different identifier or relay set
        replaces the view instead.

        Returns:
            The view state, or ``None`` when the identifier is undecodable
            or the view was closed while relays were being prepared.
        """
        decoded = self.decode_identifier(config.identifier)
        if decoded is None:
            self._logger.warning(
                "identifier_undecodable", view_id=view_id, identifier=config.identifier[:24]
            )
            return None

        relay_urls = tuple(config.relay_urls)
        state = self._store.get(view_id)
        if state is not None and (
            state.identifier != config.identifier or state.relay_urls != relay_urls
        ):
            self.close_view(view_id)
            state = None

        if state is None:
            state = self._store.create(
                view_id,
                identifier=config.identifier,
                decoded=decoded,
                relay_urls=relay_urls,
                base_filter=RelayFilter.for_zaps(decoded),
                initial_load_count=config.initial_load_count,
            )
            self._backfilled[view_id] = asyncio.Event()
        else:
            state.close_subscription()
            state.pagination.tear_down()
            state.pagination = PaginationState()
            state.initial_load_count = config.initial_load_count
            self._backfilled.setdefault(view_id, asyncio.Event()).clear()
            self._logger.info("view_reinitialized", view_id=view_id, cached=len(state))

        self._configs[view_id] = config
        await self._ensure_relays(relay_urls)
        if self._store.get(view_id) is not state:
            return None

        self._start_stats(state)
        state.phase = ViewPhase.BACKFILL_IN_FLIGHT
        state.subscription = self._transport.subscribe_many(
            relay_urls,
            [state.base_filter.with_limit(config.initial_load_count)],
            on_event=functools.partial(self._on_live_event, state),
            on_eose=functools.partial(self._on_backfill_eose, state),
        )
        self._metrics.set("views", len(self._store))
        self._logger.info(
            "view_initialized",
            view_id=view_id,
            type=decoded.type,
            relays=len(relay_urls),
            limit=config.initial_load_count,
        )
        return state

    async def _ensure_relays(self, relay_urls: Sequence[str]) -> None:
        async def ensure(url: str) -> None:
            try:
                await self._transport.ensure_relay(url)
            except TransportError as e:
                self._logger.warning("relay_unavailable", relay=url, error=str(e))

        await asyncio.gather(*(ensure(url) for url in relay_urls))

    def _start_stats(self, state: ViewState) -> None:
        if self._stats is None or not self._stats.config.enabled:
            state.stats_status = StatsStatus.DISABLED
            return
        if state.baseline is None:
            state.stats_status = StatsStatus.LOADING
        self._spawn(state, self._load_baseline(state, self._stats))

    async def _load_baseline(self, state: ViewState, stats: StatsClient) -> None:
        snapshot = await stats.fetch(state.identifier, state.decoded, view_id=state.view_id)
        if snapshot.stats is not None:
            if state.baseline is not None and snapshot.stats is not state.baseline:
                # A refetched baseline already counts the real-time zaps seen so far.
                state.realtime_delta = AggregateStats()
            state.baseline = snapshot.stats
        elif state.baseline is not None:
            return
        state.stats_status = snapshot.status
        self._logger.debug("stats_baseline", view_id=state.view_id, status=snapshot.status)

    def close_view(self, view_id: str) -> bool:
        """Close *view_id*: subscription closed once, pagination torn down, state evicted.

        In-flight resolutions are left to finish into the shared caches.

        Returns:
            ``False`` if the view was not open (a repeated close is a no-op).
        """
        state = self._store.remove(view_id)
        if state is None:
            return False
        state.phase = ViewPhase.CLOSED
        state.close_subscription()
        state.pagination.tear_down()
        self._configs.pop(view_id, None)
        backfilled = self._backfilled.pop(view_id, None)
        if backfilled is not None:
            backfilled.set()
        self._metrics.set("views", len(self._store))
        self._logger.info("view_closed", view_id=view_id, events=len(state))
        return True

    async def wait_for_backfill(self, view_id: str, timeout: float | None = None) -> bool:  # noqa: ASYNC109
        """Wait until the initial backfill of *view_id* completes.

        Returns:
            ``True`` once the backfill is complete, ``False`` on timeout or
            if the view is not open (or was closed while waiting).
        """
        state = self._store.get(view_id)
        backfilled = self._backfilled.get(view_id)
        if state is None or backfilled is None:
            return False
        try:
            async with asyncio.timeout(timeout):
                await backfilled.wait()
        except TimeoutError:
            return False
        return state.is_backfill_complete and not state.is_closed

    async def settle(self, view_id: str) -> None:
        """Wait for the outstanding resolution tasks of *view_id*."""
        state = self._store.get(view_id)
        while state is not None and state.tasks:
            await asyncio.gather(*list(state.tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Close every view and cancel outstanding resolution tasks."""
        for view_id in self._store.view_ids():
            self.close_view(view_id)
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._listeners.clear()

    # -------------------------------------------------------------------------
    # Ingestion
    # -------------------------------------------------------------------------

    def _is_realtime(self, event: Event) -> bool:
        return event.created_at >= self._clock() - self._realtime_skew

    def _ingest(self, state: ViewState, event: Event, *, historical: bool = False) -> bool:
        """Merge *event* into *state*; returns ``True`` if it was accepted."""
        if state.is_closed:
            return False
        if event.kind == EventKind.SET_METADATA:
            self._profiles.apply_update(event)
            return False
        if not state.base_filter.matches(event):
            self._metrics.inc("events_ignored")
            return False
        if state.is_duplicate(event):
            self._metrics.inc("events_duplicate")
            return False

        realtime = not historical and self._is_realtime(event)
        zap = ZapDetails.from_receipt(event, decode_amount)
        event.accept(realtime=realtime, zap=zap)
        state.add_event(event, realtime)
        self._metrics.inc("events_accepted")

        if realtime:
            self._metrics.inc("realtime_events")
            if zap.amount_msats:
                state.record_realtime_amount(zap.amount_msats)

        config = self._configs.get(state.view_id)
        if config is not None:
            self._spawn(state, self._resolve_reference(state, event, config))
        if zap.sender_pubkey is not None and is_hex64(zap.sender_pubkey):
            self._spawn(state, self._resolve_sender(state, event, zap.sender_pubkey))
        self._notify(state.view_id, event)
        return True

    def _on_live_event(self, state: ViewState, event: Event) -> None:
        self._ingest(state, event)

    def _on_backfill_eose(self, state: ViewState) -> None:
        if state.phase != ViewPhase.BACKFILL_IN_FLIGHT:
            return
        state.phase = ViewPhase.BACKFILL_COMPLETE
        if not state.events:
            self._logger.info("no_results", view_id=state.view_id)
        elif len(state.events) >= state.initial_load_count:
            self._arm_pagination(state)
        backfilled = self._backfilled.get(state.view_id)
        if backfilled is not None:
            backfilled.set()
        self._logger.info(
            "backfill_complete",
            view_id=state.view_id,
            events=len(state),
            pagination=state.pagination.armed,
        )

    def _spawn(self, state: ViewState, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.ensure_future(coro)
        state.tasks.add(task)
        self._tasks.add(task)
        task.add_done_callback(state.tasks.discard)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(functools.partial(self._log_task_failure, state.view_id))

    def _log_task_failure(self, view_id: str, task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._metrics.inc("task_failures")
            self._logger.error(
                "resolution_failed",
                view_id=view_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def _resolve_reference(self, state: ViewState, event: Event, config: ViewConfig) -> None:
        reference = await self._references.resolve(
            state.relay_urls,
            event,
            timeout=config.reference_timeout,
            batch_size=config.batch_size,
            batch_delay=config.batch_delay,
        )
        if reference is not None and not state.is_closed:
            self._notify(state.view_id, event)

    async def _resolve_sender(self, state: ViewState, event: Event, pubkey: str) -> None:
        profile = await self._profiles.resolve(pubkey)
        if profile.nip05:
            await self._profiles.verify_nip05(pubkey)
        if not state.is_closed:
            self._notify(state.view_id, event)

    # -------------------------------------------------------------------------
    # Pagination
    # -------------------------------------------------------------------------

    def _arm_pagination(self, state: ViewState) -> None:
        config = self._configs.get(state.view_id)
        pagination = state.pagination
        if config is None or pagination.exhausted or pagination.armed:
            return
        pagination.armed = True
        pagination.debouncer = Debouncer(
            config.debounce,
            functools.partial(self.load_more, state.view_id),
            scheduler=self._scheduler,
        )
        self._logger.debug("pagination_armed", view_id=state.view_id)

    def trigger_pagination(self, view_id: str) -> bool:
        """Scroll-proximity trigger; bursts within the debounce window collapse.

        Returns:
            ``True`` if a round was scheduled, ``False`` if the trigger is
            not armed or the call was absorbed by the debouncer.
        """
        state = self._store.get(view_id)
        if state is None or not state.pagination.armed or state.pagination.debouncer is None:
            return False
        return state.pagination.debouncer.fire()

    async def load_more(self, view_id: str) -> int:
        """Run one pagination round and return the number of new events.

        Concurrent calls share the running round. ``0`` means the view is
        missing, closed, still backfilling or exhausted.
        """
        state = self._store.get(view_id)
        config = self._configs.get(view_id)
        if state is None or config is None or state.is_closed or state.pagination.exhausted:
            return 0
        in_flight = state.pagination.in_flight
        if in_flight is not None:
            return await asyncio.shield(in_flight)
        if state.phase != ViewPhase.BACKFILL_COMPLETE:
            return 0

        state.phase = ViewPhase.PAGINATION_IN_FLIGHT
        task = asyncio.ensure_future(self._run_page(state, config))
        state.pagination.in_flight = task
        return await asyncio.shield(task)

    async def _run_page(self, state: ViewState, config: ViewConfig) -> int:
        pagination = state.pagination
        relay_filter = state.base_filter.with_until(state.last_event_time).with_limit(
            config.additional_load_count
        )
        added = 0
        done: asyncio.Future[None] = self._scheduler.loop.create_future()
        pagination.round_done = done

        def on_event(event: Event) -> None:
            nonlocal added
            if self._ingest(state, event, historical=True):
                added += 1

        subscription = self._transport.subscribe_many(
            state.relay_urls,
            [relay_filter],
            on_event=on_event,
            on_eose=pagination.finish_round,
            live=False,
            timeout=config.pagination_timeout,
        )
        pagination.subscription = subscription
        try:
            async with asyncio.timeout(config.pagination_timeout):
                await done
        except TimeoutError:
            self._logger.debug(
                "pagination_timeout", view_id=state.view_id, timeout_s=config.pagination_timeout
            )
        finally:
            if pagination.subscription is subscription:
                pagination.subscription = None
            subscription.close()
            pagination.round_done = None
            pagination.in_flight = None
            pagination.rounds += 1
            current = not state.is_closed and state.pagination is pagination
            if current:
                state.phase = ViewPhase.BACKFILL_COMPLETE

        self._metrics.inc("pagination_rounds")
        if added == 0 and current:
            pagination.exhausted = True
            pagination.tear_down()
            self._logger.info("pagination_exhausted", view_id=state.view_id, rounds=pagination.rounds)
        else:
            self._logger.debug("pagination_round", view_id=state.view_id, added=added)
        return added

    # -------------------------------------------------------------------------
    # Read API
    # -------------------------------------------------------------------------

    def get_view(self, view_id: str) -> ViewState | None:
        return self._store.get(view_id)

    def get_cached_events(self, view_id: str) -> list[Event]:
        """Events of *view_id*, newest first (empty for unknown views)."""
        state = self._store.get(view_id)
        return list(state.events) if state is not None else []

    def get_aggregate_stats(self, view_id: str) -> StatsSnapshot:
        """Baseline merged with the real-time delta, or the bare status."""
        state = self._store.get(view_id)
        if state is None:
            return StatsSnapshot.unavailable()
        return state.stats_snapshot()

    def derive_stats(self, view_id: str) -> AggregateStats | None:
        """Re-derive totals from cached events on top of the baseline."""
        state = self._store.get(view_id)
        if state is None:
            return None
        return AggregateStats.fold(state.events, state.baseline)
