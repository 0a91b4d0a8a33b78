"""
Reference resolution for zap receipts that quote another event.

A zap receipt may point at the zapped note through an ``e`` tag (event id)
or at an addressable event through an ``a`` tag (``kind:pubkey:d``
coordinate). [ReferenceResolver][zapview.services.resolver.ReferenceResolver]
fetches the quoted event once per tag value, caches it as an immutable
[Reference][zapview.models.event.Reference] and attaches it to the receipt.

Lookups are coalesced: every tag value requested while a batch window is
open is fetched by one subscription over the union of the requesting
views' relays. One [RequestCoalescer][zapview.core.coalescer.RequestCoalescer]
exists per distinct ``(batch_size, batch_delay)`` pair so each view keeps
its own batching settings, while a key already pending anywhere is joined
rather than fetched twice.

See Also:
    [SubscriptionCoordinator][zapview.services.coordinator.SubscriptionCoordinator]:
        Spawns a resolution task for every accepted receipt.
    [CacheContext][zapview.core.context.CacheContext]: Holds the
        ``references`` cache shared by all views.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Sequence
from dataclasses import dataclass, field

from zapview.core.coalescer import RequestCoalescer
from zapview.core.context import CacheContext
from zapview.core.logger import Logger
from zapview.core.metrics import ComponentMetrics
from zapview.core.scheduler import Scheduler
from zapview.models import REFERENCE_KINDS, Event, Reference, RelayFilter, is_hex64
from zapview.utils.nip19 import Coordinate, encode_coordinate, parse_coordinate
from zapview.utils.transport import RelayTransport

from .configs import ReferenceConfig


def select_reference_key(event: Event) -> str | None:
    """Return the tag value a receipt quotes, or ``None``.

    The first ``e`` tag holding a 64-hex id wins; otherwise the first ``a``
    tag holding a well-formed coordinate.
    """
    for value in event.tag_values("e"):
        if is_hex64(value):
            return value
    for value in event.tag_values("a"):
        coordinate = parse_coordinate(value)
        if coordinate is not None:
            return str(coordinate)
    return None


@dataclass(slots=True)
class _Wanted:
    """Relays and wait time accumulated for one queued key."""

    relay_urls: dict[str, None] = field(default_factory=dict)
    timeout: float = 0.0

    def merge(self, relay_urls: Sequence[str], timeout: float) -> None:
        for url in relay_urls:
            self.relay_urls.setdefault(url, None)
        self.timeout = max(self.timeout, timeout)


class ReferenceResolver:
    """Coalescing fetcher for events quoted by zap receipts.

    Args:
        transport: Relay transport used for the batch subscriptions.
        context: Shared caches; resolved references land in ``references``.
        config: Default batch size, window and wait time.
        scheduler: Timer source shared with the coalescers.
    """

    def __init__(
        self,
        transport: RelayTransport,
        context: CacheContext,
        *,
        config: ReferenceConfig | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._transport = transport
        self._context = context
        self._config = config or ReferenceConfig()
        self._scheduler = scheduler or Scheduler()
        self._coalescers: dict[tuple[int, float], RequestCoalescer[str, Reference]] = {}
        self._wanted: dict[str, _Wanted] = {}
        self._logger = Logger("resolver.references")
        self._metrics = ComponentMetrics("resolver.references")

    @property
    def config(self) -> ReferenceConfig:
        return self._config

    @property
    def coalescers(self) -> list[RequestCoalescer[str, Reference]]:
        return list(self._coalescers.values())

    def is_pending(self, key: str) -> bool:
        return self._pending_coalescer(key) is not None

    async def resolve(
        self,
        relay_urls: Sequence[str],
        event: Event,
        *,
        timeout: float | None = None,  # noqa: ASYNC109
        batch_size: int | None = None,
        batch_delay: float | None = None,
    ) -> Reference | None:
        """Resolve and attach the event quoted by *event*.

        Args:
            relay_urls: Relays to query (the requesting view's relays).
            event: Zap receipt carrying an ``e`` or ``a`` tag.
            timeout: Seconds to wait for the quoted event.
            batch_size: Coalescer batch size (config default when omitted).
            batch_delay: Coalescer window in seconds (config default when omitted).

        Returns:
            The reference, or ``None`` when the receipt quotes nothing, no
            relays were given, or the event was not found in time.
        """
        key = select_reference_key(event)
        if key is None or not relay_urls:
            return None

        cached = self._context.references.get(key)
        if cached is not None:
            self._metrics.inc("cache_hits")
            event.attach_reference(cached)
            return cached

        timeout = timeout if timeout is not None else self._config.timeout
        coalescer = self._pending_coalescer(key)
        if coalescer is None:
            coalescer = self._coalescer(
                batch_size if batch_size is not None else self._config.batch_size,
                batch_delay if batch_delay is not None else self._config.batch_delay,
            )
            self._wanted.setdefault(key, _Wanted()).merge(relay_urls, timeout)
        elif (wanted := self._wanted.get(key)) is not None:
            wanted.merge(relay_urls, timeout)

        try:
            reference = await coalescer.request(key)
        finally:
            if not coalescer.is_pending(key):
                self._wanted.pop(key, None)

        if reference is None:
            return None
        event.attach_reference(reference)
        return reference

    def _pending_coalescer(self, key: str) -> RequestCoalescer[str, Reference] | None:
        return next((c for c in self._coalescers.values() if c.is_pending(key)), None)

    def _coalescer(self, batch_size: int, batch_delay: float) -> RequestCoalescer[str, Reference]:
        pair = (batch_size, batch_delay)
        coalescer = self._coalescers.get(pair)
        if coalescer is None:
            coalescer = RequestCoalescer(
                functools.partial(self._fetch_batch, pair),
                name=f"references.{batch_size}x{int(batch_delay * 1000)}ms",
                batch_size=batch_size,
                batch_delay=batch_delay,
                scheduler=self._scheduler,
            )
            self._coalescers[pair] = coalescer
        return coalescer

    async def _fetch_batch(
        self, pair: tuple[int, float], keys: list[str]
    ) -> dict[str, Reference | None]:
        coalescer = self._coalescers[pair]
        relay_urls: dict[str, None] = {}
        timeout = 0.0
        ids: set[str] = set()
        coordinates: dict[str, Coordinate] = {}

        for key in keys:
            wanted = self._wanted.pop(key, None)
            if wanted is not None:
                relay_urls.update(wanted.relay_urls)
                timeout = max(timeout, wanted.timeout)
            if is_hex64(key):
                ids.add(key)
            elif (coordinate := parse_coordinate(key)) is not None:
                coordinates[key] = coordinate

        if not relay_urls:
            return {}
        timeout = timeout or self._config.timeout

        filters: list[RelayFilter] = []
        if ids:
            filters.append(RelayFilter.build(ids=sorted(ids), kinds=REFERENCE_KINDS))
        filters.extend(
            RelayFilter.build(
                kinds=[c.kind], authors=[c.pubkey], tags={"d": [c.identifier]}
            )
            for c in coordinates.values()
        )

        remaining = set(ids) | set(coordinates)
        done: asyncio.Future[None] = self._scheduler.loop.create_future()

        def finish() -> None:
            if not done.done():
                done.set_result(None)

        def on_event(event: Event) -> None:
            key = self._match(event, ids, coordinates)
            if key is None or key not in remaining:
                return
            remaining.discard(key)
            reference = Reference.from_event(event)
            self._context.references.set(key, reference)
            self._metrics.inc("resolved")
            coalescer.settle(key, reference)
            if not remaining:
                finish()

        subscription = self._transport.subscribe_many(
            list(relay_urls),
            filters,
            on_event=on_event,
            on_eose=finish,
            live=False,
            timeout=timeout,
        )
        try:
            async with asyncio.timeout(timeout):
                await done
        except TimeoutError:
            self._logger.debug("reference_batch_timeout", keys=len(keys), timeout_s=timeout)
        finally:
            subscription.close()

        if remaining:
            self._metrics.inc("not_found", len(remaining))
        self._logger.debug(
            "reference_batch_done",
            keys=len(keys),
            relays=len(relay_urls),
            unresolved=len(remaining),
        )
        return {}

    @staticmethod
    def _match(event: Event, ids: set[str], coordinates: dict[str, Coordinate]) -> str | None:
        if event.id in ids:
            return event.id
        if coordinates:
            d_tag = event.find_tag("d")
            d = (d_tag.value or "") if d_tag is not None else ""
            key = encode_coordinate(event.kind, event.pubkey, d)
            if key in coordinates:
                return key
        return None

    async def aclose(self) -> None:
        """Close every coalescer; pending lookups resolve to ``None``."""
        for coalescer in self._coalescers.values():
            await coalescer.aclose()
        self._wanted.clear()
