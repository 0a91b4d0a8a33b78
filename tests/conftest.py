"""
Pytest configuration and shared fixtures for zapview tests.

Provides:
- FakeTransport: in-memory relay network replaying stored events
- Event factories for zap receipts, metadata and quoted notes
- Resolver, coordinator and cache-context fixtures wired to the fake
"""

import asyncio
import hashlib
import itertools
import json
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from typing import Any

import pytest

from zapview.core.context import CacheContext
from zapview.core.exceptions import TransportError
from zapview.core.scheduler import Scheduler
from zapview.models import Event, EventKind, RelayFilter, Tag
from zapview.services.configs import ProfileConfig, ReferenceConfig, ViewConfig
from zapview.services.coordinator import SubscriptionCoordinator
from zapview.services.profiles import ProfileResolver
from zapview.services.resolver import ReferenceResolver


# NIP-19 test vectors
PUBKEY = "3bf0c63fcb93463407af97a5e5ee64fa883d107ef9e558472c4eb9aaaefa459d"
NPUB = "npub180cvv07tjdrrgpa0j7j7tmnyl2yr6yr7l8j4s3evf6u64th6gkwsyjh6w6"
SENDER = "7e7e9c42a91bfef19fa929e5fda1b72e0ebc1a4c1141673e2794234d86addf4e"
SENDER_NPUB = "npub10elfcs4fr0l0r8af98jlmgdh9c8tcxjvz9qkw038js35mp4dma8qzvjptg"

# Pubkey of the Lightning service publishing receipts
ZAPPER = "c" * 64

NOW = 1_700_000_000
RELAY = "wss://relay.test"
PROFILE_RELAY = "wss://profiles.test"

_ids = itertools.count(1)


def hex_id(seed: object | None = None) -> str:
    """Deterministic 64-hex id; a fresh one when *seed* is omitted."""
    if seed is None:
        seed = f"auto-{next(_ids)}"
    return hashlib.sha256(str(seed).encode()).hexdigest()


# ============================================================================
# Event Factories
# ============================================================================


def make_event(
    *,
    kind: int = EventKind.TEXT_NOTE,
    created_at: int = NOW,
    pubkey: str = ZAPPER,
    tags: Sequence[Sequence[str]] = (),
    content: str = "",
    event_id: str | None = None,
) -> Event:
    return Event(
        id=event_id or hex_id(),
        pubkey=pubkey,
        created_at=created_at,
        kind=kind,
        tags=tuple(Tag.from_list(list(tag)) for tag in tags),
        content=content,
    )


def make_receipt(
    created_at: int,
    *,
    target: str = PUBKEY,
    letter: str = "p",
    amount_sats: int | None = 21,
    sender: str | None = SENDER,
    comment: str = "",
    extra_tags: Sequence[Sequence[str]] = (),
    event_id: str | None = None,
    pubkey: str = ZAPPER,
) -> Event:
    """Build a kind-9735 receipt.

    The invoice encodes *amount_sats* in nano-BTC (10n per sat) and the
    description carries a kind-9734 request signed by *sender*.
    """
    tags: list[list[str]] = [[letter, target]]
    if sender is not None:
        request = {
            "kind": EventKind.ZAP_REQUEST,
            "pubkey": sender,
            "content": comment,
            "created_at": created_at,
            "tags": [["p", PUBKEY]],
        }
        tags.append(["description", json.dumps(request)])
    if amount_sats is not None:
        tags.append(["bolt11", f"lnbc{amount_sats * 10}n1pjzaptest"])
    tags.extend(list(tag) for tag in extra_tags)
    return make_event(
        kind=EventKind.ZAP_RECEIPT,
        created_at=created_at,
        pubkey=pubkey,
        tags=tags,
        event_id=event_id,
    )


def make_metadata(pubkey: str, created_at: int, **fields: Any) -> Event:
    """Build a kind-0 metadata event with *fields* as its JSON content."""
    return make_event(
        kind=EventKind.SET_METADATA,
        created_at=created_at,
        pubkey=pubkey,
        content=json.dumps(fields),
    )


# ============================================================================
# Fake Relay Transport
# ============================================================================


class FakeSubscription:
    """Subscription handle recording its arguments; tests drive it by hand."""

    def __init__(
        self,
        relay_urls: Sequence[str],
        filters: Sequence[RelayFilter],
        on_event: Callable[[Event], None],
        on_eose: Callable[[], None],
        *,
        live: bool,
        timeout: float | None,
    ) -> None:
        self.relay_urls = list(relay_urls)
        self.filters = list(filters)
        self.live = live
        self.timeout = timeout
        self.closed = False
        self.close_calls = 0
        self.eose_sent = False
        self._on_event = on_event
        self._on_eose = on_eose

    def emit(self, event: Event) -> None:
        if not self.closed:
            self._on_event(event)

    def eose(self) -> None:
        if not self.closed and not self.eose_sent:
            self.eose_sent = True
            self._on_eose()

    def close(self) -> None:
        self.close_calls += 1
        self.closed = True


class FakeTransport:
    """In-memory relay network.

    Every subscription replays the stored events matching each of its
    filters (newest first, honoring ``limit``) on the next loop iteration,
    then signals end-of-stored-events, unless ``auto_eose`` is off.
    """

    def __init__(self, stored: Sequence[Event] = (), *, auto_eose: bool = True) -> None:
        self.stored: list[Event] = list(stored)
        self.auto_eose = auto_eose
        self.subscriptions: list[FakeSubscription] = []
        self.queries: list[tuple[list[str], RelayFilter]] = []
        self.ensured: list[str] = []
        self.unreachable: set[str] = set()
        self.query_error: Exception | None = None
        self.closed = False

    def add(self, *events: Event) -> None:
        self.stored.extend(events)

    def _matching(self, relay_filter: RelayFilter) -> list[Event]:
        matched = sorted(
            (e for e in self.stored if relay_filter.matches(e)),
            key=lambda e: e.created_at,
            reverse=True,
        )
        if relay_filter.limit is not None:
            matched = matched[: relay_filter.limit]
        # Relays hand out fresh objects on every request
        return [Event.from_dict(e.to_dict()) for e in matched]

    def replay(self, subscription: FakeSubscription) -> None:
        seen: set[str] = set()
        for relay_filter in subscription.filters:
            for event in self._matching(relay_filter):
                if event.id not in seen:
                    seen.add(event.id)
                    subscription.emit(event)
        subscription.eose()

    def subscribe_many(
        self,
        relay_urls: Sequence[str],
        filters: Sequence[RelayFilter],
        *,
        on_event: Callable[[Event], None],
        on_eose: Callable[[], None],
        live: bool = True,
        timeout: float | None = None,
    ) -> FakeSubscription:
        subscription = FakeSubscription(
            relay_urls, filters, on_event, on_eose, live=live, timeout=timeout
        )
        self.subscriptions.append(subscription)
        if self.auto_eose:
            asyncio.get_running_loop().call_soon(self.replay, subscription)
        return subscription

    async def query_sync(
        self,
        relay_urls: Sequence[str],
        relay_filter: RelayFilter,
        *,
        timeout: float,  # noqa: ASYNC109
    ) -> list[Event]:
        self.queries.append((list(relay_urls), relay_filter))
        if self.query_error is not None:
            raise self.query_error
        return self._matching(relay_filter)

    async def ensure_relay(self, url: str) -> None:
        self.ensured.append(url)
        if url in self.unreachable:
            raise TransportError("relay unreachable", relay_url=url)

    async def aclose(self) -> None:
        self.closed = True


class FakeClock:
    """Wall clock frozen at ``now`` until a test moves it."""

    def __init__(self, now: float = NOW) -> None:
        self.now = float(now)

    def __call__(self) -> float:
        return self.now


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


# ============================================================================
# Component Fixtures
# ============================================================================


@pytest.fixture
def context() -> CacheContext:
    return CacheContext.init()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler() -> Scheduler:
    return Scheduler()


@pytest.fixture
def reference_config() -> ReferenceConfig:
    return ReferenceConfig(batch_delay_ms=0, timeout_ms=1000)


@pytest.fixture
def profile_config() -> ProfileConfig:
    return ProfileConfig(relays=[PROFILE_RELAY], batch_delay_ms=0, verify_nip05=False)


@pytest.fixture
async def references(
    transport: FakeTransport,
    context: CacheContext,
    reference_config: ReferenceConfig,
    scheduler: Scheduler,
) -> AsyncIterator[ReferenceResolver]:
    resolver = ReferenceResolver(transport, context, config=reference_config, scheduler=scheduler)
    yield resolver
    await resolver.aclose()


@pytest.fixture
async def profiles(
    transport: FakeTransport,
    context: CacheContext,
    profile_config: ProfileConfig,
    scheduler: Scheduler,
) -> AsyncIterator[ProfileResolver]:
    resolver = ProfileResolver(transport, context, config=profile_config, scheduler=scheduler)
    yield resolver
    await resolver.aclose()


@pytest.fixture
async def coordinator(
    transport: FakeTransport,
    context: CacheContext,
    references: ReferenceResolver,
    profiles: ProfileResolver,
    scheduler: Scheduler,
    clock: FakeClock,
) -> AsyncIterator[SubscriptionCoordinator]:
    coordinator = SubscriptionCoordinator(
        transport,
        context,
        references=references,
        profiles=profiles,
        scheduler=scheduler,
        realtime_skew=5.0,
        clock=clock,
    )
    yield coordinator
    await coordinator.aclose()


@pytest.fixture
def view_config() -> ViewConfig:
    """Profile view on one relay: backfill 10, pages of 5, short timers."""
    return ViewConfig(
        view_id="v1",
        identifier=NPUB,
        relay_urls=[RELAY],
        initial_load_count=10,
        additional_load_count=5,
        batch_delay_ms=0,
        reference_timeout_ms=1000,
        pagination_timeout_ms=1000,
        debounce_ms=10,
    )
