"""
Unit tests for services.resolver module.

Tests:
- select_reference_key() tag preference
- Single-flight resolution of one quoted event
- Batching of distinct keys into one subscription
- Addressable-event (``a`` tag) resolution
- Cache hits, misses and shutdown
"""

import asyncio

from tests.conftest import PUBKEY, RELAY, FakeTransport, hex_id, make_event, make_receipt
from zapview.core.context import CacheContext
from zapview.models import EventKind
from zapview.services.resolver import ReferenceResolver, select_reference_key


# ============================================================================
# select_reference_key() Tests
# ============================================================================


class TestSelectReferenceKey:
    """Tests for choosing the quoted tag value."""

    def test_e_tag(self) -> None:
        note_id = hex_id("note")
        assert select_reference_key(make_receipt(1, extra_tags=[["e", note_id]])) == note_id

    def test_e_preferred_over_a(self) -> None:
        note_id = hex_id("note")
        receipt = make_receipt(
            1, extra_tags=[["a", f"30023:{PUBKEY}:slug"], ["e", note_id]]
        )
        assert select_reference_key(receipt) == note_id

    def test_malformed_e_falls_back_to_a(self) -> None:
        receipt = make_receipt(1, extra_tags=[["e", "short"], ["a", f"30023:{PUBKEY}:slug"]])
        assert select_reference_key(receipt) == f"30023:{PUBKEY}:slug"

    def test_nothing_quoted(self) -> None:
        assert select_reference_key(make_receipt(1)) is None

    def test_malformed_a_ignored(self) -> None:
        assert select_reference_key(make_receipt(1, extra_tags=[["a", "nope"]])) is None


# ============================================================================
# ReferenceResolver Tests
# ============================================================================


class TestResolve:
    """Tests for ReferenceResolver.resolve()."""

    async def test_resolves_and_attaches(
        self, references: ReferenceResolver, transport: FakeTransport, context: CacheContext
    ) -> None:
        note = make_event(content="zapped note", pubkey=PUBKEY)
        transport.add(note)
        receipt = make_receipt(10, extra_tags=[["e", note.id]])

        reference = await references.resolve([RELAY], receipt)

        assert reference is not None
        assert reference.id == note.id
        assert reference.content == "zapped note"
        assert receipt.reference == reference
        assert context.references.get(note.id) == reference
        assert transport.subscriptions[0].closed
        assert transport.subscriptions[0].live is False

    async def test_concurrent_requests_share_one_subscription(
        self, references: ReferenceResolver, transport: FakeTransport
    ) -> None:
        note = make_event(content="popular")
        transport.add(note)
        receipts = [
            make_receipt(created_at, extra_tags=[["e", note.id]]) for created_at in (1, 2, 3)
        ]

        results = await asyncio.gather(*(references.resolve([RELAY], r) for r in receipts))

        assert len(transport.subscriptions) == 1
        assert all(result is not None and result.id == note.id for result in results)
        assert all(r.reference is not None for r in receipts)

    async def test_distinct_keys_batched(
        self, references: ReferenceResolver, transport: FakeTransport
    ) -> None:
        first, second = make_event(content="a"), make_event(content="b")
        transport.add(first, second)

        results = await asyncio.gather(
            references.resolve(["wss://one.test"], make_receipt(1, extra_tags=[["e", first.id]])),
            references.resolve(["wss://two.test"], make_receipt(2, extra_tags=[["e", second.id]])),
        )

        assert [r.content for r in results if r is not None] == ["a", "b"]
        assert len(transport.subscriptions) == 1
        subscription = transport.subscriptions[0]
        assert set(subscription.relay_urls) == {"wss://one.test", "wss://two.test"}
        assert set(subscription.filters[0].ids) == {first.id, second.id}

    async def test_pending_key_joined_across_batch_settings(
        self, references: ReferenceResolver, transport: FakeTransport
    ) -> None:
        note = make_event()
        transport.add(note)

        await asyncio.gather(
            references.resolve([RELAY], make_receipt(1, extra_tags=[["e", note.id]]), batch_size=5),
            references.resolve([RELAY], make_receipt(2, extra_tags=[["e", note.id]]), batch_size=7),
        )

        assert len(transport.subscriptions) == 1
        assert len(references.coalescers) == 1

    async def test_coordinate(self, references: ReferenceResolver, transport: FakeTransport) -> None:
        article = make_event(
            kind=EventKind.LONG_FORM,
            pubkey=PUBKEY,
            tags=[["d", "slug"], ["title", "Essay"]],
            content="long form",
        )
        transport.add(article)
        coordinate = f"30023:{PUBKEY}:slug"
        receipt = make_receipt(1, extra_tags=[["a", coordinate]])

        reference = await references.resolve([RELAY], receipt)

        assert reference is not None
        assert reference.id == article.id
        assert reference.find_tag("title").value == "Essay"
        subscription_filter = transport.subscriptions[0].filters[0]
        assert subscription_filter.authors == (PUBKEY,)
        assert subscription_filter.tags == {"d": ("slug",)}

    async def test_cache_hit_skips_network(
        self, references: ReferenceResolver, transport: FakeTransport
    ) -> None:
        note = make_event()
        transport.add(note)
        await references.resolve([RELAY], make_receipt(1, extra_tags=[["e", note.id]]))

        again = make_receipt(2, extra_tags=[["e", note.id]])
        reference = await references.resolve([RELAY], again)

        assert reference is not None
        assert again.reference == reference
        assert len(transport.subscriptions) == 1

    async def test_not_found(self, references: ReferenceResolver, transport: FakeTransport) -> None:
        receipt = make_receipt(1, extra_tags=[["e", hex_id("missing")]])

        assert await references.resolve([RELAY], receipt) is None
        assert receipt.reference is None
        assert not references.is_pending(hex_id("missing"))

    async def test_timeout_without_eose(self, context: CacheContext) -> None:
        transport = FakeTransport(auto_eose=False)
        resolver = ReferenceResolver(transport, context)
        receipt = make_receipt(1, extra_tags=[["e", hex_id("slow")]])

        try:
            result = await resolver.resolve([RELAY], receipt, timeout=0.05, batch_delay=0)
        finally:
            await resolver.aclose()

        assert result is None
        assert transport.subscriptions[0].closed

    async def test_nothing_quoted(
        self, references: ReferenceResolver, transport: FakeTransport
    ) -> None:
        assert await references.resolve([RELAY], make_receipt(1)) is None
        assert transport.subscriptions == []

    async def test_no_relays(self, references: ReferenceResolver, transport: FakeTransport) -> None:
        receipt = make_receipt(1, extra_tags=[["e", hex_id()]])
        assert await references.resolve([], receipt) is None
        assert transport.subscriptions == []


class TestAclose:
    async def test_pending_lookups_resolve_to_none(self, context: CacheContext) -> None:
        transport = FakeTransport(auto_eose=False)
        resolver = ReferenceResolver(transport, context)
        receipt = make_receipt(1, extra_tags=[["e", hex_id("never")]])

        task = asyncio.ensure_future(resolver.resolve([RELAY], receipt, batch_delay=0))
        while not transport.subscriptions:
            await asyncio.sleep(0)
        await resolver.aclose()

        assert await task is None
        assert transport.subscriptions[0].closed
