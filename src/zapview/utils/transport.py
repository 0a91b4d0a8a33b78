"""Relay transport: the protocol the core consumes and its ``nostr_sdk`` adapter.

The ingestion core talks to relays only through
[RelayTransport][zapview.utils.transport.RelayTransport]:

* ``subscribe_many(relay_urls, filters, on_event=..., on_eose=...)`` opens
  one subscription over several relays and returns a handle with an
  idempotent ``close()``;
* ``query_sync(relay_urls, filter, timeout=...)`` collects stored events
  until end-of-stored-events or the timeout;
* ``ensure_relay(url)`` checks that a relay is reachable.

[NostrSdkTransport][zapview.utils.transport.NostrSdkTransport] implements it
with one ``nostr_sdk.Client`` per subscription. Each subscription runs as a
task: connect (relays that fail are logged and skipped), stream stored
events per filter, signal end-of-stored-events once, then optionally follow
live events until closed. Transport failures are caught per subscription
and treated as "zero results from that relay"; ``CancelledError`` is never
swallowed.

Examples:
    ```python
    transport = NostrSdkTransport(connect_timeout=10.0)
    sub = transport.subscribe_many(
        ["wss://relay.damus.io"],
        [RelayFilter.for_zaps(decoded, limit=15)],
        on_event=handle,
        on_eose=done,
    )
    ...
    sub.close()
    ```
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable, Sequence
from datetime import timedelta
from typing import Any, Protocol

from nostr_sdk import (
    Alphabet,
    Client,
    ClientBuilder,
    EventId,
    Filter,
    HandleNotification,
    Kind,
    NostrSdkError,
    PublicKey,
    RelayUrl,
    SingleLetterTag,
    Timestamp,
)
from nostr_sdk import Event as NostrEvent

from zapview.core.exceptions import RelayTimeoutError, TransportError
from zapview.models import Event, RelayFilter


logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_STREAM_TIMEOUT = 20.0

OnEvent = Callable[[Event], None]
OnEose = Callable[[], None]


class Subscription(Protocol):
    """Handle returned by ``subscribe_many``; ``close()`` is idempotent."""

    def close(self) -> None: ...


class RelayTransport(Protocol):
    """Relay network as seen by the ingestion core."""

    def subscribe_many(
        self,
        relay_urls: Sequence[str],
        filters: Sequence[RelayFilter],
        *,
        on_event: OnEvent,
        on_eose: OnEose,
        live: bool = True,
        timeout: float | None = None,
    ) -> Subscription: ...

    async def query_sync(
        self,
        relay_urls: Sequence[str],
        relay_filter: RelayFilter,
        *,
        timeout: float,  # noqa: ASYNC109
    ) -> list[Event]: ...

    async def ensure_relay(self, url: str) -> None: ...

    async def aclose(self) -> None: ...


def to_sdk_filter(relay_filter: RelayFilter) -> Filter:
    """Build a ``nostr_sdk.Filter`` from a [RelayFilter][zapview.models.filter.RelayFilter].

    Raises:
        NostrSdkError: If an id or author is not a valid hex key.
    """
    f = Filter()
    if relay_filter.ids:
        f = f.ids([EventId.parse(event_id) for event_id in relay_filter.ids])
    if relay_filter.kinds:
        f = f.kinds([Kind(k) for k in relay_filter.kinds])
    if relay_filter.authors:
        f = f.authors([PublicKey.parse(pubkey) for pubkey in relay_filter.authors])
    for letter, values in relay_filter.tags.items():
        if not values:
            continue
        try:
            alphabet = getattr(Alphabet, letter.upper())
        except AttributeError:
            logger.warning("invalid_tag_filter tag=%s reason=%s", letter, "not an alphabet letter")
            continue
        tag = (
            SingleLetterTag.lowercase(alphabet)
            if letter.islower()
            else SingleLetterTag.uppercase(alphabet)
        )
        for value in values:
            f = f.custom_tag(tag, value)
    if relay_filter.since is not None:
        f = f.since(Timestamp.from_secs(relay_filter.since))
    if relay_filter.until is not None:
        f = f.until(Timestamp.from_secs(relay_filter.until))
    if relay_filter.limit is not None:
        f = f.limit(relay_filter.limit)
    return f


def _convert(nostr_event: NostrEvent) -> Event | None:
    try:
        return Event.from_nostr(nostr_event)
    except (ValueError, TypeError) as e:
        logger.debug("event_parse_error error=%s", e)
        return None


async def _connect(client: Client, relay_urls: Sequence[str], timeout: float) -> int:  # noqa: ASYNC109
    """Add and connect *relay_urls*; returns how many connected."""
    for url in relay_urls:
        try:
            await client.add_relay(RelayUrl.parse(url))
        except NostrSdkError as e:
            logger.warning("relay_add_failed relay=%s error=%s", url, e)
    output = await client.try_connect(timedelta(seconds=timeout))
    for relay_url, error in output.failed.items():
        logger.warning("relay_connect_failed relay=%s error=%s", relay_url, error)
    return len(output.success)


class _LiveHandler(HandleNotification):
    """Forwards live events from ``handle_notifications`` to a subscription."""

    def __init__(self, deliver: Callable[[NostrEvent], None]) -> None:
        self._deliver = deliver

    async def handle(self, relay_url: Any, subscription_id: str, event: NostrEvent) -> None:
        self._deliver(event)

    async def handle_msg(self, relay_url: Any, msg: Any) -> None:
        return None


class NostrSdkSubscription:
    """One multi-relay subscription running on its own ``nostr_sdk.Client``."""

    def __init__(
        self,
        relay_urls: Sequence[str],
        filters: Sequence[RelayFilter],
        *,
        on_event: OnEvent,
        on_eose: OnEose,
        live: bool,
        connect_timeout: float,
        stream_timeout: float,
    ) -> None:
        self.relay_urls = tuple(relay_urls)
        self.filters = tuple(filters)
        self._on_event = on_event
        self._on_eose = on_eose
        self._live = live
        self._connect_timeout = connect_timeout
        self._stream_timeout = stream_timeout
        self._task: asyncio.Task[None] | None = None
        self._closed = False
        self._eose_sent = False
        self.received = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    def start(self) -> None:
        if self._task is None and not self._closed:
            self._task = asyncio.ensure_future(self._run())

    def close(self) -> None:
        """Stop delivering events and tear down the client. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def _deliver(self, nostr_event: NostrEvent) -> None:
        if self._closed:
            return
        event = _convert(nostr_event)
        if event is not None:
            self.received += 1
            self._on_event(event)

    def _signal_eose(self) -> None:
        if self._eose_sent or self._closed:
            return
        self._eose_sent = True
        self._on_eose()

    async def _stream(self, client: Client, relay_filter: RelayFilter) -> None:
        try:
            stream = await client.stream_events(
                to_sdk_filter(relay_filter), timeout=timedelta(seconds=self._stream_timeout)
            )
            while (nostr_event := await stream.next()) is not None:
                self._deliver(nostr_event)
        except (OSError, TimeoutError, NostrSdkError) as e:
            logger.warning(
                "stream_failed relays=%s filter=%s error=%s",
                len(self.relay_urls),
                relay_filter.to_dict(),
                e,
            )

    async def _follow(self, client: Client, since: int) -> None:
        for relay_filter in self.filters:
            live_filter = relay_filter.with_limit(None).with_until(None).with_since(since)
            await client.subscribe(to_sdk_filter(live_filter))
        await client.handle_notifications(_LiveHandler(self._deliver))

    async def _run(self) -> None:
        # Live follow starts at open time; overlap with stored events is deduplicated downstream.
        since = int(time.time())
        client = ClientBuilder().build()
        connected = 0
        try:
            try:
                connected = await _connect(client, self.relay_urls, self._connect_timeout)
                if connected:
                    await asyncio.gather(*(self._stream(client, f) for f in self.filters))
                else:
                    logger.warning("subscription_no_relays relays=%s", len(self.relay_urls))
            except (TransportError, OSError, TimeoutError, NostrSdkError) as e:
                logger.warning("subscription_failed relays=%s error=%s", len(self.relay_urls), e)
            self._signal_eose()

            if self._live and connected and not self._closed:
                try:
                    await self._follow(client, since)
                except (OSError, TimeoutError, NostrSdkError) as e:
                    logger.warning("live_follow_failed relays=%s error=%s", len(self.relay_urls), e)
        finally:
            # nostr-sdk client.shutdown() can raise arbitrary errors from the
            # Rust FFI layer during cleanup.
            with contextlib.suppress(Exception):
                await client.shutdown()


class NostrSdkTransport:
    """[RelayTransport][zapview.utils.transport.RelayTransport] backed by ``nostr_sdk``.

    Args:
        connect_timeout: Seconds allowed for connecting to a relay set.
        stream_timeout: Default seconds a stored-event stream may run
            before end-of-stored-events is assumed.
    """

    def __init__(
        self,
        *,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        stream_timeout: float = DEFAULT_STREAM_TIMEOUT,
    ) -> None:
        self._connect_timeout = connect_timeout
        self._stream_timeout = stream_timeout
        self._subscriptions: set[NostrSdkSubscription] = set()
        self._known_relays: set[str] = set()

    @property
    def active_subscriptions(self) -> int:
        return len(self._subscriptions)

    def subscribe_many(
        self,
        relay_urls: Sequence[str],
        filters: Sequence[RelayFilter],
        *,
        on_event: OnEvent,
        on_eose: OnEose,
        live: bool = True,
        timeout: float | None = None,
    ) -> NostrSdkSubscription:
        subscription = NostrSdkSubscription(
            relay_urls,
            filters,
            on_event=on_event,
            on_eose=on_eose,
            live=live,
            connect_timeout=self._connect_timeout,
            stream_timeout=timeout if timeout is not None else self._stream_timeout,
        )
        subscription.start()
        self._subscriptions.add(subscription)
        if subscription.task is not None:
            subscription.task.add_done_callback(lambda _: self._subscriptions.discard(subscription))
        return subscription

    async def query_sync(
        self,
        relay_urls: Sequence[str],
        relay_filter: RelayFilter,
        *,
        timeout: float,  # noqa: ASYNC109
    ) -> list[Event]:
        """Fetch stored events matching *relay_filter* from *relay_urls*.

        Raises:
            TransportError: If no relay could be reached or the fetch failed.
            RelayTimeoutError: If the fetch timed out.
        """
        client = ClientBuilder().build()
        try:
            connected = await _connect(client, relay_urls, min(timeout, self._connect_timeout))
            if not connected:
                raise TransportError(f"no relay reachable out of {len(relay_urls)}")
            events = await client.fetch_events(
                to_sdk_filter(relay_filter), timedelta(seconds=timeout)
            )
        except TimeoutError as e:
            raise RelayTimeoutError(f"query timed out after {timeout}s") from e
        except (OSError, NostrSdkError) as e:
            raise TransportError(f"query failed: {e}") from e
        finally:
            with contextlib.suppress(Exception):
                await client.shutdown()

        return [event for event in map(_convert, events.to_vec()) if event is not None]

    async def ensure_relay(self, url: str) -> None:
        """Check that *url* is reachable; successful relays are remembered.

        Raises:
            TransportError: If the URL is invalid or the relay is unreachable.
        """
        if url in self._known_relays:
            return
        client = ClientBuilder().build()
        try:
            relay_url = RelayUrl.parse(url)
            await client.add_relay(relay_url)
            output = await client.try_connect(timedelta(seconds=self._connect_timeout))
            if relay_url not in output.success:
                error = output.failed.get(relay_url, "unknown error")
                raise TransportError(f"relay unreachable: {error}", relay_url=url)
        except (OSError, NostrSdkError) as e:
            raise TransportError(f"relay unreachable: {e}", relay_url=url) from e
        finally:
            with contextlib.suppress(Exception):
                await client.shutdown()
        self._known_relays.add(url)
        logger.debug("relay_ready relay=%s", url)

    async def aclose(self) -> None:
        """Close every open subscription and wait for their clients to shut down."""
        subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.close()
        tasks = [s.task for s in subscriptions if s.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._subscriptions.clear()
