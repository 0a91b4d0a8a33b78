"""
Sender profiles: kind-0 lookups, live updates, avatars and NIP-05 checks.

[ProfileResolver][zapview.services.profiles.ProfileResolver] is cache-first.
Misses go through a [RequestCoalescer][zapview.core.coalescer.RequestCoalescer]
that turns every pubkey requested in a batch window into one
``{kinds: [0], authors: [...]}`` query against the profile relays. The
newest kind-0 event per author wins, and each event is parsed in isolation
so one malformed body never affects the rest of the batch. Pubkeys without
metadata cache the default profile (``event_created_at = 0``), which any
real update later replaces.

NIP-05 verification follows the same single-flight pattern and caches its
result, including failures (``None``), in ``context.nip05``.

See Also:
    [ProfileCache][zapview.core.cache.ProfileCache]: Latest-wins storage.
    [Profile][zapview.models.profile.Profile]: Parsed kind-0 metadata.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Iterable
from typing import Any

import aiohttp

from zapview.core.coalescer import RequestCoalescer
from zapview.core.context import CacheContext
from zapview.core.exceptions import TransportError
from zapview.core.logger import Logger
from zapview.core.metrics import ComponentMetrics
from zapview.core.scheduler import Scheduler
from zapview.models import Event, EventKind, Profile, RelayFilter
from zapview.utils.http import fetch_json
from zapview.utils.transport import RelayTransport

from .configs import ProfileConfig


ROBOHASH_URL = "https://robohash.org/{pubkey}.png?set=set5&bgset=bg2&size=128x128"

_DOMAIN_PATTERN = re.compile(r"^[a-z0-9.-]+(:\d+)?$")
_LOCAL_PATTERN = re.compile(r"^[a-z0-9._-]+$")


def parse_nip05(address: str) -> tuple[str, str] | None:
    """Split a NIP-05 address into ``(local, domain)``; bare domains use ``_``."""
    address = address.strip().lower()
    local, _, domain = address.rpartition("@")
    local = local or "_"
    if not domain or not _DOMAIN_PATTERN.match(domain) or not _LOCAL_PATTERN.match(local):
        return None
    return local, domain


def format_nip05(local: str, domain: str) -> str:
    """Display form of a verified address (``_@domain`` shows as ``domain``)."""
    return domain if local == "_" else f"{local}@{domain}"


class ProfileResolver:
    """Cache-first, coalescing profile lookups.

    Args:
        transport: Relay transport for kind-0 queries.
        context: Shared caches (``profiles``, ``images``, ``nip05``).
        config: Relays, batching and timeouts.
        session: HTTP session for NIP-05 lookups; one is created on first
            use (and closed by [aclose()][zapview.services.profiles.ProfileResolver.aclose])
            when omitted.
        scheduler: Timer source shared with the coalescers.
    """

    def __init__(
        self,
        transport: RelayTransport,
        context: CacheContext,
        *,
        config: ProfileConfig | None = None,
        session: aiohttp.ClientSession | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._transport = transport
        self._context = context
        self._config = config or ProfileConfig()
        self._session = session
        self._owns_session = session is None
        self._logger = Logger("resolver.profiles")
        self._metrics = ComponentMetrics("resolver.profiles")
        self._profiles: RequestCoalescer[str, Profile] = RequestCoalescer(
            self._fetch_batch,
            name="profiles",
            batch_size=self._config.batch_size,
            batch_delay=self._config.batch_delay,
            scheduler=scheduler,
        )
        self._nip05: RequestCoalescer[str, str] = RequestCoalescer(
            self._verify_batch,
            name="nip05",
            batch_size=self._config.batch_size,
            batch_delay=self._config.batch_delay,
            scheduler=scheduler,
        )

    @property
    def config(self) -> ProfileConfig:
        return self._config

    @property
    def coalescer(self) -> RequestCoalescer[str, Profile]:
        return self._profiles

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    def get_cached(self, pubkey: str) -> Profile | None:
        return self._context.profiles.get(pubkey)

    async def resolve(self, pubkey: str) -> Profile:
        """Return the profile of *pubkey*, fetching it on a cache miss.

        Never raises on network trouble: an unreachable relay set yields the
        default profile (not cached, so a later call can retry).
        """
        cached = self._context.profiles.get(pubkey)
        if cached is not None:
            self._metrics.inc("cache_hits")
            return cached
        profile = await self._profiles.request(pubkey)
        return profile if profile is not None else Profile.default(pubkey)

    async def resolve_many(self, pubkeys: Iterable[str]) -> list[Profile]:
        """Resolve several pubkeys; duplicates are looked up once."""
        unique = list(dict.fromkeys(pubkeys))
        if not unique:
            return []
        profiles = await asyncio.gather(*(self.resolve(pubkey) for pubkey in unique))
        return list(profiles)

    def apply_update(self, event: Event) -> bool:
        """Fold a kind-0 event into the cache; returns ``True`` if stored.

        Older metadata than the cached profile is ignored.
        """
        if event.kind != EventKind.SET_METADATA:
            return False
        return self._store(Profile.from_event(event))

    def _store(self, profile: Profile) -> bool:
        previous = self._context.profiles.peek(profile.pubkey)
        stored = self._context.profiles.set(profile.pubkey, profile)
        if stored:
            self._context.images.delete(profile.pubkey)
            if previous is not None and previous.nip05 != profile.nip05:
                self._context.nip05.delete(profile.pubkey)
        return stored

    async def _fetch_batch(self, pubkeys: list[str]) -> dict[str, Profile | None]:
        relay_filter = RelayFilter.build(kinds=[EventKind.SET_METADATA], authors=pubkeys)
        try:
            events = await self._transport.query_sync(
                self._config.relays, relay_filter, timeout=self._config.query_timeout
            )
        except TransportError as e:
            self._metrics.inc("query_failures")
            self._logger.warning("profile_query_failed", pubkeys=len(pubkeys), error=str(e))
            return {}

        wanted = set(pubkeys)
        newest: dict[str, Event] = {}
        for event in events:
            if event.kind != EventKind.SET_METADATA or event.pubkey not in wanted:
                continue
            current = newest.get(event.pubkey)
            if current is None or event.created_at > current.created_at:
                newest[event.pubkey] = event

        results: dict[str, Profile | None] = {}
        for pubkey in pubkeys:
            event = newest.get(pubkey)
            self._store(Profile.from_event(event) if event is not None else Profile.default(pubkey))
            results[pubkey] = self._context.profiles.peek(pubkey)

        self._metrics.inc("fetched", len(newest))
        self._metrics.inc("not_found", len(pubkeys) - len(newest))
        self._logger.debug("profile_batch_done", pubkeys=len(pubkeys), found=len(newest))
        return results

    # -------------------------------------------------------------------------
    # Avatars
    # -------------------------------------------------------------------------

    def avatar_url(self, pubkey: str) -> str:
        """Picture URL of the cached profile, or a generated robohash avatar."""
        cached = self._context.images.get(pubkey)
        if cached is not None:
            return cached
        profile = self._context.profiles.peek(pubkey)
        url = (
            profile.picture
            if profile is not None and profile.picture
            else ROBOHASH_URL.format(pubkey=pubkey)
        )
        self._context.images.set(pubkey, url)
        return url

    # -------------------------------------------------------------------------
    # NIP-05
    # -------------------------------------------------------------------------

    async def verify_nip05(self, pubkey: str) -> str | None:
        """Return the verified NIP-05 display string of *pubkey*, or ``None``.

        The profile is resolved first; its address is checked against
        ``https://<domain>/.well-known/nostr.json?name=<local>``. Results,
        including failures, are cached until the profile's address changes.
        """
        if not self._config.verify_nip05:
            return None
        if self._context.nip05.has(pubkey):
            return self._context.nip05.get(pubkey)
        return await self._nip05.request(pubkey)

    async def _verify_batch(self, pubkeys: list[str]) -> dict[str, str | None]:
        verified = await asyncio.gather(*(self._verify_one(pubkey) for pubkey in pubkeys))
        results = dict(zip(pubkeys, verified, strict=True))
        for pubkey, nip05 in results.items():
            self._context.nip05.set(pubkey, nip05)
        return results

    async def _verify_one(self, pubkey: str) -> str | None:
        profile = await self.resolve(pubkey)
        if not profile.nip05:
            return None
        parsed = parse_nip05(profile.nip05)
        if parsed is None:
            self._logger.debug("nip05_invalid", pubkey=pubkey[:16], address=profile.nip05)
            return None
        local, domain = parsed

        try:
            data: Any = await fetch_json(
                self._http(),
                f"https://{domain}/.well-known/nostr.json",
                timeout=self._config.nip05_timeout,
                params={"name": local},
            )
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            self._metrics.inc("nip05_failures")
            self._logger.debug("nip05_fetch_failed", domain=domain, error=str(e))
            return None

        names = data.get("names") if isinstance(data, dict) else None
        if not isinstance(names, dict) or names.get(local) != pubkey:
            self._logger.debug("nip05_mismatch", pubkey=pubkey[:16], domain=domain)
            return None
        return format_nip05(local, domain)

    def _http(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def aclose(self) -> None:
        """Close the coalescers and the owned HTTP session."""
        await self._profiles.aclose()
        await self._nip05.aclose()
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
