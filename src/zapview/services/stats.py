"""
Aggregation-service client for zap statistics baselines.

The baseline is fetched once per view from
``{base_url}/stats/{profile|event}/{identifier}``. Anything short of a
well-formed answer within the timeout (connection error, non-2xx status,
oversized or malformed body) yields an
[UNAVAILABLE][zapview.models.constants.StatsStatus] snapshot; the client
never raises to its caller. Successful baselines are cached per
``(view_id, identifier)`` for ``cache.stats_ttl`` seconds.
"""

from __future__ import annotations

import aiohttp

from zapview.core.context import CacheContext
from zapview.core.logger import Logger
from zapview.core.metrics import ComponentMetrics
from zapview.models import AggregateStats, DecodedIdentifier, StatsSnapshot, StatsStatus
from zapview.utils.http import fetch_json

from .configs import StatsConfig


class StatsClient:
    """Fetches and caches aggregation baselines.

    Args:
        context: Shared caches; baselines land in ``stats``.
        config: Endpoint, timeout and body limit.
        session: HTTP session; one is created on first use when omitted.
    """

    def __init__(
        self,
        context: CacheContext,
        *,
        config: StatsConfig | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._context = context
        self._config = config or StatsConfig()
        self._session = session
        self._owns_session = session is None
        self._logger = Logger("stats")
        self._metrics = ComponentMetrics("stats")

    @property
    def config(self) -> StatsConfig:
        return self._config

    def endpoint(self, identifier: str, decoded: DecodedIdentifier) -> str:
        kind = "profile" if decoded.is_profile else "event"
        return f"{self._config.base_url}/stats/{kind}/{identifier}"

    async def fetch(
        self,
        identifier: str,
        decoded: DecodedIdentifier,
        *,
        view_id: str | None = None,
    ) -> StatsSnapshot:
        """Return the baseline for *identifier* as a snapshot.

        Args:
            identifier: NIP-19 string the view was opened with.
            decoded: Its decoded form (selects the profile or event endpoint).
            view_id: Cache scope; defaults to *identifier*.
        """
        if not self._config.enabled:
            return StatsSnapshot(StatsStatus.DISABLED)

        key = (view_id or identifier, identifier)
        cached = self._context.stats.get(key)
        if cached is not None:
            self._metrics.inc("cache_hits")
            return StatsSnapshot(StatsStatus.AVAILABLE, cached)

        url = self.endpoint(identifier, decoded)
        try:
            payload = await fetch_json(
                self._http(),
                url,
                timeout=self._config.timeout,
                max_size=self._config.max_body_bytes,
            )
            stats = AggregateStats.from_api(payload)
        except TimeoutError:
            self._metrics.inc("timeouts")
            self._logger.warning("stats_timeout", url=url, timeout_s=self._config.timeout)
            return StatsSnapshot.unavailable()
        except (aiohttp.ClientError, ValueError, TypeError) as e:
            self._metrics.inc("failures")
            self._logger.warning("stats_fetch_failed", url=url, error=str(e))
            return StatsSnapshot.unavailable()

        if stats is None:
            self._metrics.inc("failures")
            self._logger.warning("stats_malformed", url=url)
            return StatsSnapshot.unavailable()

        self._context.stats.set(key, stats)
        self._logger.debug("stats_fetched", url=url, count=stats.count, msats=stats.total_msats)
        return StatsSnapshot(StatsStatus.AVAILABLE, stats)

    def _http(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def aclose(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
