"""
Top-level facade: one object owning every collaborator of the ingestion core.

[ZapView][zapview.services.zap_view.ZapView] builds the shared
[CacheContext][zapview.core.context.CacheContext], the relay transport, both
resolvers, the stats client and the
[SubscriptionCoordinator][zapview.services.coordinator.SubscriptionCoordinator],
and runs the periodic cache sweeper and the optional metrics endpoint for
the lifetime of an ``async with`` block.

Examples:
    ```python
    async with ZapView.from_yaml("config/zapview.yaml") as zv:
        await zv.initialize_view("jack", {"identifier": npub, "relay_urls": relays})
        await zv.wait_for_backfill("jack", timeout=30)
        for event in zv.get_cached_events("jack"):
            ...
        await zv.load_more("jack")
    ```
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Mapping
from pathlib import Path
from types import TracebackType
from typing import Any, ClassVar, Self

import aiohttp
import yaml
from pydantic import ValidationError

from zapview.core.context import CacheContext
from zapview.core.exceptions import ConfigurationError, TransportError
from zapview.core.logger import Logger
from zapview.core.metrics import MetricsServer
from zapview.core.scheduler import RepeatingTrigger, Scheduler
from zapview.core.store import ViewState
from zapview.core.yaml import load_yaml
from zapview.models import AggregateStats, Event, Profile, StatsSnapshot
from zapview.utils.transport import NostrSdkTransport, RelayTransport

from .configs import ViewConfig, ZapViewConfig
from .coordinator import SubscriptionCoordinator, ViewListener
from .profiles import ProfileResolver
from .resolver import ReferenceResolver
from .stats import StatsClient


def parse_config(data: Mapping[str, Any]) -> ZapViewConfig:
    """Validate a configuration mapping.

    Raises:
        ConfigurationError: If *data* fails validation.
    """
    try:
        return ZapViewConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(f"invalid configuration: {e}") from e


def load_config(config_path: str | Path) -> ZapViewConfig:
    """Load and validate a YAML configuration file.

    Raises:
        ConfigurationError: If the file is missing, is not valid YAML, or
            holds invalid values.
    """
    try:
        data = load_yaml(config_path)
    except (OSError, TypeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"cannot load {config_path}: {e}") from e
    return parse_config(data)


class ZapView:
    """Owner of the caches, resolvers and coordinator of one process.

    Args:
        config: Configuration (defaults when omitted).
        transport: Relay transport; a
            [NostrSdkTransport][zapview.utils.transport.NostrSdkTransport] is
            created (and closed on exit) when omitted.
        session: HTTP session shared by the stats client and NIP-05 checks.
        clock: Wall clock used for real-time classification.
    """

    CONFIG_CLASS: ClassVar[type[ZapViewConfig]] = ZapViewConfig

    def __init__(
        self,
        config: ZapViewConfig | None = None,
        *,
        transport: RelayTransport | None = None,
        session: aiohttp.ClientSession | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or self.CONFIG_CLASS()
        self._owns_transport = transport is None
        self._transport: RelayTransport = transport or NostrSdkTransport(
            connect_timeout=self._config.transport.connect_timeout_s,
            stream_timeout=self._config.transport.stream_timeout_s,
        )
        self._context = CacheContext.init(self._config.cache)
        self._scheduler = Scheduler()
        self._references = ReferenceResolver(
            self._transport,
            self._context,
            config=self._config.references,
            scheduler=self._scheduler,
        )
        self._profiles = ProfileResolver(
            self._transport,
            self._context,
            config=self._config.profiles,
            session=session,
            scheduler=self._scheduler,
        )
        self._stats = StatsClient(self._context, config=self._config.stats, session=session)
        self._coordinator = SubscriptionCoordinator(
            self._transport,
            self._context,
            references=self._references,
            profiles=self._profiles,
            stats=self._stats,
            scheduler=self._scheduler,
            realtime_skew=self._config.realtime_skew_s,
            clock=clock,
        )
        self._metrics_server = MetricsServer(self._config.metrics)
        self._sweeper: RepeatingTrigger | None = None
        self._logger = Logger("zap_view")
        self._closed = False

    # -------------------------------------------------------------------------
    # Factory Methods
    # -------------------------------------------------------------------------

    @classmethod
    def from_yaml(cls, config_path: str | Path, **kwargs: Any) -> Self:
        """Create an instance from a YAML configuration file.

        Raises:
            ConfigurationError: If the file is missing, is not valid YAML,
                or holds invalid values.
        """
        return cls(config=load_config(config_path), **kwargs)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], **kwargs: Any) -> Self:
        """Create an instance from a configuration dictionary.

        Raises:
            ConfigurationError: If *data* fails validation.
        """
        return cls(config=parse_config(data), **kwargs)

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def config(self) -> ZapViewConfig:
        return self._config

    @property
    def context(self) -> CacheContext:
        return self._context

    @property
    def coordinator(self) -> SubscriptionCoordinator:
        return self._coordinator

    @property
    def profiles(self) -> ProfileResolver:
        return self._profiles

    @property
    def references(self) -> ReferenceResolver:
        return self._references

    @property
    def metrics_server(self) -> MetricsServer:
        return self._metrics_server

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Self:
        """Start the metrics endpoint and sweeper, then open configured views."""
        await self._metrics_server.start()
        if self._metrics_server.is_running:
            self._logger.info(
                "metrics_server_started",
                host=self._config.metrics.host,
                port=self._config.metrics.port,
                path=self._config.metrics.path,
            )
        self._sweeper = self._scheduler.repeating_trigger(
            self._config.cache.sweep_interval, self._sweep
        )
        await self._ensure_profile_relays()
        for view in self._config.views:
            await self.initialize_view(view.resolved_view_id, view)
        self._logger.info("zap_view_started", views=len(self._config.views))
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close every view and release all resources. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._sweeper is not None:
            self._sweeper.stop()
            self._sweeper = None
        await self._coordinator.aclose()
        await self._references.aclose()
        await self._profiles.aclose()
        await self._stats.aclose()
        await self._scheduler.drain()
        if self._owns_transport:
            await self._transport.aclose()
        if self._metrics_server.is_running:
            await self._metrics_server.stop()
            self._logger.info("metrics_server_stopped")
        self._context.teardown()
        self._logger.info("zap_view_stopped")

    def _sweep(self) -> None:
        removed = self._context.sweep_expired()
        if removed:
            self._logger.debug("cache_swept", removed=removed)

    async def _ensure_profile_relays(self) -> None:
        async def ensure(url: str) -> None:
            try:
                await self._transport.ensure_relay(url)
            except TransportError as e:
                self._logger.warning("profile_relay_unavailable", relay=url, error=str(e))

        await asyncio.gather(*(ensure(url) for url in self._config.profiles.relays))

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    async def initialize_view(
        self, view_id: str, config: ViewConfig | Mapping[str, Any]
    ) -> ViewState | None:
        """Open *view_id*; see [SubscriptionCoordinator.initialize_view()][zapview.services.coordinator.SubscriptionCoordinator.initialize_view].

        Raises:
            ConfigurationError: If a mapping *config* fails validation.
        """
        if not isinstance(config, ViewConfig):
            try:
                config = ViewConfig(**config)
            except ValidationError as e:
                raise ConfigurationError(f"invalid view configuration: {e}") from e
        return await self._coordinator.initialize_view(view_id, config)

    def get_cached_events(self, view_id: str) -> list[Event]:
        return self._coordinator.get_cached_events(view_id)

    def get_aggregate_stats(self, view_id: str) -> StatsSnapshot:
        return self._coordinator.get_aggregate_stats(view_id)

    def derive_stats(self, view_id: str) -> AggregateStats | None:
        return self._coordinator.derive_stats(view_id)

    async def load_more(self, view_id: str) -> int:
        return await self._coordinator.load_more(view_id)

    def trigger_pagination(self, view_id: str) -> bool:
        return self._coordinator.trigger_pagination(view_id)

    def close_view(self, view_id: str) -> bool:
        return self._coordinator.close_view(view_id)

    async def wait_for_backfill(self, view_id: str, timeout: float | None = None) -> bool:  # noqa: ASYNC109
        return await self._coordinator.wait_for_backfill(view_id, timeout)

    async def settle(self, view_id: str) -> None:
        await self._coordinator.settle(view_id)

    def add_listener(self, listener: ViewListener) -> Callable[[], None]:
        return self._coordinator.add_listener(listener)

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    async def get_profile(self, pubkey: str) -> Profile:
        return await self._profiles.resolve(pubkey)

    def avatar_url(self, pubkey: str) -> str:
        return self._profiles.avatar_url(pubkey)

    async def verify_nip05(self, pubkey: str) -> str | None:
        return await self._profiles.verify_nip05(pubkey)
