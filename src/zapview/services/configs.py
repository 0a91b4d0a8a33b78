"""Configuration models for zapview.

Every setting has a default, so a YAML file only needs the values it
overrides. Durations follow the unit in their name (``*_ms`` milliseconds,
``*_s`` seconds); each model exposes the seconds the asyncio code consumes.

Examples:
    ```yaml
    realtime_skew_s: 5
    stats:
      base_url: https://api.nostr.band/v0
      timeout_ms: 4000
    profiles:
      relays: [wss://purplepag.es, wss://relay.nostr.band]
    views:
      - view_id: jack
        identifier: npub1sg6plzptd64u62a878hep2kev88swjh3tw00gjsfl8f237lmu63q0uf63m
        relay_urls: [wss://relay.damus.io, wss://nos.lol]
        initial_load_count: 15
    metrics:
      enabled: true
      port: 9100
    ```

See Also:
    [ZapView.from_yaml()][zapview.services.zap_view.ZapView.from_yaml]:
        Loads a [ZapViewConfig][zapview.services.configs.ZapViewConfig].
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from zapview.core.context import CacheConfig
from zapview.core.metrics import MetricsConfig


DEFAULT_PROFILE_RELAYS: tuple[str, ...] = (
    "wss://relay.nostr.band",
    "wss://purplepag.es",
    "wss://relay.damus.io",
    "wss://nostr.wine",
    "wss://directory.yabu.me",
)


def _normalize_relay_urls(urls: list[str]) -> list[str]:
    """Strip, drop duplicates (order kept) and require a websocket scheme."""
    seen: dict[str, None] = {}
    for url in urls:
        url = url.strip().rstrip("/")
        if not url.startswith(("wss://", "ws://")):
            raise ValueError(f"relay url must use ws:// or wss://, got {url!r}")
        seen.setdefault(url, None)
    return list(seen)


class ViewConfig(BaseModel):
    """Settings of one view (one feed instance)."""

    view_id: str | None = Field(default=None, description="View id (defaults to identifier)")
    identifier: str = Field(min_length=1, description="npub/nprofile/note/nevent")
    relay_urls: list[str] = Field(min_length=1, description="Relays to subscribe to")
    initial_load_count: int = Field(default=15, ge=1, le=500)
    additional_load_count: int = Field(default=20, ge=1, le=500)
    batch_size: int = Field(default=20, ge=1, le=500, description="Reference batch size")
    batch_delay_ms: int = Field(default=50, ge=0, le=5000, description="Reference batch window")
    reference_timeout_ms: int = Field(default=20_000, ge=100, le=120_000)
    pagination_timeout_ms: int = Field(default=10_000, ge=100, le=120_000)
    debounce_ms: int = Field(default=300, ge=0, le=10_000)

    @field_validator("relay_urls")
    @classmethod
    def _check_relays(cls, value: list[str]) -> list[str]:
        return _normalize_relay_urls(value)

    @property
    def resolved_view_id(self) -> str:
        return self.view_id or self.identifier

    @property
    def batch_delay(self) -> float:
        return self.batch_delay_ms / 1000

    @property
    def reference_timeout(self) -> float:
        return self.reference_timeout_ms / 1000

    @property
    def pagination_timeout(self) -> float:
        return self.pagination_timeout_ms / 1000

    @property
    def debounce(self) -> float:
        return self.debounce_ms / 1000


class ReferenceConfig(BaseModel):
    """Defaults of the reference resolver when a caller gives none."""

    batch_size: int = Field(default=20, ge=1, le=500)
    batch_delay_ms: int = Field(default=50, ge=0, le=5000)
    timeout_ms: int = Field(default=20_000, ge=100, le=120_000)

    @property
    def batch_delay(self) -> float:
        return self.batch_delay_ms / 1000

    @property
    def timeout(self) -> float:
        return self.timeout_ms / 1000


class ProfileConfig(BaseModel):
    """Profile (kind-0) lookups and NIP-05 verification."""

    relays: list[str] = Field(default_factory=lambda: list(DEFAULT_PROFILE_RELAYS), min_length=1)
    batch_size: int = Field(default=20, ge=1, le=500)
    batch_delay_ms: int = Field(default=50, ge=0, le=5000)
    query_timeout_ms: int = Field(default=20_000, ge=100, le=120_000)
    verify_nip05: bool = Field(default=True, description="Check NIP-05 addresses")
    nip05_timeout_ms: int = Field(default=5_000, ge=100, le=60_000)

    @field_validator("relays")
    @classmethod
    def _check_relays(cls, value: list[str]) -> list[str]:
        return _normalize_relay_urls(value)

    @property
    def batch_delay(self) -> float:
        return self.batch_delay_ms / 1000

    @property
    def query_timeout(self) -> float:
        return self.query_timeout_ms / 1000

    @property
    def nip05_timeout(self) -> float:
        return self.nip05_timeout_ms / 1000


class StatsConfig(BaseModel):
    """Aggregation service used for the stats baseline."""

    enabled: bool = Field(default=True, description="Fetch baselines (False = DISABLED)")
    base_url: str = Field(default="https://api.nostr.band/v0", min_length=1)
    timeout_ms: int = Field(default=4_000, ge=100, le=60_000)
    max_body_bytes: int = Field(default=64 * 1024, ge=1024, le=10 * 1024 * 1024)

    @field_validator("base_url")
    @classmethod
    def _strip_slash(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be http(s), got {value!r}")
        return value.rstrip("/")

    @property
    def timeout(self) -> float:
        return self.timeout_ms / 1000


class TransportConfig(BaseModel):
    """Relay client timeouts."""

    connect_timeout_s: float = Field(default=10.0, gt=0, le=120.0)
    stream_timeout_s: float = Field(default=20.0, gt=0, le=300.0)


class ZapViewConfig(BaseModel):
    """Top-level configuration of a [ZapView][zapview.services.zap_view.ZapView]."""

    realtime_skew_s: float = Field(
        default=5.0, ge=0, le=300.0, description="Events this recent count as real-time"
    )
    json_logs: bool = Field(default=False, description="Emit JSON log lines")
    cache: CacheConfig = Field(default_factory=CacheConfig)
    references: ReferenceConfig = Field(default_factory=ReferenceConfig)
    profiles: ProfileConfig = Field(default_factory=ProfileConfig)
    stats: StatsConfig = Field(default_factory=StatsConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    views: list[ViewConfig] = Field(default_factory=list, description="Views opened on start")
