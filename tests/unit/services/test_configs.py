"""
Unit tests for services.configs module.

Tests:
- ViewConfig defaults, bounds and relay normalization
- Millisecond to second conversions
- ProfileConfig and StatsConfig validation
- ZapViewConfig nesting from plain dicts
"""

import pytest
from pydantic import ValidationError

from tests.conftest import NPUB
from zapview.services.configs import (
    DEFAULT_PROFILE_RELAYS,
    ProfileConfig,
    ReferenceConfig,
    StatsConfig,
    TransportConfig,
    ViewConfig,
    ZapViewConfig,
)


# ============================================================================
# ViewConfig Tests
# ============================================================================


class TestViewConfig:
    """Tests for ViewConfig."""

    def test_defaults(self) -> None:
        config = ViewConfig(identifier=NPUB, relay_urls=["wss://relay.test"])

        assert config.initial_load_count == 15
        assert config.additional_load_count == 20
        assert config.batch_size == 20
        assert config.batch_delay == 0.05
        assert config.reference_timeout == 20.0
        assert config.pagination_timeout == 10.0
        assert config.debounce == 0.3

    def test_view_id_falls_back_to_identifier(self) -> None:
        assert ViewConfig(identifier=NPUB, relay_urls=["wss://a"]).resolved_view_id == NPUB
        config = ViewConfig(view_id="mine", identifier=NPUB, relay_urls=["wss://a"])
        assert config.resolved_view_id == "mine"

    def test_relays_normalized(self) -> None:
        config = ViewConfig(
            identifier=NPUB,
            relay_urls=[" wss://relay.test/ ", "wss://relay.test", "ws://local"],
        )
        assert config.relay_urls == ["wss://relay.test", "ws://local"]

    def test_http_relay_rejected(self) -> None:
        with pytest.raises(ValidationError, match="ws:// or wss://"):
            ViewConfig(identifier=NPUB, relay_urls=["https://relay.test"])

    def test_relays_required(self) -> None:
        with pytest.raises(ValidationError):
            ViewConfig(identifier=NPUB, relay_urls=[])

    def test_identifier_required(self) -> None:
        with pytest.raises(ValidationError):
            ViewConfig(identifier="", relay_urls=["wss://a"])

    @pytest.mark.parametrize("field", ["initial_load_count", "additional_load_count", "batch_size"])
    def test_counts_positive(self, field: str) -> None:
        with pytest.raises(ValidationError):
            ViewConfig(identifier=NPUB, relay_urls=["wss://a"], **{field: 0})


# ============================================================================
# Component Config Tests
# ============================================================================


class TestReferenceConfig:
    def test_seconds(self) -> None:
        config = ReferenceConfig(batch_delay_ms=250, timeout_ms=1500)
        assert config.batch_delay == 0.25
        assert config.timeout == 1.5


class TestProfileConfig:
    """Tests for ProfileConfig."""

    def test_default_relays(self) -> None:
        assert ProfileConfig().relays == list(DEFAULT_PROFILE_RELAYS)

    def test_seconds(self) -> None:
        config = ProfileConfig(query_timeout_ms=2000, nip05_timeout_ms=500)
        assert config.query_timeout == 2.0
        assert config.nip05_timeout == 0.5

    def test_relays_validated(self) -> None:
        with pytest.raises(ValidationError):
            ProfileConfig(relays=["relay.test"])


class TestStatsConfig:
    def test_trailing_slash_stripped(self) -> None:
        assert StatsConfig(base_url="https://stats.test/v0/").base_url == "https://stats.test/v0"

    def test_scheme_required(self) -> None:
        with pytest.raises(ValidationError, match="http"):
            StatsConfig(base_url="ftp://stats.test")

    def test_timeout(self) -> None:
        assert StatsConfig(timeout_ms=1200).timeout == 1.2


class TestTransportConfig:
    def test_timeouts_positive(self) -> None:
        with pytest.raises(ValidationError):
            TransportConfig(connect_timeout_s=0)


# ============================================================================
# ZapViewConfig Tests
# ============================================================================


class TestZapViewConfig:
    """Tests for the top-level configuration."""

    def test_empty(self) -> None:
        config = ZapViewConfig()
        assert config.realtime_skew_s == 5.0
        assert config.views == []
        assert config.stats.enabled is True
        assert config.metrics.enabled is False
        assert config.cache.capacity == 1000

    def test_from_nested_dict(self) -> None:
        config = ZapViewConfig.model_validate(
            {
                "realtime_skew_s": 2,
                "stats": {"enabled": False},
                "cache": {"capacity": 10},
                "profiles": {"relays": ["wss://profiles.test"], "verify_nip05": False},
                "views": [{"identifier": NPUB, "relay_urls": ["wss://relay.test"]}],
            }
        )

        assert config.realtime_skew_s == 2.0
        assert config.stats.enabled is False
        assert config.cache.capacity == 10
        assert config.profiles.relays == ["wss://profiles.test"]
        assert config.views[0].resolved_view_id == NPUB

    def test_invalid_nested_view(self) -> None:
        with pytest.raises(ValidationError):
            ZapViewConfig.model_validate({"views": [{"identifier": NPUB}]})
