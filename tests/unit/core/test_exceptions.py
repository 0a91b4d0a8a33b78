"""
Unit tests for core.exceptions module.

Tests:
- Inheritance hierarchy
- TransportError relay_url attribute
- DecodeError doubling as ValueError
"""

import asyncio

import pytest

from zapview.core.exceptions import (
    ConfigurationError,
    DecodeError,
    RelayTimeoutError,
    TransportError,
    ZapViewError,
)


ALL_CONCRETE = [ConfigurationError, DecodeError, TransportError, RelayTimeoutError]


class TestHierarchy:
    """Tests for exception inheritance."""

    @pytest.mark.parametrize("exc_cls", ALL_CONCRETE)
    def test_all_concrete_inherit_from_base(self, exc_cls: type) -> None:
        assert issubclass(exc_cls, ZapViewError)

    def test_relay_timeout_is_transport_error(self) -> None:
        assert issubclass(RelayTimeoutError, TransportError)

    def test_decode_error_is_value_error(self) -> None:
        assert issubclass(DecodeError, ValueError)

    def test_configuration_not_transport(self) -> None:
        assert not issubclass(ConfigurationError, TransportError)

    def test_cancelled_error_not_caught(self) -> None:
        assert not issubclass(asyncio.CancelledError, ZapViewError)


class TestTransportError:
    """Tests for TransportError attributes."""

    def test_relay_url(self) -> None:
        err = TransportError("unreachable", relay_url="wss://relay.test")
        assert err.relay_url == "wss://relay.test"
        assert str(err) == "unreachable"

    def test_relay_url_optional(self) -> None:
        assert TransportError("boom").relay_url is None

    def test_timeout_keeps_relay_url(self) -> None:
        err = RelayTimeoutError("slow", relay_url="wss://relay.test")
        with pytest.raises(TransportError) as exc_info:
            raise err
        assert exc_info.value.relay_url == "wss://relay.test"


class TestMessages:
    @pytest.mark.parametrize("exc_cls", [ConfigurationError, DecodeError])
    def test_accepts_message(self, exc_cls: type) -> None:
        assert str(exc_cls("details")) == "details"

    def test_base_catches_all(self) -> None:
        for exc_cls in ALL_CONCRETE:
            with pytest.raises(ZapViewError):
                raise exc_cls("x")
