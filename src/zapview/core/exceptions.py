"""zapview exception hierarchy.

Typed exceptions let callers catch relay and configuration failures
specifically while ``CancelledError`` propagates untouched. Most of the
ingestion core never lets these cross its public API: decode failures turn
into ``None``, transport failures into "zero results from that relay", and
timeouts into ``None``/empty/``UNAVAILABLE`` results.

Exception hierarchy:

```text
ZapViewError (base -- never raised directly)
├── ConfigurationError      -- invalid YAML or config values
├── DecodeError             -- malformed identifier, coordinate or invoice
└── TransportError          -- relay unreachable, subscription failure
    └── RelayTimeoutError   -- connection or response timed out
```

See Also:
    [ZapView.from_yaml()][zapview.services.zap_view.ZapView.from_yaml]: Raises
        [ConfigurationError][zapview.core.exceptions.ConfigurationError].
    [zapview.utils.nip19][]: Raises
        [DecodeError][zapview.core.exceptions.DecodeError] internally and
        recovers it to ``None`` at ``decode()``.
    [NostrSdkTransport][zapview.utils.transport.NostrSdkTransport]: Raises
        [TransportError][zapview.core.exceptions.TransportError] from
        ``ensure_relay`` and ``query_sync``.
"""

from __future__ import annotations


class ZapViewError(Exception):
    """Base exception for all zapview errors."""


class ConfigurationError(ZapViewError):
    """Invalid or missing configuration (YAML file, config values, CLI flags)."""


class DecodeError(ZapViewError, ValueError):
    """Malformed NIP-19 identifier, addressable coordinate or bolt11 invoice.

    Subclasses ``ValueError`` so codec callers that already handle bad
    input generically keep working.
    """


class TransportError(ZapViewError):
    """Relay unreachable, disconnected, or a subscription failed.

    Attributes:
        relay_url: Relay involved, when a single relay is at fault.
    """

    def __init__(self, message: str, *, relay_url: str | None = None) -> None:
        super().__init__(message)
        self.relay_url = relay_url


class RelayTimeoutError(TransportError):
    """Connection or response timed out."""
