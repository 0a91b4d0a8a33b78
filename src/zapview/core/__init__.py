"""Core layer: caches, coalescing, scheduling, view state and infrastructure.

Sits between ``zapview.models`` (below) and ``zapview.services`` (above).
Nothing here performs network I/O except the metrics HTTP endpoint.

Attributes:
    RequestCoalescer: Single-flight, time-windowed batch fetcher.
        See [RequestCoalescer][zapview.core.coalescer.RequestCoalescer].
    BoundedCache: Strict LRU key/value store, with
        [TimedCache][zapview.core.cache.TimedCache] and
        [ProfileCache][zapview.core.cache.ProfileCache] specializations.
    CacheContext: The process-wide caches as one explicit object.
    ViewStateStore: Registry of per-view [ViewState][zapview.core.store.ViewState].
    Scheduler: ``after``/``repeating_trigger`` timers and a
        [Debouncer][zapview.core.scheduler.Debouncer].
    Logger: Structured logger supporting key=value and JSON output modes.
    MetricsServer: Prometheus ``/metrics`` HTTP endpoint.

See Also:
    [zapview.models][zapview.models]: Pure dataclass models consumed by this layer.
    [zapview.services][zapview.services]: Resolvers and the coordinator built
        on this layer.
"""

from .cache import BoundedCache, ProfileCache, TimedCache
from .coalescer import PendingFetch, RequestCoalescer
from .context import CacheConfig, CacheContext
from .exceptions import (
    ConfigurationError,
    DecodeError,
    RelayTimeoutError,
    TransportError,
    ZapViewError,
)
from .logger import JsonFormatter, Logger, StructuredFormatter, format_kv_pairs, setup_logging
from .metrics import (
    BATCH_DURATION_SECONDS,
    ZAPVIEW_COUNTER,
    ZAPVIEW_GAUGE,
    ComponentMetrics,
    MetricsConfig,
    MetricsServer,
)
from .scheduler import Debouncer, RepeatingTrigger, Scheduler
from .store import PaginationState, SubscriptionHandle, ViewState, ViewStateStore
from .yaml import load_yaml


__all__ = [
    "BATCH_DURATION_SECONDS",
    "ZAPVIEW_COUNTER",
    "ZAPVIEW_GAUGE",
    "BoundedCache",
    "CacheConfig",
    "CacheContext",
    "ComponentMetrics",
    "ConfigurationError",
    "DecodeError",
    "Debouncer",
    "JsonFormatter",
    "Logger",
    "MetricsConfig",
    "MetricsServer",
    "PaginationState",
    "PendingFetch",
    "ProfileCache",
    "RelayTimeoutError",
    "RepeatingTrigger",
    "RequestCoalescer",
    "Scheduler",
    "StructuredFormatter",
    "SubscriptionHandle",
    "TimedCache",
    "TransportError",
    "ViewState",
    "ViewStateStore",
    "ZapViewError",
    "format_kv_pairs",
    "load_yaml",
    "setup_logging",
]
