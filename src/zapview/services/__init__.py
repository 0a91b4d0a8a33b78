"""Resolvers, the subscription coordinator and the ZapView facade.

Services are the top layer of the import graph, depending on
[zapview.core][zapview.core], [zapview.utils][zapview.utils] and
[zapview.models][zapview.models].

```text
            ZapView
               |
     SubscriptionCoordinator
      /        |         \\
ReferenceResolver  ProfileResolver  StatsClient
```

Attributes:
    ZapView: Owns the caches and every component below; ``async with``
        lifecycle.
    SubscriptionCoordinator: Per-view state machine, ingestion, pagination
        and statistics reconciliation.
    ReferenceResolver: Coalesced lookups of events quoted by zap receipts.
    ProfileResolver: Coalesced kind-0 lookups, avatars and NIP-05 checks.
    StatsClient: Aggregation-service baselines.

Examples:
    ```python
    from zapview.services import ZapView

    async with ZapView() as zv:
        await zv.initialize_view("v1", {"identifier": npub, "relay_urls": relays})
    ```
"""

from .configs import (
    CacheConfig,
    MetricsConfig,
    ProfileConfig,
    ReferenceConfig,
    StatsConfig,
    TransportConfig,
    ViewConfig,
    ZapViewConfig,
)
from .coordinator import SubscriptionCoordinator, ViewListener
from .profiles import ProfileResolver
from .resolver import ReferenceResolver, select_reference_key
from .stats import StatsClient
from .zap_view import ZapView, load_config, parse_config


__all__ = [
    "CacheConfig",
    "MetricsConfig",
    "ProfileConfig",
    "ProfileResolver",
    "ReferenceConfig",
    "ReferenceResolver",
    "StatsClient",
    "StatsConfig",
    "SubscriptionCoordinator",
    "TransportConfig",
    "ViewConfig",
    "ViewListener",
    "ZapView",
    "ZapViewConfig",
    "load_config",
    "parse_config",
    "select_reference_key",
]
