r"""zapview -- ingestion and caching core for Nostr zap feeds.

Subscribes to zap receipts (kind 9735) for a profile or an event on a set
of relays and keeps render-ready state per view: deduplicated,
``created_at``-ordered receipts with their sender profiles and quoted
events resolved, paginated backfill, and zap totals reconciled against an
aggregation service.

Imports flow strictly downward:

```text
              services         Resolvers, coordinator, ZapView facade
             /        \
          core        utils    Caches, coalescer, store / codecs, transport
             \        /
              models           Pure frozen dataclasses (zero I/O)
```

Attributes:
    models: Events, profiles, filters, statistics. Depends only on stdlib.
    core: Caches, request coalescer, scheduler, view store, logging,
        metrics, exceptions.
    utils: NIP-19 and BOLT-11 codecs, HTTP helpers, relay transport.
    services: Reference/profile resolvers, stats client, coordinator and
        the [ZapView][zapview.services.zap_view.ZapView] facade.

Note:
    Top-level imports (``from zapview import ZapView``) use lazy loading
    and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("zapview")

__all__ = [
    "AggregateStats",
    "BoundedCache",
    "CacheContext",
    "DecodedIdentifier",
    "Event",
    "Logger",
    "Profile",
    "ProfileResolver",
    "Reference",
    "ReferenceResolver",
    "RelayFilter",
    "RequestCoalescer",
    "StatsClient",
    "StatsSnapshot",
    "SubscriptionCoordinator",
    "ViewConfig",
    "ZapView",
    "ZapViewConfig",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "BoundedCache": ("zapview.core", "BoundedCache"),
    "CacheContext": ("zapview.core", "CacheContext"),
    "Logger": ("zapview.core", "Logger"),
    "RequestCoalescer": ("zapview.core", "RequestCoalescer"),
    "AggregateStats": ("zapview.models", "AggregateStats"),
    "DecodedIdentifier": ("zapview.models", "DecodedIdentifier"),
    "Event": ("zapview.models", "Event"),
    "Profile": ("zapview.models", "Profile"),
    "Reference": ("zapview.models", "Reference"),
    "RelayFilter": ("zapview.models", "RelayFilter"),
    "StatsSnapshot": ("zapview.models", "StatsSnapshot"),
    "ProfileResolver": ("zapview.services", "ProfileResolver"),
    "ReferenceResolver": ("zapview.services", "ReferenceResolver"),
    "StatsClient": ("zapview.services", "StatsClient"),
    "SubscriptionCoordinator": ("zapview.services", "SubscriptionCoordinator"),
    "ViewConfig": ("zapview.services", "ViewConfig"),
    "ZapView": ("zapview.services", "ZapView"),
    "ZapViewConfig": ("zapview.services", "ZapViewConfig"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'zapview' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
