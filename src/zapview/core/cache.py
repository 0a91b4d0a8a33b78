"""
Bounded in-memory caches.

[BoundedCache][zapview.core.cache.BoundedCache] is a strict LRU keyed store:
both ``get`` and ``set`` refresh an entry's recency, ``has`` does not, and
inserting past capacity evicts the least-recently-touched entry. Evictions
are expected and only counted in metrics.

Two specializations sit on top:

* [TimedCache][zapview.core.cache.TimedCache] stores ``(value, timestamp)``
  pairs; reads ignore entries older than ``max_age`` and
  [sweep()][zapview.core.cache.TimedCache.sweep] deletes them on demand.
* [ProfileCache][zapview.core.cache.ProfileCache] keeps the newest profile
  per pubkey by the metadata event's own ``created_at``.

All mutations are single synchronous dictionary operations; the caches are
safe to share between tasks of one event loop without locking.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable, Hashable, Iterator
from typing import Generic, TypeVar

from zapview.models import Profile

from .metrics import ComponentMetrics


K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

DEFAULT_CAPACITY = 1000


class BoundedCache(Generic[K, V]):
    """Fixed-capacity key/value store with least-recently-used eviction.

    Args:
        capacity: Maximum number of entries (at least 1).
        name: Label used in metrics (``cache.<name>``).

    Examples:
        ```python
        cache: BoundedCache[str, int] = BoundedCache(capacity=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")      # touches "a"
        cache.set("c", 3)   # evicts "b"
        ```
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, *, name: str = "default") -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._name = name
        self._data: OrderedDict[K, V] = OrderedDict()
        self._metrics = ComponentMetrics(f"cache.{name}")

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def name(self) -> str:
        return self._name

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r}, size={len(self)}, capacity={self._capacity})"

    def get(self, key: K) -> V | None:
        """Return the value for *key* and mark it most recently used."""
        if key not in self._data:
            return None
        self._data.move_to_end(key)
        return self._data[key]

    def set(self, key: K, value: V) -> bool:
        """Store *value* under *key*, evicting the LRU entry when full.

        Returns:
            ``True`` (subclasses may refuse a write and return ``False``).
        """
        if key in self._data:
            self._data.move_to_end(key)
        self._data[key] = value
        while len(self._data) > self._capacity:
            self._data.popitem(last=False)
            self._metrics.inc("evictions")
        return True

    def has(self, key: K) -> bool:
        """Membership test that does not refresh recency."""
        return key in self._data

    def delete(self, key: K) -> bool:
        """Remove *key*; returns whether it was present."""
        return self._data.pop(key, _MISSING) is not _MISSING

    def clear(self) -> None:
        self._data.clear()

    def keys(self) -> list[K]:
        """Keys from least to most recently used."""
        return list(self._data)

    def peek(self, key: K) -> V | None:
        """Return the value for *key* without refreshing recency."""
        return self._data.get(key)

    def __iter__(self) -> Iterator[K]:
        return iter(list(self._data))


_MISSING = object()


class TimedCache(BoundedCache[K, V]):
    """LRU cache whose entries also expire after ``max_age`` seconds.

    Expired entries are invisible to ``get``/``has`` and are deleted by
    [sweep()][zapview.core.cache.TimedCache.sweep]; capacity eviction still
    follows LRU order.

    Args:
        capacity: Maximum number of entries.
        max_age: Entry lifetime in seconds.
        clock: Monotonic time source, injectable for tests.
        name: Label used in metrics.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        max_age: float = 300.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        name: str = "timed",
    ) -> None:
        super().__init__(capacity, name=name)
        if max_age <= 0:
            raise ValueError(f"max_age must be positive, got {max_age}")
        self._max_age = max_age
        self._clock = clock
        self._stamps: dict[K, float] = {}

    @property
    def max_age(self) -> float:
        return self._max_age

    def _expired(self, key: K, now: float) -> bool:
        return now - self._stamps.get(key, now) >= self._max_age

    def get(self, key: K) -> V | None:
        if key not in self._data or self._expired(key, self._clock()):
            return None
        return super().get(key)

    def has(self, key: K) -> bool:
        return key in self._data and not self._expired(key, self._clock())

    def set(self, key: K, value: V) -> bool:
        super().set(key, value)
        self._stamps[key] = self._clock()
        if len(self._stamps) > len(self._data):
            for stale in [k for k in self._stamps if k not in self._data]:
                del self._stamps[stale]
        return True

    def delete(self, key: K) -> bool:
        self._stamps.pop(key, None)
        return super().delete(key)

    def clear(self) -> None:
        super().clear()
        self._stamps.clear()

    def age(self, key: K) -> float | None:
        """Seconds since *key* was stored, or ``None`` if absent."""
        if key not in self._stamps:
            return None
        return self._clock() - self._stamps[key]

    def sweep(self) -> int:
        """Delete every expired entry and return how many were removed."""
        now = self._clock()
        expired = [key for key in self._data if self._expired(key, now)]
        for key in expired:
            self.delete(key)
        if expired:
            self._metrics.inc("expired", len(expired))
        return len(expired)


class ProfileCache(BoundedCache[str, Profile]):
    """Profile cache where the newest metadata event wins.

    A write is refused when the cached profile's ``event_created_at`` is
    strictly greater than the incoming one, so out-of-order relay
    deliveries never overwrite newer metadata. Equal timestamps replace.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, *, name: str = "profiles") -> None:
        super().__init__(capacity, name=name)

    def set(self, key: str, value: Profile) -> bool:
        current = self._data.get(key)
        if current is not None and current.event_created_at > value.event_created_at:
            self._data.move_to_end(key)
            self._metrics.inc("stale_updates")
            return False
        return super().set(key, value)
