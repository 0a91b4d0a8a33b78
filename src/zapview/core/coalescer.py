"""
Request-coalescing batch fetcher.

[RequestCoalescer][zapview.core.coalescer.RequestCoalescer] turns many
"give me the value for key K" calls into one shared future per key, grouped
into time-windowed batches:

1. The first ``request(key)`` creates a
   [PendingFetch][zapview.core.coalescer.PendingFetch] and queues the key.
   Later callers for the same key join that pending fetch.
2. ``batch_delay`` seconds after the first queued key, up to ``batch_size``
   keys are drained into one ``execute_batch(keys)`` call.
3. The executor settles keys by returning a mapping and/or by calling
   [settle()][zapview.core.coalescer.RequestCoalescer.settle] as results
   stream in. When it returns, any key left unsettled resolves to ``None``.
4. Keys queued while a batch runs are drained by a batch scheduled right
   after it finishes, so the queue empties without caller intervention.
   Batches never overlap: a batch held open until its timeout (a reference
   lookup waits up to 20 s) delays every key queued behind it.

An executor failure resolves every key of its batch to ``None``; callers
treat ``None`` as "not found" and never see the exception. Each pending
entry is removed exactly once, when it settles.

Examples:
    ```python
    async def fetch(keys: list[str]) -> dict[str, Profile | None]:
        ...

    coalescer = RequestCoalescer(fetch, name="profiles", batch_size=20)
    a, b = await asyncio.gather(coalescer.request("k"), coalescer.request("k"))
    assert a is b  # one network round trip
    ```
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Hashable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from .logger import Logger
from .metrics import ComponentMetrics
from .scheduler import Scheduler


K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

BatchExecutor = Callable[[list[K]], Awaitable[Mapping[K, V | None] | None]]


@dataclass(slots=True)
class PendingFetch(Generic[V]):
    """A shared future plus the number of callers currently awaiting it."""

    future: asyncio.Future[V | None]
    waiters: int = 0
    queued_at: float = field(default=0.0)


class RequestCoalescer(Generic[K, V]):
    """Single-flight, time-windowed batch fetcher.

    Args:
        execute_batch: Coroutine function receiving the drained keys.
        name: Component name for logs and metrics.
        batch_size: Maximum keys per batch.
        batch_delay: Seconds between the first queued key and the batch.
        scheduler: Timer source; a default one is created when omitted.
    """

    def __init__(
        self,
        execute_batch: BatchExecutor[K, V],
        *,
        name: str,
        batch_size: int = 20,
        batch_delay: float = 0.05,
        scheduler: Scheduler | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        if batch_delay < 0:
            raise ValueError(f"batch_delay must be >= 0, got {batch_delay}")
        self._execute_batch = execute_batch
        self._name = name
        self._batch_size = batch_size
        self._batch_delay = batch_delay
        self._scheduler = scheduler or Scheduler()
        self._pending: dict[K, PendingFetch[V]] = {}
        self._queue: list[K] = []
        self._timer: asyncio.TimerHandle | None = None
        self._running: asyncio.Task[None] | None = None
        self._closed = False
        self._logger = Logger(f"coalescer.{name}")
        self._metrics = ComponentMetrics(f"coalescer.{name}")

    @property
    def name(self) -> str:
        return self._name

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def batch_delay(self) -> float:
        return self._batch_delay

    @property
    def pending_count(self) -> int:
        """Keys requested and not yet settled (queued or in a running batch)."""
        return len(self._pending)

    @property
    def queued_count(self) -> int:
        """Keys waiting for the next batch."""
        return len(self._queue)

    def is_pending(self, key: K) -> bool:
        return key in self._pending

    async def request(self, key: K) -> V | None:
        """Return the value for *key*, sharing one fetch with concurrent callers.

        Cancelling the caller does not cancel the shared fetch.
        """
        pending = self._pending.get(key)
        if pending is None:
            if self._closed:
                return None
            loop = self._scheduler.loop
            pending = PendingFetch(future=loop.create_future(), queued_at=loop.time())
            self._pending[key] = pending
            self._queue.append(key)
            self._metrics.set("pending", len(self._pending))
            self._arm(self._batch_delay)
        pending.waiters += 1
        try:
            return await asyncio.shield(pending.future)
        finally:
            pending.waiters -= 1

    async def request_many(self, keys: Iterable[K]) -> list[V | None]:
        """Request several keys at once; results follow the order of *keys*."""
        keys = list(keys)
        if not keys:
            return []
        return list(await asyncio.gather(*(self.request(key) for key in keys)))

    def settle(self, key: K, value: V | None) -> bool:
        """Resolve *key* with *value*; returns ``False`` if it was not pending."""
        pending = self._pending.pop(key, None)
        if pending is None:
            return False
        if not pending.future.done():
            pending.future.set_result(value)
        self._metrics.set("pending", len(self._pending))
        return True

    def _arm(self, delay: float) -> None:
        if self._timer is not None or self._running is not None or not self._queue:
            return
        self._timer = self._scheduler.after(delay, self._fire)

    def _fire(self) -> None:
        self._timer = None
        if self._running is not None or not self._queue:
            return
        keys = self._queue[: self._batch_size]
        del self._queue[: self._batch_size]
        self._running = asyncio.ensure_future(self._run_batch(keys))

    async def _run_batch(self, keys: list[K]) -> None:
        started = self._scheduler.now()
        self._metrics.inc("batches")
        try:
            results = await self._execute_batch(keys)
            if results:
                for key, value in results.items():
                    self.settle(key, value)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # Batch error boundary: callers receive None
            self._metrics.inc("batch_failures")
            self._logger.error(
                "batch_failed",
                keys=len(keys),
                error=str(exc),
                error_type=type(exc).__name__,
            )
        finally:
            unresolved = sum(self.settle(key, None) for key in keys)
            if unresolved:
                self._metrics.inc("unresolved", unresolved)
            self._metrics.observe_batch(self._scheduler.now() - started)
            self._logger.debug("batch_completed", keys=len(keys), unresolved=unresolved)
            self._running = None
            if not self._closed:
                self._arm(0)

    async def aclose(self) -> None:
        """Stop batching: cancel the timer and the running batch, settle the rest."""
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._running is not None:
            self._running.cancel()
            await asyncio.gather(self._running, return_exceptions=True)
        self._queue.clear()
        for key in list(self._pending):
            self.settle(key, None)
