"""
Timer primitives on top of the running asyncio loop.

[Scheduler][zapview.core.scheduler.Scheduler] wraps ``loop.call_later`` for
one-shot timers and
[repeating_trigger()][zapview.core.scheduler.Scheduler.repeating_trigger] for
periodic callbacks (the cache sweeper). [Debouncer][zapview.core.scheduler.Debouncer]
collapses bursts of ``fire()`` calls (scroll-proximity triggers) into one
invocation.

Callbacks may be plain functions or coroutine functions; coroutine results
are run as tasks that the owner tracks, so nothing is left un-awaited at
shutdown.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from .logger import Logger


logger = Logger("scheduler")

Callback = Callable[[], Any] | Callable[[], Awaitable[Any]]


def _log_task_failure(task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            "scheduled_callback_failed", error=str(exc), error_type=type(exc).__name__
        )


class Scheduler:
    """Factory for timers bound to one event loop.

    Args:
        loop: Loop to schedule on; defaults to the running loop at call time.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def now(self) -> float:
        """Monotonic loop time in seconds."""
        return self.loop.time()

    def run(self, fn: Callback) -> None:
        """Invoke *fn* now; coroutine results are wrapped in a tracked task."""
        result = fn()
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            task.add_done_callback(_log_task_failure)

    def after(self, delay: float, fn: Callback) -> asyncio.TimerHandle:
        """Run *fn* once after *delay* seconds; cancel via the returned handle."""
        return self.loop.call_later(max(delay, 0.0), self.run, fn)

    def repeating_trigger(self, interval: float, fn: Callback) -> RepeatingTrigger:
        """Run *fn* every *interval* seconds until the trigger is stopped."""
        trigger = RepeatingTrigger(self, interval, fn)
        trigger.start()
        return trigger

    async def drain(self) -> None:
        """Wait for coroutine callbacks started by this scheduler."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class RepeatingTrigger:
    """Periodic callback. ``stop()`` is idempotent."""

    def __init__(self, scheduler: Scheduler, interval: float, fn: Callback) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._scheduler = scheduler
        self._interval = interval
        self._fn = fn
        self._handle: asyncio.TimerHandle | None = None
        self._stopped = False

    @property
    def active(self) -> bool:
        return not self._stopped

    def start(self) -> None:
        if not self._stopped and self._handle is None:
            self._handle = self._scheduler.loop.call_later(self._interval, self._tick)

    def _tick(self) -> None:
        self._handle = None
        if self._stopped:
            return
        self._handle = self._scheduler.loop.call_later(self._interval, self._tick)
        self._scheduler.run(self._fn)

    def stop(self) -> None:
        self._stopped = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class Debouncer:
    """Collapse repeated ``fire()`` calls within *delay* seconds into one call.

    The first ``fire()`` arms a timer; further calls while it is armed are
    absorbed. ``cancel()`` disarms a pending call, ``close()`` also rejects
    future fires.

    Args:
        delay: Quiet window in seconds.
        fn: Callback (sync or async).
        scheduler: Timer source; a default one is created when omitted.
    """

    def __init__(self, delay: float, fn: Callback, *, scheduler: Scheduler | None = None) -> None:
        self._delay = delay
        self._fn = fn
        self._scheduler = scheduler or Scheduler()
        self._handle: asyncio.TimerHandle | None = None
        self._closed = False

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def fire(self) -> bool:
        """Request a call; returns ``False`` if absorbed or closed."""
        if self._closed or self._handle is not None:
            return False
        self._handle = self._scheduler.after(self._delay, self._run)
        return True

    def _run(self) -> Any:
        self._handle = None
        if self._closed:
            return None
        return self._fn()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def close(self) -> None:
        self._closed = True
        self.cancel()
