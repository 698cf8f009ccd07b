"""
scheduler/clock.py — Deferred-call clocks

The scheduler never sleeps directly. It asks a Clock to run a coroutine
function after a delay, which lets tests and simulations pin retry timing
without waiting on wall time.

    AsyncioClock   real time, backed by the running event loop
    ManualClock    virtual time, advanced explicitly by the caller

Usage::

    clock = ManualClock()
    scheduler = BackgroundScheduler(events, clock=clock)
    ...
    await clock.advance(1.0)   # fires every timer due within the next second
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from typing import Awaitable, Callable, Optional, Protocol

from bgtasks.observability.logger import get_logger

log = get_logger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class TimerHandle(Protocol):
    @property
    def cancelled(self) -> bool: ...

    def cancel(self) -> None: ...


class Clock(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle: ...


# ─────────────────────────────────────────────────────────────────────────────
# AsyncioClock
# ─────────────────────────────────────────────────────────────────────────────

class _AsyncioTimer:
    def __init__(self, clock: "AsyncioClock", callback: TimerCallback) -> None:
        self._clock = clock
        self._callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _fire(self) -> None:
        self._handle = None
        if self._cancelled:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._callback(), name="bgtasks:timer"
        )
        self._task.add_done_callback(self._done)

    def _done(self, task: asyncio.Task) -> None:
        self._clock._timers.discard(self)
        if not task.cancelled() and task.exception() is not None:
            log.error(
                "clock.timer_error",
                error=f"{type(task.exception()).__name__}: {task.exception()}",
            )

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._clock._timers.discard(self)


class AsyncioClock:
    """Real clock. call_later() must be invoked from inside a running loop."""

    def __init__(self) -> None:
        # Strong references so fired timer tasks are not garbage-collected.
        self._timers: set[_AsyncioTimer] = set()

    def now(self) -> float:
        try:
            return asyncio.get_running_loop().time()
        except RuntimeError:
            return time.monotonic()

    def call_later(self, delay: float, callback: TimerCallback) -> _AsyncioTimer:
        loop = asyncio.get_running_loop()
        timer = _AsyncioTimer(self, callback)
        timer._handle = loop.call_later(max(0.0, delay), timer._fire)
        self._timers.add(timer)
        return timer

    @property
    def pending(self) -> int:
        return len(self._timers)


# ─────────────────────────────────────────────────────────────────────────────
# ManualClock
# ─────────────────────────────────────────────────────────────────────────────

class _ManualTimer:
    def __init__(self, due: float, callback: TimerCallback) -> None:
        self.due = due
        self.callback = callback
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class ManualClock:
    """
    Virtual clock for tests and simulations.

    Timers fire only inside advance(), in due-time order; timers with the
    same due time fire in the order they were scheduled. A callback that
    schedules a new timer inside the advanced window sees it fire in the
    same advance() call.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)
        self._heap: list[tuple[float, int, _ManualTimer]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: TimerCallback) -> _ManualTimer:
        timer = _ManualTimer(self._now + max(0.0, delay), callback)
        heapq.heappush(self._heap, (timer.due, next(self._seq), timer))
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for _, _, t in self._heap if not t.cancelled)

    def next_due(self) -> Optional[float]:
        for due, _, timer in sorted(self._heap):
            if not timer.cancelled:
                return due
        return None

    async def advance(self, seconds: float) -> int:
        """Move time forward by ``seconds``; return the number of timers fired."""
        if seconds < 0:
            raise ValueError("ManualClock cannot move backwards")
        target = self._now + seconds
        fired = 0
        while self._heap and self._heap[0][0] <= target:
            due, _, timer = heapq.heappop(self._heap)
            if timer.cancelled:
                continue
            self._now = due
            await timer.callback()
            fired += 1
        self._now = target
        return fired

    async def run_until_idle(self, limit: int = 10_000) -> int:
        """Fire timers until none remain (bounded by ``limit``)."""
        fired = 0
        while fired < limit:
            due = self.next_due()
            if due is None:
                break
            fired += await self.advance(due - self._now)
        return fired
