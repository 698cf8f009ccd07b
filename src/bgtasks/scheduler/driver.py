"""
scheduler/driver.py — LocalWakeupDriver

In-process stand-in for the platform wake-up layer (periodic job service,
push delivery, geofencing). Useful in development and in long-running
Python services that have no OS scheduler to lean on.

For every registered task a watcher coroutine:
  1. sleeps ``initial_delay`` (0 when unset),
  2. calls scheduler.execute_now(task.id),
  3. for periodic tasks, sleeps ``interval`` and repeats.

Triggers are not evaluated here; they stay descriptive metadata.

Usage::

    driver = LocalWakeupDriver(scheduler)
    await driver.start()   # non-blocking, watchers run as asyncio Tasks
    ...
    await driver.stop()
"""

from __future__ import annotations

import asyncio

from bgtasks.observability.logger import get_logger
from bgtasks.scheduler.scheduler import BackgroundScheduler
from bgtasks.scheduler.types import Task

log = get_logger(__name__)


class LocalWakeupDriver:

    def __init__(self, scheduler: BackgroundScheduler) -> None:
        self._scheduler = scheduler
        self._watchers: dict[str, asyncio.Task] = {}
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def watched(self) -> list[str]:
        return [tid for tid, w in self._watchers.items() if not w.done()]

    async def start(self) -> None:
        """Start one watcher per registered task. Non-blocking."""
        if self._running:
            log.warning("driver.already_running")
            return
        self._running = True
        for task in self._scheduler.list_tasks():
            self.watch(task)
        log.info("driver.started", watchers=len(self._watchers))

    def watch(self, task: Task) -> bool:
        """Start a watcher for ``task`` if the driver is running and none exists."""
        if not self._running:
            return False
        existing = self._watchers.get(task.id)
        if existing is not None and not existing.done():
            return False
        self._watchers[task.id] = asyncio.create_task(
            self._watcher_loop(task),
            name=f"bgtasks:watch:{task.id}",
        )
        return True

    async def stop(self) -> None:
        """Cancel all watchers and wait for them to finish."""
        if not self._running:
            return
        self._running = False
        log.info("driver.stopping", watchers=len(self._watchers))
        for w in self._watchers.values():
            w.cancel()
        if self._watchers:
            await asyncio.gather(*self._watchers.values(), return_exceptions=True)
        self._watchers.clear()
        log.info("driver.stopped")

    # ── Watcher loop ──────────────────────────────────────────────────────────

    def _still_registered(self, task: Task) -> bool:
        return self._scheduler.get_task(task.id) is task

    async def _watcher_loop(self, task: Task) -> None:
        try:
            await asyncio.sleep(task.initial_delay or 0)
            while self._running and self._still_registered(task):
                await self._scheduler.execute_now(task.id)
                if not task.is_periodic:
                    break
                log.debug("driver.sleeping", task_id=task.id, sleep_s=task.interval)
                await asyncio.sleep(task.interval)
        except asyncio.CancelledError:
            log.debug("driver.watcher.cancelled", task_id=task.id)
        except Exception as e:
            log.error(
                "driver.watcher.crashed",
                task_id=task.id,
                error=str(e),
                error_type=type(e).__name__,
            )
