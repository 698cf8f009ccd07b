"""
tests/unit/test_driver.py — LocalWakeupDriver Unit Tests

Uses real asyncio sleeps with very small intervals.
"""

from __future__ import annotations

import asyncio

import pytest

from bgtasks.scheduler.clock import ManualClock
from bgtasks.scheduler.driver import LocalWakeupDriver
from bgtasks.scheduler.events import EventChannel
from bgtasks.scheduler.scheduler import BackgroundScheduler
from bgtasks.scheduler.types import Task, TaskFrequency


def _make():
    scheduler = BackgroundScheduler(EventChannel(), clock=ManualClock())
    return scheduler, LocalWakeupDriver(scheduler)


def _counter():
    calls: list[int] = []

    async def action():
        calls.append(1)

    return calls, action


class TestLocalWakeupDriver:

    @pytest.mark.asyncio
    async def test_one_off_runs_once(self):
        scheduler, driver = _make()
        calls, action = _counter()
        await scheduler.register_task(Task(id="once", action=action))
        await driver.start()
        await asyncio.sleep(0.05)
        assert len(calls) == 1
        assert driver.watched == []
        await driver.stop()

    @pytest.mark.asyncio
    async def test_periodic_repeats(self):
        scheduler, driver = _make()
        calls, action = _counter()
        await scheduler.register_task(
            Task(id="tick", action=action, frequency=TaskFrequency.PERIODIC, interval=0.01)
        )
        await driver.start()
        await asyncio.sleep(0.1)
        await driver.stop()
        assert len(calls) >= 3
        assert not driver.running

    @pytest.mark.asyncio
    async def test_initial_delay_respected(self):
        scheduler, driver = _make()
        calls, action = _counter()
        await scheduler.register_task(Task(id="later", action=action, initial_delay=0.2))
        await driver.start()
        await asyncio.sleep(0.02)
        assert calls == []
        await driver.stop()

    @pytest.mark.asyncio
    async def test_stop_halts_periodic(self):
        scheduler, driver = _make()
        calls, action = _counter()
        await scheduler.register_task(
            Task(id="tick", action=action, frequency="periodic", interval=0.01)
        )
        await driver.start()
        await asyncio.sleep(0.05)
        await driver.stop()
        seen = len(calls)
        await asyncio.sleep(0.05)
        assert len(calls) == seen

    @pytest.mark.asyncio
    async def test_cancelled_task_stops_watcher(self):
        scheduler, driver = _make()
        calls, action = _counter()
        await scheduler.register_task(
            Task(id="tick", action=action, frequency="periodic", interval=0.02)
        )
        await driver.start()
        await asyncio.sleep(0.01)
        await scheduler.cancel_task("tick")
        await asyncio.sleep(0.05)
        assert len(calls) == 1
        assert driver.watched == []
        await driver.stop()

    @pytest.mark.asyncio
    async def test_start_twice_is_harmless(self):
        scheduler, driver = _make()
        calls, action = _counter()
        await scheduler.register_task(Task(id="once", action=action))
        await driver.start()
        await driver.start()
        await asyncio.sleep(0.05)
        assert len(calls) == 1
        await driver.stop()

    @pytest.mark.asyncio
    async def test_watch_requires_running(self):
        scheduler, driver = _make()
        _, action = _counter()
        task = Task(id="x", action=action)
        await scheduler.register_task(task)
        assert driver.watch(task) is False
        await driver.start()
        assert driver.watch(task) is False  # already watched
        await driver.stop()

    @pytest.mark.asyncio
    async def test_failing_task_does_not_kill_watcher(self):
        scheduler, driver = _make()
        calls: list[int] = []

        async def flaky():
            calls.append(1)
            raise RuntimeError("nope")

        await scheduler.register_task(
            Task(id="tick", action=flaky, frequency="periodic", interval=0.01)
        )
        await driver.start()
        await asyncio.sleep(0.08)
        await driver.stop()
        assert len(calls) >= 2
