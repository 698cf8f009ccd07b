"""
scheduler/scheduler.py — BackgroundScheduler

Task registry, execution entry point and retry orchestration.

Design
------
* Pure asyncio — the scheduler never sleeps itself; deferred retries are
  handed to an injected Clock (AsyncioClock in production, ManualClock in
  tests and simulations).
* Explicit context — built by the composition root (see bgtasks.main) and
  passed to callers. There is no module-level instance.
* Fail-safe: a task's own exception is caught, stringified, logged and
  reported as a task_failed event. execute_now() never propagates it.
* Retry orchestration — on failure, tasks with a RetryPolicy get a
  RetryState (created lazily), a backoff delay and a one-shot deferred call
  back into the execution path. Once max_attempts retries have been
  scheduled, the next failure emits retry_exhausted instead.
* Soft cancellation: cancel_task() removes the task from the registry but
  neither interrupts a running action nor cancels a pending retry timer.
  A retry that fires for a missing task is a silent no-op.
* Events for one task id are published in the order its state changed.

Lifecycle::

    scheduler = BackgroundScheduler(events, clock=AsyncioClock())
    await scheduler.initialize()
    await scheduler.register_task(Task(id="sync", action=do_sync,
                                       retry_policy=RetryPolicy()))
    await scheduler.execute_now("sync")
    await scheduler.close()

Introspection::

    scheduler.stats            # SchedulerStats counters
    scheduler.list_tasks()     # registered Task objects, insertion order
    scheduler.task_history     # List[TaskRun] (capped)
"""

from __future__ import annotations

import asyncio
import inspect
import random
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from bgtasks.exceptions import TaskNotFoundError
from bgtasks.observability.logger import get_logger
from bgtasks.scheduler.backoff import compute_backoff
from bgtasks.scheduler.clock import AsyncioClock, Clock, TimerHandle
from bgtasks.scheduler.events import EventChannel
from bgtasks.scheduler.handlers import HandlerRegistry
from bgtasks.scheduler.priority import compute_priority_score, rank_by_priority
from bgtasks.scheduler.retry import RetryTracker
from bgtasks.scheduler.types import (
    EventType,
    SchedulerEvent,
    SchedulerStats,
    Task,
    TaskRun,
)

log = get_logger(__name__)


def describe_error(exc: BaseException) -> str:
    """Stringify a work-unit failure for events and logs."""
    return f"{type(exc).__name__}: {exc}"


async def invoke_work_unit(fn: Callable[..., Any], *args: Any) -> Any:
    """
    Call a task action, handler or sync job and await the result if needed.

    Plain callables are accepted as well as coroutine functions. A work unit
    may report failure by returning the exception; it is raised here.
    """
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    if isinstance(result, Exception):
        raise result
    return result


class BackgroundScheduler:
    """
    Owns the task registry and retry-state map.

    Not thread-safe: call every method from the event loop thread.
    """

    def __init__(
        self,
        events: EventChannel,
        *,
        clock: Optional[Clock] = None,
        handlers: Optional[HandlerRegistry] = None,
        retry_tracker: Optional[RetryTracker] = None,
        rng: Optional[random.Random] = None,
        history_limit: int = 100,
        raise_on_unknown_task: bool = False,
    ) -> None:
        self._events = events
        self._clock: Clock = clock or AsyncioClock()
        self._handlers = handlers or HandlerRegistry()
        self._retries = retry_tracker or RetryTracker()
        self._rng = rng
        self._raise_on_unknown = raise_on_unknown_task

        self._tasks: dict[str, Task] = {}
        self._pending_retries: set[TimerHandle] = set()
        self._initialized = False
        self._init_announced = False

        self.stats = SchedulerStats()
        self.task_history: list[TaskRun] = []
        self._history_limit = max(1, history_limit)

    # ── Factory ───────────────────────────────────────────────────────────────

    @classmethod
    def from_settings(
        cls,
        settings,
        *,
        events: Optional[EventChannel] = None,
        clock: Optional[Clock] = None,
        handlers: Optional[HandlerRegistry] = None,
        rng: Optional[random.Random] = None,
    ) -> "BackgroundScheduler":
        cfg = settings.scheduler
        return cls(
            events=events or EventChannel.from_settings(settings),
            clock=clock,
            handlers=handlers,
            retry_tracker=RetryTracker(retain_exhausted=cfg.retain_exhausted_state),
            rng=rng,
            history_limit=cfg.history_limit,
            raise_on_unknown_task=cfg.raise_on_unknown_task,
        )

    # ── Properties ────────────────────────────────────────────────────────────

    @property
    def events(self) -> EventChannel:
        return self._events

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def handlers(self) -> HandlerRegistry:
        return self._handlers

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def has_tasks(self) -> bool:
        return bool(self._tasks)

    @property
    def pending_retries(self) -> int:
        return len(self._pending_retries)

    # ── Public API ────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Idempotent setup. ``initialized`` is announced once per scheduler."""
        if self._initialized:
            return
        self._initialized = True
        log.info("scheduler.initialized")
        if not self._init_announced:
            self._init_announced = True
            self._emit(EventType.INITIALIZED)

    async def register_task(self, task: Task) -> bool:
        """Store ``task``. Returns False, changing nothing, if the id is taken."""
        if task.id in self._tasks:
            log.warning("scheduler.task_duplicate", task_id=task.id)
            return False
        self._tasks[task.id] = task
        log.info(
            "scheduler.task_registered",
            task_id=task.id,
            frequency=task.frequency.value,
            triggers=[t.type for t in task.triggers],
            retry=task.retry_policy is not None,
        )
        self._emit(EventType.TASK_REGISTERED, task_id=task.id)
        return True

    async def cancel_task(self, task_id: str) -> bool:
        """
        Remove a task and forget its retry streak.

        In-flight runs and pending retry timers are left alone; a timer that
        fires later finds no task and does nothing.
        """
        if self._tasks.pop(task_id, None) is None:
            return False
        self._retries.clear(task_id)
        log.info("scheduler.task_cancelled", task_id=task_id)
        self._emit(EventType.TASK_CANCELLED, task_id=task_id)
        return True

    def list_tasks(self) -> tuple[Task, ...]:
        return tuple(self._tasks.values())

    def get_task(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def retry_attempts(self, task_id: str) -> int:
        return self._retries.attempts(task_id)

    def rank_tasks(self) -> list[Task]:
        """Registered tasks, highest priority score first."""
        return rank_by_priority(self._tasks.values())

    def task_summaries(self) -> list[dict[str, Any]]:
        """Status summary of all tasks for display."""
        result = []
        for task in self._tasks.values():
            last = next((r for r in reversed(self.task_history) if r.task_id == task.id), None)
            result.append({
                "id": task.id,
                "frequency": task.frequency.value,
                "priority": compute_priority_score(task),
                "triggers": [t.type for t in task.triggers],
                "retry_attempts": self._retries.attempts(task.id),
                "last_run_succeeded": last.succeeded if last else None,
                "last_error": last.error if last else None,
            })
        return result

    async def execute_now(self, task_id: str) -> bool:
        """
        Run a registered task once.

        Returns True if the task ran (whatever its outcome), False if no such
        task is registered. With ``raise_on_unknown_task`` the unknown case
        raises TaskNotFoundError instead.
        """
        task = self._tasks.get(task_id)
        if task is None:
            if self._raise_on_unknown:
                raise TaskNotFoundError(task_id)
            log.warning("scheduler.execute.not_found", task_id=task_id)
            return False
        await self._run(task)
        return True

    async def close(self) -> None:
        """Cancel pending retry timers and drop all registry state. Idempotent."""
        for handle in list(self._pending_retries):
            handle.cancel()
        self._pending_retries.clear()
        self._tasks.clear()
        self._retries.reset()
        self.task_history.clear()
        if self._initialized:
            log.info("scheduler.closed")
        self._initialized = False

    # ── Execution ─────────────────────────────────────────────────────────────

    async def _run(self, task: Task) -> None:
        """Execute one run of ``task``. Never raises except on cancellation."""
        run = TaskRun(
            run_id=uuid.uuid4().hex[:12],
            task_id=task.id,
            attempt=self._retries.attempts(task.id),
        )
        self.stats.total_runs += 1
        self.stats.last_run_task = task.id
        self.stats.last_run_at = datetime.now(timezone.utc).isoformat()

        log.info("scheduler.task_start", task_id=task.id, run_id=run.run_id, attempt=run.attempt)
        self._emit(EventType.TASK_STARTED, task_id=task.id)

        try:
            await self._invoke(task)

        except asyncio.CancelledError:
            run.finish(succeeded=False, error="Cancelled")
            self._record(run)
            log.info("scheduler.task_cancelled_in_flight", task_id=task.id, run_id=run.run_id)
            raise

        except Exception as e:
            err = describe_error(e)
            run.finish(succeeded=False, error=err)
            self.stats.failed_runs += 1
            self.stats.last_error = err
            self._record(run)
            log.warning(
                "scheduler.task_failed",
                task_id=task.id,
                run_id=run.run_id,
                error=err,
                duration_s=round(run.duration_s, 3),
            )
            self._emit(EventType.TASK_FAILED, task_id=task.id, error=err)
            self._handle_retry(task, err)
            return

        run.finish(succeeded=True)
        self.stats.successful_runs += 1
        self._record(run)
        log.info(
            "scheduler.task_complete",
            task_id=task.id,
            run_id=run.run_id,
            duration_s=round(run.duration_s, 3),
        )
        self._emit(EventType.TASK_COMPLETED, task_id=task.id)
        self._retries.clear(task.id)

    async def _invoke(self, task: Task) -> None:
        if task.action is not None:
            await invoke_work_unit(task.action)
        else:
            await invoke_work_unit(self._handlers.get(task.handler), task.payload)

    # ── Retry orchestration ───────────────────────────────────────────────────

    def _handle_retry(self, task: Task, error: str) -> None:
        policy = task.retry_policy
        if policy is None:
            return

        state = self._retries.get_or_create(task.id)
        if state.attempts >= policy.max_attempts:
            self.stats.retries_exhausted += 1
            log.warning(
                "scheduler.retry_exhausted",
                task_id=task.id,
                attempts=state.attempts,
                max_attempts=policy.max_attempts,
            )
            self._emit(
                EventType.RETRY_EXHAUSTED,
                task_id=task.id,
                error=error,
                metadata={"attempts": state.attempts},
            )
            self._retries.on_exhausted(task.id)
            return

        state.attempts += 1
        delay = compute_backoff(policy, state.attempts, self._rng)
        self.stats.retries_scheduled += 1
        log.info(
            "scheduler.retry_scheduled",
            task_id=task.id,
            attempt=state.attempts,
            delay_s=round(delay, 3),
            strategy=policy.strategy.value,
        )
        self._emit(
            EventType.RETRY_SCHEDULED,
            task_id=task.id,
            metadata={"attempt": state.attempts, "delay_s": delay},
        )
        self._schedule_retry(task.id, delay)

    def _schedule_retry(self, task_id: str, delay: float) -> None:
        handle: Optional[TimerHandle] = None

        async def _fire() -> None:
            self._pending_retries.discard(handle)
            await self._fire_retry(task_id)

        handle = self._clock.call_later(delay, _fire)
        self._pending_retries.add(handle)

    async def _fire_retry(self, task_id: str) -> None:
        task = self._tasks.get(task_id)
        if task is None:
            log.debug("scheduler.retry_skipped.task_gone", task_id=task_id)
            return
        await self._run(task)

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _record(self, run: TaskRun) -> None:
        self.task_history.append(run)
        if len(self.task_history) > self._history_limit:
            self.task_history = self.task_history[-self._history_limit:]

    def _emit(
        self,
        type_: EventType,
        *,
        task_id: Optional[str] = None,
        error: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        self._events.publish(
            SchedulerEvent(
                type=type_,
                task_id=task_id,
                error=error,
                metadata=metadata,
                timestamp=self._clock.now(),
            )
        )
