"""
scheduler/types.py — Scheduler Data Contracts

All dataclasses and enums shared across the scheduler layer:

  - Trigger variants:  GeofenceTrigger, PushTrigger, TimeWindowTrigger
  - RetryPolicy:       immutable backoff configuration attached to a Task
  - Task:              one unit of deferred / periodic work
  - RetryState:        mutable attempt counter for one failure streak
  - SchedulerEvent:    immutable record of a lifecycle transition
  - SyncJob:           one idempotent entry in the sync queue
  - TaskRun:           runtime record for one execution
  - SchedulerStats:    aggregate counters

All durations are float seconds.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

# Work unit supplied by the caller: a coroutine function or a plain callable.
# May return an Exception instance instead of raising it; both count as failure.
TaskAction = Callable[[], Union[Awaitable[Any], Any]]
SyncAction = Callable[[], Union[Awaitable[Any], Any]]


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────

class TaskFrequency(str, Enum):
    ONE_OFF  = "one_off"
    PERIODIC = "periodic"


class BackoffStrategy(str, Enum):
    FIXED       = "fixed"
    EXPONENTIAL = "exponential"
    JITTERED    = "jittered"


class EventType(str, Enum):
    INITIALIZED      = "initialized"
    TASK_REGISTERED  = "task_registered"
    TASK_CANCELLED   = "task_cancelled"
    TASK_STARTED     = "task_started"
    TASK_COMPLETED   = "task_completed"
    TASK_FAILED      = "task_failed"
    RETRY_SCHEDULED  = "retry_scheduled"
    RETRY_EXHAUSTED  = "retry_exhausted"
    SYNC_ENQUEUED    = "sync_enqueued"
    SYNC_COMPLETED   = "sync_completed"
    SYNC_FAILED      = "sync_failed"


# ─────────────────────────────────────────────────────────────────────────────
# Triggers: descriptive only, never bound to a platform service here
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class GeofenceTrigger:
    latitude: float
    longitude: float
    radius_meters: float

    def __post_init__(self) -> None:
        if not (-90.0 <= self.latitude <= 90.0):
            raise ValueError(f"latitude must be within [-90, 90], got {self.latitude}")
        if not (-180.0 <= self.longitude <= 180.0):
            raise ValueError(f"longitude must be within [-180, 180], got {self.longitude}")
        if self.radius_meters <= 0:
            raise ValueError("radius_meters must be > 0")

    @property
    def type(self) -> str:
        return "geofence"


@dataclass(frozen=True)
class PushTrigger:
    topic: str

    @property
    def type(self) -> str:
        return "push"


@dataclass(frozen=True)
class TimeWindowTrigger:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError("TimeWindowTrigger.end must not precede start")

    @property
    def type(self) -> str:
        return "time_window"

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


Trigger = Union[GeofenceTrigger, PushTrigger, TimeWindowTrigger]


# ─────────────────────────────────────────────────────────────────────────────
# RetryPolicy
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RetryPolicy:
    """
    Backoff configuration for a task.

    strategy      fixed | exponential | jittered
    base_delay    Delay for the first retry (seconds).
    max_delay     Upper bound for any computed delay (seconds).
    max_attempts  Retries allowed per failure streak.
    """
    strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    base_delay: float = 3.0
    max_delay: float = 300.0
    max_attempts: int = 5

    def __post_init__(self) -> None:
        # Accept plain strings ("jittered") from config files.
        object.__setattr__(self, "strategy", BackoffStrategy(self.strategy))
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("RetryPolicy delays must be >= 0")
        if self.max_attempts < 0:
            raise ValueError("RetryPolicy.max_attempts must be >= 0")


# ─────────────────────────────────────────────────────────────────────────────
# Task
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Task:
    """
    One unit of background work.

    The work unit is either an async ``action`` closure or a ``handler``
    name resolved against the HandlerRegistry at execution time, called
    with ``payload``. Handler-based tasks survive a process boundary
    because they carry no captured state.

    ``persisted`` is a declaration for an external store; nothing here
    persists tasks.
    """
    id: str
    frequency: TaskFrequency = TaskFrequency.ONE_OFF
    interval: Optional[float] = None
    initial_delay: Optional[float] = None
    requires_unmetered_network: bool = False
    requires_charging: bool = False
    persisted: bool = True
    triggers: tuple[Trigger, ...] = ()
    retry_policy: Optional[RetryPolicy] = None
    action: Optional[TaskAction] = field(default=None, compare=False, repr=False)
    handler: Optional[str] = None
    payload: Mapping[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Task.id must be a non-empty string")
        if (self.action is None) == (self.handler is None):
            raise ValueError(
                f"Task '{self.id}' must define exactly one of 'action' or 'handler'"
            )
        object.__setattr__(self, "frequency", TaskFrequency(self.frequency))
        object.__setattr__(self, "triggers", tuple(self.triggers))
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))
        if self.frequency == TaskFrequency.PERIODIC and not (self.interval and self.interval > 0):
            raise ValueError(f"Periodic task '{self.id}' requires a positive interval")
        if self.initial_delay is not None and self.initial_delay < 0:
            raise ValueError("Task.initial_delay must be >= 0")

    @property
    def is_periodic(self) -> bool:
        return self.frequency == TaskFrequency.PERIODIC

    def has_trigger(self, trigger_type: type) -> bool:
        return any(isinstance(t, trigger_type) for t in self.triggers)


# ─────────────────────────────────────────────────────────────────────────────
# RetryState
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class RetryState:
    attempts: int = 0


# ─────────────────────────────────────────────────────────────────────────────
# SchedulerEvent
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SchedulerEvent:
    """A lifecycle transition that has already happened."""
    type: EventType
    task_id: Optional[str] = None
    error: Optional[str] = None
    metadata: Optional[Mapping[str, Any]] = None
    timestamp: float = 0.0

    def __post_init__(self) -> None:
        if self.metadata is not None:
            object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"type": self.type.value, "timestamp": self.timestamp}
        if self.task_id is not None:
            d["task_id"] = self.task_id
        if self.error is not None:
            d["error"] = self.error
        if self.metadata:
            d["metadata"] = dict(self.metadata)
        return d


# ─────────────────────────────────────────────────────────────────────────────
# SyncJob
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(eq=False)
class SyncJob:
    """
    Idempotent queued operation. Identity is the object itself: enqueuing
    the same id twice yields two independent entries.
    """
    id: str
    action: SyncAction = field(repr=False)
    job_key: str = field(default_factory=lambda: uuid.uuid4().hex[:12])


# ─────────────────────────────────────────────────────────────────────────────
# TaskRun: runtime record for one execution
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class TaskRun:
    run_id: str
    task_id: str
    attempt: int = 0
    started_at: float = field(default_factory=time.monotonic)
    finished_at: Optional[float] = None
    succeeded: Optional[bool] = None
    error: Optional[str] = None

    @property
    def duration_s(self) -> float:
        end = self.finished_at or time.monotonic()
        return end - self.started_at

    def finish(self, *, succeeded: bool, error: Optional[str] = None) -> None:
        self.finished_at = time.monotonic()
        self.succeeded = succeeded
        self.error = error


# ─────────────────────────────────────────────────────────────────────────────
# SchedulerStats
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class SchedulerStats:
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    retries_scheduled: int = 0
    retries_exhausted: int = 0
    last_run_at: Optional[str] = None
    last_run_task: Optional[str] = None
    last_error: Optional[str] = None
