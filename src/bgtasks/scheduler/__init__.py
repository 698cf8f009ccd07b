"""
scheduler/ — Background Task Scheduler

Public interface for the scheduler package.

Usage:
    from bgtasks.scheduler import BackgroundScheduler, EventChannel, Task, RetryPolicy

    events = EventChannel()
    scheduler = BackgroundScheduler(events)
"""

from bgtasks.scheduler.backoff import compute_backoff
from bgtasks.scheduler.clock import AsyncioClock, Clock, ManualClock
from bgtasks.scheduler.driver import LocalWakeupDriver
from bgtasks.scheduler.events import EventChannel, OverflowPolicy, Subscription
from bgtasks.scheduler.handlers import HandlerRegistry
from bgtasks.scheduler.priority import compute_priority_score, rank_by_priority
from bgtasks.scheduler.retry import RetryTracker
from bgtasks.scheduler.scheduler import BackgroundScheduler
from bgtasks.scheduler.sync_queue import SyncPassResult, SyncQueue
from bgtasks.scheduler.types import (
    BackoffStrategy,
    EventType,
    GeofenceTrigger,
    PushTrigger,
    RetryPolicy,
    RetryState,
    SchedulerEvent,
    SchedulerStats,
    SyncJob,
    Task,
    TaskFrequency,
    TaskRun,
    TimeWindowTrigger,
)

__all__ = [
    "AsyncioClock",
    "BackgroundScheduler",
    "BackoffStrategy",
    "Clock",
    "EventChannel",
    "EventType",
    "GeofenceTrigger",
    "HandlerRegistry",
    "LocalWakeupDriver",
    "ManualClock",
    "OverflowPolicy",
    "PushTrigger",
    "RetryPolicy",
    "RetryState",
    "RetryTracker",
    "SchedulerEvent",
    "SchedulerStats",
    "Subscription",
    "SyncJob",
    "SyncPassResult",
    "SyncQueue",
    "Task",
    "TaskFrequency",
    "TaskRun",
    "TimeWindowTrigger",
    "compute_backoff",
    "compute_priority_score",
    "rank_by_priority",
]
