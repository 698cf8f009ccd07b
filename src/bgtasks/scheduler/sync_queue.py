"""
scheduler/sync_queue.py — Best-effort Sync Queue

An in-memory FIFO of idempotent jobs, drained on demand.

Unlike scheduled tasks, sync jobs have no backoff delay and no attempt cap:
a failed job simply stays queued and is retried the next time the caller
runs process_queue(). There is no permanently failed sync job.

Usage::

    queue = SyncQueue(events)
    queue.enqueue("upload-42", upload)
    result = await queue.process_queue()
    result.completed, result.failed
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from bgtasks.observability.logger import get_logger
from bgtasks.scheduler.clock import AsyncioClock, Clock
from bgtasks.scheduler.events import EventChannel
from bgtasks.scheduler.scheduler import describe_error, invoke_work_unit
from bgtasks.scheduler.types import EventType, SchedulerEvent, SyncAction, SyncJob

log = get_logger(__name__)


@dataclass
class SyncPassResult:
    """Outcome of one process_queue() pass (job ids in processing order)."""
    completed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.completed) + len(self.failed)


class SyncQueue:

    def __init__(self, events: EventChannel, *, clock: Optional[Clock] = None) -> None:
        self._events = events
        self._clock: Clock = clock or AsyncioClock()
        self._jobs: list[SyncJob] = []

    def enqueue(self, job_id: str, action: SyncAction) -> SyncJob:
        """Append a job. The same id may be queued more than once."""
        job = SyncJob(id=job_id, action=action)
        self._jobs.append(job)
        log.info("sync.job_enqueued", job_id=job_id, job_key=job.job_key, depth=len(self._jobs))
        self._emit(EventType.SYNC_ENQUEUED, job_id)
        return job

    async def process_queue(self) -> SyncPassResult:
        """
        Run every job queued at call time, oldest first.

        Successful jobs leave the queue; failed jobs stay for the next pass.
        Jobs enqueued while the pass runs wait for the next pass.
        """
        result = SyncPassResult()
        snapshot = list(self._jobs)
        if snapshot:
            log.info("sync.pass_start", jobs=len(snapshot))

        for job in snapshot:
            try:
                await invoke_work_unit(job.action)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                err = describe_error(e)
                result.failed.append(job.id)
                log.warning("sync.job_failed", job_id=job.id, job_key=job.job_key, error=err)
                self._emit(EventType.SYNC_FAILED, job.id, error=err)
                continue

            self._remove(job)
            result.completed.append(job.id)
            log.info("sync.job_completed", job_id=job.id, job_key=job.job_key)
            self._emit(EventType.SYNC_COMPLETED, job.id)

        if snapshot:
            log.info(
                "sync.pass_complete",
                completed=len(result.completed),
                failed=len(result.failed),
                remaining=len(self._jobs),
            )
        return result

    def pending(self) -> tuple[SyncJob, ...]:
        return tuple(self._jobs)

    def clear(self) -> int:
        """Drop every queued job; returns how many were dropped."""
        count = len(self._jobs)
        self._jobs.clear()
        return count

    def __len__(self) -> int:
        return len(self._jobs)

    def _remove(self, job: SyncJob) -> None:
        # Identity match: a second job with the same id stays queued.
        for i, queued in enumerate(self._jobs):
            if queued is job:
                del self._jobs[i]
                return

    def _emit(self, type_: EventType, job_id: str, error: Optional[str] = None) -> None:
        self._events.publish(
            SchedulerEvent(type=type_, task_id=job_id, error=error, timestamp=self._clock.now())
        )
