"""
scheduler/retry.py — Retry State Tracker

Per-task attempt counters keyed by task id, created lazily on the first
failure of a streak and removed when the task next succeeds.

``retain_exhausted`` controls what happens once a streak runs out of
attempts: True keeps the counter (every later failure re-reports
exhaustion until a success resets it), False drops it so the next failure
starts a fresh streak.
"""

from __future__ import annotations

from typing import Optional

from bgtasks.scheduler.types import RetryState


class RetryTracker:

    def __init__(self, retain_exhausted: bool = True) -> None:
        self._states: dict[str, RetryState] = {}
        self.retain_exhausted = retain_exhausted

    def get_or_create(self, task_id: str) -> RetryState:
        state = self._states.get(task_id)
        if state is None:
            state = RetryState()
            self._states[task_id] = state
        return state

    def get(self, task_id: str) -> Optional[RetryState]:
        return self._states.get(task_id)

    def attempts(self, task_id: str) -> int:
        state = self._states.get(task_id)
        return state.attempts if state else 0

    def clear(self, task_id: str) -> bool:
        """Forget the streak for ``task_id``. Returns whether state existed."""
        return self._states.pop(task_id, None) is not None

    def on_exhausted(self, task_id: str) -> None:
        if not self.retain_exhausted:
            self._states.pop(task_id, None)

    def reset(self) -> None:
        self._states.clear()

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._states

    def __len__(self) -> int:
        return len(self._states)
