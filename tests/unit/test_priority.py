"""
tests/unit/test_priority.py — Priority Scorer Tests
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from bgtasks.scheduler.priority import SCORE_MAX, SCORE_MIN, compute_priority_score, rank_by_priority
from bgtasks.scheduler.types import (
    GeofenceTrigger,
    PushTrigger,
    Task,
    TaskFrequency,
    TimeWindowTrigger,
)


async def _noop() -> None:
    return None


def _task(**kwargs) -> Task:
    kwargs.setdefault("id", "t")
    kwargs.setdefault("action", _noop)
    return Task(**kwargs)


class TestComputePriorityScore:

    def test_plain_task_scores_one(self):
        assert compute_priority_score(_task()) == 1.0

    def test_periodic_push_task_scores_one_point_three(self):
        t = _task(
            frequency=TaskFrequency.PERIODIC,
            interval=900.0,
            triggers=(PushTrigger("news"),),
        )
        assert compute_priority_score(t) == 1.3

    def test_constraints_lower_the_score(self):
        t = _task(requires_charging=True, requires_unmetered_network=True)
        assert compute_priority_score(t) == pytest.approx(0.7)

    def test_geofence_bonus(self):
        t = _task(triggers=(GeofenceTrigger(52.52, 13.405, 150.0),))
        assert compute_priority_score(t) == 1.15

    def test_bonus_counted_once_per_trigger_kind(self):
        t = _task(triggers=(PushTrigger("a"), PushTrigger("b")))
        assert compute_priority_score(t) == 1.2

    def test_time_window_has_no_effect(self):
        now = datetime.now(timezone.utc)
        t = _task(triggers=(TimeWindowTrigger(now, now + timedelta(hours=1)),))
        assert compute_priority_score(t) == 1.0

    def test_all_adjustments(self):
        t = _task(
            frequency=TaskFrequency.PERIODIC,
            interval=60.0,
            requires_charging=True,
            requires_unmetered_network=True,
            triggers=(PushTrigger("x"), GeofenceTrigger(0.0, 0.0, 10.0)),
        )
        assert compute_priority_score(t) == pytest.approx(1.15)

    def test_deterministic_and_bounded(self):
        t = _task(
            frequency=TaskFrequency.PERIODIC,
            interval=60.0,
            triggers=(PushTrigger("x"), GeofenceTrigger(0.0, 0.0, 10.0)),
        )
        scores = {compute_priority_score(t) for _ in range(50)}
        assert len(scores) == 1
        assert SCORE_MIN <= scores.pop() <= SCORE_MAX


class TestRankByPriority:

    def test_highest_first_and_stable(self):
        low = _task(id="low", requires_charging=True)
        plain_a = _task(id="plain_a")
        plain_b = _task(id="plain_b")
        high = _task(id="high", triggers=(PushTrigger("p"),))
        ranked = rank_by_priority([low, plain_a, high, plain_b])
        assert [t.id for t in ranked] == ["high", "plain_a", "plain_b", "low"]
