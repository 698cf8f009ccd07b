"""
tests/unit/test_types.py — Scheduler data contract tests

Covers:
  - Task construction rules (id, action/handler exclusivity, periodic interval)
  - Trigger validation
  - RetryPolicy coercion and validation
  - SchedulerEvent immutability and to_dict()
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from bgtasks.scheduler.types import (
    BackoffStrategy,
    EventType,
    GeofenceTrigger,
    PushTrigger,
    RetryPolicy,
    SchedulerEvent,
    SyncJob,
    Task,
    TaskFrequency,
    TimeWindowTrigger,
)


async def _noop() -> None:
    return None


class TestTask:

    def test_defaults(self):
        t = Task(id="a", action=_noop)
        assert t.frequency == TaskFrequency.ONE_OFF
        assert t.persisted is True
        assert t.triggers == ()
        assert t.retry_policy is None
        assert not t.is_periodic

    def test_empty_id_rejected(self):
        with pytest.raises(ValueError):
            Task(id="", action=_noop)

    def test_requires_action_or_handler(self):
        with pytest.raises(ValueError, match="exactly one"):
            Task(id="a")

    def test_rejects_both_action_and_handler(self):
        with pytest.raises(ValueError, match="exactly one"):
            Task(id="a", action=_noop, handler="h")

    def test_periodic_requires_positive_interval(self):
        with pytest.raises(ValueError, match="interval"):
            Task(id="p", action=_noop, frequency=TaskFrequency.PERIODIC)
        with pytest.raises(ValueError):
            Task(id="p", action=_noop, frequency="periodic", interval=0)

    def test_frequency_string_coerced(self):
        t = Task(id="p", action=_noop, frequency="periodic", interval=60.0)
        assert t.frequency is TaskFrequency.PERIODIC
        assert t.is_periodic

    def test_negative_initial_delay_rejected(self):
        with pytest.raises(ValueError):
            Task(id="a", action=_noop, initial_delay=-1)

    def test_is_immutable(self):
        t = Task(id="a", action=_noop)
        with pytest.raises(AttributeError):
            t.id = "b"

    def test_payload_is_read_only(self):
        source = {"k": 1}
        t = Task(id="a", handler="h", payload=source)
        source["k"] = 2
        assert t.payload["k"] == 1
        with pytest.raises(TypeError):
            t.payload["k"] = 3

    def test_triggers_list_becomes_tuple(self):
        t = Task(id="a", action=_noop, triggers=[PushTrigger("news")])
        assert isinstance(t.triggers, tuple)
        assert t.has_trigger(PushTrigger)
        assert not t.has_trigger(GeofenceTrigger)


class TestTriggers:

    def test_geofence_ranges(self):
        GeofenceTrigger(latitude=51.5, longitude=-0.12, radius_meters=100)
        with pytest.raises(ValueError):
            GeofenceTrigger(latitude=91, longitude=0, radius_meters=10)
        with pytest.raises(ValueError):
            GeofenceTrigger(latitude=0, longitude=-181, radius_meters=10)
        with pytest.raises(ValueError):
            GeofenceTrigger(latitude=0, longitude=0, radius_meters=0)

    def test_type_names(self):
        now = datetime.now(timezone.utc)
        assert GeofenceTrigger(0, 0, 1).type == "geofence"
        assert PushTrigger("t").type == "push"
        assert TimeWindowTrigger(now, now).type == "time_window"

    def test_time_window(self):
        start = datetime(2024, 1, 1, 8, tzinfo=timezone.utc)
        window = TimeWindowTrigger(start, start + timedelta(hours=2))
        assert window.contains(start + timedelta(hours=1))
        assert not window.contains(start + timedelta(hours=3))
        with pytest.raises(ValueError):
            TimeWindowTrigger(start, start - timedelta(seconds=1))


class TestRetryPolicy:

    def test_defaults(self):
        p = RetryPolicy()
        assert p.strategy is BackoffStrategy.EXPONENTIAL
        assert (p.base_delay, p.max_delay, p.max_attempts) == (3.0, 300.0, 5)

    def test_string_strategy_coerced(self):
        assert RetryPolicy(strategy="jittered").strategy is BackoffStrategy.JITTERED

    def test_unknown_strategy_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy(strategy="linear")

    def test_negative_values_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy(base_delay=-1)
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=-1)


class TestSchedulerEvent:

    def test_to_dict_omits_empty_fields(self):
        assert SchedulerEvent(EventType.INITIALIZED).to_dict() == {
            "type": "initialized",
            "timestamp": 0.0,
        }

    def test_to_dict_full(self):
        e = SchedulerEvent(
            EventType.RETRY_SCHEDULED, task_id="t1",
            metadata={"attempt": 1, "delay_s": 1.0}, timestamp=2.5,
        )
        assert e.to_dict() == {
            "type": "retry_scheduled",
            "timestamp": 2.5,
            "task_id": "t1",
            "metadata": {"attempt": 1, "delay_s": 1.0},
        }

    def test_metadata_is_read_only(self):
        e = SchedulerEvent(EventType.TASK_FAILED, task_id="t", metadata={"a": 1})
        with pytest.raises(TypeError):
            e.metadata["a"] = 2


class TestSyncJob:

    def test_same_id_jobs_are_distinct(self):
        a = SyncJob(id="x", action=_noop)
        b = SyncJob(id="x", action=_noop)
        assert a != b
        assert a.job_key != b.job_key
