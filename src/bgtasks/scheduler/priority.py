"""
scheduler/priority.py — Heuristic Priority Scorer

Ranks candidate tasks under resource pressure. The score is a ranking
hint, not a scheduling guarantee.

    base                           1.0
    requires_charging             -0.2
    requires_unmetered_network    -0.1
    periodic                      +0.1
    any push trigger              +0.2
    any geofence trigger          +0.15

Clamped to [0.0, 2.0].
"""

from __future__ import annotations

from typing import Iterable

from bgtasks.scheduler.types import GeofenceTrigger, PushTrigger, Task

SCORE_MIN = 0.0
SCORE_MAX = 2.0

_BASE_SCORE = 1.0
_CHARGING_PENALTY = 0.2
_UNMETERED_PENALTY = 0.1
_PERIODIC_BONUS = 0.1
_PUSH_BONUS = 0.2
_GEOFENCE_BONUS = 0.15


def compute_priority_score(task: Task) -> float:
    """Return the bounded heuristic score for ``task``."""
    score = _BASE_SCORE
    if task.requires_charging:
        score -= _CHARGING_PENALTY
    if task.requires_unmetered_network:
        score -= _UNMETERED_PENALTY
    if task.is_periodic:
        score += _PERIODIC_BONUS
    if task.has_trigger(PushTrigger):
        score += _PUSH_BONUS
    if task.has_trigger(GeofenceTrigger):
        score += _GEOFENCE_BONUS
    # Round away float noise so 1.0 + 0.1 + 0.2 compares equal to 1.3.
    return round(min(max(score, SCORE_MIN), SCORE_MAX), 10)


def rank_by_priority(tasks: Iterable[Task]) -> list[Task]:
    """Highest score first; ties keep their input order."""
    return sorted(tasks, key=compute_priority_score, reverse=True)
