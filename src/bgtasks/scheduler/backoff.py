"""
scheduler/backoff.py — Backoff Calculator

Pure function mapping (RetryPolicy, attempt) → delay in seconds.

    fixed        base_delay
    exponential  min(base_delay * 2^(attempt-1), max_delay)
    jittered     uniform in [0.5 * capped, capped], capped = exponential value

Attempt numbering starts at 1 for the first retry.
"""

from __future__ import annotations

import math
import random
from typing import Optional

from bgtasks.scheduler.types import BackoffStrategy, RetryPolicy

# Lower bound of the jitter window as a fraction of the capped delay.
JITTER_FLOOR = 0.5


def capped_exponential(policy: RetryPolicy, attempt: int) -> float:
    """Exponential delay for ``attempt``, capped at policy.max_delay."""
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    try:
        raw = math.ldexp(policy.base_delay, attempt - 1)
    except OverflowError:
        raw = math.inf
    return min(raw, policy.max_delay)


def compute_backoff(
    policy: RetryPolicy,
    attempt: int,
    rng: Optional[random.Random] = None,
) -> float:
    """
    Return the delay (seconds) before retry number ``attempt``.

    Deterministic for fixed and exponential strategies. The jittered strategy
    draws from ``rng`` (module-level ``random`` when None).
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")

    if policy.strategy == BackoffStrategy.FIXED:
        return min(policy.base_delay, policy.max_delay)

    capped = capped_exponential(policy, attempt)
    if policy.strategy == BackoffStrategy.EXPONENTIAL:
        return capped

    # Jittered
    draw = (rng or random).uniform(JITTER_FLOOR * capped, capped)
    return min(max(draw, JITTER_FLOOR * capped), capped)
