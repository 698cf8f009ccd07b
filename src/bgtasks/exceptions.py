"""
exceptions.py — bgtasks Error Hierarchy

All bgtasks-specific exceptions live here. Library code raises typed
subclasses of BgTasksError — never bare Exception.

Import from here, not from individual modules:
    from bgtasks.exceptions import TaskNotFoundError, HandlerNotFoundError

Hierarchy:
    BgTasksError
    ├── SchedulerError
    │   └── TaskNotFoundError
    └── HandlerError
        ├── HandlerNotFoundError
        └── DuplicateHandlerError

Configuration problems raise ConfigError from bgtasks.config.settings.

Note: failures raised by a task's own work unit are never wrapped in these
types. The scheduler catches them, stringifies them and reports them on the
event channel.
"""

from __future__ import annotations


# ─────────────────────────────────────────────────────────────────────────────
# Root
# ─────────────────────────────────────────────────────────────────────────────

class BgTasksError(Exception):
    """Base class for all bgtasks exceptions."""


# ─────────────────────────────────────────────────────────────────────────────
# Scheduler layer
# ─────────────────────────────────────────────────────────────────────────────

class SchedulerError(BgTasksError):
    """Base for task registry / execution errors."""


class TaskNotFoundError(SchedulerError):
    """execute_now() was called for a task id that is not registered."""

    def __init__(self, task_id: str, message: str = "") -> None:
        self.task_id = task_id
        super().__init__(message or f"Task '{task_id}' is not registered.")


# ─────────────────────────────────────────────────────────────────────────────
# Handler layer
# ─────────────────────────────────────────────────────────────────────────────

class HandlerError(BgTasksError):
    """Base for handler registry errors."""


class HandlerNotFoundError(HandlerError):
    """A task names a handler that is not in the HandlerRegistry."""


class DuplicateHandlerError(HandlerError):
    """A handler with the same name is already registered."""


__all__ = [
    "BgTasksError",
    # Scheduler
    "SchedulerError",
    "TaskNotFoundError",
    # Handlers
    "HandlerError",
    "HandlerNotFoundError",
    "DuplicateHandlerError",
]
