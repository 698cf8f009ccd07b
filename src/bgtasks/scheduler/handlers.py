"""
scheduler/handlers.py — Handler Registry

Maps task-type names to async handlers. A Task that names a ``handler``
instead of carrying an ``action`` closure is resolved here at execution
time and called with its payload, so the task description itself stays
plain data that can cross a process boundary.

Usage:
    handlers = HandlerRegistry()
    handlers.register("upload_photo", upload_photo)

    task = Task(id="photo-17", handler="upload_photo", payload={"path": "a.jpg"})
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Optional

from bgtasks.exceptions import DuplicateHandlerError, HandlerNotFoundError

Handler = Callable[[Mapping[str, Any]], Awaitable[Any]]


class HandlerRegistry:
    """
    Read/write store for task handlers.

    Writes normally happen at startup, before any task executes.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, Handler] = {}

    # ── Write ─────────────────────────────────────────────────────────────────

    def register(self, name: str, handler: Handler) -> None:
        """Register a handler. Raises DuplicateHandlerError on duplicate name."""
        if not name:
            raise ValueError("Handler name must be a non-empty string")
        if name in self._handlers:
            raise DuplicateHandlerError(
                f"Handler '{name}' is already registered. "
                f"Handler names must be unique."
            )
        self._handlers[name] = handler

    def unregister(self, name: str) -> bool:
        return self._handlers.pop(name, None) is not None

    # ── Read ──────────────────────────────────────────────────────────────────

    def get(self, name: str) -> Handler:
        """Return the handler. Raises HandlerNotFoundError if not found."""
        if name not in self._handlers:
            available = sorted(self._handlers.keys())
            raise HandlerNotFoundError(
                f"Handler '{name}' is not registered. "
                f"Available handlers: {available}"
            )
        return self._handlers[name]

    def get_or_none(self, name: str) -> Optional[Handler]:
        return self._handlers.get(name)

    def is_registered(self, name: str) -> bool:
        return name in self._handlers

    def names(self) -> list[str]:
        return sorted(self._handlers.keys())

    def __len__(self) -> int:
        return len(self._handlers)

    def __repr__(self) -> str:
        return f"<HandlerRegistry handlers={self.names()}>"
