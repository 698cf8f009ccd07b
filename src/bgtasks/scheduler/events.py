"""
scheduler/events.py — Event Channel

Ordered, multi-subscriber publish/subscribe for SchedulerEvent objects.

Design
------
* publish() is synchronous and fans out to subscribers in subscription
  order, so events from one publisher arrive in the order they were emitted.
* Every Subscription owns a bounded buffer. When the buffer is full the
  overflow policy decides which event is lost:
      drop_oldest  — evict the oldest buffered event (default)
      drop_newest  — discard the incoming event
  The publisher is never blocked and never sees an exception.
* close() on the channel ends every subscription; async iteration over a
  closed subscription stops once its buffer is drained.

Usage::

    channel = EventChannel(buffer_size=256)
    with channel.subscribe() as sub:
        ...
        for event in sub.drain():
            print(event.type)

    async for event in channel.subscribe():
        ...
"""

from __future__ import annotations

import asyncio
from collections import deque
from enum import Enum
from typing import AsyncIterator, Optional

from bgtasks.observability.logger import get_logger
from bgtasks.scheduler.types import SchedulerEvent

log = get_logger(__name__)


class OverflowPolicy(str, Enum):
    DROP_OLDEST = "drop_oldest"
    DROP_NEWEST = "drop_newest"


class Subscription:
    """One subscriber's bounded view of the channel."""

    def __init__(
        self,
        channel: "EventChannel",
        maxsize: int,
        overflow: OverflowPolicy,
    ) -> None:
        if maxsize < 1:
            raise ValueError("Subscription maxsize must be >= 1")
        self._channel = channel
        self._buffer: deque[SchedulerEvent] = deque()
        self._maxsize = maxsize
        self._overflow = overflow
        self._waiter: Optional[asyncio.Event] = None
        self._closed = False
        self.dropped = 0

    # ── Delivery (called by EventChannel) ─────────────────────────────────────

    def _deliver(self, event: SchedulerEvent) -> None:
        if self._closed:
            return
        if len(self._buffer) >= self._maxsize:
            self.dropped += 1
            if self._overflow == OverflowPolicy.DROP_NEWEST:
                return
            self._buffer.popleft()
        self._buffer.append(event)
        self._wake()

    def _wake(self) -> None:
        if self._waiter is not None:
            self._waiter.set()

    # ── Consumer API ──────────────────────────────────────────────────────────

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def maxsize(self) -> int:
        return self._maxsize

    def __len__(self) -> int:
        return len(self._buffer)

    def get_nowait(self) -> SchedulerEvent:
        """Pop the oldest buffered event. Raises asyncio.QueueEmpty if none."""
        if not self._buffer:
            raise asyncio.QueueEmpty
        return self._buffer.popleft()

    def drain(self) -> list[SchedulerEvent]:
        """Pop and return every buffered event, oldest first."""
        events = list(self._buffer)
        self._buffer.clear()
        return events

    async def get(self) -> SchedulerEvent:
        """
        Wait for the next event.

        Raises StopAsyncIteration once the subscription is closed and empty.
        """
        while not self._buffer:
            if self._closed:
                raise StopAsyncIteration
            if self._waiter is None:
                self._waiter = asyncio.Event()
            self._waiter.clear()
            await self._waiter.wait()
        return self._buffer.popleft()

    def __aiter__(self) -> AsyncIterator[SchedulerEvent]:
        return self

    async def __anext__(self) -> SchedulerEvent:
        return await self.get()

    def close(self) -> None:
        """Unsubscribe. Already-buffered events stay readable."""
        if self._closed:
            return
        self._closed = True
        self._channel._remove(self)
        self._wake()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class EventChannel:
    """
    Publish/subscribe channel shared by the scheduler facade and sync queue.

    Not thread-safe: publish and subscribe from the event loop thread only.
    """

    def __init__(
        self,
        buffer_size: int = 256,
        overflow: OverflowPolicy | str = OverflowPolicy.DROP_OLDEST,
    ) -> None:
        if buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")
        self._buffer_size = buffer_size
        self._overflow = OverflowPolicy(overflow)
        self._subscribers: list[Subscription] = []
        self._closed = False

    @classmethod
    def from_settings(cls, settings) -> "EventChannel":
        return cls(
            buffer_size=settings.events.buffer_size,
            overflow=settings.events.overflow,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(
        self,
        maxsize: Optional[int] = None,
        overflow: OverflowPolicy | str | None = None,
    ) -> Subscription:
        """Create a subscription. Subscribing to a closed channel yields a closed one."""
        sub = Subscription(
            self,
            maxsize=self._buffer_size if maxsize is None else maxsize,
            overflow=OverflowPolicy(overflow) if overflow else self._overflow,
        )
        if self._closed:
            sub._closed = True
            return sub
        self._subscribers.append(sub)
        return sub

    def publish(self, event: SchedulerEvent) -> None:
        if self._closed:
            log.debug("events.publish_after_close", type=event.type.value, task_id=event.task_id)
            return
        for sub in list(self._subscribers):
            before = sub.dropped
            sub._deliver(event)
            if sub.dropped != before:
                log.warning(
                    "events.subscriber_overflow",
                    type=event.type.value,
                    dropped_total=sub.dropped,
                    policy=sub._overflow.value,
                )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for sub in list(self._subscribers):
            sub.close()
        self._subscribers.clear()

    def _remove(self, sub: Subscription) -> None:
        try:
            self._subscribers.remove(sub)
        except ValueError:
            pass
