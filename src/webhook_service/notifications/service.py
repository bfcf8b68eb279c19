"""Event bus — fan-out of domain events to in-process subscribers.

One input queue feeds many subscriber queues.  The engine registers a
relay subscriber that hands every event to the dispatcher; tests and
other consumers can add their own.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from webhook_service.notifications.events import DomainEvent

logger = logging.getLogger(__name__)

_INPUT_BUFFER = 1000


class EventBus:
    """Asyncio-based domain event fan-out.

    Usage::

        bus = EventBus()
        q = bus.add_subscriber("audit")
        await bus.start()
        await bus.publish(DomainEvent(tenant_id="t1", type="order.created"))
        event = await q.get()
        await bus.stop()
    """

    def __init__(self, *, buffer: int = _INPUT_BUFFER) -> None:
        self._input: asyncio.Queue[DomainEvent] = asyncio.Queue(maxsize=buffer)
        self._subscribers: dict[str, asyncio.Queue[DomainEvent]] = {}
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def add_subscriber(
        self, key: str, *, buffer: int = _INPUT_BUFFER
    ) -> asyncio.Queue[DomainEvent]:
        """Register a subscriber and return its output queue."""
        q: asyncio.Queue[DomainEvent] = asyncio.Queue(maxsize=buffer)
        self._subscribers[key] = q
        return q

    def remove_subscriber(self, key: str) -> None:
        self._subscribers.pop(key, None)

    async def publish(self, event: DomainEvent) -> bool:
        """Enqueue *event* for fan-out.  Returns False if it was dropped."""
        try:
            self._input.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                "Event bus input queue full, dropping %s for tenant %s",
                event.type,
                event.tenant_id,
            )
            return False
        return True

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._exchange())

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _exchange(self) -> None:
        """Read events from input and fan-out to all subscribers."""
        while self._running:
            try:
                event = await asyncio.wait_for(self._input.get(), timeout=1.0)
            except TimeoutError:
                continue
            for key, q in list(self._subscribers.items()):
                try:
                    q.put_nowait(event)
                except asyncio.QueueFull:
                    logger.warning("Subscriber %s queue full, dropping %s", key, event.type)


class EventRelay:
    """Consumes one bus subscription and calls *handler* for each event.

    Handler failures are logged; the relay keeps consuming.
    """

    def __init__(
        self,
        bus: EventBus,
        handler: Callable[[DomainEvent], Awaitable[object]],
        *,
        key: str = "dispatcher",
    ) -> None:
        self._bus = bus
        self._handler = handler
        self._key = key
        self._queue: asyncio.Queue[DomainEvent] | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None

    async def start(self) -> None:
        if self._task is not None:
            return
        self._queue = self._bus.add_subscriber(self._key)
        self._task = asyncio.create_task(self._consume())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._bus.remove_subscriber(self._key)
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        self._queue = None

    async def _consume(self) -> None:
        assert self._queue is not None
        while True:
            event = await self._queue.get()
            try:
                await self._handler(event)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(
                    "Relay %s failed for event %s (%s)", self._key, event.event_id, event.type
                )
