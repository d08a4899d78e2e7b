"""In-process event bus for task traffic.

Each connected client subscribes under its listener id and receives
events through its own queue. ``send`` delivers to one listener,
``broadcast`` to every listener except the excluded ones. Delivery is
at-most-once per subscription; events for absent listeners are dropped.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable
from typing import Any

import structlog
from pydantic import Field

from dqengine.models.common import DQEngineBase, UTCTimestamp, new_uuid7, utc_now

logger = structlog.get_logger(__name__)

PROGRESS_EVENT = "assessment-progress"
RESPONSE_EVENT = "agent-message"
COMPLETED_EVENT = "task-completed"


class EventMessage(DQEngineBase):
    """One event on the bus."""

    event_type: str
    event_id: str = Field(default_factory=lambda: str(new_uuid7()))
    source: str
    timestamp: UTCTimestamp = Field(default_factory=utc_now)
    data: dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return {"event": self.event_type, "data": self.data}


class Subscription:
    """A listener's inbox."""

    def __init__(self, bus: EventBus, listener_id: str) -> None:
        self.listener_id = listener_id
        self._bus = bus
        self._queue: asyncio.Queue[EventMessage | None] = asyncio.Queue()
        self.closed = False

    def deliver(self, event: EventMessage) -> None:
        if not self.closed:
            self._queue.put_nowait(event)

    async def get(self) -> EventMessage | None:
        """Next event, or None once the subscription is closed."""
        return await self._queue.get()

    async def events(self) -> AsyncIterator[EventMessage]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(None)
        self._bus.unsubscribe(self)


class EventBus:
    """Unicast / broadcast fan-out keyed by listener id."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[Subscription]] = {}

    def subscribe(self, listener_id: str) -> Subscription:
        subscription = Subscription(self, listener_id)
        self._subscriptions.setdefault(listener_id, []).append(subscription)
        logger.info("event_subscription_added", listener_id=listener_id)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subs = self._subscriptions.get(subscription.listener_id, [])
        if subscription in subs:
            subs.remove(subscription)
        if not subs:
            self._subscriptions.pop(subscription.listener_id, None)
        logger.info("event_subscription_removed", listener_id=subscription.listener_id)

    @property
    def listeners(self) -> list[str]:
        return list(self._subscriptions)

    def send(self, listener_id: str, event: EventMessage) -> int:
        """Deliver to one listener; returns the number of inboxes reached."""
        subs = list(self._subscriptions.get(listener_id, []))
        for sub in subs:
            sub.deliver(event)
        if not subs:
            logger.debug(
                "event_dropped", listener_id=listener_id, event_type=event.event_type,
            )
        return len(subs)

    def broadcast(
        self, event: EventMessage, *, exclude: Iterable[str] = (),
    ) -> int:
        """Deliver to every listener not in ``exclude``."""
        skipped = set(exclude)
        reached = 0
        for listener_id, subs in list(self._subscriptions.items()):
            if listener_id in skipped:
                continue
            for sub in subs:
                sub.deliver(event)
                reached += 1
        logger.info(
            "event_published", event_type=event.event_type, listeners=reached,
        )
        return reached
