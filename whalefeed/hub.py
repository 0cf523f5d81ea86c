"""
Distribution hub: fan-out of whale events to connected subscribers.

Every subscriber owns a bounded outbound queue. broadcast() only ever calls
put_nowait(), so the monitor is never blocked by a slow consumer; a
subscriber whose queue is full is dropped instead.

Message shapes:
  {"type": "initial_data", "data": [event, ...]}   first message, newest first
  {"type": "whale_transaction", "data": event}     one per detected whale

All methods must be called from the event loop thread. subscribe() takes the
store snapshot and registers the subscriber without awaiting in between, so
no broadcast can fall between the snapshot and the first live message.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any

from whalefeed.models import WhaleEvent
from whalefeed.store import EventStore

logger = logging.getLogger(__name__)

INITIAL_DATA = "initial_data"
WHALE_TRANSACTION = "whale_transaction"

DEFAULT_QUEUE_SIZE = 256

_CLOSED = object()


class Subscription:
    """Handle returned by DistributionHub.subscribe(); async-iterates messages."""

    def __init__(self, sub_id: int, queue_size: int) -> None:
        self.id = sub_id
        # +1 so the initial snapshot never counts against live capacity
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=queue_size + 1)
        self._closed = False
        self.dropped = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def get(self) -> dict[str, Any] | None:
        """Next message, or None once the subscription is closed."""
        if self._closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> dict[str, Any]:
        message = await self.get()
        if message is None:
            raise StopAsyncIteration
        return message

    def _offer(self, message: dict[str, Any]) -> bool:
        if self._closed:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Pending messages are forfeited; wake any reader with the sentinel.
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)


class DistributionHub:
    def __init__(self, store: EventStore, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self._store = store
        self._queue_size = queue_size
        self._subscribers: dict[int, Subscription] = {}
        self._ids = itertools.count(1)
        self.broadcast_count = 0
        self.dropped_count = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        subscription = Subscription(next(self._ids), self._queue_size)
        snapshot = [event.to_dict() for event in self._store.snapshot()]
        subscription._offer({"type": INITIAL_DATA, "data": snapshot})
        self._subscribers[subscription.id] = subscription
        logger.info(
            "Subscriber %d connected (%d total)", subscription.id, len(self._subscribers)
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Idempotent."""
        removed = self._subscribers.pop(subscription.id, None)
        subscription._close()
        if removed is not None:
            logger.info(
                "Subscriber %d disconnected (%d total)",
                subscription.id,
                len(self._subscribers),
            )

    def broadcast(self, event: WhaleEvent) -> int:
        """
        Queue `event` for every subscriber. Never blocks, never raises.

        Returns the number of subscribers the event was delivered to.
        """
        message = {"type": WHALE_TRANSACTION, "data": event.to_dict()}
        delivered = 0
        for subscription in list(self._subscribers.values()):
            if subscription._offer(message):
                delivered += 1
                continue
            logger.warning(
                "Subscriber %d outbound queue full (%d); dropping",
                subscription.id,
                self._queue_size,
            )
            subscription.dropped = True
            self.dropped_count += 1
            self.unsubscribe(subscription)
        self.broadcast_count += 1
        return delivered

    def close(self) -> None:
        """Disconnect every subscriber (shutdown)."""
        for subscription in list(self._subscribers.values()):
            self.unsubscribe(subscription)
