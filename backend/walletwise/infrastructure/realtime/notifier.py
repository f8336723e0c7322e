"""
Subscription Notifier

The Webhook Activator depends only on the `SubscriptionNotifier` protocol.
`EventBroker` is the in-process implementation: each connected client gets
its own bounded queue, drained by the SSE route (api/routes/events.py).
"""

import asyncio
import logging
from collections import defaultdict
from functools import lru_cache
from typing import Any, AsyncIterator, Protocol


logger = logging.getLogger(__name__)

SUBSCRIPTION_UPDATED = "subscription:updated"


class SubscriptionNotifier(Protocol):
    """Anything that can push an event to a user's connected clients."""

    async def notify(self, user_id: str, event: str, payload: dict[str, Any]) -> None:
        ...


class EventBroker:
    """
    In-process pub/sub keyed by user id.

    Delivery is best-effort: a client whose queue is full drops the event
    rather than blocking the publisher.
    """

    def __init__(self, max_queue_size: int = 100):
        self._max_queue_size = max_queue_size
        self._subscribers: dict[str, set[asyncio.Queue]] = defaultdict(set)

    def subscriber_count(self, user_id: str) -> int:
        return len(self._subscribers.get(user_id, ()))

    async def notify(self, user_id: str, event: str, payload: dict[str, Any]) -> None:
        queues = list(self._subscribers.get(user_id, ()))
        for queue in queues:
            try:
                queue.put_nowait({"event": event, "data": payload})
            except asyncio.QueueFull:
                logger.warning(f"Dropping {event} for user {user_id}: client queue full")
        logger.debug(f"Published {event} to {len(queues)} client(s) of user {user_id}")

    async def subscribe(self, user_id: str) -> AsyncIterator[dict[str, Any]]:
        """Yield events for `user_id` until the consumer stops iterating."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers[user_id].add(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._subscribers[user_id].discard(queue)
            if not self._subscribers[user_id]:
                del self._subscribers[user_id]


@lru_cache
def get_event_broker() -> EventBroker:
    """Process-wide broker shared by the activator and the SSE route."""
    return EventBroker()
