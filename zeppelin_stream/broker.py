from __future__ import annotations

import asyncio
import logging
import threading
from itertools import count
from typing import Any, Dict, List, Union

from .models import encode_payload

logger = logging.getLogger("zeppelin.stream")

DEFAULT_SUBSCRIBER_QUEUE_SIZE = 64

_CLOSED = object()


class SubscriptionClosed(Exception):
    """Raised by ``Subscription.get`` once the subscription has been closed."""


class Subscription:
    """Bounded delivery queue for one observer session."""

    def __init__(self, subscriber_id: int, *, maxsize: int) -> None:
        self.id = subscriber_id
        self.maxsize = maxsize
        self.dropped = 0
        self._closed = False
        self._queue: "asyncio.Queue[Union[bytes, object]]" = asyncio.Queue(maxsize=maxsize + 1)

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    def offer(self, data: bytes) -> bool:
        """Enqueue without blocking; returns False when closed or full."""
        if self._closed:
            return False
        if self._queue.qsize() >= self.maxsize:
            self.dropped += 1
            return False
        self._queue.put_nowait(data)
        return True

    async def get(self) -> bytes:
        if self._closed and self._queue.empty():
            raise SubscriptionClosed(f"subscription {self.id} is closed")
        item = await self._queue.get()
        if item is _CLOSED:
            raise SubscriptionClosed(f"subscription {self.id} is closed")
        return item  # type: ignore[return-value]

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        # The extra slot reserved in __init__ always fits the sentinel.
        self._queue.put_nowait(_CLOSED)


class EventBroker:
    """Registry of observer subscriptions with best-effort, non-blocking fanout.

    Payloads are serialized once per broadcast. A subscription whose queue is
    full misses that payload; nothing blocks and nothing is retried. Queues
    are asyncio queues, so broadcast and the relay sessions share one loop.
    """

    def __init__(self, *, subscriber_queue_size: int = DEFAULT_SUBSCRIBER_QUEUE_SIZE) -> None:
        self._subscriber_queue_size = max(1, int(subscriber_queue_size))
        self._lock = threading.Lock()
        self._subscribers: Dict[int, Subscription] = {}
        self._ids = count(start=1)

    def subscribe(self) -> Subscription:
        subscription = Subscription(next(self._ids), maxsize=self._subscriber_queue_size)
        with self._lock:
            self._subscribers[subscription.id] = subscription
            total = len(self._subscribers)
        logger.info("SUBSCRIBER_ADDED id=%d total=%d", subscription.id, total)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            removed = self._subscribers.pop(subscription.id, None)
            total = len(self._subscribers)
        subscription.close()
        if removed is not None:
            logger.info(
                "SUBSCRIBER_REMOVED id=%d dropped=%d total=%d",
                subscription.id,
                subscription.dropped,
                total,
            )

    def broadcast(self, payload: Any) -> int:
        try:
            data = encode_payload(payload)
        except Exception as exc:
            logger.error("BROADCAST_ENCODE_FAILED error=%r", exc)
            return 0

        delivered = 0
        for subscription in self._snapshot_subscribers():
            if subscription.offer(data):
                delivered += 1
            elif not subscription.closed:
                logger.debug("SUBSCRIBER_SLOW id=%d dropped=%d", subscription.id, subscription.dropped)
        return delivered

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def close(self) -> None:
        with self._lock:
            subscriptions = list(self._subscribers.values())
            self._subscribers.clear()
        for subscription in subscriptions:
            subscription.close()
        if subscriptions:
            logger.info("BROKER_CLOSED subscribers=%d", len(subscriptions))

    def _snapshot_subscribers(self) -> List[Subscription]:
        with self._lock:
            return list(self._subscribers.values())
