import asyncio

from loguru import logger

from .metrics import MSGS_DROPPED, MSGS_PUBLISHED
from .schemas import ChatMessage


class Subscription:
    """One consumer's bounded queue on the hub.

    When the queue is full the oldest unread message is discarded, so a slow
    reader sees a gap instead of stalling the publisher.
    """

    def __init__(self, hub: "BroadcastHub", capacity: int):
        self._hub = hub
        self._queue: asyncio.Queue[ChatMessage] = asyncio.Queue(maxsize=capacity)
        self.dropped = 0
        self.closed = False

    def _offer(self, message: ChatMessage) -> None:
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            self._queue.get_nowait()
            self.dropped += 1
            MSGS_DROPPED.inc()
            self._queue.put_nowait(message)

    def pending(self) -> int:
        return self._queue.qsize()

    async def get(self) -> ChatMessage:
        return await self._queue.get()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._hub._unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChatMessage:
        if self.closed:
            raise StopAsyncIteration
        return await self.get()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class BroadcastHub:
    """Single-topic fan-out. Publishing never awaits a consumer."""

    def __init__(self, capacity: int = 256):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._subscribers: set[Subscription] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        sub = Subscription(self, self.capacity)
        self._subscribers.add(sub)
        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        self._subscribers.discard(sub)

    def publish(self, message: ChatMessage) -> int:
        """Queue ``message`` for every current subscriber; returns how many."""
        subscribers = list(self._subscribers)
        for sub in subscribers:
            before = sub.dropped
            sub._offer(message)
            if sub.dropped != before:
                logger.debug(
                    f"event=lag dropped={sub.dropped} reason=subscriber_queue_full"
                )
        MSGS_PUBLISHED.inc()
        return len(subscribers)
