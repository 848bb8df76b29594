import asyncio
from collections import deque
from typing import Iterable

from .schemas import ChatMessage


class HistoryBuffer:
    """Most recent messages, oldest first, shared by every session.

    Snapshots are taken without awaiting, so on the event loop they always see
    either the state before or after an append. Appends serialize on a lock
    and only ever wait for other writers.
    """

    def __init__(self, max_history: int):
        if max_history < 1:
            raise ValueError("max_history must be at least 1")
        self._items: deque[ChatMessage] = deque(maxlen=max_history)
        self._write_lock = asyncio.Lock()

    @property
    def max_history(self) -> int:
        return self._items.maxlen

    def __len__(self) -> int:
        return len(self._items)

    def seed(self, messages: Iterable[ChatMessage]) -> None:
        # startup only, before any session exists
        self._items.extend(messages)

    def snapshot(self) -> tuple[ChatMessage, ...]:
        return tuple(self._items)

    def recent(self, limit: int) -> tuple[ChatMessage, ...]:
        items = self.snapshot()
        return items[-limit:] if limit > 0 else ()

    async def append(self, message: ChatMessage) -> None:
        async with self._write_lock:
            # deque(maxlen) evicts from the front
            self._items.append(message)
