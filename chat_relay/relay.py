import asyncio
from typing import Optional

from loguru import logger

from .config import Settings
from .history import HistoryBuffer
from .hub import BroadcastHub
from .metrics import PUBLISH_LATENCY
from .schemas import ChatMessage
from .security import OriginGuard
from .store import HistoryStore, create_store


class ChatRelay:
    """Process-wide chat state handed to every session.

    Owns the hub, the history buffer, the optional durable store and the
    origin allowlist. Built once per application; tests build their own.
    """

    def __init__(
        self,
        settings: Settings,
        store: Optional[HistoryStore] = None,
        origins: Optional[OriginGuard] = None,
    ):
        self.settings = settings
        self.hub = BroadcastHub(settings.HUB_CAPACITY)
        self.history = HistoryBuffer(settings.MAX_HISTORY)
        self.store = store
        self.origins = origins or OriginGuard.from_setting(settings.ALLOWED_ORIGINS)
        self._pending_writes: set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChatRelay":
        return cls(settings, store=create_store(settings.HISTORY_DB_PATH))

    async def start(self) -> None:
        if self.store is None:
            logger.info("store=none event=disabled reason=blank_location")
            return
        if not await self.store.initialize():
            # keep running without persistence
            self.store = None
            return
        seed = await self.store.load_recent(self.history.max_history)
        self.history.seed(seed)
        logger.info(f"event=seeded messages={len(seed)}")

    async def submit(self, message: ChatMessage) -> int:
        """Record ``message`` and fan it out; returns the subscriber count."""
        with PUBLISH_LATENCY.time():
            await self.history.append(message)
            if self.store is not None:
                self._persist(message)
            return self.hub.publish(message)

    def _persist(self, message: ChatMessage) -> None:
        task = asyncio.create_task(self.store.insert(message))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def flush(self) -> None:
        if self._pending_writes:
            await asyncio.gather(*self._pending_writes, return_exceptions=True)

    async def aclose(self) -> None:
        await self.flush()
