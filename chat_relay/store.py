"""Durable history backends.

The store only seeds the in-memory buffer at startup and records every
accepted message on the side. Nothing here may fail a publish: errors are
logged and the store degrades to "no persistence" or "empty seed".

Each operation opens its own connection, so concurrent writes from many
sessions never contend on a shared handle.
"""
import asyncio
import json
import sqlite3
from abc import ABC, abstractmethod
from typing import Optional

from loguru import logger
from pydantic import ValidationError
from redis.asyncio import from_url
from redis.exceptions import RedisError

from .metrics import STORE_WRITE_FAILURES
from .schemas import ChatMessage

REDIS_SCHEMES = ("redis://", "rediss://", "unix://")


class HistoryStore(ABC):
    """Append-only message log with per-record monotonic ids."""

    available = False

    def __init__(self):
        # keeps ids in submit order when writes overlap
        self._write_lock = asyncio.Lock()

    @abstractmethod
    async def initialize(self) -> bool:
        """Create the durable structure; False leaves the store unavailable."""

    @abstractmethod
    async def load_recent(self, limit: int) -> list[ChatMessage]:
        """Up to ``limit`` newest records, oldest first; empty on failure."""

    @abstractmethod
    async def insert(self, message: ChatMessage) -> None:
        """Append ``message``; failures are logged, never raised."""


class SqliteHistoryStore(HistoryStore):
    SCHEMA = """
        CREATE TABLE IF NOT EXISTS messages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user TEXT NOT NULL,
            text TEXT NOT NULL,
            ts INTEGER NOT NULL
        )
    """

    def __init__(self, path: str):
        super().__init__()
        self.path = path

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.path)

    def _init_sync(self) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute(self.SCHEMA)
        finally:
            conn.close()

    def _load_sync(self, limit: int) -> list[ChatMessage]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT user, text, ts FROM messages ORDER BY id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        finally:
            conn.close()
        items = [ChatMessage(user=u, text=t, ts=ts) for u, t, ts in rows]
        items.reverse()
        return items

    def _insert_sync(self, message: ChatMessage) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    "INSERT INTO messages (user, text, ts) VALUES (?, ?, ?)",
                    (message.user, message.text, message.ts),
                )
        finally:
            conn.close()

    async def initialize(self) -> bool:
        try:
            await asyncio.to_thread(self._init_sync)
        except (sqlite3.Error, OSError) as e:
            logger.error(f"store=sqlite path={self.path} event=init_failed reason='{e}'")
            self.available = False
        else:
            logger.info(f"store=sqlite path={self.path} event=ready")
            self.available = True
        return self.available

    async def load_recent(self, limit: int) -> list[ChatMessage]:
        if not self.available or limit < 1:
            return []
        try:
            return await asyncio.to_thread(self._load_sync, limit)
        except (sqlite3.Error, OSError, ValidationError) as e:
            logger.warning(f"store=sqlite event=load_failed reason='{e}'")
            return []

    async def insert(self, message: ChatMessage) -> None:
        if not self.available:
            return
        try:
            async with self._write_lock:
                await asyncio.to_thread(self._insert_sync, message)
        except (sqlite3.Error, OSError) as e:
            STORE_WRITE_FAILURES.inc()
            logger.warning(f"store=sqlite event=insert_failed reason='{e}'")


class RedisHistoryStore(HistoryStore):
    """Messages kept newest-first in a redis list, ids from a counter key."""

    def __init__(self, url: str, key: str = "chat:history"):
        super().__init__()
        self.url = url
        self.key = key
        self.seq_key = f"{key}:seq"

    def _client(self):
        return from_url(self.url, decode_responses=True)

    async def initialize(self) -> bool:
        client = self._client()
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            logger.error(f"store=redis event=init_failed reason='{e}'")
            self.available = False
        else:
            logger.info(f"store=redis key={self.key} event=ready")
            self.available = True
        finally:
            await client.aclose()
        return self.available

    async def load_recent(self, limit: int) -> list[ChatMessage]:
        if not self.available or limit < 1:
            return []
        client = self._client()
        try:
            raw = await client.lrange(self.key, 0, limit - 1)  # latest first
            items = [ChatMessage.model_validate_json(r) for r in raw]
        except (RedisError, OSError, ValidationError) as e:
            logger.warning(f"store=redis event=load_failed reason='{e}'")
            return []
        finally:
            await client.aclose()
        return items[::-1]

    async def insert(self, message: ChatMessage) -> None:
        if not self.available:
            return
        client = self._client()
        try:
            async with self._write_lock:
                record_id = await client.incr(self.seq_key)
                record = {"id": record_id, **message.model_dump()}
                await client.lpush(self.key, json.dumps(record))
        except (RedisError, OSError) as e:
            STORE_WRITE_FAILURES.inc()
            logger.warning(f"store=redis event=insert_failed reason='{e}'")
        finally:
            await client.aclose()


def create_store(location: Optional[str]) -> Optional[HistoryStore]:
    """Pick a backend for ``HISTORY_DB_PATH``; blank disables persistence."""
    location = (location or "").strip()
    if not location:
        return None
    if location.startswith(REDIS_SCHEMES):
        return RedisHistoryStore(location)
    return SqliteHistoryStore(location)
