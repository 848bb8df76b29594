import asyncio

import pytest

from chat_relay.config import Settings
from chat_relay.relay import ChatRelay
from chat_relay.schemas import ChatMessage
from chat_relay.store import HistoryStore, SqliteHistoryStore


class SlowStore(HistoryStore):
    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()
        self.saved = []

    async def initialize(self):
        self.available = True
        return True

    async def load_recent(self, limit):
        return []

    async def insert(self, message):
        await self.release.wait()
        self.saved.append(message)


def make_settings(**overrides):
    return Settings(**{"HISTORY_DB_PATH": "", **overrides})


@pytest.mark.asyncio
async def test_submit_appends_and_publishes():
    relay = ChatRelay(make_settings(MAX_HISTORY=2))
    sub = relay.hub.subscribe()
    for text in ("A", "B", "C"):
        await relay.submit(ChatMessage(user="alice", text=text, ts=1))

    assert [(await sub.get()).text for _ in range(3)] == ["A", "B", "C"]
    assert [m.text for m in relay.history.snapshot()] == ["B", "C"]


@pytest.mark.asyncio
async def test_publish_does_not_wait_for_store():
    store = SlowStore()
    relay = ChatRelay(make_settings(), store=store)
    await relay.start()
    sub = relay.hub.subscribe()

    await asyncio.wait_for(
        relay.submit(ChatMessage(user="alice", text="fast", ts=1)), 1
    )
    assert (await sub.get()).text == "fast"
    assert store.saved == []

    store.release.set()
    await relay.aclose()
    assert [m.text for m in store.saved] == ["fast"]


@pytest.mark.asyncio
async def test_start_seeds_history_from_store(tmp_path):
    path = str(tmp_path / "chat.db")
    seed_store = SqliteHistoryStore(path)
    await seed_store.initialize()
    for i in range(4):
        await seed_store.insert(ChatMessage(user="alice", text=str(i), ts=i))

    relay = ChatRelay.from_settings(make_settings(HISTORY_DB_PATH=path, MAX_HISTORY=3))
    await relay.start()
    assert [m.text for m in relay.history.snapshot()] == ["1", "2", "3"]


@pytest.mark.asyncio
async def test_start_without_usable_store(tmp_path):
    bad = str(tmp_path / "missing" / "chat.db")
    relay = ChatRelay.from_settings(make_settings(HISTORY_DB_PATH=bad))
    await relay.start()
    assert relay.store is None
    await relay.submit(ChatMessage(user="alice", text="still works", ts=1))
    assert len(relay.history) == 1


def test_blank_location_disables_store():
    relay = ChatRelay.from_settings(make_settings(HISTORY_DB_PATH="  "))
    assert relay.store is None
