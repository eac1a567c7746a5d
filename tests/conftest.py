"""Shared fixtures: an instrumented in-memory remote store and a memory-backed cache."""

import asyncio
from typing import Optional

import pytest

from video_history.events import RefreshBus, ReprocessSignal
from video_history.exceptions import RemoteUnavailable
from video_history.history_store import HistoryStore
from video_history.models.history import HistoryEntry, UserContext
from video_history.storage.local_cache import LocalCache
from video_history.storage.remote import InMemoryRemoteStore, StoreResult
from video_history.storage.slots import MemorySlot


class FakeRemoteStore(InMemoryRemoteStore):
    """In-memory remote store that records calls and can fail or stall on demand."""

    def __init__(self):
        super().__init__()
        self.calls: list[tuple[str, str]] = []
        self.failing: set[str] = set()
        self.gate: Optional[asyncio.Event] = None
        self.fetch_data: Optional[list[HistoryEntry]] = None

    def _error(self, op: str) -> Optional[StoreResult]:
        if op in self.failing:
            return StoreResult(error=RemoteUnavailable(f"{op} unavailable"))
        return None

    async def fetch_by_user(self, user_id):
        self.calls.append(("fetch_by_user", user_id))
        if self.gate is not None:
            await self.gate.wait()
        failed = self._error("fetch_by_user")
        if failed:
            return failed
        if self.fetch_data is not None:
            return StoreResult(data=list(self.fetch_data))
        return await super().fetch_by_user(user_id)

    async def remove_by_id(self, entry_id):
        self.calls.append(("remove_by_id", entry_id))
        return self._error("remove_by_id") or await super().remove_by_id(entry_id)

    async def clear_by_user(self, user_id):
        self.calls.append(("clear_by_user", user_id))
        return self._error("clear_by_user") or await super().clear_by_user(user_id)

    async def upsert(self, entry):
        self.calls.append(("upsert", entry.id))
        return self._error("upsert") or await super().upsert(entry)

    def ops(self) -> list[str]:
        return [op for op, _ in self.calls]


def make_entry(entry_id: str, owner: str = "user-1", captured_at: int = 1_700_000_000_000, **kwargs) -> HistoryEntry:
    data = {
        "id": entry_id,
        "title": f"Video {entry_id}",
        "thumbnail_url": f"https://i.ytimg.com/vi/{entry_id}/hqdefault.jpg",
        "source_url": f"https://www.youtube.com/watch?v={entry_id}",
        "captured_at": captured_at,
        "language": "en",
        "owner_id": owner,
    }
    data.update(kwargs)
    return HistoryEntry(**data)


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def slot():
    return MemorySlot()


@pytest.fixture
def cache(slot):
    return LocalCache(slot)


@pytest.fixture
def bus():
    return RefreshBus()


@pytest.fixture
def signal():
    return ReprocessSignal()


@pytest.fixture
def notices():
    return []


@pytest.fixture
def user():
    return UserContext(id="user-1")


@pytest.fixture
def make_store(remote, cache, bus, signal, notices):
    created = []

    def _make(user=None, **kwargs):
        store = HistoryStore(
            user,
            remote=remote,
            cache=cache,
            refresh_bus=bus,
            reprocess_signal=signal,
            notify=notices.append,
            **kwargs,
        )
        created.append(store)
        return store

    yield _make
    for store in created:
        store.close()


async def seed_remote(remote: FakeRemoteStore, *entries: HistoryEntry) -> None:
    for entry in entries:
        await remote.upsert(entry)
    remote.calls.clear()
