"""Remote history store contract and an in-memory implementation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, Protocol, TypeVar

from video_history.exceptions import RemoteUnavailable
from video_history.models.history import HistoryEntry

T = TypeVar("T")


@dataclass(frozen=True)
class StoreResult(Generic[T]):
    """Outcome of a remote call. ``error`` is set instead of raising."""

    data: Optional[T] = None
    error: Optional[RemoteUnavailable] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RemoteStore(Protocol):
    """User-scoped durable history table.

    Implementations must report failures through ``StoreResult.error`` and
    must not conflate "no rows" with "unreachable".
    """

    async def fetch_by_user(self, user_id: str) -> StoreResult[list[HistoryEntry]]: ...

    async def remove_by_id(self, entry_id: str) -> StoreResult[None]: ...

    async def clear_by_user(self, user_id: str) -> StoreResult[None]: ...

    async def upsert(self, entry: HistoryEntry) -> StoreResult[None]: ...


class InMemoryRemoteStore:
    """In-memory remote store. Replace with a database-backed implementation in production."""

    def __init__(self, fetch_limit: int = 50):
        self._rows: dict[str, HistoryEntry] = {}
        self.fetch_limit = fetch_limit

    async def fetch_by_user(self, user_id: str) -> StoreResult[list[HistoryEntry]]:
        rows = [e for e in self._rows.values() if e.owner_id == user_id]
        rows.sort(key=lambda e: e.captured_at, reverse=True)
        return StoreResult(data=rows[: self.fetch_limit])

    async def remove_by_id(self, entry_id: str) -> StoreResult[None]:
        self._rows.pop(entry_id, None)
        return StoreResult()

    async def clear_by_user(self, user_id: str) -> StoreResult[None]:
        self._rows = {k: e for k, e in self._rows.items() if e.owner_id != user_id}
        return StoreResult()

    async def upsert(self, entry: HistoryEntry) -> StoreResult[None]:
        self._rows[entry.id] = entry
        return StoreResult()
