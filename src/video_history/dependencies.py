"""Process-wide service wiring: one cache, remote client and channel pair per process."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Callable, Optional

from video_history.config import settings
from video_history.events import RefreshBus, ReprocessSignal
from video_history.history_store import HistoryStore
from video_history.models.history import Notice, UserContext
from video_history.recorder import HistoryRecorder
from video_history.storage.local_cache import LocalCache
from video_history.storage.slots import FileSlot
from video_history.tools.supabase_history import SupabaseHistoryStore


@lru_cache(maxsize=1)
def get_local_cache() -> LocalCache:
    slot = FileSlot(Path(settings.local_cache_dir).expanduser())
    return LocalCache(slot, key=settings.local_cache_key, max_entries=settings.local_cache_max_entries)


@lru_cache(maxsize=1)
def get_remote_store() -> SupabaseHistoryStore:
    """Return the Supabase client. Unconfigured, it reports every call as unavailable."""
    return SupabaseHistoryStore()


@lru_cache(maxsize=1)
def get_refresh_bus() -> RefreshBus:
    return RefreshBus()


@lru_cache(maxsize=1)
def get_reprocess_signal() -> ReprocessSignal:
    return ReprocessSignal()


def create_history_store(
    user: Optional[UserContext] = None,
    notify: Optional[Callable[[Notice], None]] = None,
) -> HistoryStore:
    """Build a HistoryStore on the process-wide services. Close it (or use ``async with``) when done."""
    return HistoryStore(
        user,
        remote=get_remote_store(),
        cache=get_local_cache(),
        refresh_bus=get_refresh_bus(),
        reprocess_signal=get_reprocess_signal(),
        notify=notify,
    )


def create_history_recorder() -> HistoryRecorder:
    return HistoryRecorder(
        remote=get_remote_store(),
        cache=get_local_cache(),
        refresh_bus=get_refresh_bus(),
    )
