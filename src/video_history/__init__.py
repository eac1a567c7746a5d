"""Recently processed video history backed by a remote store and a local cache."""

from video_history.events import RefreshBus, ReprocessSignal
from video_history.history_store import HistoryStore
from video_history.models.history import (
    ANONYMOUS_USER_ID,
    HistoryEntry,
    HistorySource,
    Notice,
    ReprocessRequest,
    UserContext,
)
from video_history.recorder import HistoryRecorder
from video_history.storage.local_cache import LocalCache
from video_history.storage.remote import RemoteStore, StoreResult

__all__ = [
    "ANONYMOUS_USER_ID",
    "HistoryEntry",
    "HistoryRecorder",
    "HistorySource",
    "HistoryStore",
    "LocalCache",
    "Notice",
    "RefreshBus",
    "RemoteStore",
    "ReprocessRequest",
    "ReprocessSignal",
    "StoreResult",
    "UserContext",
]
