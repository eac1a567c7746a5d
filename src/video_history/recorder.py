"""History recorder: writes a freshly processed video and signals a refresh."""

from __future__ import annotations

import structlog

from video_history.events import RefreshBus
from video_history.models.history import HistoryEntry, HistorySource
from video_history.storage.local_cache import LocalCache
from video_history.storage.remote import RemoteStore

logger = structlog.get_logger()


class HistoryRecorder:
    """Producer side of the history: called by the ingestion pipeline when a video finishes."""

    def __init__(self, *, remote: RemoteStore, cache: LocalCache, refresh_bus: RefreshBus):
        self._remote = remote
        self._cache = cache
        self._refresh_bus = refresh_bus

    async def record(self, entry: HistoryEntry) -> HistorySource:
        """Persist ``entry`` and publish a refresh.

        Anonymous entries go to the local cache only. Authenticated entries are
        upserted remotely; when that fails the entry is kept in the local cache
        so a degraded load still shows it (it is not replayed later).

        Returns:
            Where the entry ended up, or ``HistorySource.NONE`` if nowhere.
        """
        if entry.is_anonymous:
            stored = HistorySource.LOCAL if self._cache.add(entry) else HistorySource.NONE
        else:
            try:
                result = await self._remote.upsert(entry)
                error = result.error
            except Exception as exc:
                logger.exception("history_recorder.upsert_raised", entry_id=entry.id)
                error = exc
            if error is None:
                stored = HistorySource.REMOTE
            else:
                logger.warning(
                    "history_recorder.remote_failed",
                    entry_id=entry.id,
                    user_id=entry.owner_id,
                    error=str(error),
                )
                stored = HistorySource.LOCAL if self._cache.add(entry) else HistorySource.NONE

        if stored is HistorySource.NONE:
            logger.warning("history_recorder.not_stored", entry_id=entry.id)
            return stored

        logger.info("history_recorder.recorded", entry_id=entry.id, target=stored.value)
        self._refresh_bus.publish()
        return stored
