"""History store: picks the authoritative backend and owns the in-memory list.

Load policy: authenticated users read the remote store and fall back to the
local cache when it is unreachable; anonymous users read the local cache only.
Writes (remove/clear) are confirmed-only: the in-memory list changes after the
backend acknowledges, never before.

Operations on one store are not serialized. Do not interleave ``clear`` with
in-flight ``remove`` calls and expect a specific outcome: the in-memory list
reflects whichever acknowledgment arrives last.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Iterable, Optional, Union

import structlog

from video_history.config import settings
from video_history.events import RefreshBus, ReprocessSignal, Unsubscribe
from video_history.exceptions import LocalCorrupt, RemoteUnavailable
from video_history.models.history import (
    ANONYMOUS_USER_ID,
    HistoryEntry,
    HistorySource,
    Notice,
    ReprocessRequest,
    UserContext,
    unique_by_id,
)
from video_history.storage.local_cache import LocalCache
from video_history.storage.remote import RemoteStore, StoreResult

logger = structlog.get_logger()

REMOVE_SUCCEEDED = Notice("Removed from History", "Video removed from your history")
REMOVE_FAILED = Notice("Error", "Failed to remove video from history", variant="destructive")
CLEAR_SUCCEEDED = Notice("History Cleared", "Your video history has been cleared")
CLEAR_FAILED = Notice("Error", "Failed to clear history", variant="destructive")


def reprocessing_notice(entry: HistoryEntry) -> Notice:
    return Notice("Reprocessing Video", f'Reprocessing "{entry.title}"')


class HistoryStore:
    """Per-view history state over a remote store and a local cache.

    Subscribes to the refresh bus on construction; ``close()`` (or leaving the
    ``async with`` block) unsubscribes and stops results from being applied.
    """

    def __init__(
        self,
        user: Optional[UserContext] = None,
        *,
        remote: RemoteStore,
        cache: LocalCache,
        refresh_bus: RefreshBus,
        reprocess_signal: Optional[ReprocessSignal] = None,
        notify: Optional[Callable[[Notice], None]] = None,
        trust_empty_remote: Optional[bool] = None,
        route_local_writes_to_cache: Optional[bool] = None,
        external_open_hosts: Optional[Iterable[str]] = None,
    ):
        self._user = user or UserContext.anonymous()
        self._remote = remote
        self._cache = cache
        self._reprocess_signal = reprocess_signal
        self._notify = notify
        self.trust_empty_remote = (
            settings.trust_empty_remote if trust_empty_remote is None else trust_empty_remote
        )
        self.route_local_writes_to_cache = (
            settings.route_local_writes_to_cache
            if route_local_writes_to_cache is None
            else route_local_writes_to_cache
        )
        self.external_open_hosts = list(
            settings.external_open_hosts if external_open_hosts is None else external_open_hosts
        )

        self._entries: list[HistoryEntry] = []
        self._source = HistorySource.NONE
        self._watchers: list[Callable[[list[HistoryEntry]], None]] = []
        self._closed = False

        # Loads are numbered on issue; a load older than the last applied one is dropped
        self._issued = 0
        self._applied = 0
        self._reload_task: Optional[asyncio.Task] = None
        self._reload_pending = False

        self._unsubscribe: Optional[Unsubscribe] = refresh_bus.subscribe(self._on_refresh)

    # -- lifecycle -------------------------------------------------------------

    async def __aenter__(self) -> HistoryStore:
        await self.load()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Unsubscribe from the refresh bus and stop applying results. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._reload_pending = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._watchers.clear()
        logger.debug("history_store.closed", user_id=self._user.id)

    @property
    def closed(self) -> bool:
        return self._closed

    # -- state -----------------------------------------------------------------

    @property
    def user(self) -> UserContext:
        return self._user

    @property
    def entries(self) -> list[HistoryEntry]:
        return list(self._entries)

    @property
    def source(self) -> HistorySource:
        return self._source

    def get(self, entry_id: str) -> Optional[HistoryEntry]:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def watch(self, callback: Callable[[list[HistoryEntry]], None]) -> Unsubscribe:
        """Call ``callback`` with the new list whenever the in-memory list is replaced."""
        self._watchers.append(callback)

        def unwatch() -> None:
            if callback in self._watchers:
                self._watchers.remove(callback)

        return unwatch

    def _set_entries(self, entries: list[HistoryEntry]) -> None:
        self._entries = entries
        snapshot = list(entries)
        for callback in list(self._watchers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("history_store.watcher_failed", user_id=self._user.id)

    # -- load ------------------------------------------------------------------

    async def load(self, user: Optional[UserContext] = None) -> list[HistoryEntry]:
        """Reload from the authoritative backend and return the resulting list.

        Never raises for backend failures. Passing a different ``user`` switches
        the store to that user and drops the previous user's list first.
        """
        if self._closed:
            return self.entries

        if user is not None and user != self._user:
            logger.info("history_store.user_changed", previous=self._user.id, user_id=user.id)
            self._user = user
            self._source = HistorySource.NONE
            self._set_entries([])

        self._issued += 1
        seq = self._issued
        current = self._user
        entries, source = await self._fetch(current)

        if self._closed:
            logger.debug("history_store.load.discarded", reason="closed", user_id=current.id)
            return self.entries
        if current != self._user or seq < self._applied:
            logger.debug("history_store.load.discarded", reason="stale", user_id=current.id)
            return self.entries

        self._applied = seq
        if entries is None:
            # Corrupt local payload: keep whatever is already shown
            return self.entries

        self._source = source
        self._set_entries(entries)
        logger.info(
            "history_store.loaded", user_id=current.id, source=source.value, count=len(entries)
        )
        return self.entries

    async def _fetch(self, user: UserContext) -> tuple[Optional[list[HistoryEntry]], HistorySource]:
        if user.is_anonymous:
            return self._read_local(user), HistorySource.LOCAL

        result = await _guarded(self._remote.fetch_by_user(user.id))
        if result.error is not None:
            logger.warning(
                "history_store.load.remote_failed", user_id=user.id, error=str(result.error)
            )
            return self._read_local(user), HistorySource.LOCAL

        data = unique_by_id(result.data or [])
        if data or self.trust_empty_remote:
            return data, HistorySource.REMOTE

        logger.info("history_store.load.remote_empty", user_id=user.id, fallback="local")
        return self._read_local(user), HistorySource.LOCAL

    def _read_local(self, user: UserContext) -> Optional[list[HistoryEntry]]:
        # The device cache is shared; show only anonymous entries and the user's own
        owners = _visible_owners(user)
        try:
            return [e for e in self._cache.read_checked() if e.owner_id in owners]
        except LocalCorrupt as e:
            logger.warning("history_store.load.local_corrupt", error=str(e))
            return None

    # -- refresh ---------------------------------------------------------------

    def _on_refresh(self) -> None:
        if self._closed:
            return
        if self._reload_task is not None and not self._reload_task.done():
            self._reload_pending = True
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("history_store.refresh.dropped", reason="no running event loop")
            return
        self._reload_task = loop.create_task(self._reload())

    async def _reload(self) -> None:
        while not self._closed:
            self._reload_pending = False
            try:
                await self.load()
            except Exception:
                logger.exception("history_store.refresh.failed", user_id=self._user.id)
            if not self._reload_pending:
                break

    async def wait_until_idle(self) -> None:
        """Wait for any refresh-triggered reload (and its coalesced follow-up) to finish."""
        task = self._reload_task
        if task is not None and not task.done():
            await asyncio.shield(task)

    # -- writes ----------------------------------------------------------------

    def _writes_target_local(self, user: UserContext) -> bool:
        if user.is_anonymous:
            return True
        return self.route_local_writes_to_cache and self._source == HistorySource.LOCAL

    async def remove(self, entry_id: str) -> bool:
        """Remove one entry. The list changes only after the backend confirms."""
        if self._closed:
            return False

        user = self._user
        if self._writes_target_local(user):
            ok = self._cache.remove(entry_id, owners=_visible_owners(user))
            target = HistorySource.LOCAL
        else:
            result = await _guarded(self._remote.remove_by_id(entry_id))
            ok = result.ok
            target = HistorySource.REMOTE

        if self._closed:
            return ok
        if not ok:
            logger.warning("history_store.remove.failed", entry_id=entry_id, target=target.value)
            self._emit_notice(REMOVE_FAILED)
            return False

        self._set_entries([e for e in self._entries if e.id != entry_id])
        logger.info("history_store.removed", entry_id=entry_id, target=target.value)
        self._emit_notice(REMOVE_SUCCEEDED)
        return True

    async def clear(self, user: Optional[UserContext] = None) -> bool:
        """Clear ``user``'s history (default: the store's user).

        The in-memory list is emptied only when the cleared user is the one
        this store is showing.
        """
        if self._closed:
            return False

        target_user = user or self._user
        if target_user.is_anonymous or (
            target_user == self._user and self._writes_target_local(target_user)
        ):
            ok = self._cache.clear_owners(_visible_owners(target_user))
            target = HistorySource.LOCAL
        else:
            result = await _guarded(self._remote.clear_by_user(target_user.id))
            ok = result.ok
            target = HistorySource.REMOTE

        if self._closed:
            return ok
        if not ok:
            logger.warning("history_store.clear.failed", user_id=target_user.id, target=target.value)
            self._emit_notice(CLEAR_FAILED)
            return False

        if target_user == self._user:
            self._set_entries([])
        logger.info("history_store.cleared", user_id=target_user.id, target=target.value)
        self._emit_notice(CLEAR_SUCCEEDED)
        return True

    # -- actions ---------------------------------------------------------------

    def reprocess(self, entry: Union[HistoryEntry, str]) -> Optional[ReprocessRequest]:
        """Ask the ingestion pipeline to process ``entry`` again.

        Fire-and-forget: emits one ``reprocess-requested`` event and an
        acknowledgment notice, without waiting for or tracking the outcome.
        """
        if isinstance(entry, str):
            found = self.get(entry)
            if found is None:
                logger.warning("history_store.reprocess.unknown_entry", entry_id=entry)
                return None
            entry = found

        request = ReprocessRequest.for_entry(entry)
        if self._reprocess_signal is not None:
            self._reprocess_signal.emit(request)
        else:
            logger.warning("history_store.reprocess.no_signal", entry_id=entry.id)
        self._emit_notice(reprocessing_notice(entry))
        return request

    def external_url(self, entry_id: str) -> Optional[str]:
        """Source URL of an entry if it may be opened externally, else None."""
        entry = self.get(entry_id)
        if entry is None or not entry.can_open_externally(self.external_open_hosts):
            return None
        return entry.source_url

    def _emit_notice(self, notice: Notice) -> None:
        if self._notify is None:
            return
        try:
            self._notify(notice)
        except Exception:
            logger.exception("history_store.notify_failed", title=notice.title)


def _visible_owners(user: UserContext) -> set[str]:
    return {ANONYMOUS_USER_ID, user.id}


async def _guarded(call: Awaitable[StoreResult]) -> StoreResult:
    """Await a remote call, turning a raised exception into a result error."""
    try:
        return await call
    except Exception as exc:
        logger.exception("history_store.remote_raised")
        return StoreResult(error=RemoteUnavailable(str(exc)))
