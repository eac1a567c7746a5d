"""Supabase-backed remote history store."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

import structlog
from supabase import Client, create_client

from video_history.config import settings
from video_history.exceptions import RemoteUnavailable
from video_history.models.history import HistoryEntry
from video_history.storage.remote import StoreResult

logger = structlog.get_logger()


class SupabaseHistoryStore:
    """History table access through the Supabase SDK.

    Rows use the same keys as the local cache payload
    (``id``, ``title``, ``thumbnailUrl``, ``url``, ``timestamp``, ``language``,
    ``user_id``). The SDK is synchronous, so every call runs in a worker thread.
    Any failure comes back as ``StoreResult.error``; nothing is raised.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        table: Optional[str] = None,
        fetch_limit: Optional[int] = None,
        client: Optional[Client] = None,
    ):
        self.url = settings.supabase_url if url is None else url
        self.key = settings.supabase_key if key is None else key
        self.table = table or settings.history_table
        self.fetch_limit = settings.history_fetch_limit if fetch_limit is None else fetch_limit
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None or bool(self.url)

    def _get_client(self) -> Client:
        if self._client is None:
            self._client = create_client(self.url, self.key)
        return self._client

    async def _call(self, op: str, fn: Callable[[Client], Any], **context) -> StoreResult:
        if not self.configured:
            logger.info("supabase.history.skipped", op=op, reason="supabase_url not configured")
            return StoreResult(error=RemoteUnavailable("Supabase is not configured"))
        try:
            data = await asyncio.to_thread(lambda: fn(self._get_client()))
        except Exception as exc:
            logger.warning("supabase.history.failed", op=op, error=str(exc), **context)
            return StoreResult(error=RemoteUnavailable(f"{op} failed: {exc}"))
        return StoreResult(data=data)

    # -- sync bodies (run in thread pool) ------------------------------------

    def _fetch_by_user_sync(self, client: Client, user_id: str) -> list[HistoryEntry]:
        response = (
            client.table(self.table)
            .select("*")
            .eq("user_id", user_id)
            .order("timestamp", desc=True)
            .limit(self.fetch_limit)
            .execute()
        )
        return [HistoryEntry.model_validate(row) for row in response.data or []]

    def _remove_by_id_sync(self, client: Client, entry_id: str) -> None:
        client.table(self.table).delete().eq("id", entry_id).execute()

    def _clear_by_user_sync(self, client: Client, user_id: str) -> None:
        client.table(self.table).delete().eq("user_id", user_id).execute()

    def _upsert_sync(self, client: Client, entry: HistoryEntry) -> None:
        client.table(self.table).upsert(entry.to_record(), on_conflict="id").execute()

    # -- RemoteStore -----------------------------------------------------------

    async def fetch_by_user(self, user_id: str) -> StoreResult[list[HistoryEntry]]:
        result = await self._call(
            "fetch_by_user", lambda c: self._fetch_by_user_sync(c, user_id), user_id=user_id
        )
        if result.ok:
            logger.info("supabase.history.fetched", user_id=user_id, count=len(result.data))
        return result

    async def remove_by_id(self, entry_id: str) -> StoreResult[None]:
        result = await self._call(
            "remove_by_id", lambda c: self._remove_by_id_sync(c, entry_id), entry_id=entry_id
        )
        if result.ok:
            logger.info("supabase.history.removed", entry_id=entry_id)
        return result

    async def clear_by_user(self, user_id: str) -> StoreResult[None]:
        result = await self._call(
            "clear_by_user", lambda c: self._clear_by_user_sync(c, user_id), user_id=user_id
        )
        if result.ok:
            logger.info("supabase.history.cleared", user_id=user_id)
        return result

    async def upsert(self, entry: HistoryEntry) -> StoreResult[None]:
        result = await self._call(
            "upsert", lambda c: self._upsert_sync(c, entry), entry_id=entry.id
        )
        if result.ok:
            logger.info("supabase.history.upserted", entry_id=entry.id, user_id=entry.owner_id)
        return result
