"""
Local History Cache

Device-local fallback for the video history: a bounded, newest-first list of
entries kept as one JSON array under a single well-known slot key.
"""

from __future__ import annotations

import json
from typing import Iterable, List, Optional

import structlog
from pydantic import ValidationError

from video_history.exceptions import LocalCorrupt, LocalWriteFailed
from video_history.models.history import HistoryEntry, unique_by_id
from video_history.storage.slots import DurableSlot

logger = structlog.get_logger()


class LocalCache:
    """
    Synchronous, fail-closed history cache over a durable slot.

    Reads never raise: a missing, unparseable or wrongly shaped payload reads
    as an empty history. Writes are best-effort and report success as a bool.
    """

    DEFAULT_KEY = "videoHistory"
    MAX_ENTRIES = 50

    def __init__(self, slot: DurableSlot, key: str = DEFAULT_KEY, max_entries: int = MAX_ENTRIES):
        """
        Initialize the cache.

        Args:
            slot: Durable slot holding the serialized list.
            key: Slot key the list lives under.
            max_entries: Upper bound on persisted entries; older ones are dropped.
        """
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.slot = slot
        self.key = key
        self.max_entries = max_entries

    def read_checked(self) -> List[HistoryEntry]:
        """
        Read the persisted list, raising on a corrupt payload.

        Returns:
            Entries in stored order, duplicates by id dropped. An absent slot
            or an empty array reads as an empty list.

        Raises:
            LocalCorrupt: the payload is not a JSON array of history entries.
        """
        try:
            raw = self.slot.get_item(self.key)
        except (OSError, UnicodeDecodeError) as e:
            raise LocalCorrupt(f"Failed to read local history: {e}") from e
        if raw is None:
            return []

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise LocalCorrupt(f"Local history is not valid JSON: {e}") from e
        if not isinstance(payload, list):
            raise LocalCorrupt(f"Local history is a {type(payload).__name__}, expected a list")

        try:
            entries = [HistoryEntry.model_validate(item) for item in payload]
        except ValidationError as e:
            raise LocalCorrupt(f"Local history has malformed entries: {e}") from e
        return unique_by_id(entries)

    def read(self) -> List[HistoryEntry]:
        """Read the persisted list; any corruption reads as an empty history."""
        try:
            return self.read_checked()
        except LocalCorrupt as e:
            logger.warning("local_cache.read.corrupt", key=self.key, error=str(e))
            return []

    def write(self, entries: Iterable[HistoryEntry]) -> bool:
        """
        Persist ``entries``, keeping the first ``max_entries``.

        Returns:
            False when the slot rejected the write. Nothing is retried.
        """
        kept = unique_by_id(entries)[: self.max_entries]
        try:
            value = json.dumps([e.to_record() for e in kept])
            self.slot.set_item(self.key, value)
        except (TypeError, ValueError, LocalWriteFailed) as e:
            logger.warning("local_cache.write.failed", key=self.key, count=len(kept), error=str(e))
            return False
        return True

    def add(self, entry: HistoryEntry) -> bool:
        """Put ``entry`` at the front, replacing any entry with the same id."""
        entries = [e for e in self.read() if e.id != entry.id]
        return self.write([entry, *entries])

    def remove(self, entry_id: str, owners: Optional[Iterable[str]] = None) -> bool:
        """Remove an entry by id. Removing an id that is not cached succeeds.

        Args:
            entry_id: Id of the entry to drop.
            owners: When given, only an entry owned by one of these ids is removed.
        """
        allowed = None if owners is None else set(owners)
        entries = self.read()
        remaining = [
            e for e in entries if e.id != entry_id or (allowed is not None and e.owner_id not in allowed)
        ]
        if len(remaining) == len(entries):
            return True
        return self.write(remaining)

    def clear(self) -> bool:
        """Drop the whole persisted list."""
        try:
            self.slot.remove_item(self.key)
        except LocalWriteFailed as e:
            logger.warning("local_cache.clear.failed", key=self.key, error=str(e))
            return False
        return True


    def clear_owners(self, owners: Iterable[str]) -> bool:
        """Drop only the entries owned by one of ``owners``; other owners' entries stay cached."""
        owned = set(owners)
        entries = self.read()
        remaining = [e for e in entries if e.owner_id not in owned]
        if not remaining:
            return self.clear()
        if len(remaining) == len(entries):
            return True
        return self.write(remaining)
