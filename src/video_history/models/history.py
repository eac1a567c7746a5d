"""Pydantic models for history entries and the contexts around them."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Reserved owner id for entries that live only in the local cache.
ANONYMOUS_USER_ID = "anonymous"


class HistoryEntry(BaseModel):
    """One previously processed video.

    Serialized with the camelCase keys the web client persists
    (``thumbnailUrl``, ``url``, ``timestamp``, ``user_id``); the Python field
    names are accepted on input as well.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        frozen=True,
        coerce_numbers_to_str=True,
    )

    id: str = Field(min_length=1)
    title: str = ""
    thumbnail_url: Optional[str] = Field(default=None, alias="thumbnailUrl")
    source_url: str = Field(default="", alias="url")
    captured_at: int = Field(default=0, alias="timestamp", description="Epoch milliseconds")
    language: str = ""
    owner_id: str = Field(default=ANONYMOUS_USER_ID, alias="user_id")

    @field_validator("thumbnail_url", mode="before")
    @classmethod
    def _blank_thumbnail_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def is_anonymous(self) -> bool:
        return self.owner_id == ANONYMOUS_USER_ID

    @property
    def has_thumbnail(self) -> bool:
        return self.thumbnail_url is not None

    @property
    def captured_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.captured_at / 1000, tz=timezone.utc)

    def can_open_externally(self, hosts: Iterable[str]) -> bool:
        """Return True when the source URL's host is one of ``hosts`` or a subdomain of one."""
        if not self.source_url:
            return False
        hostname = (urlparse(self.source_url).hostname or "").lower()
        if not hostname:
            return False
        for pattern in hosts:
            pattern = pattern.lower().lstrip(".")
            if hostname == pattern or hostname.endswith("." + pattern):
                return True
        return False

    def to_record(self) -> dict:
        """Serialize to the persisted (camelCase) shape."""
        return self.model_dump(by_alias=True)


class UserContext(BaseModel):
    """Who the history belongs to. A missing or blank id means anonymous."""

    model_config = ConfigDict(frozen=True)

    id: str = ANONYMOUS_USER_ID

    @field_validator("id", mode="before")
    @classmethod
    def _default_to_anonymous(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return ANONYMOUS_USER_ID
        return value

    @classmethod
    def anonymous(cls) -> UserContext:
        return cls(id=ANONYMOUS_USER_ID)

    @property
    def is_anonymous(self) -> bool:
        return self.id == ANONYMOUS_USER_ID


class ReprocessRequest(BaseModel):
    """Payload of a ``reprocess-requested`` event."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    source_url: str = Field(alias="sourceUrl")
    language: str = ""

    @classmethod
    def for_entry(cls, entry: HistoryEntry) -> ReprocessRequest:
        return cls(source_url=entry.source_url, language=entry.language)


class HistorySource(str, Enum):
    """Backend the current in-memory list was loaded from."""

    NONE = "none"
    REMOTE = "remote"
    LOCAL = "local"


@dataclass(frozen=True)
class Notice:
    """Transient user-facing message produced by a history operation."""

    title: str
    description: str
    variant: str = "default"  # "default" | "destructive"

    @property
    def is_error(self) -> bool:
        return self.variant == "destructive"


def unique_by_id(entries: Iterable[HistoryEntry]) -> list[HistoryEntry]:
    """Drop later duplicates by id, preserving order."""
    seen: set[str] = set()
    result: list[HistoryEntry] = []
    for entry in entries:
        if entry.id in seen:
            continue
        seen.add(entry.id)
        result.append(entry)
    return result
