"""
Persistent per-source article caches.

Each adapter owns one key in a `CacheStore` and writes a whole `CacheEntry`
there after every successful live fetch. Entries are never patched in place.
Concurrent writers to the same key resolve last-write-wins; no locking.
"""

import asyncio
import json
import re
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Protocol

import structlog
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
)

from article_feed.errors import CacheError
from article_feed.models.domain import Article, ensure_utc

logger = structlog.get_logger(__name__)


class CacheStore(Protocol):
    """Async string key-value store."""

    async def get_item(self, key: str) -> Optional[str]: ...

    async def set_item(self, key: str, value: str) -> None: ...

    async def remove_item(self, key: str) -> None: ...


class MemoryCacheStore:
    """In-process store; contents vanish with the process."""

    def __init__(self):
        self._items: dict[str, str] = {}

    async def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    async def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._items)


class FileCacheStore:
    """
    One JSON file per key under a directory.

    Blocking file I/O runs in a worker thread so the event loop keeps serving
    the other adapters' requests.
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", key)
        return self.directory / f"{safe}.json"

    async def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return await asyncio.to_thread(self._read, path)
        except OSError as e:
            raise CacheError(f"Failed to read {path}: {e}") from e

    async def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            await asyncio.to_thread(self._write, path, value)
        except OSError as e:
            raise CacheError(f"Failed to write {path}: {e}") from e

    async def remove_item(self, key: str) -> None:
        path = self._path(key)
        try:
            await asyncio.to_thread(path.unlink, True)
        except OSError as e:
            raise CacheError(f"Failed to remove {path}: {e}") from e

    @staticmethod
    def _read(path: Path) -> Optional[str]:
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    @staticmethod
    def _write(path: Path, value: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        # Write-then-rename so a crash never leaves half a file behind
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)


class CacheEntry(BaseModel):
    """
    Serialized shape: {articles, lastFetchedAt, expiresAt, version}.

    Both timestamps are written as epoch milliseconds. ISO strings are still
    accepted on read, and naive values are taken to be UTC.
    """

    model_config = ConfigDict(populate_by_name=True)

    articles: list[Article]
    last_fetched_at: datetime = Field(alias="lastFetchedAt")
    expires_at: datetime = Field(alias="expiresAt")
    version: int

    @field_validator("last_fetched_at", "expires_at", mode="before")
    @classmethod
    def from_epoch_ms(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            try:
                return datetime.fromtimestamp(v / 1000, tz=timezone.utc)
            except (OverflowError, OSError) as e:
                raise ValueError(f"Timestamp out of range: {v}") from e
        return v

    @field_validator("last_fetched_at", "expires_at")
    @classmethod
    def timestamps_as_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @field_serializer("last_fetched_at", "expires_at")
    def to_epoch_ms(self, v: datetime) -> int:
        return int(v.timestamp() * 1000)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class InvalidReason(str, Enum):
    EMPTY = "empty"
    VERSION_MISMATCH = "version_mismatch"
    EXPIRED = "expired"
    CORRUPTED = "corrupted"


class CacheValidation(BaseModel):
    is_valid: bool
    reason: Optional[InvalidReason] = None


def parse_cache_entry(raw: Optional[str]) -> tuple[Optional[CacheEntry], Optional[InvalidReason]]:
    """
    Decode a stored entry.

    Returns (entry, None) on success, (None, EMPTY) when nothing is stored and
    (None, CORRUPTED) when the payload does not decode.
    """
    if raw is None:
        return None, InvalidReason.EMPTY
    try:
        return CacheEntry.model_validate_json(raw), None
    except (ValidationError, json.JSONDecodeError, ValueError) as e:
        logger.warning("Cache entry failed to decode", error=str(e))
        return None, InvalidReason.CORRUPTED


def validate_cache(
    entry: Optional[CacheEntry],
    version: int,
    now: Optional[datetime] = None,
) -> CacheValidation:
    """Check structure, schema version and freshness of an entry."""
    if entry is None:
        return CacheValidation(is_valid=False, reason=InvalidReason.EMPTY)

    if entry.version != version:
        return CacheValidation(is_valid=False, reason=InvalidReason.VERSION_MISMATCH)

    now = ensure_utc(now) or datetime.now(timezone.utc)
    if now > entry.expires_at:
        return CacheValidation(is_valid=False, reason=InvalidReason.EXPIRED)

    if not entry.articles:
        return CacheValidation(is_valid=False, reason=InvalidReason.CORRUPTED)

    first = entry.articles[0]
    if not first.id or not first.title:
        return CacheValidation(is_valid=False, reason=InvalidReason.CORRUPTED)

    return CacheValidation(is_valid=True)


def create_cache_store(backend: str, directory: str) -> CacheStore:
    """Build the store named in settings."""
    if backend == "memory":
        return MemoryCacheStore()
    return FileCacheStore(directory)
