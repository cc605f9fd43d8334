"""
Audio Cache: bounded local storage for synthesized speech.

Entries are keyed by the first 100 characters of the spoken text plus the
voice ID. Two texts sharing a 100-character prefix and voice therefore share
an entry and the later request is served the earlier clip. That collision is
accepted for key-length parity with existing caches.

Eviction is least-recently-used with hysteresis: once an insert pushes the
total above the budget, the oldest entries are deleted until the total is
at or below 80% of the budget.

If the byte store is unavailable every operation degrades to a miss or
"not stored" so callers fall back to direct synthesis.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

from loguru import logger
from sqlalchemy import Engine, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError

from studyset.db.database import create_db_engine, init_db, make_session_factory, session_scope
from studyset.db.models import AudioCacheRow
from studyset.errors import StoreUnavailable

# =============================================================================
# Constants
# =============================================================================

CACHE_KEY_TEXT_LIMIT = 100
DEFAULT_CACHE_MB = 50
MAX_CACHE_MB = 100
EVICTION_TARGET_RATIO = 0.8
BYTES_PER_MB = 1024 * 1024


def get_cache_key(text: str, voice_id: str) -> str:
    """Cache key for a text/voice pair: text truncated to 100 chars, then the voice."""
    return f"{text[:CACHE_KEY_TEXT_LIMIT]}-{voice_id}"


# =============================================================================
# Byte Store
# =============================================================================


@dataclass(frozen=True)
class StoredAudio:
    """A cache entry as held by the byte store."""

    key: str
    blob: bytes
    size_bytes: int
    accessed_at: datetime


@dataclass(frozen=True)
class EntryInfo:
    """Entry metadata returned by a full scan (no blob)."""

    key: str
    size_bytes: int
    accessed_at: datetime


class AudioStore(Protocol):
    """
    Key-value byte store underlying the cache.

    Implementations raise StoreUnavailable when the backing storage
    cannot be reached.
    """

    def get_entry(self, key: str) -> StoredAudio | None: ...

    def put_entry(self, key: str, blob: bytes, size_bytes: int, accessed_at: datetime) -> None: ...

    def touch_entry(self, key: str, accessed_at: datetime) -> None:
        """Update an entry's access time without rewriting its bytes."""
        ...

    def delete_entry(self, key: str) -> None: ...

    def list_entries(self) -> list[EntryInfo]:
        """All entries ordered by accessed_at ascending (ties by key)."""
        ...

    def clear(self) -> None: ...


def _to_epoch(value: datetime) -> float:
    return value.timestamp()


def _from_epoch(value: float) -> datetime:
    return datetime.fromtimestamp(value, UTC)


class SqlAudioStore:
    """AudioStore backed by a SQLAlchemy engine (SQLite file by default)."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._sessions = make_session_factory(engine)
        try:
            init_db(engine)
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Audio cache database unavailable: {e}") from e

    @classmethod
    def from_url(cls, database_url: str) -> SqlAudioStore:
        try:
            engine = create_db_engine(database_url)
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailable(f"Audio cache database unavailable: {e}") from e
        return cls(engine)

    def get_entry(self, key: str) -> StoredAudio | None:
        try:
            with session_scope(self._sessions) as session:
                row = session.get(AudioCacheRow, key)
                if row is None:
                    return None
                return StoredAudio(
                    key=row.key,
                    blob=row.blob,
                    size_bytes=row.size,
                    accessed_at=_from_epoch(row.accessed_at),
                )
        except SQLAlchemyError as e:
            raise StoreUnavailable(str(e)) from e

    def put_entry(self, key: str, blob: bytes, size_bytes: int, accessed_at: datetime) -> None:
        try:
            with session_scope(self._sessions) as session:
                session.merge(
                    AudioCacheRow(
                        key=key,
                        blob=blob,
                        size=size_bytes,
                        accessed_at=_to_epoch(accessed_at),
                    )
                )
        except SQLAlchemyError as e:
            raise StoreUnavailable(str(e)) from e

    def touch_entry(self, key: str, accessed_at: datetime) -> None:
        try:
            with session_scope(self._sessions) as session:
                session.execute(
                    update(AudioCacheRow)
                    .where(AudioCacheRow.key == key)
                    .values(accessed_at=_to_epoch(accessed_at))
                )
        except SQLAlchemyError as e:
            raise StoreUnavailable(str(e)) from e

    def delete_entry(self, key: str) -> None:
        try:
            with session_scope(self._sessions) as session:
                session.execute(delete(AudioCacheRow).where(AudioCacheRow.key == key))
        except SQLAlchemyError as e:
            raise StoreUnavailable(str(e)) from e

    def list_entries(self) -> list[EntryInfo]:
        stmt = select(AudioCacheRow.key, AudioCacheRow.size, AudioCacheRow.accessed_at).order_by(
            AudioCacheRow.accessed_at.asc(), AudioCacheRow.key.asc()
        )
        try:
            with session_scope(self._sessions) as session:
                return [
                    EntryInfo(key=key, size_bytes=size or 0, accessed_at=_from_epoch(accessed))
                    for key, size, accessed in session.execute(stmt)
                ]
        except SQLAlchemyError as e:
            raise StoreUnavailable(str(e)) from e

    def total_size(self) -> int:
        try:
            with session_scope(self._sessions) as session:
                return session.scalar(select(func.coalesce(func.sum(AudioCacheRow.size), 0))) or 0
        except SQLAlchemyError as e:
            raise StoreUnavailable(str(e)) from e

    def clear(self) -> None:
        try:
            with session_scope(self._sessions) as session:
                session.execute(delete(AudioCacheRow))
        except SQLAlchemyError as e:
            raise StoreUnavailable(str(e)) from e


# =============================================================================
# Cache
# =============================================================================


@dataclass(frozen=True)
class CacheStats:
    entries: int
    total_bytes: int
    max_bytes: int

    @property
    def usage_percent(self) -> float:
        if self.max_bytes <= 0:
            return 0.0
        return round(self.total_bytes * 100.0 / self.max_bytes, 1)


class AudioCache:
    """
    LRU cache of synthesized speech on top of an AudioStore.

    Reads refresh recency, so `get` is not side-effect free. All operations
    are serialized with one re-entrant lock; a read racing a write or an
    eviction for the same key sees either the old or the new entry.
    """

    def __init__(
        self,
        store: AudioStore | None,
        max_size_mb: float = DEFAULT_CACHE_MB,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Args:
            store: Backing byte store (None disables the cache)
            max_size_mb: Default budget for put/evict
            clock: Time source for accessed_at
        """
        self.store = store
        self.max_size_mb = max_size_mb
        self.clock = clock or (lambda: datetime.now(UTC))
        self._lock = threading.RLock()

    @classmethod
    def open(cls, database_url: str, max_size_mb: float = DEFAULT_CACHE_MB) -> AudioCache:
        """Open a SQL-backed cache; an unreachable store yields a disabled cache."""
        try:
            store: AudioStore | None = SqlAudioStore.from_url(database_url)
        except StoreUnavailable as e:
            logger.warning(f"Audio cache not available, caching disabled: {e}")
            store = None
        return cls(store, max_size_mb=max_size_mb)

    @property
    def available(self) -> bool:
        return self.store is not None

    @staticmethod
    def max_bytes_for(max_size_mb: float) -> int:
        return int(max_size_mb * BYTES_PER_MB)

    def get(self, key: str) -> bytes | None:
        """Return the cached clip and mark it as recently used, or None on a miss."""
        if self.store is None:
            return None

        with self._lock:
            try:
                entry = self.store.get_entry(key)
                if entry is None:
                    logger.debug(f"TTS cache miss: {key[:40]!r}")
                    return None
                self.store.touch_entry(key, self.clock())
            except StoreUnavailable as e:
                logger.warning(f"Audio cache read failed, treating as miss: {e}")
                return None

        logger.debug(f"TTS cache hit: {key[:40]!r}")
        return entry.blob

    def put(self, key: str, blob: bytes, max_size_mb: float | None = None) -> bool:
        """
        Store a clip (overwriting any entry for key), then evict if over budget.

        Returns:
            True if the clip was stored
        """
        if self.store is None:
            return False

        with self._lock:
            try:
                self.store.put_entry(key, blob, len(blob), self.clock())
            except StoreUnavailable as e:
                logger.warning(f"Failed to cache audio: {e}")
                return False
            self.evict(max_size_mb)
        return True

    def evict(self, max_size_mb: float | None = None) -> list[str]:
        """
        Delete least-recently-used entries when the total exceeds the budget.

        Once triggered, eviction continues until the total is at or below
        80% of the budget.

        Returns:
            Keys of the evicted entries, oldest first
        """
        if self.store is None:
            return []

        max_bytes = self.max_bytes_for(self.max_size_mb if max_size_mb is None else max_size_mb)
        evicted: list[str] = []

        with self._lock:
            try:
                entries = self.store.list_entries()
                total = sum(entry.size_bytes for entry in entries)
                if total <= max_bytes:
                    return []

                target = max_bytes * EVICTION_TARGET_RATIO
                for entry in entries:
                    if total <= target:
                        break
                    self.store.delete_entry(entry.key)
                    total -= entry.size_bytes
                    evicted.append(entry.key)
            except StoreUnavailable as e:
                logger.warning(f"Audio cache eviction failed: {e}")
                return evicted

        logger.info(f"Evicted {len(evicted)} audio entries, {total} bytes remain (budget {max_bytes})")
        return evicted

    def clear(self) -> bool:
        """Drop every entry."""
        if self.store is None:
            return False
        with self._lock:
            try:
                self.store.clear()
            except StoreUnavailable as e:
                logger.warning(f"Failed to clear audio cache: {e}")
                return False
        logger.info("Audio cache cleared")
        return True

    def stats(self) -> CacheStats:
        max_bytes = self.max_bytes_for(self.max_size_mb)
        if self.store is None:
            return CacheStats(entries=0, total_bytes=0, max_bytes=max_bytes)
        with self._lock:
            try:
                entries = self.store.list_entries()
            except StoreUnavailable as e:
                logger.warning(f"Audio cache stats unavailable: {e}")
                entries = []
        return CacheStats(
            entries=len(entries),
            total_bytes=sum(entry.size_bytes for entry in entries),
            max_bytes=max_bytes,
        )
