"""SQLite-backed content cache with TTL expiry and a byte-budget LRU.

The cache is process-wide: open one ``ContentCache`` at startup, share it
with every request, and close it on shutdown. Entries are namespaced by
purpose (``content`` for scrape payloads, ``transcript`` for transcripts)
and fully replaced on write, so concurrent writers to the same key simply
race and the last write wins.

All ``ContentCache`` methods are synchronous; async callers go through
``asyncio.to_thread`` (see ``TranscriptCache``).
"""

import asyncio
import contextlib
import json
import logging
import sqlite3
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from url_normalize import url_normalize

from link_preview.errors import CacheUnavailable
from link_preview.models.transcript import CacheStatus, TranscriptSource

logger = logging.getLogger(__name__)

CONTENT_NAMESPACE = "content"
TRANSCRIPT_NAMESPACE = "transcript"

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS entries (
        namespace TEXT NOT NULL,
        key TEXT NOT NULL,
        value TEXT NOT NULL,
        expires_at REAL,
        size_bytes INTEGER NOT NULL,
        last_access REAL NOT NULL,
        PRIMARY KEY (namespace, key)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_entries_last_access ON entries (last_access)",
)


@dataclass
class CacheEntry:
    namespace: str
    key: str
    value: Any
    expires_at: float | None
    size_bytes: int
    last_access: float


@dataclass(frozen=True)
class CacheLookup:
    """Result of ``ContentCache.lookup``: a status plus the entry on a hit."""

    status: CacheStatus
    entry: CacheEntry | None = None

    @property
    def value(self) -> Any:
        return self.entry.value if self.entry else None


class ContentCache:
    """Key/value store with lazy TTL expiry and LRU eviction by total bytes.

    Args:
        path: SQLite database path, or ``":memory:"``.
        max_bytes: Byte budget for the sum of serialized values.
        clock: Returns the current time in seconds. Injectable for tests.

    Raises:
        CacheUnavailable: If the database cannot be opened.
    """

    def __init__(
        self,
        path: str | Path,
        max_bytes: int,
        clock: Callable[[], float] = time.time,
    ):
        self.max_bytes = max_bytes
        self._clock = clock
        self._lock = threading.Lock()
        db_path = str(path)
        try:
            if db_path != ":memory:":
                resolved = Path(db_path).expanduser()
                resolved.parent.mkdir(parents=True, exist_ok=True)
                db_path = str(resolved)
            self._conn = sqlite3.connect(db_path, check_same_thread=False)
            for statement in _SCHEMA:
                self._conn.execute(statement)
            self._conn.commit()
        except (sqlite3.Error, OSError) as exc:
            raise CacheUnavailable(f"Cannot open cache at {path}: {exc}") from exc
        self.path = db_path

    def __enter__(self) -> "ContentCache":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def get(self, namespace: str, key: str) -> Any | None:
        """Return the cached value, or None on a miss or an expired entry."""
        return self.lookup(namespace, key).value

    def lookup(self, namespace: str, key: str) -> CacheLookup:
        """Read an entry, deleting it if it has expired."""
        now = self._clock()
        with self._lock:
            try:
                row = self._conn.execute(
                    "SELECT value, expires_at, size_bytes FROM entries WHERE namespace = ? AND key = ?",
                    (namespace, key),
                ).fetchone()
                if row is None:
                    return CacheLookup(CacheStatus.MISS)
                raw, expires_at, size_bytes = row
                if expires_at is not None and expires_at <= now:
                    self._conn.execute(
                        "DELETE FROM entries WHERE namespace = ? AND key = ?", (namespace, key)
                    )
                    self._conn.commit()
                    return CacheLookup(CacheStatus.EXPIRED)
                self._conn.execute(
                    "UPDATE entries SET last_access = ? WHERE namespace = ? AND key = ?",
                    (now, namespace, key),
                )
                self._conn.commit()
            except sqlite3.Error as exc:
                raise CacheUnavailable(f"Cache read failed: {exc}") from exc

        entry = CacheEntry(
            namespace=namespace,
            key=key,
            value=json.loads(raw),
            expires_at=expires_at,
            size_bytes=size_bytes,
            last_access=now,
        )
        return CacheLookup(CacheStatus.HIT, entry)

    def set(self, namespace: str, key: str, value: Any, ttl_seconds: float | None) -> bool:
        """Store a JSON-serializable value, replacing any existing entry.

        Expired entries are purged first, then least-recently-used entries
        are evicted until the new value fits the byte budget. Values larger
        than the whole budget are not stored.

        Returns:
            True if the value was stored.
        """
        raw = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
        size = len(raw.encode("utf-8"))
        if size > self.max_bytes:
            logger.debug("Skipping cache write for %s/%s: %d bytes over budget", namespace, key, size)
            return False

        now = self._clock()
        expires_at = now + ttl_seconds if ttl_seconds is not None else None
        with self._lock:
            try:
                self._conn.execute(
                    "DELETE FROM entries WHERE namespace = ? AND key = ?", (namespace, key)
                )
                self._delete_expired(now)
                self._evict_lru(size)
                self._conn.execute(
                    "INSERT INTO entries (namespace, key, value, expires_at, size_bytes, last_access) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (namespace, key, raw, expires_at, size, now),
                )
                self._conn.commit()
            except sqlite3.Error as exc:
                with contextlib.suppress(sqlite3.Error):
                    self._conn.rollback()
                raise CacheUnavailable(f"Cache write failed: {exc}") from exc
        return True

    def delete(self, namespace: str, key: str) -> bool:
        with self._lock:
            try:
                cursor = self._conn.execute(
                    "DELETE FROM entries WHERE namespace = ? AND key = ?", (namespace, key)
                )
                self._conn.commit()
            except sqlite3.Error as exc:
                with contextlib.suppress(sqlite3.Error):
                    self._conn.rollback()
                raise CacheUnavailable(f"Cache delete failed: {exc}") from exc
        return cursor.rowcount > 0

    def sweep(self) -> int:
        """Delete every expired entry. Returns the number removed."""
        with self._lock:
            try:
                removed = self._delete_expired(self._clock())
                self._conn.commit()
            except sqlite3.Error as exc:
                with contextlib.suppress(sqlite3.Error):
                    self._conn.rollback()
                raise CacheUnavailable(f"Cache sweep failed: {exc}") from exc
        return removed

    def total_bytes(self) -> int:
        with self._lock:
            try:
                row = self._conn.execute("SELECT COALESCE(SUM(size_bytes), 0) FROM entries").fetchone()
            except sqlite3.Error as exc:
                raise CacheUnavailable(f"Cache read failed: {exc}") from exc
        return int(row[0])

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _delete_expired(self, now: float) -> int:
        cursor = self._conn.execute(
            "DELETE FROM entries WHERE expires_at IS NOT NULL AND expires_at <= ?", (now,)
        )
        return cursor.rowcount

    def _evict_lru(self, needed: int) -> None:
        total = self._conn.execute("SELECT COALESCE(SUM(size_bytes), 0) FROM entries").fetchone()[0]
        if total + needed <= self.max_bytes:
            return
        rows = self._conn.execute(
            "SELECT namespace, key, size_bytes FROM entries ORDER BY last_access ASC, rowid ASC"
        ).fetchall()
        for namespace, key, size_bytes in rows:
            if total + needed <= self.max_bytes:
                break
            self._conn.execute(
                "DELETE FROM entries WHERE namespace = ? AND key = ?", (namespace, key)
            )
            total -= size_bytes
            logger.debug("Evicted %s/%s (%d bytes)", namespace, key, size_bytes)


@dataclass(frozen=True)
class CachedTranscript:
    """A transcript cache read. ``content`` is set only on a hit."""

    status: CacheStatus
    content: str | None = None
    source: TranscriptSource | None = None
    metadata: dict[str, Any] | None = None


class TranscriptCache:
    """Async transcript store over the ``transcript`` namespace.

    Keys combine the normalized URL, the service name and a resource key
    (e.g. a video id). Storage errors degrade to ``CacheStatus.FALLBACK``.
    """

    def __init__(self, cache: ContentCache, ttl_seconds: float):
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def make_key(url: str, service: str, resource_key: str | None) -> str:
        return f"{url_normalize(url)}|{service}|{resource_key or ''}"

    async def get(self, url: str, service: str, resource_key: str | None) -> CachedTranscript:
        key = self.make_key(url, service, resource_key)
        try:
            lookup = await asyncio.to_thread(self.cache.lookup, TRANSCRIPT_NAMESPACE, key)
        except CacheUnavailable as exc:
            logger.warning("Transcript cache read failed for %s: %s", url, exc)
            return CachedTranscript(CacheStatus.FALLBACK)
        if lookup.status != CacheStatus.HIT:
            return CachedTranscript(lookup.status)

        value = lookup.value or {}
        source = value.get("source")
        return CachedTranscript(
            status=CacheStatus.HIT,
            content=value.get("content"),
            source=TranscriptSource(source) if source else None,
            metadata=value.get("metadata"),
        )

    async def set(
        self,
        url: str,
        service: str,
        resource_key: str | None,
        content: str,
        source: TranscriptSource,
        ttl_seconds: float | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Store a successful transcript. Returns False if the write failed."""
        key = self.make_key(url, service, resource_key)
        value = {"content": content, "source": source.value, "metadata": metadata}
        ttl = ttl_seconds if ttl_seconds is not None else self.ttl_seconds
        try:
            return await asyncio.to_thread(self.cache.set, TRANSCRIPT_NAMESPACE, key, value, ttl)
        except CacheUnavailable as exc:
            logger.warning("Transcript cache write failed for %s: %s", url, exc)
            return False
