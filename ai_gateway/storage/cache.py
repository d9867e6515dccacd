"""
Content-addressed response cache.

Maps a fingerprint of the request to the response it produced. Entries are
immutable; storing under an existing fingerprint replaces the row. Eviction is
explicit: entries older than the TTL are treated as absent, and the oldest rows
are pruned once the entry cap is exceeded.

Cache failures never reach the caller: read errors count as a miss and write
errors are logged and dropped.
"""

import hashlib
import json
import sqlite3
from datetime import datetime, timedelta
from typing import Callable, Optional

import structlog

from .db import get_connection
from .models import CacheEntry, CachedResponse

logger = structlog.get_logger(__name__)

DEFAULT_CACHE_PATH = ".ai-gateway-cache.db"


def fingerprint(
    prompt: str,
    model: str,
    temperature: float,
    system: Optional[str],
    max_tokens: int
) -> str:
    """Deterministic SHA-256 over every request field that affects the output."""
    canonical = json.dumps(
        {
            "prompt": prompt,
            "model": model,
            "temperature": temperature,
            "system": system or "",
            "maxTokens": max_tokens,
        },
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class ResponseCache:
    """SQLite-backed store of previously observed responses."""

    def __init__(
        self,
        db_path: str = DEFAULT_CACHE_PATH,
        ttl_seconds: Optional[int] = 900,
        max_entries: Optional[int] = 1000,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.db_path = db_path
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._schema_ready = False

    def _connect(self) -> sqlite3.Connection:
        conn = get_connection(self.db_path)
        if not self._schema_ready:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS response_cache (
                    fingerprint TEXT PRIMARY KEY,
                    timestamp TEXT NOT NULL,
                    response TEXT NOT NULL
                )
            """)
            conn.commit()
            self._schema_ready = True
        return conn

    def _is_expired(self, timestamp: datetime) -> bool:
        if self.ttl_seconds is None:
            return False
        return self._clock() - timestamp > timedelta(seconds=self.ttl_seconds)

    def lookup(self, key: str) -> Optional[CacheEntry]:
        """Return the live entry for ``key``, or None on miss, expiry or read error."""
        try:
            conn = self._connect()
            try:
                row = conn.execute(
                    "SELECT timestamp, response FROM response_cache WHERE fingerprint = ?",
                    (key,)
                ).fetchone()
                if row is None:
                    return None
                timestamp = datetime.fromisoformat(row[0])
                if self._is_expired(timestamp):
                    conn.execute("DELETE FROM response_cache WHERE fingerprint = ?", (key,))
                    conn.commit()
                    return None
                response = CachedResponse.from_dict(json.loads(row[1]))
            finally:
                conn.close()
        except (sqlite3.Error, OSError, ValueError, KeyError, TypeError,
                AttributeError, ArithmeticError) as e:
            logger.error("response_cache_read_failed", fingerprint=key[:8], error=str(e))
            return None

        return CacheEntry(timestamp=timestamp, response=response, fingerprint=key)

    def store(self, key: str, entry: CacheEntry) -> bool:
        """Write ``entry`` under ``key``, replacing any previous entry.

        Returns:
            True if the entry was written, False if the write failed
        """
        try:
            conn = self._connect()
            try:
                conn.execute(
                    "INSERT OR REPLACE INTO response_cache (fingerprint, timestamp, response) "
                    "VALUES (?, ?, ?)",
                    (key, entry.timestamp.isoformat(), json.dumps(entry.response.to_dict()))
                )
                conn.commit()
            finally:
                conn.close()
        except (sqlite3.Error, OSError, TypeError, ValueError) as e:
            logger.error("response_cache_write_failed", fingerprint=key[:8], error=str(e))
            return False

        if self.max_entries is not None:
            self._enforce_cap()
        return True

    def _enforce_cap(self) -> None:
        try:
            conn = self._connect()
            try:
                conn.execute(
                    """
                    DELETE FROM response_cache WHERE fingerprint IN (
                        SELECT fingerprint FROM response_cache
                        ORDER BY timestamp DESC LIMIT -1 OFFSET ?
                    )
                    """,
                    (self.max_entries,)
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error("response_cache_write_failed", error=str(e))

    def prune(self) -> int:
        """Delete expired entries and entries beyond the cap.

        Returns:
            Number of entries removed
        """
        before = self.count()
        conn = self._connect()
        try:
            if self.ttl_seconds is not None:
                cutoff = self._clock() - timedelta(seconds=self.ttl_seconds)
                conn.execute(
                    "DELETE FROM response_cache WHERE timestamp < ?",
                    (cutoff.isoformat(),)
                )
                conn.commit()
        finally:
            conn.close()
        if self.max_entries is not None:
            self._enforce_cap()
        return before - self.count()

    def clear(self) -> int:
        conn = self._connect()
        try:
            cursor = conn.execute("DELETE FROM response_cache")
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    def count(self) -> int:
        conn = self._connect()
        try:
            return conn.execute("SELECT COUNT(*) FROM response_cache").fetchone()[0]
        finally:
            conn.close()

    def new_entry(self, response: CachedResponse) -> CacheEntry:
        return CacheEntry(timestamp=self._clock(), response=response)
