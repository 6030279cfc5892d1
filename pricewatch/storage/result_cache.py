# pricewatch/storage/result_cache.py

"""Time-boxed search result cache keyed by (query, marketplace)."""

import json
import logging
import sqlite3
import threading
import time
from collections.abc import Callable
from pathlib import Path

from pricewatch.config.settings import Settings
from pricewatch.errors import CacheError
from pricewatch.models.search_result import SearchResult

logger = logging.getLogger("pricewatch.cache")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS search_cache (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    search_query TEXT    NOT NULL,
    marketplace  TEXT    NOT NULL,
    results      TEXT    NOT NULL,
    result_count INTEGER NOT NULL,
    created_at   REAL    NOT NULL,
    expires_at   REAL    NOT NULL,
    UNIQUE (search_query, marketplace)
);

CREATE INDEX IF NOT EXISTS idx_search_cache_expiry
    ON search_cache(expires_at);
"""


def normalize_query(query: str) -> str:
    """Cache key form of a query: trimmed and lower-cased."""
    return query.strip().lower()


class ResultCache:
    """SQLite-backed cache of adapter search results.

    Entries live until an absolute expiry (insert time + TTL). Any
    storage failure is logged and reported as a miss so callers
    simply fall through to a live search.
    """

    def __init__(
        self,
        db_path: Path | str | None = None,
        ttl: float | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        path = db_path if db_path is not None else Settings.DB_PATH
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self.ttl: float = (
            Settings.SEARCH_CACHE_TTL if ttl is None else ttl
        )
        self._clock = clock or time.time
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(
            str(path), check_same_thread=False,
        )
        if str(path) != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)
        logger.debug("ResultCache opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    # ── Reads ────────────────────────────────────────────

    def _read(
        self, key: str, marketplace: str,
    ) -> list[SearchResult] | None:
        """Raw lookup; raises ``CacheError`` on storage problems."""
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT results FROM search_cache "
                    "WHERE search_query = ? AND marketplace = ? "
                    "AND expires_at > ?",
                    (key, marketplace, self._clock()),
                ).fetchone()
            if row is None:
                return None
            payload = json.loads(row[0])
            return [SearchResult.from_dict(item) for item in payload]
        except (sqlite3.Error, ValueError, TypeError) as exc:
            msg = f"Cache read failed for '{key}'/{marketplace}: {exc}"
            raise CacheError(msg) from exc

    def get(
        self, query: str, marketplace: str,
    ) -> list[SearchResult] | None:
        """Return cached results, or ``None`` on a miss."""
        key = normalize_query(query)
        try:
            results = self._read(key, marketplace)
        except CacheError as exc:
            logger.error("%s", exc, exc_info=True)
            return None
        if results is not None:
            logger.info(
                "Cache hit for '%s' on %s (%d results)",
                key,
                marketplace,
                len(results),
            )
        return results

    # ── Writes ───────────────────────────────────────────

    def put(
        self,
        query: str,
        marketplace: str,
        results: list[SearchResult],
        ttl: float | None = None,
    ) -> None:
        """Replace the entry for (query, marketplace) with ``results``."""
        key = normalize_query(query)
        now = self._clock()
        expires_at = now + (self.ttl if ttl is None else ttl)
        payload = json.dumps([r.to_dict() for r in results])
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    "DELETE FROM search_cache "
                    "WHERE search_query = ? AND marketplace = ?",
                    (key, marketplace),
                )
                self._conn.execute(
                    "INSERT INTO search_cache "
                    "(search_query, marketplace, results, "
                    " result_count, created_at, expires_at) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (key, marketplace, payload, len(results), now, expires_at),
                )
        except sqlite3.Error as exc:
            logger.error(
                "Cache write failed for '%s'/%s: %s",
                key,
                marketplace,
                exc,
                exc_info=True,
            )
            return
        logger.info(
            "Cached %d results for '%s' on %s",
            len(results),
            key,
            marketplace,
        )

    def evict_expired(self) -> int:
        """Delete every entry whose expiry has passed.

        Returns the number of entries removed.
        """
        try:
            with self._lock, self._conn:
                cur = self._conn.execute(
                    "DELETE FROM search_cache WHERE expires_at < ?",
                    (self._clock(),),
                )
                removed = cur.rowcount
        except sqlite3.Error as exc:
            logger.error(
                "Cache sweep failed: %s", exc, exc_info=True,
            )
            return 0
        if removed:
            logger.info("Evicted %d expired cache entries", removed)
        return removed

    def clear(self) -> int:
        """Purge all cached entries.

        Returns the number of entries that were removed.
        """
        try:
            with self._lock, self._conn:
                removed = self._conn.execute(
                    "DELETE FROM search_cache"
                ).rowcount
        except sqlite3.Error as exc:
            logger.error("Cache purge failed: %s", exc, exc_info=True)
            return 0
        logger.info("Cache manually purged (%d entries removed)", removed)
        return removed

    def __len__(self) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM search_cache"
            ).fetchone()
        return int(row[0])
