"""
cache/store.py -- SQLite-backed cache for rendered note listings.

Avoids a backend round trip every time the notes page is rendered. Entries are
keyed by (path, user_id) and hold the JSON rows of that user's listing with a
configurable TTL (default 5 minutes). Every successful note mutation calls
invalidate("/notes", user_id) so the next page load reads fresh data.

Usage:
    cache = ViewCache()
    rows = cache.get("/notes", user_id)        # returns list or None
    cache.set("/notes", user_id, rows)
    cache.invalidate("/notes", user_id)        # one user's view
    cache.invalidate("/notes")                 # every user's view of the path
    cache.purge_expired()                      # call periodically to trim old entries
"""

import json
import sqlite3
import time
from pathlib import Path
from typing import Optional, Union

_DEFAULT_DB = Path(__file__).parent / "notekeep_cache.db"
_DEFAULT_TTL = 60 * 5

_DDL = """
CREATE TABLE IF NOT EXISTS view_cache (
    path        TEXT NOT NULL,
    user_id     TEXT NOT NULL,
    data        TEXT NOT NULL,
    cached_at   REAL NOT NULL,
    PRIMARY KEY (path, user_id)
);
"""


class ViewCache:
    def __init__(self, db_path: Union[Path, str] = _DEFAULT_DB, ttl: int = _DEFAULT_TTL) -> None:
        self.ttl = ttl
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(_DDL)
        self._conn.commit()

    def get(self, path: str, user_id: str) -> Optional[list]:
        """Return the cached view for (path, user_id) if present and not expired."""
        row = self._conn.execute(
            "SELECT data, cached_at FROM view_cache WHERE path = ? AND user_id = ?",
            (path, user_id),
        ).fetchone()
        if row is None:
            return None
        data, cached_at = row
        if time.time() - cached_at > self.ttl:
            self.invalidate(path, user_id)
            return None
        return json.loads(data)

    def set(self, path: str, user_id: str, data: list) -> None:
        """Store data for (path, user_id), replacing any existing entry."""
        self._conn.execute(
            "INSERT OR REPLACE INTO view_cache (path, user_id, data, cached_at) VALUES (?, ?, ?, ?)",
            (path, user_id, json.dumps(data), time.time()),
        )
        self._conn.commit()

    def invalidate(self, path: str, user_id: Optional[str] = None) -> int:
        """Drop cached views of path. Returns number of rows removed."""
        if user_id is None:
            cursor = self._conn.execute("DELETE FROM view_cache WHERE path = ?", (path,))
        else:
            cursor = self._conn.execute(
                "DELETE FROM view_cache WHERE path = ? AND user_id = ?",
                (path, user_id),
            )
        self._conn.commit()
        return cursor.rowcount

    def purge_expired(self) -> int:
        """Delete all entries older than TTL. Returns number of rows removed."""
        cutoff = time.time() - self.ttl
        cursor = self._conn.execute("DELETE FROM view_cache WHERE cached_at < ?", (cutoff,))
        self._conn.commit()
        return cursor.rowcount

    def close(self) -> None:
        self._conn.close()
