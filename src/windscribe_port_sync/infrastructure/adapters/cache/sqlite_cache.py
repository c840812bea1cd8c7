from __future__ import annotations

import sqlite3
import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path

from windscribe_port_sync.application.ports.cache_port import CachePort
from windscribe_port_sync.application.ports.clock_port import Clock, SystemClock

SCHEMA = """
CREATE TABLE IF NOT EXISTS cache (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL,
  expires_at TEXT NOT NULL
);
"""


class SQLiteCache(CachePort):
    """SQLite-backed TTL cache. Keeps the session cookie and port across restarts.

    File path configurable; creates schema on first use. Expired rows are
    dropped lazily on read.
    """

    def __init__(
        self,
        db_path: str = ".windscribe_cache.sqlite",
        *,
        namespace: str = "windscribe",
        clock: Clock | None = None,
    ) -> None:
        self._path = Path(db_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._namespace = namespace
        self._clock = clock or SystemClock()
        # The API serves requests from a worker thread pool
        self._mutex = threading.Lock()
        self._conn = sqlite3.connect(self._path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.executescript(SCHEMA)
        self._conn.commit()

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    def get(self, key: str) -> str | None:
        entry = self.get_with_expiry(key)
        return entry[0] if entry else None

    def get_with_expiry(self, key: str) -> tuple[str, datetime] | None:
        with self._mutex:
            row = self._conn.execute(
                "SELECT value, expires_at FROM cache WHERE key=?", (self._key(key),)
            ).fetchone()
            if not row:
                return None
            value, expires_iso = row
            expires = datetime.fromisoformat(expires_iso)
            if expires.tzinfo is None:
                expires = expires.replace(tzinfo=UTC)
            if expires <= self._clock.now():
                self._conn.execute("DELETE FROM cache WHERE key=?", (self._key(key),))
                self._conn.commit()
                return None
            return value, expires

    def set(self, key: str, value: str, ttl: timedelta) -> None:
        expires_iso = (self._clock.now() + ttl).astimezone(UTC).isoformat()
        with self._mutex:
            self._conn.execute(
                "INSERT INTO cache (key, value, expires_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value, expires_at=excluded.expires_at",
                (self._key(key), value, expires_iso),
            )
            self._conn.commit()

    def delete(self, key: str) -> None:
        with self._mutex:
            self._conn.execute("DELETE FROM cache WHERE key=?", (self._key(key),))
            self._conn.commit()

    def close(self) -> None:
        self._conn.close()
