from __future__ import annotations
import threading
from datetime import datetime, timedelta
from windscribe_port_sync.application.ports.cache_port import CachePort
from windscribe_port_sync.application.ports.clock_port import Clock, SystemClock

class InMemoryCache(CachePort):
    """Simple in-memory TTL cache for development and tests. Not persistent."""

    def __init__(self, namespace: str = "windscribe", *, clock: Clock | None = None) -> None:
        self._namespace = namespace
        self._clock = clock or SystemClock()
        self._entries: dict[str, tuple[str, datetime]] = {}
        # API readers run in the threadpool next to a sync
        self._mutex = threading.Lock()

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    def get(self, key: str) -> str | None:
        entry = self.get_with_expiry(key)
        return entry[0] if entry else None

    def get_with_expiry(self, key: str) -> tuple[str, datetime] | None:
        with self._mutex:
            entry = self._entries.get(self._key(key))
            if entry is None:
                return None
            if entry[1] <= self._clock.now():
                self._entries.pop(self._key(key), None)
                return None
            return entry

    def set(self, key: str, value: str, ttl: timedelta) -> None:
        with self._mutex:
            self._entries[self._key(key)] = (value, self._clock.now() + ttl)

    def delete(self, key: str) -> None:
        with self._mutex:
            self._entries.pop(self._key(key), None)
