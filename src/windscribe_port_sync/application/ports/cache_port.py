from __future__ import annotations

from datetime import datetime, timedelta
from typing import Protocol


class CachePort(Protocol):
    """TTL key/value store shared by the session cookie and the forwarded port.

    Writes are last-writer-wins; callers serialize through their own locks.
    """

    def get(self, key: str) -> str | None:
        """Returns the live value for ``key`` or None when absent/expired."""
        ...

    def get_with_expiry(self, key: str) -> tuple[str, datetime] | None:
        """Returns (value, expires_at) for a live entry or None."""
        ...

    def set(self, key: str, value: str, ttl: timedelta) -> None: ...

    def delete(self, key: str) -> None: ...
