"""In-memory TTL cache implementing CachePort."""

import time
from collections.abc import Callable


class InMemoryCache:
    """Dict-backed string cache with per-entry expiry.

    Args:
        clock: Time source in unix seconds, injectable for tests.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._entries: dict[str, tuple[str, float | None]] = {}
        self._clock = clock

    async def read(self, key: str) -> str | None:
        """Return the cached value, or None when missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def write(self, key: str, value: str, ttl: float | None = None) -> None:
        """Store value under key for ttl seconds (None keeps it forever)."""
        expires_at = self._clock() + ttl if ttl is not None else None
        self._entries[key] = (value, expires_at)

    def keys(self) -> list[str]:
        return list(self._entries)
