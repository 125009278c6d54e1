"""Process-local TTL store shared by the metrics cache and the job tracker.

Keys are namespaced with `:` (`chorecycle:metrics:<home>`,
`scheduler:job:<name>:<field>`). Whole namespaces are dropped with
delete_prefix and counted in stats().
"""

import logging
import threading
import time
from collections import Counter


logger = logging.getLogger(__name__)


class TTLCache:
    """String values with optional per-key expiry, guarded by one lock."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[str, float | None]] = {}
        self._lock = threading.Lock()

    def _live(self, key: str, now: float) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= now:
            del self._entries[key]
            return None
        return value

    @staticmethod
    def _expiry(ttl_seconds: int, now: float) -> float | None:
        return now + ttl_seconds if ttl_seconds > 0 else None

    async def get(self, key: str) -> str | None:
        with self._lock:
            return self._live(key, time.monotonic())

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value; a non-positive TTL keeps it until deleted."""
        with self._lock:
            self._entries[key] = (value, self._expiry(ttl_seconds, time.monotonic()))

    async def increment(self, key: str, ttl_seconds: int) -> int | None:
        """Add one to a counter, starting from 0, and restart its TTL.

        Returns None, leaving the entry untouched, when it holds a non-numeric value.
        """
        with self._lock:
            now = time.monotonic()
            current = self._live(key, now)
            try:
                value = int(current or 0) + 1
            except ValueError:
                logger.warning("Cannot increment non-numeric key: %s", key)
                return None
            self._entries[key] = (str(value), self._expiry(ttl_seconds, now))
            return value

    async def delete(self, *keys: str) -> int:
        """Remove keys; returns how many existed."""
        with self._lock:
            return sum(self._entries.pop(key, None) is not None for key in keys)

    async def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def stats(self) -> dict[str, object]:
        """Live entry counts, overall and per top-level namespace."""
        with self._lock:
            now = time.monotonic()
            live = [key for key in list(self._entries) if self._live(key, now) is not None]
            return {
                "entries": len(live),
                "namespaces": dict(Counter(key.split(":", 1)[0] for key in live)),
            }

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


cache_client = TTLCache()
