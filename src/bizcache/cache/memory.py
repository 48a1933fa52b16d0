"""Process-local expiring key/value store.

Used as the fallback backend whenever Redis is not configured or not
reachable. Expired entries are logically absent immediately and physically
removed either lazily on read or by cleanup(), which runs whenever the map
grows past a high-water mark. There is no background timer, so behaviour is
deterministic under a simulated clock.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from bizcache.cache.keys import KeyPattern

logger = logging.getLogger(__name__)

V = TypeVar("V")

DEFAULT_HIGH_WATER_MARK = 1000


@dataclass
class CacheEntry(Generic[V]):
    """Stored value with absolute expiry on the store's clock."""

    value: V
    expires_at: float

    def is_live(self, now: float) -> bool:
        return now < self.expires_at


class KeyedExpiringStore(Generic[V]):
    """Thread-safe mapping of string keys to values with per-entry TTL."""

    def __init__(
        self,
        high_water_mark: int = DEFAULT_HIGH_WATER_MARK,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.high_water_mark = high_water_mark
        self._clock = clock
        self._entries: dict[str, CacheEntry[V]] = {}
        self._lock = threading.Lock()

    def set(self, key: str, value: V, ttl_seconds: float) -> None:
        """Store value, replacing any existing entry for key."""
        with self._lock:
            self._entries[key] = CacheEntry(value, self._clock() + ttl_seconds)
            if len(self._entries) > self.high_water_mark:
                self._cleanup_locked()

    def get(self, key: str) -> V | None:
        """Return the live value for key, dropping it if it has expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not entry.is_live(self._clock()):
                del self._entries[key]
                return None
            return entry.value

    def delete(self, key: str) -> bool:
        """Remove key. Returns True if an entry was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def delete_pattern(self, pattern: str | KeyPattern) -> int:
        """Remove every key matched by pattern. Returns the number removed."""
        matcher = KeyPattern.parse(pattern)
        with self._lock:
            doomed = [key for key in self._entries if matcher.matches(key)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def cleanup(self) -> int:
        """Remove expired entries. Returns the number removed."""
        with self._lock:
            return self._cleanup_locked()

    def _cleanup_locked(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if not entry.is_live(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Memory cache cleanup removed %d expired entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> list[str]:
        """Keys of live entries."""
        with self._lock:
            now = self._clock()
            return [key for key, entry in self._entries.items() if entry.is_live(now)]

    def __len__(self) -> int:
        # Physical size, may include expired entries not yet cleaned up.
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None


class LocalBackend:
    """CacheBackend adapter over a KeyedExpiringStore holding encoded bytes."""

    name = "memory"

    def __init__(self, store: KeyedExpiringStore[bytes] | None = None) -> None:
        self.store: KeyedExpiringStore[bytes] = store if store is not None else KeyedExpiringStore()

    def is_available(self) -> bool:
        return True

    async def get(self, key: str) -> bytes | None:
        return self.store.get(key)

    async def set(self, key: str, value: bytes, ttl: int) -> bool:
        self.store.set(key, value, ttl)
        return True

    async def delete(self, key: str) -> bool:
        self.store.delete(key)
        return True

    async def delete_pattern(self, pattern: KeyPattern) -> int:
        return self.store.delete_pattern(pattern)

    async def flush(self) -> bool:
        self.store.clear()
        return True

    async def count_keys(self) -> int | None:
        return len(self.store.keys())

    async def info(self) -> dict[str, Any]:
        live = self.store.keys()
        payload_bytes = sum(len(self.store.get(key) or b"") for key in live)
        return {
            "entries": len(self.store),
            "live_entries": len(live),
            "high_water_mark": self.store.high_water_mark,
            "memory_used": f"{payload_bytes / 1024:.2f} KB",
        }
