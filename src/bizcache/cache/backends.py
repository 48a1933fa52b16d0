"""Backend strategy interface shared by the remote and in-memory caches."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from bizcache.cache.keys import KeyPattern


@runtime_checkable
class CacheBackend(Protocol):
    """Storage strategy selected per operation by CacheService.

    Implementations never raise for transport problems: failures are
    reported through return values (None, False, 0) and is_available().
    """

    name: str

    def is_available(self) -> bool:
        """Return True if the backend can currently serve requests."""
        ...

    async def get(self, key: str) -> bytes | None:
        """Return the stored payload, or None when absent or unreachable."""
        ...

    async def set(self, key: str, value: bytes, ttl: int) -> bool:
        """Store payload with TTL in seconds. Returns True on success."""
        ...

    async def delete(self, key: str) -> bool:
        """Remove key. Returns True if the call reached the backend."""
        ...

    async def delete_pattern(self, pattern: KeyPattern) -> int:
        """Remove all keys matched by pattern. Returns the number removed."""
        ...

    async def flush(self) -> bool:
        """Remove every entry."""
        ...

    async def count_keys(self) -> int | None:
        """Number of live keys, or None if unknown."""
        ...

    async def info(self) -> dict[str, Any]:
        """Backend-specific diagnostics."""
        ...
