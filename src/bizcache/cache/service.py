"""Cache orchestrator over the Redis and in-memory backends.

Backend selection happens per call from the remote client's explicit
availability flag:

- get: Redis first when available; on a Redis miss or outage, the
  in-memory store. Exactly one hit or miss is counted per call.
- set: Redis when available, otherwise (or if the Redis write fails) the
  in-memory store. Never both.
- delete / delete_pattern / flush: Redis when available, and always the
  in-memory store too, since get() reads it on every Redis miss.
  Invalidations aimed at Redis while it is down are queued and replayed
  before Redis is marked available again, so a revoked session cannot
  resurface from Redis after an outage.

Values pass through an explicit Codec; anything that fails to decode is
dropped and reported as a miss.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from typing import Any, TypeVar

from bizcache.cache.backends import CacheBackend
from bizcache.cache.keys import CacheKey, KeyPattern, redact_key
from bizcache.cache.memory import LocalBackend
from bizcache.cache.redis import RemoteCacheClient
from bizcache.cache.serialization import JSON, Codec
from bizcache.errors import SerializationError
from bizcache.observability.events import EventCategory, EventSink, LoggingEventSink, emit_event
from bizcache.observability.metrics import (
    record_cache_fallback,
    record_cache_hit,
    record_cache_miss,
    record_cache_operation,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL = 3600  # 1 hour

# Invalidations remembered while Redis is down
MAX_PENDING_INVALIDATIONS = 10_000

KeyLike = str | CacheKey


@dataclass
class CacheMetrics:
    """Hit/miss counters for one CacheService instance."""

    hits: int = 0
    misses: int = 0

    def record(self, hit: bool) -> None:
        if hit:
            self.hits += 1
        else:
            self.misses += 1

    @property
    def total(self) -> int:
        return self.hits + self.misses

    @property
    def hit_ratio(self) -> float:
        """Hit percentage, one decimal."""
        if self.total == 0:
            return 0.0
        return round(self.hits / self.total * 100, 1)

    def reset(self) -> None:
        self.hits = 0
        self.misses = 0


@dataclass(frozen=True)
class CacheStatus:
    """Diagnostic snapshot returned by CacheService.status()."""

    backend_type: str
    connected: bool
    total_keys: int | None
    hits: int
    misses: int
    hit_ratio: float
    remote_configured: bool = False
    memory_used: str | None = None
    pending_invalidations: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class CacheService:
    """Single entry point for cache reads, writes and invalidation."""

    def __init__(
        self,
        local: LocalBackend | None = None,
        remote: RemoteCacheClient | None = None,
        default_ttl: int = DEFAULT_TTL,
        event_sink: EventSink | None = None,
    ) -> None:
        if default_ttl <= 0:
            raise ValueError(f"default_ttl must be positive, got {default_ttl}")
        self.local = local if local is not None else LocalBackend()
        self.remote = remote
        self.default_ttl = default_ttl
        self.metrics = CacheMetrics()
        self.event_sink: EventSink = event_sink if event_sink is not None else LoggingEventSink()
        self._pending: deque[tuple[str, str | None]] = deque(maxlen=MAX_PENDING_INVALIDATIONS)
        if remote is not None:
            remote.add_reconnect_hook(self._replay_pending)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Probe Redis (if configured) and start its health monitor."""
        if self.remote is None:
            logger.info("Redis not configured, using in-memory cache")
            return
        await self.remote.connect()
        self.remote.start_health_probe()

    async def close(self) -> None:
        if self.remote is not None:
            await self.remote.close()

    @property
    def backend(self) -> CacheBackend:
        """Backend that currently receives writes."""
        if self.remote is not None and self.remote.is_available():
            return self.remote
        return self.local

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get(self, key: KeyLike, codec: Codec[Any] = JSON) -> Any | None:
        """Return the cached value for key, or None.

        A stored value that cannot be decoded is deleted and reported as a
        miss.
        """
        key = str(key)
        started = time.perf_counter()

        source: CacheBackend = self.local
        payload: bytes | None = None
        if self.remote is not None:
            if self.remote.is_available():
                payload = await self.remote.get(key)
                if payload is not None:
                    source = self.remote
            else:
                record_cache_fallback("get")
        if payload is None:
            payload = await self.local.get(key)

        value: Any | None = None
        if payload is not None:
            try:
                value = codec.decode(payload)
            except SerializationError as e:
                logger.warning("Dropping undecodable cache entry %s: %s", redact_key(key), e)
                await source.delete(key)

        hit = value is not None
        self.metrics.record(hit)
        self._observe("get", key, hit, started, source.name)
        if hit:
            record_cache_hit(source.name)
        else:
            record_cache_miss(source.name)
        return value

    async def get_or_set(
        self,
        key: KeyLike,
        loader: Callable[[], Awaitable[T]],
        ttl: int | None = None,
        codec: Codec[Any] = JSON,
    ) -> T:
        """Cache-aside: return the cached value or compute, store and return it."""
        cached = await self.get(key, codec)
        if cached is not None:
            return cached  # type: ignore[no-any-return]
        value = await loader()
        if value is not None:
            await self.set(key, value, ttl, codec)
        return value

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def set(
        self,
        key: KeyLike,
        value: Any,
        ttl: int | None = None,
        codec: Codec[Any] = JSON,
    ) -> bool:
        """Store value with TTL (seconds, default_ttl when None).

        Returns False only when the value cannot be encoded.
        """
        key = str(key)
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError(f"TTL must be positive, got {ttl}")
        if value is None:
            logger.warning("Refusing to cache None for %s", redact_key(key))
            return False
        try:
            payload = codec.encode(value)
        except SerializationError as e:
            logger.warning("Cannot cache %s: %s", redact_key(key), e)
            return False

        started = time.perf_counter()
        if self.remote is not None:
            if self.remote.is_available() and await self.remote.set(key, payload, ttl):
                self._observe("set", key, True, started, self.remote.name)
                return True
            record_cache_fallback("set")
        await self.local.set(key, payload, ttl)
        self._observe("set", key, True, started, self.local.name)
        return True

    async def delete(self, key: KeyLike) -> bool:
        """Remove key. Safe to call for absent keys."""
        key = str(key)
        started = time.perf_counter()
        await self._remote_invalidate("key", key)
        await self.local.delete(key)
        self._observe("delete", key, True, started, self.backend.name)
        return True

    async def delete_pattern(self, pattern: str | KeyPattern | CacheKey) -> int:
        """Remove every key equal to pattern or nested below it.

        Returns the number of keys removed across backends.
        """
        matcher = KeyPattern.parse(pattern)
        started = time.perf_counter()
        deleted = await self._remote_invalidate("pattern", matcher.base)
        deleted += await self.local.delete_pattern(matcher)
        self._observe("delete_pattern", matcher.base, deleted > 0, started, self.backend.name)
        if deleted:
            logger.info("Cache INVALIDATE: %s (%d keys)", matcher.base, deleted)
        return deleted

    async def flush(self) -> bool:
        """Clear every entry. Hit/miss counters are left untouched."""
        await self._remote_invalidate("flush", None)
        await self.local.flush()
        logger.warning("Cache FLUSH: all entries removed from %s", self.backend.name)
        return True

    async def _remote_invalidate(self, kind: str, target: str | None) -> int:
        """Apply an invalidation to Redis, queueing it if Redis is unreachable."""
        if self.remote is None:
            return 0
        if self.remote.is_available():
            if kind == "key" and target is not None:
                if await self.remote.delete(target):
                    return 0
            elif kind == "pattern" and target is not None:
                count = await self.remote.delete_pattern(KeyPattern(target))
                if self.remote.is_available():
                    return count
            elif await self.remote.flush():
                return 0
        self._queue_pending(kind, target)
        return 0

    def _queue_pending(self, kind: str, target: str | None) -> None:
        if len(self._pending) == self._pending.maxlen:
            logger.warning(
                "Pending invalidation queue full, dropping oldest entry; "
                "stale Redis entries will expire by TTL"
            )
        self._pending.append((kind, target))
        record_cache_fallback(f"invalidate_{kind}")

    async def _replay_pending(self, remote: RemoteCacheClient) -> bool:
        """Apply queued invalidations before Redis serves reads again."""
        while self._pending:
            kind, target = self._pending[0]
            if kind == "key" and target is not None:
                ok = await remote.force_delete(target)
            elif kind == "pattern" and target is not None:
                ok = await remote.force_delete_pattern(KeyPattern(target))
            else:
                ok = await remote.force_flush()
            if not ok:
                return False
            self._pending.popleft()
        return True

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    async def status(self) -> CacheStatus:
        """Snapshot of the active backend and counters. Never raises."""
        try:
            backend = self.backend
            info = await backend.info()
            return CacheStatus(
                backend_type=backend.name,
                connected=backend.is_available(),
                total_keys=await backend.count_keys(),
                hits=self.metrics.hits,
                misses=self.metrics.misses,
                hit_ratio=self.metrics.hit_ratio,
                remote_configured=self.remote is not None,
                memory_used=info.get("memory_used"),
                pending_invalidations=len(self._pending),
            )
        except Exception as e:
            logger.exception("Cache status failed")
            return CacheStatus(
                backend_type="unknown",
                connected=False,
                total_keys=None,
                hits=self.metrics.hits,
                misses=self.metrics.misses,
                hit_ratio=self.metrics.hit_ratio,
                remote_configured=self.remote is not None,
                error=str(e),
            )

    def reset_stats(self) -> None:
        """Zero the hit/miss counters (operator action only)."""
        self.metrics.reset()
        logger.info("Cache stats reset")

    def _observe(self, operation: str, key: str, hit: bool, started: float, backend: str) -> None:
        elapsed = time.perf_counter() - started
        record_cache_operation(operation, elapsed, backend)
        emit_event(
            self.event_sink,
            EventCategory.CACHE,
            operation,
            redact_key(key),
            hit,
            elapsed * 1000,
            backend,
        )
