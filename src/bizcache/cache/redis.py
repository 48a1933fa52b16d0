"""Redis backend for the shared cache.

Uses the redis-py async client. Redis is optional: every operation is
bounded by a short timeout, and any transport or protocol error flips the
client to unavailable instead of propagating. CacheService checks
is_available() before each call and falls back to the in-memory store, so
the process keeps working indefinitely without Redis.

A background health probe PINGs the server and flips the client back to
available once it answers again.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar, cast

import redis.asyncio as redis
from redis.exceptions import RedisError

from bizcache.cache.keys import KeyPattern

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

T = TypeVar("T")

ReconnectHook = Callable[["RemoteCacheClient"], Awaitable[bool]]

# Keys per UNLINK round-trip during pattern deletes
SCAN_CHUNK_SIZE = 500


class RemoteCacheClient:
    """Redis-backed CacheBackend with an explicit availability flag."""

    name = "redis"

    def __init__(
        self,
        url: str | None = None,
        client: Redis | None = None,
        connect_timeout: float = 1.0,
        operation_timeout: float = 0.25,
        scan_timeout: float = 2.0,
        health_check_interval: float = 5.0,
    ) -> None:
        if url is None and client is None:
            raise ValueError("RemoteCacheClient needs a Redis URL or a client")
        self.url = url
        self.connect_timeout = connect_timeout
        self.operation_timeout = operation_timeout
        self.scan_timeout = scan_timeout
        self.health_check_interval = health_check_interval
        self._client: Redis | None = client
        self._available = False
        self._probe_task: asyncio.Task[None] | None = None
        self._reconnect_hooks: list[ReconnectHook] = []

    @property
    def client(self) -> Redis:
        if self._client is None:
            self._client = redis.from_url(  # type: ignore[no-untyped-call]
                cast(str, self.url),
                decode_responses=False,  # payloads are encoded bytes
                socket_connect_timeout=self.connect_timeout,
                socket_timeout=self.scan_timeout,
            )
        return self._client

    def is_available(self) -> bool:
        return self._available

    @property
    def available(self) -> bool:
        return self._available

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> bool:
        """Probe the server once. Returns the resulting availability."""
        if await self.ping():
            if not self._available and await self._run_reconnect_hooks():
                self._available = True
                logger.info("Redis cache connected: %s", self._safe_url())
        else:
            logger.warning(
                "Redis cache unreachable at %s, using in-memory cache", self._safe_url()
            )
            self._available = False
        return self._available

    async def ping(self) -> bool:
        try:
            await asyncio.wait_for(
                cast(Awaitable[bool], self.client.ping()), self.connect_timeout
            )
            return True
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            logger.debug("Redis ping failed: %s", e)
            return False

    def add_reconnect_hook(self, hook: ReconnectHook) -> None:
        """Register a callback run before the client is marked available.

        Hooks run with the client still unavailable to regular callers, so
        they must use the force_* operations. A hook returning False keeps
        the client unavailable until the next successful probe.
        """
        self._reconnect_hooks.append(hook)

    async def _run_reconnect_hooks(self) -> bool:
        for hook in self._reconnect_hooks:
            if not await hook(self):
                logger.warning("Redis reconnect deferred: pending work could not be applied")
                return False
        return True

    def start_health_probe(self) -> None:
        """Start the background reconnect/health loop."""
        if self._probe_task is None or self._probe_task.done():
            self._probe_task = asyncio.create_task(self._probe_loop())

    async def stop_health_probe(self) -> None:
        if self._probe_task is None:
            return
        self._probe_task.cancel()
        try:
            await self._probe_task
        except asyncio.CancelledError:
            pass
        self._probe_task = None

    async def _probe_loop(self) -> None:
        while True:
            await asyncio.sleep(self.health_check_interval)
            try:
                await self._probe_once()
            except Exception:
                logger.exception("Redis health probe failed; retrying next interval")

    async def _probe_once(self) -> None:
        healthy = await self.ping()
        if healthy and not self._available:
            if not await self._run_reconnect_hooks():
                return
            self._available = True
            logger.info("Redis cache reconnected: %s", self._safe_url())
        elif not healthy and self._available:
            self._mark_unavailable("health check", "no PING response")

    async def close(self) -> None:
        await self.stop_health_probe()
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._available = False
        logger.info("Redis cache disconnected")

    # -------------------------------------------------------------------------
    # CacheBackend operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> bytes | None:
        return await self._run("get", lambda: self.client.get(key), None)

    async def set(self, key: str, value: bytes, ttl: int) -> bool:
        result = await self._run(
            "set", lambda: self.client.set(key, value, ex=ttl), False, shield=True
        )
        return bool(result)

    async def delete(self, key: str) -> bool:
        result = await self._run("delete", lambda: self.client.delete(key), None, shield=True)
        return result is not None

    async def delete_pattern(self, pattern: KeyPattern) -> int:
        return await self._run(
            "delete_pattern",
            lambda: self._delete_matching(pattern),
            0,
            timeout=self.scan_timeout,
            shield=True,
        )

    async def _delete_matching(self, pattern: KeyPattern) -> int:
        """DEL the base key, then SCAN + batched UNLINK everything nested below it."""
        deleted = int(await self.client.delete(pattern.base))
        chunk: list[bytes] = []
        async for key in self.client.scan_iter(match=pattern.glob(), count=SCAN_CHUNK_SIZE):
            chunk.append(key)
            if len(chunk) >= SCAN_CHUNK_SIZE:
                deleted += int(await self.client.unlink(*chunk))
                chunk = []
        if chunk:
            deleted += int(await self.client.unlink(*chunk))
        return deleted

    async def flush(self) -> bool:
        result = await self._run(
            "flush", lambda: self.client.flushdb(), False, timeout=self.scan_timeout, shield=True
        )
        return bool(result)

    async def count_keys(self) -> int | None:
        result = await self._run("dbsize", lambda: self.client.dbsize(), None)
        return int(result) if result is not None else None

    async def info(self) -> dict[str, Any]:
        raw = await self._run("info", lambda: self.client.info("memory"), None)
        if not raw:
            return {}
        return {"memory_used": raw.get("used_memory_human", "unknown")}

    # -------------------------------------------------------------------------
    # Pre-availability operations, for reconnect hooks
    # -------------------------------------------------------------------------

    async def force_delete(self, key: str) -> bool:
        result = await self._run(
            "delete", lambda: self.client.delete(key), None, shield=True, force=True
        )
        return result is not None

    async def force_delete_pattern(self, pattern: KeyPattern) -> bool:
        result = await self._run(
            "delete_pattern",
            lambda: self._delete_matching(pattern),
            None,
            timeout=self.scan_timeout,
            shield=True,
            force=True,
        )
        return result is not None

    async def force_flush(self) -> bool:
        result = await self._run(
            "flush",
            lambda: self.client.flushdb(),
            False,
            timeout=self.scan_timeout,
            shield=True,
            force=True,
        )
        return bool(result)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _run(
        self,
        operation: str,
        call: Callable[[], Awaitable[Any]],
        default: T,
        timeout: float | None = None,
        shield: bool = False,
        force: bool = False,
    ) -> Any | T:
        """Run one Redis call under a timeout, mapping any failure to default.

        Shielded calls are allowed to finish even if the caller is cancelled
        or the timeout fires, so a write is never torn mid-flight. Forced
        calls skip the availability check.
        """
        if not (self._available or force):
            return default
        awaitable: Awaitable[Any] = call()
        if shield:
            awaitable = asyncio.shield(awaitable)
        try:
            return await asyncio.wait_for(awaitable, timeout or self.operation_timeout)
        except asyncio.TimeoutError:
            self._mark_unavailable(operation, "timed out")
        except (RedisError, OSError) as e:
            self._mark_unavailable(operation, e)
        return default

    def _mark_unavailable(self, operation: str, reason: object) -> None:
        if self._available:
            logger.warning(
                "Redis %s failed (%s), falling back to in-memory cache", operation, reason
            )
        else:
            logger.debug("Redis %s failed while unavailable: %s", operation, reason)
        self._available = False

    def _safe_url(self) -> str:
        if not self.url:
            return "<injected client>"
        # Strip credentials
        return self.url.rsplit("@", 1)[-1]
