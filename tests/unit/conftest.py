"""Shared fakes for unit tests: a controllable clock and an in-memory Redis."""

from __future__ import annotations

import fnmatch
from collections.abc import AsyncIterator
from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from bizcache.cache.memory import KeyedExpiringStore, LocalBackend
from bizcache.cache.redis import RemoteCacheClient
from bizcache.cache.service import CacheService
from bizcache.observability.events import NullEventSink


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """Dict-backed stand-in for redis.asyncio.Redis.

    Honors SET EX against the given clock. Setting ``down`` makes every
    command raise ConnectionError.
    """

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.data: dict[str, tuple[bytes, float | None]] = {}
        self.down = False
        self.closed = False

    def _check(self) -> None:
        if self.down:
            raise RedisConnectionError("Connection refused")

    @staticmethod
    def _key(key: str | bytes) -> str:
        return key.decode() if isinstance(key, bytes) else key

    def _live_keys(self) -> list[str]:
        now = self.clock()
        return [k for k, (_, exp) in self.data.items() if exp is None or now < exp]

    async def ping(self) -> bool:
        self._check()
        return True

    async def get(self, key: str) -> bytes | None:
        self._check()
        key = self._key(key)
        if key not in self._live_keys():
            self.data.pop(key, None)
            return None
        return self.data[key][0]

    async def set(self, key: str, value: bytes, ex: int | None = None) -> bool:
        self._check()
        expires = self.clock() + ex if ex is not None else None
        self.data[self._key(key)] = (value, expires)
        return True

    async def delete(self, *keys: str | bytes) -> int:
        self._check()
        live = set(self._live_keys())
        removed = 0
        for key in map(self._key, keys):
            if self.data.pop(key, None) is not None and key in live:
                removed += 1
        return removed

    async def unlink(self, *keys: str | bytes) -> int:
        return await self.delete(*keys)

    async def scan_iter(
        self, match: str | None = None, count: int | None = None
    ) -> AsyncIterator[bytes]:
        self._check()
        for key in self._live_keys():
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key.encode()

    async def flushdb(self) -> bool:
        self._check()
        self.data.clear()
        return True

    async def dbsize(self) -> int:
        self._check()
        return len(self._live_keys())

    async def info(self, section: str | None = None) -> dict[str, Any]:
        self._check()
        return {"used_memory_human": "1.02M"}

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(clock: FakeClock) -> FakeRedis:
    return FakeRedis(clock)


@pytest.fixture
def local(clock: FakeClock) -> LocalBackend:
    return LocalBackend(KeyedExpiringStore(clock=clock))


@pytest.fixture
def remote(fake_redis: FakeRedis) -> RemoteCacheClient:
    """RemoteCacheClient over FakeRedis, already marked available."""
    client = RemoteCacheClient(client=fake_redis)  # type: ignore[arg-type]
    client._available = True
    return client


@pytest.fixture(params=["redis", "redis_down", "memory_only"])
def cache(
    request: pytest.FixtureRequest, local: LocalBackend, fake_redis: FakeRedis
) -> CacheService:
    """CacheService with Redis up, Redis configured but down, and no Redis."""
    if request.param == "memory_only":
        return CacheService(local=local, event_sink=NullEventSink())
    remote_client = RemoteCacheClient(client=fake_redis)  # type: ignore[arg-type]
    if request.param == "redis":
        remote_client._available = True
    else:
        fake_redis.down = True
    return CacheService(local=local, remote=remote_client, event_sink=NullEventSink())


@pytest.fixture
def redis_cache(local: LocalBackend, remote: RemoteCacheClient) -> CacheService:
    """CacheService with Redis up."""
    return CacheService(local=local, remote=remote, event_sink=NullEventSink())
