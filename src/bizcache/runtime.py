"""Runtime wiring for the cache and session layer.

CacheRuntime is the composition root: it builds every component from
Settings and owns their lifecycle. Nothing is created at import time; the
host application builds one runtime at startup and passes its components
to whatever needs them.

Example:
    runtime = CacheRuntime.from_settings(get_settings(), repository=my_repo)
    await runtime.start()
    try:
        session = await runtime.sessions.require(token)
    finally:
        await runtime.close()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from bizcache.cache.invalidation import InvalidationCoordinator
from bizcache.cache.memory import KeyedExpiringStore, LocalBackend
from bizcache.cache.redis import RemoteCacheClient
from bizcache.cache.reports import ReportCache
from bizcache.cache.service import CacheService
from bizcache.config import Settings, get_settings
from bizcache.errors import ConfigurationError
from bizcache.observability.events import EventSink
from bizcache.observability.metrics import configure_metrics
from bizcache.sessions.repository import SessionRepository
from bizcache.sessions.store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class CacheRuntime:
    """Every cache and session component of one process."""

    settings: Settings
    cache: CacheService
    reports: ReportCache
    invalidation: InvalidationCoordinator
    session_store: SessionStore | None = None
    _started: bool = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        repository: SessionRepository | None = None,
        event_sink: EventSink | None = None,
        redis_client: Any | None = None,
    ) -> CacheRuntime:
        """Build the runtime.

        Args:
            settings: Configuration (defaults to get_settings()); also applies
                enable_metrics to the process-wide metrics registry
            repository: Persistent session store; no SessionStore without it
            event_sink: Receiver for cache/auth events (default: DEBUG log)
            redis_client: Pre-built redis.asyncio client, mainly for tests
        """
        settings = settings or get_settings()
        configure_metrics(settings)

        store = KeyedExpiringStore(high_water_mark=settings.memory_cache_high_water_mark)
        local = LocalBackend(store)
        remote: RemoteCacheClient | None = None
        if settings.redis_url or redis_client is not None:
            remote = RemoteCacheClient(
                url=settings.redis_url,
                client=redis_client,
                connect_timeout=settings.redis_connect_timeout,
                operation_timeout=settings.redis_operation_timeout,
                scan_timeout=settings.redis_scan_timeout,
                health_check_interval=settings.redis_health_check_interval,
            )

        cache = CacheService(
            local=local,
            remote=remote,
            default_ttl=settings.cache_default_ttl,
            event_sink=event_sink,
        )

        session_store = None
        if repository is not None:
            session_store = SessionStore(
                cache,
                repository,
                lifetime_seconds=settings.session_lifetime_seconds,
                cache_ttl=settings.session_cache_ttl,
            )

        return cls(
            settings=settings,
            cache=cache,
            reports=ReportCache.from_settings(cache, settings),
            invalidation=InvalidationCoordinator(cache),
            session_store=session_store,
        )

    @property
    def sessions(self) -> SessionStore:
        if self.session_store is None:
            raise ConfigurationError("CacheRuntime was built without a session repository")
        return self.session_store

    async def start(self) -> None:
        """Connect Redis (when configured) and start its health probe."""
        if self._started:
            return
        await self.cache.start()
        self._started = True
        logger.info("Cache runtime started (backend: %s)", self.cache.backend.name)

    async def close(self) -> None:
        if not self._started:
            return
        await self.cache.close()
        self._started = False
        logger.info("Cache runtime stopped")
