"""Cache layer: typed keys, backends, the CacheService orchestrator and invalidation."""

from bizcache.cache.backends import CacheBackend
from bizcache.cache.invalidation import DEFAULT_RULES, EntityKind, InvalidationCoordinator
from bizcache.cache.keys import (
    CacheKey,
    DashboardKey,
    KeyPattern,
    NotificationsKey,
    ProductsKey,
    ReportKey,
    ReportKind,
    SessionKey,
    UnreadNotificationsKey,
)
from bizcache.cache.memory import KeyedExpiringStore, LocalBackend
from bizcache.cache.redis import RemoteCacheClient
from bizcache.cache.reports import ReportCache
from bizcache.cache.serialization import JSON, Codec, DictCodec, JsonCodec
from bizcache.cache.service import CacheMetrics, CacheService, CacheStatus

__all__ = [
    "CacheBackend",
    "CacheKey",
    "CacheMetrics",
    "CacheService",
    "CacheStatus",
    "Codec",
    "DashboardKey",
    "DEFAULT_RULES",
    "DictCodec",
    "EntityKind",
    "InvalidationCoordinator",
    "JSON",
    "JsonCodec",
    "KeyedExpiringStore",
    "KeyPattern",
    "LocalBackend",
    "NotificationsKey",
    "ProductsKey",
    "RemoteCacheClient",
    "ReportCache",
    "ReportKey",
    "ReportKind",
    "SessionKey",
    "UnreadNotificationsKey",
]
