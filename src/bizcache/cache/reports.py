"""Memoization of per-tenant computed data.

Provides typed get/cache pairs for the dashboard, product list, reports and
notification views, each with its own TTL from Settings.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from bizcache.cache.keys import (
    DashboardKey,
    NotificationsKey,
    ProductsKey,
    ReportKey,
    ReportKind,
    UnreadNotificationsKey,
)
from bizcache.cache.service import CacheService
from bizcache.config import Settings
from bizcache.errors import ConfigurationError

T = TypeVar("T")

TenantId = str | int
UserId = str | int


class ReportCache:
    """Cache operations for tenant data views.

    Every value is stored as JSON through the shared CacheService, so it
    falls back to the in-memory store like any other cache entry.
    """

    def __init__(
        self,
        cache: CacheService,
        ttl_dashboard: int = 300,
        ttl_products: int = 120,
        ttl_notifications: int = 120,
        ttl_unread_notifications: int = 60,
        report_ttls: Mapping[str, int] | None = None,
    ):
        self.cache = cache
        self.ttl_dashboard = _positive("dashboard", ttl_dashboard)
        self.ttl_products = _positive("products", ttl_products)
        self.ttl_notifications = _positive("notifications", ttl_notifications)
        self.ttl_unread_notifications = _positive("unread notifications", ttl_unread_notifications)

        report_ttls = dict(report_ttls or {})
        missing = [kind.value for kind in ReportKind if kind.value not in report_ttls]
        if missing:
            raise ConfigurationError(f"No TTL configured for reports: {', '.join(missing)}")
        self.report_ttls = {
            kind: _positive(f"{kind.value} report", report_ttls[kind.value]) for kind in ReportKind
        }

    @classmethod
    def from_settings(cls, cache: CacheService, settings: Settings) -> ReportCache:
        return cls(
            cache,
            ttl_dashboard=settings.ttl_dashboard,
            ttl_products=settings.ttl_products,
            ttl_notifications=settings.ttl_notifications,
            ttl_unread_notifications=settings.ttl_unread_notifications,
            report_ttls=settings.report_ttls,
        )

    # -------------------------------------------------------------------------
    # Dashboard and products
    # -------------------------------------------------------------------------

    async def get_dashboard(self, tenant_id: TenantId) -> Any | None:
        return await self.cache.get(DashboardKey(tenant_id))

    async def cache_dashboard(self, tenant_id: TenantId, data: Any) -> bool:
        return await self.cache.set(DashboardKey(tenant_id), data, self.ttl_dashboard)

    async def get_products(self, tenant_id: TenantId) -> Any | None:
        return await self.cache.get(ProductsKey(tenant_id))

    async def cache_products(self, tenant_id: TenantId, data: Any) -> bool:
        return await self.cache.set(ProductsKey(tenant_id), data, self.ttl_products)

    # -------------------------------------------------------------------------
    # Reports
    # -------------------------------------------------------------------------

    def report_ttl(self, kind: ReportKind | str) -> int:
        return self.report_ttls[ReportKind(kind)]

    async def get_report(
        self, tenant_id: TenantId, kind: ReportKind | str, *params: Any
    ) -> Any | None:
        return await self.cache.get(ReportKey.of(tenant_id, kind, *params))

    async def cache_report(
        self, tenant_id: TenantId, kind: ReportKind | str, data: Any, *params: Any
    ) -> bool:
        return await self.cache.set(
            ReportKey.of(tenant_id, kind, *params), data, self.report_ttl(kind)
        )

    async def report(
        self,
        tenant_id: TenantId,
        kind: ReportKind | str,
        compute: Callable[[], Awaitable[T]],
        *params: Any,
    ) -> T:
        """Return the cached report, computing and caching it on a miss.

        Example:
            await reports.report(tenant, ReportKind.SALES, lambda: build_sales(tenant, 30), 30)
        """
        return await self.cache.get_or_set(
            ReportKey.of(tenant_id, kind, *params), compute, self.report_ttl(kind)
        )

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    async def get_notifications(
        self,
        tenant_id: TenantId,
        user_id: UserId,
        limit: int,
        offset: int,
        filters: Mapping[str, Any] | None = None,
    ) -> Any | None:
        key = NotificationsKey.for_query(tenant_id, user_id, limit, offset, filters)
        return await self.cache.get(key)

    async def cache_notifications(
        self,
        tenant_id: TenantId,
        user_id: UserId,
        limit: int,
        offset: int,
        data: Any,
        filters: Mapping[str, Any] | None = None,
    ) -> bool:
        key = NotificationsKey.for_query(tenant_id, user_id, limit, offset, filters)
        return await self.cache.set(key, data, self.ttl_notifications)

    async def get_unread_count(self, tenant_id: TenantId, user_id: UserId) -> int | None:
        value = await self.cache.get(UnreadNotificationsKey(tenant_id, user_id))
        return value if isinstance(value, int) else None

    async def cache_unread_count(self, tenant_id: TenantId, user_id: UserId, count: int) -> bool:
        return await self.cache.set(
            UnreadNotificationsKey(tenant_id, user_id), count, self.ttl_unread_notifications
        )


def _positive(name: str, ttl: int) -> int:
    if ttl <= 0:
        raise ConfigurationError(f"TTL for {name} must be positive, got {ttl}")
    return ttl
