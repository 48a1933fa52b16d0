"""Cache invalidation driven by data mutations.

Every mutation of tenant data is reported to the coordinator, which looks
up the static rule table and deletes every cache namespace derived from
that entity. The table is checked when the coordinator is built, so a
mutation kind without a rule is a startup error rather than a silent stale
read.

Example:
    coordinator = InvalidationCoordinator(cache)

    # After a sale is committed
    await coordinator.on_mutation(tenant_id, EntityKind.SALE)

    # After a notification is marked read
    await coordinator.on_mutation(tenant_id, EntityKind.NOTIFICATION, user_id=user.id)
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from enum import Enum
from types import MappingProxyType

from bizcache.cache.keys import (
    DashboardKey,
    KeyPattern,
    NotificationsKey,
    ProductsKey,
    ReportKey,
    ReportKind,
    UnreadNotificationsKey,
)
from bizcache.cache.service import CacheService
from bizcache.errors import ConfigurationError, UnregisteredEntityError
from bizcache.observability.metrics import record_invalidation
from bizcache.observability.tracing import get_tracer

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

TenantId = str | int
UserId = str | int


class EntityKind(str, Enum):
    """Kinds of tenant data whose mutation invalidates cached views."""

    SALE = "sale"
    PRODUCT = "product"
    STOCK = "stock"
    CATEGORY = "category"
    CUSTOMER = "customer"
    EXPENSE = "expense"
    NOTIFICATION = "notification"


# Builds the patterns to purge for (tenant_id, user_id)
PatternBuilder = Callable[[TenantId, UserId | None], list[KeyPattern]]


def _dashboard(tenant_id: TenantId) -> KeyPattern:
    return DashboardKey(tenant_id).as_pattern()


def _products(tenant_id: TenantId) -> KeyPattern:
    return ProductsKey(tenant_id).as_pattern()


def _reports(tenant_id: TenantId, *kinds: ReportKind) -> list[KeyPattern]:
    return [ReportKey.pattern(tenant_id, kind) for kind in kinds]


def _notifications(tenant_id: TenantId, user_id: UserId | None) -> list[KeyPattern]:
    return [
        NotificationsKey.pattern(tenant_id, user_id),
        UnreadNotificationsKey.pattern(tenant_id, user_id),
    ]


DEFAULT_RULES: Mapping[EntityKind, PatternBuilder] = MappingProxyType(
    {
        EntityKind.SALE: lambda t, _: [_dashboard(t), _products(t), *_reports(t, *ReportKind)],
        EntityKind.PRODUCT: lambda t, _: [
            _dashboard(t),
            _products(t),
            *_reports(t, ReportKind.STOCK, ReportKind.TOP_PRODUCTS),
        ],
        EntityKind.STOCK: lambda t, _: [
            _dashboard(t),
            _products(t),
            *_reports(t, ReportKind.STOCK),
        ],
        EntityKind.CATEGORY: lambda t, _: [_products(t), *_reports(t, ReportKind.STOCK)],
        EntityKind.CUSTOMER: lambda t, _: [_dashboard(t), *_reports(t, ReportKind.CUSTOMERS)],
        EntityKind.EXPENSE: lambda t, _: [_dashboard(t), *_reports(t, ReportKind.FINANCIAL)],
        EntityKind.NOTIFICATION: _notifications,
    }
)


class InvalidationCoordinator:
    """Maps entity mutations to cache pattern deletes."""

    def __init__(
        self,
        cache: CacheService,
        rules: Mapping[EntityKind, PatternBuilder] = DEFAULT_RULES,
    ):
        missing = [kind.value for kind in EntityKind if kind not in rules]
        if missing:
            raise ConfigurationError(
                f"Invalidation rules missing for entity kinds: {', '.join(missing)}"
            )
        self.cache = cache
        self.rules = rules

    def patterns_for(
        self, tenant_id: TenantId, entity_kind: EntityKind | str, user_id: UserId | None = None
    ) -> list[KeyPattern]:
        """Patterns a mutation of entity_kind invalidates."""
        try:
            kind = EntityKind(entity_kind)
        except ValueError:
            logger.error("Mutation reported for unknown entity kind %r", entity_kind)
            raise UnregisteredEntityError(str(entity_kind)) from None
        builder = self.rules.get(kind)
        if builder is None:
            logger.error("No invalidation rule for entity kind %r", kind.value)
            raise UnregisteredEntityError(kind.value)
        return builder(tenant_id, user_id)

    async def on_mutation(
        self,
        tenant_id: TenantId,
        entity_kind: EntityKind | str,
        user_id: UserId | None = None,
    ) -> int:
        """Invalidate every cached view derived from the mutated entity.

        Returns:
            Total number of cache entries deleted.
        """
        patterns = self.patterns_for(tenant_id, entity_kind, user_id)
        kind = EntityKind(entity_kind)

        with tracer.start_as_current_span("cache.invalidate") as span:
            span.set_attribute("bizcache.entity_kind", kind.value)
            span.set_attribute("bizcache.tenant_id", str(tenant_id))

            deleted = 0
            for pattern in patterns:
                deleted += await self.cache.delete_pattern(pattern)

            span.set_attribute("bizcache.deleted", deleted)

        record_invalidation(kind.value)
        logger.debug(
            "Invalidated %d entries for %s mutation (tenant %s)", deleted, kind.value, tenant_id
        )
        return deleted

    async def invalidate_tenant(self, tenant_id: TenantId) -> int:
        """Purge every tenant-scoped namespace, e.g. after a bulk import."""
        patterns = [
            _dashboard(tenant_id),
            _products(tenant_id),
            *_reports(tenant_id, *ReportKind),
            *_notifications(tenant_id, None),
        ]
        deleted = 0
        for pattern in patterns:
            deleted += await self.cache.delete_pattern(pattern)
        record_invalidation("tenant")
        logger.info("Invalidated %d cache entries for tenant %s", deleted, tenant_id)
        return deleted
