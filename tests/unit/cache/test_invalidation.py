"""Tests for mutation-driven cache invalidation."""

import pytest

from bizcache.cache.invalidation import DEFAULT_RULES, EntityKind, InvalidationCoordinator
from bizcache.cache.keys import (
    DashboardKey,
    NotificationsKey,
    ProductsKey,
    ReportKey,
    ReportKind,
    SessionKey,
    UnreadNotificationsKey,
)
from bizcache.cache.service import CacheService
from bizcache.errors import ConfigurationError, UnregisteredEntityError


async def _seed(cache: CacheService, tenant: int) -> None:
    await cache.set(DashboardKey(tenant), {"d": tenant})
    await cache.set(ProductsKey(tenant), [tenant])
    for kind in ReportKind:
        await cache.set(ReportKey.of(tenant, kind), {"r": kind.value})
        await cache.set(ReportKey.of(tenant, kind, 30), {"r": kind.value, "days": 30})
    await cache.set(NotificationsKey.for_query(tenant, 1, 20, 0), [1])
    await cache.set(NotificationsKey.for_query(tenant, 2, 20, 0), [2])
    await cache.set(UnreadNotificationsKey(tenant, 1), 3)
    await cache.set(UnreadNotificationsKey(tenant, 2), 4)


class TestInvalidationRules:
    """Tests for the rule table."""

    def test_every_kind_registered(self) -> None:
        """The default table covers every entity kind."""
        assert set(DEFAULT_RULES) == set(EntityKind)

    def test_incomplete_table_fails_at_construction(self, cache: CacheService) -> None:
        """A table missing a kind is rejected up front."""
        rules = {k: v for k, v in DEFAULT_RULES.items() if k != EntityKind.EXPENSE}
        with pytest.raises(ConfigurationError, match="expense"):
            InvalidationCoordinator(cache, rules)

    def test_unknown_kind(self, cache: CacheService) -> None:
        """Unknown entity kinds raise UnregisteredEntityError."""
        coordinator = InvalidationCoordinator(cache)
        with pytest.raises(UnregisteredEntityError) as exc_info:
            coordinator.patterns_for(1, "invoice")
        assert exc_info.value.entity_kind == "invoice"

    def test_product_patterns(self, cache: CacheService) -> None:
        """Product mutations reach stock and top-products reports only."""
        coordinator = InvalidationCoordinator(cache)
        bases = {p.base for p in coordinator.patterns_for(7, EntityKind.PRODUCT)}
        assert bases == {
            "cache:dashboard:7",
            "cache:products:7",
            "report:stock:7",
            "report:topproducts:7",
        }


class TestInvalidationCoordinator:
    """Tests for on_mutation against a live cache."""

    @pytest.mark.asyncio
    async def test_sale_invalidates_everything_but_notifications(self, cache: CacheService) -> None:
        """A sale purges dashboard, products and every report."""
        await _seed(cache, 1)
        coordinator = InvalidationCoordinator(cache)

        deleted = await coordinator.on_mutation(1, EntityKind.SALE)

        assert deleted == 2 + 2 * len(ReportKind)
        assert await cache.get(DashboardKey(1)) is None
        assert await cache.get(ReportKey.of(1, ReportKind.CUSTOMERS, 30)) is None
        assert await cache.get(UnreadNotificationsKey(1, 1)) == 3

    @pytest.mark.asyncio
    async def test_mutation_scoped_to_tenant(self, cache: CacheService) -> None:
        """Tenant 1 mutations leave tenant 10 untouched."""
        await _seed(cache, 1)
        await _seed(cache, 10)
        coordinator = InvalidationCoordinator(cache)

        await coordinator.on_mutation(1, EntityKind.SALE)

        assert await cache.get(DashboardKey(10)) == {"d": 10}
        assert await cache.get(ReportKey.of(10, ReportKind.SALES)) == {"r": "sales"}

    @pytest.mark.asyncio
    async def test_expense_only_financial(self, cache: CacheService) -> None:
        """An expense purges the dashboard and financial report only."""
        await _seed(cache, 1)
        coordinator = InvalidationCoordinator(cache)

        await coordinator.on_mutation(1, "expense")

        assert await cache.get(ReportKey.of(1, ReportKind.FINANCIAL)) is None
        assert await cache.get(ReportKey.of(1, ReportKind.SALES)) == {"r": "sales"}
        assert await cache.get(ProductsKey(1)) == [1]

    @pytest.mark.asyncio
    async def test_notification_for_one_user(self, cache: CacheService) -> None:
        """A user's notification change leaves other users cached."""
        await _seed(cache, 1)
        coordinator = InvalidationCoordinator(cache)

        assert await coordinator.on_mutation(1, EntityKind.NOTIFICATION, user_id=1) == 2

        assert await cache.get(UnreadNotificationsKey(1, 1)) is None
        assert await cache.get(UnreadNotificationsKey(1, 2)) == 4
        assert await cache.get(NotificationsKey.for_query(1, 2, 20, 0)) == [2]

    @pytest.mark.asyncio
    async def test_notification_for_tenant(self, cache: CacheService) -> None:
        """Without a user, every user's notifications are purged."""
        await _seed(cache, 1)
        coordinator = InvalidationCoordinator(cache)

        assert await coordinator.on_mutation(1, EntityKind.NOTIFICATION) == 4

    @pytest.mark.asyncio
    async def test_invalidate_tenant(self, cache: CacheService) -> None:
        """Tenant purge removes all tenant data but not sessions."""
        await _seed(cache, 1)
        await cache.set(SessionKey("tok"), {"u": 1})
        coordinator = InvalidationCoordinator(cache)

        deleted = await coordinator.invalidate_tenant(1)

        assert deleted == 2 + 2 * len(ReportKind) + 4
        assert await cache.get(SessionKey("tok")) == {"u": 1}
