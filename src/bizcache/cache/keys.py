"""Cache key schema.

Key format: {namespace}:{segment}[:{segment}...]

Namespaces:
- session:{token}
- cache:dashboard:{tenant}
- cache:products:{tenant}
- report:{kind}:{tenant}[:{param}...]
- notifications:list:{tenant}:{user}[:{param}...]
- notifications:unread:{tenant}:{user}

Keys are only ever built through the typed classes below. Segments must be
non-empty and must not contain KEY_SEP, so a tenant or token can never
spill into a neighbouring namespace.

Patterns are segment-aligned prefixes: pattern ``p`` matches key ``k`` iff
``k == p`` or ``k`` starts with ``p + ":"``. Both backends use exactly this
rule, so ``cache:dashboard:1`` never matches ``cache:dashboard:10``.
"""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

import orjson

from bizcache.errors import KeyComponentError

KEY_SEP = ":"

_GLOB_SPECIAL = frozenset("*?[]\\")


def _check_segment(value: str, name: str) -> str:
    if not value:
        raise KeyComponentError(f"Cache key component {name!r} must not be empty")
    if KEY_SEP in value:
        raise KeyComponentError(
            f"Cache key component {name!r} must not contain separator {KEY_SEP!r}"
        )
    return value


def _escape_glob(value: str) -> str:
    """Escape Redis glob metacharacters so the value matches literally."""
    return "".join(f"\\{ch}" if ch in _GLOB_SPECIAL else ch for ch in value)


class ReportKind(str, Enum):
    """Reports memoized per tenant."""

    SALES = "sales"
    STOCK = "stock"
    FINANCIAL = "financial"
    TOP_PRODUCTS = "topproducts"
    CUSTOMERS = "customers"


@dataclass(frozen=True)
class KeyPattern:
    """Segment-aligned key prefix used for bulk invalidation."""

    base: str

    def __post_init__(self) -> None:
        if not self.base:
            raise KeyComponentError("Key pattern must not be empty")

    @classmethod
    def parse(cls, raw: str | KeyPattern | CacheKey) -> KeyPattern:
        """Build a pattern from a raw string, a key, or another pattern.

        A trailing separator is ignored: ``"session:"`` and ``"session"``
        describe the same namespace.
        """
        if isinstance(raw, KeyPattern):
            return raw
        return cls(str(raw).rstrip(KEY_SEP))

    def matches(self, key: str) -> bool:
        return key == self.base or key.startswith(self.base + KEY_SEP)

    def glob(self) -> str:
        """Redis SCAN pattern for keys nested below the base (not the base itself)."""
        return f"{_escape_glob(self.base)}{KEY_SEP}*"

    def __str__(self) -> str:
        return self.base


@dataclass(frozen=True)
class CacheKey:
    """Base class for typed cache keys."""

    namespace: ClassVar[str] = ""

    def segments(self) -> tuple[str, ...]:
        raise NotImplementedError

    def __post_init__(self) -> None:
        # Rendering validates every segment.
        str(self)

    def __str__(self) -> str:
        return KEY_SEP.join((self.namespace, *self.segments()))

    @property
    def key(self) -> str:
        return str(self)

    def as_pattern(self) -> KeyPattern:
        """Pattern matching this key and anything nested below it."""
        return KeyPattern(str(self))


@dataclass(frozen=True)
class SessionKey(CacheKey):
    namespace: ClassVar[str] = "session"

    token: str

    def segments(self) -> tuple[str, ...]:
        return (_check_segment(self.token, "token"),)

    @classmethod
    def pattern(cls) -> KeyPattern:
        return KeyPattern(cls.namespace)


@dataclass(frozen=True)
class DashboardKey(CacheKey):
    namespace: ClassVar[str] = "cache:dashboard"

    tenant_id: str | int

    def segments(self) -> tuple[str, ...]:
        return (_check_segment(str(self.tenant_id), "tenant_id"),)


@dataclass(frozen=True)
class ProductsKey(CacheKey):
    namespace: ClassVar[str] = "cache:products"

    tenant_id: str | int

    def segments(self) -> tuple[str, ...]:
        return (_check_segment(str(self.tenant_id), "tenant_id"),)


@dataclass(frozen=True)
class ReportKey(CacheKey):
    """Key for a computed report, e.g. ``report:sales:42:30``."""

    namespace: ClassVar[str] = "report"

    tenant_id: str | int
    kind: ReportKind
    params: tuple[str, ...] = field(default=())

    def segments(self) -> tuple[str, ...]:
        kind = ReportKind(self.kind)
        return (
            kind.value,
            _check_segment(str(self.tenant_id), "tenant_id"),
            *(_check_segment(str(p), "param") for p in self.params),
        )

    @classmethod
    def of(cls, tenant_id: str | int, kind: ReportKind | str, *params: Any) -> ReportKey:
        return cls(tenant_id, ReportKind(kind), tuple(str(p) for p in params))

    @classmethod
    def pattern(cls, tenant_id: str | int, kind: ReportKind | str) -> KeyPattern:
        """Every cached variant of one report for a tenant."""
        return cls(tenant_id, ReportKind(kind)).as_pattern()


@dataclass(frozen=True)
class NotificationsKey(CacheKey):
    """Key for a page of a user's notification list."""

    namespace: ClassVar[str] = "notifications:list"

    tenant_id: str | int
    user_id: str | int
    params: tuple[str, ...] = field(default=())

    def segments(self) -> tuple[str, ...]:
        return (
            _check_segment(str(self.tenant_id), "tenant_id"),
            _check_segment(str(self.user_id), "user_id"),
            *(_check_segment(str(p), "param") for p in self.params),
        )

    @classmethod
    def for_query(
        cls,
        tenant_id: str | int,
        user_id: str | int,
        limit: int,
        offset: int,
        filters: Mapping[str, Any] | None = None,
    ) -> NotificationsKey:
        """Key for one paginated, filtered listing.

        Filters are reduced to a short digest since their JSON form may
        contain the separator.
        """
        digest = hashlib.sha256(
            orjson.dumps(dict(filters or {}), option=orjson.OPT_SORT_KEYS)
        ).hexdigest()[:16]
        return cls(tenant_id, user_id, (str(limit), str(offset), digest))

    @classmethod
    def pattern(cls, tenant_id: str | int, user_id: str | int | None = None) -> KeyPattern:
        parts = [cls.namespace, _check_segment(str(tenant_id), "tenant_id")]
        if user_id is not None:
            parts.append(_check_segment(str(user_id), "user_id"))
        return KeyPattern(KEY_SEP.join(parts))


@dataclass(frozen=True)
class UnreadNotificationsKey(CacheKey):
    namespace: ClassVar[str] = "notifications:unread"

    tenant_id: str | int
    user_id: str | int

    def segments(self) -> tuple[str, ...]:
        return (
            _check_segment(str(self.tenant_id), "tenant_id"),
            _check_segment(str(self.user_id), "user_id"),
        )

    @classmethod
    def pattern(cls, tenant_id: str | int, user_id: str | int | None = None) -> KeyPattern:
        parts = [cls.namespace, _check_segment(str(tenant_id), "tenant_id")]
        if user_id is not None:
            parts.append(_check_segment(str(user_id), "user_id"))
        return KeyPattern(KEY_SEP.join(parts))


def redact_key(key: str) -> str:
    """Shorten session tokens so they never reach logs or metrics in full."""
    prefix = SessionKey.namespace + KEY_SEP
    if key.startswith(prefix) and len(key) > len(prefix) + 8:
        return f"{key[: len(prefix) + 8]}..."
    return key
