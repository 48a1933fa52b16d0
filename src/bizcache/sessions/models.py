"""Session and user records.

SessionRecord is what the cache holds under ``session:{token}``; the
persistent store keeps the authoritative copy.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from bizcache.cache.serialization import DictCodec


class Role(str, Enum):
    """User roles, lowest to highest privilege."""

    USER = "user"
    MANAGER = "manager"
    ADMIN = "admin"

    @property
    def level(self) -> int:
        return _ROLE_LEVELS[self]

    def allows(self, required: Role | str) -> bool:
        """True if this role is at least as privileged as required."""
        return self.level >= Role(required).level


_ROLE_LEVELS = {Role.USER: 1, Role.MANAGER: 2, Role.ADMIN: 3}


class SessionState(str, Enum):
    """Lifecycle of a session token."""

    ISSUED = "issued"  # persisted, not yet cached
    CACHED = "cached"
    EXPIRED = "expired"
    REVOKED = "revoked"


@dataclass(frozen=True)
class SessionRecord:
    """An authenticated session.

    Attributes:
        token: Opaque bearer token (URL-safe, 256 bits of entropy)
        user_id: Owning user
        tenant_id: Tenant the session is scoped to
        role: User role at the time the record was written
        issued_at: Creation time (UTC)
        expires_at: Absolute expiry (UTC)
    """

    token: str
    user_id: int | str
    tenant_id: int | str
    role: Role
    issued_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now(UTC)) >= self.expires_at

    def remaining_seconds(self, now: datetime | None = None) -> int:
        """Whole seconds until expiry, never negative."""
        delta = self.expires_at - (now or datetime.now(UTC))
        return max(0, int(delta.total_seconds()))

    def with_user(self, user: UserRecord) -> SessionRecord:
        """Copy carrying the user's current tenant and role."""
        return replace(self, tenant_id=user.tenant_id, role=user.role)

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "user_id": self.user_id,
            "tenant_id": self.tenant_id,
            "role": self.role.value,
            "issued_at": self.issued_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionRecord:
        return cls(
            token=data["token"],
            user_id=data["user_id"],
            tenant_id=data["tenant_id"],
            role=Role(data["role"]),
            issued_at=datetime.fromisoformat(data["issued_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
        )


@dataclass(frozen=True)
class UserRecord:
    """User row as returned by the persistent store."""

    id: int | str
    tenant_id: int | str
    username: str
    role: Role = Role.USER
    is_active: bool = True


SESSION_CODEC: DictCodec[SessionRecord] = DictCodec(SessionRecord)
