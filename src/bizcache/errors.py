"""Exception hierarchy for the cache and session layer.

Backend unavailability is deliberately absent: a missing or failing remote
cache is a normal operating condition and is handled by falling back to the
in-memory store, never by raising.
"""

from __future__ import annotations


class BizCacheError(Exception):
    """Base class for all bizcache errors."""


class ConfigurationError(BizCacheError):
    """Programmer or deployment error detected at startup or first use."""


class UnregisteredEntityError(ConfigurationError):
    """Mutation reported for an entity kind with no invalidation rule."""

    def __init__(self, entity_kind: str):
        self.entity_kind = entity_kind
        super().__init__(f"No invalidation rule registered for entity kind {entity_kind!r}")


class SerializationError(BizCacheError):
    """A cached value could not be encoded or decoded."""


class KeyComponentError(BizCacheError, ValueError):
    """A cache key component is empty or contains the key separator."""


class SessionError(BizCacheError):
    """Base class for session errors."""


class SessionPersistenceError(SessionError):
    """The persistent session store failed."""

    def __init__(self, operation: str, cause: BaseException | None = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Session store {operation} failed{detail}")


class InvalidSessionError(SessionError):
    """Token is unknown, expired or revoked."""
