"""Session lifecycle over the persistent store and the cache.

The persistent store is authoritative; the cache holds a replica of each
session under ``session:{token}`` for at most session_cache_ttl seconds
(and never past the session's own expiry). Writes go to the persistent
store first, so a failed insert never leaves a cached session behind, and
revocation deletes the persistent row before the cached copy.
"""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from bizcache.cache.keys import SessionKey, redact_key
from bizcache.cache.service import CacheService
from bizcache.errors import InvalidSessionError, KeyComponentError, SessionPersistenceError
from bizcache.observability.events import EventCategory, emit_event
from bizcache.observability.metrics import record_session
from bizcache.observability.tracing import get_tracer
from bizcache.sessions.models import SESSION_CODEC, Role, SessionRecord, SessionState
from bizcache.sessions.repository import SessionRepository

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

DEFAULT_LIFETIME = 86400  # 24 hours
DEFAULT_CACHE_TTL = 3600  # 1 hour

# 32 bytes = 256 bits of entropy
TOKEN_BYTES = 32


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SessionStore:
    """Creates, validates and revokes session tokens."""

    def __init__(
        self,
        cache: CacheService,
        repository: SessionRepository,
        lifetime_seconds: int = DEFAULT_LIFETIME,
        cache_ttl: int = DEFAULT_CACHE_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if lifetime_seconds <= 0 or cache_ttl <= 0:
            raise ValueError("Session lifetime and cache TTL must be positive")
        self.cache = cache
        self.repository = repository
        self.lifetime = timedelta(seconds=lifetime_seconds)
        self.cache_ttl = cache_ttl
        self._clock = clock

    async def create(
        self, user_id: int | str, tenant_id: int | str, role: Role | str
    ) -> SessionRecord:
        """Issue a new session for an authenticated user.

        Raises:
            SessionPersistenceError: The session could not be stored.
        """
        now = self._clock()
        record = SessionRecord(
            token=secrets.token_urlsafe(TOKEN_BYTES),
            user_id=user_id,
            tenant_id=tenant_id,
            role=Role(role),
            issued_at=now,
            expires_at=now + self.lifetime,
        )
        try:
            await self.repository.insert_session(record)
        except Exception as e:
            logger.error("Failed to persist session for user %s: %s", user_id, e)
            raise SessionPersistenceError("insert", e) from e

        await self._cache_record(record, now)
        record_session("created")
        logger.info("Session created for user %s (tenant %s)", user_id, tenant_id)
        return record

    async def validate(self, token: str | None) -> SessionRecord | None:
        """Return the live session for token, or None.

        A cache hit is answered without touching the persistent store. On a
        miss the persistent row is checked (unexpired, user still active)
        and written back to the cache. The row is looked up once more after
        the write: revocation deletes the row before the cached copy, so a
        revoke that raced this fill is seen here and the copy is dropped.

        Raises:
            SessionPersistenceError: The persistent lookup failed.
        """
        if not token:
            return None
        try:
            key = SessionKey(token)
        except KeyComponentError:
            record_session("rejected")
            return None

        started = time.perf_counter()
        with tracer.start_as_current_span("session.validate") as span:
            now = self._clock()
            cached = await self.cache.get(key, SESSION_CODEC)
            if cached is not None and cached.token == token:
                if not cached.is_expired(now):
                    span.set_attribute("bizcache.cache_hit", True)
                    self._emit("validate", key, True, started)
                    record_session("cache_hit")
                    return cached  # type: ignore[no-any-return]
                await self.cache.delete(key)

            span.set_attribute("bizcache.cache_hit", False)
            record = await self._load(token, now)
            self._emit("validate", key, False, started)
            if record is None:
                record_session("rejected")
                return None

            await self._cache_record(record, now)
            if not await self._still_persisted(token, key):
                record_session("rejected")
                return None
            record_session("filled")
            return record

    async def require(self, token: str | None) -> SessionRecord:
        """Like validate(), but raise InvalidSessionError instead of returning None."""
        record = await self.validate(token)
        if record is None:
            raise InvalidSessionError("Session expired or invalid")
        return record

    async def revoke(self, token: str) -> bool:
        """Delete one session. Returns True if it existed in the persistent store.

        Raises:
            SessionPersistenceError: The persistent delete failed; the cached
                copy is left untouched so the failure can be retried.
        """
        try:
            key = SessionKey(token)
        except KeyComponentError:
            return False
        try:
            existed = await self.repository.delete_session_by_token(token)
        except Exception as e:
            logger.error("Failed to revoke session %s: %s", redact_key(str(key)), e)
            raise SessionPersistenceError("delete", e) from e

        await self.cache.delete(key)
        record_session("revoked")
        logger.info("Session revoked: %s", redact_key(str(key)))
        return existed

    async def revoke_all(self, user_id: int | str) -> int:
        """Revoke every session of a user (password change, deactivation).

        Returns:
            Number of sessions revoked.
        """
        try:
            tokens = await self.repository.delete_sessions_by_user(user_id)
        except Exception as e:
            logger.error("Failed to revoke sessions of user %s: %s", user_id, e)
            raise SessionPersistenceError("delete_by_user", e) from e

        for token in tokens:
            try:
                key = SessionKey(token)
            except KeyComponentError:
                continue
            await self.cache.delete(key)
            record_session("revoked")

        logger.info("Revoked %d sessions of user %s", len(tokens), user_id)
        return len(tokens)

    async def state(self, token: str) -> SessionState:
        """Lifecycle state of token. Unknown tokens report REVOKED."""
        try:
            key = SessionKey(token)
        except KeyComponentError:
            return SessionState.REVOKED
        now = self._clock()
        cached = await self.cache.get(key, SESSION_CODEC)
        if cached is not None and not cached.is_expired(now):
            return SessionState.CACHED
        try:
            record = await self.repository.find_session_by_token(token)
        except Exception as e:
            raise SessionPersistenceError("find_session", e) from e
        if record is None:
            return SessionState.REVOKED
        if record.is_expired(now):
            return SessionState.EXPIRED
        return SessionState.ISSUED

    async def _load(self, token: str, now: datetime) -> SessionRecord | None:
        """Authoritative lookup joined with the user's current state."""
        try:
            record = await self.repository.find_session_by_token(token)
            if record is None or record.is_expired(now):
                return None
            user = await self.repository.find_user_by_id(record.user_id)
        except Exception as e:
            logger.error("Session lookup failed: %s", e)
            raise SessionPersistenceError("find_session", e) from e
        if user is None or not user.is_active:
            return None
        return record.with_user(user)

    async def _still_persisted(self, token: str, key: SessionKey) -> bool:
        try:
            found = await self.repository.find_session_by_token(token) is not None
        except Exception as e:
            await self.cache.delete(key)
            raise SessionPersistenceError("find_session", e) from e
        if not found:
            logger.info("Session %s revoked during validation", redact_key(str(key)))
            await self.cache.delete(key)
        return found

    async def _cache_record(self, record: SessionRecord, now: datetime) -> None:
        ttl = min(self.cache_ttl, record.remaining_seconds(now))
        if ttl <= 0:
            return
        if not await self.cache.set(SessionKey(record.token), record, ttl, SESSION_CODEC):
            logger.warning("Session %s not cached", redact_key(str(SessionKey(record.token))))

    def _emit(self, operation: str, key: SessionKey, hit: bool, started: float) -> None:
        emit_event(
            self.cache.event_sink,
            EventCategory.AUTH,
            operation,
            redact_key(str(key)),
            hit,
            (time.perf_counter() - started) * 1000,
        )
