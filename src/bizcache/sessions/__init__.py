"""Session tokens backed by a persistent store with a cached replica."""

from bizcache.sessions.models import SESSION_CODEC, Role, SessionRecord, SessionState, UserRecord
from bizcache.sessions.repository import MemorySessionRepository, SessionRepository
from bizcache.sessions.store import SessionStore

__all__ = [
    "MemorySessionRepository",
    "Role",
    "SESSION_CODEC",
    "SessionRecord",
    "SessionRepository",
    "SessionState",
    "SessionStore",
    "UserRecord",
]
