"""Persistent session store contract.

The host application implements SessionRepository over its database (the
``user_sessions`` and ``users`` tables). Implementations raise whatever
their driver raises; SessionStore wraps those failures in
SessionPersistenceError.
"""

from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

from bizcache.sessions.models import SessionRecord, UserRecord


@runtime_checkable
class SessionRepository(Protocol):
    """Authoritative storage for sessions and the users they belong to."""

    async def insert_session(self, record: SessionRecord) -> None: ...

    async def find_session_by_token(self, token: str) -> SessionRecord | None: ...

    async def delete_session_by_token(self, token: str) -> bool: ...

    async def delete_sessions_by_user(self, user_id: int | str) -> list[str]:
        """Delete every session of user_id, returning the deleted tokens."""
        ...

    async def find_user_by_id(self, user_id: int | str) -> UserRecord | None: ...


class MemorySessionRepository:
    """In-process SessionRepository for development and tests."""

    def __init__(self, users: list[UserRecord] | None = None):
        self.sessions: dict[str, SessionRecord] = {}
        self.users: dict[int | str, UserRecord] = {u.id: u for u in users or []}
        self._lock = asyncio.Lock()

    def add_user(self, user: UserRecord) -> None:
        self.users[user.id] = user

    async def insert_session(self, record: SessionRecord) -> None:
        async with self._lock:
            if record.token in self.sessions:
                raise ValueError("Duplicate session token")
            self.sessions[record.token] = record

    async def find_session_by_token(self, token: str) -> SessionRecord | None:
        return self.sessions.get(token)

    async def delete_session_by_token(self, token: str) -> bool:
        async with self._lock:
            return self.sessions.pop(token, None) is not None

    async def delete_sessions_by_user(self, user_id: int | str) -> list[str]:
        async with self._lock:
            tokens = [t for t, s in self.sessions.items() if s.user_id == user_id]
            for token in tokens:
                del self.sessions[token]
            return tokens

    async def find_user_by_id(self, user_id: int | str) -> UserRecord | None:
        return self.users.get(user_id)
