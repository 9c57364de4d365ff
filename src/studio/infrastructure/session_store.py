from __future__ import annotations

import os
from threading import RLock
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

from ..core.state_machine import is_terminal
from ..domain.errors import ConcurrentUpdateError, NotFoundError
from ..domain.session_models import Session, utc_now


class SessionStore(Protocol):
    def create(self, session: Session) -> Session: ...

    def get(self, session_id: str, user_id: str, statuses: Iterable[str]) -> Optional[Session]: ...

    def list(
        self,
        user_id: str,
        status: str = "active",
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Session], int]: ...

    def save(self, session: Session) -> Session: ...

    def update(self, session_id: str, user_id: str, changes: Dict[str, Any]) -> Optional[Session]: ...

    def soft_delete(self, session_id: str, user_id: str) -> bool: ...


def matches_search(session: Session, needle: str) -> bool:
    needle = needle.lower()
    if needle in session.title.lower() or needle in session.description.lower():
        return True
    return any(needle in tag.lower() for tag in session.tags)


def apply_changes(session: Session, changes: Dict[str, Any]) -> Session:
    """Apply a flat change set; ``settings`` is merged key by key."""
    for key, value in changes.items():
        if key == "settings":
            for skey, svalue in value.items():
                setattr(session.settings, skey, svalue)
        else:
            setattr(session, key, value)
    return session


class InMemorySessionStore:
    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = RLock()

    def _touch(self, session: Session) -> None:
        session.recompute_statistics()
        session.updated_at = utc_now()
        session.revision += 1

    def create(self, session: Session) -> Session:
        with self._lock:
            self._touch(session)
            self._sessions[session.session_id] = session.model_copy(deep=True)
            return session

    def get(self, session_id: str, user_id: str, statuses: Iterable[str]) -> Optional[Session]:
        with self._lock:
            sess = self._sessions.get(session_id)
            if not sess or sess.user_id != user_id or sess.status not in tuple(statuses):
                return None
            return sess.model_copy(deep=True)

    def list(
        self,
        user_id: str,
        status: str = "active",
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Session], int]:
        with self._lock:
            matches = [
                s for s in self._sessions.values()
                if s.user_id == user_id and s.status == status and (not search or matches_search(s, search))
            ]
            # Most recently active first
            matches.sort(key=lambda s: s.statistics.last_active_at, reverse=True)
            skip = (max(page, 1) - 1) * limit
            return [s.model_copy(deep=True) for s in matches[skip: skip + limit]], len(matches)

    def save(self, session: Session) -> Session:
        """Commit ``session`` only if nobody wrote it since it was read."""
        with self._lock:
            stored = self._sessions.get(session.session_id)
            if stored is None:
                raise NotFoundError("Session not found")
            if stored.revision != session.revision:
                raise ConcurrentUpdateError("Session was modified by another request; please retry")
            self._touch(session)
            self._sessions[session.session_id] = session.model_copy(deep=True)
            return session

    def update(self, session_id: str, user_id: str, changes: Dict[str, Any]) -> Optional[Session]:
        with self._lock:
            sess = self._sessions.get(session_id)
            if not sess or sess.user_id != user_id or is_terminal(sess.status):
                return None
            apply_changes(sess, changes)
            self._touch(sess)
            return sess.model_copy(deep=True)

    def soft_delete(self, session_id: str, user_id: str) -> bool:
        with self._lock:
            sess = self._sessions.get(session_id)
            if not sess or sess.user_id != user_id or is_terminal(sess.status):
                return False
            sess.status = "deleted"
            self._touch(sess)
            return True


_store: SessionStore | None = None


def get_session_store() -> SessionStore:
    global _store
    if _store is not None:
        return _store
    impl = os.getenv("STUDIO_SESSION_STORE_IMPL", "memory").lower()
    if impl == "mongo":
        from .session_store_mongo import MongoSessionStore

        _store = MongoSessionStore()
        return _store
    _store = InMemorySessionStore()
    return _store
