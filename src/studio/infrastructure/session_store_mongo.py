from __future__ import annotations

import logging
import os
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pymongo import MongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from ..core.state_machine import READABLE_STATUSES
from ..domain.errors import ConcurrentUpdateError, NotFoundError
from ..domain.session_models import Session, utc_now
from .session_store import InMemorySessionStore


logger = logging.getLogger("studio.store")


class MongoSessionStore:
    """Mongo-backed session store; one document per session.

    Full-document writes use ``replace_one`` filtered on the ``revision``
    that was read, so two writers cannot both claim the same version number
    and a stale copy never overwrites newer messages. Metadata edits and
    soft deletes are field-level ``$set`` updates that bump ``revision``.
    If Mongo is unreachable and STUDIO_SESSION_STORE_REQUIRE_MONGO is not
    set, operations fall back to an internal in-memory store.
    """

    def __init__(self, collection: Any = None) -> None:
        self._fallback = InMemorySessionStore()
        self._sessions = collection
        if self._sessions is not None:
            return
        try:
            mongo_url = os.getenv("MONGO_URL", "mongodb://localhost:27017")
            mongo_db = os.getenv("MONGO_DB", "component_studio")
            client = MongoClient(mongo_url, serverSelectionTimeoutMS=500)
            client.server_info()
            self._sessions = client[mongo_db]["sessions"]
            self._sessions.create_index([("user_id", 1), ("created_at", -1)])
            self._sessions.create_index([("user_id", 1), ("status", 1)])
        except PyMongoError as exc:
            if os.getenv("STUDIO_SESSION_STORE_REQUIRE_MONGO", "false").lower() in ("1", "true", "yes"):
                raise RuntimeError("Mongo session store required but not available") from exc
            logger.warning("Mongo unavailable (%s); using in-memory session store", exc)
            self._sessions = None

    def _use_fallback(self) -> bool:
        return self._sessions is None

    @staticmethod
    def _to_doc(session: Session) -> Dict[str, Any]:
        doc = session.model_dump()
        doc["_id"] = session.session_id
        return doc

    @staticmethod
    def _from_doc(doc: Dict[str, Any]) -> Session:
        data = {k: v for k, v in doc.items() if k != "_id"}
        return Session.model_validate(data)

    def _touch(self, session: Session) -> None:
        session.recompute_statistics()
        session.updated_at = utc_now()
        session.revision += 1

    def create(self, session: Session) -> Session:
        if self._use_fallback():
            return self._fallback.create(session)
        self._touch(session)
        self._sessions.insert_one(self._to_doc(session))
        return session

    def get(self, session_id: str, user_id: str, statuses: Iterable[str]) -> Optional[Session]:
        if self._use_fallback():
            return self._fallback.get(session_id, user_id, statuses)
        doc = self._sessions.find_one({"_id": session_id, "user_id": user_id, "status": {"$in": list(statuses)}})
        return self._from_doc(doc) if doc else None

    def list(
        self,
        user_id: str,
        status: str = "active",
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Session], int]:
        if self._use_fallback():
            return self._fallback.list(user_id, status=status, search=search, page=page, limit=limit)
        query: Dict[str, Any] = {"user_id": user_id, "status": status}
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            query["$or"] = [{"title": pattern}, {"description": pattern}, {"tags": pattern}]
        skip = (max(page, 1) - 1) * limit
        cursor = self._sessions.find(query).sort("statistics.last_active_at", -1).skip(skip).limit(limit)
        sessions = [self._from_doc(doc) for doc in cursor]
        return sessions, int(self._sessions.count_documents(query))

    def save(self, session: Session) -> Session:
        if self._use_fallback():
            return self._fallback.save(session)
        query = {"_id": session.session_id, "revision": session.revision}
        self._touch(session)
        result = self._sessions.replace_one(query, self._to_doc(session))
        if result.matched_count == 0:
            session.revision = query["revision"]
            if self._sessions.find_one({"_id": session.session_id}) is None:
                raise NotFoundError("Session not found")
            raise ConcurrentUpdateError("Session was modified by another request; please retry")
        return session

    @staticmethod
    def _field_updates(changes: Dict[str, Any]) -> Dict[str, Any]:
        # settings merge key by key
        fields: Dict[str, Any] = {}
        for key, value in changes.items():
            if key == "settings":
                for skey, svalue in value.items():
                    fields[f"settings.{skey}"] = svalue
            else:
                fields[key] = value
        now = utc_now()
        fields["updated_at"] = now
        fields["statistics.last_active_at"] = now
        return fields

    def _owned_live(self, session_id: str, user_id: str) -> Dict[str, Any]:
        return {"_id": session_id, "user_id": user_id, "status": {"$in": list(READABLE_STATUSES)}}

    def update(self, session_id: str, user_id: str, changes: Dict[str, Any]) -> Optional[Session]:
        if self._use_fallback():
            return self._fallback.update(session_id, user_id, changes)
        doc = self._sessions.find_one_and_update(
            self._owned_live(session_id, user_id),
            {"$set": self._field_updates(changes), "$inc": {"revision": 1}},
            return_document=ReturnDocument.AFTER,
        )
        return self._from_doc(doc) if doc else None

    def soft_delete(self, session_id: str, user_id: str) -> bool:
        if self._use_fallback():
            return self._fallback.soft_delete(session_id, user_id)
        result = self._sessions.update_one(
            self._owned_live(session_id, user_id),
            {"$set": self._field_updates({"status": "deleted"}), "$inc": {"revision": 1}},
        )
        return result.matched_count > 0
