from __future__ import annotations

import math
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...core.config import StudioConfig, get_config
from ...core.state_machine import READABLE_STATUSES, is_valid_transition
from ...domain.api_models import SessionCreate, SessionUpdate
from ...domain.errors import InvalidTransitionError
from ...domain.session_models import Pagination, Session, SessionSettings
from ...infrastructure.session_store import SessionStore
from ...security.auth import User, get_current_user
from ..deps import get_store
from ..envelope import ok


router = APIRouter(prefix="/sessions", tags=["sessions"])


def _load_readable(store: SessionStore, session_id: str, user: User) -> Session:
    sess = store.get(session_id, user.email, READABLE_STATUSES)
    if not sess:
        raise HTTPException(status_code=404, detail="Session not found")
    return sess


@router.get("")
def list_sessions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status_filter: Literal["active", "archived", "deleted"] = Query("active", alias="status"),
    search: Optional[str] = Query(None, max_length=100),
    user: User = Depends(get_current_user),
    store: SessionStore = Depends(get_store),
) -> dict:
    needle = (search or "").strip() or None
    sessions, total = store.list(user.email, status=status_filter, search=needle, page=page, limit=limit)
    total_pages = math.ceil(total / limit)
    return ok(
        {
            "sessions": [s.summary() for s in sessions],
            "pagination": Pagination(
                current_page=page,
                total_pages=total_pages,
                total_sessions=total,
                has_next=page < total_pages,
                has_prev=page > 1,
            ),
        }
    )


@router.get("/{session_id}")
def get_session(
    session_id: str,
    user: User = Depends(get_current_user),
    store: SessionStore = Depends(get_store),
) -> dict:
    return ok({"session": _load_readable(store, session_id, user)})


@router.post("", status_code=status.HTTP_201_CREATED)
def create_session(
    req: SessionCreate,
    user: User = Depends(get_current_user),
    store: SessionStore = Depends(get_store),
    config: StudioConfig = Depends(get_config),
) -> dict:
    patch = req.settings
    settings = SessionSettings(
        auto_save=patch.auto_save if patch and patch.auto_save is not None else True,
        model=(patch.model if patch and patch.model else config.default_model),
        max_tokens=(patch.max_tokens if patch and patch.max_tokens else config.max_tokens),
    )
    sess = store.create(
        Session(
            user_id=user.email,
            title=req.title,
            description=req.description or "",
            tags=req.tags or [],
            settings=settings,
        )
    )
    return ok({"session": sess}, message="Session created successfully")


@router.put("/{session_id}")
def update_session(
    session_id: str,
    req: SessionUpdate,
    user: User = Depends(get_current_user),
    store: SessionStore = Depends(get_store),
) -> dict:
    current = _load_readable(store, session_id, user)
    changes: Dict[str, Any] = {}
    if req.title:
        changes["title"] = req.title
    if req.description is not None:
        changes["description"] = req.description
    if req.tags is not None:
        changes["tags"] = req.tags
    if req.status:
        if not is_valid_transition(current.status, req.status):
            raise InvalidTransitionError(f"Cannot change status from {current.status} to {req.status}")
        changes["status"] = req.status
    if req.is_public is not None:
        changes["is_public"] = req.is_public
    if req.settings:
        settings = req.settings.model_dump(exclude_none=True)
        if settings:
            changes["settings"] = settings
    sess = store.update(session_id, user.email, changes)
    if not sess:
        raise HTTPException(status_code=404, detail="Session not found")
    return ok({"session": sess}, message="Session updated successfully")


@router.delete("/{session_id}")
def delete_session(
    session_id: str,
    user: User = Depends(get_current_user),
    store: SessionStore = Depends(get_store),
) -> dict:
    if not store.soft_delete(session_id, user.email):
        raise HTTPException(status_code=404, detail="Session not found")
    return ok(message="Session deleted successfully")


@router.post("/{session_id}/duplicate", status_code=status.HTTP_201_CREATED)
def duplicate_session(
    session_id: str,
    user: User = Depends(get_current_user),
    store: SessionStore = Depends(get_store),
) -> dict:
    original = _load_readable(store, session_id, user)
    copy = Session(
        user_id=user.email,
        title=f"{original.title} (Copy)",
        description=original.description,
        messages=[m.model_copy(deep=True) for m in original.messages],
        components=[c.model_copy(deep=True) for c in original.components],
        current_version=original.current_version,
        tags=list(original.tags),
        settings=original.settings.model_copy(),
    )
    return ok({"session": store.create(copy)}, message="Session duplicated successfully")


@router.get("/{session_id}/export")
def export_session(
    session_id: str,
    user: User = Depends(get_current_user),
    store: SessionStore = Depends(get_store),
) -> dict:
    sess = _load_readable(store, session_id, user)
    export_data = {
        "sessionInfo": {
            "title": sess.title,
            "description": sess.description,
            "createdAt": sess.created_at,
            "updatedAt": sess.updated_at,
            "tags": sess.tags,
            "statistics": sess.statistics,
            "owner": {"name": user.name, "email": user.email},
        },
        "chatHistory": sess.messages,
        "components": sess.components,
        "settings": sess.settings,
    }
    return ok({"exportData": export_data})
