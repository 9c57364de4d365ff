from __future__ import annotations

import io
import re

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from ...core.state_machine import READABLE_STATUSES
from ...domain.api_models import ComponentUpdate
from ...domain.session_models import ComponentVersionSummary, Session
from ...security.auth import User, get_current_user
from ...services.ledger import SessionLedger, VERSION_NOT_FOUND
from ...services.packaging import build_component_archive
from ..deps import get_ledger
from ..envelope import ok


router = APIRouter(prefix="/components", tags=["components"])


def _load_readable(ledger: SessionLedger, session_id: str, user: User) -> Session:
    sess = ledger.find(session_id, user.email, READABLE_STATUSES)
    if not sess:
        raise HTTPException(status_code=404, detail="Session not found")
    return sess


@router.get("/{session_id}/current")
def get_current_component(
    session_id: str,
    user: User = Depends(get_current_user),
    ledger: SessionLedger = Depends(get_ledger),
) -> dict:
    sess = _load_readable(ledger, session_id, user)
    component = sess.find_version(sess.current_version)
    if not component:
        raise HTTPException(status_code=404, detail="No components found in this session")
    return ok({"component": component})


@router.get("/{session_id}/versions")
def list_versions(
    session_id: str,
    user: User = Depends(get_current_user),
    ledger: SessionLedger = Depends(get_ledger),
) -> dict:
    sess = _load_readable(ledger, session_id, user)
    if not sess.components:
        raise HTTPException(
            status_code=404,
            detail="No components found in this session. Generate a component first.",
        )
    versions = [
        ComponentVersionSummary(
            version=c.version,
            created_at=c.created_at,
            generation_prompt=c.generation_prompt,
            metadata=c.metadata,
        )
        for c in sess.components
    ]
    return ok(
        {
            "versions": versions,
            "currentVersion": sess.current_version,
            "sessionTitle": sess.title,
        }
    )


@router.get("/{session_id}/{version}")
def get_component(
    session_id: str,
    version: int,
    user: User = Depends(get_current_user),
    ledger: SessionLedger = Depends(get_ledger),
) -> dict:
    sess = _load_readable(ledger, session_id, user)
    component = sess.find_version(version)
    if not component:
        raise HTTPException(status_code=404, detail=VERSION_NOT_FOUND)
    return ok({"component": component})


@router.put("/{session_id}/{version}")
def update_component(
    session_id: str,
    version: int,
    req: ComponentUpdate,
    user: User = Depends(get_current_user),
    ledger: SessionLedger = Depends(get_ledger),
) -> dict:
    component = ledger.manual_edit(session_id, user.email, version, req.jsx, css=req.css, props=req.props)
    return ok(
        {"component": component, "version": component.version},
        message="Component updated successfully",
    )


@router.post("/{session_id}/{version}/set-current")
def set_current_version(
    session_id: str,
    version: int,
    user: User = Depends(get_current_user),
    ledger: SessionLedger = Depends(get_ledger),
) -> dict:
    current = ledger.set_current(session_id, user.email, version)
    return ok({"currentVersion": current}, message=f"Component version {current} set as current")


@router.post("/{session_id}/{version}/duplicate")
def duplicate_component(
    session_id: str,
    version: int,
    user: User = Depends(get_current_user),
    ledger: SessionLedger = Depends(get_ledger),
) -> dict:
    duplicate = ledger.duplicate_version(session_id, user.email, version)
    return ok(
        {"component": duplicate, "newVersion": duplicate.version},
        message=f"Component version {version} duplicated as version {duplicate.version}",
    )


@router.get("/{session_id}/{version}/download")
def download_component(
    session_id: str,
    version: str,
    user: User = Depends(get_current_user),
    ledger: SessionLedger = Depends(get_ledger),
) -> StreamingResponse:
    sess = _load_readable(ledger, session_id, user)
    if version == "current":
        target = sess.current_version
    elif version.isdigit():
        target = int(version)
    else:
        raise HTTPException(status_code=400, detail="Version must be a number or 'current'")
    component = sess.find_version(target)
    if not component:
        raise HTTPException(status_code=404, detail=VERSION_NOT_FOUND)

    archive = build_component_archive(sess, component, author=user.name)
    safe_title = re.sub(r"[^\w.-]+", "_", sess.title).strip("_") or "component"
    headers = {"Content-Disposition": f'attachment; filename="{safe_title}-v{target}.zip"'}
    return StreamingResponse(io.BytesIO(archive), media_type="application/zip", headers=headers)
