from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ...security.auth import (
    AuthSettings,
    PasscodeRedemption,
    PasscodeRequest,
    User,
    get_current_user,
    grant_access,
    issue_passcode,
    redeem_passcode,
)
from ...security.rate_limit import limit_passcode_requests
from ..envelope import ok

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/request-otp")
def request_otp(req: PasscodeRequest, request: Request) -> dict:
    host = request.client.host if request.client else "unknown"
    limit_passcode_requests(f"{host}:{req.email.lower()}")

    settings = AuthSettings.from_env()
    code = issue_passcode(req.email, settings)
    payload = {"status": "sent", "expiresIn": settings.otp_ttl_min * 60}
    if settings.echo_otp:
        payload["code"] = code
    return ok(payload)


@router.post("/verify-otp")
def verify_otp(req: PasscodeRedemption) -> dict:
    settings = AuthSettings.from_env()
    user = redeem_passcode(req.email, req.code, name=req.name, settings=settings)
    return ok(grant_access(user, settings), message="Signed in")


@router.get("/me")
def me(user: User = Depends(get_current_user)) -> dict:
    return ok({"user": user})
