from __future__ import annotations

"""Bearer-token authentication backed by one-time email passcodes.

Sign-in is two steps: ``issue`` a six digit passcode for an email, then
``redeem`` it for a signed JWT. Unknown emails become accounts on their first
successful redemption, which must carry a display name.

Env vars:
- JWT_SECRET (required in prod; dev default otherwise), JWT_EXPIRES_MIN (60)
- OTP_EXPIRES_MIN (10), OTP_MAX_ATTEMPTS (5)
- STUDIO_INCLUDE_OTP_IN_RESPONSE (default on; echoes the code for local dev)
"""

import logging
import os
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import RLock
from typing import Dict, Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import EmailStr

from ..core.config import env_int
from ..domain.errors import AuthenticationError, PasscodeError
from ..domain.session_models import StudioModel


logger = logging.getLogger("studio.auth")
bearer_scheme = HTTPBearer(auto_error=False)

DEMO_USERS = {"demo@example.com": "Demo User"}


@dataclass(frozen=True)
class AuthSettings:
    jwt_secret: str = "dev-secret-change-me"
    jwt_algorithm: str = "HS256"
    token_ttl_min: int = 60
    otp_ttl_min: int = 10
    otp_max_attempts: int = 5
    echo_otp: bool = True

    @staticmethod
    def from_env() -> "AuthSettings":
        return AuthSettings(
            jwt_secret=os.getenv("JWT_SECRET") or "dev-secret-change-me",
            token_ttl_min=env_int("JWT_EXPIRES_MIN", 60),
            otp_ttl_min=env_int("OTP_EXPIRES_MIN", 10),
            otp_max_attempts=env_int("OTP_MAX_ATTEMPTS", 5),
            echo_otp=os.getenv("STUDIO_INCLUDE_OTP_IN_RESPONSE", "1").lower() in ("1", "true", "yes"),
        )


class User(StudioModel):
    email: EmailStr
    name: str


class PasscodeRequest(StudioModel):
    email: EmailStr


class PasscodeRedemption(StudioModel):
    email: EmailStr
    code: str
    name: Optional[str] = None


class AccessGrant(StudioModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: User


@dataclass
class _Passcode:
    code: str
    expires_at: datetime
    attempts: int = 0


class UserDirectory:
    """In-memory accounts keyed by lower-cased email."""

    def __init__(self, seed: Optional[Dict[str, str]] = None) -> None:
        self._names: Dict[str, str] = dict(seed or {})
        self._lock = RLock()

    def lookup(self, email: str) -> Optional[User]:
        with self._lock:
            name = self._names.get(email.lower())
        return User(email=email.lower(), name=name) if name is not None else None

    def upsert(self, email: str, name: str) -> User:
        with self._lock:
            self._names[email.lower()] = name
        return User(email=email.lower(), name=name)


class PasscodeBook:
    """Outstanding passcodes, one per email."""

    def __init__(self) -> None:
        self._entries: Dict[str, _Passcode] = {}
        self._lock = RLock()

    def peek(self, email: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(email.lower())
            return entry.code if entry else None

    def issue(self, email: str, ttl_min: int) -> str:
        key = email.lower()
        now = datetime.now(timezone.utc)
        with self._lock:
            entry = self._entries.get(key)
            # An unexpired code is re-sent rather than replaced
            if entry and entry.expires_at > now:
                return entry.code
            code = "".join(secrets.choice("0123456789") for _ in range(6))
            self._entries[key] = _Passcode(code=code, expires_at=now + timedelta(minutes=ttl_min))
        logger.info("Issued passcode for %s (ttl %s min)", key, ttl_min)
        return code

    def redeem(self, email: str, code: str, max_attempts: int) -> None:
        key = email.lower()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                raise PasscodeError("OTP not requested")
            if entry.expires_at < datetime.now(timezone.utc):
                del self._entries[key]
                raise PasscodeError("OTP expired")
            entry.attempts += 1
            if entry.attempts > max_attempts:
                del self._entries[key]
                raise PasscodeError("Too many invalid attempts")
            if not secrets.compare_digest(entry.code.encode(), code.encode()):
                raise PasscodeError("Invalid code")
            del self._entries[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


_directory = UserDirectory(DEMO_USERS)
_passcodes = PasscodeBook()


def get_user_directory() -> UserDirectory:
    return _directory


def get_passcode_book() -> PasscodeBook:
    return _passcodes


def issue_passcode(email: str, settings: Optional[AuthSettings] = None) -> str:
    settings = settings or AuthSettings.from_env()
    return get_passcode_book().issue(email, settings.otp_ttl_min)


def redeem_passcode(email: str, code: str, name: Optional[str] = None, settings: Optional[AuthSettings] = None) -> User:
    """Consume the passcode and return the (possibly new) account."""
    settings = settings or AuthSettings.from_env()
    get_passcode_book().redeem(email, code, settings.otp_max_attempts)
    directory = get_user_directory()
    user = directory.lookup(email)
    if user is None:
        if not name:
            raise PasscodeError("Name required to create account")
        logger.info("Registered %s", email.lower())
        return directory.upsert(email, name)
    if name and name != user.name:
        return directory.upsert(email, name)
    return user


def create_access_token(user: User, settings: Optional[AuthSettings] = None) -> str:
    settings = settings or AuthSettings.from_env()
    now = datetime.now(timezone.utc)
    claims = {
        "sub": user.email,
        "name": user.name,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=settings.token_ttl_min)).timestamp()),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def grant_access(user: User, settings: Optional[AuthSettings] = None) -> AccessGrant:
    settings = settings or AuthSettings.from_env()
    return AccessGrant(
        access_token=create_access_token(user, settings),
        expires_in=settings.token_ttl_min * 60,
        user=user,
    )


def decode_token(token: str, settings: Optional[AuthSettings] = None) -> User:
    settings = settings or AuthSettings.from_env()
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")
    return User(email=claims["sub"], name=claims.get("name", ""))


def get_current_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> User:
    if creds is None or (creds.scheme or "").lower() != "bearer":
        raise AuthenticationError("Missing bearer token")
    return decode_token(creds.credentials)
