from __future__ import annotations

"""Fixed-window request limiting kept in process memory.

One ``FixedWindowLimiter`` backs both the per-IP HTTP ceiling
(RATE_LIMIT_MAX_REQUESTS per RATE_LIMIT_WINDOW_SEC) and the per-email
passcode request budget (OTP_REQUEST_LIMIT per OTP_REQUEST_WINDOW_SEC).
STUDIO_RATE_LIMIT_DISABLED switches both off; under pytest they are off
unless that variable is set explicitly.
"""

import math
import os
import time
from threading import RLock
from typing import Awaitable, Callable, Dict, Tuple

from fastapi.responses import JSONResponse
from starlette.requests import Request
from starlette.responses import Response

from ..api.envelope import fail
from ..core.config import env_int
from ..domain.errors import RateLimitExceeded


class FixedWindowLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._windows: Dict[Tuple[str, str], Tuple[int, float]] = {}
        self._lock = RLock()

    def hit(self, bucket: str, identifier: str, limit: int, window_seconds: int, message: str) -> None:
        """Count one hit; raise once ``limit`` hits landed in the current window."""
        now = self._clock()
        key = (bucket, identifier)
        with self._lock:
            count, resets_at = self._windows.get(key, (0, 0.0))
            if resets_at <= now:
                count, resets_at = 0, now + window_seconds
            if count >= limit:
                raise RateLimitExceeded(message, retry_after_seconds=max(math.ceil(resets_at - now), 1))
            self._windows[key] = (count + 1, resets_at)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


_limiter = FixedWindowLimiter()


def rate_limiting_disabled() -> bool:
    flag = os.getenv("STUDIO_RATE_LIMIT_DISABLED")
    if flag is not None:
        return flag.lower() in ("1", "true", "yes", "on")
    return bool(os.getenv("PYTEST_CURRENT_TEST"))


def limit_passcode_requests(identifier: str) -> None:
    if rate_limiting_disabled():
        return
    _limiter.hit(
        "otp",
        identifier,
        env_int("OTP_REQUEST_LIMIT", 5),
        env_int("OTP_REQUEST_WINDOW_SEC", 900),
        "Too many OTP requests. Please try again later.",
    )


def reset_rate_limits() -> None:
    _limiter.reset()


def rate_limit_middleware_factory() -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    async def middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        if not rate_limiting_disabled():
            host = request.client.host if request.client else "unknown"
            try:
                _limiter.hit(
                    "http",
                    host,
                    env_int("RATE_LIMIT_MAX_REQUESTS", 100),
                    env_int("RATE_LIMIT_WINDOW_SEC", 900),
                    "Too many requests from this IP, please try again later.",
                )
            except RateLimitExceeded as exc:
                return JSONResponse(status_code=exc.status_code, content=fail(exc.message), headers=exc.headers)
        return await call_next(request)

    return middleware
