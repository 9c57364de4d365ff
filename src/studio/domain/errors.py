from __future__ import annotations

"""Domain errors translated into response envelopes by ``api.errors``."""

from typing import Dict, Optional


class StudioError(Exception):
    status_code = 500

    def __init__(self, message: str, headers: Optional[Dict[str, str]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.headers = headers


class NotFoundError(StudioError, LookupError):
    """Missing resource. Foreign-owned sessions raise this too."""

    status_code = 404


class ConcurrentUpdateError(StudioError):
    status_code = 409


class InvalidTransitionError(StudioError):
    status_code = 400


class AuthenticationError(StudioError):
    status_code = 401


class PasscodeError(StudioError):
    """Rejected one-time passcode verification."""

    status_code = 400


class RateLimitExceeded(StudioError):
    status_code = 429

    def __init__(self, message: str, retry_after_seconds: int) -> None:
        super().__init__(message, headers={"Retry-After": str(retry_after_seconds)})
        self.retry_after_seconds = retry_after_seconds


class GenerationError(StudioError):
    status_code = 500


class ProviderCredentialError(GenerationError):
    pass


class ProviderQuotaError(GenerationError):
    pass


class ProviderConfigError(RuntimeError):
    """Raised at start-up when the AI provider cannot be configured."""
