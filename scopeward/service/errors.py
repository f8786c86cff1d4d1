from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Each exception class defines both an HTTP status_code and a stable
    error_code:
    - unauthorized (401)
    - forbidden (403)
    - conflict / invalid_state (409)
    - server_error (500)
    """

    status_code: int = 400
    error_code: str = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class AuthenticationFailed(ServiceError):
    """Token missing, empty, unknown or expired (401)."""
    status_code = 401
    error_code = "unauthorized"


class RefreshFailed(ServiceError):
    """Refresh token rejected by the integration layer (403)."""
    status_code = 403
    error_code = "forbidden"


class InvalidState(ServiceError):
    """Operation requires a successfully authenticated session (409)."""
    status_code = 409
    error_code = "invalid_state"


class DuplicateScope(ServiceError):
    """A scope with the same canonical name is already registered (409)."""
    status_code = 409
    error_code = "conflict"


class MisconfiguredScope(ServiceError):
    """The scope lacks an option the calling path requires (500)."""
    status_code = 500
    error_code = "server_error"


__all__ = [
    "ServiceError",
    "AuthenticationFailed",
    "RefreshFailed",
    "InvalidState",
    "DuplicateScope",
    "MisconfiguredScope",
]
