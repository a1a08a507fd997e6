"""
BetScope - Authentication Errors

Typed failures raised by the identity services. One exception handler in
betscope.app renders every AuthError as the standard ErrorResponse body,
so services never build HTTP responses themselves.
"""

from fastapi import status


class AuthError(Exception):
    """Base class for identity failures surfaced to clients."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error_code: str = "auth_error"
    default_detail: str = "Authentication error"

    def __init__(self, detail: str = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidCredentialsError(AuthError):
    """Wrong email or password. Never says which one."""
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "invalid_credentials"
    default_detail = "Invalid credentials"


class DuplicateAccountError(AuthError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "duplicate_account"
    default_detail = "Account already exists"


class UnauthorizedError(AuthError):
    """Missing, malformed, expired or revoked credentials."""
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "unauthorized"
    default_detail = "Authentication required"


class ForbiddenError(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "forbidden"
    default_detail = "Permission denied"


class DeviceBlockedError(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "device_blocked"
    default_detail = "This device has been blocked"


class NotFoundError(AuthError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_found"
    default_detail = "Not found"


class InvalidTransitionError(AuthError):
    """A lifecycle method was called from a state that does not allow it."""
    status_code = status.HTTP_409_CONFLICT
    error_code = "invalid_transition"
    default_detail = "Invalid state transition"


class ExternalIdentityError(AuthError):
    """The external identity provider is disabled or failed."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "external_identity_unavailable"
    default_detail = "External identity provider unavailable"


class QuotaExceededError(AuthError):
    """The monthly prediction or chat allowance for the plan is used up."""
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error_code = "quota_exceeded"
    default_detail = "Monthly usage limit reached"
