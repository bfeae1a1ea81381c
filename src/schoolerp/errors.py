"""
Typed service errors.

Every domain failure is raised as a ``ServiceError`` subclass carrying an HTTP
status and a stable machine-readable code; the API layer serializes them in
one place.
"""


class ServiceError(Exception):
    """Base class for errors mapped to HTTP responses."""

    status_code: int = 400
    code: str = "REQUEST_ERROR"
    default_message: str = "Request failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ServiceError):
    """Malformed input (400)."""
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class BadRequestError(ServiceError):
    """Well-formed input that cannot be accepted (400)."""
    status_code = 400
    code = "BAD_REQUEST"
    default_message = "Bad request"


class AuthenticationError(ServiceError):
    """Missing or rejected credentials (401)."""
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Unauthorized"


class ForbiddenError(ServiceError):
    """Authenticated but not allowed (403)."""
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Forbidden"


class NotFoundError(ServiceError):
    """Resource absent within the caller's scope (404)."""
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found"


class ConflictError(ServiceError):
    """Unique constraint violation (409)."""
    status_code = 409
    code = "CONFLICT"
    default_message = "Conflict"


class RateLimitedError(ServiceError):
    """Too many attempts (429)."""
    status_code = 429
    code = "TOO_MANY_REQUESTS"
    default_message = "Too many requests"


class ServerError(ServiceError):
    """Server-side failure safe to report (500)."""
    status_code = 500
    code = "INTERNAL_SERVER_ERROR"
    default_message = "Something went wrong"


# =============================================================================
# Authenticator
# =============================================================================

class MissingTokenError(AuthenticationError):
    default_message = "Missing access token"


class InvalidTokenError(AuthenticationError):
    default_message = "Invalid or expired access token"


class TokenExpiredError(AuthenticationError):
    code = "TOKEN_EXPIRED"
    default_message = "Access token expired"


class RefreshTokenUsedAsAccessError(AuthenticationError):
    code = "REFRESH_TOKEN_NOT_ALLOWED"
    default_message = (
        "Refresh token cannot be used here. Send accessToken in Authorization header."
    )


# =============================================================================
# Session flows
# =============================================================================

class InvalidCredentialsError(AuthenticationError):
    default_message = "Invalid email or password"


class InvalidRefreshTokenError(AuthenticationError):
    code = "INVALID_REFRESH_TOKEN"
    default_message = "Refresh token is revoked or invalid"


class InvalidResetTokenError(AuthenticationError):
    code = "INVALID_RESET_TOKEN"
    default_message = "Invalid or expired reset token"


class InvalidOtpError(ServiceError):
    status_code = 400
    code = "INVALID_OTP"
    default_message = "Invalid or expired OTP"


class UserNotFoundError(NotFoundError):
    code = "USER_NOT_FOUND"
    default_message = "User not found"


class MailNotConfiguredError(ServerError):
    code = "MAIL_NOT_CONFIGURED"
    default_message = "Email service is not configured"


# =============================================================================
# Tenant scope
# =============================================================================

class TenantContextRequiredError(ForbiddenError):
    code = "SCHOOL_CONTEXT_REQUIRED"
    default_message = "schoolId is required for SUPERADMIN"


class TenantContextMissingError(ForbiddenError):
    code = "SCHOOL_CONTEXT_MISSING"
    default_message = "School context is missing for current user"


class CrossTenantAccessError(ForbiddenError):
    default_message = "Cannot access another school's data"


# =============================================================================
# Resources
# =============================================================================

class SchoolNotFoundError(NotFoundError):
    code = "SCHOOL_NOT_FOUND"
    default_message = "School not found"


class InvoiceNotFoundError(NotFoundError):
    code = "INVOICE_NOT_FOUND"
    default_message = "Invoice not found"


__all__ = [
    "ServiceError",
    "ValidationError",
    "BadRequestError",
    "AuthenticationError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "RateLimitedError",
    "ServerError",
    "MissingTokenError",
    "InvalidTokenError",
    "TokenExpiredError",
    "RefreshTokenUsedAsAccessError",
    "InvalidCredentialsError",
    "InvalidRefreshTokenError",
    "InvalidResetTokenError",
    "InvalidOtpError",
    "UserNotFoundError",
    "MailNotConfiguredError",
    "TenantContextRequiredError",
    "TenantContextMissingError",
    "CrossTenantAccessError",
    "SchoolNotFoundError",
    "InvoiceNotFoundError",
]
