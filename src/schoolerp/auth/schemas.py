"""
Pydantic schemas for authentication.

Bodies are camelCase on the wire and snake_case in Python.
"""

from datetime import datetime
from uuid import UUID

from pydantic import EmailStr, Field, field_validator
from pydantic_core import PydanticCustomError

from schoolerp.auth.password import password_policy_violation
from schoolerp.db.models import Role
from schoolerp.models import CamelModel


def _check_password_policy(value: str) -> str:
    violation = password_policy_violation(value)
    if violation:
        raise PydanticCustomError("password_policy", violation)
    return value


# =============================================================================
# Requests
# =============================================================================

class LoginRequest(CamelModel):
    """User login request."""
    email: EmailStr
    password: str = Field(min_length=6)


class RefreshRequest(CamelModel):
    """Token refresh request - only needs refresh_token."""
    refresh_token: str = Field(min_length=1)


class LogoutRequest(CamelModel):
    refresh_token: str | None = Field(default=None, min_length=1)


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class VerifyOtpRequest(CamelModel):
    email: EmailStr
    otp: str = Field(pattern=r"^\d{6}$")

    @field_validator("otp", mode="before")
    @classmethod
    def strip_otp(cls, v):
        return v.strip() if isinstance(v, str) else v


class ResetPasswordRequest(CamelModel):
    reset_token: str = Field(min_length=1)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def check_policy(cls, v: str) -> str:
        return _check_password_policy(v)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=6)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def check_policy(cls, v: str) -> str:
        return _check_password_policy(v)


# =============================================================================
# Responses
# =============================================================================

class UserResponse(CamelModel):
    """User response (no sensitive data)."""
    id: UUID
    full_name: str
    email: str
    role: Role
    school_id: UUID | None
    is_active: bool


class SessionTokens(CamelModel):
    """Access and refresh token pair with the user they belong to."""
    access_token: str
    refresh_token: str
    user: UserResponse


class MeResponse(CamelModel):
    user: UserResponse


class MessageResponse(CamelModel):
    message: str


class ForgotPasswordResponse(CamelModel):
    message: str
    otp_expires_at: datetime
    debug_otp: str | None = None


class ResetTokenResponse(CamelModel):
    reset_token: str
    expires_in: int = Field(description="Reset token lifetime in seconds")
