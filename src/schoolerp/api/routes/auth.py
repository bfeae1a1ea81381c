"""
Authentication API routes.
"""

import structlog
from fastapi import APIRouter, Request

from schoolerp.auth.dependencies import Auth, CurrentUser, client_ip
from schoolerp.auth.rate_limit import LoginRateLimiter
from schoolerp.auth.schemas import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    LogoutRequest,
    MeResponse,
    MessageResponse,
    RefreshRequest,
    ResetPasswordRequest,
    ResetTokenResponse,
    SessionTokens,
    VerifyOtpRequest,
)
from schoolerp.errors import InvalidCredentialsError, RateLimitedError
from schoolerp.models import SuccessResponse, ok

logger = structlog.get_logger()

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/login", response_model=SuccessResponse[SessionTokens])
async def login(
    body: LoginRequest,
    request: Request,
    auth: Auth,
) -> SuccessResponse[SessionTokens]:
    """
    Authenticate user and get tokens.

    Failed attempts are counted per client IP; once the limit is reached
    further attempts are refused before credentials are checked.
    """
    limiter: LoginRateLimiter = request.app.state.login_limiter
    ip = client_ip(request)

    if await limiter.is_blocked(ip):
        logger.warning("auth_failure", reason="login_rate_limited", path=request.url.path, ip=ip)
        raise RateLimitedError("Too many failed login attempts. Try again later.")

    try:
        tokens = await auth.login(body.email, body.password)
    except InvalidCredentialsError:
        await limiter.record_failure(ip)
        raise
    return ok(tokens)


@router.post("/refresh", response_model=SuccessResponse[SessionTokens])
async def refresh_token(body: RefreshRequest, auth: Auth) -> SuccessResponse[SessionTokens]:
    """
    Rotate the refresh token and issue a new access token.
    """
    return ok(await auth.refresh(body.refresh_token))


@router.post("/logout", response_model=SuccessResponse[MessageResponse])
async def logout(
    auth: Auth,
    body: LogoutRequest | None = None,
) -> SuccessResponse[MessageResponse]:
    """Revoke the refresh token if one is given. Always succeeds."""
    await auth.logout(body.refresh_token if body else None)
    return ok(MessageResponse(message="Logged out"))


@router.get("/me", response_model=SuccessResponse[MeResponse])
async def get_current_user_info(
    current_user: CurrentUser,
    auth: Auth,
) -> SuccessResponse[MeResponse]:
    """
    Get current authenticated user info.
    """
    user = await auth.me(current_user.user_id)
    return ok(MeResponse(user=user))


@router.post(
    "/forgot-password",
    response_model=SuccessResponse[ForgotPasswordResponse],
    response_model_exclude_unset=True,
)
async def forgot_password(
    body: ForgotPasswordRequest,
    auth: Auth,
) -> SuccessResponse[ForgotPasswordResponse]:
    """
    Send a password-reset OTP.

    Responds identically whether or not the account exists.
    """
    return ok(await auth.forgot_password(body.email))


@router.post("/verify-otp", response_model=SuccessResponse[ResetTokenResponse])
async def verify_otp(body: VerifyOtpRequest, auth: Auth) -> SuccessResponse[ResetTokenResponse]:
    """Exchange an OTP for a short-lived password-reset token."""
    return ok(await auth.verify_otp(body.email, body.otp))


@router.post("/reset-password", response_model=SuccessResponse[MessageResponse])
async def reset_password(
    body: ResetPasswordRequest,
    auth: Auth,
) -> SuccessResponse[MessageResponse]:
    await auth.reset_password(body.reset_token, body.new_password)
    return ok(MessageResponse(message="Password reset successful. Please login again."))


@router.post("/change-password", response_model=SuccessResponse[MessageResponse])
async def change_password(
    body: ChangePasswordRequest,
    current_user: CurrentUser,
    auth: Auth,
) -> SuccessResponse[MessageResponse]:
    """Change password and sign out every session."""
    await auth.change_password(
        current_user.user_id,
        body.current_password,
        body.new_password,
    )
    return ok(MessageResponse(message="Password changed successfully. Please login again."))
