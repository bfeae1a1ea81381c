"""
Authentication service.

Handles login, token rotation, logout and the password-reset flows. Every
multi-step mutation runs inside one ``atomic`` block.
"""

import secrets
from datetime import timedelta
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from schoolerp.auth.jwt import TokenError, TokenIssuer, TokenKind
from schoolerp.auth.password import PasswordHasher
from schoolerp.auth.schemas import (
    ForgotPasswordResponse,
    ResetTokenResponse,
    SessionTokens,
    UserResponse,
)
from schoolerp.clock import SystemClock
from schoolerp.config import Settings
from schoolerp.db import atomic
from schoolerp.db.models import User
from schoolerp.errors import (
    AuthenticationError,
    BadRequestError,
    InvalidCredentialsError,
    InvalidOtpError,
    InvalidRefreshTokenError,
    InvalidResetTokenError,
    MailNotConfiguredError,
    ServerError,
    UserNotFoundError,
)
from schoolerp.services.ledger import TokenLedger, hash_token
from schoolerp.services.mailer import Mailer
from schoolerp.services.user import UserService, normalize_email

logger = structlog.get_logger()

FORGOT_PASSWORD_MESSAGE = "If your account exists, a verification code has been generated"


def generate_otp() -> str:
    """Six-digit numeric code from a CSPRNG."""
    return str(100000 + secrets.randbelow(900000))


def _parse_user_id(sub: str) -> UUID | None:
    try:
        return UUID(sub)
    except ValueError:
        return None


class AuthService:
    """Service for authentication operations."""

    def __init__(
        self,
        db: AsyncSession,
        issuer: TokenIssuer,
        mailer: Mailer,
        settings: Settings,
        clock=None,
        hasher: PasswordHasher | None = None,
    ):
        self.db = db
        self.issuer = issuer
        self.mailer = mailer
        self.settings = settings
        self.clock = clock or issuer.clock or SystemClock()
        self.hasher = hasher or PasswordHasher.from_settings(settings)
        self.users = UserService(db, self.hasher)
        self.ledger = TokenLedger(db, clock=self.clock, hasher=self.hasher)

    async def _start_session(self, user: User) -> SessionTokens:
        """Issue a token pair and stage its ledger entry."""
        access_token = self.issuer.issue_access(user)
        refresh = self.issuer.issue_refresh(user)
        await self.ledger.record_refresh_token(user.id, refresh.token, refresh.expires_at)
        return SessionTokens(
            access_token=access_token,
            refresh_token=refresh.token,
            user=UserResponse.model_validate(user),
        )

    async def login(self, email: str, password: str) -> SessionTokens:
        """
        Authenticate user and return tokens.

        Args:
            email: User email (case-insensitive)
            password: User password

        Returns:
            Access and refresh tokens with the user profile

        Raises:
            InvalidCredentialsError: Unknown email, inactive account or wrong
                password, indistinguishably
        """
        user = await self.users.get_by_email(email)
        if not user or not user.is_active:
            logger.warning("auth_failure", reason="login_unknown_or_inactive")
            raise InvalidCredentialsError()

        if not await self.hasher.verify_async(password, user.password_hash):
            logger.warning("auth_failure", reason="login_bad_password", user_id=str(user.id))
            raise InvalidCredentialsError()

        async with atomic(self.db):
            tokens = await self._start_session(user)
            user.last_login_at = self.clock.now()

        logger.info("User logged in", user_id=str(user.id), role=user.role.value)
        return tokens

    async def refresh(self, refresh_token: str) -> SessionTokens:
        """
        Rotate a refresh token.

        The presented token is revoked and a new pair issued in the same
        transaction, so a rotated token can never be used again.

        Raises:
            InvalidRefreshTokenError: Bad signature, wrong kind, unknown,
                revoked or expired ledger entry, or inactive owner
        """
        try:
            token_data = self.issuer.verify(refresh_token, TokenKind.REFRESH)
        except TokenError as e:
            logger.warning("auth_failure", reason="refresh_token_rejected", error=str(e))
            raise InvalidRefreshTokenError() from e

        entry = await self.ledger.find_refresh_token(refresh_token)
        if entry is None or not self.ledger.is_live(entry):
            logger.warning("auth_failure", reason="refresh_token_not_live", user_id=token_data.sub)
            raise InvalidRefreshTokenError()

        user = await self.users.get_active(entry.user_id)
        if user is None or str(user.id) != token_data.sub:
            logger.warning("auth_failure", reason="refresh_token_owner_invalid", user_id=token_data.sub)
            raise InvalidRefreshTokenError()

        async with atomic(self.db):
            if not await self.ledger.revoke(entry.token_hash):
                # Lost a race with a concurrent rotation of the same token
                raise InvalidRefreshTokenError()
            tokens = await self._start_session(user)

        logger.info("Token refreshed", user_id=str(user.id))
        return tokens

    async def logout(self, refresh_token: str | None) -> None:
        """Revoke the given refresh token if it is known. Never fails."""
        if not refresh_token:
            return
        async with atomic(self.db):
            revoked = await self.ledger.revoke(hash_token(refresh_token))
        if revoked:
            logger.info("Refresh token revoked on logout")

    async def me(self, user_id: UUID) -> UserResponse:
        user = await self.users.get_active(user_id)
        if user is None:
            raise UserNotFoundError()
        return UserResponse.model_validate(user)

    async def forgot_password(self, email: str) -> ForgotPasswordResponse:
        """
        Start a password reset.

        The response has the same shape whether or not the account exists.
        Outside production it carries ``debug_otp`` (None for unknown
        accounts) so the flow can be exercised without a mail server.

        Raises:
            MailNotConfiguredError: Production without SMTP settings
            ServerError: Production and the mail server refused the message
        """
        email = normalize_email(email)
        expires_at = self.clock.now() + timedelta(
            minutes=self.settings.password_reset_otp_expire_minutes
        )

        if self.settings.is_production and not self.mailer.is_configured:
            logger.error("Password reset requested but mail is not configured")
            raise MailNotConfiguredError()

        user = await self.users.get_by_email(email)
        otp = None
        if user and user.is_active:
            otp = generate_otp()
            async with atomic(self.db):
                await self.ledger.record_otp(email, otp, expires_at)

            sent = await self.mailer.send_password_reset_otp(
                email,
                otp,
                self.settings.password_reset_otp_expire_minutes,
            )
            if not sent:
                if self.settings.is_production:
                    raise ServerError("Unable to send OTP email", code="MAIL_DELIVERY_FAILED")
                logger.warning("Password reset OTP not delivered", user_id=str(user.id))
            logger.info("Password reset OTP issued", user_id=str(user.id))
        else:
            logger.info("Password reset requested for unknown or inactive account")

        response = ForgotPasswordResponse(
            message=FORGOT_PASSWORD_MESSAGE,
            otp_expires_at=expires_at,
        )
        if not self.settings.is_production:
            response.debug_otp = otp
        return response

    async def verify_otp(self, email: str, otp: str) -> ResetTokenResponse:
        """
        Exchange a valid OTP for a single-use password-reset token.

        Raises:
            InvalidOtpError: No matching unused, unexpired OTP, or no active
                account for the email
        """
        email = normalize_email(email)
        user = await self.users.get_by_email(email)
        if user is None or not user.is_active:
            raise InvalidOtpError()

        async with atomic(self.db):
            if not await self.ledger.consume_otp(email, otp):
                logger.warning("auth_failure", reason="otp_rejected", user_id=str(user.id))
                raise InvalidOtpError()

        reset = self.issuer.issue_password_reset(user)
        return ResetTokenResponse(
            reset_token=reset.token,
            expires_in=int(self.issuer.password_reset_lifetime.total_seconds()),
        )

    async def reset_password(self, reset_token: str, new_password: str) -> None:
        """
        Set a new password from a reset token.

        Revokes every refresh token the user holds and burns any OTPs still
        outstanding for the email. The token stops working once the password
        changes, because it is bound to the password version.

        Raises:
            InvalidResetTokenError: Bad or expired token, inactive user, email
                mismatch, or token already used
        """
        try:
            token_data = self.issuer.verify(reset_token, TokenKind.PASSWORD_RESET)
        except TokenError as e:
            logger.warning("auth_failure", reason="reset_token_rejected", error=str(e))
            raise InvalidResetTokenError() from e

        user_id = _parse_user_id(token_data.sub)
        user = await self.users.get_active(user_id) if user_id else None
        if (
            user is None
            or user.email != token_data.email
            or token_data.pwv != user.password_version
        ):
            logger.warning("auth_failure", reason="reset_token_stale", user_id=token_data.sub)
            raise InvalidResetTokenError()

        async with atomic(self.db):
            await self.users.set_password(user, new_password)
            await self.ledger.revoke_all_for_user(user.id)
            await self.ledger.burn_otps(user.email)

        logger.info("Password reset", user_id=str(user.id))

    async def change_password(
        self,
        user_id: UUID,
        current_password: str,
        new_password: str,
    ) -> None:
        """
        Change password for an authenticated user and end all their sessions.

        Raises:
            UserNotFoundError: Caller no longer exists or is inactive
            AuthenticationError: Current password is wrong
            BadRequestError: New password matches the current one
        """
        user = await self.users.get_active(user_id)
        if user is None:
            raise UserNotFoundError()

        if not await self.hasher.verify_async(current_password, user.password_hash):
            logger.warning("auth_failure", reason="change_password_bad_current", user_id=str(user.id))
            raise AuthenticationError("Current password is incorrect")

        if await self.hasher.verify_async(new_password, user.password_hash):
            raise BadRequestError("New password must be different from current password")

        async with atomic(self.db):
            await self.users.set_password(user, new_password)
            await self.ledger.revoke_all_for_user(user.id)

        logger.info("Password changed", user_id=str(user.id))
