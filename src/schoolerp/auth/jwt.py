"""
JWT token handling.

Creates and validates access, refresh and password-reset tokens. Each kind is
signed with its own secret and carries its kind in the ``token_type`` claim.
"""

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID, uuid4

import structlog
from jose import JWTError, jwt
from pydantic import BaseModel

from schoolerp.clock import SystemClock
from schoolerp.config import Settings
from schoolerp.db.models import Role, User

logger = structlog.get_logger()


class TokenKind(str, enum.Enum):
    ACCESS = "access"
    REFRESH = "refresh"
    PASSWORD_RESET = "password_reset"


class TokenData(BaseModel):
    """Decoded token data."""
    sub: str  # User ID
    email: str = ""
    role: Role | None = None
    school_id: UUID | None = None
    token_type: TokenKind
    jti: str | None = None
    pwv: int | None = None
    exp: datetime


class TokenError(Exception):
    """Token validation error."""
    pass


class TokenExpired(TokenError):
    """Signature was valid but the token is past its expiry."""
    pass


@dataclass(frozen=True)
class IssuedToken:
    token: str
    jti: str
    expires_at: datetime


class AccessVerdict(str, enum.Enum):
    """Outcome of checking a bearer token presented to a protected route."""
    VERIFIED = "verified"
    EXPIRED = "expired"
    INVALID = "invalid"
    REFRESH_TOKEN = "refresh_token"


class TokenIssuer:
    """
    Mints and verifies the three token kinds.

    Expiry is evaluated against the injected clock, not the library's own
    notion of "now".
    """

    def __init__(self, settings: Settings, clock=None):
        self.settings = settings
        self.clock = clock or SystemClock()
        self._secrets = {
            TokenKind.ACCESS: settings.jwt_access_secret,
            TokenKind.REFRESH: settings.jwt_refresh_secret,
            TokenKind.PASSWORD_RESET: settings.effective_password_reset_secret,
        }
        self._lifetimes = {
            TokenKind.ACCESS: timedelta(minutes=settings.access_token_expire_minutes),
            TokenKind.REFRESH: timedelta(days=settings.refresh_token_expire_days),
            TokenKind.PASSWORD_RESET: timedelta(
                minutes=settings.password_reset_token_expire_minutes
            ),
        }

    @property
    def password_reset_lifetime(self) -> timedelta:
        return self._lifetimes[TokenKind.PASSWORD_RESET]

    def _encode(self, kind: TokenKind, claims: dict[str, Any]) -> tuple[str, datetime]:
        now = self.clock.now()
        expire = now + self._lifetimes[kind]
        payload = {
            **claims,
            "token_type": kind.value,
            "iat": int(now.timestamp()),
            "exp": int(expire.timestamp()),
        }
        token = jwt.encode(payload, self._secrets[kind], algorithm=self.settings.jwt_algorithm)
        return token, datetime.fromtimestamp(payload["exp"], tz=timezone.utc)

    @staticmethod
    def _identity_claims(user: User) -> dict[str, Any]:
        return {
            "sub": str(user.id),
            "email": user.email,
            "role": user.role.value,
            "school_id": str(user.school_id) if user.school_id else None,
        }

    def issue_access(self, user: User) -> str:
        """
        Create a JWT access token.

        Args:
            user: Authenticated user

        Returns:
            Encoded JWT token
        """
        token, expire = self._encode(TokenKind.ACCESS, self._identity_claims(user))
        logger.debug(
            "Access token created",
            user_id=str(user.id),
            expires_at=expire.isoformat(),
        )
        return token

    def issue_refresh(self, user: User) -> IssuedToken:
        """
        Create a JWT refresh token.

        The ``jti`` makes every refresh token distinct, so two tokens minted
        in the same second for the same user still hash differently.
        """
        jti = str(uuid4())
        token, expire = self._encode(
            TokenKind.REFRESH,
            {**self._identity_claims(user), "jti": jti},
        )
        logger.debug(
            "Refresh token created",
            user_id=str(user.id),
            expires_at=expire.isoformat(),
        )
        return IssuedToken(token=token, jti=jti, expires_at=expire)

    def issue_password_reset(self, user: User) -> IssuedToken:
        """Create a single-use password-reset token bound to the current password version."""
        jti = str(uuid4())
        token, expire = self._encode(
            TokenKind.PASSWORD_RESET,
            {
                "sub": str(user.id),
                "email": user.email,
                "jti": jti,
                "pwv": user.password_version,
            },
        )
        return IssuedToken(token=token, jti=jti, expires_at=expire)

    def verify(self, token: str, kind: TokenKind) -> TokenData:
        """
        Decode and validate a token of the given kind.

        Args:
            token: Encoded JWT token
            kind: Kind the caller expects

        Returns:
            Decoded token data

        Raises:
            TokenExpired: If the signature is valid but the token has expired
            TokenError: If the token is malformed, tampered with, or of another kind
        """
        try:
            payload = jwt.decode(
                token,
                self._secrets[kind],
                algorithms=[self.settings.jwt_algorithm],
                options={"verify_exp": False},
            )
        except JWTError as e:
            raise TokenError(f"Invalid token: {e}") from e

        exp = payload.get("exp")
        if not isinstance(exp, (int, float)):
            raise TokenError("Token missing expiry")
        expires_at = datetime.fromtimestamp(exp, tz=timezone.utc)
        if expires_at <= self.clock.now():
            raise TokenExpired("Token expired")

        if payload.get("token_type") != kind.value:
            raise TokenError("Unexpected token type")

        if not isinstance(payload.get("sub"), str) or not payload["sub"]:
            raise TokenError("Token missing subject")

        try:
            return TokenData(
                sub=payload["sub"],
                email=payload.get("email") or "",
                role=payload.get("role"),
                school_id=payload.get("school_id"),
                token_type=kind,
                jti=payload.get("jti"),
                pwv=payload.get("pwv"),
                exp=expires_at,
            )
        except ValueError as e:
            raise TokenError(f"Malformed claims: {e}") from e

    def classify_access_token(self, token: str) -> tuple[AccessVerdict, TokenData | None]:
        """
        Check a token presented to a protected route.

        Stage one verifies against the access secret. Only if that fails is
        stage two attempted: a token that verifies as a refresh token is
        reported as such so the client can be pointed at the refresh flow.
        Otherwise an expired access token is distinguished from any other
        failure.
        """
        try:
            return AccessVerdict.VERIFIED, self.verify(token, TokenKind.ACCESS)
        except TokenExpired:
            access_failure = AccessVerdict.EXPIRED
        except TokenError:
            access_failure = AccessVerdict.INVALID

        try:
            self.verify(token, TokenKind.REFRESH)
        except TokenError:
            return access_failure, None
        return AccessVerdict.REFRESH_TOKEN, None
