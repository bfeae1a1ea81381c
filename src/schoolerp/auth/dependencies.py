"""
FastAPI dependencies for authentication.

Provides reusable dependencies for route protection.
"""

import re
from typing import Annotated

import structlog
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from schoolerp.auth.jwt import AccessVerdict, TokenIssuer
from schoolerp.auth.permissions import Capability, has_capability
from schoolerp.auth.scope import CallerIdentity
from schoolerp.db import get_db
from schoolerp.errors import (
    AuthenticationError,
    ForbiddenError,
    InvalidTokenError,
    MissingTokenError,
    RefreshTokenUsedAsAccessError,
    TokenExpiredError,
)
from schoolerp.services.auth import AuthService

logger = structlog.get_logger()

# Checked in order; the last one is a misspelling some clients send
TOKEN_HEADERS = (
    "authorization",
    "x-access-token",
    "auth-token",
    "token",
    "auothorization",
)
TOKEN_COOKIE = "accessToken"

_BEARER = re.compile(r"^Bearer\s+", re.IGNORECASE)


def parse_token_value(value: str | None) -> str | None:
    """
    Normalize a raw header value into a bare token.

    Strips a ``Bearer`` prefix (twice, for clients that send
    ``Bearer Bearer <token>``), surrounding quotes, and rejects the literal
    strings ``undefined`` and ``null``.
    """
    if not value or not value.strip():
        return None

    token = _BEARER.sub("", value.strip()).strip()
    token = token.strip("'\"").strip()
    token = _BEARER.sub("", token).strip()

    if not token or token in ("undefined", "null"):
        return None
    return token


def extract_access_token(request: Request) -> str | None:
    """Find the access token in the first header that carries one, else the cookie."""
    for header in TOKEN_HEADERS:
        token = parse_token_value(request.headers.get(header))
        if token:
            return token

    cookie = request.cookies.get(TOKEN_COOKIE)
    if cookie and cookie.strip():
        return cookie.strip()
    return None


def client_ip(request: Request) -> str:
    if request.client and request.client.host:
        return request.client.host
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return "unknown"


def log_auth_failure(request: Request, reason: str) -> None:
    logger.warning(
        "auth_failure",
        reason=reason,
        path=request.url.path,
        ip=client_ip(request),
    )


# =============================================================================
# Application components
# =============================================================================

def get_issuer(request: Request) -> TokenIssuer:
    return request.app.state.issuer


def get_auth_service(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AuthService:
    state = request.app.state
    return AuthService(
        db,
        issuer=state.issuer,
        mailer=state.mailer,
        settings=state.settings,
        clock=state.clock,
        hasher=state.hasher,
    )


# =============================================================================
# Authentication
# =============================================================================

async def get_current_user(
    request: Request,
    issuer: Annotated[TokenIssuer, Depends(get_issuer)],
) -> CallerIdentity:
    """
    Extract and validate the caller from the access token.

    Usage:
        @router.get("/protected")
        async def protected(user: CurrentUser):
            return {"user_id": user.sub}

    Raises:
        MissingTokenError: No token in any accepted header or cookie
        RefreshTokenUsedAsAccessError: A refresh token was presented
        TokenExpiredError: Access token signature valid but expired
        InvalidTokenError: Anything else
    """
    token = extract_access_token(request)
    if token is None:
        log_auth_failure(request, "missing_access_token")
        raise MissingTokenError()

    verdict, token_data = issuer.classify_access_token(token)

    if verdict == AccessVerdict.REFRESH_TOKEN:
        log_auth_failure(request, "refresh_token_used_for_protected_route")
        raise RefreshTokenUsedAsAccessError()
    if verdict == AccessVerdict.EXPIRED:
        log_auth_failure(request, "expired_access_token")
        raise TokenExpiredError()
    if verdict != AccessVerdict.VERIFIED or token_data is None or token_data.role is None:
        log_auth_failure(request, "token_verification_failed")
        raise InvalidTokenError()

    logger.debug("User authenticated", user_id=token_data.sub)
    return CallerIdentity(
        sub=token_data.sub,
        email=token_data.email,
        role=token_data.role,
        school_id=token_data.school_id,
    )


def require_capability(capability: Capability):
    """
    Build a dependency that admits only roles holding ``capability``.

    Usage:
        @router.get("/invoices")
        async def list_invoices(user: Annotated[CallerIdentity, Depends(require_capability(Capability.FINANCE_READ))]):
            ...
    """

    async def check(
        user: Annotated[CallerIdentity, Depends(get_current_user)],
    ) -> CallerIdentity:
        if user.role is None:
            raise AuthenticationError("User context not found")
        if not has_capability(user.role, capability):
            logger.info(
                "Capability denied",
                user_id=user.sub,
                role=user.role.value,
                capability=capability.value,
            )
            raise ForbiddenError("Access denied for this role")
        return user

    return check


# Type aliases for cleaner route signatures
CurrentUser = Annotated[CallerIdentity, Depends(get_current_user)]
PlatformAdmin = Annotated[CallerIdentity, Depends(require_capability(Capability.PLATFORM_ADMIN))]
SchoolReader = Annotated[CallerIdentity, Depends(require_capability(Capability.SCHOOL_READ))]
FinanceReader = Annotated[CallerIdentity, Depends(require_capability(Capability.FINANCE_READ))]
FinanceWriter = Annotated[CallerIdentity, Depends(require_capability(Capability.FINANCE_WRITE))]
Auth = Annotated[AuthService, Depends(get_auth_service)]
