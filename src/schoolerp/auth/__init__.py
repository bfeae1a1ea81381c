"""
Authentication and authorization module.

Provides JWT-based authentication, role capabilities and tenant scoping.
FastAPI dependencies live in ``schoolerp.auth.dependencies``.
"""

from schoolerp.auth.jwt import (
    AccessVerdict,
    TokenData,
    TokenError,
    TokenExpired,
    TokenIssuer,
    TokenKind,
)
from schoolerp.auth.permissions import Capability, has_capability
from schoolerp.auth.scope import CallerIdentity, resolve_school_id

__all__ = [
    # JWT
    "AccessVerdict",
    "TokenData",
    "TokenError",
    "TokenExpired",
    "TokenIssuer",
    "TokenKind",
    # Authorization
    "Capability",
    "has_capability",
    "CallerIdentity",
    "resolve_school_id",
]
