"""
User management service.
"""

from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolerp.auth.password import PasswordHasher
from schoolerp.auth.scope import CallerIdentity
from schoolerp.db.models import Role, User
from schoolerp.errors import ConflictError
from schoolerp.services.audit import AuditService

logger = structlog.get_logger()


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserService:
    """Service for user lookups and credential updates."""

    def __init__(self, db: AsyncSession, hasher: PasswordHasher | None = None):
        self.db = db
        self.hasher = hasher or PasswordHasher()
        self.audit = AuditService(db)

    async def create(
        self,
        email: str,
        password: str,
        full_name: str,
        role: Role,
        school_id: UUID | None = None,
    ) -> User:
        """
        Create a new user.

        Args:
            email: User email (unique, stored lower-case)
            password: Plain text password (will be hashed)
            full_name: Display name
            role: User role
            school_id: School the user belongs to; None only for SUPERADMIN

        Returns:
            Created user

        Raises:
            ConflictError: If email already exists
        """
        email = normalize_email(email)
        if await self.get_by_email(email):
            raise ConflictError(f"User with email '{email}' already exists", code="DUPLICATE_VALUE")

        user = User(
            school_id=school_id,
            email=email,
            password_hash=await self.hasher.hash_async(password),
            full_name=full_name,
            role=role,
        )
        self.db.add(user)
        await self.db.flush()

        logger.info(
            "User created",
            user_id=str(user.id),
            school_id=str(school_id) if school_id else None,
            role=role.value,
        )
        return user

    async def get(self, user_id: UUID) -> User | None:
        """Get user by ID."""
        return await self.db.get(User, user_id)

    async def get_active(self, user_id: UUID) -> User | None:
        user = await self.get(user_id)
        if user is None or not user.is_active:
            return None
        return user

    async def get_by_email(self, email: str) -> User | None:
        """Get user by email."""
        result = await self.db.execute(
            select(User).where(User.email == normalize_email(email))
        )
        return result.scalar_one_or_none()

    async def set_password(self, user: User, new_password: str) -> None:
        """Stage a new password hash and invalidate outstanding reset tokens."""
        user.password_hash = await self.hasher.hash_async(new_password)
        user.password_version += 1
        await self.db.flush()

    async def deactivate(
        self,
        user_id: UUID,
        actor: CallerIdentity | None = None,
        ip_address: str | None = None,
    ) -> bool:
        """
        Soft delete a user (set is_active=False) and audit it.

        Args:
            user_id: User to deactivate
            actor: Caller performing the change, if any
            ip_address: Client address recorded with the audit row

        Returns:
            True if deactivated, False if not found or already inactive
        """
        user = await self.get(user_id)
        if not user or not user.is_active:
            return False

        user.is_active = False
        await self.audit.record(
            "USER_DEACTIVATED",
            "User",
            user.id,
            actor_id=actor.user_id if actor else None,
            school_id=user.school_id,
            meta={"email": user.email, "role": user.role.value},
            ip_address=ip_address,
        )
        logger.info("User deactivated", user_id=str(user_id))
        return True
