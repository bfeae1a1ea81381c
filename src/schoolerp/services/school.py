"""
School (tenant) management service.
"""

from uuid import UUID

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolerp.auth.scope import CallerIdentity, resolve_school_id
from schoolerp.db import atomic
from schoolerp.db.models import School, SchoolStatus
from schoolerp.errors import ConflictError, SchoolNotFoundError
from schoolerp.models import PageParams, SchoolCreate
from schoolerp.services.audit import AuditService

logger = structlog.get_logger()


class SchoolService:
    """Service for school CRUD operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def get(self, school_id: UUID) -> School | None:
        """Get school by ID."""
        return await self.db.get(School, school_id)

    async def get_or_raise(self, school_id: UUID) -> School:
        school = await self.get(school_id)
        if school is None:
            raise SchoolNotFoundError()
        return school

    async def get_by_code(self, code: str) -> School | None:
        """Get school by code."""
        result = await self.db.execute(select(School).where(School.code == code))
        return result.scalar_one_or_none()

    async def list(
        self,
        params: PageParams,
        search: str | None = None,
        status: SchoolStatus | None = None,
    ) -> tuple[list[School], int]:
        """
        List schools, newest first.

        Args:
            params: Page and page size
            search: Case-insensitive match on code, name or email
            status: Only schools in this status

        Returns:
            Tuple of (page of schools, total matching)
        """
        query = select(School)
        if status is not None:
            query = query.where(School.status == status)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(or_(
                School.code.ilike(pattern),
                School.name.ilike(pattern),
                School.email.ilike(pattern),
            ))

        total = await self.db.scalar(
            select(func.count()).select_from(query.order_by(None).subquery())
        )
        result = await self.db.execute(
            query.order_by(School.created_at.desc(), School.code)
            .limit(params.limit)
            .offset(params.offset)
        )
        return list(result.scalars().all()), total or 0

    async def create(
        self,
        payload: SchoolCreate,
        actor: CallerIdentity,
        ip_address: str | None = None,
    ) -> School:
        """
        Create a new school.

        Raises:
            ConflictError: If the code is already taken
        """
        if await self.get_by_code(payload.code):
            raise ConflictError(
                f"School with code '{payload.code}' already exists",
                code="DUPLICATE_VALUE",
            )

        async with atomic(self.db):
            school = School(
                code=payload.code,
                name=payload.name,
                email=payload.email,
                phone=payload.phone,
                timezone=payload.timezone,
                currency_code=payload.currency_code,
                status=payload.status,
            )
            self.db.add(school)
            await self.db.flush()
            await self.audit.record(
                "SCHOOL_CREATED",
                "School",
                school.id,
                actor_id=actor.user_id,
                school_id=school.id,
                meta={"code": school.code},
                ip_address=ip_address,
            )

        await self.db.refresh(school)
        logger.info("School created", school_id=str(school.id), code=school.code)
        return school

    async def set_status(
        self,
        school_id: UUID,
        status: SchoolStatus,
        actor: CallerIdentity,
        ip_address: str | None = None,
    ) -> School:
        """
        Change a school's status. Suspension is how schools are removed.

        Raises:
            SchoolNotFoundError: Unknown school
        """
        school = await self.get_or_raise(school_id)
        previous = school.status
        if previous == status:
            return school

        async with atomic(self.db):
            school.status = status
            await self.audit.record(
                "SCHOOL_STATUS_CHANGED",
                "School",
                school.id,
                actor_id=actor.user_id,
                school_id=school.id,
                meta={"from": previous.value, "to": status.value},
                ip_address=ip_address,
            )

        await self.db.refresh(school)
        logger.info(
            "School status changed",
            school_id=str(school.id),
            previous=previous.value,
            status=status.value,
        )
        return school

    async def profile(
        self,
        caller: CallerIdentity,
        requested: UUID | None = None,
    ) -> School:
        """School the caller belongs to, or the one a SUPERADMIN names."""
        school_id = resolve_school_id(caller, requested, require_for_privileged=True)
        return await self.get_or_raise(school_id)
