"""
School API routes.

Platform administration lives under ``/superadmin``; ``/school/profile`` is
the tenant-scoped view of a single school.
"""

from typing import Annotated
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from schoolerp.auth.dependencies import PlatformAdmin, SchoolReader, client_ip
from schoolerp.db import get_db
from schoolerp.db.models import SchoolStatus
from schoolerp.models import (
    DEFAULT_PAGE_SIZE,
    Page,
    PageParams,
    PaginationMeta,
    SchoolCreate,
    SchoolResponse,
    SchoolStatusUpdate,
    SuccessResponse,
    ok,
)
from schoolerp.services.school import SchoolService

logger = structlog.get_logger()

superadmin_router = APIRouter(prefix="/superadmin/schools", tags=["Schools"])
school_router = APIRouter(prefix="/school", tags=["Schools"])


@superadmin_router.get("", response_model=SuccessResponse[Page[SchoolResponse]])
async def list_schools(
    user: PlatformAdmin,
    db: Annotated[AsyncSession, Depends(get_db)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1)] = DEFAULT_PAGE_SIZE,
    search: Annotated[str | None, Query(min_length=1)] = None,
    school_status: Annotated[SchoolStatus | None, Query(alias="status")] = None,
) -> SuccessResponse[Page[SchoolResponse]]:
    """List schools, optionally filtered by status or a search term."""
    params = PageParams(page=page, limit=limit)
    schools, total = await SchoolService(db).list(params, search=search, status=school_status)
    return ok(Page[SchoolResponse](
        items=[SchoolResponse.model_validate(s) for s in schools],
        pagination=PaginationMeta.build(total, params.page, params.limit),
    ))


@superadmin_router.post(
    "",
    response_model=SuccessResponse[SchoolResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_school(
    body: SchoolCreate,
    request: Request,
    user: PlatformAdmin,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SuccessResponse[SchoolResponse]:
    school = await SchoolService(db).create(body, user, ip_address=client_ip(request))
    return ok(SchoolResponse.model_validate(school))


@superadmin_router.patch("/{school_id}/status", response_model=SuccessResponse[SchoolResponse])
async def update_school_status(
    school_id: UUID,
    body: SchoolStatusUpdate,
    request: Request,
    user: PlatformAdmin,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SuccessResponse[SchoolResponse]:
    """
    Activate, park or suspend a school.

    Schools are never deleted; suspending one is the removal path.
    """
    school = await SchoolService(db).set_status(
        school_id,
        body.status,
        user,
        ip_address=client_ip(request),
    )
    return ok(SchoolResponse.model_validate(school))


@school_router.get("/profile", response_model=SuccessResponse[SchoolResponse])
async def get_school_profile(
    user: SchoolReader,
    db: Annotated[AsyncSession, Depends(get_db)],
    school_id: Annotated[UUID | None, Query(alias="schoolId")] = None,
) -> SuccessResponse[SchoolResponse]:
    """
    Get the caller's school.

    A SUPERADMIN must name the school with ``schoolId``.
    """
    school = await SchoolService(db).profile(user, school_id)
    return ok(SchoolResponse.model_validate(school))
