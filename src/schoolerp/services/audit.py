"""
Audit trail.
"""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from schoolerp.db.models import AuditLog

logger = structlog.get_logger()


class AuditService:
    """Stages audit rows alongside the mutation they describe."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        action: str,
        entity: str,
        entity_id: UUID | str | None = None,
        *,
        actor_id: UUID | None = None,
        school_id: UUID | None = None,
        meta: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuditLog:
        entry = AuditLog(
            school_id=school_id,
            actor_id=actor_id,
            action=action,
            entity=entity,
            entity_id=str(entity_id) if entity_id is not None else None,
            meta=meta or {},
            ip_address=ip_address,
            user_agent=user_agent[:500] if user_agent else None,
        )
        self.db.add(entry)
        await self.db.flush()
        logger.info(
            "Audit event",
            action=action,
            entity=entity,
            entity_id=entry.entity_id,
            actor_id=str(actor_id) if actor_id else None,
        )
        return entry
