"""
Tenant scope resolution.

Decides which school's data a request may touch. Every tenant-scoped read or
write calls ``resolve_school_id`` first and filters by the returned id.
"""

from dataclasses import dataclass
from uuid import UUID

from schoolerp.auth.permissions import PRIVILEGED_ROLE
from schoolerp.db.models import Role
from schoolerp.errors import (
    CrossTenantAccessError,
    TenantContextMissingError,
    TenantContextRequiredError,
)


@dataclass(frozen=True)
class CallerIdentity:
    """Identity attached to a request by the authenticator."""
    sub: str
    email: str
    role: Role
    school_id: UUID | None

    @property
    def user_id(self) -> UUID:
        return UUID(self.sub)

    @property
    def is_privileged(self) -> bool:
        return self.role == PRIVILEGED_ROLE


def resolve_school_id(
    caller: CallerIdentity,
    requested: UUID | None = None,
    require_for_privileged: bool = False,
) -> UUID | None:
    """
    Resolve the single school id a request may act on.

    Args:
        caller: Verified caller identity
        requested: School id named by the request, if any
        require_for_privileged: Whether a SUPERADMIN must name a school

    Returns:
        The school id to filter by, or None for a platform-wide SUPERADMIN view

    Raises:
        TenantContextRequiredError: SUPERADMIN omitted a required school id
        TenantContextMissingError: School-bound caller has no school on record
        CrossTenantAccessError: School-bound caller asked for another school
    """
    if caller.is_privileged:
        if requested is not None:
            return requested
        if require_for_privileged:
            raise TenantContextRequiredError()
        return None

    if caller.school_id is None:
        raise TenantContextMissingError()

    if requested is not None and requested != caller.school_id:
        raise CrossTenantAccessError()

    return caller.school_id
