"""
Role to capability mapping.

Routes declare the capability they need; which roles hold it is decided here
and nowhere else.
"""

import enum

from schoolerp.db.models import Role


class Capability(str, enum.Enum):
    PLATFORM_ADMIN = "platform_admin"
    SCHOOL_READ = "school_read"
    FINANCE_READ = "finance_read"
    FINANCE_WRITE = "finance_write"
    HR_MANAGE = "hr_manage"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.SUPERADMIN: frozenset(Capability),
    Role.SCHOOLADMIN: frozenset({
        Capability.SCHOOL_READ,
        Capability.FINANCE_READ,
        Capability.FINANCE_WRITE,
        Capability.HR_MANAGE,
    }),
    Role.ACCOUNTANT: frozenset({
        Capability.SCHOOL_READ,
        Capability.FINANCE_READ,
        Capability.FINANCE_WRITE,
    }),
    Role.HR: frozenset({
        Capability.SCHOOL_READ,
        Capability.HR_MANAGE,
    }),
    Role.TEACHER: frozenset(),
    Role.PARENT: frozenset(),
}

# Role allowed to act across schools or on none
PRIVILEGED_ROLE = Role.SUPERADMIN


def has_capability(role: Role, capability: Capability) -> bool:
    return capability in ROLE_CAPABILITIES.get(role, frozenset())
