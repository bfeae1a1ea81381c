"""
Tests for user management.
"""

from uuid import uuid4

import pytest
from sqlalchemy import select

from schoolerp.auth.scope import CallerIdentity
from schoolerp.db.models import AuditLog, Role
from schoolerp.errors import ConflictError
from schoolerp.services.user import UserService, normalize_email


def test_normalize_email():
    assert normalize_email("  Admin@School.EDU ") == "admin@school.edu"


class TestUserService:
    """Tests for UserService."""

    @pytest.fixture(autouse=True)
    def service(self, session, hasher):
        self.session = session
        self.hasher = hasher
        self.users = UserService(session, hasher)

    async def test_create_stores_hash_and_lowercase_email(self):
        user = await self.users.create("New.User@School.edu", "Admin123!", "New User", Role.TEACHER)

        assert user.email == "new.user@school.edu"
        assert user.password_hash != "Admin123!"
        assert self.hasher.verify("Admin123!", user.password_hash)
        assert user.password_version == 0
        assert user.is_active is True

    async def test_duplicate_email(self):
        await self.users.create("dup@school.edu", "Admin123!", "First", Role.HR)

        with pytest.raises(ConflictError) as exc_info:
            await self.users.create("DUP@school.edu", "Admin123!", "Second", Role.HR)

        assert exc_info.value.code == "DUPLICATE_VALUE"

    async def test_lookup_by_email_ignores_case(self):
        created = await self.users.create("find@school.edu", "Admin123!", "Find Me", Role.PARENT)

        assert (await self.users.get_by_email("FIND@school.edu")).id == created.id
        assert await self.users.get_by_email("missing@school.edu") is None

    async def test_set_password_bumps_version(self):
        user = await self.users.create("pw@school.edu", "Admin123!", "Pw", Role.ACCOUNTANT)

        await self.users.set_password(user, "NewPass123!")

        assert user.password_version == 1
        assert self.hasher.verify("NewPass123!", user.password_hash)

    async def test_deactivate(self):
        user = await self.users.create("gone@school.edu", "Admin123!", "Gone", Role.TEACHER)

        assert await self.users.deactivate(user.id) is True
        assert await self.users.get_active(user.id) is None
        assert (await self.users.get(user.id)).is_active is False

    async def test_deactivate_is_audited(self):
        user = await self.users.create("audit@school.edu", "Admin123!", "Audit", Role.TEACHER)
        admin = CallerIdentity(sub=str(uuid4()), email="admin@school.edu", role=Role.SUPERADMIN, school_id=None)

        await self.users.deactivate(user.id, actor=admin, ip_address="10.0.0.1")

        entry = (
            await self.session.execute(select(AuditLog).where(AuditLog.action == "USER_DEACTIVATED"))
        ).scalar_one()
        assert entry.entity_id == str(user.id)
        assert entry.actor_id == admin.user_id
        assert entry.meta["email"] == "audit@school.edu"
        assert entry.ip_address == "10.0.0.1"

    async def test_deactivate_twice(self):
        user = await self.users.create("twice@school.edu", "Admin123!", "Twice", Role.HR)

        assert await self.users.deactivate(user.id) is True
        assert await self.users.deactivate(user.id) is False

    async def test_deactivate_unknown(self):
        assert await self.users.deactivate(uuid4()) is False
