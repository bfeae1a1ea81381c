"""
Tests for tenant scope resolution and role capabilities.
"""

from uuid import uuid4

import pytest

from schoolerp.auth.permissions import ROLE_CAPABILITIES, Capability, has_capability
from schoolerp.auth.scope import CallerIdentity, resolve_school_id
from schoolerp.db.models import Role
from schoolerp.errors import (
    CrossTenantAccessError,
    TenantContextMissingError,
    TenantContextRequiredError,
)


def caller(role: Role, school_id=None) -> CallerIdentity:
    return CallerIdentity(sub=str(uuid4()), email="user@school.edu", role=role, school_id=school_id)


class TestResolveSchoolId:
    """Tests for resolve_school_id."""

    def setup_method(self):
        self.school_a = uuid4()
        self.school_b = uuid4()

    def test_superadmin_with_requested_school(self):
        admin = caller(Role.SUPERADMIN)

        assert resolve_school_id(admin, self.school_b) == self.school_b

    def test_superadmin_platform_wide(self):
        assert resolve_school_id(caller(Role.SUPERADMIN)) is None

    def test_superadmin_must_name_school_when_required(self):
        with pytest.raises(TenantContextRequiredError) as exc_info:
            resolve_school_id(caller(Role.SUPERADMIN), require_for_privileged=True)

        assert exc_info.value.status_code == 403
        assert exc_info.value.code == "SCHOOL_CONTEXT_REQUIRED"

    def test_bound_caller_defaults_to_own_school(self):
        accountant = caller(Role.ACCOUNTANT, self.school_a)

        assert resolve_school_id(accountant) == self.school_a
        assert resolve_school_id(accountant, self.school_a) == self.school_a

    @pytest.mark.parametrize("role", [r for r in Role if r != Role.SUPERADMIN])
    def test_cross_tenant_denied_for_every_bound_role(self, role):
        with pytest.raises(CrossTenantAccessError) as exc_info:
            resolve_school_id(caller(role, self.school_a), self.school_b)

        assert exc_info.value.status_code == 403
        assert exc_info.value.code == "FORBIDDEN"

    def test_bound_caller_without_school(self):
        with pytest.raises(TenantContextMissingError) as exc_info:
            resolve_school_id(caller(Role.SCHOOLADMIN, None))

        assert exc_info.value.code == "SCHOOL_CONTEXT_MISSING"

    def test_require_flag_ignored_for_bound_caller(self):
        hr = caller(Role.HR, self.school_a)

        assert resolve_school_id(hr, require_for_privileged=True) == self.school_a


class TestCapabilities:
    """Tests for the role to capability map."""

    def test_every_role_is_mapped(self):
        assert set(ROLE_CAPABILITIES) == set(Role)

    def test_superadmin_holds_everything(self):
        assert all(has_capability(Role.SUPERADMIN, cap) for cap in Capability)

    def test_accountant_finance_only(self):
        assert has_capability(Role.ACCOUNTANT, Capability.FINANCE_WRITE)
        assert not has_capability(Role.ACCOUNTANT, Capability.HR_MANAGE)
        assert not has_capability(Role.ACCOUNTANT, Capability.PLATFORM_ADMIN)

    def test_hr_cannot_touch_finance(self):
        assert not has_capability(Role.HR, Capability.FINANCE_READ)

    @pytest.mark.parametrize("role", [Role.TEACHER, Role.PARENT])
    def test_classroom_roles_have_no_admin_capabilities(self, role):
        assert not any(has_capability(role, cap) for cap in Capability)
