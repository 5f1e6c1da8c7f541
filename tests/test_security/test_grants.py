"""Tests for grant resolution (build_grants, resolve_grants)."""
from __future__ import annotations

from coreops.models.security import GrantScope
from coreops.security.grants import ScopedGrant, UniversalGrant, build_grants, resolve_grants


def test_build_grants_keeps_row_order_and_scope():
    grants = build_grants(
        [
            ("DIVISION_MANAGER", GrantScope.DIVISION, 1, "GOV_PROJECT_READ"),
            ("FINANCE_CONTROLLER", GrantScope.COMPANY, None, "GOV_MONTH_CLOSE_READ"),
        ]
    )

    assert grants.roles == {"DIVISION_MANAGER", "FINANCE_CONTROLLER"}
    assert grants.permissions == {"GOV_PROJECT_READ", "GOV_MONTH_CLOSE_READ"}
    assert not grants.is_universal
    assert grants.grants == (
        ScopedGrant("DIVISION_MANAGER", GrantScope.DIVISION, "1", "GOV_PROJECT_READ"),
        ScopedGrant("FINANCE_CONTROLLER", GrantScope.COMPANY, None, "GOV_MONTH_CLOSE_READ"),
    )


def test_company_grant_drops_division_id():
    grants = build_grants([("ADMIN", GrantScope.COMPANY, 7, "GOV_PROJECT_READ")])
    assert grants.scoped[0].division_id is None


def test_role_without_permissions_still_counts_as_role():
    grants = build_grants([("EMPLOYEE", GrantScope.COMPANY, None, None)])
    assert grants.roles == {"EMPLOYEE"}
    assert grants.permissions == frozenset()
    assert grants.grants == ()


def test_super_admin_role_is_universal():
    grants = build_grants([("SUPER_ADMIN", GrantScope.COMPANY, None, None)])
    assert grants.is_universal
    assert grants.grants == (UniversalGrant(source="role:SUPER_ADMIN"),)


def test_full_access_permission_is_universal_and_comes_first():
    grants = build_grants(
        [
            ("DIVISION_MANAGER", GrantScope.DIVISION, 1, "GOV_PROJECT_READ"),
            ("ADMIN", GrantScope.COMPANY, None, "SYSTEM_FULL_ACCESS"),
        ]
    )
    assert isinstance(grants.grants[0], UniversalGrant)
    assert grants.grants[0].source == "permission:SYSTEM_FULL_ACCESS"


def test_resolve_grants_from_database(seeded, user_ids, division_ids):
    grants = resolve_grants(seeded, user_ids["nora_north"])

    assert grants.roles == {"DIVISION_MANAGER"}
    assert grants.permissions == {"GOV_PROJECT_READ", "GOV_PROJECT_WRITE"}
    assert {g.division_id for g in grants.scoped} == {str(division_ids["NORTH"])}
    assert all(g.scope is GrantScope.DIVISION for g in grants.scoped)


def test_resolve_grants_for_super_admin(seeded, user_ids):
    grants = resolve_grants(seeded, user_ids["sam_super"])
    assert grants.is_universal
    assert grants.roles == {"SUPER_ADMIN"}


def test_resolve_grants_for_unknown_user_is_empty(seeded):
    grants = resolve_grants(seeded, 99999)
    assert grants.roles == frozenset()
    assert grants.grants == ()
