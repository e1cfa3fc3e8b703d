from __future__ import annotations

import itertools

import pytest

from ardine.core.permissions import (
    InstanceRole,
    ProjectRole,
    TeamRole,
    can_access_financials,
    can_access_invoices,
    can_edit_data,
    can_manage_billing,
    can_manage_team,
    can_view_data,
    get_effective_project_role,
    get_project_permissions,
    is_at_least_team_role,
    is_instance_admin,
    is_team_owner,
    team_capabilities,
    team_role_rank,
)

RANKED_TEAM_ROLES = [TeamRole.OWNER, TeamRole.ADMIN, TeamRole.MEMBER, TeamRole.BILLING, TeamRole.VIEWER]


def test_instance_admin_check() -> None:
    assert is_instance_admin(InstanceRole.ADMIN) is True
    assert is_instance_admin("ADMIN") is True
    assert is_instance_admin(InstanceRole.USER) is False
    assert is_instance_admin(None) is False
    assert is_instance_admin("ROOT") is False


@pytest.mark.parametrize("role", RANKED_TEAM_ROLES)
def test_is_at_least_team_role_is_reflexive(role: TeamRole) -> None:
    assert is_at_least_team_role(role, role) is True
    assert is_at_least_team_role(role.value, role.value) is True


@pytest.mark.parametrize(("higher", "lower"), list(itertools.combinations(RANKED_TEAM_ROLES, 2)))
def test_is_at_least_team_role_follows_rank_order(higher: TeamRole, lower: TeamRole) -> None:
    assert team_role_rank(higher) > team_role_rank(lower)
    assert is_at_least_team_role(higher, lower) is True
    assert is_at_least_team_role(lower, higher) is False


def test_unknown_or_missing_team_roles_have_no_rank() -> None:
    assert team_role_rank(None) == 0
    assert team_role_rank("SUPERUSER") == 0
    assert is_at_least_team_role(None, TeamRole.VIEWER) is False
    assert is_at_least_team_role("SUPERUSER", TeamRole.VIEWER) is False
    assert is_at_least_team_role(TeamRole.OWNER, "SUPERUSER") is False


def test_billing_manages_billing_while_member_does_not() -> None:
    assert can_manage_billing(TeamRole.MEMBER) is False
    assert can_manage_billing(TeamRole.BILLING) is True


@pytest.mark.parametrize(
    ("role", "manage_team", "edit_data", "manage_billing", "owner", "invoices"),
    [
        (TeamRole.OWNER, True, True, True, True, True),
        (TeamRole.ADMIN, True, True, True, False, True),
        (TeamRole.MEMBER, False, True, False, False, False),
        (TeamRole.BILLING, False, False, True, False, True),
        (TeamRole.VIEWER, False, False, False, False, False),
        (None, False, False, False, False, False),
    ],
)
def test_team_predicates(
    role: TeamRole | None,
    manage_team: bool,
    edit_data: bool,
    manage_billing: bool,
    owner: bool,
    invoices: bool,
) -> None:
    assert can_manage_team(role) is manage_team
    assert can_edit_data(role) is edit_data
    assert can_manage_billing(role) is manage_billing
    assert is_team_owner(role) is owner
    assert can_access_invoices(role) is invoices
    assert can_access_financials(role) is invoices


@pytest.mark.parametrize("role", RANKED_TEAM_ROLES)
def test_every_known_team_role_can_view_data(role: TeamRole) -> None:
    assert can_view_data(role) is True


def test_team_capabilities_for_missing_role_are_all_false() -> None:
    assert not any(team_capabilities(None).values())
    assert not any(team_capabilities("nobody").values())


def test_team_capabilities_for_billing() -> None:
    assert team_capabilities("BILLING") == {
        "can_manage_team": False,
        "can_edit_data": False,
        "can_view_data": True,
        "can_manage_billing": True,
        "is_team_owner": False,
        "can_access_invoices": True,
        "can_access_financials": True,
    }


@pytest.mark.parametrize(
    ("team_role", "project_role", "expected"),
    [
        (TeamRole.OWNER, None, ProjectRole.MANAGER),
        (TeamRole.OWNER, ProjectRole.VIEWER, ProjectRole.MANAGER),
        (TeamRole.ADMIN, None, ProjectRole.MANAGER),
        (TeamRole.ADMIN, ProjectRole.CONTRIBUTOR, ProjectRole.MANAGER),
        (TeamRole.MEMBER, None, None),
        (TeamRole.MEMBER, ProjectRole.VIEWER, ProjectRole.CONTRIBUTOR),
        (TeamRole.MEMBER, ProjectRole.CONTRIBUTOR, ProjectRole.CONTRIBUTOR),
        (TeamRole.MEMBER, ProjectRole.MANAGER, ProjectRole.MANAGER),
        (TeamRole.VIEWER, None, ProjectRole.VIEWER),
        (TeamRole.VIEWER, ProjectRole.MANAGER, ProjectRole.MANAGER),
        (TeamRole.VIEWER, ProjectRole.CONTRIBUTOR, ProjectRole.CONTRIBUTOR),
        (TeamRole.BILLING, None, ProjectRole.VIEWER),
        (TeamRole.BILLING, ProjectRole.CONTRIBUTOR, ProjectRole.CONTRIBUTOR),
        (None, None, None),
        (None, ProjectRole.CONTRIBUTOR, ProjectRole.CONTRIBUTOR),
        ("OWNER", None, ProjectRole.MANAGER),
        ("MEMBER", "VIEWER", ProjectRole.CONTRIBUTOR),
        ("GUEST", None, None),
        (TeamRole.MEMBER, "SUPERVISOR", None),
    ],
)
def test_effective_project_role(
    team_role: TeamRole | str | None,
    project_role: ProjectRole | str | None,
    expected: ProjectRole | None,
) -> None:
    assert get_effective_project_role(team_role, project_role) is expected


def test_manager_permissions() -> None:
    permissions = get_project_permissions(TeamRole.ADMIN, None)

    assert permissions.role is None
    assert permissions.effective_role is ProjectRole.MANAGER
    assert permissions.is_manager is True
    assert permissions.can_manage_project is True
    assert permissions.can_add_members is True
    assert permissions.can_create_tasks is True
    assert permissions.can_assign_tasks is True
    assert permissions.can_log_time is True
    assert permissions.can_view_project is True


def test_contributor_permissions() -> None:
    permissions = get_project_permissions(TeamRole.MEMBER, ProjectRole.VIEWER)

    assert permissions.role is ProjectRole.VIEWER
    assert permissions.effective_role is ProjectRole.CONTRIBUTOR
    assert permissions.is_contributor is True
    assert permissions.can_log_time is True
    assert permissions.can_view_project is True
    assert permissions.can_create_tasks is False
    assert permissions.can_add_members is False


def test_viewer_permissions() -> None:
    permissions = get_project_permissions(TeamRole.BILLING, None)

    assert permissions.is_viewer is True
    assert permissions.can_view_project is True
    assert permissions.can_log_time is False
    assert permissions.can_manage_project is False


def test_unassigned_member_has_no_project_permissions() -> None:
    permissions = get_project_permissions(TeamRole.MEMBER, None)

    assert permissions.effective_role is None
    assert not any(value for key, value in permissions.as_dict().items() if key.startswith(("can_", "is_")))


def test_permissions_as_dict_serializes_roles() -> None:
    payload = get_project_permissions(TeamRole.VIEWER, ProjectRole.MANAGER).as_dict()

    assert payload["role"] == "MANAGER"
    assert payload["effective_role"] == "MANAGER"
    assert payload["can_update_members"] is True
    assert payload["can_delete_tasks"] is True
