"""Role tables and permission predicates for instance, team and project scopes.

Every function here is total: a missing or unrecognized role resolves to the
most restrictive answer instead of raising.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class InstanceRole(str, enum.Enum):
    """Instance-wide role.

    - ADMIN: manages all teams, users and instance settings
    - USER: no instance-level privileges
    """

    USER = "USER"
    ADMIN = "ADMIN"


class TeamRole(str, enum.Enum):
    """Role scoped to a single team.

    - OWNER: full control, can delete the team and manage every member
    - ADMIN: manages team settings, members and all data
    - MEMBER: creates and edits data within the team
    - BILLING: manages billing and invoices, read-only elsewhere
    - VIEWER: read-only access to team data
    """

    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
    VIEWER = "VIEWER"
    BILLING = "BILLING"


class ProjectRole(str, enum.Enum):
    MANAGER = "MANAGER"
    CONTRIBUTOR = "CONTRIBUTOR"
    VIEWER = "VIEWER"


TEAM_ROLE_HIERARCHY: dict[TeamRole, int] = {
    TeamRole.OWNER: 5,
    TeamRole.ADMIN: 4,
    TeamRole.MEMBER: 3,
    TeamRole.BILLING: 2,
    TeamRole.VIEWER: 1,
}

FINANCIAL_TEAM_ROLES = frozenset({TeamRole.OWNER, TeamRole.ADMIN, TeamRole.BILLING})


def _coerce(enum_cls: type[enum.Enum], value: object) -> enum.Enum | None:
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


def coerce_instance_role(value: object) -> InstanceRole | None:
    return _coerce(InstanceRole, value)


def coerce_team_role(value: object) -> TeamRole | None:
    return _coerce(TeamRole, value)


def coerce_project_role(value: object) -> ProjectRole | None:
    return _coerce(ProjectRole, value)


# ---------- Instance scope ----------
def is_instance_admin(role: InstanceRole | str | None) -> bool:
    return coerce_instance_role(role) is InstanceRole.ADMIN


# ---------- Team scope ----------
def team_role_rank(role: TeamRole | str | None) -> int:
    """Numeric rank of a team role; 0 for a missing or unknown role."""

    coerced = coerce_team_role(role)
    if coerced is None:
        return 0
    return TEAM_ROLE_HIERARCHY[coerced]


def is_at_least_team_role(user_role: TeamRole | str | None, min_role: TeamRole | str) -> bool:
    """Check whether ``user_role`` ranks at or above ``min_role``.

    ``is_at_least_team_role("ADMIN", "MEMBER")`` is true,
    ``is_at_least_team_role("VIEWER", "MEMBER")`` is false.
    """

    user_rank = team_role_rank(user_role)
    min_rank = team_role_rank(min_role)
    if user_rank == 0 or min_rank == 0:
        return False
    return user_rank >= min_rank


def can_manage_team(role: TeamRole | str | None) -> bool:
    return is_at_least_team_role(role, TeamRole.ADMIN)


def can_edit_data(role: TeamRole | str | None) -> bool:
    return is_at_least_team_role(role, TeamRole.MEMBER)


def can_view_data(role: TeamRole | str | None) -> bool:
    # VIEWER is the lowest rank, so every known role passes.
    return is_at_least_team_role(role, TeamRole.VIEWER)


def can_manage_billing(role: TeamRole | str | None) -> bool:
    """BILLING is granted by name even though it ranks below MEMBER."""

    return coerce_team_role(role) is TeamRole.BILLING or is_at_least_team_role(role, TeamRole.ADMIN)


def is_team_owner(role: TeamRole | str | None) -> bool:
    return coerce_team_role(role) is TeamRole.OWNER


def can_access_invoices(role: TeamRole | str | None) -> bool:
    return coerce_team_role(role) in FINANCIAL_TEAM_ROLES


def can_access_financials(role: TeamRole | str | None) -> bool:
    """Visibility of rates, amounts and budgets."""

    return coerce_team_role(role) in FINANCIAL_TEAM_ROLES


def team_capabilities(role: TeamRole | str | None) -> dict[str, bool]:
    return {
        "can_manage_team": can_manage_team(role),
        "can_edit_data": can_edit_data(role),
        "can_view_data": can_view_data(role),
        "can_manage_billing": can_manage_billing(role),
        "is_team_owner": is_team_owner(role),
        "can_access_invoices": can_access_invoices(role),
        "can_access_financials": can_access_financials(role),
    }


# ---------- Project scope ----------
def get_effective_project_role(
    team_role: TeamRole | str | None,
    project_role: ProjectRole | str | None,
) -> ProjectRole | None:
    """Combine a team role and an explicit project role into the effective project role.

    - OWNER/ADMIN: MANAGER on every project, membership not required
    - MEMBER: no access unless assigned; once assigned at least CONTRIBUTOR
    - VIEWER/BILLING: VIEWER on every project, upgradable by assignment
    - no team role: the project role as-is
    """

    team = coerce_team_role(team_role)
    project = coerce_project_role(project_role)

    if team in (TeamRole.OWNER, TeamRole.ADMIN):
        return ProjectRole.MANAGER

    if team is TeamRole.MEMBER:
        if project is None:
            return None
        return ProjectRole.MANAGER if project is ProjectRole.MANAGER else ProjectRole.CONTRIBUTOR

    if team in (TeamRole.VIEWER, TeamRole.BILLING):
        return project or ProjectRole.VIEWER

    return project


@dataclass(frozen=True, slots=True)
class ProjectPermissions:
    role: ProjectRole | None
    effective_role: ProjectRole | None
    is_manager: bool
    is_contributor: bool
    is_viewer: bool
    can_manage_project: bool
    can_add_members: bool
    can_update_members: bool
    can_create_tasks: bool
    can_update_tasks: bool
    can_delete_tasks: bool
    can_assign_tasks: bool
    can_log_time: bool
    can_view_project: bool

    def as_dict(self) -> dict[str, object]:
        return {
            "role": self.role.value if self.role is not None else None,
            "effective_role": self.effective_role.value if self.effective_role is not None else None,
            "is_manager": self.is_manager,
            "is_contributor": self.is_contributor,
            "is_viewer": self.is_viewer,
            "can_manage_project": self.can_manage_project,
            "can_add_members": self.can_add_members,
            "can_update_members": self.can_update_members,
            "can_create_tasks": self.can_create_tasks,
            "can_update_tasks": self.can_update_tasks,
            "can_delete_tasks": self.can_delete_tasks,
            "can_assign_tasks": self.can_assign_tasks,
            "can_log_time": self.can_log_time,
            "can_view_project": self.can_view_project,
        }


def get_project_permissions(
    team_role: TeamRole | str | None,
    project_role: ProjectRole | str | None,
) -> ProjectPermissions:
    effective = get_effective_project_role(team_role, project_role)
    is_manager = effective is ProjectRole.MANAGER
    is_contributor = effective is ProjectRole.CONTRIBUTOR

    return ProjectPermissions(
        role=coerce_project_role(project_role),
        effective_role=effective,
        is_manager=is_manager,
        is_contributor=is_contributor,
        is_viewer=effective is ProjectRole.VIEWER,
        can_manage_project=is_manager,
        can_add_members=is_manager,
        can_update_members=is_manager,
        can_create_tasks=is_manager,
        can_update_tasks=is_manager,
        can_delete_tasks=is_manager,
        can_assign_tasks=is_manager,
        can_log_time=is_manager or is_contributor,
        can_view_project=effective is not None,
    )
