from __future__ import annotations

import uuid

import pytest
from fastapi import HTTPException

from ardine.core.auth import (
    RequestUserContext,
    assert_team_scope,
    ensure_team_member,
    ensure_team_role,
    require_invoice_access,
)
from ardine.core.permissions import InstanceRole, TeamRole


def _context(
    *,
    team_role: TeamRole | None,
    team_id: uuid.UUID | None = None,
    instance_role: InstanceRole = InstanceRole.USER,
) -> RequestUserContext:
    return RequestUserContext(
        user_id=uuid.uuid4(),
        email="user@example.com",
        display_name="User",
        status="active",
        instance_role=instance_role,
        active_team_id=team_id if team_id is not None else uuid.uuid4(),
        team_role=team_role,
    )


def test_context_flags() -> None:
    admin = _context(team_role=None, instance_role=InstanceRole.ADMIN)
    member = _context(team_role=TeamRole.MEMBER)

    assert admin.is_instance_admin is True
    assert admin.is_team_member is False
    assert member.is_instance_admin is False
    assert member.is_team_member is True


def test_ensure_team_member_rejects_outsiders() -> None:
    with pytest.raises(HTTPException) as exc_info:
        ensure_team_member(_context(team_role=None))

    assert exc_info.value.status_code == 403


def test_ensure_team_role_enforces_minimum_rank() -> None:
    ensure_team_role(_context(team_role=TeamRole.OWNER), TeamRole.ADMIN)
    ensure_team_role(_context(team_role=TeamRole.MEMBER), TeamRole.MEMBER)

    with pytest.raises(HTTPException) as exc_info:
        ensure_team_role(_context(team_role=TeamRole.BILLING), TeamRole.MEMBER)

    assert exc_info.value.status_code == 403
    assert "MEMBER" in exc_info.value.detail


@pytest.mark.parametrize(
    ("team_role", "allowed"),
    [
        (TeamRole.OWNER, True),
        (TeamRole.ADMIN, True),
        (TeamRole.BILLING, True),
        (TeamRole.MEMBER, False),
        (TeamRole.VIEWER, False),
    ],
)
def test_invoice_access_is_limited_to_financial_roles(team_role: TeamRole, allowed: bool) -> None:
    context = _context(team_role=team_role)

    if allowed:
        assert require_invoice_access(context) is context
    else:
        with pytest.raises(HTTPException) as exc_info:
            require_invoice_access(context)
        assert exc_info.value.status_code == 403


def test_assert_team_scope_rejects_other_teams() -> None:
    team_id = uuid.uuid4()
    context = _context(team_role=TeamRole.ADMIN, team_id=team_id)

    assert_team_scope(context, team_id)
    with pytest.raises(HTTPException) as exc_info:
        assert_team_scope(context, uuid.uuid4())

    assert exc_info.value.status_code == 403
