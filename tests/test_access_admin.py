from __future__ import annotations

import uuid
from collections.abc import Generator
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from ardine.core.auth import ensure_user_principal
from ardine.core.config import get_settings
from ardine.core.permissions import TeamRole
from ardine.models.entities import Team, TeamMembership, User


def _headers(email: str, team_id: uuid.UUID | str | None = None) -> dict[str, str]:
    headers = {"X-USER-EMAIL": email}
    if team_id is not None:
        headers["X-TEAM-ID"] = str(team_id)
    return headers


def _create_team_with_member(db: Session, *, email: str, role: TeamRole, name: str = "Studio") -> Team:
    user = ensure_user_principal(db, email=email)
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    team = Team(name=name, default_hourly_rate_cents=10000, created_at=now, updated_at=now)
    db.add(team)
    db.flush()
    db.add(TeamMembership(team_id=team.id, user_id=user.id, role=role, joined_at=now))
    db.commit()
    db.refresh(team)
    return team


@pytest.fixture()
def strict_identity(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("AUTH_ALLOW_DEV_PRINCIPAL", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_first_user_becomes_instance_admin(client: TestClient) -> None:
    first = client.get("/api/v1/me", headers=_headers("First@Example.com"))
    assert first.status_code == 200
    first_payload = first.json()
    assert first_payload["email"] == "first@example.com"
    assert first_payload["display_name"] == "first@example.com"
    assert first_payload["instance_role"] == "ADMIN"
    assert first_payload["is_instance_admin"] is True

    second = client.get(
        "/api/v1/me",
        headers={"X-USER-EMAIL": "second@example.com", "X-USER-DISPLAY-NAME": "Second User"},
    )
    assert second.status_code == 200
    assert second.json()["instance_role"] == "USER"
    assert second.json()["display_name"] == "Second User"


def test_dev_principal_is_used_without_identity_headers(client: TestClient) -> None:
    response = client.get("/api/v1/me")

    assert response.status_code == 200
    assert response.json()["email"] == get_settings().auth_dev_email


def test_missing_identity_headers_are_rejected_when_dev_principal_disabled(
    client: TestClient,
    strict_identity: None,
) -> None:
    response = client.get("/api/v1/me")

    assert response.status_code == 401


def test_disabled_user_is_forbidden(client: TestClient, db_session: Session) -> None:
    user = ensure_user_principal(db_session, email="disabled@example.com")
    user.status = "disabled"
    db_session.commit()

    response = client.get("/api/v1/me", headers=_headers("disabled@example.com"))

    assert response.status_code == 403


def test_access_context_without_team(client: TestClient) -> None:
    response = client.get("/api/v1/access/context", headers=_headers("loner@example.com"))

    assert response.status_code == 200
    payload = response.json()
    assert payload["team_id"] is None
    assert payload["team_role"] is None
    assert payload["has_access"] is False
    assert not any(payload["capabilities"].values())


def test_access_context_exposes_billing_capabilities(client: TestClient, db_session: Session) -> None:
    team = _create_team_with_member(db_session, email="billing@example.com", role=TeamRole.BILLING)

    response = client.get("/api/v1/access/context", headers=_headers("billing@example.com", team.id))

    assert response.status_code == 200
    payload = response.json()
    assert payload["team_id"] == str(team.id)
    assert payload["team_role"] == "BILLING"
    assert payload["has_access"] is True
    assert payload["capabilities"]["can_manage_billing"] is True
    assert payload["capabilities"]["can_access_invoices"] is True
    assert payload["capabilities"]["can_edit_data"] is False
    assert payload["capabilities"]["can_manage_team"] is False


def test_access_context_for_foreign_team_has_no_role(client: TestClient, db_session: Session) -> None:
    team = _create_team_with_member(db_session, email="owner@example.com", role=TeamRole.OWNER)

    response = client.get("/api/v1/access/context", headers=_headers("stranger@example.com", team.id))

    assert response.status_code == 200
    assert response.json()["team_role"] is None
    assert response.json()["has_access"] is False


def test_invalid_team_header_is_rejected(client: TestClient) -> None:
    response = client.get("/api/v1/access/context", headers=_headers("user@example.com", "not-a-uuid"))

    assert response.status_code == 422


def test_admin_can_list_users_and_promote(client: TestClient, db_session: Session) -> None:
    ensure_user_principal(db_session, email="admin@example.com")
    other = ensure_user_principal(db_session, email="user@example.com")

    listing = client.get("/api/v1/admin/users", headers=_headers("admin@example.com"))
    assert listing.status_code == 200
    assert [item["email"] for item in listing.json()["items"]] == ["admin@example.com", "user@example.com"]

    promote = client.patch(
        f"/api/v1/admin/users/{other.id}/role",
        headers=_headers("admin@example.com"),
        json={"instance_role": "ADMIN"},
    )
    assert promote.status_code == 200
    assert promote.json()["instance_role"] == "ADMIN"


def test_non_admin_cannot_use_admin_endpoints(client: TestClient, db_session: Session) -> None:
    ensure_user_principal(db_session, email="admin@example.com")
    ensure_user_principal(db_session, email="user@example.com")

    response = client.get("/api/v1/admin/users", headers=_headers("user@example.com"))

    assert response.status_code == 403


def test_last_instance_admin_cannot_be_demoted(client: TestClient, db_session: Session) -> None:
    admin = ensure_user_principal(db_session, email="admin@example.com")

    response = client.patch(
        f"/api/v1/admin/users/{admin.id}/role",
        headers=_headers("admin@example.com"),
        json={"instance_role": "USER"},
    )

    assert response.status_code == 400
    db_session.refresh(admin)
    assert admin.instance_role.value == "ADMIN"


def test_unknown_user_role_update_is_not_found(client: TestClient, db_session: Session) -> None:
    ensure_user_principal(db_session, email="admin@example.com")

    response = client.patch(
        f"/api/v1/admin/users/{uuid.uuid4()}/role",
        headers=_headers("admin@example.com"),
        json={"instance_role": "ADMIN"},
    )

    assert response.status_code == 404
    assert db_session.query(User).count() == 1


def test_me_reports_active_team_role(client: TestClient, db_session: Session) -> None:
    team = _create_team_with_member(db_session, email="owner@example.com", role=TeamRole.OWNER)

    response = client.get("/api/v1/me", headers=_headers("owner@example.com", team.id))

    assert response.status_code == 200
    payload = response.json()
    assert payload["team_id"] == str(team.id)
    assert payload["team_role"] == "OWNER"
    assert all(payload["capabilities"].values())
