"""Authentication context extraction and RBAC guard utilities."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

import structlog
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from ardine.core.config import get_settings
from ardine.core.permissions import (
    InstanceRole,
    TeamRole,
    can_access_invoices,
    is_at_least_team_role,
    is_instance_admin,
)
from ardine.db.dependencies import get_db_session
from ardine.models.entities import TeamMembership, User, utcnow

logger = structlog.get_logger()


@dataclass(frozen=True)
class RequestUserContext:
    """Authenticated request actor resolved from headers and DB state."""

    user_id: UUID
    email: str
    display_name: str
    status: str
    instance_role: InstanceRole
    active_team_id: UUID | None = None
    team_role: TeamRole | None = None

    @property
    def is_instance_admin(self) -> bool:
        return is_instance_admin(self.instance_role)

    @property
    def is_team_member(self) -> bool:
        return self.active_team_id is not None and self.team_role is not None


def _require_identity_headers(
    x_user_email: str | None,
    x_user_display_name: str | None,
) -> tuple[str, str]:
    if not x_user_email or not x_user_email.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing identity headers. Expected X-USER-EMAIL or enable development principal fallback.",
        )

    email = x_user_email.strip().lower()
    display_name = (x_user_display_name or "").strip() or email
    return email, display_name


def _resolve_identity(x_user_email: str | None, x_user_display_name: str | None) -> tuple[str, str]:
    settings = get_settings()
    if x_user_email:
        return _require_identity_headers(x_user_email, x_user_display_name)

    if settings.auth_allow_dev_principal:
        return settings.auth_dev_email.strip().lower(), settings.auth_dev_display_name.strip()

    return _require_identity_headers(x_user_email, x_user_display_name)


def _parse_team_id(x_team_id: str | None) -> UUID | None:
    if x_team_id is None or not x_team_id.strip():
        return None
    try:
        return UUID(x_team_id.strip())
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="X-TEAM-ID header must be a valid UUID.",
        ) from exc


def _upsert_user(db: Session, *, email: str, display_name: str) -> User:
    user = db.scalar(select(User).where(User.email == email))
    now = utcnow()

    if user is None:
        # The first account of an empty instance administers it.
        existing_users = db.scalar(select(func.count()).select_from(User)) or 0
        instance_role = InstanceRole.ADMIN if existing_users == 0 else InstanceRole.USER
        user = User(
            email=email,
            display_name=display_name,
            instance_role=instance_role,
            status="active",
            last_login_at=now,
            created_at=now,
            updated_at=now,
        )
        db.add(user)
        db.flush()
        logger.info("user_registered", user_id=str(user.id), instance_role=instance_role.value)
        return user

    if user.display_name != display_name:
        user.display_name = display_name
        user.updated_at = now

    user.last_login_at = now
    db.flush()
    return user


def ensure_user_principal(db: Session, *, email: str, display_name: str = "") -> User:
    """Ensure user exists and return persisted row.

    Utility exported for tests and seed helpers.
    """

    normalized_email = email.strip().lower()
    user = _upsert_user(
        db,
        email=normalized_email,
        display_name=display_name.strip() or normalized_email,
    )
    db.commit()
    db.refresh(user)
    return user


def load_team_role(db: Session, *, user_id: UUID, team_id: UUID) -> TeamRole | None:
    return db.scalar(
        select(TeamMembership.role).where(
            and_(TeamMembership.user_id == user_id, TeamMembership.team_id == team_id)
        )
    )


def get_current_user_context(
    x_user_email: str | None = Header(default=None, alias="X-USER-EMAIL"),
    x_user_display_name: str | None = Header(default=None, alias="X-USER-DISPLAY-NAME"),
    x_team_id: str | None = Header(default=None, alias="X-TEAM-ID"),
    db: Session = Depends(get_db_session),
) -> RequestUserContext:
    """Resolve current request user, active team and team role.

    Identity comes from trusted proxy headers; the active team is chosen by
    the client per request through ``X-TEAM-ID``. A team the user does not
    belong to resolves to no team role.
    """

    email, display_name = _resolve_identity(x_user_email, x_user_display_name)
    team_id = _parse_team_id(x_team_id)
    user = _upsert_user(db, email=email, display_name=display_name)
    team_role = load_team_role(db, user_id=user.id, team_id=team_id) if team_id is not None else None
    db.commit()

    if user.status != "active":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is disabled.")

    return RequestUserContext(
        user_id=user.id,
        email=user.email,
        display_name=user.display_name,
        status=user.status,
        instance_role=user.instance_role,
        active_team_id=team_id,
        team_role=team_role,
    )


def require_instance_admin(context: RequestUserContext = Depends(get_current_user_context)) -> RequestUserContext:
    if not context.is_instance_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You must be an instance administrator to perform this action.",
        )
    return context


def ensure_team_member(context: RequestUserContext) -> None:
    if not context.is_team_member:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You must be a member of a team to perform this action.",
        )


def require_team_member(context: RequestUserContext = Depends(get_current_user_context)) -> RequestUserContext:
    ensure_team_member(context)
    return context


def ensure_team_role(context: RequestUserContext, min_role: TeamRole) -> None:
    ensure_team_member(context)
    if not is_at_least_team_role(context.team_role, min_role):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You must have at least {min_role.value} role to perform this action.",
        )


def require_team_role(min_role: TeamRole):
    """Dependency factory requiring at least ``min_role`` in the active team."""

    def dependency(context: RequestUserContext = Depends(get_current_user_context)) -> RequestUserContext:
        ensure_team_role(context, min_role)
        return context

    return dependency


def require_invoice_access(context: RequestUserContext = Depends(get_current_user_context)) -> RequestUserContext:
    ensure_team_member(context)
    if not can_access_invoices(context.team_role):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only team owners, admins, and billing managers can access invoices.",
        )
    return context


def assert_team_scope(context: RequestUserContext, team_id: UUID) -> None:
    """Reject access to resources outside the active team."""

    if context.active_team_id is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No active team selected.")
    if team_id != context.active_team_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only access resources within your active team.",
        )
