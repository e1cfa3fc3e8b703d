"""Application service for instance administration, teams and clients."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

import structlog
from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ardine.core.auth import RequestUserContext, assert_team_scope, ensure_team_member, ensure_team_role
from ardine.core.config import get_settings
from ardine.core.permissions import (
    InstanceRole,
    TeamRole,
    can_access_financials,
    is_team_owner,
)
from ardine.core.rates import format_rate_cents
from ardine.models.entities import Client, Currency, Team, TeamMembership, User, utcnow
from ardine.repositories.access_repository import AccessRepository

logger = structlog.get_logger()


@dataclass(slots=True)
class TeamCreateData:
    name: str
    default_hourly_rate_cents: int | None = None
    currency: Currency = Currency.USD


@dataclass(slots=True)
class ClientCreateData:
    name: str
    email: str | None = None
    default_hourly_rate_cents: int | None = None
    currency: Currency = Currency.USD


@dataclass(slots=True)
class ClientUpdateData:
    name: str | None = None
    email: str | None = None
    update_email: bool = False
    default_hourly_rate_cents: int | None = None
    update_rate: bool = False
    currency: Currency | None = None


class TeamService:
    """Service implementing instance roles, team membership rules and clients."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = AccessRepository(db)
        self.settings = get_settings()

    # ---------- Serialization ----------
    @staticmethod
    def serialize_user(user: User) -> dict[str, object]:
        return {
            "id": str(user.id),
            "email": user.email,
            "display_name": user.display_name,
            "instance_role": user.instance_role.value,
            "status": user.status,
        }

    @staticmethod
    def serialize_team(team: Team) -> dict[str, object]:
        return {
            "id": str(team.id),
            "name": team.name,
            "default_hourly_rate_cents": team.default_hourly_rate_cents,
            "currency": team.currency.value,
        }

    @staticmethod
    def serialize_membership(membership: TeamMembership, user: User) -> dict[str, object]:
        return {
            "id": str(membership.id),
            "team_id": str(membership.team_id),
            "user_id": str(membership.user_id),
            "role": membership.role.value,
            "joined_at": membership.joined_at.isoformat(),
            "user": {
                "id": str(user.id),
                "email": user.email,
                "display_name": user.display_name,
            },
        }

    @staticmethod
    def serialize_client(client: Client, *, show_financials: bool) -> dict[str, object]:
        payload: dict[str, object] = {
            "id": str(client.id),
            "team_id": str(client.team_id),
            "name": client.name,
            "email": client.email,
            "currency": client.currency.value,
            "archived": client.archived_at is not None,
        }
        if show_financials:
            payload["default_hourly_rate_cents"] = client.default_hourly_rate_cents
            payload["default_hourly_rate_display"] = format_rate_cents(client.default_hourly_rate_cents)
        return payload

    # ---------- Instance administration ----------
    def list_users(self) -> list[User]:
        return self.repo.list_users()

    def set_instance_role(self, *, context: RequestUserContext, user_id: UUID, role: InstanceRole) -> User:
        user = self.repo.get_user(user_id)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")

        if (
            user.instance_role is InstanceRole.ADMIN
            and role is not InstanceRole.ADMIN
            and self.repo.count_instance_admins() <= 1
        ):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Cannot demote the last instance administrator.",
            )

        previous = user.instance_role
        user.instance_role = role
        user.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(user)
        logger.info(
            "instance_role_changed",
            actor_user_id=str(context.user_id),
            user_id=str(user.id),
            previous_role=previous.value,
            role=role.value,
        )
        return user

    # ---------- Teams ----------
    def create_team(self, *, context: RequestUserContext, data: TeamCreateData) -> Team:
        now = utcnow()
        rate = data.default_hourly_rate_cents
        team = Team(
            name=data.name.strip(),
            default_hourly_rate_cents=rate if rate is not None else self.settings.default_hourly_rate_cents,
            currency=data.currency,
            created_at=now,
            updated_at=now,
        )
        self.repo.add_team(team)
        self.repo.add_team_membership(
            TeamMembership(team_id=team.id, user_id=context.user_id, role=TeamRole.OWNER, joined_at=now)
        )
        self.db.commit()
        self.db.refresh(team)
        logger.info("team_created", team_id=str(team.id), owner_user_id=str(context.user_id))
        return team

    def _ensure_team_scope(self, *, context: RequestUserContext, team_id: UUID) -> Team:
        ensure_team_member(context)
        assert_team_scope(context, team_id)
        team = self.repo.get_team(team_id)
        if team is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found.")
        return team

    def list_team_members(self, *, context: RequestUserContext, team_id: UUID) -> list[tuple[TeamMembership, User]]:
        self._ensure_team_scope(context=context, team_id=team_id)
        return self.repo.list_team_memberships(team_id)

    def _ensure_can_grant(self, *, context: RequestUserContext, role: TeamRole) -> None:
        if role is TeamRole.OWNER and not is_team_owner(context.team_role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only team owners can grant the OWNER role.",
            )

    def _ensure_can_modify(self, *, context: RequestUserContext, membership: TeamMembership) -> None:
        if membership.role is TeamRole.OWNER and not is_team_owner(context.team_role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Team admins cannot modify team owners.",
            )

    def _load_membership(self, *, team_id: UUID, membership_id: UUID) -> TeamMembership:
        membership = self.repo.get_team_membership(membership_id)
        if membership is None or membership.team_id != team_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team member not found.")
        return membership

    def add_team_member(
        self,
        *,
        context: RequestUserContext,
        team_id: UUID,
        email: str,
        role: TeamRole,
    ) -> tuple[TeamMembership, User]:
        self._ensure_team_scope(context=context, team_id=team_id)
        ensure_team_role(context, TeamRole.ADMIN)
        self._ensure_can_grant(context=context, role=role)

        user = self.repo.get_user_by_email(email.strip().lower())
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")

        if self.repo.find_team_membership(team_id=team_id, user_id=user.id) is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="User is already a member of this team.",
            )

        now = utcnow()
        membership = TeamMembership(team_id=team_id, user_id=user.id, role=role, invited_at=now, joined_at=now)
        try:
            self.repo.add_team_membership(membership)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="User is already a member of this team.",
            ) from exc

        self.db.refresh(membership)
        logger.info("team_member_added", team_id=str(team_id), user_id=str(user.id), role=role.value)
        return membership, user

    def update_team_member_role(
        self,
        *,
        context: RequestUserContext,
        team_id: UUID,
        membership_id: UUID,
        role: TeamRole,
    ) -> tuple[TeamMembership, User]:
        self._ensure_team_scope(context=context, team_id=team_id)
        ensure_team_role(context, TeamRole.ADMIN)
        membership = self._load_membership(team_id=team_id, membership_id=membership_id)
        self._ensure_can_modify(context=context, membership=membership)
        self._ensure_can_grant(context=context, role=role)

        if (
            membership.role is TeamRole.OWNER
            and role is not TeamRole.OWNER
            and self.repo.count_team_owners(team_id) <= 1
        ):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Cannot change the last owner's role. Transfer ownership first.",
            )

        previous = membership.role
        membership.role = role
        self.db.commit()
        self.db.refresh(membership)
        logger.info(
            "team_member_role_changed",
            team_id=str(team_id),
            membership_id=str(membership.id),
            previous_role=previous.value,
            role=role.value,
        )
        user = self.repo.get_user(membership.user_id)
        return membership, user

    def remove_team_member(self, *, context: RequestUserContext, team_id: UUID, membership_id: UUID) -> None:
        self._ensure_team_scope(context=context, team_id=team_id)
        ensure_team_role(context, TeamRole.ADMIN)
        membership = self._load_membership(team_id=team_id, membership_id=membership_id)
        self._ensure_can_modify(context=context, membership=membership)

        if membership.role is TeamRole.OWNER and self.repo.count_team_owners(team_id) <= 1:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Cannot remove the last owner from the team.",
            )

        self.repo.delete_team_membership(membership)
        self.db.commit()
        logger.info("team_member_removed", team_id=str(team_id), user_id=str(membership.user_id))

    # ---------- Clients ----------
    def list_clients(self, *, context: RequestUserContext, include_archived: bool = False) -> list[Client]:
        ensure_team_member(context)
        return self.repo.list_clients(context.active_team_id, include_archived=include_archived)

    def create_client(self, *, context: RequestUserContext, data: ClientCreateData) -> Client:
        ensure_team_role(context, TeamRole.ADMIN)
        client = Client(
            team_id=context.active_team_id,
            name=data.name.strip(),
            email=data.email.strip().lower() if data.email else None,
            default_hourly_rate_cents=data.default_hourly_rate_cents,
            currency=data.currency,
            created_at=utcnow(),
        )
        self.repo.add_client(client)
        self.db.commit()
        self.db.refresh(client)
        return client

    def _load_client_in_team(self, *, context: RequestUserContext, client_id: UUID) -> Client:
        client = self.repo.get_client(client_id)
        if client is None or client.team_id != context.active_team_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found.")
        return client

    def update_client(self, *, context: RequestUserContext, client_id: UUID, data: ClientUpdateData) -> Client:
        ensure_team_role(context, TeamRole.ADMIN)
        client = self._load_client_in_team(context=context, client_id=client_id)

        if data.name is not None:
            client.name = data.name.strip()
        if data.update_email:
            client.email = data.email.strip().lower() if data.email else None
        if data.update_rate:
            client.default_hourly_rate_cents = data.default_hourly_rate_cents
        if data.currency is not None:
            client.currency = data.currency

        self.db.commit()
        self.db.refresh(client)
        return client

    def set_client_archived(self, *, context: RequestUserContext, client_id: UUID, archived: bool) -> Client:
        ensure_team_role(context, TeamRole.ADMIN)
        client = self._load_client_in_team(context=context, client_id=client_id)

        if archived and client.archived_at is None:
            client.archived_at = utcnow()
        elif not archived:
            client.archived_at = None
        self.db.commit()
        self.db.refresh(client)
        logger.info("client_archive_changed", client_id=str(client.id), archived=archived)
        return client

    @staticmethod
    def shows_financials(context: RequestUserContext) -> bool:
        return can_access_financials(context.team_role)
