"""Team and team membership endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ardine.core.auth import RequestUserContext, get_current_user_context, require_team_role
from ardine.core.permissions import TeamRole
from ardine.db.dependencies import get_db_session
from ardine.models.entities import Currency
from ardine.services.team_service import ClientCreateData, ClientUpdateData, TeamCreateData, TeamService

router = APIRouter(tags=["teams"])


class TeamCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    default_hourly_rate_cents: int | None = Field(default=None, ge=0)
    currency: Currency = Currency.USD


class TeamMemberAddPayload(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    role: TeamRole


class TeamMemberRolePayload(BaseModel):
    role: TeamRole


class ClientCreatePayload(BaseModel):
    name: str = Field(min_length=2, max_length=120)
    email: str | None = Field(default=None, min_length=3, max_length=320)
    default_hourly_rate_cents: int | None = Field(default=None, ge=0)
    currency: Currency = Currency.USD


class ClientUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=120)
    email: str | None = Field(default=None, min_length=3, max_length=320)
    default_hourly_rate_cents: int | None = Field(default=None, ge=0)
    currency: Currency | None = None


@router.post("/teams", status_code=status.HTTP_201_CREATED)
def create_team(
    payload: TeamCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = TeamService(db)
    team = service.create_team(
        context=context,
        data=TeamCreateData(
            name=payload.name,
            default_hourly_rate_cents=payload.default_hourly_rate_cents,
            currency=payload.currency,
        ),
    )
    return service.serialize_team(team)


@router.get("/teams/{team_id}/members")
def list_team_members(
    team_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = TeamService(db)
    rows = service.list_team_members(context=context, team_id=team_id)
    return {"items": [service.serialize_membership(membership, user) for membership, user in rows]}


@router.post("/teams/{team_id}/members", status_code=status.HTTP_201_CREATED)
def add_team_member(
    team_id: UUID,
    payload: TeamMemberAddPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = TeamService(db)
    membership, user = service.add_team_member(
        context=context,
        team_id=team_id,
        email=payload.email,
        role=payload.role,
    )
    return service.serialize_membership(membership, user)


@router.patch("/teams/{team_id}/members/{membership_id}")
def update_team_member_role(
    team_id: UUID,
    membership_id: UUID,
    payload: TeamMemberRolePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = TeamService(db)
    membership, user = service.update_team_member_role(
        context=context,
        team_id=team_id,
        membership_id=membership_id,
        role=payload.role,
    )
    return service.serialize_membership(membership, user)


@router.delete("/teams/{team_id}/members/{membership_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_team_member(
    team_id: UUID,
    membership_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    TeamService(db).remove_team_member(context=context, team_id=team_id, membership_id=membership_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/clients")
def list_clients(
    include_archived: bool = Query(default=False),
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = TeamService(db)
    show_financials = service.shows_financials(context)
    return {
        "items": [
            service.serialize_client(client, show_financials=show_financials)
            for client in service.list_clients(context=context, include_archived=include_archived)
        ]
    }


@router.post("/clients", status_code=status.HTTP_201_CREATED)
def create_client(
    payload: ClientCreatePayload,
    context: RequestUserContext = Depends(require_team_role(TeamRole.ADMIN)),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = TeamService(db)
    client = service.create_client(
        context=context,
        data=ClientCreateData(
            name=payload.name,
            email=payload.email,
            default_hourly_rate_cents=payload.default_hourly_rate_cents,
            currency=payload.currency,
        ),
    )
    return service.serialize_client(client, show_financials=service.shows_financials(context))


@router.patch("/clients/{client_id}")
def update_client(
    client_id: UUID,
    payload: ClientUpdatePayload,
    context: RequestUserContext = Depends(require_team_role(TeamRole.ADMIN)),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = TeamService(db)
    client = service.update_client(
        context=context,
        client_id=client_id,
        data=ClientUpdateData(
            name=payload.name,
            email=payload.email,
            update_email="email" in payload.model_fields_set,
            default_hourly_rate_cents=payload.default_hourly_rate_cents,
            update_rate="default_hourly_rate_cents" in payload.model_fields_set,
            currency=payload.currency,
        ),
    )
    return service.serialize_client(client, show_financials=service.shows_financials(context))


@router.post("/clients/{client_id}/archive")
def archive_client(
    client_id: UUID,
    context: RequestUserContext = Depends(require_team_role(TeamRole.ADMIN)),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = TeamService(db)
    client = service.set_client_archived(context=context, client_id=client_id, archived=True)
    return service.serialize_client(client, show_financials=service.shows_financials(context))


@router.post("/clients/{client_id}/unarchive")
def unarchive_client(
    client_id: UUID,
    context: RequestUserContext = Depends(require_team_role(TeamRole.ADMIN)),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = TeamService(db)
    client = service.set_client_archived(context=context, client_id=client_id, archived=False)
    return service.serialize_client(client, show_financials=service.shows_financials(context))
