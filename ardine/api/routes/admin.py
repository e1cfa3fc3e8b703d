"""Instance administration endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ardine.core.auth import RequestUserContext, require_instance_admin
from ardine.core.permissions import InstanceRole
from ardine.db.dependencies import get_db_session
from ardine.services.team_service import TeamService

router = APIRouter(prefix="/admin", tags=["admin"])


class InstanceRoleUpdate(BaseModel):
    instance_role: InstanceRole


@router.get("/users")
def list_users(
    _: RequestUserContext = Depends(require_instance_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = TeamService(db)
    return {"items": [service.serialize_user(user) for user in service.list_users()]}


@router.patch("/users/{user_id}/role")
def update_user_instance_role(
    user_id: UUID,
    payload: InstanceRoleUpdate,
    context: RequestUserContext = Depends(require_instance_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = TeamService(db)
    user = service.set_instance_role(context=context, user_id=user_id, role=payload.instance_role)
    return service.serialize_user(user)
