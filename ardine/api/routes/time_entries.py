"""Time entry endpoints."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ardine.core.auth import RequestUserContext, get_current_user_context, require_team_member
from ardine.db.dependencies import get_db_session
from ardine.services.billing_service import BillingService, TimeEntryCreateData, TimeEntryUpdateData

router = APIRouter(prefix="/time-entries", tags=["time-entries"])


class TimeEntryCreatePayload(BaseModel):
    project_id: UUID
    task_id: UUID | None = None
    description: str | None = Field(default=None, max_length=2000)
    started_at: datetime
    stopped_at: datetime | None = None
    is_billable: bool = True


class TimeEntryUpdatePayload(BaseModel):
    project_id: UUID | None = None
    task_id: UUID | None = None
    description: str | None = Field(default=None, max_length=2000)
    started_at: datetime | None = None
    stopped_at: datetime | None = None
    is_billable: bool | None = None


class TimeEntryStopPayload(BaseModel):
    stopped_at: datetime | None = None


@router.get("")
def list_my_time_entries(
    context: RequestUserContext = Depends(require_team_member),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = BillingService(db)
    return {"items": [service.serialize_time_entry(entry) for entry in service.list_my_time_entries(context=context)]}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_time_entry(
    payload: TimeEntryCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = BillingService(db)
    entry = service.create_time_entry(
        context=context,
        data=TimeEntryCreateData(
            project_id=payload.project_id,
            task_id=payload.task_id,
            description=payload.description,
            started_at=payload.started_at,
            stopped_at=payload.stopped_at,
            is_billable=payload.is_billable,
        ),
    )
    return service.serialize_time_entry(entry)


@router.post("/{entry_id}/stop")
def stop_time_entry(
    entry_id: UUID,
    payload: TimeEntryStopPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = BillingService(db)
    entry = service.stop_time_entry(context=context, entry_id=entry_id, stopped_at=payload.stopped_at)
    return service.serialize_time_entry(entry)


@router.patch("/{entry_id}")
def update_time_entry(
    entry_id: UUID,
    payload: TimeEntryUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = BillingService(db)
    entry = service.update_time_entry(
        context=context,
        entry_id=entry_id,
        data=TimeEntryUpdateData(
            project_id=payload.project_id,
            task_id=payload.task_id,
            update_task="task_id" in payload.model_fields_set,
            description=payload.description,
            update_description="description" in payload.model_fields_set,
            started_at=payload.started_at,
            stopped_at=payload.stopped_at,
            is_billable=payload.is_billable,
        ),
    )
    return service.serialize_time_entry(entry)


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_time_entry(
    entry_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    BillingService(db).delete_time_entry(context=context, entry_id=entry_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
