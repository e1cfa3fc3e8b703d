"""Project, project membership, task and rate endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ardine.core.auth import RequestUserContext, get_current_user_context
from ardine.core.permissions import ProjectRole, can_access_financials
from ardine.db.dependencies import get_db_session
from ardine.services.project_service import (
    ProjectCreateData,
    ProjectService,
    ProjectUpdateData,
    TaskCreateData,
    TaskUpdateData,
)

router = APIRouter(tags=["projects"])


class ProjectCreatePayload(BaseModel):
    client_id: UUID
    code: str = Field(min_length=1, max_length=32)
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    default_hourly_rate_cents: int | None = Field(default=None, ge=0)


class ProjectUpdatePayload(BaseModel):
    code: str | None = Field(default=None, min_length=1, max_length=32)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    default_hourly_rate_cents: int | None = Field(default=None, ge=0)


class ProjectMemberAddPayload(BaseModel):
    user_id: UUID
    role: ProjectRole = ProjectRole.CONTRIBUTOR


class ProjectMemberRolePayload(BaseModel):
    role: ProjectRole


class TaskCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    hourly_rate_cents: int | None = Field(default=None, ge=0)



class TaskUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    hourly_rate_cents: int | None = Field(default=None, ge=0)
    active: bool | None = None


class TaskAssigneeAddPayload(BaseModel):
    user_id: UUID


@router.get("/projects")
def list_projects(
    include_archived: bool = Query(default=False),
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = ProjectService(db)
    show_financials = can_access_financials(context.team_role)
    items = []
    for project, permissions in service.list_visible_projects(context=context, include_archived=include_archived):
        payload = service.serialize_project(project, show_financials=show_financials)
        payload["effective_role"] = permissions.effective_role.value
        items.append(payload)
    return {"items": items}


@router.post("/projects", status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = ProjectService(db)
    project = service.create_project(
        context=context,
        data=ProjectCreateData(
            client_id=payload.client_id,
            code=payload.code,
            name=payload.name,
            description=payload.description,
            default_hourly_rate_cents=payload.default_hourly_rate_cents,
        ),
    )
    return service.serialize_project(project, show_financials=can_access_financials(context.team_role))


@router.get("/projects/{project_id}")
def get_project(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = ProjectService(db)
    access = service.resolve_access(context=context, project_id=project_id)
    payload = service.serialize_project(access.project, show_financials=can_access_financials(context.team_role))
    payload["permissions"] = access.permissions.as_dict()
    return payload


@router.patch("/projects/{project_id}")
def update_project(
    project_id: UUID,
    payload: ProjectUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = ProjectService(db)
    project = service.update_project(
        context=context,
        project_id=project_id,
        data=ProjectUpdateData(
            code=payload.code,
            name=payload.name,
            description=payload.description,
            default_hourly_rate_cents=payload.default_hourly_rate_cents,
            update_rate="default_hourly_rate_cents" in payload.model_fields_set,
        ),
    )
    return service.serialize_project(project, show_financials=can_access_financials(context.team_role))


@router.post("/projects/{project_id}/archive")
def archive_project(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = ProjectService(db)
    project = service.set_project_archived(context=context, project_id=project_id, archived=True)
    return service.serialize_project(project, show_financials=can_access_financials(context.team_role))


@router.post("/projects/{project_id}/unarchive")
def unarchive_project(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = ProjectService(db)
    project = service.set_project_archived(context=context, project_id=project_id, archived=False)
    return service.serialize_project(project, show_financials=can_access_financials(context.team_role))


@router.get("/projects/{project_id}/permissions")
def get_project_permissions(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    access = ProjectService(db).resolve_access(context=context, project_id=project_id)
    return access.permissions.as_dict()


@router.get("/projects/{project_id}/members")
def list_project_members(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = ProjectService(db)
    rows = service.list_members(context=context, project_id=project_id)
    return {"items": [service.serialize_member(member, user) for member, user in rows]}


@router.post("/projects/{project_id}/members", status_code=status.HTTP_201_CREATED)
def add_project_member(
    project_id: UUID,
    payload: ProjectMemberAddPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = ProjectService(db)
    member, user = service.add_member(
        context=context,
        project_id=project_id,
        user_id=payload.user_id,
        role=payload.role,
    )
    return service.serialize_member(member, user)


@router.patch("/projects/{project_id}/members/{member_id}")
def update_project_member_role(
    project_id: UUID,
    member_id: UUID,
    payload: ProjectMemberRolePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = ProjectService(db)
    member, user = service.update_member_role(
        context=context,
        project_id=project_id,
        member_id=member_id,
        role=payload.role,
    )
    return service.serialize_member(member, user)


@router.delete("/projects/{project_id}/members/{member_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_project_member(
    project_id: UUID,
    member_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    ProjectService(db).remove_member(context=context, project_id=project_id, member_id=member_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/projects/{project_id}/tasks")
def list_project_tasks(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = ProjectService(db)
    show_financials = can_access_financials(context.team_role)
    return {
        "items": [
            service.serialize_task(task, show_financials=show_financials)
            for task in service.list_tasks(context=context, project_id=project_id)
        ]
    }


@router.post("/projects/{project_id}/tasks", status_code=status.HTTP_201_CREATED)
def create_project_task(
    project_id: UUID,
    payload: TaskCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = ProjectService(db)
    task = service.create_task(
        context=context,
        project_id=project_id,
        data=TaskCreateData(
            name=payload.name,
            description=payload.description,
            hourly_rate_cents=payload.hourly_rate_cents,
        ),
    )
    return service.serialize_task(task, show_financials=can_access_financials(context.team_role))


@router.get("/projects/{project_id}/rate")
def get_project_rate(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = ProjectService(db)
    return service.serialize_rate(service.resolve_project_rate(context=context, project_id=project_id))


@router.patch("/tasks/{task_id}")
def update_task(
    task_id: UUID,
    payload: TaskUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = ProjectService(db)
    task = service.update_task(
        context=context,
        task_id=task_id,
        data=TaskUpdateData(
            name=payload.name,
            description=payload.description,
            hourly_rate_cents=payload.hourly_rate_cents,
            update_rate="hourly_rate_cents" in payload.model_fields_set,
            active=payload.active,
        ),
    )
    return service.serialize_task(task, show_financials=can_access_financials(context.team_role))


@router.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    ProjectService(db).delete_task(context=context, task_id=task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/tasks/{task_id}/assignees")
def list_task_assignees(
    task_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = ProjectService(db)
    rows = service.list_task_assignees(context=context, task_id=task_id)
    return {"items": [service.serialize_assignee(assignee, user) for assignee, user in rows]}


@router.post("/tasks/{task_id}/assignees", status_code=status.HTTP_201_CREATED)
def add_task_assignee(
    task_id: UUID,
    payload: TaskAssigneeAddPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = ProjectService(db)
    assignee, user = service.add_task_assignee(context=context, task_id=task_id, user_id=payload.user_id)
    return service.serialize_assignee(assignee, user)


@router.delete("/tasks/{task_id}/assignees/{assignee_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_task_assignee(
    task_id: UUID,
    assignee_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    ProjectService(db).remove_task_assignee(context=context, task_id=task_id, assignee_id=assignee_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/tasks/{task_id}/rate")
def get_task_rate(
    task_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = ProjectService(db)
    return service.serialize_rate(service.resolve_task_rate(context=context, task_id=task_id))
