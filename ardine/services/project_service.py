"""Application service for projects, project membership, tasks and rate lookup."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

import structlog
from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ardine.core.auth import RequestUserContext, ensure_team_member, ensure_team_role
from ardine.core.permissions import (
    ProjectPermissions,
    ProjectRole,
    TeamRole,
    can_access_financials,
    get_project_permissions,
)
from ardine.core.rates import RateCandidates, RateResolution, format_rate_cents, resolve_effective_rate
from ardine.models.entities import Project, ProjectMember, ProjectTask, TaskAssignee, User, utcnow
from ardine.repositories.access_repository import AccessRepository

logger = structlog.get_logger()


@dataclass(slots=True)
class ProjectCreateData:
    client_id: UUID
    code: str
    name: str
    description: str | None = None
    default_hourly_rate_cents: int | None = None


@dataclass(slots=True)
class ProjectUpdateData:
    code: str | None = None
    name: str | None = None
    description: str | None = None
    default_hourly_rate_cents: int | None = None
    update_rate: bool = False


@dataclass(slots=True)
class TaskCreateData:
    name: str
    description: str | None = None
    hourly_rate_cents: int | None = None


@dataclass(slots=True)
class TaskUpdateData:
    name: str | None = None
    description: str | None = None
    hourly_rate_cents: int | None = None
    update_rate: bool = False
    active: bool | None = None


@dataclass(slots=True)
class ProjectAccess:
    project: Project
    permissions: ProjectPermissions


class ProjectService:
    """Service applying effective project roles to project-scoped operations."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = AccessRepository(db)

    # ---------- Scope + RBAC ----------
    def _load_project_in_team(self, *, context: RequestUserContext, project_id: UUID) -> Project:
        ensure_team_member(context)
        project = self.repo.get_project(project_id)
        if project is None or project.team_id != context.active_team_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found.")
        return project

    def resolve_access(self, *, context: RequestUserContext, project_id: UUID) -> ProjectAccess:
        """Load a project and the caller's permissions on it; invisible projects are 404."""

        project = self._load_project_in_team(context=context, project_id=project_id)
        project_role = self.repo.get_project_role(project_id=project.id, user_id=context.user_id)
        permissions = get_project_permissions(context.team_role, project_role)
        if not permissions.can_view_project:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found.")
        return ProjectAccess(project=project, permissions=permissions)

    @staticmethod
    def _deny(detail: str) -> HTTPException:
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

    # ---------- Serialization ----------
    @staticmethod
    def serialize_project(project: Project, *, show_financials: bool) -> dict[str, object]:
        payload: dict[str, object] = {
            "id": str(project.id),
            "team_id": str(project.team_id),
            "client_id": str(project.client_id),
            "code": project.code,
            "name": project.name,
            "description": project.description,
            "archived": project.archived_at is not None,
        }
        if show_financials:
            payload["default_hourly_rate_cents"] = project.default_hourly_rate_cents
        return payload

    @staticmethod
    def serialize_member(member: ProjectMember, user: User) -> dict[str, object]:
        return {
            "id": str(member.id),
            "project_id": str(member.project_id),
            "user_id": str(member.user_id),
            "role": member.role.value,
            "user": {
                "id": str(user.id),
                "email": user.email,
                "display_name": user.display_name,
            },
        }

    @staticmethod
    def serialize_task(task: ProjectTask, *, show_financials: bool) -> dict[str, object]:
        payload: dict[str, object] = {
            "id": str(task.id),
            "project_id": str(task.project_id),
            "name": task.name,
            "description": task.description,
            "active": task.active,
        }
        if show_financials:
            payload["hourly_rate_cents"] = task.hourly_rate_cents
        return payload

    @staticmethod
    def serialize_assignee(assignee: TaskAssignee, user: User) -> dict[str, object]:
        return {
            "id": str(assignee.id),
            "task_id": str(assignee.task_id),
            "user_id": str(assignee.user_id),
            "user": {
                "id": str(user.id),
                "email": user.email,
                "display_name": user.display_name,
            },
        }

    @staticmethod
    def serialize_rate(resolution: RateResolution) -> dict[str, object]:
        return {
            "rate_cents": resolution.rate_cents,
            "source": resolution.source.value,
            "display": format_rate_cents(resolution.rate_cents),
        }

    # ---------- Projects ----------
    def list_visible_projects(
        self,
        *,
        context: RequestUserContext,
        include_archived: bool = False,
    ) -> list[tuple[Project, ProjectPermissions]]:
        ensure_team_member(context)
        projects = self.repo.list_projects_for_team(context.active_team_id, include_archived=include_archived)
        roles = self.repo.project_roles_for_user(
            user_id=context.user_id,
            project_ids=[project.id for project in projects],
        )

        visible: list[tuple[Project, ProjectPermissions]] = []
        for project in projects:
            permissions = get_project_permissions(context.team_role, roles.get(project.id))
            if permissions.can_view_project:
                visible.append((project, permissions))
        return visible

    def create_project(self, *, context: RequestUserContext, data: ProjectCreateData) -> Project:
        ensure_team_role(context, TeamRole.ADMIN)
        client = self.repo.get_client(data.client_id)
        if client is None or client.team_id != context.active_team_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found.")

        now = utcnow()
        project = Project(
            team_id=context.active_team_id,
            client_id=client.id,
            code=data.code.strip().upper(),
            name=data.name.strip(),
            description=data.description.strip() if data.description else None,
            default_hourly_rate_cents=data.default_hourly_rate_cents,
            created_at=now,
            updated_at=now,
        )
        try:
            self.repo.add_project(project)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Project code already exists in this team.",
            ) from exc

        self.db.refresh(project)
        logger.info("project_created", project_id=str(project.id), team_id=str(project.team_id))
        return project

    def update_project(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        data: ProjectUpdateData,
    ) -> Project:
        access = self.resolve_access(context=context, project_id=project_id)
        if not access.permissions.can_manage_project:
            raise self._deny("Only project managers can update a project.")

        project = access.project
        if data.code is not None:
            project.code = data.code.strip().upper()
        if data.name is not None:
            project.name = data.name.strip()
        if data.description is not None:
            project.description = data.description.strip() if data.description else None
        if data.update_rate:
            project.default_hourly_rate_cents = data.default_hourly_rate_cents
        project.updated_at = utcnow()

        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Project code already exists in this team.",
            ) from exc

        self.db.refresh(project)
        return project

    def set_project_archived(self, *, context: RequestUserContext, project_id: UUID, archived: bool) -> Project:
        access = self.resolve_access(context=context, project_id=project_id)
        if not access.permissions.can_manage_project:
            raise self._deny("Only project managers can archive a project.")

        project = access.project
        now = utcnow()
        if archived and project.archived_at is None:
            project.archived_at = now
        elif not archived:
            project.archived_at = None
        project.updated_at = now
        self.db.commit()
        self.db.refresh(project)
        logger.info("project_archive_changed", project_id=str(project.id), archived=archived)
        return project

    # ---------- Members ----------
    def list_members(self, *, context: RequestUserContext, project_id: UUID) -> list[tuple[ProjectMember, User]]:
        access = self.resolve_access(context=context, project_id=project_id)
        return self.repo.list_project_members(access.project.id)

    def _load_member(self, *, project_id: UUID, member_id: UUID) -> ProjectMember:
        member = self.repo.get_project_member(member_id)
        if member is None or member.project_id != project_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project member not found.")
        return member

    def add_member(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        user_id: UUID,
        role: ProjectRole,
    ) -> tuple[ProjectMember, User]:
        access = self.resolve_access(context=context, project_id=project_id)
        if not access.permissions.can_add_members:
            raise self._deny("Only project managers can add project members.")

        if self.repo.find_team_membership(team_id=access.project.team_id, user_id=user_id) is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User is not a member of this team.",
            )
        if self.repo.get_project_role(project_id=project_id, user_id=user_id) is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="User is already a member of this project.",
            )

        member = ProjectMember(project_id=project_id, user_id=user_id, role=role, created_at=utcnow())
        try:
            self.repo.add_project_member(member)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="User is already a member of this project.",
            ) from exc

        self.db.refresh(member)
        logger.info("project_member_added", project_id=str(project_id), user_id=str(user_id), role=role.value)
        return member, self.repo.get_user(user_id)

    def update_member_role(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        member_id: UUID,
        role: ProjectRole,
    ) -> tuple[ProjectMember, User]:
        access = self.resolve_access(context=context, project_id=project_id)
        if not access.permissions.can_update_members:
            raise self._deny("Only project managers can change project member roles.")

        member = self._load_member(project_id=project_id, member_id=member_id)
        if (
            member.role is ProjectRole.MANAGER
            and role is not ProjectRole.MANAGER
            and self.repo.count_project_managers(project_id) <= 1
        ):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Cannot demote the last manager of a project.",
            )

        member.role = role
        self.db.commit()
        self.db.refresh(member)
        return member, self.repo.get_user(member.user_id)

    def remove_member(self, *, context: RequestUserContext, project_id: UUID, member_id: UUID) -> None:
        access = self.resolve_access(context=context, project_id=project_id)
        if not access.permissions.can_add_members:
            raise self._deny("Only project managers can remove project members.")

        member = self._load_member(project_id=project_id, member_id=member_id)
        if member.role is ProjectRole.MANAGER and self.repo.count_project_managers(project_id) <= 1:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Cannot remove the last manager from a project.",
            )

        self.repo.delete_project_member(member)
        self.db.commit()
        logger.info("project_member_removed", project_id=str(project_id), user_id=str(member.user_id))

    # ---------- Tasks ----------
    def list_tasks(self, *, context: RequestUserContext, project_id: UUID) -> list[ProjectTask]:
        access = self.resolve_access(context=context, project_id=project_id)
        return self.repo.list_tasks(access.project.id)

    def create_task(self, *, context: RequestUserContext, project_id: UUID, data: TaskCreateData) -> ProjectTask:
        access = self.resolve_access(context=context, project_id=project_id)
        if not access.permissions.can_create_tasks:
            raise self._deny("Only project managers can create tasks.")

        task = ProjectTask(
            project_id=access.project.id,
            name=data.name.strip(),
            description=data.description.strip() if data.description else None,
            hourly_rate_cents=data.hourly_rate_cents,
            active=True,
            created_at=utcnow(),
        )
        self.repo.add_task(task)
        self.db.commit()
        self.db.refresh(task)
        return task

    def _load_task_access(self, *, context: RequestUserContext, task_id: UUID) -> tuple[ProjectTask, ProjectAccess]:
        ensure_team_member(context)
        task = self.repo.get_task(task_id)
        if task is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found.")
        return task, self.resolve_access(context=context, project_id=task.project_id)

    def update_task(self, *, context: RequestUserContext, task_id: UUID, data: TaskUpdateData) -> ProjectTask:
        task, access = self._load_task_access(context=context, task_id=task_id)
        if not access.permissions.can_update_tasks:
            raise self._deny("Only project managers can update tasks.")

        if data.name is not None:
            task.name = data.name.strip()
        if data.description is not None:
            task.description = data.description.strip() if data.description else None
        if data.update_rate:
            task.hourly_rate_cents = data.hourly_rate_cents
        if data.active is not None:
            task.active = data.active

        self.db.commit()
        self.db.refresh(task)
        return task

    def delete_task(self, *, context: RequestUserContext, task_id: UUID) -> None:
        task, access = self._load_task_access(context=context, task_id=task_id)
        if not access.permissions.can_delete_tasks:
            raise self._deny("Only project managers can delete tasks.")

        if self.repo.count_time_entries_for_task(task.id) > 0:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Cannot delete a task with logged time. Deactivate it instead.",
            )
        self.repo.delete_task(task)
        self.db.commit()
        logger.info("task_deleted", task_id=str(task_id), project_id=str(access.project.id))

    # ---------- Task assignees ----------
    def list_task_assignees(self, *, context: RequestUserContext, task_id: UUID) -> list[tuple[TaskAssignee, User]]:
        task, _ = self._load_task_access(context=context, task_id=task_id)
        return self.repo.list_task_assignees(task.id)

    def add_task_assignee(
        self,
        *,
        context: RequestUserContext,
        task_id: UUID,
        user_id: UUID,
    ) -> tuple[TaskAssignee, User]:
        task, access = self._load_task_access(context=context, task_id=task_id)
        if not access.permissions.can_assign_tasks:
            raise self._deny("Only project managers can assign tasks.")

        if self.repo.find_team_membership(team_id=access.project.team_id, user_id=user_id) is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User is not a member of this team.",
            )
        if self.repo.find_task_assignee(task_id=task.id, user_id=user_id) is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="User is already assigned to this task.",
            )

        assignee = TaskAssignee(team_id=access.project.team_id, task_id=task.id, user_id=user_id, created_at=utcnow())
        try:
            self.repo.add_task_assignee(assignee)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="User is already assigned to this task.",
            ) from exc

        self.db.refresh(assignee)
        return assignee, self.repo.get_user(user_id)

    def remove_task_assignee(self, *, context: RequestUserContext, task_id: UUID, assignee_id: UUID) -> None:
        task, access = self._load_task_access(context=context, task_id=task_id)
        if not access.permissions.can_assign_tasks:
            raise self._deny("Only project managers can unassign tasks.")

        assignee = self.repo.get_task_assignee(assignee_id)
        if assignee is None or assignee.task_id != task.id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task assignee not found.")
        self.repo.delete_task_assignee(assignee)
        self.db.commit()

    # ---------- Rates ----------
    def _ensure_financial_access(self, context: RequestUserContext) -> None:
        if not can_access_financials(context.team_role):
            raise self._deny("Only team owners, admins, and billing managers can view rates.")

    def rate_candidates(self, *, project: Project, task: ProjectTask | None = None) -> RateCandidates:
        return RateCandidates.from_sources(
            task=task,
            project=project,
            client=self.repo.get_client(project.client_id),
            team=self.repo.get_team(project.team_id),
        )

    def resolve_project_rate(self, *, context: RequestUserContext, project_id: UUID) -> RateResolution:
        access = self.resolve_access(context=context, project_id=project_id)
        self._ensure_financial_access(context)
        return resolve_effective_rate(self.rate_candidates(project=access.project))

    def resolve_task_rate(self, *, context: RequestUserContext, task_id: UUID) -> RateResolution:
        task, access = self._load_task_access(context=context, task_id=task_id)
        self._ensure_financial_access(context)
        return resolve_effective_rate(self.rate_candidates(project=access.project, task=task))
