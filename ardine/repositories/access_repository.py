"""Repository helpers for users, teams, memberships and projects."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import and_, delete, func, select
from sqlalchemy.orm import Session

from ardine.core.permissions import InstanceRole, ProjectRole, TeamRole
from ardine.models.entities import (
    Client,
    Project,
    ProjectMember,
    ProjectTask,
    TaskAssignee,
    Team,
    TeamMembership,
    TimeEntry,
    User,
)


class AccessRepository:
    """Persistence operations used by team, project and admin services."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Users ----------
    def list_users(self) -> list[User]:
        return self.db.scalars(select(User).order_by(User.email.asc())).all()

    def get_user(self, user_id: UUID) -> User | None:
        return self.db.scalar(select(User).where(User.id == user_id))

    def get_user_by_email(self, email: str) -> User | None:
        return self.db.scalar(select(User).where(User.email == email))

    def count_instance_admins(self) -> int:
        return self.db.scalar(
            select(func.count()).select_from(User).where(User.instance_role == InstanceRole.ADMIN)
        ) or 0

    # ---------- Teams ----------
    def get_team(self, team_id: UUID) -> Team | None:
        return self.db.scalar(select(Team).where(Team.id == team_id))

    def add_team(self, team: Team) -> Team:
        self.db.add(team)
        self.db.flush()
        return team

    def list_team_memberships(self, team_id: UUID) -> list[tuple[TeamMembership, User]]:
        rows = self.db.execute(
            select(TeamMembership, User)
            .join(User, User.id == TeamMembership.user_id)
            .where(TeamMembership.team_id == team_id)
            .order_by(User.email.asc())
        ).all()
        return [(membership, user) for membership, user in rows]

    def get_team_membership(self, membership_id: UUID) -> TeamMembership | None:
        return self.db.scalar(select(TeamMembership).where(TeamMembership.id == membership_id))

    def find_team_membership(self, *, team_id: UUID, user_id: UUID) -> TeamMembership | None:
        return self.db.scalar(
            select(TeamMembership).where(
                and_(TeamMembership.team_id == team_id, TeamMembership.user_id == user_id)
            )
        )

    def count_team_owners(self, team_id: UUID) -> int:
        return self.db.scalar(
            select(func.count())
            .select_from(TeamMembership)
            .where(and_(TeamMembership.team_id == team_id, TeamMembership.role == TeamRole.OWNER))
        ) or 0

    def add_team_membership(self, membership: TeamMembership) -> TeamMembership:
        self.db.add(membership)
        self.db.flush()
        return membership

    def delete_team_membership(self, membership: TeamMembership) -> None:
        self.db.delete(membership)
        self.db.flush()

    # ---------- Clients ----------
    def list_clients(self, team_id: UUID, *, include_archived: bool = False) -> list[Client]:
        stmt = select(Client).where(Client.team_id == team_id)
        if not include_archived:
            stmt = stmt.where(Client.archived_at.is_(None))
        return self.db.scalars(stmt.order_by(Client.name.asc())).all()

    def get_client(self, client_id: UUID) -> Client | None:
        return self.db.scalar(select(Client).where(Client.id == client_id))

    def add_client(self, client: Client) -> Client:
        self.db.add(client)
        self.db.flush()
        return client

    # ---------- Projects ----------
    def list_projects_for_team(self, team_id: UUID, *, include_archived: bool = False) -> list[Project]:
        stmt = select(Project).where(Project.team_id == team_id)
        if not include_archived:
            stmt = stmt.where(Project.archived_at.is_(None))
        return self.db.scalars(stmt.order_by(Project.code.asc())).all()

    def get_project(self, project_id: UUID) -> Project | None:
        return self.db.scalar(select(Project).where(Project.id == project_id))

    def add_project(self, project: Project) -> Project:
        self.db.add(project)
        self.db.flush()
        return project

    # ---------- Project members ----------
    def project_roles_for_user(self, *, user_id: UUID, project_ids: list[UUID]) -> dict[UUID, ProjectRole]:
        if not project_ids:
            return {}
        rows = self.db.execute(
            select(ProjectMember.project_id, ProjectMember.role).where(
                and_(ProjectMember.user_id == user_id, ProjectMember.project_id.in_(project_ids))
            )
        ).all()
        return {project_id: role for project_id, role in rows}

    def get_project_role(self, *, project_id: UUID, user_id: UUID) -> ProjectRole | None:
        return self.db.scalar(
            select(ProjectMember.role).where(
                and_(ProjectMember.project_id == project_id, ProjectMember.user_id == user_id)
            )
        )

    def list_project_members(self, project_id: UUID) -> list[tuple[ProjectMember, User]]:
        rows = self.db.execute(
            select(ProjectMember, User)
            .join(User, User.id == ProjectMember.user_id)
            .where(ProjectMember.project_id == project_id)
            .order_by(User.email.asc())
        ).all()
        return [(member, user) for member, user in rows]

    def get_project_member(self, member_id: UUID) -> ProjectMember | None:
        return self.db.scalar(select(ProjectMember).where(ProjectMember.id == member_id))

    def count_project_managers(self, project_id: UUID) -> int:
        return self.db.scalar(
            select(func.count())
            .select_from(ProjectMember)
            .where(and_(ProjectMember.project_id == project_id, ProjectMember.role == ProjectRole.MANAGER))
        ) or 0

    def add_project_member(self, member: ProjectMember) -> ProjectMember:
        self.db.add(member)
        self.db.flush()
        return member

    def delete_project_member(self, member: ProjectMember) -> None:
        self.db.delete(member)
        self.db.flush()

    # ---------- Tasks ----------
    def list_tasks(self, project_id: UUID) -> list[ProjectTask]:
        return self.db.scalars(
            select(ProjectTask)
            .where(ProjectTask.project_id == project_id)
            .order_by(ProjectTask.name.asc())
        ).all()

    def get_task(self, task_id: UUID) -> ProjectTask | None:
        return self.db.scalar(select(ProjectTask).where(ProjectTask.id == task_id))

    def add_task(self, task: ProjectTask) -> ProjectTask:
        self.db.add(task)
        self.db.flush()
        return task

    def count_time_entries_for_task(self, task_id: UUID) -> int:
        return self.db.scalar(
            select(func.count()).select_from(TimeEntry).where(TimeEntry.task_id == task_id)
        ) or 0

    def delete_task(self, task: ProjectTask) -> None:
        self.db.execute(delete(TaskAssignee).where(TaskAssignee.task_id == task.id))
        self.db.delete(task)
        self.db.flush()

    # ---------- Task assignees ----------
    def list_task_assignees(self, task_id: UUID) -> list[tuple[TaskAssignee, User]]:
        rows = self.db.execute(
            select(TaskAssignee, User)
            .join(User, User.id == TaskAssignee.user_id)
            .where(TaskAssignee.task_id == task_id)
            .order_by(User.email.asc())
        ).all()
        return [(assignee, user) for assignee, user in rows]

    def get_task_assignee(self, assignee_id: UUID) -> TaskAssignee | None:
        return self.db.scalar(select(TaskAssignee).where(TaskAssignee.id == assignee_id))

    def find_task_assignee(self, *, task_id: UUID, user_id: UUID) -> TaskAssignee | None:
        return self.db.scalar(
            select(TaskAssignee).where(and_(TaskAssignee.task_id == task_id, TaskAssignee.user_id == user_id))
        )

    def add_task_assignee(self, assignee: TaskAssignee) -> TaskAssignee:
        self.db.add(assignee)
        self.db.flush()
        return assignee

    def delete_task_assignee(self, assignee: TaskAssignee) -> None:
        self.db.delete(assignee)
        self.db.flush()
