"""ORM model package."""

from ardine.models.entities import (
    Client,
    Invoice,
    InvoiceItem,
    Project,
    ProjectMember,
    ProjectTask,
    TaskAssignee,
    Team,
    TeamMembership,
    TimeEntry,
    User,
)

__all__ = [
    "Client",
    "Invoice",
    "InvoiceItem",
    "Project",
    "ProjectMember",
    "ProjectTask",
    "TaskAssignee",
    "Team",
    "TeamMembership",
    "TimeEntry",
    "User",
]
