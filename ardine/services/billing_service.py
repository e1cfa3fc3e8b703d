"""Application service for time logging and invoice drafting."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

import structlog
from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ardine.core.auth import RequestUserContext, ensure_team_member
from ardine.core.config import get_settings
from ardine.core.rates import (
    RateCandidates,
    RateSourceKind,
    billable_amount_cents,
    format_cents_to_dollars,
    hours_from_seconds,
    resolve_effective_rate,
)
from ardine.models.entities import (
    Client,
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    Project,
    ProjectTask,
    Team,
    TimeEntry,
    utcnow,
)
from ardine.repositories.access_repository import AccessRepository
from ardine.repositories.billing_repository import BillingRepository
from ardine.services.project_service import ProjectAccess, ProjectService

logger = structlog.get_logger()

TERMINAL_INVOICE_STATUSES = {InvoiceStatus.PAID, InvoiceStatus.CANCELLED}
GENERATED_INVOICE_NUMBER = re.compile(r"INV-\d{8}-(\d+)")


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def tax_amount_cents(subtotal_cents: int, tax_rate_percent: Decimal) -> int:
    amount = Decimal(subtotal_cents) * tax_rate_percent / Decimal(100)
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(slots=True)
class TimeEntryCreateData:
    project_id: UUID
    started_at: datetime
    task_id: UUID | None = None
    description: str | None = None
    stopped_at: datetime | None = None
    is_billable: bool = True


@dataclass(slots=True)
class TimeEntryUpdateData:
    project_id: UUID | None = None
    task_id: UUID | None = None
    update_task: bool = False
    description: str | None = None
    update_description: bool = False
    started_at: datetime | None = None
    stopped_at: datetime | None = None
    is_billable: bool | None = None


@dataclass(slots=True)
class InvoiceCreateData:
    client_id: UUID
    issued_date: date
    due_date: date | None = None
    tax_rate_percent: Decimal | None = None
    notes: str | None = None
    invoice_number: str | None = None
    time_entry_ids: list[UUID] | None = None


@dataclass(slots=True)
class DraftLine:
    """Unbilled time grouped by project, task and resolved rate."""

    project: Project
    task: ProjectTask | None
    rate_cents: int
    rate_source: RateSourceKind
    entries: list[TimeEntry] = field(default_factory=list)

    @property
    def group_key(self) -> str:
        task_part = str(self.task.id) if self.task is not None else "no-task"
        return f"{self.project.id}-{task_part}-{self.rate_cents}"

    @property
    def total_seconds(self) -> int:
        return sum(entry.duration_seconds or 0 for entry in self.entries)

    @property
    def quantity_hours(self) -> Decimal:
        return hours_from_seconds(self.total_seconds)

    @property
    def amount_cents(self) -> int:
        return billable_amount_cents(self.total_seconds, self.rate_cents)

    @property
    def description(self) -> str:
        if self.task is None:
            return self.project.name
        return f"{self.project.name} - {self.task.name}"


@dataclass(slots=True)
class InvoiceDraft:
    client: Client
    lines: list[DraftLine]
    tax_rate_percent: Decimal

    @property
    def subtotal_cents(self) -> int:
        return sum(line.amount_cents for line in self.lines)

    @property
    def tax_amount_cents(self) -> int:
        return tax_amount_cents(self.subtotal_cents, self.tax_rate_percent)

    @property
    def total_cents(self) -> int:
        return self.subtotal_cents + self.tax_amount_cents


class BillingService:
    """Service implementing time logging and invoice creation from unbilled time."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = BillingRepository(db)
        self.access_repo = AccessRepository(db)
        self.projects = ProjectService(db)
        self.settings = get_settings()

    # ---------- Serialization ----------
    @staticmethod
    def serialize_time_entry(entry: TimeEntry) -> dict[str, object]:
        return {
            "id": str(entry.id),
            "team_id": str(entry.team_id),
            "user_id": str(entry.user_id),
            "project_id": str(entry.project_id),
            "task_id": str(entry.task_id) if entry.task_id is not None else None,
            "description": entry.description,
            "started_at": entry.started_at.isoformat(),
            "stopped_at": entry.stopped_at.isoformat() if entry.stopped_at is not None else None,
            "duration_seconds": entry.duration_seconds,
            "is_billable": entry.is_billable,
            "billed": entry.invoice_item_id is not None,
        }

    @staticmethod
    def serialize_draft_line(line: DraftLine) -> dict[str, object]:
        return {
            "group_key": line.group_key,
            "project_id": str(line.project.id),
            "project_code": line.project.code,
            "project_name": line.project.name,
            "task_id": str(line.task.id) if line.task is not None else None,
            "task_name": line.task.name if line.task is not None else None,
            "description": line.description,
            "rate_cents": line.rate_cents,
            "rate_source": line.rate_source.value,
            "quantity_hours": str(line.quantity_hours),
            "amount_cents": line.amount_cents,
            "amount_display": format_cents_to_dollars(line.amount_cents),
            "time_entry_ids": [str(entry.id) for entry in line.entries],
        }

    def serialize_draft(self, draft: InvoiceDraft) -> dict[str, object]:
        return {
            "client_id": str(draft.client.id),
            "lines": [self.serialize_draft_line(line) for line in draft.lines],
            "subtotal_cents": draft.subtotal_cents,
            "tax_rate_percent": str(draft.tax_rate_percent),
            "tax_amount_cents": draft.tax_amount_cents,
            "total_cents": draft.total_cents,
        }

    @staticmethod
    def serialize_invoice_item(item: InvoiceItem) -> dict[str, object]:
        return {
            "id": str(item.id),
            "project_id": str(item.project_id) if item.project_id is not None else None,
            "task_id": str(item.task_id) if item.task_id is not None else None,
            "description": item.description,
            "quantity_hours": str(item.quantity_hours),
            "rate_cents": item.rate_cents,
            "rate_source": item.rate_source,
            "amount_cents": item.amount_cents,
        }

    def serialize_invoice(self, invoice: Invoice) -> dict[str, object]:
        return {
            "id": str(invoice.id),
            "team_id": str(invoice.team_id),
            "client_id": str(invoice.client_id),
            "invoice_number": invoice.invoice_number,
            "status": invoice.status.value,
            "issued_date": invoice.issued_date.isoformat(),
            "due_date": invoice.due_date.isoformat(),
            "subtotal_cents": invoice.subtotal_cents,
            "tax_rate_percent": str(invoice.tax_rate_percent),
            "tax_amount_cents": invoice.tax_amount_cents,
            "total_cents": invoice.total_cents,
            "total_display": format_cents_to_dollars(invoice.total_cents),
            "notes": invoice.notes,
            "items": [self.serialize_invoice_item(item) for item in self.repo.list_invoice_items(invoice.id)],
        }

    # ---------- Time entries ----------
    def list_my_time_entries(self, *, context: RequestUserContext) -> list[TimeEntry]:
        ensure_team_member(context)
        return self.repo.list_time_entries_for_user(team_id=context.active_team_id, user_id=context.user_id)

    def create_time_entry(self, *, context: RequestUserContext, data: TimeEntryCreateData) -> TimeEntry:
        access = self._ensure_can_log_time(context=context, project_id=data.project_id)

        if data.task_id is not None:
            task = self.access_repo.get_task(data.task_id)
            if task is None or task.project_id != access.project.id:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found.")

        started_at = to_naive_utc(data.started_at)
        stopped_at = to_naive_utc(data.stopped_at) if data.stopped_at is not None else None
        duration_seconds = None
        if stopped_at is not None:
            duration_seconds = self._duration_seconds(started_at, stopped_at)

        now = utcnow()
        entry = TimeEntry(
            team_id=access.project.team_id,
            user_id=context.user_id,
            project_id=access.project.id,
            task_id=data.task_id,
            description=data.description.strip() if data.description else None,
            started_at=started_at,
            stopped_at=stopped_at,
            duration_seconds=duration_seconds,
            is_billable=data.is_billable,
            created_at=now,
            updated_at=now,
        )
        self.repo.add_time_entry(entry)
        self.db.commit()
        self.db.refresh(entry)
        return entry

    @staticmethod
    def _duration_seconds(started_at: datetime, stopped_at: datetime) -> int:
        if stopped_at < started_at:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="stopped_at must not be earlier than started_at.",
            )
        return int((stopped_at - started_at).total_seconds())

    def _load_team_entry(self, *, context: RequestUserContext, entry_id: UUID) -> TimeEntry:
        ensure_team_member(context)
        entry = self.repo.get_time_entry(entry_id)
        if entry is None or entry.team_id != context.active_team_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Time entry not found.")
        return entry

    def _ensure_can_log_time(self, *, context: RequestUserContext, project_id: UUID) -> ProjectAccess:
        access = self.projects.resolve_access(context=context, project_id=project_id)
        if not access.permissions.can_log_time:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to log time on this project.",
            )
        return access

    def _load_editable_entry(self, *, context: RequestUserContext, entry_id: UUID) -> TimeEntry:
        """Managers may change any entry on their project, contributors only their own."""

        entry = self._load_team_entry(context=context, entry_id=entry_id)
        access = self._ensure_can_log_time(context=context, project_id=entry.project_id)
        if entry.user_id != context.user_id and not access.permissions.is_manager:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Contributors can only change their own time entries.",
            )
        if entry.invoice_item_id is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Time entry is already billed and can no longer change.",
            )
        return entry

    def stop_time_entry(
        self,
        *,
        context: RequestUserContext,
        entry_id: UUID,
        stopped_at: datetime | None = None,
    ) -> TimeEntry:
        entry = self._load_team_entry(context=context, entry_id=entry_id)
        if entry.user_id != context.user_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Time entry not found.")
        self._ensure_can_log_time(context=context, project_id=entry.project_id)
        if entry.stopped_at is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Time entry is already stopped.")

        end = to_naive_utc(stopped_at) if stopped_at is not None else utcnow()
        entry.duration_seconds = self._duration_seconds(entry.started_at, end)
        entry.stopped_at = end
        entry.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def update_time_entry(
        self,
        *,
        context: RequestUserContext,
        entry_id: UUID,
        data: TimeEntryUpdateData,
    ) -> TimeEntry:
        entry = self._load_editable_entry(context=context, entry_id=entry_id)

        project_id = entry.project_id
        task_id = entry.task_id
        if data.project_id is not None and data.project_id != entry.project_id:
            project_id = self._ensure_can_log_time(context=context, project_id=data.project_id).project.id
            task_id = None
        if data.update_task:
            task_id = data.task_id
        if task_id is not None:
            task = self.access_repo.get_task(task_id)
            if task is None or task.project_id != project_id:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail="task_id must reference a task in the entry's project.",
                )

        started_at = to_naive_utc(data.started_at) if data.started_at is not None else entry.started_at
        stopped_at = to_naive_utc(data.stopped_at) if data.stopped_at is not None else entry.stopped_at
        duration_seconds = None
        if stopped_at is not None:
            duration_seconds = self._duration_seconds(started_at, stopped_at)

        entry.project_id = project_id
        entry.task_id = task_id
        entry.started_at = started_at
        entry.stopped_at = stopped_at
        entry.duration_seconds = duration_seconds
        if data.update_description:
            entry.description = data.description.strip() if data.description else None
        if data.is_billable is not None:
            entry.is_billable = data.is_billable
        entry.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def delete_time_entry(self, *, context: RequestUserContext, entry_id: UUID) -> None:
        entry = self._load_editable_entry(context=context, entry_id=entry_id)
        self.repo.delete_time_entry(entry)
        self.db.commit()
        logger.info("time_entry_deleted", entry_id=str(entry_id), actor_user_id=str(context.user_id))

    # ---------- Invoice drafting ----------
    def _load_client_in_team(self, *, context: RequestUserContext, client_id: UUID) -> Client:
        client = self.access_repo.get_client(client_id)
        if client is None or client.team_id != context.active_team_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found.")
        return client

    def _group_entries(self, *, client: Client, team: Team | None, entries: list[TimeEntry]) -> list[DraftLine]:
        projects: dict[UUID, Project] = {}
        tasks: dict[UUID, ProjectTask | None] = {}
        lines: dict[tuple[UUID, UUID | None, int, RateSourceKind], DraftLine] = {}

        for entry in entries:
            project = projects.get(entry.project_id)
            if project is None:
                project = self.access_repo.get_project(entry.project_id)
                projects[entry.project_id] = project

            task = None
            if entry.task_id is not None:
                if entry.task_id not in tasks:
                    tasks[entry.task_id] = self.access_repo.get_task(entry.task_id)
                task = tasks[entry.task_id]

            resolution = resolve_effective_rate(
                RateCandidates.from_sources(task=task, project=project, client=client, team=team)
            )
            rate_cents = resolution.rate_cents if resolution.rate_cents is not None else 0

            key = (project.id, task.id if task is not None else None, rate_cents, resolution.source)
            line = lines.get(key)
            if line is None:
                line = DraftLine(project=project, task=task, rate_cents=rate_cents, rate_source=resolution.source)
                lines[key] = line
            line.entries.append(entry)

        return list(lines.values())

    def build_draft(
        self,
        *,
        context: RequestUserContext,
        client_id: UUID,
        time_entry_ids: list[UUID] | None = None,
        tax_rate_percent: Decimal | None = None,
        lock: bool = False,
    ) -> InvoiceDraft:
        client = self._load_client_in_team(context=context, client_id=client_id)
        entries = self.repo.list_unbilled_entries_for_client(
            team_id=context.active_team_id,
            client_id=client.id,
            entry_ids=time_entry_ids,
            lock=lock,
        )
        if time_entry_ids is not None and len(entries) != len(set(time_entry_ids)):
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="Some time entries are already billed, running, non-billable or belong to another client.",
            )

        team = self.access_repo.get_team(client.team_id)
        if tax_rate_percent is None:
            tax_rate_percent = Decimal(str(self.settings.default_tax_rate_percent))
        return InvoiceDraft(
            client=client,
            lines=self._group_entries(client=client, team=team, entries=entries),
            tax_rate_percent=tax_rate_percent.quantize(Decimal("0.01")),
        )

    # ---------- Invoices ----------
    def list_invoices(
        self,
        *,
        context: RequestUserContext,
        client_id: UUID | None = None,
        invoice_status: InvoiceStatus | None = None,
    ) -> list[Invoice]:
        return self.repo.list_invoices_for_team(
            context.active_team_id,
            client_id=client_id,
            invoice_status=invoice_status,
        )

    def _next_invoice_number(self, *, team_id: UUID, issued_date: date) -> str:
        """Continue the team-wide sequence past every generated-style number already taken."""

        numbers = set(self.repo.list_invoice_numbers_for_team(team_id))
        highest = len(numbers)
        for number in numbers:
            match = GENERATED_INVOICE_NUMBER.fullmatch(number)
            if match is not None:
                highest = max(highest, int(match.group(1)))

        sequence = highest + 1
        candidate = f"INV-{issued_date:%Y%m%d}-{sequence:03d}"
        while candidate in numbers:
            sequence += 1
            candidate = f"INV-{issued_date:%Y%m%d}-{sequence:03d}"
        return candidate

    def create_invoice(self, *, context: RequestUserContext, data: InvoiceCreateData) -> Invoice:
        draft = self.build_draft(
            context=context,
            client_id=data.client_id,
            time_entry_ids=data.time_entry_ids,
            tax_rate_percent=data.tax_rate_percent,
            lock=True,
        )
        due_date = data.due_date or data.issued_date + timedelta(days=self.settings.default_payment_terms_days)
        if due_date < data.issued_date:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="due_date must not be earlier than issued_date.",
            )

        now = utcnow()
        invoice = Invoice(
            team_id=context.active_team_id,
            client_id=draft.client.id,
            created_by_user_id=context.user_id,
            invoice_number=(
                data.invoice_number.strip()
                if data.invoice_number
                else self._next_invoice_number(team_id=context.active_team_id, issued_date=data.issued_date)
            ),
            status=InvoiceStatus.DRAFT,
            issued_date=data.issued_date,
            due_date=due_date,
            subtotal_cents=draft.subtotal_cents,
            tax_rate_percent=draft.tax_rate_percent,
            tax_amount_cents=draft.tax_amount_cents,
            total_cents=draft.total_cents,
            notes=data.notes.strip() if data.notes else None,
            created_at=now,
            updated_at=now,
        )
        try:
            self.repo.add_invoice(invoice)
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Invoice number already exists in this team.",
            ) from exc

        for sequence_no, line in enumerate(draft.lines):
            item = InvoiceItem(
                invoice_id=invoice.id,
                project_id=line.project.id,
                task_id=line.task.id if line.task is not None else None,
                description=line.description,
                quantity_hours=line.quantity_hours,
                rate_cents=line.rate_cents,
                rate_source=line.rate_source.value,
                amount_cents=line.amount_cents,
                sequence_no=sequence_no,
            )
            self.repo.add_invoice_item(item)
            for entry in line.entries:
                entry.invoice_item_id = item.id
                entry.updated_at = now

        self.db.commit()
        self.db.refresh(invoice)
        logger.info(
            "invoice_created",
            invoice_id=str(invoice.id),
            team_id=str(invoice.team_id),
            client_id=str(invoice.client_id),
            line_count=len(draft.lines),
            total_cents=invoice.total_cents,
        )
        return invoice

    def get_invoice(self, *, context: RequestUserContext, invoice_id: UUID) -> Invoice:
        invoice = self.repo.get_invoice(invoice_id)
        if invoice is None or invoice.team_id != context.active_team_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found.")
        return invoice

    def update_invoice_status(
        self,
        *,
        context: RequestUserContext,
        invoice_id: UUID,
        new_status: InvoiceStatus,
    ) -> Invoice:
        invoice = self.get_invoice(context=context, invoice_id=invoice_id)
        if invoice.status in TERMINAL_INVOICE_STATUSES and invoice.status is not new_status:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invoice is {invoice.status.value} and can no longer change status.",
            )

        now = utcnow()
        if new_status is InvoiceStatus.CANCELLED and invoice.status is not InvoiceStatus.CANCELLED:
            # Cancelled invoices hand their time back to the unbilled pool.
            for entry in self.repo.list_entries_for_invoice(invoice.id):
                entry.invoice_item_id = None
                entry.updated_at = now

        previous = invoice.status
        invoice.status = new_status
        invoice.updated_at = now
        self.db.commit()
        self.db.refresh(invoice)
        logger.info(
            "invoice_status_changed",
            invoice_id=str(invoice.id),
            previous_status=previous.value,
            status=new_status.value,
        )
        return invoice
