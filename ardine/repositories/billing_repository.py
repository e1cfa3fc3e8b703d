"""Repository helpers for time entries and invoices."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Select, and_, select
from sqlalchemy.orm import Session

from ardine.models.entities import Invoice, InvoiceItem, InvoiceStatus, Project, TimeEntry


class BillingRepository:
    """Persistence operations used by time logging and invoicing services."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Time entries ----------
    def get_time_entry(self, entry_id: UUID) -> TimeEntry | None:
        return self.db.scalar(select(TimeEntry).where(TimeEntry.id == entry_id))

    def list_time_entries_for_user(self, *, team_id: UUID, user_id: UUID) -> list[TimeEntry]:
        return self.db.scalars(
            select(TimeEntry)
            .where(and_(TimeEntry.team_id == team_id, TimeEntry.user_id == user_id))
            .order_by(TimeEntry.started_at.desc())
        ).all()

    @staticmethod
    def unbilled_entries_query(
        *,
        team_id: UUID,
        client_id: UUID,
        entry_ids: list[UUID] | None = None,
        lock: bool = False,
    ) -> Select:
        stmt = (
            select(TimeEntry)
            .join(Project, Project.id == TimeEntry.project_id)
            .where(
                and_(
                    TimeEntry.team_id == team_id,
                    Project.client_id == client_id,
                    TimeEntry.is_billable.is_(True),
                    TimeEntry.stopped_at.is_not(None),
                    TimeEntry.invoice_item_id.is_(None),
                )
            )
        )
        if entry_ids is not None:
            stmt = stmt.where(TimeEntry.id.in_(entry_ids))
        if lock:
            # Row locks on time_entries only; SQLite compiles this away.
            stmt = stmt.with_for_update(of=TimeEntry)
        return stmt.order_by(TimeEntry.started_at.asc(), TimeEntry.id.asc())

    def list_unbilled_entries_for_client(
        self,
        *,
        team_id: UUID,
        client_id: UUID,
        entry_ids: list[UUID] | None = None,
        lock: bool = False,
    ) -> list[TimeEntry]:
        stmt = self.unbilled_entries_query(team_id=team_id, client_id=client_id, entry_ids=entry_ids, lock=lock)
        return self.db.scalars(stmt).all()

    def add_time_entry(self, entry: TimeEntry) -> TimeEntry:
        self.db.add(entry)
        self.db.flush()
        return entry

    def delete_time_entry(self, entry: TimeEntry) -> None:
        self.db.delete(entry)
        self.db.flush()

    # ---------- Invoices ----------
    def get_invoice(self, invoice_id: UUID) -> Invoice | None:
        return self.db.scalar(select(Invoice).where(Invoice.id == invoice_id))

    def list_invoices_for_team(
        self,
        team_id: UUID,
        *,
        client_id: UUID | None = None,
        invoice_status: InvoiceStatus | None = None,
    ) -> list[Invoice]:
        stmt = select(Invoice).where(Invoice.team_id == team_id)
        if client_id is not None:
            stmt = stmt.where(Invoice.client_id == client_id)
        if invoice_status is not None:
            stmt = stmt.where(Invoice.status == invoice_status)
        return self.db.scalars(stmt.order_by(Invoice.issued_date.desc(), Invoice.invoice_number.desc())).all()

    def list_invoice_items(self, invoice_id: UUID) -> list[InvoiceItem]:
        return self.db.scalars(
            select(InvoiceItem)
            .where(InvoiceItem.invoice_id == invoice_id)
            .order_by(InvoiceItem.sequence_no.asc())
        ).all()

    def list_entries_for_invoice(self, invoice_id: UUID) -> list[TimeEntry]:
        return self.db.scalars(
            select(TimeEntry)
            .join(InvoiceItem, InvoiceItem.id == TimeEntry.invoice_item_id)
            .where(InvoiceItem.invoice_id == invoice_id)
        ).all()

    def list_invoice_numbers_for_team(self, team_id: UUID) -> list[str]:
        return self.db.scalars(select(Invoice.invoice_number).where(Invoice.team_id == team_id)).all()

    def add_invoice(self, invoice: Invoice) -> Invoice:
        self.db.add(invoice)
        self.db.flush()
        return invoice

    def add_invoice_item(self, item: InvoiceItem) -> InvoiceItem:
        self.db.add(item)
        self.db.flush()
        return item
