"""Invoice drafting and invoice lifecycle endpoints."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ardine.core.auth import RequestUserContext, require_invoice_access
from ardine.db.dependencies import get_db_session
from ardine.models.entities import InvoiceStatus
from ardine.services.billing_service import BillingService, InvoiceCreateData

router = APIRouter(prefix="/invoices", tags=["invoices"])


class InvoiceCreatePayload(BaseModel):
    client_id: UUID
    issued_date: date
    due_date: date | None = None
    tax_rate_percent: Decimal | None = Field(default=None, ge=0, le=100)
    notes: str | None = Field(default=None, max_length=2000)
    invoice_number: str | None = Field(default=None, min_length=1, max_length=64)
    time_entry_ids: list[UUID] | None = None


class InvoiceStatusPayload(BaseModel):
    status: InvoiceStatus


@router.get("")
def list_invoices(
    client_id: UUID | None = Query(default=None),
    invoice_status: InvoiceStatus | None = Query(default=None, alias="status"),
    context: RequestUserContext = Depends(require_invoice_access),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = BillingService(db)
    invoices = service.list_invoices(context=context, client_id=client_id, invoice_status=invoice_status)
    return {"items": [service.serialize_invoice(invoice) for invoice in invoices]}


@router.get("/draft")
def preview_invoice_draft(
    client_id: UUID = Query(...),
    tax_rate_percent: Decimal | None = Query(default=None, ge=0, le=100),
    context: RequestUserContext = Depends(require_invoice_access),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    """Group the client's unbilled time into the line items an invoice would contain."""

    service = BillingService(db)
    draft = service.build_draft(context=context, client_id=client_id, tax_rate_percent=tax_rate_percent)
    return service.serialize_draft(draft)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_invoice(
    payload: InvoiceCreatePayload,
    context: RequestUserContext = Depends(require_invoice_access),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = BillingService(db)
    invoice = service.create_invoice(
        context=context,
        data=InvoiceCreateData(
            client_id=payload.client_id,
            issued_date=payload.issued_date,
            due_date=payload.due_date,
            tax_rate_percent=payload.tax_rate_percent,
            notes=payload.notes,
            invoice_number=payload.invoice_number,
            time_entry_ids=payload.time_entry_ids,
        ),
    )
    return service.serialize_invoice(invoice)


@router.get("/{invoice_id}")
def get_invoice(
    invoice_id: UUID,
    context: RequestUserContext = Depends(require_invoice_access),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = BillingService(db)
    return service.serialize_invoice(service.get_invoice(context=context, invoice_id=invoice_id))


@router.patch("/{invoice_id}/status")
def update_invoice_status(
    invoice_id: UUID,
    payload: InvoiceStatusPayload,
    context: RequestUserContext = Depends(require_invoice_access),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = BillingService(db)
    invoice = service.update_invoice_status(context=context, invoice_id=invoice_id, new_status=payload.status)
    return service.serialize_invoice(invoice)
