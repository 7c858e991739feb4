"""
Invoice API endpoints.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from telecore.api.deps import DatabaseSession, LockManager
from telecore.schemas.invoices import (
    BatchResultResponse,
    InvoiceGenerateRequest,
    InvoiceResponse,
    MarkPaidRequest,
    OverdueResultResponse,
    UsageUpdateRequest,
)
from telecore.services.invoices.engine import InvoiceEngine
from telecore.services.invoices.scheduler import InvoiceScheduler

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post(
    "/",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate an invoice for a delivered order",
)
async def generate_invoice(
    request: InvoiceGenerateRequest, db: DatabaseSession, locks: LockManager
) -> InvoiceResponse:
    invoice = await InvoiceEngine(db, locks=locks).generate(
        request.order_id,
        request.period,
        from_date=request.from_date,
        to_date=request.to_date,
        issued_on=request.issued_on,
    )
    return InvoiceResponse.model_validate(invoice)


@router.get("/", response_model=list[InvoiceResponse], summary="List an order's invoices")
async def list_invoices(
    db: DatabaseSession, locks: LockManager, order_id: UUID = Query(...)
) -> list[InvoiceResponse]:
    invoices = await InvoiceEngine(db, locks=locks).list_for_order(order_id)
    return [InvoiceResponse.model_validate(invoice) for invoice in invoices]


@router.get("/{invoice_id}", response_model=InvoiceResponse, summary="Get invoice")
async def get_invoice(invoice_id: UUID, db: DatabaseSession, locks: LockManager) -> InvoiceResponse:
    invoice = await InvoiceEngine(db, locks=locks).get(invoice_id)
    return InvoiceResponse.model_validate(invoice)


@router.put(
    "/{invoice_id}/usage",
    response_model=InvoiceResponse,
    summary="Replace usage amount and recompute total",
)
async def update_invoice_usage(
    invoice_id: UUID,
    request: UsageUpdateRequest,
    db: DatabaseSession,
    locks: LockManager,
) -> InvoiceResponse:
    invoice = await InvoiceEngine(db, locks=locks).update_usage(
        invoice_id, request.usage_amount
    )
    return InvoiceResponse.model_validate(invoice)


@router.post(
    "/{invoice_id}/mark-paid",
    response_model=InvoiceResponse,
    summary="Record invoice payment",
)
async def mark_invoice_paid(
    invoice_id: UUID,
    db: DatabaseSession,
    locks: LockManager,
    request: Optional[MarkPaidRequest] = None,
) -> InvoiceResponse:
    paid_date = request.paid_date if request else None
    invoice = await InvoiceScheduler(db, locks=locks).mark_paid(invoice_id, paid_date)
    return InvoiceResponse.model_validate(invoice)


@router.post(
    "/batches/monthly",
    response_model=BatchResultResponse,
    summary="Run monthly invoice generation now",
)
async def run_monthly_generation(
    db: DatabaseSession,
    locks: LockManager,
    reference_date: Optional[date] = Query(None),
) -> BatchResultResponse:
    """Same batch the scheduler runs; already invoiced orders are skipped."""
    result = await InvoiceScheduler(db, locks=locks).generate_monthly(reference_date)
    return BatchResultResponse(**result.to_dict())


@router.post(
    "/batches/overdue",
    response_model=OverdueResultResponse,
    summary="Mark pending invoices past due as overdue",
)
async def run_overdue_marking(
    db: DatabaseSession,
    locks: LockManager,
    today: Optional[date] = Query(None),
) -> OverdueResultResponse:
    updated = await InvoiceScheduler(db, locks=locks).mark_overdue(today)
    return OverdueResultResponse(updated=updated)
