"""
Invoice Pydantic schemas.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from telecore.database.models.invoice import InvoiceStatus


class InvoiceGenerateRequest(BaseModel):
    order_id: UUID
    period: str = Field(..., description="Billing month, YYYY-MM", examples=["2024-05"])
    from_date: Optional[date] = None
    to_date: Optional[date] = None
    issued_on: Optional[date] = None


class UsageUpdateRequest(BaseModel):
    usage_amount: Union[Decimal, str] = Field(
        ..., description="Usage charges; currency strings are accepted"
    )


class MarkPaidRequest(BaseModel):
    paid_date: Optional[date] = None


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    invoice_number: str
    order_id: UUID
    customer_id: UUID
    period: str
    from_date: date
    to_date: date
    quantity: int
    mrc_amount: Decimal
    usage_amount: Decimal
    amount: Decimal
    status: InvoiceStatus
    due_date: date
    paid_date: Optional[date]


class BatchResultResponse(BaseModel):
    period: str
    generated: list[str] = Field(default_factory=list, description="Invoice numbers created")
    skipped: list[dict[str, Any]] = Field(
        default_factory=list, description="Orders not invoiced and the reason"
    )


class OverdueResultResponse(BaseModel):
    updated: int
