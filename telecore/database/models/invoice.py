"""
Invoice model.

``amount`` is derived: ``mrc_amount * quantity + usage_amount``. Use
``recompute_amount`` after changing either input.
"""

import uuid
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from telecore.database.base import BaseModel, enum_type

AMOUNT_QUANTUM = Decimal("0.0001")


class InvoiceStatus(str, Enum):
    """Invoice payment status."""

    PENDING = "Pending"
    PAID = "Paid"
    OVERDUE = "Overdue"


class Invoice(BaseModel):
    """
    Periodic invoice for a delivered order.

    Attributes:
        invoice_number: ``<order_number>-<period>``
        period: Billing month as ``YYYY-MM``
        quantity: Order quantity copied at generation
        mrc_amount: Monthly recurring charge per number
        usage_amount: Usage charges for the period
        amount: Derived total
    """

    __tablename__ = "invoices"

    invoice_number: Mapped[str] = mapped_column(
        String(80), nullable=False, unique=True, index=True
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), nullable=False, index=True
    )
    period: Mapped[str] = mapped_column(String(7), nullable=False)
    from_date: Mapped[date] = mapped_column(Date, nullable=False)
    to_date: Mapped[date] = mapped_column(Date, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    mrc_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=4), nullable=False
    )
    usage_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=4), nullable=False, default=Decimal("0")
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=4), nullable=False
    )
    status: Mapped[InvoiceStatus] = mapped_column(
        enum_type(InvoiceStatus, "invoice_status"),
        nullable=False,
        default=InvoiceStatus.PENDING,
        index=True,
    )
    due_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    paid_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    __table_args__ = (
        Index("ix_invoices_order_period", "order_id", "period"),
        CheckConstraint("usage_amount >= 0", name="ck_invoices_usage_non_negative"),
        CheckConstraint("quantity >= 1", name="ck_invoices_quantity_positive"),
    )

    def recompute_amount(self) -> Decimal:
        """Derive ``amount`` from the recurring charge, quantity and usage."""
        self.amount = (
            Decimal(self.mrc_amount) * self.quantity + Decimal(self.usage_amount)
        ).quantize(AMOUNT_QUANTUM)
        return self.amount
