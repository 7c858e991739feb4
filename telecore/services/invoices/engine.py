"""
Invoice engine.

Generates periodic invoices from an order's locked-in ``current`` pricing
and applies usage corrections. The engine guarantees
``amount = mrc_amount * quantity + usage_amount``; status changes driven
by dates or payments live in ``InvoiceScheduler``.
"""

import calendar
import re
import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from telecore.core.config import get_settings
from telecore.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PricingUnavailableError,
    TelecoreError,
    ValidationError,
)
from telecore.core.locks import KeyLockManager, get_lock_manager, invoice_key, order_key
from telecore.core.logging import get_logger
from telecore.database.models.invoice import AMOUNT_QUANTUM, Invoice, InvoiceStatus
from telecore.database.models.order import OrderPricing, PricingType
from telecore.services.orders.enums import OrderStatus
from telecore.services.orders.repository import OrderRepository
from telecore.services.pricing.fields import parse_amount

logger = get_logger(__name__)

PERIOD_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")
MONTHS_PER_YEAR = Decimal("12")


def parse_period(period: str) -> tuple[date, date]:
    """
    Parse a ``YYYY-MM`` billing period.

    Returns:
        First and last day of the month

    Raises:
        ValidationError: If the period is malformed
    """
    match = PERIOD_PATTERN.match((period or "").strip())
    if match is None:
        raise ValidationError("Period must be formatted YYYY-MM", period=period)
    year, month = int(match.group(1)), int(match.group(2))
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def previous_period(reference: date) -> str:
    """Billing period of the month before ``reference``."""
    last_of_previous = reference.replace(day=1) - timedelta(days=1)
    return last_of_previous.strftime("%Y-%m")


def monthly_recurring_amount(pricing: OrderPricing) -> Decimal:
    """Monthly charge per number: ``mrc`` plus ``arc`` spread over a year."""
    amount = Decimal("0")
    if pricing.mrc is not None:
        amount += Decimal(pricing.mrc)
    if pricing.arc is not None:
        amount += Decimal(pricing.arc) / MONTHS_PER_YEAR
    return amount.quantize(AMOUNT_QUANTUM)


class InvoiceEngine:
    """Generate invoices and correct usage amounts."""

    def __init__(
        self,
        session: AsyncSession,
        locks: Optional[KeyLockManager] = None,
        due_days: Optional[int] = None,
    ):
        self.session = session
        self.locks = locks or get_lock_manager()
        self.repository = OrderRepository(session)
        self.due_days = get_settings().invoice_due_days if due_days is None else due_days

    async def generate(
        self,
        order_id: uuid.UUID,
        period: str,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        issued_on: Optional[date] = None,
    ) -> Invoice:
        """
        Generate the invoice of an order for one billing period.

        Args:
            order_id: Delivered order
            period: Billing month ``YYYY-MM``
            from_date: Start of the billed range, defaults to the first day
            to_date: End of the billed range, defaults to the last day
            issued_on: Issue date, defaults to today; due date is derived

        Returns:
            New ``Pending`` invoice with zero usage

        Raises:
            ValidationError: If the period or date range is invalid
            InvalidTransitionError: If the order is not Delivered
            PricingUnavailableError: If the order has no current pricing
            ConflictError: If the period is already invoiced
        """
        period_start, period_end = parse_period(period)
        from_date = from_date or period_start
        to_date = to_date or period_end
        if to_date < from_date:
            raise ValidationError(
                "to_date must not be before from_date",
                from_date=from_date,
                to_date=to_date,
            )
        issued_on = issued_on or date.today()

        async with self.locks.hold(order_key(order_id)):
            try:
                order = await self.repository.require_order(order_id)
                if order.status != OrderStatus.DELIVERED:
                    raise InvalidTransitionError(
                        "Invoices can only be generated for Delivered orders",
                        order_id=order_id,
                        current_status=order.status.value,
                    )

                result = await self.session.execute(
                    select(OrderPricing).where(
                        OrderPricing.order_id == order_id,
                        OrderPricing.pricing_type == PricingType.CURRENT,
                    )
                )
                pricing = result.scalar_one_or_none()
                if pricing is None:
                    raise PricingUnavailableError(
                        "Order has no current pricing to invoice",
                        order_id=order_id,
                    )

                invoice_number = f"{order.order_number}-{period}"
                duplicate = await self.session.execute(
                    select(Invoice.id).where(Invoice.invoice_number == invoice_number)
                )
                if duplicate.scalar_one_or_none() is not None:
                    raise ConflictError(
                        f"Invoice {invoice_number} already exists",
                        order_id=order_id,
                        period=period,
                    )

                invoice = Invoice(
                    invoice_number=invoice_number,
                    order_id=order.id,
                    customer_id=order.customer_id,
                    period=period,
                    from_date=from_date,
                    to_date=to_date,
                    quantity=order.quantity,
                    mrc_amount=monthly_recurring_amount(pricing),
                    usage_amount=Decimal("0"),
                    status=InvoiceStatus.PENDING,
                    due_date=issued_on + timedelta(days=self.due_days),
                )
                invoice.recompute_amount()
                self.session.add(invoice)
                await self.session.flush()
                await self.session.commit()
            except TelecoreError:
                await self.session.rollback()
                raise
            except IntegrityError as e:
                await self.session.rollback()
                raise ConflictError(
                    "Invoice for period already exists",
                    order_id=order_id,
                    period=period,
                ) from e
            except SQLAlchemyError as e:
                await self.session.rollback()
                logger.error(
                    "Invoice generation failed",
                    order_id=str(order_id),
                    period=period,
                    error=str(e),
                )
                raise

        logger.info(
            "Invoice generated",
            invoice_id=str(invoice.id),
            invoice_number=invoice.invoice_number,
            order_id=str(order_id),
            amount=str(invoice.amount),
        )
        return invoice

    async def update_usage(self, invoice_id: uuid.UUID, usage_amount: Any) -> Invoice:
        """
        Replace the usage amount and re-derive the invoice amount.

        Raises:
            ValidationError: If usage is unparseable or negative
            NotFoundError: If the invoice does not exist
            InvalidTransitionError: If the invoice is already Paid
        """
        usage = parse_amount(usage_amount, field="usage_amount")
        if usage < 0:
            raise ValidationError(
                "Usage amount must not be negative", usage_amount=usage_amount
            )

        async with self.locks.hold(invoice_key(invoice_id)):
            try:
                invoice = await self.lock_invoice(invoice_id)
                if invoice.status == InvoiceStatus.PAID:
                    raise InvalidTransitionError(
                        "Paid invoices cannot be changed",
                        invoice_id=invoice_id,
                    )
                invoice.usage_amount = usage.quantize(AMOUNT_QUANTUM)
                invoice.recompute_amount()
                await self.session.commit()
            except TelecoreError:
                await self.session.rollback()
                raise
            except SQLAlchemyError as e:
                await self.session.rollback()
                logger.error(
                    "Usage update failed", invoice_id=str(invoice_id), error=str(e)
                )
                raise

        logger.info(
            "Invoice usage updated",
            invoice_id=str(invoice_id),
            usage_amount=str(invoice.usage_amount),
            amount=str(invoice.amount),
        )
        return invoice

    async def lock_invoice(self, invoice_id: uuid.UUID) -> Invoice:
        """Re-read an invoice for update inside the caller's lock."""
        result = await self.session.execute(
            select(Invoice)
            .where(Invoice.id == invoice_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise NotFoundError("Invoice", invoice_id)
        return invoice

    async def get(self, invoice_id: uuid.UUID) -> Invoice:
        invoice = await self.session.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice", invoice_id)
        return invoice

    async def list_for_order(self, order_id: uuid.UUID) -> Sequence[Invoice]:
        result = await self.session.execute(
            select(Invoice).where(Invoice.order_id == order_id).order_by(Invoice.period)
        )
        return result.scalars().all()
