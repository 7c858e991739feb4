"""
Scheduled invoice jobs: monthly batch generation, overdue sweep and
payment marking.

These status changes sit outside ``InvoiceEngine``, which only guards the
amount invariant.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, Optional

from sqlalchemy import and_, exists, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from telecore.core.exceptions import InvalidTransitionError, TelecoreError
from telecore.core.locks import KeyLockManager, get_lock_manager, invoice_key
from telecore.core.logging import get_logger, log_performance
from telecore.database.models.invoice import Invoice, InvoiceStatus
from telecore.database.models.order import Order
from telecore.services.invoices.engine import InvoiceEngine, parse_period, previous_period
from telecore.services.orders.enums import OrderStatus

logger = get_logger(__name__)


@dataclass
class BatchResult:
    """Summary of a monthly generation run."""

    period: str
    generated: list[str] = field(default_factory=list)
    skipped: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": self.period,
            "generated": list(self.generated),
            "skipped": list(self.skipped),
        }


class InvoiceScheduler:
    """Batch and date-driven invoice operations."""

    def __init__(
        self,
        session: AsyncSession,
        locks: Optional[KeyLockManager] = None,
        engine: Optional[InvoiceEngine] = None,
    ):
        self.session = session
        self.locks = locks or get_lock_manager()
        self.engine = engine or InvoiceEngine(session, locks=self.locks)

    async def generate_monthly(self, reference_date: Optional[date] = None) -> BatchResult:
        """
        Invoice the month before ``reference_date``.

        Every Delivered order delivered on or before the last day of that
        month and not yet invoiced for it gets one invoice. A failure on
        one order is logged and skipped.
        """
        reference_date = reference_date or date.today()
        period = previous_period(reference_date)
        _, period_end = parse_period(period)
        cutoff = datetime.combine(period_end, time.max, tzinfo=timezone.utc)

        already_invoiced = exists().where(
            and_(Invoice.order_id == Order.id, Invoice.period == period)
        )
        stmt = (
            select(Order.id)
            .where(
                Order.status == OrderStatus.DELIVERED,
                Order.delivered_at <= cutoff,
                ~already_invoiced,
            )
            .order_by(Order.delivered_at)
        )
        order_ids = list((await self.session.execute(stmt)).scalars().all())
        # Release the read transaction before per-order commits.
        await self.session.commit()

        batch = BatchResult(period=period)
        with log_performance(logger, "monthly_invoices", period=period, orders=len(order_ids)):
            for order_id in order_ids:
                try:
                    invoice = await self.engine.generate(
                        order_id, period, issued_on=reference_date
                    )
                    batch.generated.append(invoice.invoice_number)
                except (TelecoreError, SQLAlchemyError) as e:
                    logger.warning(
                        "Skipped order in monthly invoice run",
                        order_id=str(order_id),
                        period=period,
                        error=str(e),
                    )
                    batch.skipped.append({"order_id": str(order_id), "error": str(e)})

        logger.info(
            "Monthly invoice run finished",
            period=period,
            generated=len(batch.generated),
            skipped=len(batch.skipped),
        )
        return batch

    async def mark_overdue(self, today: Optional[date] = None) -> int:
        """
        Move Pending invoices whose due date has been reached to Overdue.

        Returns:
            Number of invoices updated
        """
        today = today or date.today()
        try:
            result = await self.session.execute(
                update(Invoice)
                .where(Invoice.status == InvoiceStatus.PENDING, Invoice.due_date <= today)
                .values(status=InvoiceStatus.OVERDUE)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Overdue sweep failed", error=str(e))
            raise

        logger.info("Overdue sweep finished", today=today.isoformat(), updated=result.rowcount)
        return result.rowcount

    async def mark_paid(
        self, invoice_id: uuid.UUID, paid_date: Optional[date] = None
    ) -> Invoice:
        """
        Record payment of a Pending or Overdue invoice.

        Raises:
            NotFoundError: If the invoice does not exist
            InvalidTransitionError: If the invoice is already Paid
        """
        paid_date = paid_date or date.today()
        async with self.locks.hold(invoice_key(invoice_id)):
            try:
                invoice = await self.engine.lock_invoice(invoice_id)
                if invoice.status == InvoiceStatus.PAID:
                    raise InvalidTransitionError(
                        "Invoice is already Paid", invoice_id=invoice_id
                    )
                invoice.status = InvoiceStatus.PAID
                invoice.paid_date = paid_date
                await self.session.commit()
            except TelecoreError:
                await self.session.rollback()
                raise
            except SQLAlchemyError as e:
                await self.session.rollback()
                logger.error("Marking invoice paid failed", invoice_id=str(invoice_id), error=str(e))
                raise

        logger.info("Invoice paid", invoice_id=str(invoice_id), paid_date=paid_date.isoformat())
        return invoice
