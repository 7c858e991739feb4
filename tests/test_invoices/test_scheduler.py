"""
Tests for the monthly invoice run, overdue sweep, payments and the
Celery task wrappers.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from telecore.core.exceptions import InvalidTransitionError
from telecore.database.models import InvoiceStatus
from telecore.services.invoices import tasks
from telecore.services.invoices.engine import InvoiceEngine
from telecore.services.invoices.scheduler import BatchResult, InvoiceScheduler


def first_of_next_month() -> date:
    today = datetime.now(timezone.utc).date()
    return (today.replace(day=28) + timedelta(days=4)).replace(day=1)


@pytest.fixture
def scheduler(session, locks) -> InvoiceScheduler:
    engine = InvoiceEngine(session, locks=locks, due_days=10)
    return InvoiceScheduler(session, locks=locks, engine=engine)


# ============================================================================
# Monthly Generation
# ============================================================================


class TestGenerateMonthly:
    async def test_invoices_delivered_orders(self, driver, scheduler) -> None:
        delivered = await driver.delivered(quantity=2, current_override={"mrc": "4"})
        await driver.paid(current_override={"mrc": "4"})
        reference = first_of_next_month()

        batch = await scheduler.generate_monthly(reference)

        period = (reference - timedelta(days=1)).strftime("%Y-%m")
        assert batch.period == period
        assert batch.generated == [f"{delivered.order_number}-{period}"]
        assert batch.skipped == []

        [invoice] = await scheduler.engine.list_for_order(delivered.id)
        assert invoice.amount == Decimal("8.0000")
        assert invoice.due_date == reference + timedelta(days=10)

    async def test_rerun_does_not_duplicate(self, driver, scheduler) -> None:
        await driver.delivered(current_override={"mrc": "4"})
        reference = first_of_next_month()
        await scheduler.generate_monthly(reference)

        batch = await scheduler.generate_monthly(reference)

        assert batch.generated == []
        assert batch.skipped == []

    async def test_orders_delivered_after_period_are_skipped(self, driver, scheduler) -> None:
        await driver.delivered(current_override={"mrc": "4"})

        batch = await scheduler.generate_monthly(date(2020, 2, 1))

        assert batch.period == "2020-01"
        assert batch.generated == []


# ============================================================================
# Overdue Sweep and Payments
# ============================================================================


class TestStatusChanges:
    async def test_mark_overdue_after_due_date(self, driver, scheduler) -> None:
        order = await driver.delivered(current_override={"mrc": "4"})
        invoice = await scheduler.engine.generate(
            order.id, "2024-05", issued_on=date(2024, 6, 1)
        )

        assert await scheduler.mark_overdue(today=date(2024, 6, 10)) == 0
        assert await scheduler.mark_overdue(today=date(2024, 6, 11)) == 1

        stored = await scheduler.engine.lock_invoice(invoice.id)
        assert stored.status == InvoiceStatus.OVERDUE

    async def test_paid_invoices_are_not_overdue(self, driver, scheduler) -> None:
        order = await driver.delivered(current_override={"mrc": "4"})
        invoice = await scheduler.engine.generate(
            order.id, "2024-05", issued_on=date(2024, 6, 1)
        )
        await scheduler.mark_paid(invoice.id, paid_date=date(2024, 6, 3))

        assert await scheduler.mark_overdue(today=date(2025, 1, 1)) == 0

    async def test_overdue_invoice_can_be_paid(self, driver, scheduler) -> None:
        order = await driver.delivered(current_override={"mrc": "4"})
        invoice = await scheduler.engine.generate(
            order.id, "2024-05", issued_on=date(2024, 6, 1)
        )
        await scheduler.mark_overdue(today=date(2024, 7, 1))

        paid = await scheduler.mark_paid(invoice.id, paid_date=date(2024, 7, 2))

        assert paid.status == InvoiceStatus.PAID
        assert paid.paid_date == date(2024, 7, 2)

    async def test_paying_twice_rejected(self, driver, scheduler) -> None:
        order = await driver.delivered(current_override={"mrc": "4"})
        invoice = await scheduler.engine.generate(order.id, "2024-05")
        await scheduler.mark_paid(invoice.id)

        with pytest.raises(InvalidTransitionError):
            await scheduler.mark_paid(invoice.id)


# ============================================================================
# Celery Tasks
# ============================================================================


class TestTasks:
    def test_batch_result_to_dict(self) -> None:
        batch = BatchResult(period="2024-05", generated=["ORD-1-2024-05"])

        assert batch.to_dict() == {
            "period": "2024-05",
            "generated": ["ORD-1-2024-05"],
            "skipped": [],
        }

    def test_generate_monthly_task(self) -> None:
        summary = {"period": "2024-02", "generated": ["ORD-1-2024-02"], "skipped": []}
        with patch.object(
            tasks, "_run_generate_monthly", AsyncMock(return_value=summary)
        ) as run:
            result = tasks.generate_monthly_invoices_task.run(reference_date="2024-03-01")

        assert result == summary
        run.assert_awaited_once_with(date(2024, 3, 1))

    def test_mark_overdue_task_defaults_to_today(self) -> None:
        with patch.object(tasks, "_run_mark_overdue", AsyncMock(return_value=3)) as run:
            result = tasks.mark_overdue_invoices_task.run()

        assert result == {"today": date.today().isoformat(), "updated": 3}
        run.assert_awaited_once_with(date.today())
