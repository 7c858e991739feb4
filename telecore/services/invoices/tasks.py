"""
Celery tasks for scheduled invoice processing.

Each task runs one scheduler operation in its own event loop and
database session. Celery beat triggers them daily (see
``telecore.worker``).
"""

import asyncio
from datetime import date
from typing import Any, Optional

from celery import Task, shared_task
from sqlalchemy.exc import OperationalError

from telecore.core.logging import get_logger
from telecore.database.connection import dispose_engine, get_session
from telecore.services.invoices.scheduler import InvoiceScheduler

logger = get_logger(__name__)


class InvoiceTask(Task):
    """
    Base task class for invoice jobs.

    Transient database failures are retried with backoff; domain errors
    are handled per order inside the scheduler.
    """

    autoretry_for = (OperationalError,)
    retry_kwargs = {"max_retries": 3}
    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True

    def on_failure(
        self,
        exc: Exception,
        task_id: str,
        args: tuple,
        kwargs: dict,
        einfo: Any,
    ) -> None:
        logger.error(
            "Invoice task failed",
            task_id=task_id,
            task_name=self.name,
            exception=str(exc),
            args=args,
            kwargs=kwargs,
        )

    def on_retry(
        self,
        exc: Exception,
        task_id: str,
        args: tuple,
        kwargs: dict,
        einfo: Any,
    ) -> None:
        logger.warning(
            "Invoice task retrying",
            task_id=task_id,
            task_name=self.name,
            exception=str(exc),
            retry_count=self.request.retries,
            max_retries=self.max_retries,
        )


def _parse_date(value: Optional[str]) -> date:
    return date.fromisoformat(value) if value else date.today()


async def _run_generate_monthly(reference_date: date) -> dict[str, Any]:
    try:
        async with get_session() as session:
            batch = await InvoiceScheduler(session).generate_monthly(reference_date)
            return batch.to_dict()
    finally:
        await dispose_engine()


async def _run_mark_overdue(today: date) -> int:
    try:
        async with get_session() as session:
            return await InvoiceScheduler(session).mark_overdue(today)
    finally:
        await dispose_engine()


@shared_task(
    bind=True,
    base=InvoiceTask,
    name="invoices.generate_monthly",
    time_limit=1800,
    soft_time_limit=1700,
)
def generate_monthly_invoices_task(
    self: Task, reference_date: Optional[str] = None
) -> dict[str, Any]:
    """
    Generate last month's invoices for delivered orders.

    Args:
        reference_date: ISO date inside the month after the billed one,
            defaults to today

    Returns:
        Batch summary with generated invoice numbers and skipped orders
    """
    reference = _parse_date(reference_date)
    logger.info(
        "Processing monthly invoice task",
        task_id=self.request.id,
        reference_date=reference.isoformat(),
    )

    result = asyncio.run(_run_generate_monthly(reference))

    logger.info(
        "Monthly invoice task completed",
        task_id=self.request.id,
        period=result["period"],
        generated=len(result["generated"]),
        skipped=len(result["skipped"]),
    )
    return result


@shared_task(
    bind=True,
    base=InvoiceTask,
    name="invoices.mark_overdue",
    time_limit=300,
    soft_time_limit=240,
)
def mark_overdue_invoices_task(self: Task, today: Optional[str] = None) -> dict[str, Any]:
    """
    Flag Pending invoices past their due date as Overdue.

    Returns:
        Dictionary with the number of invoices updated
    """
    day = _parse_date(today)
    updated = asyncio.run(_run_mark_overdue(day))

    logger.info(
        "Overdue invoice task completed",
        task_id=self.request.id,
        today=day.isoformat(),
        updated=updated,
    )
    return {"today": day.isoformat(), "updated": updated}
