"""
Celery application and beat schedule.

Run a worker with ``celery -A telecore.worker worker`` and the scheduler
with ``celery -A telecore.worker beat``.
"""

from celery import Celery
from celery.schedules import crontab

from telecore.core.config import get_settings
from telecore.core.logging import configure_logging

settings = get_settings()
configure_logging()

celery_app = Celery(
    "telecore",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["telecore.services.invoices.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=86400,
    beat_schedule={
        "generate-monthly-invoices": {
            "task": "invoices.generate_monthly",
            "schedule": crontab(minute=0, hour=1),
        },
        "mark-overdue-invoices": {
            "task": "invoices.mark_overdue",
            "schedule": crontab(minute=30, hour=1),
        },
    },
)
