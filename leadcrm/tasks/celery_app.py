"""Celery application and beat schedule."""

from celery import Celery
from celery.schedules import crontab

from leadcrm.config import get_settings

settings = get_settings()

celery_app = Celery(
    "leadcrm",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["leadcrm.tasks.maintenance_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    beat_schedule={
        "nightly-maintenance": {
            "task": "leadcrm.tasks.run_nightly_maintenance",
            "schedule": crontab(hour=settings.nightly_maintenance_hour, minute=0),
        },
    },
)
