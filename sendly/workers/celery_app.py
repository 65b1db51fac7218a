"""
Celery application instance and configuration.
"""

from typing import Any

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging

from sendly.core.config import settings
from sendly.core.logging import configure_logging

celery_app = Celery("sendly", broker=settings.celery_broker_url)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_ignore_result=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_time_limit=15 * 60,  # 15 minutes
    task_soft_time_limit=10 * 60,  # 10 minutes
)

# Celery Beat Schedule (Periodic Tasks)
celery_app.conf.beat_schedule = {
    "dispatch-due-newsletters": {
        "task": "newsletter.dispatch_due",
        "schedule": crontab(minute="*"),  # Every minute
        "options": {"queue": "newsletter"},
    },
}

celery_app.conf.task_routes = {
    "newsletter.*": {"queue": "newsletter"},
}


@setup_logging.connect
def _configure_worker_logging(**_kwargs: Any) -> None:
    configure_logging()


celery_app.autodiscover_tasks(["sendly.workers"], related_name="tasks")
