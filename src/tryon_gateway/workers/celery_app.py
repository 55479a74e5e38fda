"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab

from tryon_gateway.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "tryon_gateway",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "tryon_gateway.workers.credential_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,
    task_soft_time_limit=270,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

celery_app.conf.beat_schedule = {
    "reset-credential-pool": {
        "task": "tryon_gateway.workers.credential_tasks.reset_credential_pool",
        "schedule": crontab(
            hour=settings.credential_reset_hour,
            minute=settings.credential_reset_minute,
        ),
        "options": {"queue": "maintenance"},
    },
}
