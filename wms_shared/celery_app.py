"""Celery application for scheduled maintenance tasks."""

from celery import Celery
from celery.schedules import crontab

from wms_shared.config import settings

celery_app = Celery(
    "wms",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["services.event_service.tasks.maintenance_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
)

celery_app.conf.beat_schedule = {
    "cleanup-expired-idempotency-keys": {
        "task": "event_service.cleanup_expired_idempotency_keys",
        "schedule": crontab(hour=settings.idempotency_cleanup_hour, minute=0),
    },
}
