"""Celery app bootstrap."""

from __future__ import annotations

from datetime import timedelta

from celery import Celery

from syndata.core.config import get_settings

settings = get_settings()

BROKER_URL = (settings.CELERY_BROKER_URL or "redis://localhost:6379/0").strip()
QUEUE_PREFIX = (settings.CELERY_QUEUE_PREFIX or "syndata-").strip()
DEFAULT_QUEUE = "default"

celery_app = Celery(
    "syndata",
    broker=BROKER_URL,
    include=["syndata.worker.tasks"],
)

celery_app.conf.update(
    task_default_queue=DEFAULT_QUEUE,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_reject_on_worker_lost=True,
)

if BROKER_URL.startswith("sqs://"):
    # SQS transport applies `queue_name_prefix`, so the real queue is "<prefix>default".
    celery_app.conf.broker_transport_options = {
        "region": (settings.AWS_REGION or "").strip(),
        "queue_name_prefix": QUEUE_PREFIX,
        "visibility_timeout": 3600,
    }

if settings.CELERY_TASK_TIME_LIMIT:
    celery_app.conf.task_time_limit = int(settings.CELERY_TASK_TIME_LIMIT)
if settings.CELERY_TASK_SOFT_TIME_LIMIT:
    celery_app.conf.task_soft_time_limit = int(settings.CELERY_TASK_SOFT_TIME_LIMIT)


# =============================================================================
# Celery Beat Schedule - Periodic Tasks
# =============================================================================

celery_app.conf.beat_schedule = {
    # Pull pipeline status for queued/running jobs the webhook hasn't updated
    "sync-active-jobs": {
        "task": "syndata.worker.tasks.sync_active_jobs",
        "schedule": timedelta(seconds=max(10, int(settings.JOBS_SYNC_INTERVAL_SECONDS))),
        "options": {"queue": DEFAULT_QUEUE},
    },
}
