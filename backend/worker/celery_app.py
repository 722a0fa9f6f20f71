"""Celery application configuration.

This module sets up the Celery app with:
- Redis as broker and result backend
- Beat schedule for the workflow retry sweep

Run the beat-driven sweep with ``RETRY_SWEEPER_IN_PROCESS=false`` on the
API processes so retries are not swept twice.
"""

from celery import Celery
from celery.schedules import crontab

from app.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    "workflow_engine",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

# Configuration
celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    task_routes={
        "worker.tasks.workflow_retries.*": {"queue": "workflows"},
        "worker.tasks.*": {"queue": "default"},
    },
    task_default_queue="default",

    # Result expiration (24 hours)
    result_expires=86400,

    # Task execution limits
    task_soft_time_limit=240,   # stays under the 5 min sweep interval
    task_time_limit=290,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_reject_on_worker_lost=True,

    beat_schedule={
        "process-workflow-retries": {
            "task": "worker.tasks.workflow_retries.process_workflow_retries",
            "schedule": crontab(minute="*/5"),  # Every 5 minutes
            "options": {"queue": "workflows"},
        },
    },

    include=[
        "worker.tasks.workflow_retries",
    ],
)
