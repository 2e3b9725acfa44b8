"""
Celery application configuration.
"""
from celery import Celery
from celery.schedules import crontab

from app.core.config import settings

# Create Celery app
celery_app = Celery(
    "crm_automation",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "app.celery.tasks.sequence_tasks",
    ],
)

# Configure Celery
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=settings.SEQUENCE_LOCK_TIMEOUT_SECONDS,
    task_soft_time_limit=settings.SEQUENCE_LOCK_TIMEOUT_SECONDS - 60,

    # Result backend settings
    result_expires=3600,  # 1 hour

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=100,

    # Beat schedule for periodic tasks
    beat_schedule={
        # Run due sequence steps
        "process-sequences": {
            "task": "app.celery.tasks.sequence_tasks.process_sequences",
            "schedule": crontab(minute=f"*/{settings.SEQUENCE_TICK_MINUTES}"),
        },
        # Enroll leads that went quiet into inactivity sequences, hourly
        "enroll-inactive-leads": {
            "task": "app.celery.tasks.sequence_tasks.enroll_inactive_leads",
            "schedule": crontab(minute=15),
        },
        # Daily pass for scheduled-trigger sequences at 9 AM UTC
        "enroll-scheduled": {
            "task": "app.celery.tasks.sequence_tasks.enroll_scheduled",
            "schedule": crontab(hour=9, minute=0),
        },
    },
)
