"""
Celery application configuration for background tasks.
"""

from celery import Celery
from ..config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    "seatkeeper",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "seatkeeper.tasks.reaper_tasks",
    ]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=5 * 60,  # 5 minutes
    task_soft_time_limit=4 * 60,  # 4 minutes
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
)

# Periodic tasks configuration
celery_app.conf.beat_schedule = {
    "sweep-expired-holds": {
        "task": "sweep_expired_holds_task",
        "schedule": settings.reaper_interval_seconds,
        # A sweep that missed its tick is superseded by the next one
        "options": {"expires": settings.reaper_interval_seconds},
    },
}
