"""
Celery application for the periodic maintenance jobs.

Run a worker with the beat scheduler embedded:

    celery -A evently_ticketing.tasks.celery_app:celery_app worker --beat
"""

from celery import Celery, signals
from celery.schedules import crontab

from ..config import get_settings
from ..utils.logging_config import setup_logging

settings = get_settings()

celery_app = Celery(
    "evently_ticketing",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["evently_ticketing.tasks.maintenance_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_expires=24 * 3600,
    timezone="UTC",
    enable_utc=True,
    task_time_limit=10 * 60,
    task_soft_time_limit=8 * 60,
    # Sweeps are idempotent; a late ack re-runs one after a worker crash
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)

celery_app.conf.beat_schedule = {
    "expire-pending-bookings": {
        "task": "expire_pending_bookings_task",
        "schedule": float(settings.booking_expiry_interval_seconds),
    },
    "expire-past-event-tickets": {
        "task": "expire_past_event_tickets_task",
        "schedule": crontab(minute=5),
    },
}


@signals.setup_logging.connect
def configure_worker_logging(**kwargs):
    """Workers log through the same handlers and filters as the API."""
    setup_logging(
        log_level=settings.log_level,
        log_file=settings.log_file,
        enable_json_logging=settings.enable_json_logging,
    )
