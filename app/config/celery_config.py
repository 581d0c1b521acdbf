# app/config/celery_config.py
"""Celery configuration, task routing and beat schedule"""
from celery import Celery
from kombu import Queue

from app.config.settings import get_settings

settings = get_settings()


def create_celery_app() -> Celery:
    """Create and configure Celery application"""

    celery_app = Celery(
        "booking_engine",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
        include=[
            "app.tasks.reminder_tasks",
            "app.tasks.calendar_tasks",
            "app.tasks.maintenance_tasks",
            "app.tasks.email_tasks",
        ],
    )

    celery_app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,

        # Task routing
        task_routes={
            "app.tasks.reminder_tasks.*": {"queue": "reminders"},
            "app.tasks.calendar_tasks.*": {"queue": "calendar"},
            "app.tasks.maintenance_tasks.*": {"queue": "maintenance"},
            "app.tasks.email_tasks.*": {"queue": "email"},
        },

        # Queue definitions
        task_queues=(
            Queue("reminders", routing_key="reminders"),
            Queue("calendar", routing_key="calendar"),
            Queue("maintenance", routing_key="maintenance"),
            Queue("email", routing_key="email"),
        ),

        # Periodic jobs (run with `celery -A app.worker beat`)
        beat_schedule={
            "process-reminders": {
                "task": "app.tasks.reminder_tasks.process_reminders",
                "schedule": settings.REMINDER_INTERVAL_MINUTES * 60.0,
            },
            "sync-busy-times": {
                "task": "app.tasks.calendar_tasks.sync_all_busy_times",
                "schedule": settings.CALENDAR_SYNC_INTERVAL_MINUTES * 60.0,
            },
            "expire-unverified-bookings": {
                "task": "app.tasks.maintenance_tasks.expire_unverified_bookings",
                "schedule": settings.VERIFICATION_SWEEP_INTERVAL_MINUTES * 60.0,
            },
        },

        # Worker settings
        worker_max_tasks_per_child=1000,
        worker_prefetch_multiplier=1,
        task_acks_late=True,

        broker_connection_retry_on_startup=True,
    )

    return celery_app


celery_app = create_celery_app()
