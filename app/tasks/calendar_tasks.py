# app/tasks/calendar_tasks.py
from app.config.celery_config import celery_app
from app.config.database import SessionLocal
from app.services.calendar.busy_time_sync import BusyTimeSyncService, practitioners_with_calendars
from app.services.calendar.event_push import CalendarEventPusher
from app.utils.time_utils import get_clock
import logging
import uuid

logger = logging.getLogger(__name__)


@celery_app.task
def sync_practitioner_busy_times(practitioner_id: str):
    """Refresh the busy-time cache of one practitioner"""
    db = SessionLocal()
    try:
        outcome = BusyTimeSyncService(db, get_clock()).sync_practitioner(uuid.UUID(practitioner_id))
        return {"practitioner_id": practitioner_id, "providers": outcome}
    finally:
        db.close()


@celery_app.task
def sync_all_busy_times():
    """Fan out one sync task per practitioner with an active calendar"""
    db = SessionLocal()
    try:
        practitioner_ids = practitioners_with_calendars(db)
    finally:
        db.close()

    for practitioner_id in practitioner_ids:
        sync_practitioner_busy_times.delay(str(practitioner_id))

    logger.info(f"Queued busy-time sync for {len(practitioner_ids)} practitioners")
    return {"queued": len(practitioner_ids)}


@celery_app.task
def push_booking_to_calendars(appointment_id: str):
    """Write one confirmed booking to the practitioner's connected calendars"""
    db = SessionLocal()
    try:
        outcome = CalendarEventPusher(db).push(uuid.UUID(appointment_id))
        return {"appointment_id": appointment_id, "providers": outcome}
    finally:
        db.close()
