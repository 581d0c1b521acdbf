# app/tasks/maintenance_tasks.py
from app.config.celery_config import celery_app
from app.config.database import SessionLocal
from app.services.booking.booking_service import BookingService
from app.utils.time_utils import get_clock
import logging

logger = logging.getLogger(__name__)


@celery_app.task
def expire_unverified_bookings():
    """Release slots held by bookings whose verification link lapsed"""
    db = SessionLocal()
    try:
        cancelled = BookingService.expire_unverified_bookings(db, get_clock().now())
        return {"cancelled": cancelled}
    finally:
        db.close()
