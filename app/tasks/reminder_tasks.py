# app/tasks/reminder_tasks.py
from app.config.celery_config import celery_app
from app.config.database import SessionLocal
from app.services.email.email_service import get_reminder_sender
from app.services.reminder.reminder_service import ReminderService
from app.utils.time_utils import get_clock
import logging

logger = logging.getLogger(__name__)


@celery_app.task
def process_reminders():
    """Run one reminder batch. Unsent reminders stay due, so the next beat retries them."""
    db = SessionLocal()
    try:
        result = ReminderService(db, get_reminder_sender(), get_clock()).run()
        return result.to_dict()
    except Exception as exc:
        logger.exception(f"Reminder batch aborted: {exc}")
        raise
    finally:
        db.close()
