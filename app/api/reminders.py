# ============================================================================
# FILE: app/api/reminders.py
# Externally scheduled reminder trigger (cron), bearer REMINDER_API_KEY
# ============================================================================
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.dependencies import require_reminder_api_key
from app.config.database import get_db
from app.schemas.reminders import ReminderBatchResponse
from app.services.email.email_service import get_reminder_sender
from app.services.reminder.reminder_service import ReminderService
from app.utils.time_utils import get_clock

reminders_router = APIRouter(prefix="/api/reminders", tags=["reminders"])


def _run_batch(db: Session, sender, clock) -> dict:
    result = ReminderService(db, sender, clock).run()
    return {"success": True, **result.to_dict()}


@reminders_router.post(
    "/send",
    response_model=ReminderBatchResponse,
    dependencies=[Depends(require_reminder_api_key)],
)
def send_reminders(
        db: Session = Depends(get_db),
        clock=Depends(get_clock),
        sender=Depends(get_reminder_sender)
):
    """Run one reminder batch and report what was sent"""
    return _run_batch(db, sender, clock)


@reminders_router.get(
    "/send",
    response_model=ReminderBatchResponse,
    dependencies=[Depends(require_reminder_api_key)],
)
def send_reminders_get(
        db: Session = Depends(get_db),
        clock=Depends(get_clock),
        sender=Depends(get_reminder_sender)
):
    """GET alias for manual runs; same key check"""
    return _run_batch(db, sender, clock)
