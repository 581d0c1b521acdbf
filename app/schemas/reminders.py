# app/schemas/reminders.py
from typing import List, Optional

from pydantic import BaseModel


class ReminderBatchResponse(BaseModel):
    success: bool = True
    rsvp_reminders_sent: int
    session_reminders_24h_sent: int
    session_reminders_1h_sent: int
    booking_reminders_24h_sent: int
    booking_reminders_1h_sent: int
    errors: List[str]
    processed_at: Optional[str] = None
