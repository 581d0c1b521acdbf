# app/schemas/availability.py
from datetime import date, datetime, time
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class BookingSettingsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    slot_duration_minutes: int
    buffer_minutes: int
    min_booking_notice_hours: int
    max_booking_days_ahead: int
    timezone: str
    requires_approval: bool
    send_rsvp_reminders: bool
    rsvp_first_reminder_hours: int
    rsvp_second_reminder_hours: int
    send_client_session_reminders: bool
    client_session_reminder_24h: bool
    client_session_reminder_1h: bool
    send_visitor_reminders: bool
    send_practitioner_reminders: bool


class BookingSettingsUpdate(BaseModel):
    """Partial update; omitted fields keep their value"""
    slot_duration_minutes: Optional[int] = Field(None, description="15-240 minutes")
    buffer_minutes: Optional[int] = Field(None, description="0-60 minutes between appointments")
    min_booking_notice_hours: Optional[int] = Field(None, description="0-168 hours")
    max_booking_days_ahead: Optional[int] = Field(None, description="1-365 days")
    timezone: Optional[str] = Field(None, description="IANA timezone, e.g. Europe/London")
    requires_approval: Optional[bool] = None
    send_rsvp_reminders: Optional[bool] = None
    rsvp_first_reminder_hours: Optional[int] = None
    rsvp_second_reminder_hours: Optional[int] = None
    send_client_session_reminders: Optional[bool] = None
    client_session_reminder_24h: Optional[bool] = None
    client_session_reminder_1h: Optional[bool] = None
    send_visitor_reminders: Optional[bool] = None
    send_practitioner_reminders: Optional[bool] = None


class WeeklyRuleIn(BaseModel):
    day_of_week: int = Field(..., description="0=Monday ... 6=Sunday")
    start_time: str = Field(..., description="HH:MM")
    end_time: str = Field(..., description="HH:MM")
    is_active: bool = True


class WeeklyScheduleIn(BaseModel):
    rules: List[WeeklyRuleIn] = Field(default_factory=list)


class WeeklyRuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    day_of_week: int
    start_time: time
    end_time: time
    is_active: bool


class OverrideIn(BaseModel):
    date: date
    is_available: bool
    start_time: Optional[str] = Field(None, description="HH:MM, required when available")
    end_time: Optional[str] = Field(None, description="HH:MM, required when available")
    reason: Optional[str] = Field(None, max_length=200)


class OverrideResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    date: date
    is_available: bool
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    reason: Optional[str] = None


class SlotResponse(BaseModel):
    date: str
    start_time: str
    end_time: str


class SlotsResponse(BaseModel):
    timezone: str
    slot_duration_minutes: int
    slots: List[SlotResponse]


class AvailableDatesResponse(BaseModel):
    year: int
    month: int
    dates: List[date]


class CalendarIntegrationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    provider: str
    is_active: bool
    last_sync_at: Optional[datetime] = None
    last_sync_status: Optional[str] = None
    last_sync_error: Optional[str] = None
