# app/schemas/__init__.py
from .availability import (
    BookingSettingsResponse,
    BookingSettingsUpdate,
    WeeklyRuleIn,
    WeeklyScheduleIn,
    WeeklyRuleResponse,
    OverrideIn,
    OverrideResponse,
    SlotResponse,
    SlotsResponse,
    AvailableDatesResponse,
    CalendarIntegrationResponse
)

from .booking import (
    BookingRequest,
    BookingSubmitted,
    VisitorBookingResponse,
    CancelRequest,
    StatusUpdate,
    AppointmentResponse,
    SessionCreate
)

from .rsvp import (
    RsvpRespond,
    RsvpPropose,
    RescheduleResponse,
    RsvpSessionView
)

from .reminders import ReminderBatchResponse
