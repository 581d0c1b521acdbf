# app/models/__init__.py
from .base import Base
from .practitioner import Practitioner, BookingSettings
from .availability import AvailabilityRule, AvailabilityOverride
from .appointment import (
    Appointment,
    AppointmentKind,
    AppointmentStatus,
    RsvpStatus,
    BLOCKING_STATUSES,
)
from .calendar_integration import CalendarIntegration, CalendarBusyTime
from .verified_email import VerifiedVisitorEmail

__all__ = [
    "Base",
    "Practitioner",
    "BookingSettings",
    "AvailabilityRule",
    "AvailabilityOverride",
    "Appointment",
    "AppointmentKind",
    "AppointmentStatus",
    "RsvpStatus",
    "BLOCKING_STATUSES",
    "CalendarIntegration",
    "CalendarBusyTime",
    "VerifiedVisitorEmail",
]
