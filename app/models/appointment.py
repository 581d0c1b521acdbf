# app/models/appointment.py
"""
Booking ledger.

Visitor bookings and practitioner-created sessions share one table so the
no-overlap invariant can be enforced by a single storage constraint.
Times are the practitioner's local wall-clock (see BookingSettings.timezone).
"""
from sqlalchemy import (
    Column, String, Text, Date, Time, DateTime, ForeignKey, DDL, Enum as SQLAEnum, JSON, Uuid, event
)
from datetime import datetime, timezone
import enum
import uuid

from app.models.base import Base


class AppointmentKind(str, enum.Enum):
    BOOKING = "booking"   # requested by a visitor through the public page
    SESSION = "session"   # scheduled directly by the practitioner


class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class RsvpStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    RESCHEDULE_REQUESTED = "reschedule_requested"


# Statuses that occupy a slot
BLOCKING_STATUSES = (
    AppointmentStatus.PENDING,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.SCHEDULED,
)

ALLOWED_TRANSITIONS = {
    AppointmentKind.BOOKING: {
        AppointmentStatus.PENDING: {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED},
        AppointmentStatus.CONFIRMED: {
            AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW,
        },
    },
    AppointmentKind.SESSION: {
        AppointmentStatus.SCHEDULED: {
            AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW,
        },
    },
}


def can_transition(kind: AppointmentKind, current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(kind, {}).get(current, set())


def _enum_column(enum_cls, name):
    return SQLAEnum(enum_cls, name=name, values_callable=lambda obj: [e.value for e in obj])


def _utcnow():
    return datetime.now(timezone.utc)


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    practitioner_id = Column(
        Uuid, ForeignKey("practitioners.id", ondelete="CASCADE"), nullable=False, index=True
    )

    kind = Column(_enum_column(AppointmentKind, "appointment_kind"), nullable=False)
    status = Column(_enum_column(AppointmentStatus, "appointment_status"), nullable=False)

    # Local wall-clock slot
    session_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    # Visitor (booking) or client (session) contact
    client_name = Column(String(200), nullable=False)
    client_email = Column(String(320), nullable=False)
    client_phone = Column(String(40), nullable=True)
    session_format = Column(String(40), nullable=True)  # in_person, online, phone
    notes = Column(Text, nullable=True)

    # E-mail verification (bookings only)
    verification_token = Column(String(64), nullable=True, unique=True)
    verification_expires_at = Column(DateTime(timezone=True), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    visitor_token = Column(String(64), nullable=True, unique=True)

    # RSVP (sessions only)
    rsvp_status = Column(_enum_column(RsvpStatus, "rsvp_status"), nullable=True)
    rsvp_token = Column(String(64), nullable=True, unique=True)
    rsvp_token_expires_at = Column(DateTime(timezone=True), nullable=True)
    rsvp_responded_at = Column(DateTime(timezone=True), nullable=True)
    proposed_date = Column(Date, nullable=True)
    proposed_start_time = Column(Time, nullable=True)
    proposed_end_time = Column(Time, nullable=True)
    proposed_message = Column(Text, nullable=True)

    # Reminder stamps, one per kind
    rsvp_reminder_1_sent_at = Column(DateTime(timezone=True), nullable=True)
    rsvp_reminder_2_sent_at = Column(DateTime(timezone=True), nullable=True)
    reminder_24h_sent_at = Column(DateTime(timezone=True), nullable=True)
    reminder_1h_sent_at = Column(DateTime(timezone=True), nullable=True)

    # provider -> event id for confirmed bookings written to external calendars
    calendar_event_ids = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(String(20), nullable=True)  # visitor, practitioner, system
    cancellation_reason = Column(Text, nullable=True)

    @property
    def is_blocking(self) -> bool:
        return self.status in BLOCKING_STATUSES


# Two blocking rows of one practitioner may never overlap. Mirrored in the
# initial alembic migration; SQLite (tests) relies on the row lock path only.
APPOINTMENT_NO_OVERLAP_DDL = DDL(
    "ALTER TABLE appointments ADD CONSTRAINT appointments_no_overlap "
    "EXCLUDE USING gist ("
    "practitioner_id WITH =, "
    "tsrange(session_date + start_time, session_date + end_time, '[)') WITH &&"
    ") WHERE (status IN ('pending', 'confirmed', 'scheduled'))"
)

event.listen(
    Appointment.__table__,
    "before_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    Appointment.__table__,
    "after_create",
    APPOINTMENT_NO_OVERLAP_DDL.execute_if(dialect="postgresql"),
)
