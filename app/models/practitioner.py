# app/models/practitioner.py
"""
Practitioner and per-practitioner booking settings.
Profile data is owned elsewhere; the scheduling engine only reads it.
"""
from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import uuid

from app.models.base import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Practitioner(Base):
    __tablename__ = "practitioners"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    email = Column(String(320), nullable=False)
    slug = Column(String(120), nullable=False, unique=True, index=True)

    is_published = Column(Boolean, default=True, nullable=False)
    accepts_online_booking = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow)

    booking_settings = relationship(
        "BookingSettings", back_populates="practitioner", uselist=False,
        cascade="all, delete-orphan",
    )


class BookingSettings(Base):
    """Single row per practitioner. Also the row locked while a booking is written."""
    __tablename__ = "booking_settings"

    # Accepted ranges, enforced by the availability service
    SLOT_DURATION_RANGE = (15, 240)
    BUFFER_RANGE = (0, 60)
    MIN_NOTICE_RANGE = (0, 168)
    MAX_DAYS_AHEAD_RANGE = (1, 365)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    practitioner_id = Column(
        Uuid, ForeignKey("practitioners.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )

    slot_duration_minutes = Column(Integer, nullable=False, default=60)
    buffer_minutes = Column(Integer, nullable=False, default=0)
    min_booking_notice_hours = Column(Integer, nullable=False, default=24)
    max_booking_days_ahead = Column(Integer, nullable=False, default=60)
    timezone = Column(String(64), nullable=False, default="Europe/London")
    requires_approval = Column(Boolean, nullable=False, default=True)

    # Reminder switches
    send_rsvp_reminders = Column(Boolean, nullable=False, default=True)
    rsvp_first_reminder_hours = Column(Integer, nullable=False, default=24)
    rsvp_second_reminder_hours = Column(Integer, nullable=False, default=48)
    send_client_session_reminders = Column(Boolean, nullable=False, default=True)
    client_session_reminder_24h = Column(Boolean, nullable=False, default=True)
    client_session_reminder_1h = Column(Boolean, nullable=False, default=True)
    send_visitor_reminders = Column(Boolean, nullable=False, default=True)
    send_practitioner_reminders = Column(Boolean, nullable=False, default=False)

    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    practitioner = relationship("Practitioner", back_populates="booking_settings")
