# app/services/reminder/reminder_service.py
"""
Reminder batch.

Each reminder kind has its own *_sent_at stamp on the appointment; whether
a reminder is due is computed from the clock on every run and never stored.
A due reminder is sent first and stamped afterwards, one item at a time, so
a crash between the two can repeat a single send on the next run. A failed
send leaves the stamp empty and the reminder stays due for the next run.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Tuple
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import DispatchError
from app.models.appointment import (
    Appointment,
    AppointmentKind,
    AppointmentStatus,
    RsvpStatus,
)
from app.models.practitioner import BookingSettings, Practitioner
from app.services.availability.availability_service import AvailabilityService
from app.services.email import templates
from app.utils.time_utils import ensure_utc, get_zone, local_to_utc

logger = logging.getLogger(__name__)


class ReminderKind(str, Enum):
    RSVP_FIRST = "rsvp_first"
    RSVP_SECOND = "rsvp_second"
    SESSION_24H = "session_24h"
    SESSION_1H = "session_1h"


STAMP_FIELDS = {
    ReminderKind.RSVP_FIRST: "rsvp_reminder_1_sent_at",
    ReminderKind.RSVP_SECOND: "rsvp_reminder_2_sent_at",
    ReminderKind.SESSION_24H: "reminder_24h_sent_at",
    ReminderKind.SESSION_1H: "reminder_1h_sent_at",
}

# Tolerance windows (hours until start) for pre-session reminders
PRE_SESSION_WINDOWS = {
    ReminderKind.SESSION_24H: (23.5, 24.5),
    ReminderKind.SESSION_1H: (0.5, 1.5),
}

PRE_SESSION_HOURS = {ReminderKind.SESSION_24H: 24, ReminderKind.SESSION_1H: 1}

# RSVP nudges stop once the session is this close
RSVP_CUTOFF_HOURS = 12


@dataclass
class ReminderBatchResult:
    rsvp_reminders_sent: int = 0
    session_reminders_24h_sent: int = 0
    session_reminders_1h_sent: int = 0
    booking_reminders_24h_sent: int = 0
    booking_reminders_1h_sent: int = 0
    errors: List[str] = field(default_factory=list)
    processed_at: Optional[datetime] = None

    def count(self, appointment: Appointment, kind: ReminderKind) -> None:
        if kind in (ReminderKind.RSVP_FIRST, ReminderKind.RSVP_SECOND):
            self.rsvp_reminders_sent += 1
        elif appointment.kind == AppointmentKind.SESSION:
            if kind == ReminderKind.SESSION_24H:
                self.session_reminders_24h_sent += 1
            else:
                self.session_reminders_1h_sent += 1
        elif kind == ReminderKind.SESSION_24H:
            self.booking_reminders_24h_sent += 1
        else:
            self.booking_reminders_1h_sent += 1

    def to_dict(self) -> Dict:
        return {
            "rsvp_reminders_sent": self.rsvp_reminders_sent,
            "session_reminders_24h_sent": self.session_reminders_24h_sent,
            "session_reminders_1h_sent": self.session_reminders_1h_sent,
            "booking_reminders_24h_sent": self.booking_reminders_24h_sent,
            "booking_reminders_1h_sent": self.booking_reminders_1h_sent,
            "errors": list(self.errors),
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
        }


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / 3600


def hours_elapsed(appointment: Appointment, now: datetime) -> float:
    return _hours(now - ensure_utc(appointment.created_at))


def hours_until_start(appointment: Appointment, settings: BookingSettings, now: datetime) -> float:
    start = local_to_utc(appointment.session_date, appointment.start_time, get_zone(settings.timezone))
    return _hours(start - now)


def rsvp_reminder_due(kind: ReminderKind, session: Appointment, settings: BookingSettings, now: datetime) -> bool:
    if not settings.send_rsvp_reminders:
        return False
    if (
        session.kind != AppointmentKind.SESSION
        or session.status != AppointmentStatus.SCHEDULED
        or session.rsvp_status != RsvpStatus.PENDING
        or not session.rsvp_token
    ):
        return False
    if hours_until_start(session, settings, now) < RSVP_CUTOFF_HOURS:
        return False

    elapsed = hours_elapsed(session, now)
    first, second = settings.rsvp_first_reminder_hours, settings.rsvp_second_reminder_hours
    if kind == ReminderKind.RSVP_FIRST:
        return session.rsvp_reminder_1_sent_at is None and first <= elapsed < second
    if kind == ReminderKind.RSVP_SECOND:
        return (
            session.rsvp_reminder_1_sent_at is not None
            and session.rsvp_reminder_2_sent_at is None
            and elapsed >= second
        )
    return False


def pre_session_kind_enabled(kind: ReminderKind, appointment: Appointment, settings: BookingSettings) -> bool:
    if appointment.kind == AppointmentKind.SESSION:
        per_kind = settings.client_session_reminder_24h if kind == ReminderKind.SESSION_24H \
            else settings.client_session_reminder_1h
        return settings.send_client_session_reminders and per_kind
    return settings.send_visitor_reminders or settings.send_practitioner_reminders


def pre_session_reminder_due(kind: ReminderKind, appointment: Appointment,
                             settings: BookingSettings, now: datetime) -> bool:
    if not pre_session_kind_enabled(kind, appointment, settings):
        return False

    if appointment.kind == AppointmentKind.SESSION:
        if appointment.status != AppointmentStatus.SCHEDULED:
            return False
        if appointment.rsvp_status not in (None, RsvpStatus.ACCEPTED):
            return False
    elif appointment.status != AppointmentStatus.CONFIRMED:
        return False

    if getattr(appointment, STAMP_FIELDS[kind]) is not None:
        return False

    low, high = PRE_SESSION_WINDOWS[kind]
    return low <= hours_until_start(appointment, settings, now) <= high


class ReminderService:
    """Runs one reminder batch over every upcoming session and confirmed booking"""

    def __init__(self, db: Session, sender, clock):
        self.db = db
        self.sender = sender
        self.clock = clock
        self._settings: Dict = {}
        self._practitioners: Dict = {}

    def _settings_for(self, practitioner_id) -> BookingSettings:
        if practitioner_id not in self._settings:
            self._settings[practitioner_id] = AvailabilityService.get_or_create_settings(
                self.db, practitioner_id
            )
        return self._settings[practitioner_id]

    def _practitioner(self, practitioner_id) -> Practitioner:
        if practitioner_id not in self._practitioners:
            self._practitioners[practitioner_id] = self.db.get(Practitioner, practitioner_id)
        return self._practitioners[practitioner_id]

    def _candidates(self, now: datetime) -> List[Appointment]:
        # One day of slack covers practitioners east of UTC
        earliest = (now - timedelta(days=1)).date()
        return (
            self.db.query(Appointment)
            .filter(
                Appointment.status.in_((AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED)),
                Appointment.session_date >= earliest,
            )
            .order_by(Appointment.session_date, Appointment.start_time)
            .all()
        )

    def _messages(self, kind: ReminderKind, appointment: Appointment,
                  settings: BookingSettings) -> List[Tuple[str, Tuple[str, str]]]:
        practitioner = self._practitioner(appointment.practitioner_id)
        when = (appointment.session_date, appointment.start_time, appointment.end_time)

        if kind in (ReminderKind.RSVP_FIRST, ReminderKind.RSVP_SECOND):
            return [(appointment.client_email, templates.session_rsvp_request(
                appointment.client_name, practitioner.name, *when, appointment.rsvp_token, reminder=True,
            ))]

        hours = PRE_SESSION_HOURS[kind]
        if appointment.kind == AppointmentKind.SESSION:
            return [(appointment.client_email, templates.session_reminder(
                appointment.client_name, practitioner.name, *when, hours,
            ))]

        messages = []
        if settings.send_visitor_reminders:
            messages.append((appointment.client_email, templates.session_reminder(
                appointment.client_name, practitioner.name, *when, hours,
            )))
        if settings.send_practitioner_reminders:
            messages.append((practitioner.email, templates.session_reminder(
                practitioner.name, appointment.client_name, *when, hours,
            )))
        return messages

    def _dispatch(self, kind: ReminderKind, appointment: Appointment,
                  settings: BookingSettings, now: datetime, result: ReminderBatchResult) -> None:
        failures = []
        for to, (subject, body) in self._messages(kind, appointment, settings):
            try:
                sent = self.sender.send(to, subject, body)
            except Exception as e:
                logger.exception(f"Sender raised for {kind.value} of {appointment.id} to {to}")
                failures.append(f"{to}: {e}")
                continue
            if not sent.success:
                failures.append(f"{to}: {sent.error or 'unknown error'}")

        if failures:
            error = DispatchError(appointment.id, kind.value, "; ".join(failures))
            logger.warning(f"Reminder dispatch failed: {error}")
            result.errors.append(str(error))
            return

        setattr(appointment, STAMP_FIELDS[kind], now)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to stamp {kind.value} for {appointment.id}: {e}")
            result.errors.append(f"{kind.value} for {appointment.id}: sent but not recorded")
            return
        result.count(appointment, kind)

    def run(self) -> ReminderBatchResult:
        now = self.clock.now()
        result = ReminderBatchResult(processed_at=now)

        for appointment in self._candidates(now):
            settings = self._settings_for(appointment.practitioner_id)

            for kind in (ReminderKind.RSVP_FIRST, ReminderKind.RSVP_SECOND):
                if rsvp_reminder_due(kind, appointment, settings, now):
                    self._dispatch(kind, appointment, settings, now, result)

            for kind in (ReminderKind.SESSION_24H, ReminderKind.SESSION_1H):
                if pre_session_reminder_due(kind, appointment, settings, now):
                    self._dispatch(kind, appointment, settings, now, result)

        logger.info(
            f"Reminder batch done: rsvp={result.rsvp_reminders_sent} "
            f"session24h={result.session_reminders_24h_sent} session1h={result.session_reminders_1h_sent} "
            f"booking24h={result.booking_reminders_24h_sent} booking1h={result.booking_reminders_1h_sent} "
            f"errors={len(result.errors)}"
        )
        return result
