# app/services/booking/conflict_guard.py
"""
Write-time arbitration for the booking ledger.

The slot list shown to visitors is advisory. Every insert or time change
goes through ConflictGuard, which serialises writers per practitioner by
locking the practitioner's booking_settings row and re-checks, in order:

    (a) the booking window (minimum notice / maximum days ahead)
    (b) the slot still lies inside current availability and clear of
        external busy time
    (c) no blocking appointment overlaps it
    (d) the requested time is one of the slots offered for that day, so it
        has the configured slot length and sits on the slot grid

On PostgreSQL the appointments_no_overlap exclusion constraint backs (c),
so a writer that slips past the lock still fails at commit.
"""
from datetime import date, datetime, time, timedelta
from typing import Dict, Optional
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import BookingEngineError, SlotNoLongerAvailable, ValidationError
from app.models.appointment import Appointment
from app.models.availability import AvailabilityRule, AvailabilityOverride
from app.models.practitioner import BookingSettings
from app.services.availability.availability_service import AvailabilityService
from app.services.availability.slot_generator import (
    Slot,
    booking_window,
    busy_occupied,
    day_windows,
    generate_slots,
)
from app.utils.time_utils import get_zone, overlaps, validate_time_range

logger = logging.getLogger(__name__)

OVERLAP_CONSTRAINT = "appointments_no_overlap"


class ConflictGuard:

    @staticmethod
    def lock_practitioner(db: Session, practitioner_id) -> BookingSettings:
        """SELECT ... FOR UPDATE on the settings row; held until commit/rollback"""
        AvailabilityService.get_or_create_settings(db, practitioner_id)
        return (
            db.query(BookingSettings)
            .filter_by(practitioner_id=practitioner_id)
            .with_for_update()
            .one()
        )

    @staticmethod
    def check_booking_window(settings: BookingSettings, day: date, start: time, end: time, now: datetime) -> None:
        window = booking_window(settings, now)
        slot_start = datetime.combine(day, start)
        slot_end = datetime.combine(day, end)
        if slot_start < window.earliest_start:
            raise ValidationError(
                f"Bookings must be made at least {settings.min_booking_notice_hours} hours in advance"
            )
        if slot_end > window.latest_end:
            raise ValidationError(
                f"Bookings can only be made up to {settings.max_booking_days_ahead} days in advance"
            )

    @staticmethod
    def check_availability(db: Session, settings: BookingSettings, day: date, start: time, end: time) -> None:
        practitioner_id = settings.practitioner_id
        rules = db.query(AvailabilityRule).filter_by(practitioner_id=practitioner_id, is_active=True).all()
        overrides = db.query(AvailabilityOverride).filter_by(practitioner_id=practitioner_id, date=day).all()

        slot_start = datetime.combine(day, start)
        slot_end = datetime.combine(day, end)

        windows = day_windows(day, rules, {o.date: o for o in overrides})
        if not any(w_start <= slot_start and slot_end <= w_end for w_start, w_end in windows):
            raise SlotNoLongerAvailable("This time is outside the practitioner's availability")

        zone = get_zone(settings.timezone)
        busy = AvailabilityService.load_busy_intervals(db, practitioner_id, day, day, zone)
        for busy_start, busy_end in busy_occupied(day, busy, settings.buffer_minutes, zone):
            if overlaps(slot_start, slot_end, busy_start, busy_end):
                raise SlotNoLongerAvailable()

    @staticmethod
    def check_offered_slot(
            db: Session,
            settings: BookingSettings,
            day: date,
            start: time,
            end: time,
            now: datetime
    ) -> None:
        """The requested time must match one of the slots generated for that day"""
        slot = Slot(datetime.combine(day, start), datetime.combine(day, end))
        if slot.end - slot.start != timedelta(minutes=settings.slot_duration_minutes):
            raise SlotNoLongerAvailable(
                f"Bookings must be exactly {settings.slot_duration_minutes} minutes long"
            )

        practitioner_id = settings.practitioner_id
        zone = get_zone(settings.timezone)
        offered = generate_slots(
            db.query(AvailabilityRule).filter_by(practitioner_id=practitioner_id, is_active=True).all(),
            db.query(AvailabilityOverride).filter_by(practitioner_id=practitioner_id, date=day).all(),
            AvailabilityService.load_busy_intervals(db, practitioner_id, day, day, zone),
            AvailabilityService.list_blocking_appointments(db, practitioner_id, day, day),
            settings,
            day,
            day,
            now,
        )
        if slot not in offered:
            logger.info(
                f"Requested {day} {start:%H:%M}-{end:%H:%M} is not an offered slot "
                f"for practitioner {practitioner_id}"
            )
            raise SlotNoLongerAvailable()

    @staticmethod
    def check_overlap(
            db: Session,
            practitioner_id,
            day: date,
            start: time,
            end: time,
            buffer_minutes: int = 0,
            exclude_id=None
    ) -> None:
        """No blocking appointment on `day` within buffer_minutes of [start, end)"""
        buffer = timedelta(minutes=buffer_minutes)
        slot_start = datetime.combine(day, start)
        slot_end = datetime.combine(day, end)

        for other in AvailabilityService.list_blocking_appointments(db, practitioner_id, day, day, exclude_id):
            other_start = datetime.combine(other.session_date, other.start_time) - buffer
            other_end = datetime.combine(other.session_date, other.end_time) + buffer
            if overlaps(slot_start, slot_end, other_start, other_end):
                logger.info(
                    f"Slot {day} {start:%H:%M}-{end:%H:%M} for practitioner {practitioner_id} "
                    f"conflicts with appointment {other.id}"
                )
                raise SlotNoLongerAvailable()

    @staticmethod
    def _commit(db: Session) -> None:
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            if OVERLAP_CONSTRAINT in str(e.orig):
                logger.info("Overlap constraint rejected a concurrent write")
                raise SlotNoLongerAvailable() from e
            raise

    @staticmethod
    def create(
            db: Session,
            practitioner_id,
            fields: Dict,
            now: datetime,
            enforce_availability: bool = True
    ) -> Appointment:
        """
        Insert a new blocking appointment, or raise.

        Visitor bookings run every check with the buffer applied;
        practitioner sessions (enforce_availability=False) only need a free
        time on the ledger.
        """
        day, start, end = fields["session_date"], fields["start_time"], fields["end_time"]
        validate_time_range(start, end)

        try:
            settings = ConflictGuard.lock_practitioner(db, practitioner_id)
            buffer_minutes = 0
            if enforce_availability:
                ConflictGuard.check_booking_window(settings, day, start, end, now)
                ConflictGuard.check_availability(db, settings, day, start, end)
                buffer_minutes = settings.buffer_minutes
            ConflictGuard.check_overlap(db, practitioner_id, day, start, end, buffer_minutes)
            if enforce_availability:
                ConflictGuard.check_offered_slot(db, settings, day, start, end, now)
        except BookingEngineError:
            db.rollback()
            raise

        appointment = Appointment(practitioner_id=practitioner_id, created_at=now, **fields)
        db.add(appointment)
        ConflictGuard._commit(db)
        db.refresh(appointment)
        logger.info(f"Created {appointment.kind.value} {appointment.id} on {day} {start:%H:%M}-{end:%H:%M}")
        return appointment

    @staticmethod
    def move(
            db: Session,
            appointment: Appointment,
            day: date,
            start: time,
            end: time,
            extra_changes: Optional[Dict] = None
    ) -> Appointment:
        """Move an existing appointment to a new time, excluding itself from the overlap check"""
        validate_time_range(start, end)
        try:
            ConflictGuard.lock_practitioner(db, appointment.practitioner_id)
            ConflictGuard.check_overlap(
                db, appointment.practitioner_id, day, start, end, exclude_id=appointment.id
            )
        except BookingEngineError:
            db.rollback()
            raise

        appointment.session_date = day
        appointment.start_time = start
        appointment.end_time = end
        for field, value in (extra_changes or {}).items():
            setattr(appointment, field, value)
        ConflictGuard._commit(db)
        db.refresh(appointment)
        logger.info(f"Moved {appointment.kind.value} {appointment.id} to {day} {start:%H:%M}-{end:%H:%M}")
        return appointment
