# app/services/availability/availability_service.py
from typing import Dict, Iterable, List, Optional
from datetime import date, datetime, timedelta
import calendar
import logging
import uuid

from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, ValidationError
from app.models.appointment import Appointment, BLOCKING_STATUSES
from app.models.availability import AvailabilityRule, AvailabilityOverride
from app.models.calendar_integration import CalendarBusyTime
from app.models.practitioner import Practitioner, BookingSettings
from app.services.availability.slot_generator import (
    Slot,
    booking_window,
    day_windows,
    generate_slots,
    index_overrides,
)
from app.utils.time_utils import (
    get_zone,
    is_valid_timezone,
    iter_dates,
    local_to_utc,
    parse_time,
    validate_time_range,
)

logger = logging.getLogger(__name__)

SETTINGS_RANGES = {
    "slot_duration_minutes": BookingSettings.SLOT_DURATION_RANGE,
    "buffer_minutes": BookingSettings.BUFFER_RANGE,
    "min_booking_notice_hours": BookingSettings.MIN_NOTICE_RANGE,
    "max_booking_days_ahead": BookingSettings.MAX_DAYS_AHEAD_RANGE,
}

SETTINGS_FIELDS = (
    "slot_duration_minutes",
    "buffer_minutes",
    "min_booking_notice_hours",
    "max_booking_days_ahead",
    "timezone",
    "requires_approval",
    "send_rsvp_reminders",
    "rsvp_first_reminder_hours",
    "rsvp_second_reminder_hours",
    "send_client_session_reminders",
    "client_session_reminder_24h",
    "client_session_reminder_1h",
    "send_visitor_reminders",
    "send_practitioner_reminders",
)


class AvailabilityService:
    """Availability sources of a practitioner and the slots derived from them"""

    # ---- practitioners & settings -------------------------------------

    @staticmethod
    def get_practitioner(db: Session, practitioner_id) -> Practitioner:
        practitioner = db.get(Practitioner, practitioner_id)
        if not practitioner:
            raise NotFoundError("Practitioner not found")
        return practitioner

    @staticmethod
    def get_bookable_practitioner(db: Session, slug: str) -> Practitioner:
        """Published practitioner that accepts online bookings"""
        practitioner = db.query(Practitioner).filter_by(slug=slug).first()
        if not practitioner or not practitioner.is_published or not practitioner.accepts_online_booking:
            raise NotFoundError("Practitioner not found or not accepting bookings")
        return practitioner

    @staticmethod
    def get_or_create_settings(db: Session, practitioner_id) -> BookingSettings:
        settings = db.query(BookingSettings).filter_by(practitioner_id=practitioner_id).first()
        if settings:
            return settings

        settings = BookingSettings(practitioner_id=practitioner_id)
        db.add(settings)
        db.commit()
        db.refresh(settings)
        logger.info(f"Created default booking settings for practitioner {practitioner_id}")
        return settings

    @staticmethod
    def update_settings(db: Session, practitioner_id, changes: Dict) -> BookingSettings:
        """Apply a partial settings update after range validation"""
        for field, (low, high) in SETTINGS_RANGES.items():
            value = changes.get(field)
            if value is not None and not low <= value <= high:
                raise ValidationError(f"{field} must be between {low} and {high}")

        if changes.get("timezone") is not None and not is_valid_timezone(changes["timezone"]):
            raise ValidationError(f"Unknown timezone: {changes['timezone']}")

        first = changes.get("rsvp_first_reminder_hours")
        second = changes.get("rsvp_second_reminder_hours")
        for value in (first, second):
            if value is not None and value < 1:
                raise ValidationError("RSVP reminder thresholds must be at least 1 hour")

        settings = AvailabilityService.get_or_create_settings(db, practitioner_id)
        first = first if first is not None else settings.rsvp_first_reminder_hours
        second = second if second is not None else settings.rsvp_second_reminder_hours
        if first >= second:
            raise ValidationError("The second RSVP reminder must come after the first")

        for field in SETTINGS_FIELDS:
            if changes.get(field) is not None:
                setattr(settings, field, changes[field])

        db.commit()
        db.refresh(settings)
        logger.info(f"Updated booking settings for practitioner {practitioner_id}")
        return settings

    # ---- weekly schedule -----------------------------------------------

    @staticmethod
    def get_weekly_schedule(db: Session, practitioner_id) -> List[AvailabilityRule]:
        return (
            db.query(AvailabilityRule)
            .filter_by(practitioner_id=practitioner_id)
            .order_by(AvailabilityRule.day_of_week, AvailabilityRule.start_time)
            .all()
        )

    @staticmethod
    def _validate_weekly_schedule(schedule: Iterable[Dict]) -> List[Dict]:
        rules = []
        for entry in schedule:
            day = entry.get("day_of_week")
            if not isinstance(day, int) or not 0 <= day <= 6:
                raise ValidationError(f"day_of_week must be 0-6, got {day!r}")
            start = parse_time(entry.get("start_time"))
            end = parse_time(entry.get("end_time"))
            validate_time_range(start, end)
            rules.append({
                "day_of_week": day,
                "start_time": start,
                "end_time": end,
                "is_active": entry.get("is_active", True),
            })

        by_day: Dict[int, List[Dict]] = {}
        for rule in rules:
            by_day.setdefault(rule["day_of_week"], []).append(rule)

        for day, day_rules in by_day.items():
            day_rules.sort(key=lambda r: r["start_time"])
            for previous, current in zip(day_rules, day_rules[1:]):
                if current["start_time"] < previous["end_time"]:
                    raise ValidationError(
                        f"Overlapping availability on {calendar.day_name[day]}: "
                        f"{previous['start_time']:%H:%M}-{previous['end_time']:%H:%M} and "
                        f"{current['start_time']:%H:%M}-{current['end_time']:%H:%M}"
                    )
        return rules

    @staticmethod
    def replace_weekly_schedule(db: Session, practitioner_id, schedule: Iterable[Dict]) -> List[AvailabilityRule]:
        """Replace the whole week in one transaction"""
        rules = AvailabilityService._validate_weekly_schedule(schedule)

        try:
            db.query(AvailabilityRule).filter_by(practitioner_id=practitioner_id).delete(
                synchronize_session=False
            )
            db.add_all(AvailabilityRule(practitioner_id=practitioner_id, **rule) for rule in rules)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception(f"Failed to replace weekly schedule for practitioner {practitioner_id}")
            raise

        logger.info(f"Saved {len(rules)} weekly rules for practitioner {practitioner_id}")
        return AvailabilityService.get_weekly_schedule(db, practitioner_id)

    # ---- date overrides ------------------------------------------------

    @staticmethod
    def list_overrides(
            db: Session,
            practitioner_id,
            start_date: Optional[date] = None,
            end_date: Optional[date] = None
    ) -> List[AvailabilityOverride]:
        query = db.query(AvailabilityOverride).filter_by(practitioner_id=practitioner_id)
        if start_date:
            query = query.filter(AvailabilityOverride.date >= start_date)
        if end_date:
            query = query.filter(AvailabilityOverride.date <= end_date)
        return query.order_by(AvailabilityOverride.date).all()

    @staticmethod
    def upsert_override(
            db: Session,
            practitioner_id,
            override_date: date,
            is_available: bool,
            start_time=None,
            end_time=None,
            reason: Optional[str] = None
    ) -> AvailabilityOverride:
        """Create or replace the override for a date"""
        if is_available:
            if not start_time or not end_time:
                raise ValidationError("Start and end times are required when marking a date as available")
            start, end = parse_time(start_time), parse_time(end_time)
            validate_time_range(start, end)
        else:
            start = end = None

        override = db.query(AvailabilityOverride).filter_by(
            practitioner_id=practitioner_id, date=override_date
        ).first()
        if override is None:
            override = AvailabilityOverride(practitioner_id=practitioner_id, date=override_date)
            db.add(override)

        override.is_available = is_available
        override.start_time = start
        override.end_time = end
        override.reason = reason or None

        db.commit()
        db.refresh(override)
        return override

    @staticmethod
    def delete_override(db: Session, practitioner_id, override_id) -> None:
        override = db.query(AvailabilityOverride).filter_by(
            id=uuid.UUID(str(override_id)), practitioner_id=practitioner_id
        ).first()
        if not override:
            raise NotFoundError("Override not found")
        db.delete(override)
        db.commit()

    # ---- ledger & busy-time reads ------------------------------------

    @staticmethod
    def list_blocking_appointments(
            db: Session,
            practitioner_id,
            date_from: date,
            date_to: date,
            exclude_id=None
    ) -> List[Appointment]:
        query = db.query(Appointment).filter(
            Appointment.practitioner_id == practitioner_id,
            Appointment.session_date.between(date_from, date_to),
            Appointment.status.in_(BLOCKING_STATUSES),
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.all()

    @staticmethod
    def load_busy_intervals(db: Session, practitioner_id, date_from: date, date_to: date, zone) -> List[tuple]:
        """Cached external busy intervals touching the local date range, as UTC pairs"""
        range_start = local_to_utc(date_from - timedelta(days=1), datetime.min.time(), zone)
        range_end = local_to_utc(date_to + timedelta(days=2), datetime.min.time(), zone)
        rows = db.query(CalendarBusyTime).filter(
            CalendarBusyTime.practitioner_id == practitioner_id,
            CalendarBusyTime.ends_at > range_start,
            CalendarBusyTime.starts_at < range_end,
        ).all()
        return [(row.starts_at, row.ends_at) for row in rows]

    # ---- slots & dates -------------------------------------------------

    @staticmethod
    def get_available_slots(
            db: Session,
            practitioner: Practitioner,
            start_date: date,
            end_date: date,
            now: datetime
    ) -> List[Slot]:
        """Advisory list of free slots; ConflictGuard re-checks on submit"""
        if end_date < start_date:
            raise ValidationError("end_date must not be before start_date")

        settings = AvailabilityService.get_or_create_settings(db, practitioner.id)
        zone = get_zone(settings.timezone)

        rules = db.query(AvailabilityRule).filter_by(practitioner_id=practitioner.id, is_active=True).all()
        overrides = AvailabilityService.list_overrides(db, practitioner.id, start_date, end_date)
        busy = AvailabilityService.load_busy_intervals(db, practitioner.id, start_date, end_date, zone)
        blocking = AvailabilityService.list_blocking_appointments(db, practitioner.id, start_date, end_date)

        slots = generate_slots(rules, overrides, busy, blocking, settings, start_date, end_date, now)
        logger.debug(f"Generated {len(slots)} slots for practitioner {practitioner.id}")
        return slots

    @staticmethod
    def get_available_dates(db: Session, practitioner: Practitioner, year: int, month: int, now: datetime) -> List[date]:
        """Dates in the month that have any availability source inside the booking window"""
        if not 1 <= month <= 12:
            raise ValidationError("month must be 1-12")

        settings = AvailabilityService.get_or_create_settings(db, practitioner.id)
        window = booking_window(settings, now)

        month_start = date(year, month, 1)
        month_end = date(year, month, calendar.monthrange(year, month)[1])
        first_day = max(month_start, window.earliest_start.date())
        last_day = min(month_end, window.last_day)
        if first_day > last_day:
            return []

        rules = db.query(AvailabilityRule).filter_by(practitioner_id=practitioner.id, is_active=True).all()
        overrides_by_date = index_overrides(
            AvailabilityService.list_overrides(db, practitioner.id, first_day, last_day)
        )
        return [
            day for day in iter_dates(first_day, last_day)
            if any(end > window.earliest_start for _, end in day_windows(day, rules, overrides_by_date))
        ]
