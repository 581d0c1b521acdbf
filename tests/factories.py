"""Row builders for tests"""
from datetime import date, datetime, time, timezone

from app.models import (
    Appointment,
    AppointmentKind,
    AppointmentStatus,
    AvailabilityOverride,
    AvailabilityRule,
    BookingSettings,
    CalendarBusyTime,
    CalendarIntegration,
    Practitioner,
    RsvpStatus,
)

# Monday 2 March 2026, 08:00 UTC (Europe/London is on GMT until 29 March)
NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)
MONDAY = 0
NEXT_MONDAY = date(2026, 3, 9)

SETTINGS_DEFAULTS = {
    "slot_duration_minutes": 60,
    "buffer_minutes": 0,
    "min_booking_notice_hours": 24,
    "max_booking_days_ahead": 60,
    "timezone": "Europe/London",
    "requires_approval": True,
}


def create_practitioner(db, slug="ana-silva", name="Ana Silva", **settings):
    practitioner = Practitioner(name=name, email=f"{slug}@practice.co.uk", slug=slug)
    db.add(practitioner)
    db.flush()
    db.add(BookingSettings(practitioner_id=practitioner.id, **{**SETTINGS_DEFAULTS, **settings}))
    db.commit()
    db.refresh(practitioner)
    return practitioner


def get_settings_row(db, practitioner):
    return db.query(BookingSettings).filter_by(practitioner_id=practitioner.id).one()


def add_rule(db, practitioner, day_of_week=MONDAY, start=time(9), end=time(17), is_active=True):
    rule = AvailabilityRule(
        practitioner_id=practitioner.id,
        day_of_week=day_of_week,
        start_time=start,
        end_time=end,
        is_active=is_active,
    )
    db.add(rule)
    db.commit()
    return rule


def add_override(db, practitioner, day, is_available=False, start=None, end=None, reason=None):
    override = AvailabilityOverride(
        practitioner_id=practitioner.id,
        date=day,
        is_available=is_available,
        start_time=start,
        end_time=end,
        reason=reason,
    )
    db.add(override)
    db.commit()
    return override


def add_appointment(db, practitioner, day, start, end,
                    kind=AppointmentKind.BOOKING, status=AppointmentStatus.CONFIRMED,
                    created_at=NOW, **fields):
    values = {
        "client_name": "Jo Bloggs",
        "client_email": "jo.bloggs@gmail.com",
        "verified_at": created_at if kind == AppointmentKind.BOOKING else None,
    }
    if kind == AppointmentKind.SESSION:
        values.update(rsvp_status=RsvpStatus.PENDING, rsvp_token=f"rsvp-{day}-{start:%H%M}-token")
    values.update(fields)

    appointment = Appointment(
        practitioner_id=practitioner.id,
        kind=kind,
        status=status,
        session_date=day,
        start_time=start,
        end_time=end,
        created_at=created_at,
        **values,
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    return appointment


def add_integration(db, practitioner, provider="google", is_active=True):
    integration = CalendarIntegration(
        practitioner_id=practitioner.id,
        provider=provider,
        is_active=is_active,
        provider_config={},
    )
    db.add(integration)
    db.commit()
    return integration


def add_busy_time(db, practitioner, starts_at, ends_at, provider="google"):
    busy = CalendarBusyTime(
        practitioner_id=practitioner.id,
        provider=provider,
        starts_at=starts_at,
        ends_at=ends_at,
        fetched_at=NOW,
    )
    db.add(busy)
    db.commit()
    return busy
