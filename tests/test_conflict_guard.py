"""Tests for write-time arbitration of the booking ledger."""
from datetime import date, datetime, time, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import SlotNoLongerAvailable, ValidationError
from app.models import Appointment
from app.models.appointment import AppointmentKind, AppointmentStatus, RsvpStatus
from app.services.booking.conflict_guard import ConflictGuard
from tests.factories import (
    NEXT_MONDAY,
    NOW,
    add_appointment,
    add_busy_time,
    add_override,
    add_rule,
    create_practitioner,
    get_settings_row,
)


def booking_fields(day=NEXT_MONDAY, start=time(10), end=time(11), email="sam.taylor@gmail.com"):
    return {
        "kind": AppointmentKind.BOOKING,
        "status": AppointmentStatus.PENDING,
        "session_date": day,
        "start_time": start,
        "end_time": end,
        "client_name": "Sam Taylor",
        "client_email": email,
    }


def session_fields(day=NEXT_MONDAY, start=time(10), end=time(11)):
    return {
        **booking_fields(day, start, end),
        "kind": AppointmentKind.SESSION,
        "status": AppointmentStatus.SCHEDULED,
        "rsvp_status": RsvpStatus.PENDING,
    }


@pytest.fixture
def monday_practitioner(db):
    practitioner = create_practitioner(db, buffer_minutes=15)
    add_rule(db, practitioner)
    return practitioner


class TestCreateBooking:

    def test_free_slot_is_inserted(self, db, monday_practitioner):
        booking = ConflictGuard.create(db, monday_practitioner.id, booking_fields(), NOW)

        assert booking.id is not None
        assert booking.status == AppointmentStatus.PENDING
        assert db.query(Appointment).count() == 1

    def test_overlap_with_blocking_appointment(self, db, monday_practitioner):
        add_appointment(db, monday_practitioner, NEXT_MONDAY, time(10), time(11))

        with pytest.raises(SlotNoLongerAvailable):
            ConflictGuard.create(db, monday_practitioner.id, booking_fields(start=time(10, 30), end=time(11, 30)), NOW)

    def test_buffer_applies_to_bookings(self, db, monday_practitioner):
        add_appointment(db, monday_practitioner, NEXT_MONDAY, time(10), time(11))

        with pytest.raises(SlotNoLongerAvailable):
            ConflictGuard.create(db, monday_practitioner.id, booking_fields(start=time(11), end=time(12)), NOW)

        booking = ConflictGuard.create(
            db, monday_practitioner.id, booking_fields(start=time(11, 15), end=time(12, 15)), NOW
        )
        assert booking.start_time == time(11, 15)

    def test_cancelled_appointments_do_not_block(self, db, monday_practitioner):
        add_appointment(db, monday_practitioner, NEXT_MONDAY, time(10), time(11), status=AppointmentStatus.CANCELLED)
        add_appointment(db, monday_practitioner, NEXT_MONDAY, time(10), time(11), status=AppointmentStatus.COMPLETED)

        booking = ConflictGuard.create(db, monday_practitioner.id, booking_fields(), NOW)
        assert booking.is_blocking

    def test_second_writer_for_same_slot_loses(self, db, monday_practitioner):
        ConflictGuard.create(db, monday_practitioner.id, booking_fields(), NOW)

        with pytest.raises(SlotNoLongerAvailable) as excinfo:
            ConflictGuard.create(db, monday_practitioner.id, booking_fields(email="late@gmail.com"), NOW)

        assert excinfo.value.status_code == 409
        assert db.query(Appointment).count() == 1

    def test_inside_minimum_notice(self, db, monday_practitioner):
        tuesday = date(2026, 3, 3)
        add_rule(db, monday_practitioner, day_of_week=1, start=time(7), end=time(12))

        with pytest.raises(ValidationError, match="24 hours in advance"):
            ConflictGuard.create(db, monday_practitioner.id, booking_fields(tuesday, time(7), time(8)), NOW)

    def test_beyond_max_days_ahead(self, db, monday_practitioner):
        with pytest.raises(ValidationError, match="60 days in advance"):
            ConflictGuard.create(db, monday_practitioner.id, booking_fields(date(2026, 5, 4)), NOW)

    def test_outside_availability(self, db, monday_practitioner):
        with pytest.raises(SlotNoLongerAvailable):
            ConflictGuard.create(db, monday_practitioner.id, booking_fields(start=time(17), end=time(18)), NOW)

    def test_day_off_override(self, db, monday_practitioner):
        add_override(db, monday_practitioner, NEXT_MONDAY, is_available=False)

        with pytest.raises(SlotNoLongerAvailable):
            ConflictGuard.create(db, monday_practitioner.id, booking_fields(), NOW)

    def test_external_busy_time(self, db, monday_practitioner):
        add_busy_time(
            db, monday_practitioner,
            datetime(2026, 3, 9, 11, 5, tzinfo=timezone.utc),
            datetime(2026, 3, 9, 12, 0, tzinfo=timezone.utc),
        )

        # 10:00-11:00 sits within the 15 minute buffer of the 11:05 busy block
        with pytest.raises(SlotNoLongerAvailable):
            ConflictGuard.create(db, monday_practitioner.id, booking_fields(), NOW)

    def test_booking_must_be_one_slot_long(self, db, monday_practitioner):
        with pytest.raises(SlotNoLongerAvailable, match="exactly 60 minutes"):
            ConflictGuard.create(db, monday_practitioner.id, booking_fields(start=time(9), end=time(17)), NOW)

        assert db.query(Appointment).count() == 0

    def test_off_grid_start_is_rejected(self, db, monday_practitioner):
        with pytest.raises(SlotNoLongerAvailable):
            ConflictGuard.create(
                db, monday_practitioner.id, booking_fields(start=time(9, 7), end=time(10, 7)), NOW
            )

        booking = ConflictGuard.create(db, monday_practitioner.id, booking_fields(start=time(9), end=time(10)), NOW)
        assert booking.start_time == time(9)

    def test_reversed_times(self, db, monday_practitioner):
        with pytest.raises(ValidationError):
            ConflictGuard.create(db, monday_practitioner.id, booking_fields(start=time(11), end=time(10)), NOW)


class TestCreateSession:

    def test_sessions_ignore_availability_and_buffer(self, db, monday_practitioner):
        add_appointment(db, monday_practitioner, NEXT_MONDAY, time(10), time(11))

        sunday = date(2026, 3, 8)
        on_sunday = ConflictGuard.create(
            db, monday_practitioner.id, session_fields(sunday, time(19), time(20)), NOW, enforce_availability=False
        )
        back_to_back = ConflictGuard.create(
            db, monday_practitioner.id, session_fields(start=time(11), end=time(12)), NOW, enforce_availability=False
        )

        assert on_sunday.session_date == sunday
        assert back_to_back.start_time == time(11)

    def test_sessions_still_cannot_overlap(self, db, monday_practitioner):
        add_appointment(db, monday_practitioner, NEXT_MONDAY, time(10), time(11))

        with pytest.raises(SlotNoLongerAvailable):
            ConflictGuard.create(
                db, monday_practitioner.id, session_fields(start=time(10, 30), end=time(11, 30)), NOW,
                enforce_availability=False,
            )


class TestMove:

    def test_move_excludes_itself(self, db, monday_practitioner):
        session = add_appointment(
            db, monday_practitioner, NEXT_MONDAY, time(10), time(11),
            kind=AppointmentKind.SESSION, status=AppointmentStatus.SCHEDULED,
        )

        moved = ConflictGuard.move(db, session, NEXT_MONDAY, time(10, 30), time(11, 30), {"notes": "Moved"})

        assert moved.start_time == time(10, 30)
        assert moved.notes == "Moved"

    def test_move_into_another_appointment(self, db, monday_practitioner):
        add_appointment(db, monday_practitioner, NEXT_MONDAY, time(14), time(15))
        session = add_appointment(
            db, monday_practitioner, NEXT_MONDAY, time(10), time(11),
            kind=AppointmentKind.SESSION, status=AppointmentStatus.SCHEDULED,
        )

        with pytest.raises(SlotNoLongerAvailable):
            ConflictGuard.move(db, session, NEXT_MONDAY, time(14, 30), time(15, 30))

        db.refresh(session)
        assert session.start_time == time(10)


class TestLocking:

    def test_lock_returns_the_settings_row(self, db, monday_practitioner):
        settings = ConflictGuard.lock_practitioner(db, monday_practitioner.id)
        assert settings.id == get_settings_row(db, monday_practitioner).id


class TestCommit:

    def test_exclusion_violation_becomes_conflict(self):
        db = MagicMock()
        db.commit.side_effect = IntegrityError(
            "INSERT INTO appointments", {},
            Exception('conflicting key value violates exclusion constraint "appointments_no_overlap"'),
        )

        with pytest.raises(SlotNoLongerAvailable):
            ConflictGuard._commit(db)
        db.rollback.assert_called_once()

    def test_other_integrity_errors_propagate(self):
        db = MagicMock()
        db.commit.side_effect = IntegrityError(
            "INSERT INTO appointments", {}, Exception('duplicate key value violates "appointments_pkey"'),
        )

        with pytest.raises(IntegrityError):
            ConflictGuard._commit(db)
        db.rollback.assert_called_once()
