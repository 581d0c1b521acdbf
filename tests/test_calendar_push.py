"""Tests for writing confirmed bookings to external calendars."""
from datetime import datetime, time, timezone

import pytest

from app.core.exceptions import UpstreamSyncError
from app.models.appointment import AppointmentStatus
from app.services.booking.booking_service import BookingService
from app.services.calendar.event_push import CalendarEventPusher, booking_event
from tests.factories import NEXT_MONDAY, NOW, add_appointment, add_integration, add_rule, get_settings_row


class FakeCalendar:
    """Provider that records created events"""

    def __init__(self, name, error=None):
        self.name = name
        self.error = error
        self.events = []

    def create_event(self, integration, db, event):
        if self.error:
            raise UpstreamSyncError(self.name, self.error)
        self.events.append(event)
        return f"{self.name}-event-{len(self.events)}"


@pytest.fixture
def calendars(db, practitioner):
    add_integration(db, practitioner, "google")
    add_integration(db, practitioner, "outlook")
    return {"google": FakeCalendar("google"), "outlook": FakeCalendar("outlook")}


class TestPush:

    def test_confirmed_booking_lands_on_every_calendar(self, db, practitioner, calendars):
        booking = add_appointment(db, practitioner, NEXT_MONDAY, time(10), time(11), notes="First visit")

        outcome = CalendarEventPusher(db, calendars).push(booking.id)

        assert outcome == {"google": "created", "outlook": "created"}
        db.refresh(booking)
        assert booking.calendar_event_ids == {"google": "google-event-1", "outlook": "outlook-event-1"}
        event = calendars["google"].events[0]
        assert event["summary"] == "Session with Jo Bloggs"
        assert "First visit" in event["description"]

    def test_second_push_creates_nothing(self, db, practitioner, calendars):
        booking = add_appointment(db, practitioner, NEXT_MONDAY, time(10), time(11))
        pusher = CalendarEventPusher(db, calendars)
        pusher.push(booking.id)

        assert pusher.push(booking.id) == {"google": "exists", "outlook": "exists"}
        assert len(calendars["google"].events) == 1
        assert len(calendars["outlook"].events) == 1

    def test_failed_provider_is_tried_again_next_time(self, db, practitioner, calendars):
        booking = add_appointment(db, practitioner, NEXT_MONDAY, time(10), time(11))
        calendars["outlook"].error = "503 Service Unavailable"

        assert CalendarEventPusher(db, calendars).push(booking.id) == {"google": "created", "outlook": "failed"}
        db.refresh(booking)
        assert booking.calendar_event_ids == {"google": "google-event-1"}

        calendars["outlook"].error = None
        assert CalendarEventPusher(db, calendars).push(booking.id) == {"google": "exists", "outlook": "created"}

    def test_unconfirmed_booking_is_skipped(self, db, practitioner, calendars):
        booking = add_appointment(
            db, practitioner, NEXT_MONDAY, time(10), time(11), status=AppointmentStatus.PENDING
        )

        assert CalendarEventPusher(db, calendars).push(booking.id) == {}
        assert calendars["google"].events == []

    def test_event_times_are_utc(self, db, practitioner):
        get_settings_row(db, practitioner).timezone = "Asia/Tokyo"
        db.commit()
        booking = add_appointment(db, practitioner, NEXT_MONDAY, time(10), time(11))

        event = booking_event(booking, "Asia/Tokyo")

        assert event["start"] == datetime(2026, 3, 9, 1, 0, tzinfo=timezone.utc)
        assert event["end"] == datetime(2026, 3, 9, 2, 0, tzinfo=timezone.utc)


class TestQueueing:

    def test_practitioner_confirmation_queues_push(self, db, sender, queued, practitioner):
        add_rule(db, practitioner)
        booking = add_appointment(db, practitioner, NEXT_MONDAY, time(10), time(11), status=AppointmentStatus.PENDING)

        BookingService.confirm_booking(db, sender, practitioner, booking.id, NOW)

        assert queued.named("push_booking_to_calendars") == [(str(booking.id),)]

    def test_pending_submission_queues_nothing(self, db, sender, queued, practitioner):
        add_rule(db, practitioner)
        data = {"date": NEXT_MONDAY, "start_time": "10:00", "end_time": "11:00",
                "name": "Sam Taylor", "email": "sam.taylor@gmail.com"}

        BookingService.submit_booking(db, sender, practitioner, data, NOW)

        assert queued.named("push_booking_to_calendars") == []
