"""Celery tasks run eagerly against the test database."""
from datetime import time, timedelta

import pytest

from app.models.appointment import AppointmentKind, AppointmentStatus
from app.services.calendar.event_push import CalendarEventPusher
from app.tasks import calendar_tasks, maintenance_tasks, reminder_tasks
from tests.factories import NEXT_MONDAY, NOW, add_appointment, add_integration, create_practitioner


@pytest.fixture
def task_env(monkeypatch, session_factory, clock, sender):
    for module in (calendar_tasks, maintenance_tasks, reminder_tasks):
        monkeypatch.setattr(module, "SessionLocal", session_factory)
        monkeypatch.setattr(module, "get_clock", lambda: clock)
    monkeypatch.setattr(reminder_tasks, "get_reminder_sender", lambda: sender)


class TestTasks:

    def test_expire_unverified_bookings(self, task_env, db, clock, practitioner):
        booking = add_appointment(
            db, practitioner, NEXT_MONDAY, time(10), time(11),
            status=AppointmentStatus.PENDING, verified_at=None,
            verification_token="verification-token-123456",
            verification_expires_at=NOW + timedelta(hours=24),
        )
        clock.advance(hours=30)

        assert maintenance_tasks.expire_unverified_bookings() == {"cancelled": 1}

        db.refresh(booking)
        assert booking.status == AppointmentStatus.CANCELLED

    def test_process_reminders(self, task_env, db, sender, practitioner):
        start = (NOW + timedelta(hours=30)).replace(tzinfo=None)
        add_appointment(
            db, practitioner, start.date(), start.time(), (start + timedelta(hours=1)).time(),
            kind=AppointmentKind.SESSION, status=AppointmentStatus.SCHEDULED,
            created_at=NOW - timedelta(hours=25),
        )

        result = reminder_tasks.process_reminders()

        assert result["rsvp_reminders_sent"] == 1
        assert len(sender.sent) == 1

    def test_sync_fans_out_per_practitioner(self, task_env, db, monkeypatch, practitioner):
        other = create_practitioner(db, slug="other")
        add_integration(db, practitioner)
        add_integration(db, other, "outlook")
        queued = []
        monkeypatch.setattr(calendar_tasks.sync_practitioner_busy_times, "delay", queued.append)

        assert calendar_tasks.sync_all_busy_times() == {"queued": 2}
        assert set(queued) == {str(practitioner.id), str(other.id)}

    def test_push_booking_to_calendars(self, task_env, db, monkeypatch, practitioner):
        booking = add_appointment(db, practitioner, NEXT_MONDAY, time(10), time(11))
        add_integration(db, practitioner)
        created = []

        class Google:
            def create_event(self, integration, db, event):
                created.append(event["summary"])
                return "evt-1"

        monkeypatch.setattr(
            calendar_tasks, "CalendarEventPusher", lambda session: CalendarEventPusher(session, {"google": Google()})
        )

        result = calendar_tasks.push_booking_to_calendars(str(booking.id))

        assert result == {"appointment_id": str(booking.id), "providers": {"google": "created"}}
        assert created == ["Session with Jo Bloggs"]

    def test_beat_schedule_names_registered_tasks(self):
        from app.config.celery_config import celery_app

        for entry in celery_app.conf.beat_schedule.values():
            assert entry["task"] in celery_app.tasks
