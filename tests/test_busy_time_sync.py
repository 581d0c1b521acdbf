"""Tests for the external calendar busy-time cache."""
from datetime import datetime, time, timedelta, timezone

import pytest
import requests

from app.core.exceptions import NotFoundError, UpstreamSyncError
from app.models import CalendarBusyTime, CalendarIntegration
from app.services.availability.availability_service import AvailabilityService
from app.services.calendar.busy_time_sync import BusyTimeSyncService, practitioners_with_calendars
from app.services.calendar.google_calendar_service import GoogleCalendarService
from app.services.calendar.outlook_service import OutlookCalendarService
from tests.factories import NEXT_MONDAY, NOW, add_busy_time, add_integration, add_rule, create_practitioner


def utc(day, hour, minute=0):
    return datetime(2026, 3, day, hour, minute, tzinfo=timezone.utc)


class FakeProvider:
    """Calendar provider returning canned busy intervals"""

    def __init__(self, intervals=(), error=None, name="google", raises=None):
        self.intervals = list(intervals)
        self.error = error
        self.raises = raises
        self.name = name
        self.calls = []

    def fetch_busy(self, integration, db, time_from, time_to):
        self.calls.append((time_from, time_to))
        if self.raises:
            raise self.raises
        if self.error:
            raise UpstreamSyncError(self.name, self.error)
        return self.intervals


def busy_rows(db, provider=None):
    query = db.query(CalendarBusyTime)
    if provider:
        query = query.filter_by(provider=provider)
    return query.order_by(CalendarBusyTime.starts_at).all()


class TestSync:

    def test_success_replaces_cached_rows(self, db, clock, practitioner):
        integration = add_integration(db, practitioner)
        add_busy_time(db, practitioner, utc(5, 9), utc(5, 10))
        google = FakeProvider([(utc(9, 12), utc(9, 13)), (utc(10, 9), utc(10, 9))])

        outcome = BusyTimeSyncService(db, clock, {"google": google}).sync_practitioner(practitioner.id)

        assert outcome == {"google": "success"}
        rows = busy_rows(db)
        assert len(rows) == 1
        assert rows[0].starts_at.replace(tzinfo=None) == datetime(2026, 3, 9, 12)
        db.refresh(integration)
        assert integration.last_sync_status == "success"
        assert integration.last_sync_error is None

    def test_requested_horizon(self, db, clock, practitioner):
        add_integration(db, practitioner)
        google = FakeProvider()

        BusyTimeSyncService(db, clock, {"google": google}).sync_practitioner(practitioner.id)

        time_from, time_to = google.calls[0]
        assert time_from == NOW
        assert (time_to - time_from).days == 30

    def test_failure_keeps_previous_rows(self, db, clock, practitioner):
        integration = add_integration(db, practitioner)
        add_busy_time(db, practitioner, utc(9, 9), utc(9, 10))
        google = FakeProvider(error="invalid_grant")

        outcome = BusyTimeSyncService(db, clock, {"google": google}).sync_practitioner(practitioner.id)

        assert outcome == {"google": "failed"}
        assert len(busy_rows(db)) == 1
        db.refresh(integration)
        assert integration.last_sync_status == "failed"
        assert "invalid_grant" in integration.last_sync_error

    def test_providers_are_independent(self, db, clock, practitioner):
        add_integration(db, practitioner, "google")
        add_integration(db, practitioner, "outlook")
        add_busy_time(db, practitioner, utc(9, 9), utc(9, 10), provider="outlook")
        providers = {
            "google": FakeProvider([(utc(9, 14), utc(9, 15))]),
            "outlook": FakeProvider(error="throttled", name="outlook"),
        }

        outcome = BusyTimeSyncService(db, clock, providers).sync_practitioner(practitioner.id)

        assert outcome == {"google": "success", "outlook": "failed"}
        assert len(busy_rows(db, "google")) == 1
        assert len(busy_rows(db, "outlook")) == 1

    def test_unexpected_provider_error_is_contained(self, db, clock, practitioner):
        google_row = add_integration(db, practitioner, "google")
        add_integration(db, practitioner, "outlook")
        add_busy_time(db, practitioner, utc(9, 9), utc(9, 10), provider="google")
        providers = {
            "google": FakeProvider(raises=requests.ConnectionError("token endpoint unreachable")),
            "outlook": FakeProvider([(utc(9, 14), utc(9, 15))], name="outlook"),
        }

        outcome = BusyTimeSyncService(db, clock, providers).sync_practitioner(practitioner.id)

        assert outcome == {"google": "failed", "outlook": "success"}
        assert len(busy_rows(db, "google")) == 1
        assert len(busy_rows(db, "outlook")) == 1
        db.refresh(google_row)
        assert google_row.last_sync_status == "failed"
        assert "token endpoint unreachable" in google_row.last_sync_error

    def test_inactive_and_unknown_integrations(self, db, clock, practitioner):
        add_integration(db, practitioner, "google", is_active=False)
        add_integration(db, practitioner, "outlook")
        google = FakeProvider([(utc(9, 14), utc(9, 15))])

        outcome = BusyTimeSyncService(db, clock, {"google": google}).sync_practitioner(practitioner.id)

        assert outcome == {"outlook": "failed"}
        assert google.calls == []

    def test_synced_busy_time_removes_slots(self, db, clock, practitioner):
        add_rule(db, practitioner)
        add_integration(db, practitioner)
        google = FakeProvider([(utc(9, 12), utc(9, 14))])

        BusyTimeSyncService(db, clock, {"google": google}).sync_practitioner(practitioner.id)
        slots = AvailabilityService.get_available_slots(db, practitioner, NEXT_MONDAY, NEXT_MONDAY, NOW)

        starts = [slot.start.time() for slot in slots]
        assert time(12) not in starts and time(13) not in starts
        assert time(11) in starts and time(14) in starts


class TestIntegrations:

    def test_disconnect_removes_cache(self, db, clock, practitioner):
        add_integration(db, practitioner)
        add_busy_time(db, practitioner, utc(9, 9), utc(9, 10))

        BusyTimeSyncService(db, clock, {}).disconnect(practitioner.id, "google")

        assert db.query(CalendarIntegration).count() == 0
        assert busy_rows(db) == []

    def test_disconnect_missing(self, db, clock, practitioner):
        with pytest.raises(NotFoundError):
            BusyTimeSyncService(db, clock, {}).disconnect(practitioner.id, "outlook")

    def test_practitioners_with_calendars(self, db, practitioner):
        other = create_practitioner(db, slug="other")
        idle = create_practitioner(db, slug="idle")
        add_integration(db, practitioner, "google")
        add_integration(db, practitioner, "outlook")
        add_integration(db, other, "google")
        add_integration(db, idle, "google", is_active=False)

        assert set(practitioners_with_calendars(db)) == {practitioner.id, other.id}


class TestProviderErrors:

    @pytest.fixture
    def unreadable(self, db, practitioner):
        """Integration whose stored token no longer decrypts under the current key"""
        def make(provider):
            integration = add_integration(db, practitioner, provider)
            integration.access_token_encrypted = b"not-a-fernet-token"
            integration.refresh_token_encrypted = b"not-a-fernet-token"
            integration.token_expires_at = datetime.now(timezone.utc) + timedelta(hours=1)
            db.commit()
            return integration
        return make

    def test_google_undecryptable_token(self, db, unreadable):
        integration = unreadable("google")

        with pytest.raises(UpstreamSyncError) as excinfo:
            GoogleCalendarService().fetch_busy(integration, db, NOW, NOW + timedelta(days=1))
        assert excinfo.value.provider == "google"

    def test_outlook_undecryptable_token(self, db, unreadable):
        integration = unreadable("outlook")

        with pytest.raises(UpstreamSyncError) as excinfo:
            OutlookCalendarService().fetch_busy(integration, db, NOW, NOW + timedelta(days=1))
        assert excinfo.value.provider == "outlook"

    def test_broken_provider_does_not_stop_the_other(self, db, clock, practitioner, unreadable):
        unreadable("google")
        add_integration(db, practitioner, "outlook")
        providers = {
            "google": GoogleCalendarService(),
            "outlook": FakeProvider([(utc(9, 14), utc(9, 15))], name="outlook"),
        }

        outcome = BusyTimeSyncService(db, clock, providers).sync_practitioner(practitioner.id)

        assert outcome == {"google": "failed", "outlook": "success"}
