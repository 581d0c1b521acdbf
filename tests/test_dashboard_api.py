"""HTTP tests for the practitioner dashboard endpoints."""
from datetime import time

import pytest

from app.models.appointment import AppointmentStatus
from tests.conftest import make_token
from tests.factories import NEXT_MONDAY, add_appointment, add_integration

BASE = "/api/v1/dashboard"


class TestAuthentication:

    def test_missing_token(self, client, practitioner):
        response = client.get(f"{BASE}/availability/settings")
        assert response.status_code in (401, 403)

    def test_wrong_secret(self, client, practitioner):
        token = make_token(practitioner.id, secret="someone-elses-secret")
        response = client.get(f"{BASE}/availability/settings", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_refresh_token_rejected(self, client, practitioner):
        token = make_token(practitioner.id, token_type="refresh")
        response = client.get(f"{BASE}/availability/settings", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_unknown_practitioner(self, client, practitioner):
        token = make_token("6f1c0e9a-7d43-4b8e-9a51-2f0d3c4b5a69")
        response = client.get(f"{BASE}/availability/settings", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401


class TestAvailabilityEditing:

    def test_read_and_update_settings(self, client, auth_headers):
        assert client.get(f"{BASE}/availability/settings", headers=auth_headers).json()["buffer_minutes"] == 0

        response = client.put(
            f"{BASE}/availability/settings", headers=auth_headers, json={"buffer_minutes": 15}
        )

        assert response.status_code == 200
        assert response.json()["buffer_minutes"] == 15
        assert response.json()["slot_duration_minutes"] == 60

    def test_out_of_range_setting(self, client, auth_headers):
        response = client.put(f"{BASE}/availability/settings", headers=auth_headers, json={"buffer_minutes": 90})
        assert response.status_code == 400
        assert "buffer_minutes" in response.json()["detail"]

    def test_weekly_schedule(self, client, auth_headers):
        response = client.put(f"{BASE}/availability/weekly", headers=auth_headers, json={"rules": [
            {"day_of_week": 0, "start_time": "09:00", "end_time": "12:00"},
            {"day_of_week": 2, "start_time": "13:00", "end_time": "17:00"},
        ]})

        assert response.status_code == 200
        assert [rule["day_of_week"] for rule in response.json()] == [0, 2]
        assert len(client.get(f"{BASE}/availability/weekly", headers=auth_headers).json()) == 2

    def test_overlapping_weekly_rules(self, client, auth_headers):
        response = client.put(f"{BASE}/availability/weekly", headers=auth_headers, json={"rules": [
            {"day_of_week": 0, "start_time": "09:00", "end_time": "12:00"},
            {"day_of_week": 0, "start_time": "11:00", "end_time": "13:00"},
        ]})
        assert response.status_code == 400

    def test_override_lifecycle(self, client, auth_headers):
        created = client.put(f"{BASE}/availability/overrides", headers=auth_headers, json={
            "date": "2026-03-09", "is_available": False, "reason": "Holiday",
        })
        assert created.status_code == 200

        listed = client.get(f"{BASE}/availability/overrides", headers=auth_headers).json()
        assert [o["date"] for o in listed] == ["2026-03-09"]

        deleted = client.delete(f"{BASE}/availability/overrides/{created.json()['id']}", headers=auth_headers)
        assert deleted.status_code == 204

    def test_available_override_without_times(self, client, auth_headers):
        response = client.put(f"{BASE}/availability/overrides", headers=auth_headers, json={
            "date": "2026-03-09", "is_available": True,
        })
        assert response.status_code == 400

    def test_calendar_status_and_disconnect(self, client, db, practitioner, auth_headers):
        add_integration(db, practitioner, "google")

        listed = client.get(f"{BASE}/availability/calendar", headers=auth_headers).json()
        assert [i["provider"] for i in listed] == ["google"]

        assert client.delete(f"{BASE}/availability/calendar/google", headers=auth_headers).status_code == 204
        assert client.delete(f"{BASE}/availability/calendar/google", headers=auth_headers).status_code == 404


class TestAppointments:

    def test_list_confirm_and_complete(self, client, db, practitioner, auth_headers):
        booking = add_appointment(db, practitioner, NEXT_MONDAY, time(10), time(11), status=AppointmentStatus.PENDING)

        pending = client.get(f"{BASE}/appointments", params={"filter": "pending"}, headers=auth_headers).json()
        assert [a["id"] for a in pending] == [str(booking.id)]

        confirmed = client.post(f"{BASE}/appointments/{booking.id}/confirm", headers=auth_headers)
        assert confirmed.json()["status"] == "confirmed"

        completed = client.post(
            f"{BASE}/appointments/{booking.id}/status", headers=auth_headers, json={"status": "completed"}
        )
        assert completed.json()["status"] == "completed"

    def test_invalid_transition(self, client, db, practitioner, auth_headers):
        booking = add_appointment(db, practitioner, NEXT_MONDAY, time(10), time(11), status=AppointmentStatus.PENDING)

        response = client.post(
            f"{BASE}/appointments/{booking.id}/status", headers=auth_headers, json={"status": "no_show"}
        )
        assert response.status_code == 400

    def test_cancel(self, client, db, practitioner, auth_headers):
        booking = add_appointment(db, practitioner, NEXT_MONDAY, time(10), time(11))

        response = client.post(
            f"{BASE}/appointments/{booking.id}/cancel", headers=auth_headers, json={"reason": "Unwell"}
        )

        assert response.status_code == 200
        assert response.json()["cancelled_by"] == "practitioner"

    def test_unknown_filter(self, client, auth_headers):
        response = client.get(f"{BASE}/appointments", params={"filter": "soon"}, headers=auth_headers)
        assert response.status_code == 400

    @pytest.mark.parametrize("start,end,expected", [("10:00", "11:00", 201), ("10:30", "11:30", 409)])
    def test_create_session(self, client, db, practitioner, auth_headers, start, end, expected):
        add_appointment(db, practitioner, NEXT_MONDAY, time(11), time(12))

        response = client.post(f"{BASE}/sessions", headers=auth_headers, json={
            "date": "2026-03-09",
            "start_time": start,
            "end_time": end,
            "client_name": "Chris Doe",
            "client_email": "chris.doe@outlook.com",
        })

        assert response.status_code == expected

    def test_reschedule_response(self, client, auth_headers):
        created = client.post(f"{BASE}/sessions", headers=auth_headers, json={
            "date": "2026-03-09",
            "start_time": "10:00",
            "end_time": "11:00",
            "client_name": "Chris Doe",
            "client_email": "chris.doe@outlook.com",
        }).json()

        response = client.post(
            f"{BASE}/sessions/{created['id']}/reschedule-response", headers=auth_headers, json={"accept": True}
        )
        assert response.status_code == 404
