"""
Integration tests for the HTTP API.

The application's database session and service registry are replaced with
the test database and a registry using fake Redis and a frozen clock.
"""

from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from api.dependencies import get_services
from core.database import get_db
from main import app
from services.availability_cache_service import WARMING_IN_PROGRESS_MESSAGE
from services.booking_guard import APPOINTMENT_NOT_FOUND_MESSAGE
from services.booking_policy import (
    APPOINTMENT_CONFLICT_MESSAGE,
    CLOSED_MESSAGE,
    DAY_UNAVAILABLE_MESSAGE,
)
from services.weekly_availability_service import OVERLAP_MESSAGE


@pytest.fixture
def client(services, session_factory) -> Generator[TestClient, None, None]:
    """Test client whose requests use the test database and registry."""
    def override_get_db() -> Generator[Session, None, None]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_services] = lambda: services
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def api_base(business) -> str:
    return f"/api/businesses/{business.id}"


@pytest.fixture
def open_mondays(client, api_base):
    response = client.post(
        f"{api_base}/weekly-availability",
        json={"day_of_week": 1, "start_time": "09:00", "end_time": "17:00"},
    )
    assert response.status_code == 201
    return response.json()


def _book(client, api_base, service, start_time="10:00", appointment_date="2030-01-14"):
    return client.post(
        f"{api_base}/appointments",
        json={"service_id": service.id, "appointment_date": appointment_date, "start_time": start_time},
    )


class TestHealth:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}


class TestAvailabilityEndpoints:
    def test_get_availability(self, client, api_base, service, open_mondays):
        response = client.get(
            f"{api_base}/availability",
            params={"service_id": service.id, "start_date": "2030-01-14", "days": 1},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["service_id"] == service.id
        assert data["days"][0]["date"] == "2030-01-14"
        assert data["days"][0]["day_of_week"] == 1
        assert [slot["start_time"] for slot in data["days"][0]["slots"]] == [
            "09:00", "10:00", "11:00", "12:00", "13:00", "14:00", "15:00", "16:00",
        ]

    def test_invalid_option_is_bad_request(self, client, api_base, open_mondays):
        response = client.get(f"{api_base}/availability", params={"start_date": "2030-13-01"})

        assert response.status_code == 400
        assert response.json()["type"] == "validation_error"

    def test_closure_drops_cached_slots(self, client, api_base, service, open_mondays):
        """Test adding an exception invalidates the cached calculation."""
        params = {"service_id": service.id, "start_date": "2030-01-14", "days": 1}
        assert len(client.get(f"{api_base}/availability", params=params).json()["days"][0]["slots"]) == 8

        response = client.post(
            f"{api_base}/availability-exceptions",
            json={"date": "2030-01-14", "is_available": False, "reason": "Holiday"},
        )
        assert response.status_code == 201

        assert client.get(f"{api_base}/availability", params=params).json()["days"][0]["slots"] == []

    def test_next_available_slot(self, client, api_base, service, open_mondays):
        response = client.get(
            f"{api_base}/availability/next", params={"service_id": service.id, "start_date": "2030-01-15"}
        )

        assert response.json() == {
            "next_available_slot": {"date": "2030-01-21", "start_time": "09:00", "end_time": "10:00"}
        }

    def test_no_next_slot(self, client, api_base, service):
        response = client.get(f"{api_base}/availability/next", params={"service_id": service.id})

        assert response.json() == {"next_available_slot": None}

    def test_check_time_slot(self, client, api_base, service, open_mondays):
        free = client.post(
            f"{api_base}/availability/check",
            json={"date": "2030-01-14", "start_time": "10:00", "end_time": "11:00"},
        )
        tuesday = client.post(
            f"{api_base}/availability/check",
            json={"date": "2030-01-15", "start_time": "10:00", "end_time": "11:00"},
        )

        assert free.json() == {"available": True, "reason": None}
        assert tuesday.json() == {"available": False, "reason": DAY_UNAVAILABLE_MESSAGE}

    def test_check_time_slot_rejects_reversed_interval(self, client, api_base, open_mondays):
        response = client.post(
            f"{api_base}/availability/check",
            json={"date": "2030-01-14", "start_time": "11:00", "end_time": "10:00"},
        )

        assert response.status_code == 400
        assert response.json()["field"] == "end_time"


class TestWeeklyAvailabilityEndpoints:
    def test_overlapping_rule_conflicts(self, client, api_base, open_mondays):
        response = client.post(
            f"{api_base}/weekly-availability",
            json={"day_of_week": 1, "start_time": "16:00", "end_time": "18:00"},
        )

        assert response.status_code == 409
        assert response.json()["detail"] == OVERLAP_MESSAGE

    def test_invalid_day(self, client, api_base):
        response = client.post(
            f"{api_base}/weekly-availability",
            json={"day_of_week": 7, "start_time": "09:00", "end_time": "17:00"},
        )

        assert response.status_code == 400

    def test_partial_update(self, client, api_base, open_mondays):
        response = client.put(
            f"{api_base}/weekly-availability/{open_mondays['id']}", json={"end_time": "12:00"}
        )

        assert response.status_code == 200
        assert response.json()["start_time"] == "09:00"
        assert response.json()["end_time"] == "12:00"

    def test_replace_schedule(self, client, api_base, open_mondays):
        response = client.put(f"{api_base}/weekly-availability", json={"entries": [
            {"day_of_week": 2, "start_time": "09:00", "end_time": "12:00"},
            {"day_of_week": 2, "start_time": "13:00", "end_time": "17:00"},
        ]})

        assert response.status_code == 200
        listed = client.get(f"{api_base}/weekly-availability").json()["rules"]
        assert [(rule["day_of_week"], rule["start_time"]) for rule in listed] == [(2, "09:00"), (2, "13:00")]

    def test_replace_schedule_is_atomic(self, client, api_base, open_mondays):
        response = client.put(f"{api_base}/weekly-availability", json={"entries": [
            {"day_of_week": 2, "start_time": "09:00", "end_time": "12:00"},
            {"day_of_week": 2, "start_time": "11:00", "end_time": "17:00"},
        ]})

        assert response.status_code == 400
        listed = client.get(f"{api_base}/weekly-availability").json()["rules"]
        assert [rule["id"] for rule in listed] == [open_mondays["id"]]

    def test_delete_rule(self, client, api_base, open_mondays):
        assert client.delete(f"{api_base}/weekly-availability/{open_mondays['id']}").status_code == 204
        assert client.delete(f"{api_base}/weekly-availability/{open_mondays['id']}").status_code == 404

    def test_filter_by_day(self, client, api_base, open_mondays):
        assert client.get(f"{api_base}/weekly-availability", params={"day_of_week": 2}).json() == {"rules": []}


class TestAvailabilityExceptionEndpoints:
    def test_duplicate_date_conflicts(self, client, api_base):
        body = {"date": "2030-01-14", "is_available": False}
        assert client.post(f"{api_base}/availability-exceptions", json=body).status_code == 201

        assert client.post(f"{api_base}/availability-exceptions", json=body).status_code == 409

    def test_upsert_replaces(self, client, api_base):
        client.put(f"{api_base}/availability-exceptions", json={"date": "2030-01-14", "is_available": False})

        response = client.put(f"{api_base}/availability-exceptions", json={
            "date": "2030-01-14", "is_available": True, "start_time": "10:00", "end_time": "14:00",
        })

        assert response.status_code == 200
        listed = client.get(f"{api_base}/availability-exceptions").json()["exceptions"]
        assert len(listed) == 1
        assert (listed[0]["start_time"], listed[0]["end_time"]) == ("10:00", "14:00")

    def test_range_requires_both_dates(self, client, api_base):
        response = client.get(f"{api_base}/availability-exceptions", params={"start_date": "2030-01-01"})

        assert response.status_code == 400

    def test_range_listing_and_delete(self, client, api_base):
        for day in ("2030-01-14", "2030-01-20", "2030-02-01"):
            client.post(f"{api_base}/availability-exceptions", json={"date": day})

        listed = client.get(
            f"{api_base}/availability-exceptions", params={"start_date": "2030-01-14", "end_date": "2030-01-20"}
        ).json()["exceptions"]
        deleted = client.delete(
            f"{api_base}/availability-exceptions", params={"start_date": "2030-01-01", "end_date": "2030-01-31"}
        ).json()

        assert [e["date"] for e in listed] == ["2030-01-14", "2030-01-20"]
        assert deleted == {"deleted": 2}

    def test_clear_reason(self, client, api_base):
        created = client.post(
            f"{api_base}/availability-exceptions", json={"date": "2030-01-14", "reason": "Holiday"}
        ).json()

        updated = client.put(f"{api_base}/availability-exceptions/{created['id']}", json={"reason": None})

        assert updated.json()["reason"] is None


class TestAppointmentEndpoints:
    def test_validate_free_slot(self, client, api_base, service, open_mondays):
        response = client.post(f"{api_base}/appointments/validate", json={
            "service_id": service.id, "appointment_date": "2030-01-14", "start_time": "10:00",
        })

        assert response.json() == {"is_available": True, "conflicts": []}

    def test_validate_reports_reasons_and_suggestion(self, client, api_base, service, open_mondays):
        response = client.post(f"{api_base}/appointments/validate", json={
            "service_id": service.id, "appointment_date": "2030-01-15", "start_time": "10:00",
        })

        assert response.status_code == 200
        assert response.json() == {
            "is_available": False,
            "conflicts": [DAY_UNAVAILABLE_MESSAGE],
            "suggestions": {"next_available_slot": {"date": "2030-01-21", "start_time": "09:00", "end_time": "10:00"}},
        }

    def test_book_and_conflict(self, client, api_base, service, open_mondays):
        booked = _book(client, api_base, service)
        assert booked.status_code == 201
        assert booked.json()["status"] == "pending"
        assert booked.json()["end_time"] == "11:00"

        conflict = _book(client, api_base, service, start_time="10:30")

        assert conflict.status_code == 409
        payload = conflict.json()
        assert payload["type"] == "booking_conflict"
        assert payload["conflicts"] == [APPOINTMENT_CONFLICT_MESSAGE]
        assert payload["is_race"] is False
        assert payload["suggestions"]["next_available_slot"]["start_time"] == "09:00"

    def test_closed_date(self, client, api_base, service, open_mondays):
        client.post(f"{api_base}/availability-exceptions", json={"date": "2030-01-14"})

        response = _book(client, api_base, service)

        assert response.status_code == 409
        assert response.json()["conflicts"] == [CLOSED_MESSAGE]

    def test_malformed_date(self, client, api_base, service, open_mondays):
        response = _book(client, api_base, service, appointment_date="2030-02-30")

        assert response.status_code == 400
        assert response.json()["field"] == "appointment_date"

    def test_missing_field(self, client, api_base, open_mondays):
        response = client.post(f"{api_base}/appointments", json={"appointment_date": "2030-01-14"})

        assert response.status_code == 422

    def test_unknown_appointment(self, client, api_base):
        response = client.get(f"{api_base}/appointments/999")

        assert response.status_code == 404
        assert response.json()["detail"] == APPOINTMENT_NOT_FOUND_MESSAGE

    def test_reschedule_with_version(self, client, api_base, service, open_mondays):
        appointment = _book(client, api_base, service).json()

        moved = client.put(f"{api_base}/appointments/{appointment['id']}", json={
            "appointment_date": "2030-01-14", "start_time": "14:00", "expected_version": 1,
        })
        stale = client.put(f"{api_base}/appointments/{appointment['id']}", json={
            "appointment_date": "2030-01-14", "start_time": "15:00", "expected_version": 1,
        })

        assert moved.status_code == 200
        assert moved.json()["version"] == 2
        assert stale.status_code == 409

    def test_cancel_frees_slot(self, client, api_base, service, open_mondays):
        appointment = _book(client, api_base, service).json()

        cancelled = client.delete(
            f"{api_base}/appointments/{appointment['id']}", params={"reason": "Client request"}
        )

        assert cancelled.json()["status"] == "cancelled"
        assert _book(client, api_base, service).status_code == 201

    def test_status_transition(self, client, api_base, service, open_mondays):
        appointment = _book(client, api_base, service).json()
        url = f"{api_base}/appointments/{appointment['id']}/status"

        assert client.put(url, json={"status": "confirmed"}).json()["status"] == "confirmed"
        assert client.put(url, json={"status": "completed"}).status_code == 200
        assert client.put(url, json={"status": "confirmed"}).status_code == 400

    def test_list_by_date(self, client, api_base, service, open_mondays):
        _book(client, api_base, service, start_time="14:00")
        _book(client, api_base, service, start_time="09:00")

        listed = client.get(f"{api_base}/appointments", params={"date": "2030-01-14"}).json()["appointments"]

        assert [a["start_time"] for a in listed] == ["09:00", "14:00"]


class TestCacheEndpoints:
    def test_stats_after_hit(self, client, api_base, service, open_mondays):
        params = {"service_id": service.id, "start_date": "2030-01-14", "days": 1}
        client.get(f"{api_base}/availability", params=params)
        client.get(f"{api_base}/availability", params=params)

        stats = client.get(f"{api_base}/availability-cache").json()

        assert (stats["cache_hits"], stats["cache_misses"], stats["cached_entries"]) == (1, 1, 1)

    def test_warm_and_invalidate_business(self, client, api_base, service, open_mondays):
        warmed = client.post(f"{api_base}/availability-cache/warm").json()
        assert warmed["entries_warmed"] == 5

        assert client.delete(f"{api_base}/availability-cache").json() == {"deleted": 5}

    def test_invalidate_service(self, client, api_base, service, open_mondays):
        client.post(f"{api_base}/availability-cache/warm")

        assert client.delete(f"{api_base}/availability-cache", params={"service_id": service.id}).json() == {
            "deleted": 5
        }

    def test_warm_all(self, client, open_mondays):
        response = client.post("/api/availability-cache/warm")

        assert response.status_code == 200
        assert response.json()["businesses_warmed"] == 1
        assert response.json()["success"] is True

    def test_concurrent_warm_conflicts(self, client, services, open_mondays):
        services.cache._warming_lock.acquire()
        try:
            response = client.post("/api/availability-cache/warm")
        finally:
            services.cache._warming_lock.release()

        assert response.status_code == 409
        assert response.json()["detail"] == WARMING_IN_PROGRESS_MESSAGE

    def test_business_warm_conflicts_with_running_warm(self, client, services, api_base, open_mondays):
        services.cache._warming_lock.acquire()
        try:
            response = client.post(f"{api_base}/availability-cache/warm")
        finally:
            services.cache._warming_lock.release()

        assert response.status_code == 409
        assert response.json()["detail"] == WARMING_IN_PROGRESS_MESSAGE

    def test_invalidate_all(self, client, api_base, open_mondays):
        client.post(f"{api_base}/availability-cache/warm")

        assert client.delete("/api/availability-cache").json()["deleted"] > 0
        assert client.get(f"{api_base}/availability-cache").json()["cached_entries"] == 0
