"""
Unit tests for the availability exception store.
"""

import pytest
from datetime import date, time

from core.exceptions import ConflictError, NotFoundError, ValidationError
from services.availability_exception_service import (
    DUPLICATE_MESSAGE,
    AvailabilityExceptionService,
)
from shared_types.availability import Closed, OpenAllDay, OpenCustomHours


@pytest.fixture
def store():
    return AvailabilityExceptionService()


class TestCreate:
    """Test creating date exceptions."""

    def test_create_closure(self, store, db_session, business):
        """Test a whole-day closure is the default."""
        exception = store.create(db_session, business.id, "2030-12-25", reason="Holiday")

        assert exception.date == date(2030, 12, 25)
        assert exception.is_available is False
        assert exception.hours == Closed()
        assert exception.reason == "Holiday"

    def test_create_special_hours(self, store, db_session, business):
        exception = store.create(
            db_session, business.id, "2030-12-24", start_time="10:00", end_time="14:00", is_available=True
        )

        assert exception.start_time == time(10, 0)
        assert exception.hours == OpenCustomHours("10:00", "14:00")

    def test_open_without_hours_defers_to_weekly_schedule(self, store, db_session, business):
        exception = store.create(db_session, business.id, "2030-12-24", is_available=True)
        assert exception.hours == OpenAllDay()

    def test_closed_with_hours_is_still_closed(self, store, db_session, business):
        """Test recorded times are ignored while the day is closed."""
        exception = store.create(
            db_session, business.id, "2030-12-24", start_time="10:00", end_time="14:00", is_available=False
        )
        assert exception.hours == Closed()

    def test_duplicate_date_rejected(self, store, db_session, business):
        """Test only one exception may exist per business and date."""
        store.create(db_session, business.id, "2030-12-25")

        with pytest.raises(ConflictError) as exc_info:
            store.create(db_session, business.id, "2030-12-25", is_available=True)
        assert exc_info.value.message == DUPLICATE_MESSAGE

    @pytest.mark.parametrize("start,end", [("10:00", None), (None, "14:00")])
    def test_half_specified_hours_rejected(self, store, db_session, business, start, end):
        """Test start and end must be given together."""
        with pytest.raises(ValidationError):
            store.create(db_session, business.id, "2030-12-24", start_time=start, end_time=end, is_available=True)

    def test_reversed_hours_rejected(self, store, db_session, business):
        with pytest.raises(ValidationError) as exc_info:
            store.create(db_session, business.id, "2030-12-24", start_time="14:00", end_time="10:00")
        assert exc_info.value.message == "End time must be after start time"

    @pytest.mark.parametrize("value", ["2030-02-30", "24-12-2030"])
    def test_invalid_date_rejected(self, store, db_session, business, value):
        with pytest.raises(ValidationError):
            store.create(db_session, business.id, value)

    def test_blank_reason_stored_as_none(self, store, db_session, business):
        exception = store.create(db_session, business.id, "2030-12-25", reason="   ")
        assert exception.reason is None

    def test_reason_trimmed(self, store, db_session, business):
        exception = store.create(db_session, business.id, "2030-12-25", reason="  Staff training ")
        assert exception.reason == "Staff training"


class TestQueries:
    def test_find_by_date(self, store, db_session, business):
        created = store.create(db_session, business.id, "2030-12-25")

        assert store.find_by_business_id_and_date(db_session, business.id, "2030-12-25").id == created.id
        assert store.find_by_business_id_and_date(db_session, business.id, date(2030, 12, 26)) is None

    def test_find_by_date_range_inclusive_and_ordered(self, store, db_session, business):
        for day in ("2030-01-10", "2030-01-01", "2030-01-05", "2030-01-20"):
            store.create(db_session, business.id, day)

        found = store.find_by_business_id_and_date_range(db_session, business.id, "2030-01-01", "2030-01-10")
        assert [e.date.day for e in found] == [1, 5, 10]

    def test_map_by_date(self, store, db_session, business):
        store.create(db_session, business.id, "2030-01-05")

        mapped = store.map_by_date(db_session, business.id, date(2030, 1, 1), date(2030, 1, 31))
        assert list(mapped) == [date(2030, 1, 5)]

    def test_other_business_not_visible(self, store, db_session, business):
        created = store.create(db_session, business.id, "2030-12-25")
        assert store.find_by_id_and_business_id(db_session, created.id, business.id + 1) is None


class TestUpdate:
    def test_update_reason_only(self, store, db_session, business):
        created = store.create(db_session, business.id, "2030-12-25", reason="Holiday")

        updated = store.update(db_session, created.id, business.id, reason="Christmas")

        assert updated.reason == "Christmas"
        assert updated.hours == Closed()

    def test_update_opens_with_hours(self, store, db_session, business):
        created = store.create(db_session, business.id, "2030-12-24")

        updated = store.update(
            db_session, created.id, business.id, is_available=True, start_time="10:00", end_time="13:00"
        )
        assert updated.hours == OpenCustomHours("10:00", "13:00")

    def test_update_clears_hours(self, store, db_session, business):
        """Test passing None for both times removes the special hours."""
        created = store.create(
            db_session, business.id, "2030-12-24", start_time="10:00", end_time="14:00", is_available=True
        )

        updated = store.update(db_session, created.id, business.id, start_time=None, end_time=None)
        assert updated.hours == OpenAllDay()

    def test_update_one_time_merges_with_stored_one(self, store, db_session, business):
        created = store.create(
            db_session, business.id, "2030-12-24", start_time="10:00", end_time="14:00", is_available=True
        )

        updated = store.update(db_session, created.id, business.id, end_time="16:00")
        assert updated.hours == OpenCustomHours("10:00", "16:00")

    def test_update_to_taken_date_rejected(self, store, db_session, business):
        store.create(db_session, business.id, "2030-12-25")
        created = store.create(db_session, business.id, "2030-12-26")

        with pytest.raises(ConflictError):
            store.update(db_session, created.id, business.id, exception_date="2030-12-25")

    def test_update_missing(self, store, db_session, business):
        with pytest.raises(NotFoundError):
            store.update(db_session, 9999, business.id, reason="x")

    def test_rejected_update_leaves_row_unchanged(self, store, db_session, business):
        created = store.create(db_session, business.id, "2030-02-01", reason="Inventory")

        with pytest.raises(ValidationError):
            store.update(
                db_session, created.id, business.id,
                exception_date="2030-03-01", start_time="10:00", reason="Moved",
            )
        # Another write on the same session must not carry the rejected change
        store.create(db_session, business.id, "2030-04-01")
        db_session.expire_all()

        stored = store.find_by_id(db_session, created.id)
        assert stored.date == date(2030, 2, 1)
        assert stored.reason == "Inventory"
        assert store.find_by_business_id_and_date(db_session, business.id, "2030-03-01") is None


class TestDelete:
    def test_delete(self, store, db_session, business):
        created = store.create(db_session, business.id, "2030-12-25")
        store.delete(db_session, created.id, business.id)
        assert store.find_by_business_id(db_session, business.id) == []

    def test_delete_other_business_not_found(self, store, db_session, business):
        created = store.create(db_session, business.id, "2030-12-25")
        with pytest.raises(NotFoundError):
            store.delete(db_session, created.id, business.id + 1)

    def test_delete_by_date_range(self, store, db_session, business):
        for day in ("2030-01-01", "2030-01-05", "2030-01-10"):
            store.create(db_session, business.id, day)

        assert store.delete_by_date_range(db_session, business.id, "2030-01-01", "2030-01-05") == 2
        assert [e.date.day for e in store.find_by_business_id(db_session, business.id)] == [10]

    def test_delete_all_for_business(self, store, db_session, business):
        store.create(db_session, business.id, "2030-01-01")
        store.create(db_session, business.id, "2030-01-02")
        assert store.delete_all_for_business(db_session, business.id) == 2


class TestUpsert:
    def test_upsert_creates(self, store, db_session, business):
        exception = store.upsert(db_session, business.id, "2030-12-25", reason="Holiday")
        assert exception.id is not None

    def test_upsert_replaces_in_place(self, store, db_session, business):
        """Test upserting an existing date never creates a second row."""
        first = store.upsert(db_session, business.id, "2030-12-24", reason="Closed")

        second = store.upsert(
            db_session, business.id, "2030-12-24", start_time="09:00", end_time="12:00", is_available=True
        )

        assert second.id == first.id
        assert second.hours == OpenCustomHours("09:00", "12:00")
        assert second.reason is None
        assert len(store.find_by_business_id(db_session, business.id)) == 1

    def test_upsert_validates_hours(self, store, db_session, business):
        store.upsert(db_session, business.id, "2030-12-24")
        with pytest.raises(ValidationError):
            store.upsert(db_session, business.id, "2030-12-24", start_time="12:00", end_time=None)
