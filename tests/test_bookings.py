"""
Tests for the booking store, availability checker and status lifecycle.
"""
from datetime import date, datetime

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from bookings import (
    VALID_TRANSITIONS,
    availability_filter,
    cancel_booking,
    check_availability,
    create_booking,
    get_booking,
    list_bookings,
    update_booking_status,
    validate_status_transition,
)
from schemas import BookingCreate, parse_date


def _create(db, make_booking, **overrides):
    return create_booking(db, BookingCreate.model_validate(make_booking(**overrides)))


class TestBookingCreate:

    def test_valid_input_is_normalized(self, make_booking):
        body = BookingCreate.model_validate(make_booking(
            guestName="  Ada  ", email="ADA@Example.com", specialRequests="   ",
        ))
        assert body.guest_name == "Ada"
        assert body.email == "ada@example.com"
        assert body.special_requests is None
        assert body.check_in == date(2024, 6, 1)

    def test_iso_datetime_keeps_calendar_day(self, make_booking):
        body = BookingCreate.model_validate(make_booking(
            checkIn="2024-06-01T00:00:00.000Z", checkOut="2024-06-05T00:00:00.000Z",
        ))
        assert body.check_in == date(2024, 6, 1)
        assert body.check_out == date(2024, 6, 5)

    def test_checkout_before_checkin_rejected(self, make_booking):
        with pytest.raises(ValidationError, match="Check-out date must be after check-in date"):
            BookingCreate.model_validate(make_booking(checkIn="2024-06-10", checkOut="2024-06-05"))

    def test_same_day_rejected(self, make_booking):
        with pytest.raises(ValidationError, match="Check-out date must be after check-in date"):
            BookingCreate.model_validate(make_booking(checkIn="2024-06-05", checkOut="2024-06-05"))

    @pytest.mark.parametrize("field,value", [
        ("roomType", "penthouse"),
        ("numberOfGuests", 0),
        ("totalAmount", -1),
        ("guestName", "   "),
        ("email", "not-an-email"),
    ])
    def test_invalid_fields_rejected(self, make_booking, field, value):
        with pytest.raises(ValidationError):
            BookingCreate.model_validate(make_booking(**{field: value}))

    def test_missing_required_field_rejected(self, make_booking):
        payload = make_booking()
        del payload["phoneNumber"]
        with pytest.raises(ValidationError):
            BookingCreate.model_validate(payload)

    def test_parse_date_rejects_garbage(self):
        with pytest.raises(ValueError, match="Invalid date"):
            parse_date("next tuesday")
        assert parse_date(datetime(2024, 6, 1, 15, 30)) == date(2024, 6, 1)


class TestStore:

    def test_create_assigns_id_status_and_timestamps(self, db, make_booking):
        booking = _create(db, make_booking, status="confirmed")
        assert booking["id"]
        assert booking["status"] == "pending"
        assert booking["createdAt"] == booking["updatedAt"]
        assert db["booking"].count_documents({}) == 1

    def test_round_trip_by_id(self, db, make_booking):
        payload = make_booking(idProof="P1234567")
        created = _create(db, make_booking, idProof="P1234567")
        fetched = get_booking(db, created["id"])
        assert fetched == created
        for key, value in payload.items():
            assert fetched[key] == value

    def test_dates_stored_as_datetimes(self, db, make_booking):
        _create(db, make_booking)
        doc = db["booking"].find_one({})
        assert doc["checkIn"] == datetime(2024, 6, 1)
        assert doc["checkOut"] == datetime(2024, 6, 5)

    def test_list_is_newest_first(self, db, make_booking):
        first = _create(db, make_booking, guestName="First")
        second = _create(db, make_booking, guestName="Second")
        assert [b["id"] for b in list_bookings(db)] == [second["id"], first["id"]]

    def test_list_filters_by_email(self, db, make_booking):
        _create(db, make_booking, email="ada@example.com")
        _create(db, make_booking, email="grace@example.com")
        mine = list_bookings(db, email="Grace@Example.com")
        assert [b["email"] for b in mine] == ["grace@example.com"]

    def test_get_missing_booking_is_404(self, db):
        with pytest.raises(HTTPException) as exc:
            get_booking(db, "0123456789abcdef01234567")
        assert exc.value.status_code == 404

    def test_get_malformed_id_is_400(self, db):
        with pytest.raises(HTTPException) as exc:
            get_booking(db, "not-an-id")
        assert exc.value.status_code == 400


class TestLifecycle:

    def test_terminal_states_have_no_transitions(self):
        assert VALID_TRANSITIONS["cancelled"] == ()
        assert VALID_TRANSITIONS["checked-out"] == ()

    def test_forward_path(self, db, make_booking):
        booking = _create(db, make_booking)
        for status in ("confirmed", "checked-in", "checked-out"):
            booking = update_booking_status(db, booking["id"], status)
            assert booking["status"] == status

    @pytest.mark.parametrize("current", ["pending", "confirmed", "checked-in"])
    def test_non_terminal_can_cancel(self, current):
        validate_status_transition(current, "cancelled")

    @pytest.mark.parametrize("current,target", [
        ("pending", "checked-in"),
        ("confirmed", "pending"),
        ("checked-out", "cancelled"),
        ("cancelled", "confirmed"),
    ])
    def test_enforced_rejects_out_of_order(self, current, target):
        with pytest.raises(HTTPException) as exc:
            validate_status_transition(current, target)
        assert exc.value.status_code == 400
        assert f"from {current} to {target}" in exc.value.detail

    def test_permissive_allows_any_member(self):
        validate_status_transition("cancelled", "confirmed", enforce=False)
        validate_status_transition("checked-out", "pending", enforce=False)

    def test_unknown_status_rejected_even_when_permissive(self):
        with pytest.raises(HTTPException) as exc:
            validate_status_transition("pending", "completed", enforce=False)
        assert "invalid enum value" in exc.value.detail

    def test_same_status_is_a_no_op(self, db, make_booking):
        booking = _create(db, make_booking)
        confirmed = update_booking_status(db, booking["id"], "confirmed")
        again = update_booking_status(db, booking["id"], "confirmed")
        assert again == confirmed

    def test_cancel_is_soft(self, db, make_booking):
        booking = _create(db, make_booking)
        cancelled = cancel_booking(db, booking["id"])
        assert cancelled["status"] == "cancelled"
        assert get_booking(db, booking["id"])["status"] == "cancelled"
        assert db["booking"].count_documents({}) == 1

    def test_update_does_not_overwrite_concurrent_change(self, db, make_booking, monkeypatch):
        booking = _create(db, make_booking)
        stale = db["booking"].find_one({})
        cancel_booking(db, booking["id"])
        monkeypatch.setattr("bookings._find_booking", lambda *_: stale)

        with pytest.raises(HTTPException) as exc:
            update_booking_status(db, booking["id"], "confirmed")
        assert exc.value.status_code == 400
        assert "no longer pending" in exc.value.detail
        assert db["booking"].find_one({})["status"] == "cancelled"


class TestAvailability:

    def test_overlap_then_cancel_frees_range(self, db, make_booking):
        booking = _create(db, make_booking, checkIn="2024-06-01", checkOut="2024-06-05")
        result = check_availability(db, "standard", "2024-06-03", "2024-06-07")
        assert result == {"available": False, "existingBookings": 1}

        cancel_booking(db, booking["id"])
        result = check_availability(db, "standard", "2024-06-03", "2024-06-07")
        assert result == {"available": True, "existingBookings": 0}

    def test_other_room_type_does_not_conflict(self, db, make_booking):
        _create(db, make_booking, roomType="suite")
        assert check_availability(db, "standard", "2024-06-01", "2024-06-05")["available"] is True

    def test_disjoint_range_is_available(self, db, make_booking):
        _create(db, make_booking)
        assert check_availability(db, "standard", "2024-06-10", "2024-06-12")["available"] is True

    def test_touching_endpoints_count_as_overlap(self, db, make_booking):
        _create(db, make_booking, checkIn="2024-06-01", checkOut="2024-06-05")
        result = check_availability(db, "standard", "2024-06-05", "2024-06-08")
        assert result == {"available": False, "existingBookings": 1}

    def test_counts_every_conflict(self, db, make_booking):
        _create(db, make_booking)
        _create(db, make_booking, checkIn="2024-06-02", checkOut="2024-06-04")
        confirmed = _create(db, make_booking, checkIn="2024-06-03", checkOut="2024-06-09")
        update_booking_status(db, confirmed["id"], "confirmed")
        assert check_availability(db, "standard", "2024-06-01", "2024-06-10")["existingBookings"] == 3

    def test_same_day_query_inside_stay_conflicts(self, db, make_booking):
        _create(db, make_booking, checkIn="2024-06-01", checkOut="2024-06-05")
        result = check_availability(db, "standard", "2024-06-03", "2024-06-03")
        assert result == {"available": False, "existingBookings": 1}

    def test_reversed_range_is_400(self, db):
        with pytest.raises(HTTPException) as exc:
            check_availability(db, "standard", "2024-06-05", "2024-06-01")
        assert exc.value.status_code == 400

    @pytest.mark.parametrize("room_type,check_in,check_out", [
        ("standard", "garbage", "2024-06-05"),
        ("standard", None, "2024-06-05"),
        ("penthouse", "2024-06-01", "2024-06-05"),
    ])
    def test_bad_queries_are_400(self, db, room_type, check_in, check_out):
        with pytest.raises(HTTPException) as exc:
            check_availability(db, room_type, check_in, check_out)
        assert exc.value.status_code == 400

    def test_filter_shape(self):
        q = availability_filter("deluxe", date(2024, 6, 1), date(2024, 6, 5))
        assert q["roomType"] == "deluxe"
        assert q["status"] == {"$nin": ["cancelled"]}
        assert q["checkIn"] == {"$lte": datetime(2024, 6, 5)}
        assert q["checkOut"] == {"$gte": datetime(2024, 6, 1)}
