"""
Booking store, availability checker and status lifecycle.

All functions take the MongoDB database as their first argument and raise
HTTPException for anything the caller should see as a 4xx.
"""
import logging
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from pymongo import ReturnDocument
from pymongo.database import Database

from database import create_document, get_documents, utcnow
from schemas import BOOKING_STATUSES, ROOM_TYPES, Booking, BookingCreate, parse_date

logger = logging.getLogger(__name__)

COLLECTION = "booking"

# Forward-only lifecycle; cancelled and checked-out are terminal.
VALID_TRANSITIONS = {
    "pending": ("confirmed", "cancelled"),
    "confirmed": ("checked-in", "cancelled"),
    "checked-in": ("checked-out", "cancelled"),
    "checked-out": (),
    "cancelled": (),
}


def to_object_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid identifier")


def to_datetime(value: date) -> datetime:
    return datetime.combine(value, time.min)


def booking_out(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Serialize a stored booking document to its JSON shape."""
    doc = {**doc}
    doc["id"] = str(doc.pop("_id"))
    return Booking.model_validate(doc).model_dump(by_alias=True, mode="json")


def validate_status_transition(current: str, target: str, enforce: bool = True) -> None:
    """Raise 400 if ``target`` is unknown or, when enforcing, not reachable from ``current``.

    Setting the current status again is always allowed.
    """
    if target not in BOOKING_STATUSES:
        raise HTTPException(status_code=400, detail=f"status: invalid enum value '{target}'")
    if not enforce or current == target:
        return
    if target not in VALID_TRANSITIONS.get(current, ()):
        raise HTTPException(status_code=400, detail=f"Cannot change status from {current} to {target}")


# Store operations

def create_booking(db: Database, body: BookingCreate) -> Dict[str, Any]:
    doc = body.model_dump(by_alias=True)
    doc["checkIn"] = to_datetime(body.check_in)
    doc["checkOut"] = to_datetime(body.check_out)
    doc["status"] = "pending"
    doc = create_document(db, COLLECTION, doc)
    logger.info(
        f"Booking created: {doc['_id']}, roomType={body.room_type}, "
        f"checkIn={body.check_in}, checkOut={body.check_out}"
    )
    return booking_out(doc)


def list_bookings(db: Database, email: Optional[str] = None) -> List[Dict[str, Any]]:
    q: Dict[str, Any] = {}
    if email:
        q["email"] = email.lower()
    return [booking_out(d) for d in get_documents(db, COLLECTION, q)]


def _find_booking(db: Database, booking_id: str) -> Dict[str, Any]:
    doc = db[COLLECTION].find_one({"_id": to_object_id(booking_id)})
    if not doc:
        raise HTTPException(status_code=404, detail="Booking not found")
    return doc


def get_booking(db: Database, booking_id: str) -> Dict[str, Any]:
    return booking_out(_find_booking(db, booking_id))


def update_booking_status(db: Database, booking_id: str, status: str, enforce: bool = True) -> Dict[str, Any]:
    doc = _find_booking(db, booking_id)
    current = doc.get("status", "pending")
    validate_status_transition(current, status, enforce=enforce)
    if current == status:
        return booking_out(doc)
    # Conditional on the status we validated against
    updated = db[COLLECTION].find_one_and_update(
        {"_id": doc["_id"], "status": current},
        {"$set": {"status": status, "updatedAt": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        if not db[COLLECTION].find_one({"_id": doc["_id"]}, {"_id": 1}):
            raise HTTPException(status_code=404, detail="Booking not found")
        raise HTTPException(status_code=400, detail=f"Booking status is no longer {current}, reload and retry")
    logger.info(f"Booking {booking_id} status changed: {current} -> {status}")
    return booking_out(updated)


def cancel_booking(db: Database, booking_id: str, enforce: bool = True) -> Dict[str, Any]:
    return update_booking_status(db, booking_id, "cancelled", enforce=enforce)


# Availability

def availability_filter(room_type: str, check_in: date, check_out: date) -> Dict[str, Any]:
    """Non-cancelled bookings of ``room_type`` whose stay overlaps [check_in, check_out]."""
    return {
        "roomType": room_type,
        "status": {"$nin": ["cancelled"]},
        "checkIn": {"$lte": to_datetime(check_out)},
        "checkOut": {"$gte": to_datetime(check_in)},
    }


def check_availability(db: Database, room_type: str, check_in: Any, check_out: Any) -> Dict[str, Any]:
    """Return ``{"available": bool, "existingBookings": conflict_count}``.

    There is no notion of how many rooms of a type exist: any overlapping,
    non-cancelled booking makes the type unavailable for the range.
    """
    if room_type not in ROOM_TYPES:
        raise HTTPException(status_code=400, detail=f"roomType: invalid enum value '{room_type}'")
    try:
        start = parse_date(check_in)
        end = parse_date(check_out)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not isinstance(start, date) or not isinstance(end, date):
        raise HTTPException(status_code=400, detail="checkIn and checkOut are required dates")
    if start > end:
        raise HTTPException(status_code=400, detail="checkOut must not be before checkIn")

    conflicts = db[COLLECTION].count_documents(availability_filter(room_type, start, end))
    logger.info(f"Availability {room_type} {start}->{end}: {conflicts} conflicting bookings")
    return {"available": conflicts == 0, "existingBookings": conflicts}
