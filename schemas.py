"""
Database Schemas for the hotel booking service

Each Pydantic model maps to a MongoDB collection with the lowercase class name.
- User -> user
- Admin -> admin
- Session -> session
- Booking -> booking

Documents are stored with the same camelCase field names the API exposes.
"""
from datetime import date, datetime
from typing import Any, Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

RoomType = Literal["standard", "deluxe", "suite", "presidential"]
BookingStatus = Literal["pending", "confirmed", "checked-in", "checked-out", "cancelled"]
SessionScope = Literal["user", "admin"]

ROOM_TYPES = get_args(RoomType)
BOOKING_STATUSES = get_args(BookingStatus)


def parse_date(value: Any) -> Any:
    """Coerce ISO strings and datetimes to a calendar date; other values pass through."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            if len(text) == 10:
                return date.fromisoformat(text)
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            raise ValueError(f"Invalid date '{value}'")
    return value


# Users
class User(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(..., min_length=1, description="Unique login name")
    email: EmailStr = Field(..., description="Unique email address")
    password_hash: str = Field(..., alias="passwordHash", description="salt$sha256 digest")


# Staff accounts
class Admin(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(..., min_length=1)
    password_hash: str = Field(..., alias="passwordHash")


# Sessions (tokens)
class Session(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: str
    subject_id: str = Field(..., alias="subjectId")
    scope: SessionScope
    expires_at: datetime = Field(..., alias="expiresAt")


# Booking
class BookingBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    guest_name: str = Field(..., alias="guestName", min_length=1)
    email: EmailStr
    phone_number: str = Field(..., alias="phoneNumber", min_length=1)
    check_in: date = Field(..., alias="checkIn")
    check_out: date = Field(..., alias="checkOut")
    room_type: RoomType = Field(..., alias="roomType")
    number_of_guests: int = Field(..., alias="numberOfGuests", ge=1)
    total_amount: float = Field(..., alias="totalAmount", ge=0)
    special_requests: Optional[str] = Field(None, alias="specialRequests")
    id_proof: Optional[str] = Field(None, alias="idProof")

    @field_validator("check_in", "check_out", mode="before")
    @classmethod
    def _coerce_date(cls, value):
        return parse_date(value)

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("special_requests", "id_proof", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class BookingCreate(BookingBase):
    """Guest submission. Status and timestamps are assigned by the store."""

    @model_validator(mode="after")
    def _check_dates(self):
        if self.check_in >= self.check_out:
            raise ValueError("Check-out date must be after check-in date")
        return self


class Booking(BookingBase):
    id: str
    status: BookingStatus = "pending"
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")
