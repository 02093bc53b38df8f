from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


# -----------------------------
# Shared time helpers
# -----------------------------
def parse_iso8601_tz(ts: str) -> datetime:
    """
    Parse ISO-8601 timestamp with timezone into an aware datetime.
    Accepts 'Z' suffix by converting it to '+00:00'.
    """
    if not isinstance(ts, str) or not ts.strip():
        raise ValueError("timestamp must be a non-empty string")

    s = ts.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)  # expects offset like +02:00 or +00:00
    if dt.tzinfo is None or dt.utcoffset() is None:
        raise ValueError("timestamp must include a timezone offset")
    return dt


def to_utc(dt: datetime) -> datetime:
    # dt is aware
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_iso_z(dt: datetime) -> str:
    return to_utc(dt).isoformat().replace("+00:00", "Z")


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """
    Half-open interval overlap: [start, end)
    Overlap iff a_start < b_end AND b_start < a_end.
    Back-to-back is allowed (end == other.start is NOT overlap).
    """
    return a_start < b_end and b_start < a_end


# -----------------------------
# Interval model
# -----------------------------
@dataclass(frozen=True)
class Interval:
    """Half-open time range [start, end) between two aware instants."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("interval bounds must be timezone-aware")
        if not (self.start < self.end):
            raise ValueError("interval start must be before end")

    def overlaps(self, other: Interval) -> bool:
        return intervals_overlap(self.start, self.end, other.start, other.end)


# -----------------------------
# Domain model
# -----------------------------
class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self in (BookingStatus.CANCELLED, BookingStatus.COMPLETED)

    @property
    def is_active(self) -> bool:
        # Only cancellation frees the slot; completed bookings still occupy their range.
        return self is not BookingStatus.CANCELLED


INITIAL_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})


@dataclass(frozen=True)
class Booking:
    booking_id: str
    room_id: str
    user_id: str
    start_utc: datetime  # aware, UTC
    end_utc: datetime    # aware, UTC
    status: BookingStatus = BookingStatus.PENDING
    purpose: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def interval(self) -> Interval:
        return Interval(self.start_utc, self.end_utc)

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    def with_changes(self, **changes) -> Booking:
        return replace(self, **changes)


# -----------------------------
# API models (transport layer)
# -----------------------------
class CreateBookingIn(BaseModel):
    room_id: str = Field(..., min_length=1)
    start_time: str
    end_time: str
    purpose: Optional[str] = Field(None, max_length=2000)
    status: BookingStatus = BookingStatus.PENDING

    @field_validator("start_time", "end_time")
    @classmethod
    def must_be_iso8601_with_tz(cls, v: str) -> str:
        # Validate format + timezone presence early; ordering is checked by the service.
        parse_iso8601_tz(v)
        return v


class UpdateBookingIn(BaseModel):
    room_id: Optional[str] = Field(None, min_length=1)
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    purpose: Optional[str] = Field(None, max_length=2000)
    status: Optional[BookingStatus] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def must_be_iso8601_with_tz(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            parse_iso8601_tz(v)
        return v


class BookingOut(BaseModel):
    booking_id: str
    room_id: str
    user_id: str
    start_time: str  # ISO-8601, returned as UTC with Z
    end_time: str
    purpose: Optional[str] = None
    status: BookingStatus
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_booking(cls, b: Booking) -> BookingOut:
        return cls(
            booking_id=b.booking_id,
            room_id=b.room_id,
            user_id=b.user_id,
            start_time=utc_iso_z(b.start_utc),
            end_time=utc_iso_z(b.end_utc),
            purpose=b.purpose,
            status=b.status,
            created_at=utc_iso_z(b.created_at) if b.created_at else None,
            updated_at=utc_iso_z(b.updated_at) if b.updated_at else None,
        )
