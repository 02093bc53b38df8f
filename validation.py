"""
Explicit request validation.

Each validator returns either ``Valid(value)`` or ``Invalid(errors)``; callers
branch on the result instead of catching exceptions from rule objects.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Generic, List, Optional, TypeVar, Union

from errors import FieldError
from models import INITIAL_STATUSES, Booking, BookingStatus, to_utc

T = TypeVar("T")


@dataclass(frozen=True)
class Valid(Generic[T]):
    value: T


@dataclass(frozen=True)
class Invalid:
    errors: List[FieldError] = field(default_factory=list)


Result = Union[Valid[T], Invalid]


# Allowed status edges; self-loops are treated as no-ops elsewhere.
TRANSITIONS: Dict[BookingStatus, frozenset] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return current == target or target in TRANSITIONS[current]


def check_transition(current: BookingStatus, target: BookingStatus) -> Optional[FieldError]:
    if can_transition(current, target):
        return None
    return FieldError("status", f"cannot change status from {current.value} to {target.value}")


@dataclass(frozen=True)
class NewBooking:
    room_id: str
    start_utc: datetime
    end_utc: datetime
    status: BookingStatus
    purpose: Optional[str]


@dataclass(frozen=True)
class BookingPatch:
    room_id: Optional[str] = None
    start_utc: Optional[datetime] = None
    end_utc: Optional[datetime] = None
    status: Optional[BookingStatus] = None
    purpose: Optional[str] = None

    def is_empty(self) -> bool:
        return all(
            v is None for v in (self.room_id, self.start_utc, self.end_utc, self.status, self.purpose)
        )

    @property
    def moves_slot(self) -> bool:
        return self.room_id is not None or self.start_utc is not None or self.end_utc is not None


def _check_range(start: datetime, end: datetime) -> List[FieldError]:
    errors = [
        FieldError(name, "timestamp must include a timezone offset")
        for name, value in (("start_time", start), ("end_time", end))
        if value.tzinfo is None or value.utcoffset() is None
    ]
    if not errors and not (start < end):
        errors.append(FieldError("start_time", "start must be before end"))
    return errors


def validate_new_booking(
    room_id: str,
    start: datetime,
    end: datetime,
    status: BookingStatus = BookingStatus.PENDING,
    purpose: Optional[str] = None,
) -> Result[NewBooking]:
    errors: List[FieldError] = []

    if not room_id or not str(room_id).strip():
        errors.append(FieldError("room_id", "room_id is required"))

    errors.extend(_check_range(start, end))

    if status not in INITIAL_STATUSES:
        errors.append(FieldError("status", "a new booking must be pending or confirmed"))

    if errors:
        return Invalid(errors)

    return Valid(
        NewBooking(
            room_id=str(room_id),
            start_utc=to_utc(start),
            end_utc=to_utc(end),
            status=status,
            purpose=purpose,
        )
    )


def validate_patch(booking: Booking, patch: BookingPatch) -> Result[BookingPatch]:
    """Check a patch against the booking it will be applied to.

    On success the returned patch has its instants normalised to UTC.
    """
    if patch.is_empty():
        return Invalid([FieldError("body", "at least one field must be provided")])

    errors: List[FieldError] = []

    if booking.status.is_terminal:
        changes_something = (
            patch.moves_slot
            or patch.purpose is not None
            or (patch.status is not None and patch.status != booking.status)
        )
        if changes_something:
            errors.append(
                FieldError("status", f"a {booking.status.value} booking can no longer be changed")
            )
            return Invalid(errors)

    if patch.room_id is not None and not patch.room_id.strip():
        errors.append(FieldError("room_id", "room_id must not be blank"))

    start = patch.start_utc if patch.start_utc is not None else booking.start_utc
    end = patch.end_utc if patch.end_utc is not None else booking.end_utc
    errors.extend(_check_range(start, end))

    if patch.status is not None:
        transition_error = check_transition(booking.status, patch.status)
        if transition_error is not None:
            errors.append(transition_error)

    if errors:
        return Invalid(errors)

    return Valid(
        BookingPatch(
            room_id=patch.room_id,
            start_utc=to_utc(patch.start_utc) if patch.start_utc is not None else None,
            end_utc=to_utc(patch.end_utc) if patch.end_utc is not None else None,
            status=patch.status,
            purpose=patch.purpose,
        )
    )
