"""Service for detecting overlapping bookings within a room."""

from __future__ import annotations

from typing import List, Optional

from models import Booking, Interval
from repository import BookingRepository


def find_conflicts(
    repo: BookingRepository,
    room_id: str,
    candidate: Interval,
    exclude_booking_id: Optional[str] = None,
) -> List[Booking]:
    """Return active bookings in ``room_id`` that overlap ``candidate``.

    The store's window query is only a coarse pre-filter; the half-open
    overlap rule is applied here. ``exclude_booking_id`` lets an update
    ignore the booking being moved.
    """
    return [
        b
        for b in repo.find_by_room(room_id, candidate)
        if b.is_active
        and b.booking_id != exclude_booking_id
        and b.interval.overlaps(candidate)
    ]


def has_conflict(
    repo: BookingRepository,
    room_id: str,
    candidate: Interval,
    exclude_booking_id: Optional[str] = None,
) -> bool:
    return bool(find_conflicts(repo, room_id, candidate, exclude_booking_id))
