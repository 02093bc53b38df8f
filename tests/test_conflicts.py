from datetime import datetime, timedelta, timezone

from conflicts import find_conflicts, has_conflict
from models import Booking, BookingStatus, Interval
from repository import InMemoryBookingRepository

UTC = timezone.utc
T = datetime(2024, 1, 1, 10, tzinfo=UTC)
HOUR = timedelta(hours=1)


def seeded_repo():
    repo = InMemoryBookingRepository()
    for booking_id, room_id, start, status in [
        ("a", "5", T, BookingStatus.CONFIRMED),
        ("b", "5", T + 2 * HOUR, BookingStatus.PENDING),
        ("c", "5", T + HOUR, BookingStatus.CANCELLED),
        ("d", "6", T, BookingStatus.CONFIRMED),
    ]:
        repo.insert(
            Booking(booking_id=booking_id, room_id=room_id, user_id="1", start_utc=start, end_utc=start + HOUR, status=status)
        )
    return repo


def test_overlap_detected():
    repo = seeded_repo()
    assert has_conflict(repo, "5", Interval(T + HOUR / 2, T + HOUR + HOUR / 2))


def test_cancelled_booking_does_not_conflict():
    repo = seeded_repo()
    assert not has_conflict(repo, "5", Interval(T + HOUR, T + 2 * HOUR))


def test_other_rooms_are_ignored():
    repo = seeded_repo()
    assert [b.booking_id for b in find_conflicts(repo, "6", Interval(T, T + 3 * HOUR))] == ["d"]


def test_exclude_booking_id():
    repo = seeded_repo()
    assert not has_conflict(repo, "5", Interval(T, T + HOUR / 2), exclude_booking_id="a")
    assert has_conflict(repo, "5", Interval(T, T + 3 * HOUR), exclude_booking_id="a")


def test_find_conflicts_lists_every_overlap():
    repo = seeded_repo()
    found = find_conflicts(repo, "5", Interval(T, T + 3 * HOUR))
    assert [b.booking_id for b in found] == ["a", "b"]
