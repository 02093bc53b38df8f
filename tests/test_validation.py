from datetime import datetime, timedelta, timezone

import pytest

from models import Booking, BookingStatus
from validation import (
    BookingPatch,
    Invalid,
    Valid,
    can_transition,
    check_transition,
    validate_new_booking,
    validate_patch,
)

UTC = timezone.utc
T = datetime(2024, 1, 1, 10, tzinfo=UTC)
HOUR = timedelta(hours=1)


def make_booking(status=BookingStatus.PENDING):
    return Booking(booking_id="bkg_1", room_id="1", user_id="1", start_utc=T, end_utc=T + HOUR, status=status)


def test_new_booking_valid_normalises_to_utc():
    plus_two = timezone(timedelta(hours=2))
    result = validate_new_booking("1", T.astimezone(plus_two), (T + HOUR).astimezone(plus_two))
    assert isinstance(result, Valid)
    assert result.value.start_utc.utcoffset() == timedelta(0)
    assert result.value.start_utc == T


def test_new_booking_collects_every_error():
    result = validate_new_booking("", T + HOUR, T, BookingStatus.COMPLETED)
    assert isinstance(result, Invalid)
    assert [e.field for e in result.errors] == ["room_id", "start_time", "status"]


def test_new_booking_rejects_naive_times():
    result = validate_new_booking("1", datetime(2024, 1, 1, 10), T + HOUR)
    assert isinstance(result, Invalid)
    assert result.errors[0].field == "start_time"


@pytest.mark.parametrize(
    "current,target,allowed",
    [
        (BookingStatus.PENDING, BookingStatus.CONFIRMED, True),
        (BookingStatus.PENDING, BookingStatus.CANCELLED, True),
        (BookingStatus.CONFIRMED, BookingStatus.CANCELLED, True),
        (BookingStatus.CONFIRMED, BookingStatus.COMPLETED, True),
        (BookingStatus.PENDING, BookingStatus.COMPLETED, False),
        (BookingStatus.CONFIRMED, BookingStatus.PENDING, False),
        (BookingStatus.CANCELLED, BookingStatus.PENDING, False),
        (BookingStatus.CANCELLED, BookingStatus.CONFIRMED, False),
        (BookingStatus.COMPLETED, BookingStatus.CANCELLED, False),
        (BookingStatus.CANCELLED, BookingStatus.CANCELLED, True),
    ],
)
def test_transitions(current, target, allowed):
    assert can_transition(current, target) is allowed
    assert (check_transition(current, target) is None) is allowed


def test_empty_patch_is_invalid():
    result = validate_patch(make_booking(), BookingPatch())
    assert isinstance(result, Invalid)
    assert result.errors[0].field == "body"


def test_patch_checks_merged_range():
    result = validate_patch(make_booking(), BookingPatch(start_utc=T + 2 * HOUR))
    assert isinstance(result, Invalid)
    assert result.errors[0].message == "start must be before end"


def test_patch_extending_end_is_valid():
    result = validate_patch(make_booking(), BookingPatch(end_utc=T + 2 * HOUR))
    assert isinstance(result, Valid)
    assert result.value.end_utc == T + 2 * HOUR


def test_patch_on_terminal_booking_is_rejected():
    result = validate_patch(make_booking(BookingStatus.CANCELLED), BookingPatch(purpose="again"))
    assert isinstance(result, Invalid)


def test_noop_status_patch_on_terminal_booking_is_allowed():
    booking = make_booking(BookingStatus.CANCELLED)
    result = validate_patch(booking, BookingPatch(status=BookingStatus.CANCELLED))
    assert isinstance(result, Valid)


def test_blank_room_in_patch_is_rejected():
    result = validate_patch(make_booking(), BookingPatch(room_id="  "))
    assert isinstance(result, Invalid)
    assert result.errors[0].field == "room_id"
