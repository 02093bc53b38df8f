from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def as_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


class BookingError(Exception):
    """Base class for domain/service errors."""

    message = "Booking error."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationError(BookingError):
    message = "Validation failed."

    def __init__(self, errors: Sequence[FieldError], message: str | None = None) -> None:
        super().__init__(message)
        self.errors: List[FieldError] = list(errors)


class AuthenticationError(BookingError):
    message = "Could not validate credentials."


class ForbiddenError(BookingError):
    message = "Only the booking owner or an admin may change this booking."


class NotFoundError(BookingError):
    message = "Not found."


class BookingNotFoundError(NotFoundError):
    message = "Booking not found."


class RoomNotFoundError(NotFoundError):
    message = "Room not found."


class ConflictError(BookingError):
    message = "Conflict."


class OverlapConflictError(ConflictError):
    message = "Overlap conflict: booking overlaps an existing booking in this room."

    def __init__(self, conflicting_ids: Sequence[str] = ()) -> None:
        super().__init__()
        self.conflicting_ids = list(conflicting_ids)


class DuplicateBookingError(ConflictError):
    message = "A booking with this id already exists."


class ServiceUnavailableError(BookingError):
    message = "Service temporarily unavailable."


class DownstreamUnavailableError(ServiceUnavailableError):
    message = "A downstream service is unavailable."


class LockTimeoutError(ServiceUnavailableError):
    message = "Timed out waiting for the room to become free for booking changes."
