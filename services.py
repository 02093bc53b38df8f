from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional
from uuid import uuid4

from conflicts import find_conflicts
from errors import (
    BookingNotFoundError,
    ConflictError,
    ForbiddenError,
    OverlapConflictError,
    ValidationError,
)
from identity import RequestContext
from locks import RoomLocks
from models import Booking, BookingStatus, Interval
from repository import BookingRepository
from rooms import RoomDirectory
from validation import BookingPatch, Invalid, check_transition, validate_new_booking, validate_patch

logger = logging.getLogger(__name__)

# Re-planning bound for a write whose booking moves rooms while we wait for a lock.
MAX_LOCK_ATTEMPTS = 3


def new_booking_id() -> str:
    return f"bkg_{uuid4().hex}"


class ReservationService:
    """Owns every write to the booking store.

    Conflict checks and the writes they guard run under the room's lock;
    calls to the room directory happen before the lock is taken.
    """

    def __init__(
        self,
        repo: BookingRepository,
        rooms: RoomDirectory,
        locks: Optional[RoomLocks] = None,
        id_factory: Callable[[], str] = new_booking_id,
    ) -> None:
        self._repo = repo
        self._rooms = rooms
        self._locks = locks or RoomLocks()
        self._new_id = id_factory

    # -----------------------------
    # Writes
    # -----------------------------
    def create_booking(
        self,
        ctx: RequestContext,
        room_id: str,
        start: datetime,
        end: datetime,
        purpose: Optional[str] = None,
        status: BookingStatus = BookingStatus.PENDING,
    ) -> Booking:
        result = validate_new_booking(room_id, start, end, status, purpose)
        if isinstance(result, Invalid):
            logger.info("request_id=%s create rejected: %s", ctx.request_id, _describe(result))
            raise ValidationError(result.errors)
        new = result.value

        self._rooms.get_room(new.room_id, token=ctx.identity.token)

        candidate = Interval(new.start_utc, new.end_utc)
        with self._locks.hold(new.room_id):
            self._ensure_free(ctx, new.room_id, candidate)
            booking = self._repo.insert(
                Booking(
                    booking_id=self._new_id(),
                    room_id=new.room_id,
                    user_id=ctx.identity.user_id,
                    start_utc=new.start_utc,
                    end_utc=new.end_utc,
                    status=new.status,
                    purpose=new.purpose,
                )
            )

        logger.info(
            "request_id=%s booking %s created room=%s user=%s status=%s",
            ctx.request_id,
            booking.booking_id,
            booking.room_id,
            booking.user_id,
            booking.status.value,
        )
        return booking

    def update_booking(self, ctx: RequestContext, booking_id: str, patch: BookingPatch) -> Booking:
        current = self._get_owned(ctx, booking_id)

        # Fail fast on obviously bad input before any downstream call.
        precheck = validate_patch(current, patch)
        if isinstance(precheck, Invalid):
            logger.info("request_id=%s update of %s rejected: %s", ctx.request_id, booking_id, _describe(precheck))
            raise ValidationError(precheck.errors)

        if patch.room_id is not None and patch.room_id != current.room_id:
            self._rooms.get_room(patch.room_id, token=ctx.identity.token)

        for _ in range(MAX_LOCK_ATTEMPTS):
            rooms = {current.room_id}
            if patch.room_id is not None:
                rooms.add(patch.room_id)

            with self._locks.hold(*rooms):
                fresh = self._repo.get(booking_id)
                if fresh is None:
                    raise BookingNotFoundError()
                if fresh.room_id not in rooms:
                    # Moved by a concurrent update; lock the room it is in now.
                    current = fresh
                    continue
                updated = self._apply_patch(ctx, fresh, patch)
            break
        else:
            raise ConflictError("Booking was moved concurrently; try again.")

        logger.info(
            "request_id=%s booking %s updated room=%s status=%s",
            ctx.request_id,
            updated.booking_id,
            updated.room_id,
            updated.status.value,
        )
        return updated

    def cancel_booking(self, ctx: RequestContext, booking_id: str) -> Booking:
        current = self._get_owned(ctx, booking_id)
        if current.status == BookingStatus.CANCELLED:
            return current

        for _ in range(MAX_LOCK_ATTEMPTS):
            with self._locks.hold(current.room_id):
                fresh = self._repo.get(booking_id)
                if fresh is None:
                    raise BookingNotFoundError()
                if fresh.room_id != current.room_id:
                    current = fresh
                    continue
                if fresh.status == BookingStatus.CANCELLED:
                    return fresh
                transition_error = check_transition(fresh.status, BookingStatus.CANCELLED)
                if transition_error is not None:
                    raise ValidationError([transition_error])
                cancelled = self._repo.update(booking_id, status=BookingStatus.CANCELLED)
            break
        else:
            raise ConflictError("Booking was moved concurrently; try again.")

        logger.info("request_id=%s booking %s cancelled room=%s", ctx.request_id, booking_id, cancelled.room_id)
        return cancelled

    # -----------------------------
    # Reads
    # -----------------------------
    def get_booking(self, ctx: RequestContext, booking_id: str) -> Booking:
        booking = self._repo.get(booking_id)
        if booking is None:
            raise BookingNotFoundError()
        return booking

    def list_bookings(
        self,
        ctx: RequestContext,
        room_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
    ) -> List[Booking]:
        return self._repo.list_bookings(room_id=room_id, user_id=user_id, status=status)

    def list_bookings_for_room(self, ctx: RequestContext, room_id: str) -> List[Booking]:
        return [b for b in self._repo.list_bookings(room_id=room_id) if b.is_active]

    # -----------------------------
    # Helpers
    # -----------------------------
    def _get_owned(self, ctx: RequestContext, booking_id: str) -> Booking:
        booking = self._repo.get(booking_id)
        if booking is None:
            raise BookingNotFoundError()
        identity = ctx.identity
        if not identity.is_admin and booking.user_id != identity.user_id:
            logger.info(
                "request_id=%s user %s denied access to booking %s",
                ctx.request_id,
                identity.user_id,
                booking_id,
            )
            raise ForbiddenError()
        return booking

    def _ensure_free(
        self,
        ctx: RequestContext,
        room_id: str,
        candidate: Interval,
        exclude_booking_id: Optional[str] = None,
    ) -> None:
        conflicts = find_conflicts(self._repo, room_id, candidate, exclude_booking_id)
        if conflicts:
            ids = [b.booking_id for b in conflicts]
            logger.info(
                "request_id=%s conflict in room %s with %s", ctx.request_id, room_id, ", ".join(ids)
            )
            raise OverlapConflictError(ids)

    def _apply_patch(self, ctx: RequestContext, booking: Booking, patch: BookingPatch) -> Booking:
        # Must be called with the booking's current and target rooms locked.
        result = validate_patch(booking, patch)
        if isinstance(result, Invalid):
            raise ValidationError(result.errors)
        p = result.value

        changes = {}
        for name in ("room_id", "start_utc", "end_utc", "status", "purpose"):
            value = getattr(p, name)
            if value is not None and value != getattr(booking, name):
                changes[name] = value
        if not changes:
            return booking

        target = booking.with_changes(**changes)
        slot_changed = any(k in changes for k in ("room_id", "start_utc", "end_utc"))
        if target.is_active and slot_changed:
            self._ensure_free(ctx, target.room_id, target.interval, exclude_booking_id=booking.booking_id)

        return self._repo.update(booking.booking_id, **changes)


def _describe(result: Invalid) -> str:
    return "; ".join(f"{e.field}: {e.message}" for e in result.errors)
