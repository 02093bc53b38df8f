from __future__ import annotations

from typing import List, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from errors import (
    AuthenticationError,
    BookingError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ServiceUnavailableError,
    ValidationError,
)
from identity import IdentityResolver, RequestContext
from models import BookingOut, BookingStatus, CreateBookingIn, UpdateBookingIn, parse_iso8601_tz
from services import ReservationService
from validation import BookingPatch

bearer_scheme = HTTPBearer(auto_error=False)


def _http_error(exc: BookingError) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": exc.message, "errors": [e.as_dict() for e in exc.errors]},
        )
    if isinstance(exc, AuthenticationError):
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
            headers={"WWW-Authenticate": "Bearer"},
        )
    if isinstance(exc, ForbiddenError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.message)
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message)
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.message)
    if isinstance(exc, ServiceUnavailableError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error.")


def create_router(service: ReservationService, resolver: IdentityResolver) -> APIRouter:
    router = APIRouter()

    def request_context(
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    ) -> RequestContext:
        if credentials is None or not credentials.credentials:
            raise _http_error(AuthenticationError("Bearer token is missing."))
        try:
            identity = resolver.resolve(credentials.credentials)
        except BookingError as exc:
            raise _http_error(exc) from exc
        request_id = getattr(request.state, "request_id", None) or uuid4().hex
        return RequestContext(identity=identity, request_id=request_id)

    @router.post("/bookings", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
    def create_booking(payload: CreateBookingIn, ctx: RequestContext = Depends(request_context)) -> BookingOut:
        try:
            booking = service.create_booking(
                ctx,
                room_id=payload.room_id,
                start=parse_iso8601_tz(payload.start_time),
                end=parse_iso8601_tz(payload.end_time),
                purpose=payload.purpose,
                status=payload.status,
            )
        except BookingError as exc:
            raise _http_error(exc) from exc
        return BookingOut.from_booking(booking)

    @router.get("/bookings", response_model=List[BookingOut])
    def list_bookings(
        room_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status_filter: Optional[BookingStatus] = Query(None, alias="status"),
        ctx: RequestContext = Depends(request_context),
    ) -> List[BookingOut]:
        items = service.list_bookings(ctx, room_id=room_id, user_id=user_id, status=status_filter)
        return [BookingOut.from_booking(b) for b in items]

    @router.get("/bookings/{booking_id}", response_model=BookingOut)
    def get_booking(
        booking_id: str = Path(..., min_length=1),
        ctx: RequestContext = Depends(request_context),
    ) -> BookingOut:
        try:
            return BookingOut.from_booking(service.get_booking(ctx, booking_id))
        except BookingError as exc:
            raise _http_error(exc) from exc

    @router.api_route("/bookings/{booking_id}", methods=["PATCH", "PUT"], response_model=BookingOut)
    def update_booking(
        payload: UpdateBookingIn,
        booking_id: str = Path(..., min_length=1),
        ctx: RequestContext = Depends(request_context),
    ) -> BookingOut:
        patch = BookingPatch(
            room_id=payload.room_id,
            start_utc=parse_iso8601_tz(payload.start_time) if payload.start_time else None,
            end_utc=parse_iso8601_tz(payload.end_time) if payload.end_time else None,
            status=payload.status,
            purpose=payload.purpose,
        )
        try:
            return BookingOut.from_booking(service.update_booking(ctx, booking_id, patch))
        except BookingError as exc:
            raise _http_error(exc) from exc

    @router.delete("/bookings/{booking_id}", response_model=BookingOut)
    def cancel_booking(
        booking_id: str = Path(..., min_length=1),
        ctx: RequestContext = Depends(request_context),
    ) -> BookingOut:
        try:
            return BookingOut.from_booking(service.cancel_booking(ctx, booking_id))
        except BookingError as exc:
            raise _http_error(exc) from exc

    @router.get("/rooms/{room_id}/bookings", response_model=List[BookingOut])
    def list_bookings_for_room(
        room_id: str = Path(..., min_length=1),
        ctx: RequestContext = Depends(request_context),
    ) -> List[BookingOut]:
        return [BookingOut.from_booking(b) for b in service.list_bookings_for_room(ctx, room_id)]

    return router
