from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, List, Optional, Protocol

from errors import BookingNotFoundError, DuplicateBookingError
from models import Booking, BookingStatus, Interval, intervals_overlap, parse_iso8601_tz, utc_now

logger = logging.getLogger(__name__)

# Fields a caller may change through update(); id, owner and audit stamps are fixed.
MUTABLE_FIELDS = frozenset({"room_id", "start_utc", "end_utc", "status", "purpose"})


class BookingRepository(Protocol):
    def insert(self, booking: Booking) -> Booking: ...

    def update(self, booking_id: str, **changes) -> Booking: ...

    def get(self, booking_id: str) -> Optional[Booking]: ...

    def find_by_room(self, room_id: str, window: Interval) -> List[Booking]: ...

    def list_bookings(
        self,
        room_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
    ) -> List[Booking]: ...


def _check_changes(changes: dict) -> None:
    unknown = set(changes) - MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"cannot update booking fields: {', '.join(sorted(unknown))}")


class InMemoryBookingRepository:
    def __init__(self) -> None:
        self._items: Dict[str, Booking] = {}
        self._lock = Lock()

    def insert(self, booking: Booking) -> Booking:
        now = utc_now()
        stored = booking.with_changes(created_at=now, updated_at=now)
        with self._lock:
            if booking.booking_id in self._items:
                raise DuplicateBookingError()
            self._items[booking.booking_id] = stored
        return stored

    def update(self, booking_id: str, **changes) -> Booking:
        _check_changes(changes)
        with self._lock:
            current = self._items.get(booking_id)
            if current is None:
                raise BookingNotFoundError()
            updated = current.with_changes(updated_at=utc_now(), **changes)
            self._items[booking_id] = updated
            return updated

    def get(self, booking_id: str) -> Optional[Booking]:
        with self._lock:
            return self._items.get(booking_id)

    def find_by_room(self, room_id: str, window: Interval) -> List[Booking]:
        with self._lock:
            items = [
                b
                for b in self._items.values()
                if b.room_id == room_id
                and b.is_active
                and intervals_overlap(b.start_utc, b.end_utc, window.start, window.end)
            ]
        items.sort(key=lambda b: b.start_utc)
        return items

    def list_bookings(
        self,
        room_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
    ) -> List[Booking]:
        with self._lock:
            items = list(self._items.values())
        items = [
            b
            for b in items
            if (room_id is None or b.room_id == room_id)
            and (user_id is None or b.user_id == user_id)
            and (status is None or b.status == status)
        ]
        items.sort(key=lambda b: b.start_utc)
        return items

    def reset(self) -> None:
        """Clear all bookings. For testing only."""
        with self._lock:
            self._items.clear()


# -----------------------------
# SQLite backend
# -----------------------------
def _ts(dt: datetime) -> str:
    # Fixed-width UTC text (isoformat pads the year to four digits) so lexical
    # order matches time order in SQL comparisons.
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _row_to_booking(row: sqlite3.Row) -> Booking:
    return Booking(
        booking_id=row["id"],
        room_id=row["room_id"],
        user_id=row["user_id"],
        start_utc=parse_iso8601_tz(row["start_time"]),
        end_utc=parse_iso8601_tz(row["end_time"]),
        status=BookingStatus(row["status"]),
        purpose=row["purpose"],
        created_at=parse_iso8601_tz(row["created_at"]),
        updated_at=parse_iso8601_tz(row["updated_at"]),
    )


_COLUMNS = {
    "room_id": "room_id",
    "start_utc": "start_time",
    "end_utc": "end_time",
    "status": "status",
    "purpose": "purpose",
}


class SqliteBookingRepository:
    """Durable booking store backed by a single SQLite file."""

    def __init__(self, db_path: str) -> None:
        """
        Args:
            db_path: Path to SQLite file, or ":memory:" for a throwaway database.
        """
        self.db_path = db_path
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._lock = Lock()

    def init_schema(self) -> None:
        """Create tables if they don't exist."""
        with self._lock:
            self.conn.executescript("""
                CREATE TABLE IF NOT EXISTS bookings (
                    id TEXT PRIMARY KEY,
                    room_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    start_time TEXT NOT NULL,
                    end_time TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending'
                        CHECK(status IN ('pending', 'confirmed', 'cancelled', 'completed')),
                    purpose TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    CHECK(start_time < end_time)
                );
                CREATE INDEX IF NOT EXISTS idx_booking_room_time
                    ON bookings(room_id, start_time, end_time);
            """)
            self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    def insert(self, booking: Booking) -> Booking:
        now = utc_now()
        stored = booking.with_changes(created_at=now, updated_at=now)
        with self._lock:
            try:
                self.conn.execute(
                    "INSERT INTO bookings (id, room_id, user_id, start_time, end_time, status, "
                    "purpose, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        stored.booking_id,
                        stored.room_id,
                        stored.user_id,
                        _ts(stored.start_utc),
                        _ts(stored.end_utc),
                        stored.status.value,
                        stored.purpose,
                        _ts(now),
                        _ts(now),
                    ),
                )
                self.conn.commit()
            except sqlite3.IntegrityError as exc:
                self.conn.rollback()
                if "UNIQUE" in str(exc) or "PRIMARY KEY" in str(exc):
                    raise DuplicateBookingError() from exc
                raise
        return stored

    def update(self, booking_id: str, **changes) -> Booking:
        _check_changes(changes)
        assignments = []
        params: list = []
        for name, value in changes.items():
            assignments.append(f"{_COLUMNS[name]} = ?")
            if name in ("start_utc", "end_utc"):
                params.append(_ts(value))
            elif name == "status":
                params.append(BookingStatus(value).value)
            else:
                params.append(value)
        assignments.append("updated_at = ?")
        params.append(_ts(utc_now()))
        params.append(booking_id)

        with self._lock:
            cursor = self.conn.execute(
                f"UPDATE bookings SET {', '.join(assignments)} WHERE id = ?", params
            )
            self.conn.commit()
            if cursor.rowcount == 0:
                raise BookingNotFoundError()
            row = self.conn.execute("SELECT * FROM bookings WHERE id = ?", (booking_id,)).fetchone()
        return _row_to_booking(row)

    def get(self, booking_id: str) -> Optional[Booking]:
        with self._lock:
            row = self.conn.execute("SELECT * FROM bookings WHERE id = ?", (booking_id,)).fetchone()
        return _row_to_booking(row) if row is not None else None

    def find_by_room(self, room_id: str, window: Interval) -> List[Booking]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM bookings WHERE room_id = ? AND status != 'cancelled' "
                "AND start_time < ? AND end_time > ? ORDER BY start_time",
                (room_id, _ts(window.end), _ts(window.start)),
            ).fetchall()
        return [_row_to_booking(row) for row in rows]

    def list_bookings(
        self,
        room_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
    ) -> List[Booking]:
        clauses = []
        params: list = []
        if room_id is not None:
            clauses.append("room_id = ?")
            params.append(room_id)
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(user_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(BookingStatus(status).value)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._lock:
            rows = self.conn.execute(
                f"SELECT * FROM bookings{where} ORDER BY start_time", params
            ).fetchall()
        return [_row_to_booking(row) for row in rows]

    def reset(self) -> None:
        """Clear all bookings. For testing only."""
        with self._lock:
            self.conn.execute("DELETE FROM bookings")
            self.conn.commit()


def create_repository(db_path: Optional[str] = None) -> BookingRepository:
    if not db_path:
        logger.info("Using in-memory booking store")
        return InMemoryBookingRepository()
    logger.info("Using SQLite booking store at %s", db_path)
    repo = SqliteBookingRepository(db_path)
    repo.init_schema()
    return repo
