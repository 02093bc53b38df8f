from __future__ import annotations

import logging
from contextlib import contextmanager
from threading import Lock
from typing import Hashable, Iterator, List
from weakref import WeakValueDictionary

from errors import LockTimeoutError

logger = logging.getLogger(__name__)


class RoomLocks:
    """Registry of per-room mutexes.

    Holding a room's lock is what makes "check for conflicts, then write"
    atomic for that room. Rooms never block each other.
    """

    def __init__(self, timeout: float = 5.0) -> None:
        self.timeout = timeout
        # An entry lives only while some caller references its lock, so the
        # registry is bounded by the rooms in use, not every id ever seen.
        self._locks: WeakValueDictionary[Hashable, Lock] = WeakValueDictionary()
        self._registry_lock = Lock()

    def _lock_for(self, room_id: Hashable) -> Lock:
        with self._registry_lock:
            lock = self._locks.get(room_id)
            if lock is None:
                lock = self._locks[room_id] = Lock()
            return lock

    @contextmanager
    def hold(self, *room_ids: Hashable, timeout: float | None = None) -> Iterator[None]:
        """Hold the locks of every given room for the duration of the block.

        Locks are taken in sorted order so two callers locking the same pair
        of rooms cannot deadlock. Raises LockTimeoutError if any lock is not
        obtained within ``timeout`` seconds; nothing is held in that case.
        """
        wait = self.timeout if timeout is None else timeout
        acquired: List[Lock] = []
        try:
            for room_id in sorted(set(room_ids), key=str):
                lock = self._lock_for(room_id)
                if not lock.acquire(timeout=wait):
                    logger.warning("Timed out after %.2fs waiting for lock on room %s", wait, room_id)
                    raise LockTimeoutError()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
