"""Client for the room directory service.

The directory owns rooms; this service only needs to know a room exists
before it books it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Protocol

import httpx

from errors import DownstreamUnavailableError, RoomNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Room:
    id: str
    capacity: Optional[int] = None
    status: str = "active"


class RoomDirectory(Protocol):
    def get_room(self, room_id: str, token: Optional[str] = None) -> Room: ...


class HttpRoomDirectory:
    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout))

    def get_room(self, room_id: str, token: Optional[str] = None) -> Room:
        url = f"{self.base_url}/api/rooms/{room_id}"
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = self._client.get(url, headers=headers)
        except httpx.TimeoutException as exc:
            logger.warning("Room directory timed out for room %s", room_id)
            raise DownstreamUnavailableError("Room directory timed out.") from exc
        except httpx.HTTPError as exc:
            logger.warning("Room directory request failed for room %s: %s", room_id, exc)
            raise DownstreamUnavailableError("Room directory is unreachable.") from exc

        if response.status_code == 404:
            raise RoomNotFoundError()
        if response.status_code != 200:
            logger.warning(
                "Room directory answered %s for room %s", response.status_code, room_id
            )
            raise DownstreamUnavailableError("Room directory returned an unexpected response.")

        try:
            data = response.json()
            return Room(
                id=str(data["id"]),
                capacity=data.get("capacity"),
                status=data.get("status") or "active",
            )
        except (ValueError, KeyError, TypeError) as exc:
            raise DownstreamUnavailableError("Room directory returned a malformed room.") from exc

    def close(self) -> None:
        self._client.close()


class StaticRoomDirectory:
    """In-process directory for local runs and tests."""

    def __init__(self, rooms: Iterable[Room] = ()) -> None:
        self._rooms: Dict[str, Room] = {r.id: r for r in rooms}

    def add(self, room: Room) -> None:
        self._rooms[room.id] = room

    def get_room(self, room_id: str, token: Optional[str] = None) -> Room:
        room = self._rooms.get(str(room_id))
        if room is None:
            raise RoomNotFoundError()
        return room
