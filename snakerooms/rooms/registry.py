from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field

from snakerooms.common.constants import CONNECTION_ID_LENGTH, DEFAULT_ROOM_ID
from snakerooms.common.types import GameSettings
from snakerooms.rooms.rounds import RoundState

logger = logging.getLogger(__name__)


class RoomNotFound(LookupError):
    """Raised when joining a room that does not exist without create intent."""

    code = "room-not-found"

    def __init__(self, room_id: str) -> None:
        super().__init__(f"Room {room_id!r} does not exist")
        self.room_id = room_id


@dataclass
class Client:
    conn_id: str
    visitor: int
    name: str | None = None
    ready: bool = False
    spectating: bool = False

    @property
    def display_name(self) -> str:
        return (self.name or "").strip() or "Player"


@dataclass
class RoomMeta:
    name: str
    public: bool = True
    created_at: float = field(default_factory=time.time)


@dataclass
class Room:
    room_id: str
    clients: dict[str, Client] = field(default_factory=dict)
    host_id: str | None = None
    settings: GameSettings = field(default_factory=GameSettings)
    seed: int = 0
    round_id: str | None = None
    visitor_counter: int = 0
    visitors: dict[str, int] = field(default_factory=dict)
    meta: RoomMeta | None = None
    round: RoundState = field(default_factory=RoundState)

    def __post_init__(self) -> None:
        if self.meta is None:
            self.meta = RoomMeta(name=self.room_id)

    def assign_visitor(self, client_token: str | None) -> int:
        """Return the visitor number for a client token, minting one if new."""
        if client_token and client_token in self.visitors:
            return self.visitors[client_token]
        self.visitor_counter += 1
        if client_token:
            self.visitors[client_token] = self.visitor_counter
        return self.visitor_counter

    def peers(self, except_id: str | None = None) -> list[str]:
        return [cid for cid in self.clients if cid != except_id]


@dataclass
class JoinResult:
    room: Room
    client: Client
    created: bool
    host_changed: bool


@dataclass
class LeaveResult:
    room_id: str
    room: Room | None
    client: Client
    was_host: bool
    host_changed: bool

    @property
    def room_deleted(self) -> bool:
        return self.room is None


def normalize_room_id(raw: object) -> str:
    return str(raw or "").strip() or DEFAULT_ROOM_ID


def arbitrate_host(room: Room, prefer: str | None = None) -> bool:
    """Make sure a non-empty room has exactly one connected host.

    Returns True when the host changed.
    """
    before = room.host_id
    if prefer is not None and prefer in room.clients:
        room.host_id = prefer
    elif room.host_id is None or room.host_id not in room.clients:
        room.host_id = next(iter(room.clients), None)
    return room.host_id != before


class RoomRegistry:
    """All rooms currently alive in this process."""

    def __init__(self) -> None:
        self.rooms: dict[str, Room] = {}
        self.membership: dict[str, str] = {}

    def new_connection_id(self) -> str:
        while True:
            conn_id = uuid.uuid4().hex[:CONNECTION_ID_LENGTH]
            if conn_id not in self.membership:
                return conn_id

    def get(self, room_id: str) -> Room | None:
        return self.rooms.get(room_id)

    def room_of(self, conn_id: str) -> Room | None:
        room_id = self.membership.get(conn_id)
        if room_id is None:
            return None
        return self.rooms.get(room_id)

    def join(
        self,
        room_id: str,
        conn_id: str,
        client_token: str | None = None,
        create: bool = False,
    ) -> JoinResult:
        room = self.rooms.get(room_id)
        created = False
        if room is None:
            if not create:
                raise RoomNotFound(room_id)
            room = Room(room_id=room_id)
            self.rooms[room_id] = room
            created = True
            logger.info("Room %s created by %s", room_id, conn_id)
        client = Client(conn_id=conn_id, visitor=room.assign_visitor(client_token))
        room.clients[conn_id] = client
        self.membership[conn_id] = room_id
        host_changed = arbitrate_host(room, prefer=conn_id if create else None)
        if host_changed:
            logger.info("Room %s host is now %s", room_id, room.host_id)
        return JoinResult(room=room, client=client, created=created, host_changed=host_changed)

    def leave(self, conn_id: str) -> LeaveResult | None:
        room_id = self.membership.pop(conn_id, None)
        if room_id is None:
            return None
        room = self.rooms.get(room_id)
        if room is None:
            return None
        client = room.clients.pop(conn_id)
        was_host = room.host_id == conn_id
        if was_host:
            room.host_id = None
        if not room.clients:
            del self.rooms[room_id]
            logger.info("Room %s deleted (last client left)", room_id)
            return LeaveResult(room_id, None, client, was_host, host_changed=False)
        host_changed = arbitrate_host(room)
        if host_changed:
            logger.info("Room %s host reassigned to %s", room_id, room.host_id)
        return LeaveResult(room_id, room, client, was_host, host_changed)

    def directory(self) -> list[dict[str, object]]:
        return [
            {"id": rid, "name": room.meta.name if room.meta else rid, "count": len(room.clients)}
            for rid, room in self.rooms.items()
            if room.meta is None or room.meta.public
        ]
