from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Protocol

from snakerooms.api.messages import (
    SERVER_ONLY,
    Error,
    Hello,
    Host,
    Input,
    ListRooms,
    Name,
    NetModel,
    Over,
    Presence,
    Preview,
    Ready,
    Restart,
    RestartAck,
    RoomItem,
    RoomMeta,
    Rooms,
    Results,
    Seed,
    SettingsMessage,
    Spectate,
    Tick,
    Welcome,
    decode,
    encode,
    stamp,
)
from snakerooms.common.constants import ROOM_NAME_MAX_LENGTH
from snakerooms.common.types import RoundPhase
from snakerooms.persist.base import Leaderboard
from snakerooms.rooms.registry import Room, RoomNotFound, RoomRegistry, normalize_room_id
from snakerooms.rooms.rounds import RoundCoordinator, RoundResults

logger = logging.getLogger(__name__)


class Outbox(Protocol):
    def deliver(self, conn_id: str, frame: str) -> None:
        ...


class MessageRelay:
    """Routes inbound frames to the registry and round coordinator.

    Every handler runs to completion without awaiting, so registry mutation
    and the resulting fan-out are atomic with respect to other frames.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        coordinator: RoundCoordinator,
        outbox: Outbox,
        leaderboard: Leaderboard | None = None,
        clock: Callable[[], float] = time.monotonic,
        max_name_length: int = 24,
    ) -> None:
        self.registry = registry
        self.coordinator = coordinator
        self.outbox = outbox
        self.leaderboard = leaderboard
        self.clock = clock
        self.max_name_length = max_name_length
        self._handlers: dict[type, Callable[[str, Room, object], None]] = {
            Name: self._on_name,
            Ready: self._on_ready,
            Spectate: self._on_spectate,
            Preview: self._on_preview,
            Tick: self._on_tick,
            Over: self._on_over,
            Input: self._on_input,
            SettingsMessage: self._on_settings,
            Restart: self._on_restart,
            RoomMeta: self._on_roommeta,
        }

    # Connection lifecycle

    def connect(self) -> str:
        return self.registry.new_connection_id()

    def disconnect(self, conn_id: str) -> None:
        left = self.registry.leave(conn_id)
        if left is None or left.room is None:
            return
        room = left.room
        results = self.coordinator.drop_participant(room, conn_id)
        self.coordinator.settle(room)
        if left.host_changed and room.host_id:
            self._broadcast(room, Host(host_id=room.host_id))
        self._broadcast(room, Over(reason="quit", from_=conn_id))
        self._broadcast(room, Presence(count=len(room.clients)))
        if results is not None:
            self._publish_results(room, results)

    def handle(self, conn_id: str, raw: str | bytes) -> None:
        msg = decode(raw)
        if msg is None:
            logger.debug("Dropped malformed frame from %s", conn_id)
            return
        if isinstance(msg, ListRooms):
            self._send(conn_id, self._directory())
            return
        if isinstance(msg, Hello):
            self._on_hello(conn_id, msg)
            return
        room = self.registry.room_of(conn_id)
        if room is None:
            logger.debug("Dropped %s from %s before hello", msg.type, conn_id)
            return
        if isinstance(msg, SERVER_ONLY):
            logger.debug("Ignored server-only %s from %s", msg.type, conn_id)
            return
        handler = self._handlers.get(type(msg))
        if handler is None:
            return
        handler(conn_id, room, msg)

    def poll(self, now: float | None = None) -> None:
        """Advance countdowns and round timeouts for every room."""
        now = self.clock() if now is None else now
        for room in list(self.registry.rooms.values()):
            results = self.coordinator.poll(room, now)
            if results is not None:
                self._publish_results(room, results)

    # Handlers

    def _on_hello(self, conn_id: str, msg: Hello) -> None:
        if self.registry.room_of(conn_id) is not None:
            logger.debug("Ignored repeated hello from %s", conn_id)
            return
        room_id = normalize_room_id(msg.room)
        try:
            joined = self.registry.join(room_id, conn_id, msg.client_id, create=msg.create)
        except RoomNotFound as exc:
            self._send(conn_id, Error(code=exc.code, message="Room does not exist"))
            return
        room = joined.room
        self.coordinator.settle(room)
        self._send(conn_id, Welcome(id=conn_id, visitor=joined.client.visitor))
        if room.host_id:
            if joined.host_changed:
                self._broadcast(room, Host(host_id=room.host_id))
            else:
                self._send(conn_id, Host(host_id=room.host_id))
        self._broadcast(room, Presence(count=len(room.clients)))
        self._send(conn_id, SettingsMessage(settings=room.settings.to_wire()))
        for peer in room.clients.values():
            if peer.conn_id != conn_id and peer.ready:
                self._send(conn_id, Ready(from_=peer.conn_id))

    def _on_name(self, conn_id: str, room: Room, msg: Name) -> None:
        name = msg.name.strip()[: self.max_name_length]
        if not name:
            return
        room.clients[conn_id].name = name
        self._broadcast(room, Name(name=name, from_=conn_id), except_id=conn_id)

    def _on_ready(self, conn_id: str, room: Room, msg: Ready) -> None:
        if not self.coordinator.mark_ready(room, conn_id):
            logger.debug("Ignored ready from %s in phase %s", conn_id, room.round.phase.value)
            return
        self._broadcast(room, stamp(msg, conn_id), except_id=conn_id)
        if self.coordinator.in_lobby(room) and self.coordinator.all_ready(room):
            self._start_round(room)

    def _on_spectate(self, conn_id: str, room: Room, msg: Spectate) -> None:
        client = room.clients[conn_id]
        client.spectating = msg.on
        if msg.on:
            client.ready = False
        self._broadcast(room, stamp(msg, conn_id), except_id=conn_id)

    def _on_preview(self, conn_id: str, room: Room, msg: Preview) -> None:
        self.coordinator.record_score(room, conn_id, msg.score)
        self._broadcast(room, stamp(msg, conn_id), except_id=conn_id)

    def _on_tick(self, conn_id: str, room: Room, msg: Tick) -> None:
        self.coordinator.record_score(room, conn_id, msg.score)
        self._broadcast(room, stamp(msg, conn_id), except_id=conn_id)

    def _on_over(self, conn_id: str, room: Room, msg: Over) -> None:
        self._broadcast(room, stamp(msg, conn_id), except_id=conn_id)
        results = self.coordinator.record_finish(room, conn_id, msg.score)
        if results is not None:
            self._publish_results(room, results)

    def _on_input(self, conn_id: str, room: Room, msg: Input) -> None:
        self._broadcast(room, stamp(msg, conn_id), except_id=conn_id)

    def _on_settings(self, conn_id: str, room: Room, msg: SettingsMessage) -> None:
        if conn_id != room.host_id:
            logger.warning("Settings change ignored: %s is not host of %s", conn_id, room.room_id)
            return
        if self.coordinator.settings_locked(room):
            logger.debug("Settings change ignored: room %s mid-round", room.room_id)
            return
        room.settings = room.settings.merged(msg.settings)
        self._broadcast(room, SettingsMessage(settings=room.settings.to_wire()))

    def _on_restart(self, conn_id: str, room: Room, msg: Restart) -> None:
        if conn_id != room.host_id:
            logger.warning("Restart ignored: %s is not host of %s", conn_id, room.room_id)
            return
        if room.round.phase == RoundPhase.COUNTDOWN:
            logger.debug("Restart ignored: room %s already counting down", room.room_id)
            return
        round_id = self._start_round(room, announce=True)
        self._send(conn_id, RestartAck(round_id=round_id))

    def _on_roommeta(self, conn_id: str, room: Room, msg: RoomMeta) -> None:
        assert room.meta is not None
        if msg.name and msg.name.strip():
            room.meta.name = msg.name.strip()[:ROOM_NAME_MAX_LENGTH]
        room.meta.public = True
        self._broadcast(
            room, RoomMeta(name=room.meta.name, public=True), except_id=conn_id
        )

    # Helpers

    def _start_round(self, room: Room, announce: bool = False) -> str:
        now = self.clock()
        plan = self.coordinator.begin_countdown(room, now)
        if announce:
            self._broadcast(room, Restart(round_id=plan.round_id))
        self._broadcast(
            room,
            Seed(
                seed=plan.seed,
                settings=room.settings.to_wire(),
                round_id=plan.round_id,
                countdown=self.coordinator.countdown_seconds,
            ),
        )
        if self.coordinator.countdown_seconds <= 0:
            self.coordinator.activate(room, now)
        return plan.round_id

    def _publish_results(self, room: Room, results: RoundResults) -> None:
        if self.leaderboard is not None:
            results.awarded = self._submit_results(results)
        self._broadcast(room, Results.model_validate(results.to_wire()))

    def _submit_results(self, results: RoundResults) -> bool:
        assert self.leaderboard is not None
        placements = results.placements
        medals = ["gold"]
        if len(placements) >= 3:
            medals.append("silver")
        if len(placements) >= 4:
            medals.append("bronze")
        try:
            for p in placements:
                if p.score > 0:
                    self.leaderboard.submit_score(p.name, p.score)
            for medal, p in zip(medals, placements):
                self.leaderboard.award_trophy(p.name, medal)
        except Exception:
            logger.exception("Leaderboard submission failed for round %s", results.round_id)
            return False
        return True

    def _directory(self) -> Rooms:
        return Rooms(items=[RoomItem(**item) for item in self.registry.directory()])

    def _send(self, conn_id: str, msg: NetModel) -> None:
        self._deliver([conn_id], encode(msg))

    def _broadcast(self, room: Room, msg: NetModel, except_id: str | None = None) -> None:
        self._deliver(room.peers(except_id), encode(msg))

    def _deliver(self, conn_ids: Iterable[str], frame: str) -> None:
        for conn_id in conn_ids:
            try:
                self.outbox.deliver(conn_id, frame)
            except Exception:
                logger.exception("Failed to deliver frame to %s", conn_id)
