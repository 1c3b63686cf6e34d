from __future__ import annotations

import logging
import math
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Protocol

from snakerooms.api.messages import (
    Error,
    Host,
    Input,
    Name,
    NetMessage,
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
)
from snakerooms.common.constants import AUTO_RESTART_MIN_INTERVAL_SECONDS
from snakerooms.common.types import DIRECTIONS, GameSettings
from snakerooms.engine.engine import GameEngine, score_for
from snakerooms.engine.state import GameState, TickResult

logger = logging.getLogger(__name__)

COUNTDOWN_SECONDS = 3.0


class Sender(Protocol):
    def send(self, msg: NetModel) -> bool:
        ...


@dataclass
class PeerInfo:
    name: str | None = None
    ready: bool = False
    spectating: bool = False


@dataclass
class PeerPreview:
    state: GameState
    score: int
    name: str | None = None


@dataclass
class LobbyView:
    step: str = "join"
    join_error: str | None = None
    notice: str | None = None
    rooms: list[RoomItem] = field(default_factory=list)


class VersusSession:
    """Client-side view of one room connection.

    Applies server frames to local lobby and engine state. Peer previews
    and ticks only feed the spectator view; the local simulation is driven
    by the shared seed alone.
    """

    def __init__(
        self,
        net: Sender,
        room: str,
        player_name: str | None = None,
        client_token: str | None = None,
        room_name: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.net = net
        self.room = room
        self.room_name = room_name
        self.player_name = (player_name or "").strip()
        self.client_token = client_token or uuid.uuid4().hex
        self.clock = clock
        self.epoch = 0
        self.lobby = LobbyView()
        self.settings = GameSettings()
        self.engine = GameEngine(self.settings, seed=0)
        self._reset_session()

    def _reset_session(self) -> None:
        self.my_id: str | None = None
        self.host_id: str | None = None
        self.visitor: int | None = None
        self.presence = 1
        self.players: dict[str, PeerInfo] = {}
        self.previews: dict[str, PeerPreview] = {}
        self.peer_scores: dict[str, int] = {}
        self.ready = False
        self.spectating = False
        self.round_id: str | None = None
        self.countdown: int | None = None
        self.countdown_deadline: float | None = None
        self.awaiting_start = False
        self.paused = True
        self.alive = True
        self.apples_eaten = 0
        self.results: Results | None = None
        self.last_auto_restart = -math.inf

    @property
    def is_host(self) -> bool:
        return self.my_id is not None and self.my_id == self.host_id

    @property
    def score(self) -> int:
        return score_for(self.apples_eaten)

    @property
    def running(self) -> bool:
        return not self.paused and self.alive

    # Connection callbacks

    def on_open(self) -> None:
        self.players = {}
        self.previews = {}
        if self.room_name:
            self.net.send(RoomMeta(name=self.room_name))
        if self.player_name:
            self.net.send(Name(name=self.player_name))

    def on_close(self) -> None:
        self.ready = False
        self.players = {}
        self.previews = {}

    def leave(self) -> None:
        """Invalidate everything scheduled by the current session."""
        self.epoch += 1
        self._reset_session()
        self.lobby = LobbyView()

    def is_current(self, epoch: int) -> bool:
        return epoch == self.epoch

    # Inbound frames

    def apply(self, msg: NetMessage) -> None:
        handler = self._handlers.get(type(msg))
        if handler is not None:
            handler(self, msg)

    def _on_welcome(self, msg: Welcome) -> None:
        self.my_id = msg.id
        self.visitor = msg.visitor
        self.lobby.step = "lobby"
        self.lobby.join_error = None
        if not self.player_name and msg.visitor is not None:
            self.player_name = f"Player{msg.visitor}"
            self.net.send(Name(name=self.player_name))
        self.players.setdefault(msg.id, PeerInfo(name=self.player_name or "Player"))

    def _on_error(self, msg: Error) -> None:
        self.lobby.step = "join"
        self.lobby.join_error = msg.message or msg.code or "Unable to join room"

    def _on_seed(self, msg: Seed) -> None:
        self.settings = GameSettings.from_wire(msg.settings)
        self.engine = GameEngine(self.settings, msg.seed)
        self.round_id = msg.round_id
        self.apples_eaten = 0
        self.alive = True
        self.paused = True
        self.results = None
        self.previews = {}
        self.peer_scores = {}
        # Only a ready player takes part; spectators and idle clients just watch.
        self.awaiting_start = self.ready and not self.spectating
        duration = COUNTDOWN_SECONDS if msg.countdown is None else max(0.0, msg.countdown)
        self.countdown_deadline = self.clock() + duration
        self.countdown = math.ceil(duration)

    def _on_settings(self, msg: SettingsMessage) -> None:
        self.settings = GameSettings.from_wire(msg.settings)

    def _on_presence(self, msg: Presence) -> None:
        self.presence = max(1, msg.count)

    def _on_host(self, msg: Host) -> None:
        if msg.host_id != self.host_id:
            self.lobby.notice = "You are now the host" if msg.host_id == self.my_id else "Host changed"
        self.host_id = msg.host_id

    def _on_ready(self, msg: Ready) -> None:
        if msg.from_ and msg.from_ != self.my_id:
            self.players.setdefault(msg.from_, PeerInfo()).ready = True

    def _on_spectate(self, msg: Spectate) -> None:
        if msg.from_:
            peer = self.players.setdefault(msg.from_, PeerInfo())
            peer.spectating = msg.on
            if msg.on:
                peer.ready = False

    def _on_over(self, msg: Over) -> None:
        if not msg.from_:
            return
        if msg.reason == "quit":
            self.players.pop(msg.from_, None)
        elif msg.from_ in self.players:
            self.players[msg.from_].ready = False
        if msg.score is not None:
            self.peer_scores[msg.from_] = msg.score

    def _on_preview(self, msg: Preview) -> None:
        if not msg.from_ or msg.from_ == self.my_id:
            return
        try:
            state = GameState.from_wire(msg.state)
        except (KeyError, TypeError, ValueError):
            return
        self.previews[msg.from_] = PeerPreview(state=state, score=msg.score, name=msg.name)
        self.peer_scores[msg.from_] = msg.score
        if msg.name:
            self.players.setdefault(msg.from_, PeerInfo()).name = msg.name

    def _on_tick(self, msg: Tick) -> None:
        if msg.from_ and msg.from_ != self.my_id:
            self.peer_scores[msg.from_] = msg.score

    def _on_name(self, msg: Name) -> None:
        if not msg.from_:
            return
        self.players.setdefault(msg.from_, PeerInfo()).name = msg.name
        preview = self.previews.get(msg.from_)
        if preview is not None:
            preview.name = msg.name

    def _on_rooms(self, msg: Rooms) -> None:
        self.lobby.rooms = list(msg.items)

    def _on_results(self, msg: Results) -> None:
        self.results = msg

    def _on_restart(self, msg: Restart) -> None:
        self.round_id = msg.round_id or self.round_id

    def _on_restart_ack(self, msg: RestartAck) -> None:
        logger.debug("Restart acknowledged for round %s", msg.round_id)

    _handlers: dict[type, Callable[[VersusSession, NetMessage], None]] = {
        Welcome: _on_welcome,
        Error: _on_error,
        Seed: _on_seed,
        SettingsMessage: _on_settings,
        Presence: _on_presence,
        Host: _on_host,
        Ready: _on_ready,
        Spectate: _on_spectate,
        Over: _on_over,
        Preview: _on_preview,
        Tick: _on_tick,
        Name: _on_name,
        Rooms: _on_rooms,
        Results: _on_results,
        Restart: _on_restart,
        RestartAck: _on_restart_ack,
    }

    # Local intents

    def declare_ready(self) -> bool:
        if self.spectating or self.running or self.awaiting_start:
            return False
        if not self.net.send(Ready()):
            return False
        self.ready = True
        if self.countdown_deadline is not None:
            # Readiness during a countdown still joins the round.
            self.awaiting_start = True
        if self.my_id:
            self.players.setdefault(self.my_id, PeerInfo()).ready = True
        return True

    def set_spectating(self, on: bool) -> None:
        self.spectating = on
        if on:
            self.ready = False
        self.net.send(Spectate(on=on))

    def rename(self, name: str) -> None:
        name = name.strip()
        if not name:
            return
        self.player_name = name
        if self.my_id:
            self.players.setdefault(self.my_id, PeerInfo()).name = name
        self.net.send(Name(name=name))

    def change_settings(self, **patch: object) -> bool:
        if not self.is_host:
            return False
        return self.net.send(SettingsMessage(settings=self.settings.merged(patch).to_wire()))

    def request_restart(self) -> bool:
        if not self.is_host:
            return False
        return self.net.send(Restart())

    def turn(self, key: str) -> bool:
        direction = DIRECTIONS.get(key)
        if direction is None or not self.running:
            return False
        if not self.engine.set_direction(direction):
            return False
        self.net.send(Input(key=key))
        return True

    # Timed continuations

    def countdown_tick(self) -> bool:
        """Recompute the countdown from its deadline; True once the round starts."""
        if self.countdown_deadline is None:
            return False
        left = math.ceil(self.countdown_deadline - self.clock())
        if left > 0:
            self.countdown = left
            return False
        self.countdown = None
        self.countdown_deadline = None
        if not self.awaiting_start:
            return False
        self.awaiting_start = False
        self.paused = False
        self.ready = False
        for peer in self.players.values():
            peer.ready = False
        return True

    def step(self) -> TickResult | None:
        if not self.running:
            return None
        result = self.engine.tick()
        if result.ate:
            self.apples_eaten += 1
        if result.died:
            self.alive = False
            self.net.send(Over(reason="die", score=self.score))
        else:
            self.net.send(Tick(n=result.state.ticks, score=self.score))
        return result

    def send_preview(self) -> bool:
        if self.my_id is None:
            return False
        return self.net.send(
            Preview(
                state=self.engine.snapshot().to_wire(),
                score=self.score,
                name=self.player_name or None,
                spectate=self.spectating or None,
            )
        )

    def maybe_auto_restart(self) -> bool:
        """Host asks for a new seed once everyone in the lobby is ready."""
        if not self.is_host or not self.ready:
            return False
        if self.countdown_deadline is not None or self.running:
            return False
        now = self.clock()
        if now - self.last_auto_restart < AUTO_RESTART_MIN_INTERVAL_SECONDS:
            return False
        others = [p for pid, p in self.players.items() if pid != self.my_id and not p.spectating]
        if not others or not all(p.ready for p in others):
            return False
        self.last_auto_restart = now
        return self.request_restart()
