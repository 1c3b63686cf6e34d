from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from snakerooms.common.constants import SEED_LIMIT
from snakerooms.common.types import RoundPhase

if TYPE_CHECKING:
    from snakerooms.rooms.registry import Room

logger = logging.getLogger(__name__)

# Phases in which the lobby is open: settings may change and ready starts rounds.
LOBBY_PHASES = (RoundPhase.IDLE, RoundPhase.RESULTS)


@dataclass
class RoundState:
    phase: RoundPhase = RoundPhase.IDLE
    round_id: str | None = None
    participants: list[str] = field(default_factory=list)
    finished: list[str] = field(default_factory=list)
    scores: dict[str, int] = field(default_factory=dict)
    names: dict[str, str] = field(default_factory=dict)
    countdown_deadline: float | None = None
    active_deadline: float | None = None
    finalized: bool = False
    last_results: RoundResults | None = None

    @property
    def unfinished(self) -> list[str]:
        done = set(self.finished)
        return [pid for pid in self.participants if pid not in done]


@dataclass(frozen=True)
class Placement:
    conn_id: str
    name: str
    score: int
    place: int

    def to_wire(self) -> dict[str, object]:
        return {"id": self.conn_id, "name": self.name, "score": self.score, "place": self.place}


@dataclass
class RoundResults:
    round_id: str
    placements: list[Placement]
    reason: str
    awarded: bool = False

    def to_wire(self) -> dict[str, object]:
        return {
            "type": "results",
            "roundId": self.round_id,
            "total": len(self.placements),
            "awarded": self.awarded,
            "items": [p.to_wire() for p in self.placements],
        }


@dataclass(frozen=True)
class SeedPlan:
    seed: int
    round_id: str


def rank_placements(
    participants: list[str],
    finished: list[str],
    scores: dict[str, int],
    names: dict[str, str],
) -> list[Placement]:
    """Order by score descending, then by who finished first."""
    order = list(finished) + [pid for pid in participants if pid not in finished]
    finish_index = {pid: idx for idx, pid in enumerate(order)}
    ranked = sorted(
        participants,
        key=lambda pid: (-scores.get(pid, 0), finish_index[pid]),
    )
    return [
        Placement(
            conn_id=pid,
            name=names.get(pid, "Player"),
            score=scores.get(pid, 0),
            place=idx + 1,
        )
        for idx, pid in enumerate(ranked)
    ]


class RoundCoordinator:
    """Drives each room's round state machine.

    idle -> countdown -> active -> results. A room stays in results, which
    behaves like idle, until the next countdown or a membership change. All
    timing is deadline based; callers pass the current monotonic time.
    """

    def __init__(
        self,
        countdown_seconds: float = 3.0,
        round_timeout_seconds: float = 75.0,
        rng: random.Random | None = None,
    ) -> None:
        self.countdown_seconds = countdown_seconds
        self.round_timeout_seconds = round_timeout_seconds
        self.rng = rng or random.Random()

    def in_lobby(self, room: Room) -> bool:
        return room.round.phase in LOBBY_PHASES

    def settings_locked(self, room: Room) -> bool:
        return not self.in_lobby(room)

    def accepts_ready(self, room: Room) -> bool:
        return self.in_lobby(room) or room.round.phase == RoundPhase.COUNTDOWN

    def settle(self, room: Room) -> None:
        """Return a room showing results to idle once its membership changes."""
        if room.round.phase == RoundPhase.RESULTS:
            room.round.phase = RoundPhase.IDLE

    def mark_ready(self, room: Room, conn_id: str) -> bool:
        client = room.clients.get(conn_id)
        if client is None or client.spectating or not self.accepts_ready(room):
            return False
        client.ready = True
        return True

    def all_ready(self, room: Room) -> bool:
        players = [c for c in room.clients.values() if not c.spectating]
        return len(players) >= 2 and all(c.ready for c in players)

    def begin_countdown(self, room: Room, now: float) -> SeedPlan:
        rnd = room.round
        if rnd.phase == RoundPhase.ACTIVE:
            logger.info("Room %s abandoning round %s for a restart", room.room_id, rnd.round_id)
        room.seed = self.rng.randrange(SEED_LIMIT)
        room.round_id = uuid.uuid4().hex
        room.round = RoundState(
            phase=RoundPhase.COUNTDOWN,
            round_id=room.round_id,
            scores=dict(rnd.scores),
            countdown_deadline=now + self.countdown_seconds,
            last_results=rnd.last_results,
        )
        logger.info(
            "Room %s countdown for round %s seed=%s", room.room_id, room.round_id, room.seed
        )
        return SeedPlan(seed=room.seed, round_id=room.round_id)

    def activate(self, room: Room, now: float) -> list[str]:
        """Freeze participants and clear readiness room wide."""
        rnd = room.round
        participants = [
            cid for cid, c in room.clients.items() if c.ready and not c.spectating
        ]
        for client in room.clients.values():
            client.ready = False
        rnd.countdown_deadline = None
        if not participants:
            rnd.phase = RoundPhase.IDLE
            logger.info("Room %s round %s has no participants", room.room_id, rnd.round_id)
            return []
        rnd.phase = RoundPhase.ACTIVE
        rnd.participants = participants
        rnd.finished = []
        rnd.finalized = False
        rnd.active_deadline = now + self.round_timeout_seconds
        for pid in participants:
            rnd.scores[pid] = 0
            rnd.names[pid] = room.clients[pid].display_name
        logger.info(
            "Room %s round %s active with %d participants",
            room.room_id,
            rnd.round_id,
            len(participants),
        )
        return participants

    def record_score(self, room: Room, conn_id: str, score: object) -> None:
        if isinstance(score, (int, float)) and not isinstance(score, bool):
            room.round.scores[conn_id] = int(score)

    def record_finish(self, room: Room, conn_id: str, score: object = None) -> RoundResults | None:
        rnd = room.round
        if rnd.phase != RoundPhase.ACTIVE or conn_id not in rnd.participants:
            return None
        self.record_score(room, conn_id, score)
        if conn_id not in rnd.finished:
            rnd.finished.append(conn_id)
        return self.try_finalize(room)

    def drop_participant(self, room: Room, conn_id: str) -> RoundResults | None:
        """Forget a participant that disconnected mid-round."""
        rnd = room.round
        if rnd.phase != RoundPhase.ACTIVE or conn_id not in rnd.participants:
            return None
        rnd.participants.remove(conn_id)
        if conn_id in rnd.finished:
            rnd.finished.remove(conn_id)
        if not rnd.participants:
            logger.info("Room %s round %s abandoned", room.room_id, rnd.round_id)
            rnd.phase = RoundPhase.IDLE
            rnd.active_deadline = None
            return None
        return self.try_finalize(room)

    def poll(self, room: Room, now: float) -> RoundResults | None:
        """Advance deadline-driven transitions for one room."""
        rnd = room.round
        if rnd.phase == RoundPhase.COUNTDOWN and rnd.countdown_deadline is not None:
            if now >= rnd.countdown_deadline:
                self.activate(room, now)
            return None
        if rnd.phase == RoundPhase.ACTIVE and rnd.active_deadline is not None:
            if now >= rnd.active_deadline:
                # Stragglers finish last, in registration order.
                rnd.finished.extend(rnd.unfinished)
                return self.try_finalize(room, reason="timeout")
        return None

    def try_finalize(self, room: Room, reason: str = "complete") -> RoundResults | None:
        rnd = room.round
        if rnd.phase != RoundPhase.ACTIVE or rnd.finalized or rnd.round_id is None:
            return None
        if rnd.unfinished:
            return None
        rnd.finalized = True
        placements = rank_placements(rnd.participants, rnd.finished, rnd.scores, rnd.names)
        results = RoundResults(round_id=rnd.round_id, placements=placements, reason=reason)
        rnd.phase = RoundPhase.RESULTS
        rnd.active_deadline = None
        rnd.last_results = results
        logger.info(
            "Room %s round %s finalized (%s): %s",
            room.room_id,
            rnd.round_id,
            reason,
            ", ".join(f"{p.place}:{p.conn_id}={p.score}" for p in placements),
        )
        return results
