from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from snakerooms.common.types import Cell, Direction, EventKind


@dataclass(frozen=True)
class GameState:
    snake: tuple[Cell, ...]
    direction: Direction
    apples: tuple[Cell, ...]
    alive: bool = True
    ticks: int = 0

    @property
    def head(self) -> Cell:
        return self.snake[0]

    def to_wire(self) -> dict[str, Any]:
        return {
            "snake": [{"x": x, "y": y} for x, y in self.snake],
            "dir": {"x": self.direction[0], "y": self.direction[1]},
            "apples": [{"x": x, "y": y} for x, y in self.apples],
            "alive": self.alive,
            "ticks": self.ticks,
        }

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> GameState:
        d = data.get("dir") or {}
        return cls(
            snake=tuple((int(p["x"]), int(p["y"])) for p in data.get("snake", [])),
            direction=(int(d.get("x", 0)), int(d.get("y", 0))),
            apples=tuple((int(p["x"]), int(p["y"])) for p in data.get("apples", [])),
            alive=bool(data.get("alive", False)),
            ticks=int(data.get("ticks", 0) or 0),
        )


@dataclass(frozen=True)
class TickEvent:
    kind: EventKind
    at: Cell


@dataclass
class TickResult:
    state: GameState
    events: list[TickEvent] = field(default_factory=list)

    @property
    def died(self) -> bool:
        return any(ev.kind == EventKind.DIE for ev in self.events)

    @property
    def ate(self) -> bool:
        return any(ev.kind == EventKind.EAT for ev in self.events)
