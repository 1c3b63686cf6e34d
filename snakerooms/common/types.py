from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Mapping, Tuple

from snakerooms.common.constants import (
    DEFAULT_APPLE_COUNT,
    DEFAULT_GRID_SIZE,
    MAX_APPLE_COUNT,
    MAX_GRID_SIZE,
    MIN_APPLE_COUNT,
    MIN_GRID_SIZE,
)

Cell = Tuple[int, int]
Direction = Tuple[int, int]

UP: Direction = (0, -1)
DOWN: Direction = (0, 1)
LEFT: Direction = (-1, 0)
RIGHT: Direction = (1, 0)

DIRECTIONS = {
    "ArrowUp": UP,
    "ArrowDown": DOWN,
    "ArrowLeft": LEFT,
    "ArrowRight": RIGHT,
}


class EdgeMode(str, Enum):
    WRAP = "wrap"
    WALL = "wall"


class CanvasSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class RoundPhase(str, Enum):
    IDLE = "idle"
    COUNTDOWN = "countdown"
    ACTIVE = "active"
    RESULTS = "results"


class EventKind(str, Enum):
    EAT = "eat"
    DIE = "die"


@dataclass(frozen=True)
class GameSettings:
    grid_size: int = DEFAULT_GRID_SIZE
    apple_count: int = DEFAULT_APPLE_COUNT
    edge_mode: EdgeMode = EdgeMode.WRAP
    canvas_size: CanvasSize = CanvasSize.MEDIUM

    def merged(self, patch: Mapping[str, Any]) -> GameSettings:
        """Apply the valid fields of a wire-format patch; invalid fields are ignored."""
        changes: dict[str, Any] = {}
        grid = patch.get("gridSize")
        if _is_int(grid) and MIN_GRID_SIZE <= grid <= MAX_GRID_SIZE:
            changes["grid_size"] = grid
        apples = patch.get("appleCount")
        if _is_int(apples) and MIN_APPLE_COUNT <= apples <= MAX_APPLE_COUNT:
            changes["apple_count"] = apples
        edge = patch.get("edgeMode")
        if edge in {m.value for m in EdgeMode}:
            changes["edge_mode"] = EdgeMode(edge)
        canvas = patch.get("canvasSize")
        if canvas in {c.value for c in CanvasSize}:
            changes["canvas_size"] = CanvasSize(canvas)
        return replace(self, **changes) if changes else self

    def to_wire(self) -> dict[str, Any]:
        return {
            "gridSize": self.grid_size,
            "appleCount": self.apple_count,
            "edgeMode": self.edge_mode.value,
            "canvasSize": self.canvas_size.value,
        }

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> GameSettings:
        return cls().merged(data)


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
