from __future__ import annotations

from snakerooms.common.constants import BASE_TICK_MS, MIN_TICK_MS, TICK_STEP_MS
from snakerooms.common.types import (
    DOWN,
    LEFT,
    RIGHT,
    UP,
    Cell,
    Direction,
    EdgeMode,
    EventKind,
    GameSettings,
)
from snakerooms.engine.prng import Mulberry32
from snakerooms.engine.state import GameState, TickEvent, TickResult

VALID_DIRECTIONS = {UP, DOWN, LEFT, RIGHT}


def tick_interval_ms(apples_eaten: int) -> int:
    """Milliseconds between ticks; the snake speeds up as it eats."""
    return max(MIN_TICK_MS, BASE_TICK_MS - TICK_STEP_MS * apples_eaten)


def score_for(apples_eaten: int) -> int:
    return apples_eaten


class GameEngine:
    """Deterministic single-player snake simulation.

    Two engines built from the same settings and seed, fed the same ordered
    direction inputs, produce identical snapshots on every tick.
    """

    def __init__(self, settings: GameSettings, seed: int) -> None:
        self.settings = settings
        self.grid = settings.grid_size
        self.rng = Mulberry32(seed)
        self._snake: list[Cell] = []
        self._apples: list[Cell] = []
        self._direction: Direction = RIGHT
        self._pending: Direction | None = None
        self._alive = True
        self._ticks = 0
        self._initialize()

    def reset(self, seed: int | None = None) -> GameState:
        if seed is not None:
            self.rng = Mulberry32(seed)
        self._initialize()
        return self.snapshot()

    def snapshot(self) -> GameState:
        return GameState(
            snake=tuple(self._snake),
            direction=self._direction,
            apples=tuple(self._apples),
            alive=self._alive,
            ticks=self._ticks,
        )

    def load_snapshot(self, state: GameState) -> GameState:
        """Adopt an external snapshot, clamping every cell into the grid."""

        def clamp(cell: Cell) -> Cell:
            return (
                max(0, min(self.grid - 1, cell[0])),
                max(0, min(self.grid - 1, cell[1])),
            )

        self._snake = [clamp(c) for c in state.snake]
        self._apples = [clamp(c) for c in state.apples]
        dx, dy = state.direction
        self._direction = (_sign(dx), _sign(dy))
        self._pending = None
        self._alive = bool(state.alive)
        self._ticks = max(0, int(state.ticks))
        return self.snapshot()

    def set_direction(self, direction: Direction) -> bool:
        """Buffer a turn for the next tick.

        Only the first accepted turn per tick is kept, and a reversal onto
        the neck is always rejected.
        """
        if direction not in VALID_DIRECTIONS:
            return False
        if self._pending is not None:
            return False
        cx, cy = self._direction
        if direction == (-cx, -cy):
            return False
        self._pending = direction
        return True

    def tick(self) -> TickResult:
        if not self._alive:
            return TickResult(state=self.snapshot())
        if self._pending is not None:
            self._direction = self._pending
            self._pending = None

        grid = self.grid
        hx, hy = self._snake[0]
        nx = hx + self._direction[0]
        ny = hy + self._direction[1]

        if self.settings.edge_mode == EdgeMode.WRAP:
            nx %= grid
            ny %= grid
        elif not (0 <= nx < grid and 0 <= ny < grid):
            self._alive = False
            at = (max(0, min(grid - 1, nx)), max(0, min(grid - 1, ny)))
            return TickResult(state=self.snapshot(), events=[TickEvent(EventKind.DIE, at)])

        new_head = (nx, ny)
        will_grow = new_head in self._apples
        # The tail vacates its cell this tick unless the snake grows.
        body = self._snake if will_grow else self._snake[:-1]
        if new_head in body:
            self._alive = False
            return TickResult(
                state=self.snapshot(), events=[TickEvent(EventKind.DIE, new_head)]
            )

        events: list[TickEvent] = []
        self._snake.insert(0, new_head)
        if will_grow:
            events.append(TickEvent(EventKind.EAT, new_head))
            self._apples.remove(new_head)
            self._spawn_apples()
        else:
            self._snake.pop()
        self._ticks += 1
        return TickResult(state=self.snapshot(), events=events)

    def _initialize(self) -> None:
        mid = self.grid // 2
        self._snake = [(mid, mid)]
        self._apples = []
        self._direction = RIGHT
        self._pending = None
        self._alive = True
        self._ticks = 0
        self._spawn_apples()

    def _spawn_apples(self) -> None:
        target = self.settings.apple_count
        # Never loop forever on a board with no free cell left.
        free = self.grid * self.grid - len(self._snake) - len(self._apples)
        while len(self._apples) < target and free > 0:
            cell = (self.rng.randint(self.grid), self.rng.randint(self.grid))
            if cell in self._snake or cell in self._apples:
                continue
            self._apples.append(cell)
            free -= 1


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)
