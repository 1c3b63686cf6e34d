from snakerooms.common.types import DOWN, LEFT, RIGHT, UP, EdgeMode, EventKind, GameSettings
from snakerooms.engine.engine import GameEngine, tick_interval_ms
from snakerooms.engine.state import GameState


def _engine(grid=10, apples=1, edge=EdgeMode.WRAP, seed=1) -> GameEngine:
    return GameEngine(GameSettings(grid_size=grid, apple_count=apples, edge_mode=edge), seed)


def _place(engine, snake, direction, apples):
    engine.load_snapshot(
        GameState(snake=tuple(snake), direction=direction, apples=tuple(apples))
    )


def test_initial_state_centered_with_apples():
    engine = _engine(grid=30, apples=3)
    state = engine.snapshot()
    assert state.snake == ((15, 15),)
    assert state.direction == RIGHT
    assert len(state.apples) == 3
    assert len(set(state.apples)) == 3
    assert (15, 15) not in state.apples
    assert state.alive and state.ticks == 0


def test_move_and_eat_scenario():
    engine = _engine(grid=10, apples=1)
    _place(engine, [(5, 5)], RIGHT, [(6, 5)])
    result = engine.tick()
    assert result.state.snake == ((6, 5), (5, 5))
    assert [ev.kind for ev in result.events] == [EventKind.EAT]
    assert result.events[0].at == (6, 5)
    assert len(result.state.apples) == 1
    assert result.state.apples[0] not in result.state.snake
    assert result.state.ticks == 1


def test_plain_move_pops_tail():
    engine = _engine(grid=10, apples=1)
    _place(engine, [(5, 5)], RIGHT, [(0, 0)])
    result = engine.tick()
    assert result.state.snake == ((6, 5),)
    assert result.events == []


def test_wrap_crosses_boundary():
    engine = _engine(grid=10, edge=EdgeMode.WRAP)
    _place(engine, [(9, 5)], RIGHT, [(0, 0)])
    result = engine.tick()
    assert result.state.head == (0, 5)
    assert result.state.alive

    _place(engine, [(4, 0)], UP, [(0, 0)])
    assert engine.tick().state.head == (4, 9)


def test_wall_kills_at_boundary():
    engine = _engine(grid=10, edge=EdgeMode.WALL)
    _place(engine, [(9, 5)], RIGHT, [(0, 0)])
    result = engine.tick()
    assert not result.state.alive
    assert [ev.kind for ev in result.events] == [EventKind.DIE]
    assert result.events[0].at == (9, 5)
    # Dead engines stay put.
    after = engine.tick()
    assert after.events == []
    assert after.state == result.state


def test_moving_into_vacating_tail_is_safe():
    engine = _engine(grid=10)
    body = [(1, 1), (2, 1), (2, 2), (1, 2)]
    _place(engine, body, DOWN, [(8, 8)])
    result = engine.tick()
    assert result.state.alive
    assert result.state.snake == ((1, 2), (1, 1), (2, 1), (2, 2))


def test_moving_into_tail_while_eating_is_fatal():
    engine = _engine(grid=10)
    body = [(1, 1), (2, 1), (2, 2), (1, 2)]
    _place(engine, body, DOWN, [(1, 2)])
    result = engine.tick()
    assert not result.state.alive
    assert [ev.kind for ev in result.events] == [EventKind.DIE]


def test_self_collision_with_body():
    engine = _engine(grid=10)
    body = [(2, 2), (3, 2), (3, 3), (2, 3), (1, 3)]
    _place(engine, body, DOWN, [(8, 8)])
    result = engine.tick()
    assert not result.state.alive
    assert result.events[0].at == (2, 3)


def test_reversal_rejected_and_one_turn_per_tick():
    engine = _engine(grid=10)
    assert engine.set_direction(LEFT) is False
    assert engine.set_direction(UP) is True
    assert engine.set_direction(DOWN) is False
    assert engine.set_direction(LEFT) is False
    engine.tick()
    assert engine.snapshot().direction == UP
    assert engine.set_direction(DOWN) is False
    assert engine.set_direction(LEFT) is True


def test_replay_is_deterministic():
    inputs = {3: UP, 9: LEFT, 15: DOWN, 22: RIGHT, 30: UP, 41: LEFT}

    def run(seed):
        engine = _engine(grid=12, apples=4, edge=EdgeMode.WRAP, seed=seed)
        states = []
        for step in range(120):
            if step in inputs:
                engine.set_direction(inputs[step])
            states.append(engine.tick().state)
        return states

    first = run(777)
    assert first == run(777)
    assert first != run(778)


def test_reset_reseeds():
    engine = _engine(grid=20, apples=2, seed=5)
    first = engine.snapshot()
    engine.tick()
    assert engine.reset(5) == first
    assert engine.reset(6).snake == first.snake


def test_load_snapshot_clamps_cells():
    engine = _engine(grid=10)
    state = engine.load_snapshot(
        GameState(snake=((12, -3),), direction=(5, 0), apples=((-1, 4),), ticks=-2)
    )
    assert state.snake == ((9, 0),)
    assert state.direction == (1, 0)
    assert state.apples == ((0, 4),)
    assert state.ticks == 0


def test_tick_interval_speeds_up_and_bottoms_out():
    assert tick_interval_ms(0) == 110
    assert tick_interval_ms(5) == 90
    assert tick_interval_ms(100) == 50


def test_wire_round_trip_of_state():
    engine = _engine(grid=10)
    state = engine.snapshot()
    wire = state.to_wire()
    assert wire["dir"] == {"x": 1, "y": 0}
    assert GameState.from_wire(wire) == state
