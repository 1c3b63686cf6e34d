import json

from snakerooms.api.messages import (
    Error,
    Host,
    Name,
    Over,
    Preview,
    Ready,
    Results,
    Seed,
    Spectate,
    Welcome,
    encode,
)
from snakerooms.client.session import COUNTDOWN_SECONDS, VersusSession
from snakerooms.common.types import GameSettings


class FakeNet:
    def __init__(self, connected: bool = True) -> None:
        self.connected = connected
        self.sent: list[dict] = []

    def send(self, msg) -> bool:
        if not self.connected:
            return False
        self.sent.append(json.loads(encode(msg)))
        return True

    def kinds(self) -> list[str]:
        return [m["type"] for m in self.sent]


class FakeClock:
    def __init__(self) -> None:
        self.now = 50.0

    def __call__(self) -> float:
        return self.now


def _session(**kwargs):
    net = FakeNet()
    clock = FakeClock()
    session = VersusSession(net, "r1", clock=clock, **kwargs)
    return session, net, clock


def _seed(session, seed=7, **settings):
    wire = GameSettings().merged(settings).to_wire()
    session.apply(Seed(seed=seed, settings=wire, round_id="round-1"))


def test_welcome_assigns_default_name():
    session, net, _ = _session()
    session.apply(Welcome(id="me", visitor=4))
    assert session.my_id == "me"
    assert session.player_name == "Player4"
    assert net.sent == [{"type": "name", "name": "Player4"}]
    assert session.lobby.step == "lobby"


def test_open_sends_room_meta_and_name():
    session, net, _ = _session(player_name=" Ann ", room_name="Den")
    session.on_open()
    assert net.sent == [
        {"type": "roommeta", "name": "Den"},
        {"type": "name", "name": "Ann"},
    ]
    session.apply(Welcome(id="me", visitor=1))
    assert net.kinds() == ["roommeta", "name"]


def test_join_error_returns_to_join_step():
    session, _, _ = _session()
    session.apply(Error(code="room-not-found", message="Room does not exist"))
    assert session.lobby.step == "join"
    assert session.lobby.join_error == "Room does not exist"


def test_host_notice():
    session, _, _ = _session()
    session.apply(Welcome(id="me", visitor=1))
    session.apply(Host(host_id="other"))
    assert not session.is_host
    assert session.lobby.notice == "Host changed"
    session.apply(Host(host_id="me"))
    assert session.is_host
    assert session.lobby.notice == "You are now the host"


def test_seed_countdown_then_play():
    session, net, clock = _session(player_name="Ann")
    session.apply(Welcome(id="me", visitor=1))
    assert session.declare_ready()
    _seed(session, seed=99, gridSize=12, edgeMode="wall")
    assert session.settings.grid_size == 12
    assert session.engine.settings.grid_size == 12
    assert not session.running

    assert session.countdown_tick() is False
    assert session.countdown == COUNTDOWN_SECONDS
    clock.now += 1.2
    session.countdown_tick()
    assert session.countdown == 2
    clock.now += COUNTDOWN_SECONDS
    assert session.countdown_tick() is True
    assert session.running
    assert session.ready is False
    assert session.countdown is None
    assert session.countdown_tick() is False

    net.sent.clear()
    result = session.step()
    assert result is not None
    assert net.sent[-1]["type"] == "tick"
    assert net.sent[-1]["n"] == 1


def test_same_seed_gives_same_engine_on_every_client():
    first, _, _ = _session()
    second, _, _ = _session()
    _seed(first, seed=1234)
    _seed(second, seed=1234)
    assert first.engine.snapshot() == second.engine.snapshot()


def test_death_sends_over_with_score():
    session, net, clock = _session()
    session.apply(Welcome(id="me", visitor=1))
    session.declare_ready()
    _seed(session, gridSize=8, edgeMode="wall")
    clock.now += COUNTDOWN_SECONDS
    session.countdown_tick()
    for _ in range(20):
        if session.step() is None:
            break
    assert not session.alive
    assert net.sent[-1]["type"] == "over"
    assert net.sent[-1]["reason"] == "die"
    assert session.step() is None


def test_turn_only_while_running():
    session, net, clock = _session()
    session.apply(Welcome(id="me", visitor=1))
    assert session.turn("ArrowUp") is False
    session.declare_ready()
    _seed(session)
    clock.now += COUNTDOWN_SECONDS
    session.countdown_tick()
    net.sent.clear()
    assert session.turn("ArrowLeft") is False
    assert session.turn("Space") is False
    assert session.turn("ArrowUp") is True
    assert net.sent == [{"type": "input", "key": "ArrowUp"}]


def test_peer_frames_update_lobby():
    session, _, _ = _session()
    session.apply(Welcome(id="me", visitor=1))
    session.apply(Name(name="Bo", from_="p2"))
    session.apply(Ready(from_="p2"))
    assert session.players["p2"].name == "Bo"
    assert session.players["p2"].ready
    session.apply(Spectate(on=True, from_="p2"))
    assert session.players["p2"].spectating
    assert not session.players["p2"].ready
    session.apply(Over(reason="quit", from_="p2"))
    assert "p2" not in session.players


def test_preview_from_peer_only():
    session, _, _ = _session()
    session.apply(Welcome(id="me", visitor=1))
    state = session.engine.snapshot().to_wire()
    session.apply(Preview(state=state, score=3, name="Bo", from_="p2"))
    session.apply(Preview(state=state, score=9, from_="me"))
    session.apply(Preview(state={"snake": [{"x": "bad", "y": 0}]}, score=1, from_="p3"))
    assert set(session.previews) == {"p2"}
    assert session.peer_scores == {"p2": 3}


def test_host_only_intents():
    session, net, _ = _session()
    session.apply(Welcome(id="me", visitor=1))
    session.apply(Host(host_id="other"))
    net.sent.clear()
    assert session.change_settings(appleCount=3) is False
    assert session.request_restart() is False
    session.apply(Host(host_id="me"))
    assert session.change_settings(appleCount=3) is True
    assert net.sent[-1]["settings"]["appleCount"] == 3
    assert session.request_restart() is True
    assert net.sent[-1] == {"type": "restart"}


def test_auto_restart_when_everyone_ready():
    session, net, clock = _session()
    session.apply(Welcome(id="me", visitor=1))
    session.apply(Host(host_id="me"))
    session.apply(Ready(from_="p2"))
    assert session.maybe_auto_restart() is False
    session.declare_ready()
    net.sent.clear()
    assert session.maybe_auto_restart() is True
    assert net.sent == [{"type": "restart"}]
    assert session.maybe_auto_restart() is False
    clock.now += 2
    assert session.maybe_auto_restart() is True


def test_leave_bumps_epoch_and_resets():
    session, _, _ = _session()
    session.apply(Welcome(id="me", visitor=1))
    epoch = session.epoch
    session.leave()
    assert not session.is_current(epoch)
    assert session.my_id is None
    assert session.lobby.step == "join"


def test_results_are_kept():
    session, _, _ = _session()
    results = Results(round_id="x", total=0)
    session.apply(results)
    assert session.results is results


def test_disconnected_send_is_dropped():
    net = FakeNet(connected=False)
    session = VersusSession(net, "r1")
    assert session.declare_ready() is False
    assert session.ready is False


def test_ready_refused_while_playing():
    session, net, clock = _session()
    session.apply(Welcome(id="me", visitor=1))
    assert session.declare_ready()
    _seed(session)
    assert session.declare_ready() is False
    clock.now += COUNTDOWN_SECONDS
    session.countdown_tick()
    assert session.running
    net.sent.clear()
    assert session.declare_ready() is False
    assert session.ready is False
    assert net.sent == []


def test_ready_during_countdown_joins_the_round():
    session, _, clock = _session()
    session.apply(Welcome(id="me", visitor=1))
    _seed(session)
    assert session.declare_ready()
    clock.now += COUNTDOWN_SECONDS
    assert session.countdown_tick() is True
    assert session.running


def test_seed_countdown_comes_from_server():
    session, _, clock = _session()
    session.apply(Welcome(id="me", visitor=1))
    session.declare_ready()
    session.apply(Seed(seed=5, settings={}, round_id="r", countdown=5.0))
    assert session.countdown == 5
    clock.now += 4.0
    assert session.countdown_tick() is False
    clock.now += 1.0
    assert session.countdown_tick() is True


def test_spectator_and_unready_clients_only_watch():
    for prepare in (lambda s: s.set_spectating(True), lambda s: None):
        session, net, clock = _session()
        session.apply(Welcome(id="me", visitor=1))
        prepare(session)
        _seed(session)
        clock.now += COUNTDOWN_SECONDS
        assert session.countdown_tick() is False
        assert session.countdown_deadline is None
        net.sent.clear()
        assert session.step() is None
        assert net.sent == []
