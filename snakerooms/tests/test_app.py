from fastapi.testclient import TestClient

from snakerooms.api.app import ConnectionHub, create_app
from snakerooms.common.config import Settings


def _client() -> TestClient:
    return TestClient(create_app(Settings(countdown_seconds=0.0, round_poll_seconds=0.05)))


def test_health_and_banner():
    with _client() as client:
        assert client.get("/health").json() == {"ok": True}
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.text == "snakerooms ws server"


def test_websocket_handshake_and_relay():
    with _client() as client:
        with client.websocket_connect("/ws") as a:
            a.send_json({"type": "hello", "room": "r1", "create": True, "clientId": "tok-a"})
            welcome = a.receive_json()
            assert welcome["type"] == "welcome"
            assert welcome["visitor"] == 1
            assert a.receive_json() == {"type": "host", "hostId": welcome["id"]}
            assert a.receive_json() == {"type": "presence", "count": 1}
            assert a.receive_json()["type"] == "settings"

            with client.websocket_connect("/") as b:
                b.send_json({"type": "hello", "room": "r1"})
                b_id = b.receive_json()["id"]
                assert b.receive_json() == {"type": "host", "hostId": welcome["id"]}
                assert a.receive_json() == {"type": "presence", "count": 2}

                b.send_json({"type": "name", "name": "Bo"})
                assert a.receive_json() == {"type": "name", "name": "Bo", "from": b_id}

            assert a.receive_json() == {"type": "over", "reason": "quit", "from": b_id}
            assert a.receive_json() == {"type": "presence", "count": 1}


def test_websocket_unknown_room():
    with _client() as client:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "hello", "room": "nowhere"})
            assert ws.receive_json()["code"] == "room-not-found"


def test_hub_drops_frames_for_unknown_connection():
    hub = ConnectionHub(queue_size=1)
    hub.deliver("missing", "{}")
    assert hub.connections == {}
