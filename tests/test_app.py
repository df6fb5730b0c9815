import json

import pytest
from fastapi.testclient import TestClient

from roomrelay.app import admin_token, client_ip, create_app
from roomrelay.config import RelayRuntimeConfig
from roomrelay.service import RelayService


def _client(**overrides) -> TestClient:
    cfg = RelayRuntimeConfig(**{"state_path": None, "admin_ips": ("testclient",), **overrides})
    return TestClient(create_app(RelayService(cfg)))


def _join(ws, path: str, username: str) -> list[dict]:
    ws.send_text(json.dumps({"type": "join", "path": path, "username": username}))
    return [ws.receive_json() for _ in range(3)]


def test_client_ip_and_token_helpers() -> None:
    class Peer:
        host = "10.0.0.1"

    headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1"}
    assert client_ip(headers, Peer(), trust_forwarded_for=False) == "10.0.0.1"
    assert client_ip(headers, Peer(), trust_forwarded_for=True) == "203.0.113.7"
    assert client_ip({}, None, trust_forwarded_for=True) is None

    assert admin_token({"authorization": "Bearer abc"}) == "abc"
    assert admin_token({"x-admin-token": "xyz"}) == "xyz"
    assert admin_token({}) is None


def test_rooms_are_isolated_end_to_end() -> None:
    with _client() as client:
        with client.websocket_connect("/ws") as a, client.websocket_connect(
            "/ws"
        ) as b, client.websocket_connect("/ws") as c:
            first = _join(a, "team/x", "alice")
            assert [e["type"] for e in first] == ["message", "characterLimit", "anonymous"]
            _join(b, "team/x", "bob")
            _join(c, "team/y", "carol")

            a.send_text(json.dumps({"type": "message", "path": "team/x", "text": "hello"}))
            for ws in (a, b):
                e = ws.receive_json()
                assert e["type"] == "message"
                assert [m["text"] for m in e["data"]["history"]] == ["hello"]

            # c saw nothing from team/x: its next event is its own room's history.
            c.send_text(json.dumps({"type": "message", "path": "team/y", "text": "mine"}))
            e = c.receive_json()
            assert [m["text"] for m in e["data"]["history"]] == ["mine"]

            res = client.get("/clients/team/x")
            assert res.status_code == 200
            assert sorted(x["username"] for x in res.json()) == ["alice", "bob"]

            res = client.get("/chat-logs/team/y")
            assert res.json()[0]["username"] == "carol"


def test_control_plane_broadcasts_settings() -> None:
    with _client() as client:
        with client.websocket_connect("/ws") as ws:
            _join(ws, "lobby", "alice")
            ws.send_text(json.dumps({"type": "message", "path": "lobby", "text": "hi"}))
            ws.receive_json()

            res = client.post("/anonymous/lobby", json={"anonymous": True})
            assert res.json() == {"success": True, "message": "Anonymous mode is True"}
            assert ws.receive_json() == {"type": "anonymous", "data": {"value": True}}
            assert ws.receive_json()["data"]["history"][0]["username"] == "ANONYMOUS"

            res = client.post("/character-limit/lobby", json={"characterLimit": 3})
            assert res.status_code == 200
            assert ws.receive_json() == {"type": "characterLimit", "data": {"value": 3}}

            res = client.post("/clear-messages/lobby")
            assert res.json()["success"]
            assert ws.receive_json()["type"] == "clear"


def test_namespace_routes() -> None:
    with _client() as client:
        res = client.post("/add-category", json={"path": "ops"})
        assert res.json()["success"]
        res = client.post("/add-room", json={"path": "ops/alerts"})
        assert res.json() == {"success": True, "message": "Room ops/alerts added."}

        paths = client.get("/paths").json()
        assert "room" in paths["ops"]["children"]["alerts"]
        assert "room" not in paths["ops"]


def test_errors_map_to_status_codes() -> None:
    with _client() as client:
        client.post("/add-room", json={"path": "r"})

        res = client.get("/clients/nope")
        assert res.status_code == 404
        assert res.json() == {"success": False, "message": "Room nope not found"}

        res = client.post("/delete-message/r", json={"index": 0})
        assert res.status_code == 400
        assert res.json()["success"] is False

        res = client.post("/character-limit/r", json={"characterLimit": -1})
        assert res.status_code == 400

        res = client.post("/kick-client/r", json={"clientId": "missing"})
        assert res.status_code == 404

        res = client.post("/ban-client/r", json={"ip": " "})
        assert res.status_code == 400
        assert res.json()["message"] == "Invalid room or IP"

        res = client.post("/save-chat")
        assert res.status_code == 500
        assert res.json() == {"success": False, "message": "Failed to save chat."}


def test_non_admin_is_forbidden() -> None:
    with _client(admin_ips=(), admin_token="s3cret") as client:
        res = client.post("/add-room", json={"path": "r"})
        assert res.status_code == 403
        assert res.json() == {"success": False, "message": "Forbidden"}
        assert client.get("/stats").status_code == 403

        # The namespace listing stays public.
        assert client.get("/paths").status_code == 200

        res = client.post(
            "/add-room", json={"path": "r"}, headers={"Authorization": "Bearer s3cret"}
        )
        assert res.status_code == 200
        assert client.get("/paths").json()["r"]["room"]["messages"] == 0


def test_banned_client_is_disconnected_on_join() -> None:
    with _client(banned_ips=("testclient",)) as client:
        with client.websocket_connect("/ws") as ws:
            ws.send_text(json.dumps({"type": "join", "path": "r"}))
            message = ws.receive()
            assert message["type"] == "websocket.close"
            assert message["code"] == 1008


@pytest.mark.parametrize("path", ["/stats", "/paths"])
def test_read_routes_return_json(path: str) -> None:
    with _client() as client:
        res = client.get(path)
        assert res.status_code == 200
        assert isinstance(res.json(), dict)


def test_deeply_nested_frame_keeps_socket_open() -> None:
    with _client() as client:
        with client.websocket_connect("/ws") as ws:
            _join(ws, "r", "alice")
            ws.send_text("[" * 200000)
            ws.send_text(json.dumps({"type": "message", "path": "r", "text": "ok"}))
            e = ws.receive_json()
            assert [m["text"] for m in e["data"]["history"]] == ["ok"]
