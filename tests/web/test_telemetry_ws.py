"""/ws/telemetry — samples in, acknowledgments out."""

from __future__ import annotations

import json

import pytest


def _sample(player_id: str, ts: float, x: float, y: float = 0.0) -> str:
    return json.dumps(
        {"player_id": player_id, "timestamp": ts, "position": {"x": x, "y": y, "z": 0.0}}
    )


@pytest.fixture
def track(client):
    """Start/finish at x=30, regular checkpoints at x=10 and x=20, one registered player."""
    for name, x, sf, order in (("S", 30, True, 0), ("A", 10, False, 1), ("B", 20, False, 2)):
        client.post(
            "/api/checkpoints",
            json={
                "name": name,
                "is_start_finish": sf,
                "min": {"x": x - 1, "y": -1, "z": -1},
                "max": {"x": x + 1, "y": 1, "z": 1},
                "order": order,
            },
        )
    team = client.post("/api/teams", json={"name": "Red", "color": "#f00"}).json()["team_id"]
    client.put("/api/players/p1", json={"name": "Ada", "team_id": team})
    return client


def test_first_sample_acknowledged(track):
    with track.websocket_connect("/ws/telemetry") as ws:
        ws.send_text(_sample("p1", 0.0, 5.0))
        ack = ws.receive_json()
    assert ack["status"] == "success"
    assert ack["player_id"] == "p1"
    assert ack["lap_completed"] is False


def test_lap_over_websocket(track):
    acks = []
    with track.websocket_connect("/ws/telemetry") as ws:
        for i, x in enumerate((5.0, 15.0, 25.0, 35.0)):
            ws.send_text(_sample("p1", float(i), x))
            acks.append(ws.receive_json())

    assert [a["lap_completed"] for a in acks] == [False, False, False, True]
    assert acks[-1]["lap_count"] == 1
    assert track.get("/api/players/p1").json()["lap_count"] == 1
    assert track.get("/api/players/p1/laps").json() == [3.0]


def test_malformed_message_gets_failure_ack(track):
    with track.websocket_connect("/ws/telemetry") as ws:
        ws.send_text("this is not json")
        bad = ws.receive_json()
        ws.send_text(_sample("p1", 0.0, 5.0))
        good = ws.receive_json()

    assert bad["status"] == "failure"
    assert bad["error"].startswith("malformed sample")
    assert good["status"] == "success"


def test_unregistered_player_note(track):
    acks = []
    with track.websocket_connect("/ws/telemetry") as ws:
        for i, x in enumerate((5.0, 15.0, 25.0, 35.0)):
            ws.send_text(_sample("ghost", float(i), x))
            acks.append(ws.receive_json())

    assert all(a["status"] == "success" for a in acks)
    assert all("not registered" in a["note"] for a in acks)
    assert acks[-1]["lap_completed"] is True
    assert acks[-1]["lap_count"] is None


def test_binary_frame_gets_failure_ack(track):
    with track.websocket_connect("/ws/telemetry") as ws:
        ws.send_bytes(b'{"player_id": "p1"}')
        bad = ws.receive_json()
        ws.send_text(_sample("p1", 0.0, 5.0))
        good = ws.receive_json()

    assert bad["status"] == "failure"
    assert bad["player_id"] == "p1"
    assert bad["error"].startswith("malformed sample")
    assert good["status"] == "success"


def test_valid_binary_frame_is_processed(track):
    with track.websocket_connect("/ws/telemetry") as ws:
        ws.send_bytes(_sample("p1", 0.0, 5.0).encode("utf-8"))
        ack = ws.receive_json()
    assert ack["status"] == "success"
    assert ack["note"] is None


def test_coerced_values_rejected(track):
    raw = '{"player_id": "p1", "timestamp": "1", "position": {"x": "1", "y": true, "z": "3"}}'
    with track.websocket_connect("/ws/telemetry") as ws:
        ws.send_text(raw)
        ack = ws.receive_json()
    assert ack["status"] == "failure"
    assert "position.x" in ack["error"]
