"""/api/players, /api/leaderboard and /api/laps endpoints."""

from __future__ import annotations

import pytest


@pytest.fixture
def team_id(client):
    return client.post("/api/teams", json={"name": "Red", "color": "#f00"}).json()["team_id"]


def test_put_and_get_player(client, team_id):
    resp = client.put("/api/players/p1", json={"name": "Ada", "team_id": team_id})
    assert resp.status_code == 200

    data = client.get("/api/players/p1").json()
    assert data["name"] == "Ada"
    assert data["team_name"] == "Red"
    assert data["team_color"] == "#f00"
    assert data["lap_count"] == 0
    assert data["is_active"] is True
    assert data["on_pitstop"] is False


def test_put_player_unknown_team_422(client):
    resp = client.put("/api/players/p1", json={"name": "Ada", "team_id": 999})
    assert resp.status_code == 422


def test_put_player_rejects_partial_body(client, team_id):
    resp = client.put("/api/players/p1", json={"team_id": team_id})
    assert resp.status_code == 422


def test_put_player_rejects_lap_count(client, team_id):
    resp = client.put(
        "/api/players/p1", json={"name": "Ada", "team_id": team_id, "lap_count": 9}
    )
    assert resp.status_code == 422


def test_get_missing_player_404(client):
    assert client.get("/api/players/nobody").status_code == 404


def test_list_players(client, team_id):
    client.put("/api/players/p2", json={"name": "Bea", "team_id": team_id})
    client.put("/api/players/p1", json={"name": "Ada", "team_id": team_id})
    assert [p["name"] for p in client.get("/api/players").json()] == ["Ada", "Bea"]


def test_delete_player(client, team_id):
    client.put("/api/players/p1", json={"name": "Ada", "team_id": team_id})
    assert client.delete("/api/players/p1").status_code == 200
    assert client.get("/api/players/p1").status_code == 404
    assert client.delete("/api/players/p1").status_code == 404


def test_toggle_pitstop_and_active(client, team_id):
    client.put("/api/players/p1", json={"name": "Ada", "team_id": team_id})

    resp = client.put("/api/players/p1/pitstop")
    assert resp.json()["value"] is True
    resp = client.put("/api/players/p1/active")
    assert resp.json()["value"] is False
    assert client.get("/api/players/p1").json()["is_active"] is False


def test_toggle_missing_player_404(client):
    assert client.put("/api/players/ghost/pitstop").status_code == 404
    assert client.put("/api/players/ghost/active").status_code == 404


def test_leaderboard_and_laps(client, team_id):
    client.put("/api/players/p1", json={"name": "Ada", "team_id": team_id})
    client.put("/api/players/p2", json={"name": "Bea", "team_id": team_id})
    storage = client.app.state.race.storage
    storage.increment_player_laps("p2")
    storage.record_lap("p2", team_id, 10.0)
    storage.record_lap("p2", team_id, 20.0)

    board = client.get("/api/leaderboard").json()
    assert [p["player_id"] for p in board] == ["p2", "p1"]

    assert client.get("/api/players/p2/laps").json() == [20.0, 10.0]

    laps = client.get("/api/laps", params={"limit": 1}).json()
    assert laps == [{"player_id": "p2", "name": "Bea", "color": "#f00", "timestamp": 20.0}]


def test_add_manual_lap(client, team_id):
    client.put("/api/players/p1", json={"name": "Ada", "team_id": team_id})

    resp = client.post("/api/players/p1/laps")
    assert resp.status_code == 200
    data = resp.json()
    assert data["message"] == "Lap added successfully"
    assert isinstance(data["lap_id"], int)
    assert client.get("/api/players/p1").json()["lap_count"] == 1
    assert len(client.get("/api/players/p1/laps").json()) == 1


def test_add_manual_lap_missing_player_404(client):
    assert client.post("/api/players/ghost/laps").status_code == 404


def test_delete_last_lap(client, team_id):
    client.put("/api/players/p1", json={"name": "Ada", "team_id": team_id})
    storage = client.app.state.race.storage
    storage.add_manual_lap("p1", 10.0)
    storage.add_manual_lap("p1", 20.0)

    resp = client.delete("/api/players/p1/lap")
    assert resp.status_code == 200
    assert resp.json()["message"] == "Lap deleted successfully"
    assert client.get("/api/players/p1/laps").json() == [10.0]
    assert client.get("/api/players/p1").json()["lap_count"] == 1


def test_delete_last_lap_without_laps_404(client, team_id):
    client.put("/api/players/p1", json={"name": "Ada", "team_id": team_id})
    assert client.delete("/api/players/p1/lap").status_code == 404
    assert client.delete("/api/players/ghost/lap").status_code == 404


def test_manual_lap_counts_for_team_in_team_scope(tmp_path):
    from fastapi.testclient import TestClient

    from checkpoint_racer.config import RaceConfig
    from checkpoint_racer.web.app import create_app

    cfg = RaceConfig(db_path=str(tmp_path / "team.db"), lap_scope="team")
    with TestClient(create_app(cfg)) as c:
        team = c.post("/api/teams", json={"name": "Red", "color": "#f00"}).json()["team_id"]
        c.put("/api/players/p1", json={"name": "Ada", "team_id": team})
        c.post("/api/players/p1/laps")

        assert c.get("/api/teams/leaderboard").json()[0]["lap_count"] == 1
        board = c.get("/api/leaderboard").json()
        assert board[0]["lap_count"] == 1

        c.delete("/api/players/p1/lap")
        assert c.get("/api/teams/leaderboard").json()[0]["lap_count"] == 0
