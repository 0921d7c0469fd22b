"""/health endpoint."""

from __future__ import annotations


def test_health_status_200(client):
    resp = client.get("/health")
    assert resp.status_code == 200


def test_health_body(client):
    data = client.get("/health").json()
    assert data["status"] == "ok"
    assert data["version"] == "0.1.0"
    assert data["checkpoints"] == 0


def test_health_counts_checkpoints(client):
    client.post(
        "/api/checkpoints",
        json={
            "name": "A",
            "is_start_finish": False,
            "min": {"x": 0, "y": 0, "z": 0},
            "max": {"x": 1, "y": 1, "z": 1},
            "order": 1,
        },
    )
    assert client.get("/health").json()["checkpoints"] == 1
