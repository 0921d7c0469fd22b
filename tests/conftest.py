"""Shared fixtures."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from checkpoint_racer.config import RaceConfig
from checkpoint_racer.telemetry.storage import RaceStorage
from checkpoint_racer.web.app import create_app


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "race_test.db")


@pytest.fixture
def storage(db_path):
    s = RaceStorage(db_path)
    yield s
    s.close()


@pytest.fixture
def race_config(db_path):
    return RaceConfig(db_path=db_path)


@pytest.fixture
def client(race_config):
    """FastAPI test client backed by a fresh database."""
    with TestClient(create_app(race_config)) as c:
        yield c
