"""
Shared fixtures: temporary SQLite database and API client.
"""

import pytest
from fastapi.testclient import TestClient

from tracker import config
from tracker.core import database


@pytest.fixture
def db(tmp_path, monkeypatch):
    """Fresh database file per test."""
    monkeypatch.setattr(config, "DB_PATH", tmp_path / "caffeine.db")
    database.init_db()
    yield
    database.close_connection()


@pytest.fixture
def client(db):
    from tracker.main import app

    return TestClient(app)
