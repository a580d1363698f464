"""Tests for health endpoints."""

from fastapi.testclient import TestClient

from bookstore.infrastructure.broker import get_broker
from bookstore.infrastructure.database import configure_database
from bookstore.main import app


async def test_health_check(client):
    """Health check returns service info without authentication."""
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "bookstore-api"
    assert "version" in data


async def test_ready_with_database(client):
    response = client.get("/ready")

    assert response.status_code == 200
    assert response.json() == {"status": "ready"}


async def test_ready_without_database(tmp_path):
    configure_database(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'nowhere.db'}")

    with TestClient(app) as test_client:
        response = test_client.get("/ready")

    assert response.status_code == 503
    assert response.json() == {"status": "not_ready"}


async def test_ready_without_broker(client):
    get_broker().available = False

    response = client.get("/ready")

    assert response.status_code == 503
    assert response.json() == {"status": "not_ready"}
