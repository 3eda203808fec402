"""Tests for the Flask status endpoint in web/."""

import pytest

from web.app import create_app


class StubHub:
    """Minimal stand-in exposing the stats the endpoint reads."""

    def get_stats(self):
        return {
            "agents": 2,
            "operators": 1,
            "agent_states": 2,
            "uptime": 42.5,
            "memory": 1048576,
            "started_at": 1700000000.0,
            "port": 8080,
        }


@pytest.fixture
def client():
    app = create_app(StubHub())
    app.config["TESTING"] = True
    return app.test_client()


class TestStatusEndpoints:
    """Tests for / and /health."""

    def test_index(self, client):
        response = client.get("/")
        data = response.get_json()

        assert response.status_code == 200
        assert data["status"] == "online"
        assert data["service"] == "relayhub"
        assert data["agents"] == 2
        assert data["operators"] == 1
        assert isinstance(data["timestamp"], float)

    def test_health(self, client):
        data = client.get("/health").get_json()

        assert data == {
            "status": "healthy",
            "agents": 2,
            "operators": 1,
            "memory": 1048576,
            "uptime": 42.5,
        }

    def test_no_hub(self):
        """Test the endpoint reports unavailability before the hub is attached."""
        client = create_app().test_client()
        assert client.get("/").status_code == 503
        assert client.get("/health").status_code == 503

    def test_read_only(self, client):
        assert client.post("/").status_code == 405


class TestAgainstRealHub:
    """Tests with a RelayServer instance that is not listening."""

    def test_counts(self, hub):
        client = create_app(hub).test_client()
        data = client.get("/health").get_json()

        assert data["agents"] == 0
        assert data["operators"] == 0
        assert data["memory"] > 0
