from fastapi.testclient import TestClient

from rewind.main import app

client = TestClient(app)


def test_health_endpoint() -> None:
    """Verifies the health endpoint returns the correct 200 payload."""
    response = client.get("/health")

    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "ok"
    assert data["service"] == "rewind-guests"
    assert data["version"] == "0.1.0"
