from fastapi.testclient import TestClient

from app import main


def test_health_endpoint_reports_loaded_network(api_client):
    """Health reports ok with the number of trips in the cache."""
    response = api_client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "trips": 25, "synthetic": 0}


def test_health_endpoint_carries_request_id(api_client):
    """Every response is tagged with a request id."""
    response = api_client.get("/api/v1/health", headers={"X-Request-Id": "abc"})
    assert response.headers["X-Request-Id"] == "abc"
    assert api_client.get("/api/v1/health").headers["X-Request-Id"]


def test_health_endpoint_reports_loading_before_startup(monkeypatch, test_settings):
    """Without the lifespan no network is built yet."""
    monkeypatch.setattr(main, "get_settings", lambda: test_settings)
    client = TestClient(main.create_app())

    response = client.get("/api/v1/health")

    assert response.status_code == 503
    assert response.json() == {"status": "loading"}
