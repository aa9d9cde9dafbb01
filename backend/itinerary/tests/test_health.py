from itinerary.api import health as health_api


def test_health_endpoint_reports_routes_configuration(client):
    response = client.get("/api/v1/health")
    assert response.status_code == 200

    body = response.json()
    assert body["status"] == "ok"
    assert body["env"] == "test"
    assert body["feature_google_routes"] is True
    assert body["google_routes_configured"] is True


def test_health_live_endpoint_returns_200(client):
    response = client.get("/health/live")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["env"] == "test"


def test_health_ready_endpoint_returns_200(client):
    response = client.get("/health/ready")
    assert response.status_code == 200
    body = response.json()
    assert body["ready"] is True
    assert body["checks"]["cache"] == {"status": "ready", "backend": "memory"}
    assert body["checks"]["google_routes"]["status"] == "ready"


def test_health_ready_returns_503_when_routes_unready(client, monkeypatch):
    monkeypatch.setattr(
        health_api,
        "_check_routes_ready",
        lambda: {"status": "unready", "detail": "Google Routes API key is not configured"},
    )
    response = client.get("/health/ready")
    assert response.status_code == 503
    body = response.json()
    assert body["ready"] is False
    assert body["status"] == "degraded"


def test_health_ready_skips_routes_when_feature_disabled(client, monkeypatch):
    monkeypatch.setenv("FEATURE_GOOGLE_ROUTES", "false")
    health_api.get_settings.cache_clear()
    response = client.get("/health/ready")
    assert response.status_code == 200
    assert response.json()["checks"]["google_routes"]["status"] == "skipped"
