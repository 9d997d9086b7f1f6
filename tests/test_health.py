"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version, and components fields
  - components.database is checked and reports 'ok' against a live database
  - a failing database check turns the overall status into 'degraded'
  - No authentication required
  - requests with a Host outside ALLOWED_HOSTS are refused with 400
"""

from __future__ import annotations

from api.main import VERSION


def test_health_returns_200_with_components(api_client):
    """Health endpoint returns 200 with status, version, and components."""
    client, _token, _ = api_client
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == VERSION
    assert data["components"] == {"app": "ok", "database": "ok"}


def test_health_reports_degraded_database(api_client, monkeypatch):
    """A failing database check is reported, not raised."""
    client, _, _ = api_client
    services = client.app.state.services
    monkeypatch.setattr(services, "database_ok", lambda: False)
    data = client.get("/api/v1/health").json()
    assert data["status"] == "degraded"
    assert data["components"]["database"] == "error"


def test_health_no_auth_required(api_client):
    """Health endpoint is accessible without any authentication headers."""
    client, _, _ = api_client
    resp = client.get("/api/v1/health", headers={})
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_untrusted_host_is_rejected(api_client):
    """Only the hosts listed in ALLOWED_HOSTS reach the app."""
    client, _, _ = api_client
    resp = client.get("/api/v1/health", headers={"host": "evil.example.com"})
    assert resp.status_code == 400
    assert client.get("/api/v1/health").status_code == 200
