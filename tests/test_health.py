"""
Tests for /health endpoint.
"""
from __future__ import annotations

from unittest.mock import patch


def test_health_ok(app_client):
    """Test /health returns ok when the database answers."""
    _app, client = app_client

    res = client.get("/health")
    assert res.status_code == 200

    body = res.get_json()
    assert body["ok"] is True
    assert body["data"]["status"] == "ok"
    assert body["data"]["checks"]["db"] == "ok"
    assert res.headers["X-Request-ID"]


def test_health_db_down(app_client):
    """Test /health reports degraded when the database is unreachable."""
    _app, client = app_client

    with patch("server.ping_db", return_value=False):
        res = client.get("/health")
        assert res.status_code == 503

        body = res.get_json()
        assert body["data"]["status"] == "degraded"
        assert body["data"]["checks"]["db"] == "error"


def test_unknown_route_is_json_404(app_client):
    _app, client = app_client

    res = client.get("/nope")
    assert res.status_code == 404
    assert res.get_json()["error"]["code"] == "NOT_FOUND"
