# File: backend/tests/test_api_health.py
# Version: v0.2.0
"""
Basic smoke test for health endpoints.
"""
from fastapi.testclient import TestClient
from backend.app.core.config import settings
from backend.app.main import app


def test_health():
    client = TestClient(app)
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_healthz():
    client = TestClient(app)
    assert client.get("/healthz").status_code == 200


def test_version():
    client = TestClient(app)
    r = client.get("/api/version")
    assert r.status_code == 200
    assert r.json() == {"name": settings.APP_NAME, "version": settings.APP_VERSION}
