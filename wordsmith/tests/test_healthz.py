from fastapi.testclient import TestClient

import wordsmith.api.health as health_api
from wordsmith.main import app

client = TestClient(app)


def test_healthz_always_ok():
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json().get("status") == "ok"


def test_readyz_ok_with_tables():
    resp = client.get("/readyz")
    assert resp.status_code == 200


def test_readyz_reports_missing_tables(monkeypatch):
    class FakeInspector:
        def has_table(self, name):
            return name != "billing_events"

    monkeypatch.setattr(health_api, "inspect", lambda engine: FakeInspector())
    resp = client.get("/readyz")
    assert resp.status_code == 503
    assert "billing_events" in resp.json()["detail"]


def test_readyz_db_unreachable(monkeypatch):
    class FakeEngine:
        def connect(self):
            raise RuntimeError("connection refused")

    monkeypatch.setattr(health_api, "get_engine", lambda: FakeEngine())
    resp = client.get("/readyz")
    assert resp.status_code == 503
    assert resp.json()["detail"] == "database unreachable"
