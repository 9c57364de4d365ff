from fastapi.testclient import TestClient

from src.studio.api.main import app
from src.studio.services.ledger import SessionLedger
from .utils import create_session, demo_headers


client = TestClient(app)


def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["components"]["store"] == "InMemorySessionStore"


def test_metrics_exposed():
    client.get("/health")
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "studio_request_latency_seconds" in r.text
    assert 'route="/health"' in r.text


def test_generation_counter_recorded():
    headers = demo_headers(client)
    sid = create_session(client, headers)
    client.post("/api/ai/generate", json={"prompt": "A button with a label", "sessionId": sid}, headers=headers)
    text = client.get("/metrics").text
    assert 'studio_generation_requests_total{operation="generate",outcome="success"}' in text


def test_unknown_route_envelope():
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert r.json() == {"success": False, "message": "API endpoint not found"}


def test_unexpected_errors_become_500_envelope(monkeypatch):
    def _boom(self, session):
        raise RuntimeError("kaboom")

    monkeypatch.setattr(SessionLedger, "generation_context", _boom)
    headers = demo_headers(client)
    sid = create_session(client, headers)
    local = TestClient(app, raise_server_exceptions=False)
    r = local.post("/api/ai/generate", json={"prompt": "A button with a label", "sessionId": sid}, headers=headers)
    assert r.status_code == 500
    assert r.json() == {"success": False, "message": "Internal server error"}


def test_global_rate_limit(monkeypatch):
    monkeypatch.setenv("STUDIO_RATE_LIMIT_DISABLED", "0")
    monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "2")
    assert client.get("/health").status_code == 200
    assert client.get("/health").status_code == 200
    r = client.get("/health")
    assert r.status_code == 429
    assert int(r.headers["Retry-After"]) >= 1
    assert r.json()["success"] is False


def test_cors_preflight():
    r = client.options(
        "/api/sessions",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "GET"},
    )
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "http://localhost:3000"
