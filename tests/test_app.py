from fastapi.testclient import TestClient

from script_labs import __version__
from script_labs.main import app
from script_labs.modules.labs.routes import get_lab_service


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Server is healthy"
    assert body["version"] == __version__
    assert body["nodeEnv"] == "test"
    assert "timestamp" in body


def test_security_headers(client):
    response = client.get("/health")
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["Referrer-Policy"] == "no-referrer"
    assert "default-src 'self'" in response.headers["Content-Security-Policy"]


def test_security_headers_on_errors(client):
    response = client.get("/api/labs")
    assert response.status_code == 401
    assert response.headers["X-Frame-Options"] == "DENY"


def test_cors_preflight_for_allowed_origin(client):
    response = client.options(
        "/api/labs",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Authorization, Content-Type",
        },
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"
    assert response.headers["access-control-allow-credentials"] == "true"


def test_cors_preflight_for_unknown_origin(client):
    response = client.options(
        "/api/labs",
        headers={"Origin": "https://evil.example", "Access-Control-Request-Method": "POST"},
    )
    assert "access-control-allow-origin" not in response.headers


class TestOriginCheck:
    def test_foreign_origin_blocked(self, client, auth_headers):
        response = client.post(
            "/api/labs",
            json={"title": "T", "description": "D"},
            headers={**auth_headers, "Origin": "https://evil.example"},
        )
        assert response.status_code == 403
        body = response.json()
        assert body["success"] is False
        assert body["error"] == {"message": "Origin/Referer not allowed", "code": "CSRF_ORIGIN_REFERER"}

    def test_foreign_referer_blocked(self, client, auth_headers):
        response = client.delete(
            "/api/labs/1",
            headers={**auth_headers, "Referer": "https://evil.example/page"},
        )
        assert response.status_code == 403

    def test_allowed_origin_passes(self, client, auth_headers):
        response = client.post(
            "/api/labs",
            json={"title": "T", "description": "D"},
            headers={**auth_headers, "Origin": "http://localhost:3000", "Referer": "http://localhost:3000/labs"},
        )
        assert response.status_code == 201

    def test_no_origin_passes(self, client, auth_headers):
        response = client.post("/api/labs", json={"title": "T", "description": "D"}, headers=auth_headers)
        assert response.status_code == 201

    def test_reads_are_not_checked(self, client, auth_headers):
        response = client.get("/api/labs", headers={**auth_headers, "Origin": "https://evil.example"})
        assert response.status_code == 200


def test_stats_route_is_development_only(client):
    assert client.get("/api/stats").status_code == 404


def test_requests_are_counted(client, auth_headers):
    stats = client.app.state.request_stats
    before = stats.snapshot()["requests"]
    client.get("/api/labs", headers=auth_headers)
    client.get("/api/labs/999", headers=auth_headers)
    snapshot = stats.snapshot()
    assert snapshot["requests"] == before + 2
    assert snapshot["endpoints"]["GET /api/labs"] >= 1
    assert snapshot["endpoints"]["GET /api/labs/{lab_id}"] >= 1
    assert snapshot["errors"] >= 1


def test_stats_use_mounted_route_templates(client, auth_headers):
    client.get("/api/labs/7", headers=auth_headers)
    client.post("/api/auth/login", json={"email": "a@b.com", "password": "secret1"})
    endpoints = client.app.state.request_stats.snapshot()["endpoints"]
    assert "GET /api/labs/{lab_id}" in endpoints
    assert "POST /api/auth/login" in endpoints
    assert "GET /labs/{lab_id}" not in endpoints


def test_unexpected_exception_gets_error_envelope(client, auth_headers):
    def broken_service():
        raise RuntimeError("service wiring failed")

    app.dependency_overrides[get_lab_service] = broken_service
    # The server error middleware re-raises after responding
    with TestClient(app, raise_server_exceptions=False) as raw_client:
        response = raw_client.get("/api/labs", headers=auth_headers)

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["status"] == "error"
    assert body["method"] == "GET"
