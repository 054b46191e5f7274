"""
Integration Tests for the HTTP API
==================================
"""

import pytest
from fastapi.testclient import TestClient

from otp_guard.api import create_app
from otp_guard.config import Settings
from otp_guard.rate_limit import AddressRateLimiter

from .conftest import FlakyStore, RecordingSender


@pytest.fixture
def app_parts():
    store = FlakyStore()
    sender = RecordingSender()
    limiter = AddressRateLimiter(requests_per_minute=100)
    app = create_app(settings=Settings.from_env({}), store=store, sender=sender, limiter=limiter)
    return app, store, sender


@pytest.fixture
def client(app_parts):
    app, _, _ = app_parts
    with TestClient(app) as client:
        yield client


def request_code(client, email="user@example.com"):
    return client.post("/auth/otp", json={"email": email})


class TestAuthRoutes:
    """Tests for /auth/otp and /auth/verify."""

    def test_request_and_verify(self, client, app_parts):
        _, _, sender = app_parts
        response = request_code(client)
        assert response.status_code == 200
        assert response.json() == {"message": "OTP sent successfully."}

        response = client.post("/auth/verify", json={"email": "user@example.com", "otp": sender.last_code})
        assert response.status_code == 200
        assert response.json() == {"verified": True, "email": "user@example.com"}

    def test_invalid_email(self, client):
        response = request_code(client, "not-an-email")
        assert response.status_code == 400
        assert response.json()["field"] == "email"

    def test_malformed_body(self, client):
        response = client.post("/auth/otp", json={"wrong": "field"})
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request body", "code": "invalid_input"}

    def test_wrong_and_unknown_look_the_same(self, client, app_parts):
        _, _, sender = app_parts
        request_code(client)
        bad = "000000" if sender.last_code != "000000" else "111111"

        wrong = client.post("/auth/verify", json={"email": "user@example.com", "otp": bad})
        unknown = client.post("/auth/verify", json={"email": "nobody@example.com", "otp": bad})

        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json() == {
            "error": "Invalid or expired OTP",
            "code": "invalid_or_expired_code",
        }

    def test_store_failure_is_503(self, client, app_parts):
        _, store, sender = app_parts
        store.fail_save = True
        response = request_code(client)
        assert response.status_code == 503
        assert sender.sent == []

    def test_rate_limited(self):
        limiter = AddressRateLimiter(requests_per_minute=2)
        app = create_app(
            settings=Settings.from_env({}),
            store=FlakyStore(),
            sender=RecordingSender(),
            limiter=limiter,
        )
        with TestClient(app) as client:
            assert request_code(client).status_code == 200
            assert request_code(client).status_code == 200
            response = request_code(client)

        assert response.status_code == 429
        assert response.json()["code"] == "rate_limited"
        assert int(response.headers["Retry-After"]) >= 1


class TestHealthRoutes:
    """Tests for health, readiness and metrics."""

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["service"] == "otp-guard"
        assert body["components"]["session_store"]["status"] == "connected"
        assert body["components"]["rate_limiter"]["status"] == "running"

    def test_liveness(self, client):
        assert client.get("/health/live").json() == {"status": "alive"}

    def test_readiness(self, client, app_parts):
        _, store, _ = app_parts
        assert client.get("/health/ready").status_code == 200
        store.fail_find = True
        response = client.get("/health/ready")
        assert response.status_code == 503
        assert client.get("/health").json()["status"] == "unhealthy"

    def test_metrics(self, client):
        request_code(client)
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "otp_issued_total" in response.text
