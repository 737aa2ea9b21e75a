"""Tests for the image generation quota endpoints and rate limit dependency.

All /v1 routes require X-API-Key; the end user is identified by X-User-Id
and anonymous callers by their forwarded client IP.
"""

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from craftgate.core import rate_limit as rate_limit_module
from craftgate.core.rate_limit import UNKNOWN_CLIENT_IP, get_client_ip
from craftgate.main import app

CONSUME_URL = "/v1/images/rate-limit/consume"
STATUS_URL = "/v1/images/rate-limit"


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def api_headers() -> dict[str, str]:
    return {"X-API-Key": "test-api-key-123"}


def _user(api_headers: dict[str, str], user_id: str) -> dict[str, str]:
    return {**api_headers, "X-User-Id": user_id}


def _request(headers: dict[str, str] | None = None, client: tuple | None = None) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


class TestGetClientIp:
    def test_prefers_first_forwarded_hop(self) -> None:
        request = _request({"X-Forwarded-For": "203.0.113.5, 10.0.0.1"}, ("10.0.0.2", 1234))
        assert get_client_ip(request) == "203.0.113.5"

    def test_falls_back_to_client_ip_header(self) -> None:
        request = _request({"Client-IP": "198.51.100.7"}, ("10.0.0.2", 1234))
        assert get_client_ip(request) == "198.51.100.7"

    def test_falls_back_to_socket_peer(self) -> None:
        assert get_client_ip(_request(client=("10.0.0.2", 1234))) == "10.0.0.2"

    def test_unknown_when_nothing_available(self) -> None:
        assert get_client_ip(_request()) == UNKNOWN_CLIENT_IP

    def test_blank_forwarded_header_is_ignored(self) -> None:
        request = _request({"X-Forwarded-For": " , 10.0.0.1"}, ("10.0.0.2", 1234))
        assert get_client_ip(request) == "10.0.0.2"


class TestConsumeEndpoint:
    def test_scenario_five_allowed_then_429(self, client: TestClient, api_headers) -> None:
        headers = _user(api_headers, "u1")

        remaining = []
        for _ in range(5):
            resp = client.post(CONSUME_URL, headers=headers)
            assert resp.status_code == 200
            body = resp.json()
            assert body["allowed"] is True
            assert body["limit"] == 5
            remaining.append(body["remaining"])
        assert remaining == [4, 3, 2, 1, 0]

        resp = client.post(CONSUME_URL, headers=headers)
        assert resp.status_code == 429
        error = resp.json()["error"]
        assert error["code"] == "rate_limit_exceeded"
        assert error["details"]["remaining"] == 0
        assert error["details"]["limit"] == 5
        assert 0 < error["details"]["retry_after"] <= 300
        assert "request_id" in error

        assert resp.headers["X-RateLimit-Remaining"] == "0"
        assert resp.headers["X-RateLimit-Limit"] == "5"
        assert 0 < int(resp.headers["Retry-After"]) <= 300
        assert resp.headers["X-RateLimit-Reset"] == str(error["details"]["reset_time"])

    def test_other_user_unaffected(self, client: TestClient, api_headers) -> None:
        for _ in range(6):
            client.post(CONSUME_URL, headers=_user(api_headers, "u1"))

        resp = client.post(CONSUME_URL, headers=_user(api_headers, "u2"))
        assert resp.status_code == 200
        assert resp.json()["remaining"] == 4

    def test_anonymous_callers_keyed_by_forwarded_ip(
        self, client: TestClient, api_headers
    ) -> None:
        first = {**api_headers, "X-Forwarded-For": "203.0.113.5, 10.0.0.1"}
        for _ in range(5):
            assert client.post(CONSUME_URL, headers=first).status_code == 200
        assert client.post(CONSUME_URL, headers=first).status_code == 429

        second = {**api_headers, "X-Forwarded-For": "203.0.113.6"}
        assert client.post(CONSUME_URL, headers=second).status_code == 200

    def test_success_carries_quota_headers(self, client: TestClient, api_headers) -> None:
        resp = client.post(CONSUME_URL, headers=_user(api_headers, "u1"))

        assert resp.headers["X-RateLimit-Limit"] == "5"
        assert resp.headers["X-RateLimit-Remaining"] == "4"
        assert int(resp.headers["X-RateLimit-Reset"]) == resp.json()["reset_time"]

    def test_headers_can_be_disabled(
        self, client: TestClient, api_headers, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(rate_limit_module.settings.app, "rate_limit_include_headers", False)
        headers = _user(api_headers, "u1")
        for _ in range(5):
            client.post(CONSUME_URL, headers=headers)

        resp = client.post(CONSUME_URL, headers=headers)
        assert resp.status_code == 429
        assert "Retry-After" not in resp.headers
        assert "X-RateLimit-Limit" not in resp.headers
        assert resp.json()["error"]["details"]["retry_after"] > 0

    def test_disabled_rate_limit_never_throttles(
        self, client: TestClient, api_headers, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(rate_limit_module.settings.app, "rate_limit_enabled", False)
        headers = _user(api_headers, "u1")

        for _ in range(10):
            resp = client.post(CONSUME_URL, headers=headers)
            assert resp.status_code == 200
            assert resp.json()["remaining"] == 5

    def test_disabled_rate_limit_reports_existing_quota(
        self, client: TestClient, api_headers, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        headers = _user(api_headers, "u1")
        for _ in range(2):
            client.post(CONSUME_URL, headers=headers)
        status = client.get(STATUS_URL, headers=headers).json()

        monkeypatch.setattr(rate_limit_module.settings.app, "rate_limit_enabled", False)
        for _ in range(6):
            resp = client.post(CONSUME_URL, headers=headers)
            assert resp.status_code == 200
            assert resp.json() == status
            assert resp.headers["X-RateLimit-Remaining"] == "3"

        monkeypatch.setattr(rate_limit_module.settings.app, "rate_limit_enabled", True)
        assert client.post(CONSUME_URL, headers=headers).json()["remaining"] == 2

    @pytest.mark.asyncio
    async def test_disabled_dependency_returns_peek(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(rate_limit_module.settings.app, "rate_limit_enabled", False)

        result = await rate_limit_module.enforce_image_generation_rate_limit(
            _request(client=("10.0.0.9", 1234)), user_id=None
        )

        assert result is not None
        assert result.allowed is True
        assert result.remaining == result.limit
        assert rate_limit_module.get_image_rate_limiter().limiter.remaining(
            "ip:10.0.0.9", result.limit
        ) == result.limit

    def test_policy_follows_settings(
        self, client: TestClient, api_headers, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(rate_limit_module.settings.app, "image_generation_limit", 2)
        monkeypatch.setattr(rate_limit_module.settings.app, "image_generation_window_seconds", 60)
        headers = _user(api_headers, "u1")

        assert client.post(CONSUME_URL, headers=headers).status_code == 200
        assert client.post(CONSUME_URL, headers=headers).status_code == 200
        resp = client.post(CONSUME_URL, headers=headers)
        assert resp.status_code == 429
        assert int(resp.headers["Retry-After"]) <= 60

    def test_requires_api_key(self, client: TestClient) -> None:
        resp = client.post(CONSUME_URL, headers={"X-User-Id": "u1"})
        assert resp.status_code == 403

    def test_rejects_malformed_user_id(self, client: TestClient, api_headers) -> None:
        resp = client.post(CONSUME_URL, headers=_user(api_headers, "bad user id"))

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_user_id"


class TestStatusEndpoint:
    def test_fresh_caller_has_full_quota(self, client: TestClient, api_headers) -> None:
        resp = client.get(STATUS_URL, headers=_user(api_headers, "u1"))

        assert resp.status_code == 200
        body = resp.json()
        assert body == {
            "allowed": True,
            "limit": 5,
            "remaining": 5,
            "reset_time": body["reset_time"],
        }

    def test_status_does_not_consume(self, client: TestClient, api_headers) -> None:
        headers = _user(api_headers, "u1")
        client.post(CONSUME_URL, headers=headers)

        for _ in range(10):
            assert client.get(STATUS_URL, headers=headers).json()["remaining"] == 4

        assert client.post(CONSUME_URL, headers=headers).json()["remaining"] == 3

    def test_status_reports_exhaustion(self, client: TestClient, api_headers) -> None:
        headers = _user(api_headers, "u1")
        for _ in range(5):
            client.post(CONSUME_URL, headers=headers)

        body = client.get(STATUS_URL, headers=headers).json()
        assert body["allowed"] is False
        assert body["remaining"] == 0

    def test_reset_key_unblocks_caller(self, client: TestClient, api_headers) -> None:
        headers = _user(api_headers, "u1")
        for _ in range(6):
            client.post(CONSUME_URL, headers=headers)

        rate_limit_module.get_image_rate_limiter().limiter.reset_key("user:u1")

        assert client.get(STATUS_URL, headers=headers).json()["remaining"] == 5
        assert client.post(CONSUME_URL, headers=headers).status_code == 200


def test_health_is_public(client: TestClient) -> None:
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_openapi_documents_api_key_and_public_health(client: TestClient) -> None:
    schema = client.get("/openapi.json").json()

    assert schema["components"]["securitySchemes"]["ApiKeyAuth"]["name"] == "X-API-Key"
    assert schema["paths"]["/health"]["get"]["security"] == []
    assert {t["name"] for t in schema["tags"]} >= {"Images", "Health"}
