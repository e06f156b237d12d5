"""Tests for API security: token check, tenant header and rate limiting."""

import pytest

from feedbackhub.api.security import RateLimiter
from feedbackhub.config import settings


class TestRateLimiter:
    """Sliding-window limiter."""

    @pytest.fixture
    def limiter(self):
        return RateLimiter()

    def test_allows_up_to_limit(self, limiter):
        results = [limiter.is_allowed("ip", limit=3, window=60) for _ in range(3)]
        assert results == [(True, 2), (True, 1), (True, 0)]

    def test_blocks_over_limit(self, limiter):
        for _ in range(3):
            limiter.is_allowed("ip", limit=3, window=60)
        assert limiter.is_allowed("ip", limit=3, window=60) == (False, 0)
        assert 0 < limiter.get_retry_after("ip", 60) <= 60

    def test_keys_are_independent(self, limiter):
        limiter.is_allowed("a", limit=1, window=60)
        assert limiter.is_allowed("a", limit=1, window=60)[0] is False
        assert limiter.is_allowed("b", limit=1, window=60)[0] is True

    def test_old_requests_expire(self, limiter, monkeypatch):
        import feedbackhub.api.security as security

        now = [1000.0]
        monkeypatch.setattr(security.time, "time", lambda: now[0])

        limiter.is_allowed("ip", limit=1, window=10)
        assert limiter.is_allowed("ip", limit=1, window=10)[0] is False

        now[0] += 11
        assert limiter.is_allowed("ip", limit=1, window=10)[0] is True

    def test_reset(self, limiter):
        limiter.is_allowed("ip", limit=1, window=60)
        limiter.reset()
        assert limiter.is_allowed("ip", limit=1, window=60)[0] is True


class TestApiToken:
    """Token is optional in dev and enforced once configured."""

    HEADERS = {"X-User-Id": "tenant-1"}

    def test_no_token_configured_allows_requests(self, client):
        assert client.get("/usage", headers=self.HEADERS).status_code == 200

    def test_missing_token_rejected(self, client, monkeypatch):
        monkeypatch.setattr(settings, "api_token", "secret")
        response = client.get("/usage", headers=self.HEADERS)
        assert response.status_code == 401
        assert "api key" in response.json()["detail"].lower()

    def test_wrong_token_rejected(self, client, monkeypatch):
        monkeypatch.setattr(settings, "api_token", "secret")
        response = client.get("/usage", headers={**self.HEADERS, "X-API-Key": "nope"})
        assert response.status_code == 401

    def test_valid_token_accepted(self, client, monkeypatch):
        monkeypatch.setattr(settings, "api_token", "secret")
        response = client.get("/usage", headers={**self.HEADERS, "X-API-Key": "secret"})
        assert response.status_code == 200

    def test_admin_requires_token(self, client, monkeypatch):
        monkeypatch.setattr(settings, "api_token", "secret")
        assert client.get("/admin/metrics").status_code == 401
        assert client.get("/admin/metrics", headers={"X-API-Key": "secret"}).status_code == 200


class TestTenantHeader:
    def test_missing_user_id_rejected(self, client):
        response = client.get("/usage")
        assert response.status_code == 401
        assert "X-User-Id" in response.json()["detail"]

    def test_blank_user_id_rejected(self, client):
        assert client.get("/usage", headers={"X-User-Id": "  "}).status_code == 401
