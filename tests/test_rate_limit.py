"""Tests for the in-memory fixed-window rate limiter."""

from unittest.mock import patch

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from app.core.config import settings
from app.core.rate_limit import enforce_rate_limit, ip_rate_limit


def make_request(ip: str = "10.0.0.1", forwarded: str | None = None) -> Request:
    headers = [(b"x-forwarded-for", forwarded.encode())] if forwarded else []
    return Request({"type": "http", "method": "POST", "path": "/", "headers": headers, "client": (ip, 1234)})


@pytest.fixture(autouse=True)
def _enabled(monkeypatch):
    monkeypatch.setattr(settings, "rate_limit_enabled", True)


class TestRateLimit:
    def test_limit_is_enforced(self):
        check = ip_rate_limit("login", limit_per_minute=2)
        request = make_request()

        check(request)
        check(request)
        with pytest.raises(HTTPException) as exc_info:
            check(request)

        assert exc_info.value.status_code == 429
        assert "Retry-After" in exc_info.value.headers

    def test_clients_are_counted_separately(self):
        check = ip_rate_limit("login", limit_per_minute=1)

        check(make_request("10.0.0.1"))
        check(make_request("10.0.0.2"))

    def test_forwarded_header_wins(self):
        check = ip_rate_limit("signup", limit_per_minute=1)

        check(make_request("10.0.0.1", forwarded="203.0.113.5, 10.0.0.1"))
        with pytest.raises(HTTPException):
            check(make_request("10.0.0.9", forwarded="203.0.113.5"))

    def test_window_resets(self):
        request = make_request()
        with patch("app.core.rate_limit._now", return_value=1000.0):
            enforce_rate_limit(request, user_id="u1", limit_per_minute=1, scope="api")
        with patch("app.core.rate_limit._now", return_value=1061.0):
            enforce_rate_limit(request, user_id="u1", limit_per_minute=1, scope="api")

    def test_disabled_limiter_allows_everything(self, monkeypatch):
        monkeypatch.setattr(settings, "rate_limit_enabled", False)
        check = ip_rate_limit("login", limit_per_minute=1)

        for _ in range(5):
            check(make_request())
