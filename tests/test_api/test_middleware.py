"""Tests for the request timeout middleware and the rate limit key."""

import asyncio

from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.requests import Request

from grantsync.api.app import create_app
from grantsync.api.middleware.timeout import TimeoutMiddleware
from grantsync.api.rate_limit import limiter, rate_limit_key
from grantsync.config.settings import get_settings


def _slow_app(timeout_seconds: float = 0.05) -> FastAPI:
    app = FastAPI()
    app.add_middleware(TimeoutMiddleware, timeout_seconds=timeout_seconds)

    @app.get("/programs")
    async def programs():
        await asyncio.sleep(0.5)
        return {"ok": True}

    @app.get("/cron/sync-programs")
    async def cron():
        await asyncio.sleep(0.2)
        return {"ok": True}

    @app.get("/health")
    async def health():
        await asyncio.sleep(0.2)
        return {"ok": True}

    return app


class TestTimeoutMiddleware:
    def test_slow_request_returns_504_envelope(self):
        with TestClient(_slow_app()) as client:
            resp = client.get("/programs")

        assert resp.status_code == 504
        body = resp.json()
        assert body["success"] is False
        assert body["error"]["code"] == "TIMEOUT"
        assert body["error"]["details"] == {"timeout_seconds": 0.05}

    def test_cron_sync_is_not_cut_off(self):
        with TestClient(_slow_app()) as client:
            resp = client.get("/cron/sync-programs")

        assert resp.status_code == 200

    def test_health_is_excluded(self):
        with TestClient(_slow_app()) as client:
            resp = client.get("/health")

        assert resp.status_code == 200

    def test_fast_request_passes(self):
        with TestClient(_slow_app(timeout_seconds=5)) as client:
            resp = client.get("/programs")

        assert resp.status_code == 200
        assert resp.json() == {"ok": True}


def _request(headers: dict[str, str]) -> Request:
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/programs",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": ("203.0.113.9", 51000),
    })


class TestRateLimitKey:
    def test_keyed_by_api_key(self):
        assert rate_limit_key(_request({"X-API-KEY": "key-1"})) == "key-1"

    def test_falls_back_to_client_ip(self):
        assert rate_limit_key(_request({})) == "203.0.113.9"

    def test_cron_route_exempt_when_enabled(self, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_ENABLED", "true")
        get_settings.cache_clear()

        app = create_app()

        assert app.state.limiter is limiter
        assert "grantsync.api.routes.cron.sync_programs" in limiter._exempt_routes
