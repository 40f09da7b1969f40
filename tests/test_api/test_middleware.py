"""Tests for request deadlines, request correlation and rate-limit keying."""

import asyncio

from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.requests import Request

from regiq.api.app import create_app
from regiq.api.auth import verify_api_key
from regiq.api.dependencies import get_registry
from regiq.api.middleware.request_context import RequestContextMiddleware
from regiq.api.middleware.timeout import TimeoutMiddleware
from regiq.api.rate_limit import default_limit, query_limit, rate_limit_key
from regiq.ingestion.base_adapter import stable_hash
from regiq.ingestion.schemas import SourceResult


def _create_test_app(timeout: float = 1.0) -> FastAPI:
    app = FastAPI()
    app.add_middleware(TimeoutMiddleware, timeout_seconds=timeout)

    @app.get("/fast")
    async def fast():
        return {"status": "ok"}

    @app.get("/slow")
    async def slow():
        await asyncio.sleep(10)
        return {"status": "ok"}

    @app.get("/health")
    async def health():
        await asyncio.sleep(0.2)
        return {"status": "healthy"}

    @app.get("/healthcheck-report")
    async def lookalike():
        await asyncio.sleep(10)
        return {"status": "ok"}

    return app


def _request(headers=None, client=None) -> Request:
    scope = {"type": "http", "method": "GET", "path": "/sources", "headers": headers or []}
    if client:
        scope["client"] = client
    return Request(scope)


class TestTimeoutMiddleware:
    def test_fast_request_succeeds(self):
        client = TestClient(_create_test_app(timeout=5.0))

        response = client.get("/fast")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_slow_request_returns_failed_source_result_shape(self):
        client = TestClient(_create_test_app(timeout=0.1))

        response = client.get("/slow")

        assert response.status_code == 504
        data = response.json()
        assert data["error_type"] == "timeout"
        assert data["error"] == "Request timed out after 0.1s"
        assert data["timeout_seconds"] == 0.1
        # Parses as a failed SourceResult once a source name is attached
        parsed = SourceResult(source="api", **{k: v for k, v in data.items() if k != "timeout_seconds"})
        assert parsed.success is False

    def test_health_excluded_from_timeout(self):
        client = TestClient(_create_test_app(timeout=0.05))

        assert client.get("/health").status_code == 200

    def test_exemption_matches_whole_path_segments(self):
        client = TestClient(_create_test_app(timeout=0.05))

        assert client.get("/healthcheck-report").status_code == 504


class TestRequestContextMiddleware:
    def _app(self) -> FastAPI:
        app = FastAPI()
        app.add_middleware(RequestContextMiddleware)

        @app.get("/ping")
        async def ping():
            return {"ok": True}

        return app

    def test_generates_request_id(self):
        resp = TestClient(self._app()).get("/ping")

        assert len(resp.headers["X-Request-ID"]) == 32

    def test_correlation_id_is_reused(self):
        resp = TestClient(self._app()).get("/ping", headers={"X-Correlation-ID": "corr-9"})

        assert resp.headers["X-Request-ID"] == "corr-9"


class TestRateLimitKey:
    def test_api_key_is_hashed(self):
        request = _request(headers=[(b"x-api-key", b"test-key-123")])

        key = rate_limit_key(request)

        assert key == f"key:{stable_hash('test-key-123')}"
        assert "test-key-123" not in key

    def test_falls_back_to_client_address(self):
        request = _request(client=("192.168.1.100", 12345))

        assert rate_limit_key(request) == "ip:192.168.1.100"


class TestLimits:
    def test_query_budget_is_separate(self, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_DEFAULT", "100/minute")
        monkeypatch.setenv("RATE_LIMIT_QUERY", "5/minute")

        assert default_limit() == "100/minute"
        assert query_limit() == "5/minute"


class TestUnhandledErrors:
    def test_body_mirrors_failed_source_result(self):
        async def broken_registry():
            raise RuntimeError("registry unavailable")

        app = create_app()
        app.dependency_overrides[verify_api_key] = lambda: "test-key"
        app.dependency_overrides[get_registry] = broken_registry
        client = TestClient(app, raise_server_exceptions=False)

        resp = client.get("/sources")

        assert resp.status_code == 500
        assert resp.json() == {
            "success": False,
            "data": [],
            "error": "Internal server error",
            "error_type": "unknown_error",
        }
