"""Shared fixtures for API tests."""

import pytest
from fastapi.testclient import TestClient

from regiq.api.app import create_app
from regiq.api.auth import verify_api_key
from regiq.api.dependencies import get_filter_engine, get_registry
from regiq.config.settings import get_settings
from regiq.ingestion.base_adapter import BaseSourceAdapter
from regiq.ingestion.placeholder_adapter import PlaceholderAdapter
from regiq.ingestion.policy import AdapterConfig, RateLimitConfig
from regiq.ingestion.registry import SourceAdapterRegistry
from regiq.ingestion.schemas import (
    APIRequest,
    NormalizedResult,
    SourceErrorType,
    SourceResult,
    SourceType,
    Urgency,
)
from regiq.services.filter_engine import SourceFilterEngine


class CannedAdapter(BaseSourceAdapter):
    """Adapter that answers every query with a fixed result."""

    default_config = AdapterConfig(rate_limit=RateLimitConfig(requests_per_hour=10_000))

    def __init__(self, source: str, records: list[NormalizedResult] | None = None, error: str | None = None):
        self._source = source
        self.records = records or []
        self.error = error
        self.queries = []
        super().__init__()

    def get_source_type(self) -> str:
        return self._source

    def _build_request(self, source_filter):
        return APIRequest(url=f"https://canned.test/{self._source.lower()}")

    def _transform(self, item):
        raise NotImplementedError

    async def execute_with_policy(self, source_filter):
        self.queries.append(source_filter)
        if self.error:
            return SourceResult.failure(self._source, self.error, SourceErrorType.SERVER_ERROR)
        return SourceResult(source=self._source, success=True, data=list(self.records))


def _record(source: str, n: int, date: str, urgency: Urgency) -> NormalizedResult:
    return NormalizedResult(
        id=f"{source.lower()}_{n}",
        external_id=str(n),
        source=source,
        title=f"{source} notice {n}",
        urgency=urgency,
        published_date=date,
    )


@pytest.fixture
def registry() -> SourceAdapterRegistry:
    """Registry with two canned agencies, one failing agency and a placeholder."""
    return SourceAdapterRegistry(
        adapters=[
            CannedAdapter(
                "FDA",
                [
                    _record("FDA", 1, "2024-03-01T00:00:00+00:00", Urgency.CRITICAL),
                    _record("FDA", 2, "2024-01-01T00:00:00+00:00", Urgency.LOW),
                ],
            ),
            CannedAdapter("WHO", [_record("WHO", 1, "2024-02-01T00:00:00+00:00", Urgency.HIGH)]),
            CannedAdapter("USDA", error="HTTP 503: request failed after 3 attempts"),
            PlaceholderAdapter(SourceType.EPA),
        ]
    )


def _client_for(app, registry):
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_filter_engine] = lambda: SourceFilterEngine(registry)
    return TestClient(app)


@pytest.fixture
def client(registry):
    """FastAPI TestClient with dependency overrides."""
    app = create_app()
    app.dependency_overrides[verify_api_key] = lambda: "test-key"

    with _client_for(app, registry) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def secured_client(registry, monkeypatch):
    """TestClient with API keys enforced."""
    monkeypatch.setenv("API_KEYS", "good-key,other-key")
    get_settings.cache_clear()
    app = create_app()

    with _client_for(app, registry) as c:
        yield c

    app.dependency_overrides.clear()
