"""Pytest fixtures for RegIQ tests."""

from collections.abc import Callable

import httpx
import pytest

from regiq.config.settings import Settings, get_settings
from regiq.ingestion.http_client import RetryConfig
from regiq.ingestion.policy import (
    AdapterConfig,
    AuthConfig,
    AuthType,
    CacheConfig,
    CircuitBreakerConfig,
    RateLimitConfig,
)
from regiq.ingestion.schemas import NormalizedResult, Urgency

_ENV_VARS = (
    "FDA_API_KEY",
    "USDA_API_KEY",
    "FSIS_API_KEY",
    "WHO_API_KEY",
    "API_KEYS",
    "HTTP_TIMEOUT_OVERRIDE_MS",
    "BATCH_CONCURRENCY",
    "RATE_LIMIT_ENABLED",
    "TRACING_ENABLED",
    "LOG_LEVEL",
    "ENVIRONMENT",
    "RATE_LIMIT_DEFAULT",
    "RATE_LIMIT_QUERY",
)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch):
    """Keep the developer's environment out of the cached settings."""
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings() -> Settings:
    """Settings configured for testing."""
    return Settings(
        environment="testing",
        log_level="DEBUG",
        fda_api_key="fda-key-1,fda-key-2",
        usda_api_key="usda-key",
    )


@pytest.fixture
def fast_retry() -> RetryConfig:
    """Retry policy with millisecond backoff and no jitter."""
    return RetryConfig(max_attempts=3, base_delay_ms=1, max_delay_ms=5, jitter=False)


@pytest.fixture
def make_config(fast_retry: RetryConfig) -> Callable[..., AdapterConfig]:
    """Build an AdapterConfig with generous rate limits and fast retries."""

    def factory(**overrides) -> AdapterConfig:
        values = {
            "rate_limit": RateLimitConfig(requests_per_hour=10_000, requests_per_minute=1_000),
            "auth": AuthConfig(type=AuthType.API_KEY, key_param="api_key"),
            "retry": fast_retry,
            "cache": CacheConfig(ttl_seconds=300, use_etag=True, use_if_modified_since=True),
            "timeout_ms": 2_000,
            "circuit_breaker": CircuitBreakerConfig(failure_threshold=5, reset_timeout_ms=60_000),
        }
        values.update(overrides)
        return AdapterConfig(**values)

    return factory


@pytest.fixture
def mock_client() -> Callable[[Callable], httpx.AsyncClient]:
    """Create an httpx.AsyncClient backed by a MockTransport handler."""

    def factory(handler: Callable) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def sample_record() -> NormalizedResult:
    """A normalized FDA recall."""
    return NormalizedResult(
        id="fda_F-0123-2024",
        external_id="F-0123-2024",
        source="FDA",
        title="Peanut butter crackers",
        summary="Undeclared peanut allergen",
        urgency=Urgency.CRITICAL,
        published_date="2024-03-15T00:00:00+00:00",
        metadata={"classification": "Class I"},
    )
