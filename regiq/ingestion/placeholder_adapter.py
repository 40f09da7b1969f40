"""
Placeholder adapter for declared-but-unimplemented sources.

These sources are listed by the registry so callers can discover them, but
no backend is wired: every query succeeds with no data and no network call.
"""

from collections.abc import Mapping
from typing import Any

from regiq.ingestion.base_adapter import BaseSourceAdapter
from regiq.ingestion.http_client import RetryConfig
from regiq.ingestion.policy import (
    AdapterConfig,
    AuthConfig,
    AuthType,
    CacheConfig,
    CircuitBreakerConfig,
    RateLimitConfig,
)
from regiq.ingestion.schemas import (
    APIRequest,
    NormalizedResult,
    SourceFilter,
    SourceResult,
    SourceType,
)

PLACEHOLDER_BASE_URL = "https://api.placeholder.com"

PLACEHOLDER_CONFIG = AdapterConfig(
    auth=AuthConfig(type=AuthType.API_KEY),
    rate_limit=RateLimitConfig(requests_per_hour=100),
    retry=RetryConfig(max_attempts=3, base_delay_ms=1000, max_delay_ms=10_000),
    cache=CacheConfig(ttl_seconds=300, use_etag=False, use_if_modified_since=False),
    timeout_ms=30_000,
    circuit_breaker=CircuitBreakerConfig(failure_threshold=5, reset_timeout_ms=60_000),
)

# Sources with a real adapter; everything else in SourceType is a placeholder
IMPLEMENTED_SOURCES = (SourceType.FDA, SourceType.USDA, SourceType.FSIS, SourceType.WHO)
PLACEHOLDER_SOURCES = tuple(s for s in SourceType if s not in IMPLEMENTED_SOURCES)


class PlaceholderAdapter(BaseSourceAdapter):
    default_config = PLACEHOLDER_CONFIG

    def __init__(self, source: SourceType | str, **kwargs):
        self._source = source.value if isinstance(source, SourceType) else str(source).upper()
        super().__init__(**kwargs)

    def get_source_type(self) -> str:
        return self._source

    @property
    def is_placeholder(self) -> bool:
        return True

    def _build_request(self, source_filter: SourceFilter) -> APIRequest:
        return APIRequest(
            url=f"{PLACEHOLDER_BASE_URL}/{self._source.lower()}",
            method="GET",
            headers={"Accept": "application/json"},
        )

    def normalize(self, response: Any) -> list[NormalizedResult]:
        return []

    def _transform(self, item: Mapping[str, Any]) -> NormalizedResult:
        raise NotImplementedError(f"{self._source} has no backend to normalize")

    async def execute_with_policy(self, source_filter: SourceFilter) -> SourceResult:
        return SourceResult(source=self._source, success=True, data=[])
