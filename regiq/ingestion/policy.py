"""
Per-adapter execution policy.

An AdapterConfig is attached to an adapter once, at construction, and is
never mutated afterwards. It declares how aggressively a source may be
called: authentication style, rate limits, retry/backoff, response caching,
the hard request deadline and the circuit-breaker thresholds the registry
enforces for that source.
"""

from dataclasses import dataclass, field, replace
from enum import Enum

from regiq.ingestion.http_client import RetryConfig


class AuthType(str, Enum):
    API_KEY = "api_key"
    BEARER = "bearer"
    BASIC = "basic"
    OAUTH = "oauth"


@dataclass(frozen=True)
class AuthConfig:
    """Where an API key goes: a query parameter or a header."""

    type: AuthType = AuthType.API_KEY
    key_param: str | None = None
    header_name: str | None = None


@dataclass(frozen=True)
class RateLimitConfig:
    """Outbound call budget. ``burst_limit`` caps the per-minute bucket size."""

    requests_per_hour: int
    requests_per_minute: int | None = None
    burst_limit: int | None = None


@dataclass(frozen=True)
class CacheConfig:
    ttl_seconds: int = 300
    use_etag: bool = False
    use_if_modified_since: bool = False

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0


@dataclass(frozen=True)
class CircuitBreakerConfig:
    failure_threshold: int = 5
    reset_timeout_ms: int = 60_000

    @property
    def reset_timeout_seconds(self) -> float:
        return self.reset_timeout_ms / 1000.0


@dataclass(frozen=True)
class AdapterConfig:
    """Complete, immutable policy for one adapter instance."""

    rate_limit: RateLimitConfig
    auth: AuthConfig = field(default_factory=AuthConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    timeout_ms: int = 30_000
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    def with_timeout(self, timeout_ms: int | None) -> "AdapterConfig":
        """Return a copy with a different deadline (or self when None)."""
        if timeout_ms is None:
            return self
        return replace(self, timeout_ms=timeout_ms)
