"""Tests for token-bucket rate limiting."""

import pytest
from prometheus_client import REGISTRY

from regiq.ingestion.base_adapter import AdapterRateLimiter, RateLimiter
from regiq.ingestion.policy import RateLimitConfig


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_burst_up_to_capacity_without_waiting(self, clock):
        limiter = RateLimiter(rate=3, per_seconds=0.03, clock=clock)

        waits = [await limiter.acquire() for _ in range(3)]

        assert waits == [0.0, 0.0, 0.0]

    @pytest.mark.asyncio
    async def test_waits_when_bucket_empty(self, clock):
        limiter = RateLimiter(rate=2, per_seconds=0.02, clock=clock)
        await limiter.acquire()
        await limiter.acquire()

        waited = await limiter.acquire()

        assert waited == pytest.approx(0.01)

    @pytest.mark.asyncio
    async def test_refills_over_time(self, clock):
        limiter = RateLimiter(rate=2, per_seconds=60.0, clock=clock)
        await limiter.acquire()
        await limiter.acquire()

        clock.advance(60.0)

        assert await limiter.acquire() == 0.0

    def test_capacity_defaults_to_rate(self):
        assert RateLimiter(rate=25).capacity == 25
        assert RateLimiter(rate=25, capacity=5).capacity == 5


class TestAdapterRateLimiter:
    def test_burst_limit_caps_minute_bucket(self):
        config = RateLimitConfig(requests_per_hour=1000, requests_per_minute=40, burst_limit=10)

        limiter = AdapterRateLimiter(config)

        assert limiter.minute.rate == 40
        assert limiter.minute.capacity == 10
        assert limiter.hour.rate == 1000
        assert limiter.hour.per_seconds == 3600.0

    def test_missing_minute_limit_defaults_to_sixty(self):
        limiter = AdapterRateLimiter(RateLimitConfig(requests_per_hour=100))

        assert limiter.minute.rate == 60
        assert limiter.minute.capacity == 60

    @pytest.mark.asyncio
    async def test_hour_bucket_gates_calls(self, clock):
        limiter = AdapterRateLimiter(
            RateLimitConfig(requests_per_hour=1, requests_per_minute=100),
            name="HOURLY_TEST",
            clock=clock,
        )
        # Shrink the hour window so the forced wait stays in milliseconds
        limiter.hour.per_seconds = 0.01

        await limiter.acquire()
        await limiter.acquire()

        waits = REGISTRY.get_sample_value(
            "regiq_rate_limit_waits_total", {"source": "HOURLY_TEST"}
        )
        assert waits == 1.0
