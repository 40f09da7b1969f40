"""Tests for Prometheus metrics collection."""

import pytest
from prometheus_client import CollectorRegistry

from regiq.observability.metrics import MetricsCollector, get_metrics


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector(registry=CollectorRegistry())


def _value(metrics: MetricsCollector, name: str, **labels) -> float | None:
    return metrics.registry.get_sample_value(name, labels)


class TestMetricsCollector:
    def test_record_query(self, metrics):
        metrics.record_query("FDA", success=True, latency=0.4, records=12)
        metrics.record_query("FDA", success=False, latency=1.2)

        assert _value(metrics, "regiq_source_queries_total", source="FDA", status="success") == 1
        assert _value(metrics, "regiq_source_queries_total", source="FDA", status="failure") == 1
        assert _value(metrics, "regiq_source_records_total", source="FDA") == 12
        assert _value(metrics, "regiq_source_query_latency_seconds_count", source="FDA") == 2

    def test_short_circuit(self, metrics):
        metrics.record_short_circuit("WHO")

        assert _value(metrics, "regiq_source_queries_total", source="WHO", status="short_circuit") == 1
        assert _value(metrics, "regiq_circuit_breaker_short_circuits_total", source="WHO") == 1

    def test_circuit_gauge(self, metrics):
        metrics.set_circuit_open("USDA", True)
        assert _value(metrics, "regiq_circuit_breaker_open", source="USDA") == 1

        metrics.set_circuit_open("USDA", False)
        assert _value(metrics, "regiq_circuit_breaker_open", source="USDA") == 0

    def test_retry_rate_limit_and_cache(self, metrics):
        metrics.record_http_retry("FSIS", "503")
        metrics.record_rate_limit_wait("FSIS")
        metrics.record_cache("FSIS", "hit")
        metrics.record_cache("FSIS", "revalidated")

        assert _value(metrics, "regiq_http_retries_total", source="FSIS", reason="503") == 1
        assert _value(metrics, "regiq_rate_limit_waits_total", source="FSIS") == 1
        assert _value(metrics, "regiq_response_cache_total", source="FSIS", result="hit") == 1
        assert _value(metrics, "regiq_response_cache_total", source="FSIS", result="revalidated") == 1

    def test_global_instance(self):
        assert get_metrics() is get_metrics()
