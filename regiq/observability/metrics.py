"""
Prometheus metrics for monitoring regulatory source ingestion.

Defines and exposes metrics for:
- Query outcomes and latency per source
- HTTP retries and rate-limit waits
- Response cache effectiveness
- Circuit breaker state

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from regiq.config.settings import get_settings

logger = logging.getLogger(__name__)

# Agency APIs are slow; upper buckets cover multi-attempt retries
LATENCY_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the RegIQ ingestion core.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_query("FDA", success=True, latency=0.8, records=42)
        metrics.set_circuit_open("WHO", True)
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize Prometheus metrics.

        Args:
            registry: Collector registry to register on. Tests pass a fresh
                CollectorRegistry; the process default is used otherwise.
        """
        self.registry = registry or REGISTRY

        self.source_queries = Counter(
            "regiq_source_queries_total",
            "Total source queries executed",
            ["source", "status"],  # status: success, failure, short_circuit
            registry=self.registry,
        )

        self.source_query_latency = Histogram(
            "regiq_source_query_latency_seconds",
            "End-to-end latency of a source query including retries",
            ["source"],
            buckets=LATENCY_BUCKETS,
            registry=self.registry,
        )

        self.source_records = Counter(
            "regiq_source_records_total",
            "Total normalized records returned",
            ["source"],
            registry=self.registry,
        )

        self.http_retries = Counter(
            "regiq_http_retries_total",
            "Total HTTP retry attempts",
            ["source", "reason"],  # reason: status code or exception name
            registry=self.registry,
        )

        self.rate_limit_waits = Counter(
            "regiq_rate_limit_waits_total",
            "Times an outbound call waited for a rate-limit token",
            ["source"],
            registry=self.registry,
        )

        self.response_cache = Counter(
            "regiq_response_cache_total",
            "Response cache lookups",
            ["source", "result"],  # result: hit, miss, revalidated
            registry=self.registry,
        )

        self.circuit_open = Gauge(
            "regiq_circuit_breaker_open",
            "Circuit breaker state (1=open, 0=closed)",
            ["source"],
            registry=self.registry,
        )

        self.short_circuits = Counter(
            "regiq_circuit_breaker_short_circuits_total",
            "Queries rejected without contacting the source",
            ["source"],
            registry=self.registry,
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=self.registry)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_query(
        self,
        source: str,
        success: bool,
        latency: float | None = None,
        records: int = 0,
    ) -> None:
        """
        Record the outcome of one registry query.

        Args:
            source: Source type value (e.g. "FDA")
            success: Whether the SourceResult succeeded
            latency: Optional wall time in seconds
            records: Number of normalized records returned
        """
        status = "success" if success else "failure"
        self.source_queries.labels(source=source, status=status).inc()

        if latency is not None:
            self.source_query_latency.labels(source=source).observe(latency)
        if records:
            self.source_records.labels(source=source).inc(records)

    def record_short_circuit(self, source: str) -> None:
        self.source_queries.labels(source=source, status="short_circuit").inc()
        self.short_circuits.labels(source=source).inc()

    def record_http_retry(self, source: str, reason: str) -> None:
        self.http_retries.labels(source=source, reason=reason).inc()

    def record_rate_limit_wait(self, source: str) -> None:
        self.rate_limit_waits.labels(source=source).inc()

    def record_cache(self, source: str, result: str) -> None:
        """
        Record a response cache lookup.

        Args:
            source: Source type value
            result: One of hit, miss, revalidated
        """
        self.response_cache.labels(source=source, result=result).inc()

    def set_circuit_open(self, source: str, is_open: bool) -> None:
        self.circuit_open.labels(source=source).set(1 if is_open else 0)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
