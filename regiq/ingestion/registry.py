"""
Source adapter registry.

Owns one adapter per source plus one circuit breaker per source, dispatches
single queries, runs batches with bounded concurrency and reports health.

The registry is an ordinary object: construct one, hand it to whoever needs
it (the API keeps one on app.state, the CLI builds its own per command).
Neither execute_query nor execute_multiple_queries raises; every outcome is
a SourceResult.
"""

import asyncio
import time
from collections.abc import Callable, Iterable, Sequence

import httpx
import structlog

from regiq.config.settings import get_settings
from regiq.ingestion.base_adapter import BaseSourceAdapter, classify_error
from regiq.ingestion.circuit_breaker import SourceCircuitBreaker
from regiq.ingestion.credentials import APIKeyProvider, SettingsAPIKeyProvider
from regiq.ingestion.fda_adapter import FDAAdapter
from regiq.ingestion.fsis_adapter import FSISAdapter
from regiq.ingestion.placeholder_adapter import PLACEHOLDER_SOURCES, PlaceholderAdapter
from regiq.ingestion.schemas import (
    SourceErrorType,
    SourceFilter,
    SourceHealth,
    SourceResult,
    SourceType,
)
from regiq.ingestion.usda_adapter import USDAAdapter
from regiq.ingestion.who_adapter import WHOAdapter
from regiq.observability.metrics import get_metrics
from regiq.observability.tracing import get_tracer, record_result, traced

logger = structlog.get_logger(__name__)

CIRCUIT_OPEN_MESSAGE = "Circuit breaker is open for this source"
BATCH_FAILURE_MESSAGE = "Query execution failed"


def create_default_adapters(
    credentials: APIKeyProvider | None = None,
    client: httpx.AsyncClient | None = None,
) -> list[BaseSourceAdapter]:
    """
    Build the standard adapter set: the four real agencies plus a
    placeholder for every other SourceType.

    Args:
        credentials: API key provider (defaults to env-backed settings)
        client: Optional shared httpx client for the real adapters
    """
    credentials = credentials or SettingsAPIKeyProvider()

    adapters: list[BaseSourceAdapter] = [
        FDAAdapter(credentials=credentials, client=client),
        USDAAdapter(credentials=credentials, client=client),
        FSISAdapter(credentials=credentials, client=client),
        WHOAdapter(credentials=credentials, client=client),
    ]
    adapters.extend(PlaceholderAdapter(source) for source in PLACEHOLDER_SOURCES)
    return adapters


def _source_key(source_type: SourceType | str) -> str:
    if isinstance(source_type, SourceType):
        return source_type.value
    return str(source_type).strip().upper()


class SourceAdapterRegistry:
    """
    Dispatches SourceFilters to adapters behind per-source circuit breakers.

    Each breaker uses the threshold and reset timeout declared in its
    adapter's AdapterConfig.

    Usage:
        async with SourceAdapterRegistry() as registry:
            result = await registry.execute_query(SourceFilter(source_type="FDA"))
            results = await registry.execute_multiple_queries(filters)
    """

    def __init__(
        self,
        adapters: Iterable[BaseSourceAdapter] | None = None,
        *,
        concurrency_limit: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the registry.

        Args:
            adapters: Adapters to register (default: create_default_adapters())
            concurrency_limit: Queries per batch (default from settings)
            clock: Monotonic clock for circuit breakers (tests inject one)
        """
        self.concurrency_limit = concurrency_limit or get_settings().batch_concurrency
        self._clock = clock
        self._adapters: dict[str, BaseSourceAdapter] = {}
        self._breakers: dict[str, SourceCircuitBreaker] = {}
        self._last_errors: dict[str, str | None] = {}
        self._tracer = get_tracer(__name__)

        for adapter in adapters if adapters is not None else create_default_adapters():
            self.register(adapter)

    async def __aenter__(self) -> "SourceAdapterRegistry":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def register(self, adapter: BaseSourceAdapter) -> None:
        """Add or replace the adapter for its source and reset that source's breaker."""
        key = _source_key(adapter.get_source_type())
        cb_config = adapter.config.circuit_breaker
        self._adapters[key] = adapter
        self._breakers[key] = SourceCircuitBreaker(
            failure_threshold=cb_config.failure_threshold,
            reset_timeout=cb_config.reset_timeout_seconds,
            name=key,
            clock=self._clock,
        )
        self._last_errors[key] = None

    def get_adapter(self, source_type: SourceType | str) -> BaseSourceAdapter | None:
        """Look up an adapter; unknown sources return None."""
        return self._adapters.get(_source_key(source_type))

    def get_breaker(self, source_type: SourceType | str) -> SourceCircuitBreaker | None:
        return self._breakers.get(_source_key(source_type))

    async def execute_query(self, source_filter: SourceFilter) -> SourceResult:
        """Run one query through its source's circuit breaker. Never raises."""
        key = _source_key(source_filter.source_type)
        adapter = self._adapters.get(key)
        metrics = get_metrics()

        if adapter is None:
            logger.warning("No adapter for source", source=source_filter.source_type)
            return SourceResult.failure(
                source_filter.source_type,
                f"No adapter found for source: {source_filter.source_type}",
                SourceErrorType.NO_ADAPTER,
            )

        breaker = self._breakers[key]
        if not breaker.allow_request():
            metrics.record_short_circuit(key)
            logger.debug("Circuit open, skipping source", source=key)
            return SourceResult.failure(key, CIRCUIT_OPEN_MESSAGE, SourceErrorType.CIRCUIT_OPEN)

        start = time.perf_counter()
        with traced(
            self._tracer,
            "source.query",
            {"source": key, "filters": len(source_filter.filters)},
        ) as span:
            try:
                result = await adapter.execute_with_policy(source_filter)
            except Exception as e:
                logger.error(
                    "Adapter raised during query",
                    source=key,
                    error=str(e),
                    exc_info=True,
                )
                result = SourceResult.failure(key, str(e) or type(e).__name__, classify_error(e))

            record_result(span, result)

        if result.success:
            breaker.record_success()
            self._last_errors[key] = None
        else:
            breaker.record_failure()
            self._last_errors[key] = result.error

        latency = time.perf_counter() - start
        metrics.record_query(key, result.success, latency=latency, records=len(result.data))
        metrics.set_circuit_open(key, breaker.is_open)

        logger.info(
            "Source query finished",
            source=key,
            success=result.success,
            records=len(result.data),
            error_type=result.error_type.value if result.error_type else None,
            latency_ms=round(latency * 1000, 1),
        )
        return result

    async def execute_multiple_queries(
        self, filters: Sequence[SourceFilter]
    ) -> list[SourceResult]:
        """
        Run queries in sequential batches of ``concurrency_limit``.

        Queries within a batch run concurrently; the next batch starts only
        after every query in the current one has settled. Results come back
        in input order.
        """
        results: list[SourceResult] = []

        for offset in range(0, len(filters), self.concurrency_limit):
            batch = filters[offset : offset + self.concurrency_limit]
            settled = await asyncio.gather(
                *(self.execute_query(f) for f in batch),
                return_exceptions=True,
            )

            for source_filter, outcome in zip(batch, settled):
                if isinstance(outcome, BaseException):
                    logger.error(
                        "Batched query failed",
                        source=source_filter.source_type,
                        error=repr(outcome),
                    )
                    results.append(
                        SourceResult.failure(
                            source_filter.source_type,
                            BATCH_FAILURE_MESSAGE,
                            SourceErrorType.UNKNOWN_ERROR,
                        )
                    )
                else:
                    results.append(outcome)

        return results

    def get_available_sources(self) -> list[SourceType | str]:
        """Every registered source, placeholders included."""
        return [SourceType.parse(key) or key for key in self._adapters]

    def get_implemented_sources(self) -> list[SourceType | str]:
        return [
            SourceType.parse(key) or key
            for key, adapter in self._adapters.items()
            if not adapter.is_placeholder
        ]

    def get_source_health(self) -> dict[str, SourceHealth]:
        """Snapshot of breaker state per source."""
        health: dict[str, SourceHealth] = {}
        for key, adapter in self._adapters.items():
            breaker = self._breakers[key]
            health[key] = SourceHealth(
                available=breaker.allow_request(),
                circuit_open=breaker.is_open,
                failures=breaker.failures,
                implemented=not adapter.is_placeholder,
                last_error=self._last_errors.get(key),
            )
        return health

    async def aclose(self) -> None:
        """Release every adapter's HTTP resources."""
        for adapter in self._adapters.values():
            await adapter.aclose()
