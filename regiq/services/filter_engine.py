"""
Multi-source filter engine.

Fans one FilterQuery out to several sources through the registry, then
applies the facets every source shares (keyword, urgency, time range),
sorts the combined records and paginates them.

Each returned SourceResult keeps only its own records that landed on the
requested page, so callers can still tell which agency produced what.
"""

import time
from datetime import datetime, timedelta, timezone
from typing import Literal

import structlog
from pydantic import BaseModel, Field

from regiq.ingestion.base_adapter import parse_datetime
from regiq.ingestion.registry import SourceAdapterRegistry
from regiq.ingestion.schemas import (
    DateRange,
    NormalizedResult,
    SourceErrorType,
    SourceFilter,
    SourceResult,
    Urgency,
)

logger = structlog.get_logger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SourceQuery(SourceFilter):
    """A SourceFilter that can be switched off without removing it from the query."""

    enabled: bool = True


class SharedFacets(BaseModel):
    time_range: DateRange | None = None
    keyword: str | None = None
    urgency: list[Urgency] = Field(default_factory=list)


class Pagination(BaseModel):
    limit: int = Field(default=50, ge=1, le=500)
    offset: int = Field(default=0, ge=0)


class Sorting(BaseModel):
    field: Literal["published_date", "urgency", "title"] = "published_date"
    direction: Literal["asc", "desc"] = "desc"


class FilterQuery(BaseModel):
    sources: list[SourceQuery] = Field(default_factory=list)
    shared: SharedFacets = Field(default_factory=SharedFacets)
    pagination: Pagination = Field(default_factory=Pagination)
    sorting: Sorting = Field(default_factory=Sorting)


class CacheStats(BaseModel):
    hits: int = 0
    misses: int = 0


class FilterQueryResult(BaseModel):
    results: list[SourceResult] = Field(default_factory=list)
    total_results: int = 0
    execution_time_ms: float = 0.0
    cache_stats: CacheStats = Field(default_factory=CacheStats)
    pagination: Pagination = Field(default_factory=Pagination)

    @property
    def records(self) -> list[NormalizedResult]:
        """All records on this page across sources."""
        return [record for result in self.results for record in result.data]


class SourceFilterEngine:
    """
    Executes FilterQuery objects against a SourceAdapterRegistry.

    Usage:
        engine = SourceFilterEngine(registry)
        result = await engine.execute(FilterQuery(sources=[...]))
    """

    def __init__(self, registry: SourceAdapterRegistry):
        self._registry = registry

    async def execute(self, query: FilterQuery) -> FilterQueryResult:
        """Run the query. Never raises; failures stay inside their SourceResult."""
        start = time.perf_counter()
        filters = [
            SourceFilter(source_type=s.source_type, filters=s.filters)
            for s in query.sources
            if s.enabled
        ]

        try:
            results = await self._registry.execute_multiple_queries(filters)
        except Exception as e:
            logger.error("Filter query failed", error=str(e), exc_info=True)
            results = [
                SourceResult.failure(f.source_type, str(e) or type(e).__name__, SourceErrorType.UNKNOWN_ERROR)
                for f in filters
            ]

        results = [self._apply_shared_facets(r, query.shared) for r in results]

        combined = [
            (index, record)
            for index, result in enumerate(results)
            if result.success
            for record in result.data
        ]
        combined.sort(
            key=lambda pair: _sort_key(pair[1], query.sorting.field),
            reverse=query.sorting.direction == "desc",
        )

        page_start = query.pagination.offset
        page = combined[page_start : page_start + query.pagination.limit]
        by_result: dict[int, list[NormalizedResult]] = {}
        for index, record in page:
            by_result.setdefault(index, []).append(record)

        paged = [
            result.model_copy(update={"data": by_result.get(index, [])}) if result.success else result
            for index, result in enumerate(results)
        ]

        elapsed_ms = (time.perf_counter() - start) * 1000
        outcome = FilterQueryResult(
            results=paged,
            total_results=len(combined),
            execution_time_ms=elapsed_ms,
            cache_stats=_cache_stats(results),
            pagination=query.pagination,
        )
        logger.info(
            "Filter query executed",
            sources=len(filters),
            total_results=outcome.total_results,
            returned=len(outcome.records),
            elapsed_ms=round(elapsed_ms, 1),
        )
        return outcome

    def _apply_shared_facets(self, result: SourceResult, shared: SharedFacets) -> SourceResult:
        if not result.success or not result.data:
            return result

        data = result.data
        if shared.keyword:
            needle = shared.keyword.lower()
            data = [r for r in data if needle in r.title.lower() or needle in r.summary.lower()]

        if shared.urgency:
            allowed = set(shared.urgency)
            data = [r for r in data if r.urgency in allowed]

        if shared.time_range is not None:
            lower = parse_datetime(shared.time_range.min)
            upper = _upper_bound(shared.time_range.max)
            data = [r for r in data if _within(r, lower, upper)]

        return result.model_copy(update={"data": data})


def _upper_bound(value: str | None) -> datetime | None:
    """Exclusive upper bound; a date-only value includes its whole day."""
    parsed = parse_datetime(value)
    if parsed is None or value is None:
        return None
    step = timedelta(days=1) if len(value.strip()) <= 10 else timedelta(microseconds=1)
    try:
        return parsed + step
    except OverflowError:
        # Bound at the end of datetime's range: nothing can exceed it
        return None


def _within(record: NormalizedResult, lower: datetime | None, upper: datetime | None) -> bool:
    published = parse_datetime(record.published_date)
    if published is None:
        return False
    if lower is not None and published < lower:
        return False
    if upper is not None and published >= upper:
        return False
    return True


def _sort_key(record: NormalizedResult, field: str):
    if field == "urgency":
        return record.urgency.rank
    if field == "title":
        return record.title.lower()
    return parse_datetime(record.published_date) or _EPOCH


def _cache_stats(results: list[SourceResult]) -> CacheStats:
    stats = CacheStats()
    for result in results:
        if result.cache_info is None:
            continue
        if result.cache_info.hit:
            stats.hits += 1
        else:
            stats.misses += 1
    return stats
