"""Tests for the multi-source filter engine."""

import pytest

from regiq.ingestion.schemas import (
    CacheInfo,
    NormalizedResult,
    SourceErrorType,
    SourceFilter,
    SourceResult,
    Urgency,
)
from regiq.services.filter_engine import FilterQuery, SourceFilterEngine


def _record(source: str, n: int, date: str, urgency: Urgency = Urgency.MEDIUM, title: str = "") -> NormalizedResult:
    return NormalizedResult(
        id=f"{source.lower()}_{n}",
        source=source,
        title=title or f"{source} notice {n}",
        summary=f"summary {n}",
        urgency=urgency,
        published_date=date,
    )


class FakeRegistry:
    """Returns canned results keyed by source and records what was asked."""

    def __init__(self, results: dict[str, SourceResult], raises: Exception | None = None):
        self.results = results
        self.raises = raises
        self.seen: list[SourceFilter] = []

    async def execute_multiple_queries(self, filters):
        self.seen.extend(filters)
        if self.raises is not None:
            raise self.raises
        return [
            self.results.get(
                f.source_type,
                SourceResult.failure(f.source_type, "no adapter", SourceErrorType.NO_ADAPTER),
            )
            for f in filters
        ]


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry(
        {
            "FDA": SourceResult(
                source="FDA",
                success=True,
                data=[
                    _record("FDA", 1, "2024-03-01T10:00:00+00:00", Urgency.CRITICAL, "Listeria in cheese"),
                    _record("FDA", 2, "2024-01-15T00:00:00+00:00", Urgency.LOW),
                ],
                cache_info=CacheInfo(hit=True, ttl=300),
            ),
            "WHO": SourceResult(
                source="WHO",
                success=True,
                data=[
                    _record("WHO", 1, "2024-02-10T08:00:00+00:00", Urgency.HIGH),
                    _record("WHO", 2, "2024-03-31T23:59:59+00:00", Urgency.MEDIUM, "Cheese outbreak"),
                ],
                cache_info=CacheInfo(hit=False, ttl=1800),
            ),
            "USDA": SourceResult.failure("USDA", "HTTP 503", SourceErrorType.SERVER_ERROR),
        }
    )


def _query(**overrides) -> FilterQuery:
    body = {"sources": [{"source_type": "FDA"}, {"source_type": "WHO"}]}
    body.update(overrides)
    return FilterQuery.model_validate(body)


class TestSourceFilterEngine:
    @pytest.mark.asyncio
    async def test_combines_and_sorts_newest_first(self, registry):
        result = await SourceFilterEngine(registry).execute(_query())

        assert result.total_results == 4
        assert [r.source for r in result.results] == ["FDA", "WHO"]
        ordered = sorted(result.records, key=lambda r: r.published_date, reverse=True)
        assert [r.id for r in ordered] == ["who_2", "fda_1", "who_1", "fda_2"]

    @pytest.mark.asyncio
    async def test_disabled_sources_are_skipped(self, registry):
        await SourceFilterEngine(registry).execute(
            _query(sources=[{"source_type": "FDA"}, {"source_type": "WHO", "enabled": False}])
        )

        assert [f.source_type for f in registry.seen] == ["FDA"]

    @pytest.mark.asyncio
    async def test_source_filters_are_forwarded(self, registry):
        await SourceFilterEngine(registry).execute(
            _query(sources=[{"source_type": "FDA", "filters": {"product_type": "Food"}}])
        )

        assert registry.seen[0].get("product_type") == "Food"

    @pytest.mark.asyncio
    async def test_keyword_facet(self, registry):
        result = await SourceFilterEngine(registry).execute(_query(shared={"keyword": "CHEESE"}))

        assert sorted(r.id for r in result.records) == ["fda_1", "who_2"]
        assert result.total_results == 2

    @pytest.mark.asyncio
    async def test_urgency_facet(self, registry):
        result = await SourceFilterEngine(registry).execute(
            _query(shared={"urgency": ["Critical", "High"]})
        )

        assert sorted(r.id for r in result.records) == ["fda_1", "who_1"]

    @pytest.mark.asyncio
    async def test_date_only_upper_bound_includes_whole_day(self, registry):
        result = await SourceFilterEngine(registry).execute(
            _query(shared={"time_range": {"min": "2024-02-01", "max": "2024-03-31"}})
        )

        assert sorted(r.id for r in result.records) == ["fda_1", "who_1", "who_2"]

    @pytest.mark.asyncio
    async def test_timestamp_upper_bound_is_inclusive(self, registry):
        result = await SourceFilterEngine(registry).execute(
            _query(shared={"time_range": {"max": "2024-03-01T10:00:00Z"}})
        )

        assert sorted(r.id for r in result.records) == ["fda_1", "fda_2", "who_1"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("upper", ["9999-12-31", "9999-12-31T23:59:59.999999+00:00"])
    async def test_upper_bound_at_end_of_calendar(self, registry, upper):
        result = await SourceFilterEngine(registry).execute(
            _query(shared={"time_range": {"min": "2024-02-01", "max": upper}})
        )

        assert sorted(r.id for r in result.records) == ["fda_1", "who_1", "who_2"]

    @pytest.mark.asyncio
    async def test_sort_by_urgency(self, registry):
        result = await SourceFilterEngine(registry).execute(
            _query(sorting={"field": "urgency", "direction": "desc"}, pagination={"limit": 1})
        )

        assert [r.id for r in result.records] == ["fda_1"]
        assert result.results[1].data == []

    @pytest.mark.asyncio
    async def test_pagination(self, registry):
        result = await SourceFilterEngine(registry).execute(
            _query(pagination={"limit": 2, "offset": 1})
        )

        assert result.total_results == 4
        assert sorted(r.id for r in result.records) == ["fda_1", "who_1"]
        assert result.pagination.offset == 1

    @pytest.mark.asyncio
    async def test_failed_sources_pass_through(self, registry):
        result = await SourceFilterEngine(registry).execute(
            _query(sources=[{"source_type": "FDA"}, {"source_type": "USDA"}])
        )

        usda = result.results[1]
        assert usda.success is False
        assert usda.error == "HTTP 503"
        assert result.total_results == 2

    @pytest.mark.asyncio
    async def test_cache_stats(self, registry):
        result = await SourceFilterEngine(registry).execute(
            _query(sources=[{"source_type": s} for s in ("FDA", "WHO", "USDA")])
        )

        assert result.cache_stats.hits == 1
        assert result.cache_stats.misses == 1

    @pytest.mark.asyncio
    async def test_registry_error_never_raises(self):
        engine = SourceFilterEngine(FakeRegistry({}, raises=RuntimeError("registry down")))

        result = await engine.execute(_query())

        assert [r.success for r in result.results] == [False, False]
        assert result.results[0].error == "registry down"
        assert result.total_results == 0

    @pytest.mark.asyncio
    async def test_empty_query(self, registry):
        result = await SourceFilterEngine(registry).execute(FilterQuery())

        assert result.results == []
        assert result.total_results == 0
        assert result.execution_time_ms >= 0
