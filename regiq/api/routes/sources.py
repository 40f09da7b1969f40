"""Source endpoints: discovery, breaker health and direct queries."""

import time

import structlog
from fastapi import APIRouter, Depends
from starlette.requests import Request

from regiq.api.auth import verify_api_key
from regiq.api.dependencies import get_registry
from regiq.api.models import (
    BatchQueryRequest,
    BatchQueryResponse,
    ErrorResponse,
    SourceHealthResponse,
    SourceInfo,
    SourcesListResponse,
)
from regiq.api.rate_limit import default_limit, limiter, query_limit
from regiq.ingestion.registry import SourceAdapterRegistry
from regiq.ingestion.schemas import SourceFilter, SourceResult, SourceType

logger = structlog.get_logger(__name__)
router = APIRouter()


def _source_name(source: SourceType | str) -> str:
    return source.value if isinstance(source, SourceType) else source


@router.get(
    "/sources",
    response_model=SourcesListResponse,
    responses={401: {"model": ErrorResponse}},
    summary="List available sources",
)
@limiter.limit(default_limit)
async def list_sources(
    request: Request,
    api_key: str = Depends(verify_api_key),
    registry: SourceAdapterRegistry = Depends(get_registry),
) -> SourcesListResponse:
    implemented = {_source_name(s) for s in registry.get_implemented_sources()}
    items = [
        SourceInfo(source=name, implemented=name in implemented)
        for name in map(_source_name, registry.get_available_sources())
    ]
    return SourcesListResponse(sources=items, total=len(items))


@router.get(
    "/sources/health",
    response_model=SourceHealthResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Per-source circuit-breaker state",
)
@limiter.limit(default_limit)
async def source_health(
    request: Request,
    api_key: str = Depends(verify_api_key),
    registry: SourceAdapterRegistry = Depends(get_registry),
) -> SourceHealthResponse:
    return SourceHealthResponse(sources=registry.get_source_health())


@router.post(
    "/sources/query",
    response_model=SourceResult,
    responses={401: {"model": ErrorResponse}},
    summary="Query a single source",
    description="Failures come back as success=false with an error, never as HTTP errors.",
)
@limiter.limit(query_limit)
async def query_source(
    request: Request,
    body: SourceFilter,
    api_key: str = Depends(verify_api_key),
    registry: SourceAdapterRegistry = Depends(get_registry),
) -> SourceResult:
    return await registry.execute_query(body)


@router.post(
    "/sources/query/batch",
    response_model=BatchQueryResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Query several sources",
)
@limiter.limit(query_limit)
async def query_sources_batch(
    request: Request,
    body: BatchQueryRequest,
    api_key: str = Depends(verify_api_key),
    registry: SourceAdapterRegistry = Depends(get_registry),
) -> BatchQueryResponse:
    start = time.perf_counter()
    results = await registry.execute_multiple_queries(body.filters)
    latency_ms = (time.perf_counter() - start) * 1000

    logger.info(
        "Batch query completed",
        queries=len(body.filters),
        failures=sum(1 for r in results if not r.success),
        latency_ms=round(latency_ms, 2),
    )
    return BatchQueryResponse(results=results, latency_ms=round(latency_ms, 2))
