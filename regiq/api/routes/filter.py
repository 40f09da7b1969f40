"""Multi-source filter endpoint."""

from fastapi import APIRouter, Depends
from starlette.requests import Request

from regiq.api.auth import verify_api_key
from regiq.api.dependencies import get_filter_engine
from regiq.api.models import ErrorResponse
from regiq.api.rate_limit import limiter, query_limit
from regiq.services.filter_engine import FilterQuery, FilterQueryResult, SourceFilterEngine

router = APIRouter()


@router.post(
    "/filter",
    response_model=FilterQueryResult,
    responses={401: {"model": ErrorResponse}},
    summary="Run a multi-source filter query",
    description=(
        "Queries every enabled source, applies shared facets (keyword, urgency, "
        "time range), then sorts and paginates the combined records."
    ),
)
@limiter.limit(query_limit)
async def run_filter(
    request: Request,
    body: FilterQuery,
    api_key: str = Depends(verify_api_key),
    engine: SourceFilterEngine = Depends(get_filter_engine),
) -> FilterQueryResult:
    return await engine.execute(body)
