"""
Request and response models for the RegIQ ingestion API.

Source queries reuse the ingestion schemas directly (SourceFilter,
SourceResult) and the filter engine models (FilterQuery,
FilterQueryResult); only the API-specific envelopes live here.
"""

from typing import Literal

from pydantic import BaseModel, Field

from regiq.ingestion.schemas import SourceFilter, SourceHealth, SourceResult


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: Literal["healthy", "degraded", "critical"] = Field(
        ...,
        description="healthy: no open circuits; degraded: some open; critical: every implemented source open",
    )
    open_circuits: list[str] = Field(
        default_factory=list,
        description="Sources currently short-circuited",
    )
    sources: dict[str, SourceHealth] = Field(default_factory=dict)
    version: str = Field(..., description="Service version")


class SourceInfo(BaseModel):
    source: str
    implemented: bool = Field(
        ...,
        description="False for placeholder sources, which always return no data",
    )


class SourcesListResponse(BaseModel):
    sources: list[SourceInfo]
    total: int


class SourceHealthResponse(BaseModel):
    sources: dict[str, SourceHealth]


class BatchQueryRequest(BaseModel):
    """Request model for batched source queries."""

    filters: list[SourceFilter] = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Queries to run; executed in batches of the configured concurrency",
    )


class BatchQueryResponse(BaseModel):
    results: list[SourceResult] = Field(
        ...,
        description="One result per filter, in request order",
    )
    latency_ms: float


class ErrorResponse(BaseModel):
    """Response model for errors."""

    detail: str = Field(
        ...,
        description="Error message",
    )
    error_type: str = Field(
        default="error",
        description="Type of error",
    )
