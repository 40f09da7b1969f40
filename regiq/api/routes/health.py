"""
Health check endpoint backed by circuit-breaker state.
"""

import structlog
from fastapi import APIRouter, Depends

from regiq import __version__
from regiq.api.dependencies import get_registry
from regiq.api.models import HealthResponse
from regiq.ingestion.registry import SourceAdapterRegistry

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Liveness plus per-source circuit-breaker state.",
)
async def health_check(
    registry: SourceAdapterRegistry = Depends(get_registry),
) -> HealthResponse:
    """
    Report overall status from circuit-breaker state.

    Status logic:
    - critical: every implemented source has an open circuit
    - degraded: at least one source has an open circuit
    - healthy: no open circuits
    """
    sources = registry.get_source_health()
    open_circuits = sorted(name for name, h in sources.items() if h.circuit_open)
    implemented = [h for h in sources.values() if h.implemented]

    if implemented and all(h.circuit_open for h in implemented):
        status = "critical"
    elif open_circuits:
        status = "degraded"
    else:
        status = "healthy"

    if status != "healthy":
        logger.warning("Health degraded", status=status, open_circuits=open_circuits)

    return HealthResponse(
        status=status,
        open_circuits=open_circuits,
        sources=sources,
        version=__version__,
    )
