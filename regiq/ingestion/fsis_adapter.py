"""FSIS establishment inspection results adapter."""

import logging
from collections.abc import Mapping
from typing import Any

from regiq.ingestion.base_adapter import (
    BaseSourceAdapter,
    as_list,
    build_url,
    date_range_params,
    first_text,
    item_fingerprint,
    to_iso_datetime,
)
from regiq.ingestion.http_client import RetryConfig
from regiq.ingestion.policy import (
    AdapterConfig,
    AuthConfig,
    AuthType,
    CacheConfig,
    CircuitBreakerConfig,
    RateLimitConfig,
)
from regiq.ingestion.schemas import (
    APIRequest,
    NormalizedResult,
    SourceFilter,
    SourceType,
    Urgency,
)

logger = logging.getLogger(__name__)

FSIS_INSPECTIONS_URL = "https://www.fsis.usda.gov/api/inspection-results"
FSIS_PAGE_SIZE = 75

FSIS_CONFIG = AdapterConfig(
    auth=AuthConfig(type=AuthType.API_KEY, header_name="X-API-Key"),
    rate_limit=RateLimitConfig(requests_per_hour=300, requests_per_minute=15),
    retry=RetryConfig(max_attempts=3, base_delay_ms=2000, max_delay_ms=20_000),
    cache=CacheConfig(ttl_seconds=900, use_etag=True, use_if_modified_since=True),
    timeout_ms=30_000,
    circuit_breaker=CircuitBreakerConfig(failure_threshold=4, reset_timeout_ms=180_000),
)


def classify_violation(violation_type: Any) -> Urgency:
    """Map an FSIS violation_type (case-insensitive substring) to urgency."""
    text = violation_type.lower() if isinstance(violation_type, str) else ""
    if "critical" in text or "imminent" in text:
        return Urgency.CRITICAL
    if "serious" in text or "major" in text:
        return Urgency.HIGH
    if "minor" in text:
        return Urgency.LOW
    return Urgency.MEDIUM


class FSISAdapter(BaseSourceAdapter):
    """
    Adapter for FSIS inspection results.

    Supported filters: inspection_type (one or many), violation_code,
    facility_name, establishment_number, inspection_date {min, max},
    state, page.
    """

    default_config = FSIS_CONFIG
    results_keys = ("inspection_results",)

    def get_source_type(self) -> str:
        return SourceType.FSIS.value

    def _build_request(self, source_filter: SourceFilter) -> APIRequest:
        params: list[tuple[str, str]] = []

        inspection_types = as_list(source_filter.get("inspection_type"))
        if inspection_types:
            params.append(("inspection_type", ",".join(inspection_types)))

        for filter_name, param in (
            ("violation_code", "violation"),
            ("facility_name", "facility"),
            ("establishment_number", "est_number"),
        ):
            value = source_filter.get(filter_name)
            if value:
                params.append((param, str(value)))

        params.extend(
            date_range_params(source_filter.get("inspection_date"), "from_date", "to_date")
        )

        state = source_filter.get("state")
        if state:
            params.append(("state", str(state)))

        params.append(("limit", str(FSIS_PAGE_SIZE)))
        page = source_filter.get("page")
        if page:
            params.append(("page", str(page)))

        return APIRequest(
            url=build_url(FSIS_INSPECTIONS_URL, params),
            method="GET",
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                "User-Agent": self.user_agent,
            },
        )

    def _transform(self, item: Mapping[str, Any]) -> NormalizedResult:
        inspection_id = first_text(item, "inspection_id")

        return NormalizedResult(
            id=f"fsis_{inspection_id or item_fingerprint(item)}",
            external_id=inspection_id or first_text(item, "establishment_number"),
            source=SourceType.FSIS.value,
            title=first_text(item, "facility_name", default="FSIS Inspection Report"),
            summary=first_text(item, "violation_description", "inspection_type"),
            urgency=classify_violation(item.get("violation_type")),
            published_date=to_iso_datetime(item.get("inspection_date")),
            external_url=first_text(item, "report_url"),
            metadata={
                "inspection_id": item.get("inspection_id"),
                "establishment_number": item.get("establishment_number"),
                "facility_name": item.get("facility_name"),
                "facility_address": item.get("facility_address"),
                "inspection_type": item.get("inspection_type"),
                "inspection_date": item.get("inspection_date"),
                "violation_code": item.get("violation_code"),
                "violation_type": item.get("violation_type"),
                "violation_description": item.get("violation_description"),
                "corrective_action": item.get("corrective_action"),
                "inspector_name": item.get("inspector_name"),
                "state": item.get("state"),
                "district": item.get("district"),
            },
        )
