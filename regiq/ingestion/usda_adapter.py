"""USDA FSIS recall and public health alert adapter."""

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

USDA_RECALL_URL = "https://www.fsis.usda.gov/fsis/api/recall"
USDA_PAGE_SIZE = 50

USDA_CONFIG = AdapterConfig(
    auth=AuthConfig(type=AuthType.BEARER),
    rate_limit=RateLimitConfig(requests_per_hour=500, requests_per_minute=25),
    retry=RetryConfig(max_attempts=3, base_delay_ms=1500, max_delay_ms=15_000),
    cache=CacheConfig(ttl_seconds=600, use_etag=True, use_if_modified_since=True),
    timeout_ms=25_000,
    circuit_breaker=CircuitBreakerConfig(failure_threshold=3, reset_timeout_ms=120_000),
)


def classify_health_hazard(evaluation: Any) -> Urgency:
    """Map a USDA health_hazard_evaluation (case-insensitive substring) to urgency."""
    text = evaluation.lower() if isinstance(evaluation, str) else ""
    if "high" in text or "serious" in text:
        return Urgency.CRITICAL
    if "moderate" in text:
        return Urgency.HIGH
    if "low" in text:
        return Urgency.LOW
    return Urgency.MEDIUM


class USDAAdapter(BaseSourceAdapter):
    """
    Adapter for USDA recalls.

    Supported filters: product_category (one or many), establishment_number,
    haccp_category, date_published {min, max}, offset.
    """

    default_config = USDA_CONFIG
    results_keys = ("recalls",)

    def get_source_type(self) -> str:
        return SourceType.USDA.value

    def _build_request(self, source_filter: SourceFilter) -> APIRequest:
        params: list[tuple[str, str]] = []

        categories = as_list(source_filter.get("product_category"))
        if categories:
            params.append(("category", ",".join(categories)))

        establishment = source_filter.get("establishment_number")
        if establishment:
            params.append(("establishment", str(establishment)))

        haccp = source_filter.get("haccp_category")
        if haccp:
            params.append(("haccp", str(haccp)))

        params.extend(
            date_range_params(source_filter.get("date_published"), "start_date", "end_date")
        )

        params.append(("limit", str(USDA_PAGE_SIZE)))
        offset = source_filter.get("offset")
        if offset:
            params.append(("offset", str(offset)))

        return APIRequest(
            url=build_url(USDA_RECALL_URL, params),
            method="GET",
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                "User-Agent": self.user_agent,
            },
        )

    def _transform(self, item: Mapping[str, Any]) -> NormalizedResult:
        case_number = first_text(item, "recall_case_number")

        return NormalizedResult(
            id=f"usda_{case_number or item_fingerprint(item)}",
            external_id=case_number,
            source=SourceType.USDA.value,
            title=first_text(item, "product_name", default="USDA Recall Notice"),
            summary=first_text(item, "health_hazard_evaluation", "reason_for_recall"),
            urgency=classify_health_hazard(item.get("health_hazard_evaluation")),
            published_date=to_iso_datetime(item.get("recall_date") or item.get("date_opened")),
            external_url=first_text(item, "press_release_url"),
            metadata={
                "case_number": item.get("recall_case_number"),
                "establishment_number": item.get("establishment_number"),
                "establishment_name": item.get("establishment_name"),
                "product_name": item.get("product_name"),
                "problem": item.get("problem"),
                "summary": item.get("summary"),
                "quantity_recovered": item.get("quantity_recovered"),
                "distribution": item.get("distribution"),
                "contact": item.get("contact"),
                "health_hazard_evaluation": item.get("health_hazard_evaluation"),
            },
        )
