"""
openFDA enforcement report adapter (food, device and drug recalls).

Filters are composed into a single Lucene-style ``search`` expression whose
clauses are ANDed together. Recall classification drives urgency.
"""

import logging
import re
from collections.abc import Mapping
from typing import Any

from regiq.ingestion.base_adapter import (
    BaseSourceAdapter,
    as_list,
    build_url,
    first_text,
    item_fingerprint,
    parse_datetime,
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
    DateRange,
    NormalizedResult,
    SourceFilter,
    SourceType,
    Urgency,
)

logger = logging.getLogger(__name__)

FDA_BASE_URL = "https://api.fda.gov"
FDA_ENDPOINTS = {
    "food": "/food/enforcement.json",
    "device": "/device/enforcement.json",
    "drug": "/drug/enforcement.json",
}
FDA_PAGE_SIZE = 100

FDA_CONFIG = AdapterConfig(
    auth=AuthConfig(type=AuthType.API_KEY, key_param="api_key"),
    rate_limit=RateLimitConfig(requests_per_hour=1000, requests_per_minute=40, burst_limit=10),
    retry=RetryConfig(max_attempts=3, base_delay_ms=1000, max_delay_ms=10_000),
    cache=CacheConfig(ttl_seconds=300, use_etag=True, use_if_modified_since=True),
    timeout_ms=30_000,
    circuit_breaker=CircuitBreakerConfig(failure_threshold=5, reset_timeout_ms=60_000),
)

# Longest alternative first so "Class II" is never read as "Class I"
_CLASSIFICATION_RE = re.compile(r"\bClass\s+(III|II|I)\b", re.IGNORECASE)

_CLASS_URGENCY = {
    "I": Urgency.CRITICAL,
    "II": Urgency.HIGH,
    "III": Urgency.MEDIUM,
}


def classify_recall(classification: Any) -> Urgency:
    """Map an openFDA recall classification ("Class I".."Class III") to urgency."""
    if not isinstance(classification, str):
        return Urgency.MEDIUM
    match = _CLASSIFICATION_RE.search(classification)
    if match is None:
        return Urgency.MEDIUM
    return _CLASS_URGENCY[match.group(1).upper()]


def _fda_date(value: str | None) -> str | None:
    """openFDA range queries want YYYYMMDD; None when the bound is not a date."""
    parsed = parse_datetime(value)
    if parsed is None:
        return None
    return parsed.strftime("%Y%m%d")


class FDAAdapter(BaseSourceAdapter):
    """
    Adapter for the openFDA enforcement endpoints.

    Supported filters:
        endpoint: "food" (default), "device" or "drug"
        product_type: one or more product types (ORed)
        recall_class: "I", "II" or "III"
        date_range: {min, max} on report_date (both bounds required)
        event_id, keyword (matched against product_description), skip
    """

    default_config = FDA_CONFIG
    results_keys = ("results",)

    def get_source_type(self) -> str:
        return SourceType.FDA.value

    def _build_request(self, source_filter: SourceFilter) -> APIRequest:
        endpoint = FDA_ENDPOINTS.get(str(source_filter.get("endpoint") or "food").lower())
        if endpoint is None:
            endpoint = FDA_ENDPOINTS["food"]

        search_parts: list[str] = []

        product_types = as_list(source_filter.get("product_type"))
        if product_types:
            ored = " OR ".join(f'product_type:"{t}"' for t in product_types)
            search_parts.append(f"({ored})")

        recall_class = source_filter.get("recall_class")
        if recall_class:
            search_parts.append(f'classification:"Class {recall_class}"')

        date_range = source_filter.get("date_range")
        if isinstance(date_range, DateRange):
            low, high = _fda_date(date_range.min), _fda_date(date_range.max)
            if low and high:
                search_parts.append(f"report_date:[{low} TO {high}]")

        event_id = source_filter.get("event_id")
        if event_id:
            search_parts.append(f'event_id:"{event_id}"')

        keyword = source_filter.get("keyword")
        if keyword:
            search_parts.append(f'product_description:"{keyword}"')

        params: list[tuple[str, str]] = []
        if search_parts:
            params.append(("search", " AND ".join(search_parts)))
        params.append(("limit", str(FDA_PAGE_SIZE)))

        skip = source_filter.get("skip")
        if skip:
            params.append(("skip", str(skip)))

        return APIRequest(
            url=build_url(FDA_BASE_URL + endpoint, params),
            method="GET",
            headers={
                "Accept": "application/json",
                "User-Agent": self.user_agent,
            },
        )

    def _transform(self, item: Mapping[str, Any]) -> NormalizedResult:
        native_id = first_text(item, "recall_number", "event_id")
        description = first_text(item, "product_description")

        return NormalizedResult(
            id=f"fda_{native_id or item_fingerprint(item)}",
            external_id=native_id,
            source=SourceType.FDA.value,
            title=description or "FDA Recall Notice",
            summary=first_text(item, "reason_for_recall", "product_description"),
            urgency=classify_recall(item.get("classification")),
            published_date=to_iso_datetime(
                item.get("report_date") or item.get("recall_initiation_date")
            ),
            external_url=first_text(item, "more_code_info"),
            metadata={
                "recall_number": item.get("recall_number"),
                "classification": item.get("classification"),
                "recalling_firm": item.get("recalling_firm"),
                "product_quantity": item.get("product_quantity"),
                "distribution_pattern": item.get("distribution_pattern"),
                "state": item.get("state"),
                "country": item.get("country"),
                "voluntary_mandated": item.get("voluntary_mandated"),
                "initial_firm_notification": item.get("initial_firm_notification"),
            },
        )
