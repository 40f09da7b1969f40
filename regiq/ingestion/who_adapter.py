"""WHO Disease Outbreak News alert adapter."""

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

WHO_ALERTS_URL = "https://extranet.who.int/don/api/outbreak-alerts"
WHO_PAGE_SIZE = 50

WHO_CONFIG = AdapterConfig(
    auth=AuthConfig(type=AuthType.BEARER, header_name="Authorization"),
    rate_limit=RateLimitConfig(requests_per_hour=200, requests_per_minute=10),
    retry=RetryConfig(max_attempts=4, base_delay_ms=3000, max_delay_ms=30_000),
    cache=CacheConfig(ttl_seconds=1800, use_etag=True, use_if_modified_since=True),
    timeout_ms=45_000,
    circuit_breaker=CircuitBreakerConfig(failure_threshold=3, reset_timeout_ms=300_000),
)


def classify_risk(risk_assessment: Any) -> Urgency:
    """Map WHO risk_assessment.level (case-insensitive substring) to urgency."""
    level = ""
    if isinstance(risk_assessment, Mapping) and isinstance(risk_assessment.get("level"), str):
        level = risk_assessment["level"].lower()
    if "very high" in level or "emergency" in level:
        return Urgency.CRITICAL
    if "high" in level:
        return Urgency.HIGH
    if "low" in level:
        return Urgency.LOW
    return Urgency.MEDIUM


class WHOAdapter(BaseSourceAdapter):
    """
    Adapter for WHO outbreak alerts.

    Payloads carry either an ``alerts`` or an ``outbreaks`` array.

    Supported filters: alert_type and country (one or many), pathogen,
    who_region, publication_date {min, max}, risk_level, offset.
    """

    default_config = WHO_CONFIG
    results_keys = ("alerts", "outbreaks")

    def get_source_type(self) -> str:
        return SourceType.WHO.value

    def _build_request(self, source_filter: SourceFilter) -> APIRequest:
        params: list[tuple[str, str]] = []

        alert_types = as_list(source_filter.get("alert_type"))
        if alert_types:
            params.append(("alert_type", ",".join(alert_types)))

        countries = as_list(source_filter.get("country"))
        if countries:
            params.append(("countries", ",".join(countries)))

        for filter_name, param in (("pathogen", "pathogen"), ("who_region", "region")):
            value = source_filter.get(filter_name)
            if value:
                params.append((param, str(value)))

        params.extend(
            date_range_params(source_filter.get("publication_date"), "date_from", "date_to")
        )

        risk_level = source_filter.get("risk_level")
        if risk_level:
            params.append(("risk_level", str(risk_level)))

        params.append(("limit", str(WHO_PAGE_SIZE)))
        offset = source_filter.get("offset")
        if offset:
            params.append(("offset", str(offset)))

        return APIRequest(
            url=build_url(WHO_ALERTS_URL, params),
            method="GET",
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                "User-Agent": self.user_agent,
            },
        )

    def _transform(self, item: Mapping[str, Any]) -> NormalizedResult:
        native_id = first_text(item, "id", "outbreak_id")
        countries = item.get("countries")

        return NormalizedResult(
            id=f"who_{native_id or item_fingerprint(item)}",
            external_id=native_id,
            source=SourceType.WHO.value,
            title=first_text(item, "title", "disease", default="WHO Disease Outbreak Alert"),
            summary=first_text(item, "summary", "description"),
            urgency=classify_risk(item.get("risk_assessment")),
            published_date=to_iso_datetime(
                item.get("date_published") or item.get("date_reported")
            ),
            external_url=first_text(item, "url", "link"),
            metadata={
                "outbreak_id": item.get("outbreak_id"),
                "disease": item.get("disease"),
                "pathogen": item.get("pathogen"),
                "countries_affected": as_list(countries) if countries else [],
                "who_region": item.get("who_region"),
                "cases_reported": item.get("cases_reported"),
                "deaths_reported": item.get("deaths_reported"),
                "risk_assessment": item.get("risk_assessment"),
                "control_measures": item.get("control_measures"),
                "date_first_reported": item.get("date_first_reported"),
                "date_who_notified": item.get("date_who_notified"),
                "event_status": item.get("event_status"),
                "grade": item.get("grade"),
            },
        )
