"""
Canonical request/result schema for the regulatory ingestion core.

CRITICAL: NormalizedResult flows to every consumer (dashboards, sync jobs,
persistence). Do not rename fields without updating downstream callers.
All source adapters MUST output this exact structure.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class SourceType(str, Enum):
    """Supported regulatory agencies."""

    FDA = "FDA"
    USDA = "USDA"
    FSIS = "FSIS"
    WHO = "WHO"
    HEALTH_CANADA = "HEALTH_CANADA"
    CDC = "CDC"
    MHRA = "MHRA"
    IAEA = "IAEA"
    FSA = "FSA"
    EFSA = "EFSA"
    CFIA = "CFIA"
    EMA = "EMA"
    FAO = "FAO"
    MHLW = "MHLW"
    ECHA = "ECHA"
    FSANZ = "FSANZ"
    EPA = "EPA"
    OSHA = "OSHA"
    TGA = "TGA"
    PMDA = "PMDA"
    FTC = "FTC"
    REGULATIONS_GOV = "REGULATIONS_GOV"

    @classmethod
    def parse(cls, value: "SourceType | str | None") -> "SourceType | None":
        """Resolve a member from its value (case-insensitive), or None if unknown."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class Urgency(str, Enum):
    """Four-level severity derived from source-specific signals."""

    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @property
    def rank(self) -> int:
        """Sort weight: Critical is highest."""
        return _URGENCY_RANK[self]


_URGENCY_RANK = {
    Urgency.CRITICAL: 4,
    Urgency.HIGH: 3,
    Urgency.MEDIUM: 2,
    Urgency.LOW: 1,
}


class DateRange(BaseModel):
    """Inclusive date bounds; either side may be open."""

    min: str | None = None
    max: str | None = None


class FilterValue(BaseModel):
    """A single typed filter value, e.g. ``{"operator": "in", "value": ["a", "b"]}``."""

    operator: str = "eq"
    value: str | int | list[str] | DateRange | None = None


class SourceFilter(BaseModel):
    """
    Query a caller builds for one source.

    ``source_type`` is deliberately a plain string: unknown sources must reach
    the registry and come back as a failed SourceResult, not a validation error.
    Bare filter values are wrapped into FilterValue automatically.
    """

    source_type: str
    filters: dict[str, FilterValue] = Field(default_factory=dict)

    @field_validator("source_type", mode="before")
    @classmethod
    def _coerce_source_type(cls, v: Any) -> Any:
        if isinstance(v, SourceType):
            return v.value
        return v

    @field_validator("filters", mode="before")
    @classmethod
    def _wrap_bare_values(cls, v: Any) -> Any:
        if v is None:
            return {}
        if not isinstance(v, dict):
            return v
        wrapped: dict[str, Any] = {}
        for name, raw in v.items():
            if isinstance(raw, FilterValue):
                wrapped[name] = raw
            elif isinstance(raw, dict) and "value" in raw:
                wrapped[name] = raw
            elif isinstance(raw, dict) and ({"min", "max"} & raw.keys()):
                wrapped[name] = {"value": raw}
            elif isinstance(raw, (set, frozenset, tuple)):
                wrapped[name] = {"operator": "in", "value": sorted(str(x) for x in raw)}
            else:
                wrapped[name] = {"value": raw}
        return wrapped

    def get(self, name: str) -> Any:
        """Return the raw value of a filter, or None when absent or empty."""
        fv = self.filters.get(name)
        if fv is None:
            return None
        if fv.value in ("", []):
            return None
        return fv.value


class APIRequest(BaseModel):
    """Outbound request built fresh for every call."""

    model_config = ConfigDict(frozen=True)

    url: str
    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any | None = None

    @property
    def cache_key(self) -> str:
        return f"{self.method.upper()} {self.url}"

    @property
    def endpoint(self) -> str:
        """URL without its query string; safe to log since keys may travel as params."""
        return self.url.split("?", 1)[0]


class APIResponse(BaseModel):
    """Raw deserialized payload returned by the transport layer."""

    status: int = 200
    headers: dict[str, str] = Field(default_factory=dict)
    data: Any = None

    @property
    def not_modified(self) -> bool:
        return self.status == 304


class NormalizedResult(BaseModel):
    """
    CANONICAL RESULT SCHEMA

    Every adapter maps its raw items onto this shape. Source-specific fields
    are preserved in ``metadata``.
    """

    id: str = Field(
        ...,
        description="Synthetic ID in format: {source}_{native_id}",
        examples=["fda_F-0123-2024", "usda_X1"],
    )
    external_id: str = ""
    source: str
    title: str
    summary: str = ""
    urgency: Urgency = Urgency.MEDIUM
    published_date: str = Field(..., description="ISO-8601 timestamp")
    external_url: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)


class CacheInfo(BaseModel):
    hit: bool = False
    ttl: int | None = None
    revalidated: bool = False


class SourceErrorType(str, Enum):
    """Failure categories surfaced on SourceResult.error_type."""

    AUTH_ERROR = "auth_error"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    INVALID_REQUEST = "invalid_request"
    SERVER_ERROR = "server_error"
    CIRCUIT_OPEN = "circuit_open"
    NO_ADAPTER = "no_adapter"
    UNKNOWN_ERROR = "unknown_error"

    @property
    def retryable(self) -> bool:
        return self in _RETRYABLE_ERRORS


_RETRYABLE_ERRORS = frozenset(
    {
        SourceErrorType.RATE_LIMIT,
        SourceErrorType.TIMEOUT,
        SourceErrorType.NETWORK_ERROR,
        SourceErrorType.SERVER_ERROR,
    }
)


class SourceResult(BaseModel):
    """
    The registry's unit of return per query.

    Invariant: ``success=False`` implies ``data == []`` and ``error`` is set.
    """

    source: str
    success: bool
    data: list[NormalizedResult] = Field(default_factory=list)
    error: str | None = None
    error_type: SourceErrorType | None = None
    cache_info: CacheInfo | None = None

    @model_validator(mode="after")
    def _check_failure_shape(self) -> "SourceResult":
        if not self.success:
            if self.data:
                raise ValueError("failed SourceResult must not carry data")
            if not self.error:
                raise ValueError("failed SourceResult must carry an error message")
        return self

    @classmethod
    def failure(
        cls,
        source: str,
        error: str,
        error_type: SourceErrorType = SourceErrorType.UNKNOWN_ERROR,
    ) -> "SourceResult":
        return cls(
            source=source,
            success=False,
            data=[],
            error=error or error_type.value,
            error_type=error_type,
        )


class SourceHealth(BaseModel):
    """Per-source snapshot used by operational dashboards."""

    available: bool = True
    circuit_open: bool = False
    failures: int = Field(default=0, ge=0)
    implemented: bool = True
    last_error: str | None = None
