"""Source ingestion - adapters, execution policy, registry and schemas."""

from regiq.ingestion.registry import SourceAdapterRegistry, create_default_adapters
from regiq.ingestion.schemas import (
    NormalizedResult,
    SourceFilter,
    SourceHealth,
    SourceResult,
    SourceType,
    Urgency,
)

__all__ = [
    "SourceAdapterRegistry",
    "create_default_adapters",
    "NormalizedResult",
    "SourceFilter",
    "SourceHealth",
    "SourceResult",
    "SourceType",
    "Urgency",
]
