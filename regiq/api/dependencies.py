"""
Dependency injection for FastAPI endpoints.
"""

from regiq.ingestion.registry import SourceAdapterRegistry
from regiq.services.filter_engine import SourceFilterEngine

# Global service instances (initialized on first request)
_registry: SourceAdapterRegistry | None = None
_filter_engine: SourceFilterEngine | None = None


async def get_registry() -> SourceAdapterRegistry:
    """
    Get the source adapter registry.

    One registry per process so circuit-breaker state, caches and rate
    limits are shared by every request.
    """
    global _registry

    if _registry is None:
        _registry = SourceAdapterRegistry()

    return _registry


async def get_filter_engine() -> SourceFilterEngine:
    """Get filter engine bound to the shared registry."""
    global _filter_engine

    if _filter_engine is None:
        _filter_engine = SourceFilterEngine(await get_registry())

    return _filter_engine


async def cleanup_dependencies() -> None:
    """Clean up global dependencies on shutdown."""
    global _registry, _filter_engine

    _filter_engine = None

    if _registry is not None:
        await _registry.aclose()
        _registry = None
