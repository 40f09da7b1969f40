"""Services that orchestrate queries across regulatory sources."""

from regiq.services.filter_engine import FilterQuery, FilterQueryResult, SourceFilterEngine

__all__ = ["FilterQuery", "FilterQueryResult", "SourceFilterEngine"]
