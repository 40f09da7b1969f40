"""RegIQ - multi-source regulatory data ingestion and normalization."""

__version__ = "0.1.0"
