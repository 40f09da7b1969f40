"""
FastAPI service exposing the regulatory source registry.

Provides REST API for:
- GET /sources, GET /sources/health - Source discovery and breaker state
- POST /sources/query, POST /sources/query/batch - Direct source queries
- POST /filter - Multi-source filter queries
- GET /health - Service health check
"""

from regiq.api.app import create_app

__all__ = ["create_app"]
