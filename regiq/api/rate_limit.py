"""
Per-caller request budgets for the ingestion API (slowapi).

Callers are bucketed by a hash of their X-API-KEY, so raw keys never land
in limiter storage, or by client address when no key is sent. Routes that
fan out to agency APIs use the tighter query budget. Counters are kept in
process memory, so each worker enforces its own budget.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from regiq.api.auth import API_KEY_HEADER
from regiq.config.settings import get_settings
from regiq.ingestion.base_adapter import stable_hash


def rate_limit_key(request: Request) -> str:
    api_key = request.headers.get(API_KEY_HEADER)
    if api_key:
        return f"key:{stable_hash(api_key)}"
    return f"ip:{get_remote_address(request)}"


def default_limit() -> str:
    """Budget for cheap endpoints (listing, breaker health)."""
    return get_settings().rate_limit_default


def query_limit() -> str:
    """Budget for endpoints that spend upstream agency quota."""
    return get_settings().rate_limit_query


def create_limiter() -> Limiter:
    settings = get_settings()
    return Limiter(
        key_func=rate_limit_key,
        default_limits=[settings.rate_limit_default],
        storage_uri="memory://",
        enabled=settings.rate_limit_enabled,
    )


limiter = create_limiter()
