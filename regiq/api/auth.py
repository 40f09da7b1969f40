"""
X-API-KEY authentication for the ingestion API.

Keys come from API_KEYS (comma-separated). With no keys configured the API
is open outside production so local tools can call it; in production that
configuration is refused with 503 rather than exposing agency quotas.
"""

import secrets

import structlog
from fastapi import HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from regiq.config.settings import get_settings

API_KEY_HEADER = "X-API-KEY"
DEV_CALLER = "dev-mode"

logger = structlog.get_logger(__name__)
api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


def key_matches(candidate: str, valid_keys: list[str]) -> bool:
    """Compare against every configured key in constant time."""
    matched = False
    for key in valid_keys:
        matched |= secrets.compare_digest(candidate.encode(), key.encode())
    return matched


async def verify_api_key(
    request: Request,
    api_key: str | None = Security(api_key_header),
) -> str:
    """
    Resolve the caller for a protected endpoint.

    Returns:
        The caller's API key, or DEV_CALLER when auth is disabled

    Raises:
        HTTPException: 401 for a missing or unknown key, 503 when production
            runs without API_KEYS
    """
    settings = get_settings()
    valid_keys = settings.api_key_list

    if not valid_keys:
        if settings.is_production:
            logger.error("API_KEYS is not configured", path=request.url.path)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Authentication is not configured",
            )
        return DEV_CALLER

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing API key. Provide {API_KEY_HEADER} header.",
        )

    if not key_matches(api_key, valid_keys):
        logger.warning("Rejected API key", path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    return api_key
