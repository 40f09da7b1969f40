"""
Whole-request deadline for the ingestion API.

A batch query that waits on several slow agencies is cut off at
REQUEST_TIMEOUT_SECONDS. The 504 body has the same shape as a failed
SourceResult, so clients parse timeouts the same way as source failures.
"""

import asyncio

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from regiq.ingestion.schemas import SourceErrorType

logger = structlog.get_logger(__name__)


def timeout_body(timeout_seconds: float) -> dict:
    return {
        "success": False,
        "data": [],
        "error": f"Request timed out after {timeout_seconds:g}s",
        "error_type": SourceErrorType.TIMEOUT.value,
        "timeout_seconds": timeout_seconds,
    }


class TimeoutMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        timeout_seconds: float = 30.0,
        exempt_paths: tuple[str, ...] = ("/health",),
    ):
        super().__init__(app)
        self.timeout_seconds = timeout_seconds
        self.exempt_paths = exempt_paths

    def is_exempt(self, path: str) -> bool:
        return any(path == p or path.startswith(p + "/") for p in self.exempt_paths)

    async def dispatch(self, request: Request, call_next):
        if self.is_exempt(request.url.path):
            return await call_next(request)

        try:
            async with asyncio.timeout(self.timeout_seconds):
                return await call_next(request)
        except TimeoutError:
            logger.warning(
                "Request deadline exceeded",
                path=request.url.path,
                timeout_seconds=self.timeout_seconds,
            )
            return JSONResponse(status_code=504, content=timeout_body(self.timeout_seconds))
