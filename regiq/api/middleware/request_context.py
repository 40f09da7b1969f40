"""
Request correlation for the ingestion API.

Every request gets an id (taken from X-Request-ID or X-Correlation-ID when
the caller sends one) that is bound into the structlog context, echoed on
the response and, when tracing is on, attached to an HTTP server span that
parents the registry's source.query spans.
"""

import time
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from regiq.observability.logging import bind_context, clear_context
from regiq.observability.tracing import get_tracer, is_tracing_enabled

REQUEST_ID_HEADER = "X-Request-ID"
_INBOUND_ID_HEADERS = (REQUEST_ID_HEADER, "X-Correlation-ID")

logger = structlog.get_logger(__name__)


def resolve_request_id(request: Request) -> str:
    for header in _INBOUND_ID_HEADERS:
        value = request.headers.get(header)
        if value:
            return value
    return uuid.uuid4().hex


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = resolve_request_id(request)
        bind_context(request_id=request_id)
        started = time.perf_counter()
        try:
            if is_tracing_enabled():
                with get_tracer("regiq.api").start_as_current_span(
                    f"{request.method} {request.url.path}",
                    attributes={"http.method": request.method, "http.request_id": request_id},
                ) as span:
                    response = await call_next(request)
                    span.set_attribute("http.status_code", response.status_code)
            else:
                response = await call_next(request)

            response.headers[REQUEST_ID_HEADER] = request_id
            logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            return response
        finally:
            clear_context()
