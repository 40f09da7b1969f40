"""
structlog setup for the CLI and API.

Both structlog loggers and stdlib loggers (the ingestion layer, httpx,
uvicorn) are rendered by one ProcessorFormatter on a single root handler:
JSON in production, colored console output otherwise. Credential values
are masked before rendering, since adapters log request params that can
carry agency API keys.
"""

import logging
import re
import sys
from typing import Any

import structlog
from structlog.types import Processor

from regiq.config.settings import get_settings
from regiq.observability.tracing import add_trace_context

HANDLER_NAME = "regiq"
REDACTED = "***"

_SECRET_FIELDS = frozenset({"api_key", "apikey", "x-api-key", "authorization", "token", "password"})
_SECRET_QUERY = re.compile(r"((?:api_key|apikey|token)=)[^&\s]+", re.IGNORECASE)


def _redact(value: Any) -> Any:
    if isinstance(value, str):
        return _SECRET_QUERY.sub(rf"\1{REDACTED}", value)
    if isinstance(value, dict):
        return {
            k: REDACTED if str(k).lower() in _SECRET_FIELDS else _redact(v)
            for k, v in value.items()
        }
    return value


def redact_secrets(logger_: Any, method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor masking credential fields and api_key=... in URLs."""
    for key, value in list(event_dict.items()):
        if key.lower() in _SECRET_FIELDS:
            event_dict[key] = REDACTED
        else:
            event_dict[key] = _redact(value)
    return event_dict


def setup_logging() -> None:
    """
    Configure structlog and route stdlib logging through it.

    Safe to call more than once: the root handler installed here is
    replaced, not duplicated.
    """
    settings = get_settings()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        add_trace_context,
        redact_secrets,
    ]

    if settings.is_production:
        renderer: Processor = structlog.processors.JSONRenderer()
        final: list[Processor] = [structlog.processors.format_exc_info, renderer]
    else:
        final = [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *final],
        )
    )

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == HANDLER_NAME:
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.log_level))

    # Agency APIs are chatty at DEBUG; keep transport libraries quiet
    for name in ("httpx", "httpcore", "asyncio"):
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """Attach fields (request_id, sync_run) to every log line in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
