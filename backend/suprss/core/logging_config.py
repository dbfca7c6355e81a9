"""
Structured JSON logging with correlation IDs and a security audit channel.
"""

import logging
import sys
import uuid
from typing import Optional
from datetime import datetime, timezone
from pythonjsonlogger import jsonlogger
from contextvars import ContextVar
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

# Context variable for correlation ID (task-local)
correlation_id_var: ContextVar[Optional[str]] = ContextVar(
    "correlation_id", default=None
)

AUDIT_LOGGER_NAME = "security.audit"


class CorrelationIdFilter(logging.Filter):
    """Add correlation ID to log records."""

    def filter(self, record):
        record.correlation_id = correlation_id_var.get() or "none"
        return True


class SuprssJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter; extra= fields (event_type, user_id, ...) are merged as-is."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record.setdefault("correlation_id", "none")
        log_record["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }


def setup_logging(level: int = logging.INFO):
    """Route the root and uvicorn loggers through one JSON stdout handler."""
    formatter = SuprssJsonFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(CorrelationIdFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.addHandler(console_handler)
        uvicorn_logger.propagate = False

    # httpx logs every feed request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    security_logger = logging.getLogger(AUDIT_LOGGER_NAME)
    security_logger.setLevel(logging.INFO)

    return security_logger


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Middleware to add correlation IDs to requests."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        correlation_id_var.set(correlation_id)
        request.state.correlation_id = correlation_id

        response = await call_next(request)

        response.headers["X-Correlation-ID"] = correlation_id
        return response


def log_security_event(
    event_type: str,
    message: str,
    level: int = logging.INFO,
    user_id: Optional[int] = None,
    collection_id: Optional[int] = None,
    event_category: str = "access",
    **extra_fields
):
    """
    Log an access-control or membership event to the audit logger.

    Args:
        event_type: Dotted event name (e.g. "access.denied", "membership.added")
        message: Human-readable message
        level: Logging level (default: INFO)
        user_id: Acting user, if known
        collection_id: Collection the event concerns, if any
        event_category: Event category (default: "access")
        **extra_fields: Additional fields to include
    """
    logger = logging.getLogger(AUDIT_LOGGER_NAME)

    extra = {
        "event_type": event_type,
        "event_category": event_category,
    }
    if user_id is not None:
        extra["user_id"] = user_id
    if collection_id is not None:
        extra["collection_id"] = collection_id

    extra.update(extra_fields)

    logger.log(level, message, extra=extra)
