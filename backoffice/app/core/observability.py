"""
Request correlation and logging setup.

Every request gets a correlation id (taken from `X-Correlation-ID` or
generated). It is echoed in the response and attached to every log record
written while the request is handled.
"""

import time
import uuid
import logging
from contextvars import ContextVar
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from backoffice.app.core.config import settings

logger = logging.getLogger("backoffice.http")

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [%(correlation_id)s] %(message)s"


class CorrelationIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = correlation_id_var.get()
        return True


def configure_logging() -> None:
    """Configure root logging once, at application startup."""
    handler = logging.StreamHandler()
    handler.addFilter(CorrelationIdFilter())
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[handler],
    )


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or uuid.uuid4().hex
        reset_token = correlation_id_var.set(correlation_id)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            correlation_id_var.reset(reset_token)
        duration_ms = round((time.perf_counter() - started) * 1000, 2)

        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Process-Time"] = str(duration_ms)

        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO
        logger.log(
            level, "%s %s -> %d (%.2f ms)",
            request.method, request.url.path, response.status_code, duration_ms,
            extra={"correlation_id": correlation_id},
        )
        return response
