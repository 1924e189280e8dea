"""Per-request correlation ids and the logging setup that reports them."""
from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

CORRELATION_HEADER = "X-Correlation-ID"
LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(correlation_id)s] %(name)s: %(message)s"

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="-")


def current_correlation_id() -> str:
    return _correlation_id.get()


class CorrelationIdFilter(logging.Filter):
    """Stamp every log record with the active request's correlation id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = _correlation_id.get()
        return True


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Attach a correlation id to each request and echo it on the response.

    A valid UUID supplied in ``X-Correlation-ID`` is reused; anything else is
    replaced by a fresh UUID4.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER)
        try:
            if correlation_id:
                uuid.UUID(correlation_id)
            else:
                correlation_id = str(uuid.uuid4())
        except (ValueError, TypeError):
            correlation_id = str(uuid.uuid4())

        request.state.correlation_id = correlation_id
        token = _correlation_id.set(correlation_id)
        try:
            response = await call_next(request)
        finally:
            _correlation_id.reset(token)

        response.headers[CORRELATION_HEADER] = correlation_id
        return response


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger so every handler reports correlation ids."""

    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in root.handlers:
        if not any(isinstance(item, CorrelationIdFilter) for item in handler.filters):
            handler.addFilter(CorrelationIdFilter())


__all__ = [
    "CORRELATION_HEADER",
    "CorrelationIdFilter",
    "CorrelationIdMiddleware",
    "configure_logging",
    "current_correlation_id",
]
