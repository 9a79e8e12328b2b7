"""
Structured Logging Middleware

Every request gets an ID (taken from X-Request-ID or generated). The ID is
stamped on all log records emitted while the request is handled and echoed
back in the response header.
"""

import json
import logging
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

_current_request_id: ContextVar[str] = ContextVar("qr_auth_request_id", default="")

access_logger = logging.getLogger("qr_auth.access")


def get_request_id() -> str:
    return _current_request_id.get()


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


class StructuredFormatter(logging.Formatter):
    """Render each record as a single JSON line."""

    def __init__(self, service: str = "qr-auth"):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "service": self.service,
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if getattr(record, "request_id", ""):
            entry["request_id"] = record.request_id
        http = getattr(record, "http", None)
        if http:
            entry["http"] = http
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _client_address(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",", 1)[0].strip()
    return request.client.host if request.client else "-"


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """One access line per request, tagged with the request ID."""

    quiet_paths = frozenset({"/health"})

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        reset_token = _current_request_id.set(request_id)
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            if request.url.path not in self.quiet_paths:
                self._access_line(request, status_code, time.perf_counter() - started)
            _current_request_id.reset(reset_token)

    @staticmethod
    def _access_line(request: Request, status_code: int, elapsed: float) -> None:
        if status_code >= 500:
            level = logging.ERROR
        elif status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO

        elapsed_ms = round(elapsed * 1000, 2)
        access_logger.log(
            level,
            f"{request.method} {request.url.path} {status_code} {elapsed_ms}ms",
            extra={
                "http": {
                    "method": request.method,
                    "path": request.url.path,
                    "status": status_code,
                    "duration_ms": elapsed_ms,
                    "client": _client_address(request),
                }
            },
        )


def setup_structured_logging(log_level: str = "INFO", json_format: bool = True) -> None:
    """
    Route all logging through one stderr handler.

    Args:
        log_level: Root level name, e.g. "DEBUG" or "INFO"
        json_format: JSON lines for production, plain text for local runs
    """
    handler = logging.StreamHandler()
    handler.addFilter(RequestIdFilter())
    if json_format:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(name)s [%(request_id)s] %(message)s"))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(log_level.upper())

    # Third-party chatter
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
