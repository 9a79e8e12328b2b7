"""
Global Exception Handlers

Every error leaves the service in one envelope:

{
    "error": {
        "status_code": 401,
        "error_code": "AUTH_INVALID_CREDENTIALS",
        "message": "Invalid credentials",
        "type": "Unauthorized",
        "path": "/auth/login"
    }
}

`error_code` is stable and meant for clients; `message` is for humans.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from qr_auth.exceptions import ErrorCode, QRAuthError

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    409: "Conflict",
    422: "Validation Error",
    429: "Too Many Requests",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
}

# Codes for errors raised by the framework rather than by our services
FRAMEWORK_ERROR_CODES = {
    401: ErrorCode.AUTH_FAILED,
    403: ErrorCode.AUTH_FAILED,
    422: ErrorCode.VALIDATION_FAILED,
    503: ErrorCode.SERVICE_UNAVAILABLE,
}

BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


def get_error_type(status_code: int) -> str:
    return STATUS_LABELS.get(status_code, "Error")


def create_error_response(
    request: Request,
    status_code: int,
    error_code: ErrorCode,
    message: str,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build the JSON error envelope for ``request``."""
    body: dict[str, Any] = {
        "status_code": status_code,
        "error_code": error_code.value,
        "message": message,
        "type": get_error_type(status_code),
        "path": request.url.path,
    }
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"error": body}, headers=headers)


async def qr_auth_exception_handler(request: Request, exc: QRAuthError) -> JSONResponse:
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(level, f"{request.method} {request.url.path} -> {type(exc).__name__} ({exc.error_code.value})")

    return create_error_response(
        request,
        exc.status_code,
        exc.error_code,
        exc.message,
        details=exc.details,
        headers=BEARER_CHALLENGE if exc.status_code == 401 else None,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes, wrong methods and the like."""
    return create_error_response(
        request,
        exc.status_code,
        FRAMEWORK_ERROR_CODES.get(exc.status_code, ErrorCode.UNKNOWN_ERROR),
        str(exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.info(f"Rejected request body on {request.url.path}: {[p['field'] for p in problems]}")

    return create_error_response(
        request,
        422,
        ErrorCode.VALIDATION_FAILED,
        "Request validation failed",
        details={"validation_errors": problems},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Full traceback goes to the log only
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")

    return create_error_response(
        request,
        500,
        ErrorCode.INTERNAL_ERROR,
        "An unexpected error occurred. Please try again later.",
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(QRAuthError, qr_auth_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
