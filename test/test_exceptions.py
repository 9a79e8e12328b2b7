"""
Tests for the domain exceptions and the error envelope
"""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel

from qr_auth.exception_handlers import get_error_type, register_exception_handlers
from qr_auth.exceptions import (
    AccountNotActiveError,
    CacheUnavailableError,
    DispatchFailureError,
    DurableConflictError,
    ErrorCode,
    InvalidCredentialsError,
    InvalidOrExpiredTokenError,
    InvalidOtpError,
    InvalidRefreshTokenError,
    QRAuthError,
    SessionExpiredOrInvalidError,
    UserNotFoundError,
    ValidationConflictError,
)


@pytest.mark.parametrize(
    "exc, status_code, error_code",
    [
        (ValidationConflictError("email"), 409, ErrorCode.AUTH_EMAIL_ALREADY_EXISTS),
        (ValidationConflictError("slug"), 409, ErrorCode.AUTH_SLUG_ALREADY_EXISTS),
        (InvalidOrExpiredTokenError(), 400, ErrorCode.AUTH_REGISTRATION_TOKEN_INVALID),
        (InvalidOtpError(), 400, ErrorCode.AUTH_OTP_INVALID),
        (DispatchFailureError(), 502, ErrorCode.EMAIL_SERVICE_ERROR),
        (DurableConflictError(), 409, ErrorCode.AUTH_ACCOUNT_CREATION_FAILED),
        (InvalidCredentialsError(), 401, ErrorCode.AUTH_INVALID_CREDENTIALS),
        (AccountNotActiveError(), 403, ErrorCode.AUTH_ACCOUNT_INACTIVE),
        (InvalidRefreshTokenError(), 401, ErrorCode.AUTH_TOKEN_INVALID),
        (SessionExpiredOrInvalidError(), 401, ErrorCode.AUTH_SESSION_NOT_FOUND),
        (CacheUnavailableError(), 503, ErrorCode.REDIS_ERROR),
        (UserNotFoundError("u1"), 404, ErrorCode.USER_NOT_FOUND),
    ],
)
def test_exception_status_and_code(exc, status_code, error_code):
    assert isinstance(exc, QRAuthError)
    assert exc.status_code == status_code
    assert exc.error_code == error_code
    assert str(exc) == exc.message


def test_validation_conflict_names_field():
    exc = ValidationConflictError("slug")
    assert exc.field == "slug"
    assert exc.details == {"field": "slug"}
    assert exc.message == "Slug already exists"


def test_error_types():
    assert get_error_type(401) == "Unauthorized"
    assert get_error_type(409) == "Conflict"
    assert get_error_type(418) == "Error"


class Body(BaseModel):
    name: str


@pytest.fixture
def app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/credentials")
    async def credentials():
        raise InvalidCredentialsError()

    @app.get("/conflict")
    async def conflict():
        raise ValidationConflictError("email")

    @app.get("/boom")
    async def boom():
        raise RuntimeError("database password is hunter2")

    @app.post("/body")
    async def body(payload: Body):
        return payload

    return app


class TestErrorEnvelope:
    async def test_domain_error(self, app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/credentials")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json() == {
            "error": {
                "status_code": 401,
                "error_code": "AUTH_INVALID_CREDENTIALS",
                "message": "Invalid credentials",
                "type": "Unauthorized",
                "path": "/credentials",
            }
        }

    async def test_details_are_included(self, app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/conflict")

        assert response.status_code == 409
        assert response.json()["error"]["details"] == {"field": "email"}
        assert "WWW-Authenticate" not in response.headers

    async def test_unknown_route(self, app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/nowhere")

        assert response.status_code == 404
        assert response.json()["error"]["type"] == "Not Found"

    async def test_request_validation(self, app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post("/body", json={})

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["error_code"] == "VALIDATION_FAILED"
        assert error["details"]["validation_errors"][0]["field"] == "name"

    async def test_unhandled_error_hides_internals(self, app):
        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/boom")

        assert response.status_code == 500
        assert response.json()["error"]["error_code"] == "INTERNAL_ERROR"
        assert "hunter2" not in response.text
