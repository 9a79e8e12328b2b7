"""
Custom Exception Classes for the QR Ordering auth service

This module defines the domain exceptions raised by the registration and
session services. Every exception carries an HTTP status and a
machine-readable error code so the exception handlers can render a
consistent error envelope.
"""

import enum
from typing import Any

from fastapi import status


class ErrorCode(str, enum.Enum):
    """Machine-readable error codes exposed to API clients."""

    # Authentication
    AUTH_FAILED = "AUTH_FAILED"
    AUTH_INVALID_CREDENTIALS = "AUTH_INVALID_CREDENTIALS"
    AUTH_TOKEN_EXPIRED = "AUTH_TOKEN_EXPIRED"
    AUTH_TOKEN_INVALID = "AUTH_TOKEN_INVALID"
    AUTH_EMAIL_ALREADY_EXISTS = "AUTH_EMAIL_ALREADY_EXISTS"
    AUTH_SLUG_ALREADY_EXISTS = "AUTH_SLUG_ALREADY_EXISTS"
    AUTH_OTP_INVALID = "AUTH_OTP_INVALID"
    AUTH_REGISTRATION_TOKEN_INVALID = "AUTH_REGISTRATION_TOKEN_INVALID"
    AUTH_ACCOUNT_CREATION_FAILED = "AUTH_ACCOUNT_CREATION_FAILED"
    AUTH_SESSION_NOT_FOUND = "AUTH_SESSION_NOT_FOUND"
    AUTH_ACCOUNT_INACTIVE = "AUTH_ACCOUNT_INACTIVE"
    AUTH_OTP_RESEND_LIMIT = "AUTH_OTP_RESEND_LIMIT"
    AUTH_PASSWORD_INCORRECT = "AUTH_PASSWORD_INCORRECT"
    AUTH_RESET_TOKEN_INVALID = "AUTH_RESET_TOKEN_INVALID"

    # Resources
    USER_NOT_FOUND = "USER_NOT_FOUND"

    # Validation
    VALIDATION_FAILED = "VALIDATION_FAILED"

    # System
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    REDIS_ERROR = "REDIS_ERROR"
    EMAIL_SERVICE_ERROR = "EMAIL_SERVICE_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class QRAuthError(Exception):
    """Base exception class for all auth-service exceptions"""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


# ============================================================================
# Authentication Exceptions
# ============================================================================


class AuthenticationError(QRAuthError):
    """Raised when a bearer credential cannot be authenticated"""

    def __init__(
        self,
        message: str = "Authentication failed",
        error_code: ErrorCode = ErrorCode.AUTH_FAILED,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code=error_code,
            details=details,
        )


class InvalidCredentialsError(AuthenticationError):
    """Raised for an unknown email or a wrong password; both look the same"""

    def __init__(self):
        super().__init__(message="Invalid credentials", error_code=ErrorCode.AUTH_INVALID_CREDENTIALS)


class TokenExpiredError(AuthenticationError):
    """Raised when a JWT has expired"""

    def __init__(self, message: str = "Token has expired"):
        super().__init__(message=message, error_code=ErrorCode.AUTH_TOKEN_EXPIRED)


class InvalidTokenError(AuthenticationError):
    """Raised when a JWT is malformed, tampered with or of the wrong type"""

    def __init__(self, message: str = "Invalid or malformed token"):
        super().__init__(message=message, error_code=ErrorCode.AUTH_TOKEN_INVALID)


class InvalidRefreshTokenError(AuthenticationError):
    """Raised when a refresh token fails verification or matches no session"""

    def __init__(self, message: str = "Invalid refresh token"):
        super().__init__(message=message, error_code=ErrorCode.AUTH_TOKEN_INVALID)


class SessionExpiredOrInvalidError(AuthenticationError):
    """Raised when the refresh token's subject has no live session"""

    def __init__(self, message: str = "No active session found"):
        super().__init__(message=message, error_code=ErrorCode.AUTH_SESSION_NOT_FOUND)


class AccountNotActiveError(QRAuthError):
    """Raised when a correctly authenticated account is not ACTIVE"""

    def __init__(self, message: str = "Account is not active. Please contact support."):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code=ErrorCode.AUTH_ACCOUNT_INACTIVE,
        )


# ============================================================================
# Registration Exceptions
# ============================================================================


class ValidationConflictError(QRAuthError):
    """Raised at submit time when the email or slug is already taken"""

    _codes = {
        "email": ErrorCode.AUTH_EMAIL_ALREADY_EXISTS,
        "slug": ErrorCode.AUTH_SLUG_ALREADY_EXISTS,
    }

    def __init__(self, field: str):
        super().__init__(
            message=f"{field.capitalize()} already exists",
            status_code=status.HTTP_409_CONFLICT,
            error_code=self._codes.get(field, ErrorCode.VALIDATION_FAILED),
            details={"field": field},
        )
        self.field = field


class InvalidOrExpiredTokenError(QRAuthError):
    """Raised when a registration token has no staged entry"""

    def __init__(self):
        super().__init__(
            message="Registration token expired or invalid. Please start registration again.",
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code=ErrorCode.AUTH_REGISTRATION_TOKEN_INVALID,
        )


class InvalidOtpError(QRAuthError):
    """Raised when the OTP does not match; the staged entry is kept"""

    def __init__(self):
        super().__init__(
            message="Invalid OTP code. Please try again.",
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code=ErrorCode.AUTH_OTP_INVALID,
        )


class DispatchFailureError(QRAuthError):
    """Raised when the OTP email could not be delivered"""

    def __init__(self, message: str = "Failed to send OTP email. Please try again."):
        super().__init__(
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code=ErrorCode.EMAIL_SERVICE_ERROR,
        )


class ResendLimitExceededError(QRAuthError):
    """Raised when a pending registration has used up its OTP resends"""

    def __init__(self, max_resends: int):
        super().__init__(
            message="Too many OTP requests. Please start registration again.",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            error_code=ErrorCode.AUTH_OTP_RESEND_LIMIT,
            details={"max_resends": max_resends},
        )


class DurableConflictError(QRAuthError):
    """Raised when the tenant/owner transaction fails at confirm time"""

    def __init__(self):
        super().__init__(
            message="Failed to create account. Please try again or contact support.",
            status_code=status.HTTP_409_CONFLICT,
            error_code=ErrorCode.AUTH_ACCOUNT_CREATION_FAILED,
        )


# ============================================================================
# Password Exceptions
# ============================================================================


class IncorrectPasswordError(AuthenticationError):
    """Raised when the current password given to change-password is wrong"""

    def __init__(self):
        super().__init__(message="Current password is incorrect", error_code=ErrorCode.AUTH_PASSWORD_INCORRECT)


class InvalidResetTokenError(QRAuthError):
    """Raised when a password reset token has no staged entry"""

    def __init__(self):
        super().__init__(
            message="Invalid or expired reset token",
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code=ErrorCode.AUTH_RESET_TOKEN_INVALID,
        )


# ============================================================================
# Resource & Service Exceptions
# ============================================================================


class UserNotFoundError(QRAuthError):
    """Raised when a user is not found"""

    def __init__(self, user_id: Any | None = None):
        message = "User not found"
        if user_id is not None:
            message = f"User with id '{user_id}' not found"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            error_code=ErrorCode.USER_NOT_FOUND,
            details={"resource_type": "User", "resource_id": user_id},
        )


class CacheUnavailableError(QRAuthError):
    """Raised when the registration or password reset cache cannot be reached"""

    def __init__(self, message: str = "Token cache is unavailable. Please try again later."):
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code=ErrorCode.REDIS_ERROR,
        )
