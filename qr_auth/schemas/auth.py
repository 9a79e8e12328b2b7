"""Request and response bodies for the /auth endpoints (camelCase on the wire)."""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def check_password_strength(v: str) -> str:
    if not re.search(r"[A-Za-z]", v) or not re.search(r"\d", v):
        raise ValueError("Password must contain at least one letter and one digit")
    return v


def strip_not_blank(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Must not be blank")
    return v


# ── Requests ──────────────────────────────────────────────────────────────────


class RegisterSubmitRequest(CamelModel):
    email: EmailStr = Field(..., description="Owner email; receives the OTP.")
    password: str = Field(..., min_length=8, max_length=128, description="At least one letter and one digit.")
    full_name: str = Field(..., min_length=1, max_length=100)
    tenant_name: str = Field(..., min_length=1, max_length=200, description="Restaurant name.")
    slug: str = Field(..., min_length=3, max_length=50, pattern=SLUG_PATTERN, description="URL-safe tenant id.")

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return check_password_strength(v)

    @field_validator("full_name", "tenant_name")
    @classmethod
    def not_blank(cls, v: str) -> str:
        return strip_not_blank(v)


class RegisterConfirmRequest(CamelModel):
    registration_token: str = Field(..., min_length=1, max_length=128)
    otp: str = Field(..., min_length=1, max_length=12)

    @field_validator("otp")
    @classmethod
    def otp_digits(cls, v: str) -> str:
        if not v.isdigit():
            raise ValueError("OTP must contain only digits")
        return v


class ResendOtpRequest(CamelModel):
    registration_token: str = Field(..., min_length=1, max_length=128)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    device_info: Optional[str] = Field(None, max_length=255, description='e.g. "Chrome on Windows"')


class RefreshTokenRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=8, max_length=128, description="At least one letter and one digit.")

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return check_password_strength(v)


class UpdateProfileRequest(CamelModel):
    full_name: str = Field(..., min_length=1, max_length=100)

    @field_validator("full_name")
    @classmethod
    def not_blank(cls, v: str) -> str:
        return strip_not_blank(v)


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=8, max_length=128, description="At least one letter and one digit.")

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return check_password_strength(v)


class VerifyResetTokenRequest(CamelModel):
    token: str = Field(..., min_length=1, max_length=128)


# ── Responses ─────────────────────────────────────────────────────────────────


class RegisterSubmitResponse(CamelModel):
    message: str
    registration_token: str
    expires_in_seconds: int


class ResendOtpResponse(CamelModel):
    message: str
    expires_in_seconds: int


class UserSummary(CamelModel):
    id: str
    email: str
    full_name: str
    role: str
    tenant_id: Optional[str] = None


class TenantSummary(CamelModel):
    id: str
    name: str
    slug: str
    status: str
    onboarding_step: int


class AuthResponse(CamelModel):
    access_token: str
    refresh_token: str
    expires_in_seconds: int
    user: UserSummary
    tenant: Optional[TenantSummary] = None


class RefreshTokenResponse(CamelModel):
    access_token: str
    expires_in_seconds: int


class CurrentUserResponse(CamelModel):
    user: UserSummary
    tenant: Optional[TenantSummary] = None


class SessionInfo(CamelModel):
    id: str
    device_info: str
    last_used_at: datetime
    expires_at: datetime
    created_at: datetime


class MessageResponse(CamelModel):
    message: str


class UpdateProfileResponse(CamelModel):
    message: str
    user: UserSummary


class PasswordResetResponse(CamelModel):
    """Returned by forgot-password and reset-password."""

    message: str
    email: str


class VerifyResetTokenResponse(CamelModel):
    valid: bool
    email: Optional[str] = None
