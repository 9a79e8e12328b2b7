"""
Auth Service

Entry point used by the /auth routes. Owns login, profile and password
changes, and delegates registration, password reset and session work to
the specialised services.
"""

import logging

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from qr_auth.auth import hash_password, pwd_context, verify_password
from qr_auth.database import get_db
from qr_auth.exceptions import (
    AccountNotActiveError,
    IncorrectPasswordError,
    InvalidCredentialsError,
    UserNotFoundError,
)
from qr_auth.models.user_session import UserSession
from qr_auth.schemas.auth import (
    AuthResponse,
    CurrentUserResponse,
    PasswordResetResponse,
    RefreshTokenResponse,
    RegisterSubmitResponse,
    ResendOtpResponse,
    TenantSummary,
    UserSummary,
    VerifyResetTokenResponse,
)
from qr_auth.services import account_store
from qr_auth.services.email_service import EmailService, get_email_service
from qr_auth.services.password_reset_service import PasswordResetService
from qr_auth.services.registration_service import RegistrationService
from qr_auth.services.session_service import SessionService
from qr_auth.services.token_service import TokenService, get_token_service
from qr_auth.utils.cache import TokenCache, get_password_reset_cache, get_registration_cache, password_reset_cache

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(
        self,
        db: AsyncSession,
        cache: TokenCache,
        email_service: EmailService,
        token_service: TokenService | None = None,
        reset_cache: TokenCache | None = None,
    ):
        self.db = db
        self.sessions = SessionService(db, token_service)
        self.registration = RegistrationService(
            db,
            cache=cache,
            email_service=email_service,
            session_service=self.sessions,
        )
        self.password_reset = PasswordResetService(
            db,
            cache=reset_cache or password_reset_cache,
            email_service=email_service,
            session_service=self.sessions,
        )

    # ── Registration ─────────────────────────────────────────────────────────

    async def submit_registration(
        self, email: str, password: str, full_name: str, tenant_name: str, slug: str
    ) -> RegisterSubmitResponse:
        return await self.registration.submit(email, password, full_name, tenant_name, slug)

    async def confirm_registration(self, registration_token: str, otp: str) -> AuthResponse:
        return await self.registration.confirm(registration_token, otp)

    async def resend_registration_otp(self, registration_token: str) -> ResendOtpResponse:
        return await self.registration.resend_otp(registration_token)

    # ── Login & sessions ─────────────────────────────────────────────────────

    async def login(self, email: str, password: str, device_info: str | None = None) -> AuthResponse:
        """
        Authenticate by email and password.

        Unknown email and wrong password raise the same error after the same
        amount of hashing work. Account status is only revealed once the
        password has been verified.
        """
        user = await account_store.get_user_by_email(self.db, email)
        if user is None:
            pwd_context.dummy_verify()
            logger.info("Login failed: invalid credentials")
            raise InvalidCredentialsError()
        if not verify_password(password, user.password_hash):
            logger.info("Login failed: invalid credentials")
            raise InvalidCredentialsError()

        if not user.is_active:
            logger.info(f"Login refused for non-active user {user.id} ({user.status})")
            raise AccountNotActiveError()

        response = await self.sessions.create_session(user, device_info)
        logger.info(f"User {user.id} logged in")
        return response

    async def refresh_access_token(self, refresh_token: str) -> RefreshTokenResponse:
        return await self.sessions.refresh_access_token(refresh_token)

    async def logout(self, user_id: str, refresh_token: str) -> None:
        await self.sessions.logout(user_id, refresh_token)

    async def logout_all(self, user_id: str) -> int:
        return await self.sessions.logout_all(user_id)

    async def list_sessions(self, user_id: str) -> list[UserSession]:
        return await self.sessions.list_sessions(user_id)

    # ── Profile & password ───────────────────────────────────────────────────

    async def get_current_user(self, user_id: str) -> CurrentUserResponse:
        user = await account_store.get_user_by_id(self.db, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        tenant = TenantSummary.model_validate(user.tenant) if user.tenant is not None else None
        return CurrentUserResponse(user=UserSummary.model_validate(user), tenant=tenant)

    async def update_profile(self, user_id: str, full_name: str) -> UserSummary:
        user = await account_store.get_user_by_id(self.db, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        user = await account_store.update_full_name(self.db, user, full_name)
        logger.info(f"Profile updated for user {user_id}")
        return UserSummary.model_validate(user)

    async def change_password(self, user_id: str, current_password: str, new_password: str) -> int:
        """
        Replace the password after checking the current one.

        Every session of the user is ended, this device included. Returns
        the number of sessions removed.
        """
        user = await account_store.get_user_by_id(self.db, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        if not verify_password(current_password, user.password_hash):
            logger.info(f"Password change refused for user {user_id}: wrong current password")
            raise IncorrectPasswordError()

        await account_store.update_password_hash(self.db, user, hash_password(new_password))
        count = await self.sessions.logout_all(user_id)
        logger.info(f"Password changed for user {user_id}")
        return count

    async def forgot_password(self, email: str) -> PasswordResetResponse:
        return await self.password_reset.request_reset(email)

    async def verify_reset_token(self, token: str) -> VerifyResetTokenResponse:
        return await self.password_reset.verify_token(token)

    async def reset_password(self, token: str, new_password: str) -> PasswordResetResponse:
        return await self.password_reset.reset_password(token, new_password)


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    cache: TokenCache = Depends(get_registration_cache),
    reset_cache: TokenCache = Depends(get_password_reset_cache),
    email_service: EmailService = Depends(get_email_service),
    token_service: TokenService = Depends(get_token_service),
) -> AuthService:
    """FastAPI dependency for AuthService."""
    return AuthService(
        db,
        cache=cache,
        email_service=email_service,
        token_service=token_service,
        reset_cache=reset_cache,
    )
