"""
Password Reset Service

Forgot-password flow for owners and staff:

1. request_reset: stage ``{user_id, email}`` under a random token in the
   password reset cache and email a link carrying the token.
2. verify_token: report whether a token is still redeemable.
3. reset_password: set the new password, consume the token and end every
   session of the user.

Reset tokens live only in the cache, so an unused one simply expires.
"""

import logging
import secrets

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from qr_auth.auth import hash_password
from qr_auth.config import settings
from qr_auth.exceptions import DispatchFailureError, InvalidResetTokenError
from qr_auth.schemas.auth import PasswordResetResponse, VerifyResetTokenResponse
from qr_auth.services import account_store
from qr_auth.services.email_service import EmailService
from qr_auth.services.session_service import SessionService
from qr_auth.utils.cache import TokenCache

logger = logging.getLogger(__name__)

REQUEST_MESSAGE = "If an account exists with this email, you will receive a password reset link shortly."
RESET_MESSAGE = "Password reset successful. You can now log in with your new password."
DISPATCH_FAILURE_MESSAGE = "Failed to send password reset email. Please try again later."


class PasswordResetService:
    """Token-based password reset backed by the password reset cache."""

    def __init__(
        self,
        db: AsyncSession,
        cache: TokenCache,
        email_service: EmailService,
        session_service: SessionService,
        expiry_seconds: int | None = None,
    ):
        self.db = db
        self.cache = cache
        self.email_service = email_service
        self.session_service = session_service
        self.expiry_seconds = expiry_seconds or settings.password_reset_expiry_seconds

    @staticmethod
    def generate_reset_token() -> str:
        return secrets.token_hex(32)

    @staticmethod
    def build_reset_link(token: str) -> str:
        return f"{settings.tenant_app_url.rstrip('/')}/auth/reset-password?token={token}"

    async def request_reset(self, email: str) -> PasswordResetResponse:
        """
        Email a reset link if ``email`` belongs to an account.

        The response is the same whether or not the account exists.
        """
        user = await account_store.get_user_by_email(self.db, email)
        if user is None:
            logger.info("Password reset requested for an unknown email")
            return PasswordResetResponse(message=REQUEST_MESSAGE, email=email)

        token = self.generate_reset_token()
        await self.cache.put(token, {"user_id": user.id, "email": user.email}, self.expiry_seconds)

        link = self.build_reset_link(token)
        try:
            delivered = await run_in_threadpool(self.email_service.send_password_reset, user.email, link)
        except Exception as e:
            await self.cache.delete(token)
            logger.exception(f"Password reset email raised for user {user.id}")
            raise DispatchFailureError(DISPATCH_FAILURE_MESSAGE) from e

        if not delivered:
            await self.cache.delete(token)
            logger.error(f"Password reset email failed for user {user.id}")
            raise DispatchFailureError(DISPATCH_FAILURE_MESSAGE)

        logger.info(f"Password reset link sent to user {user.id}")
        return PasswordResetResponse(message=REQUEST_MESSAGE, email=email)

    async def verify_token(self, token: str) -> VerifyResetTokenResponse:
        pending = await self.cache.get(token)
        if pending is None:
            return VerifyResetTokenResponse(valid=False)
        return VerifyResetTokenResponse(valid=True, email=pending["email"])

    async def reset_password(self, token: str, new_password: str) -> PasswordResetResponse:
        pending = await self.cache.get(token)
        if pending is None:
            raise InvalidResetTokenError()

        user = await account_store.get_user_by_id(self.db, pending["user_id"])
        if user is None:
            await self.cache.delete(token)
            raise InvalidResetTokenError()

        await account_store.update_password_hash(self.db, user, hash_password(new_password))
        await self.cache.delete(token)
        await self.session_service.logout_all(user.id)

        logger.info(f"Password reset completed for user {user.id}")
        return PasswordResetResponse(message=RESET_MESSAGE, email=user.email)
