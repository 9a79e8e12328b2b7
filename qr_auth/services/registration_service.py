"""
Registration Service

Two-step owner sign-up:

1. submit: validate uniqueness, stage the hashed registration data and an
   OTP in the registration cache, and email the OTP.
2. confirm: check the OTP and create the tenant and its OWNER user in one
   transaction, then open the first session.

Nothing is written to the database until step 2 succeeds.
"""

import hmac
import logging
import secrets
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from qr_auth.auth import hash_password
from qr_auth.config import settings
from qr_auth.exceptions import (
    DispatchFailureError,
    DurableConflictError,
    InvalidOrExpiredTokenError,
    InvalidOtpError,
    ResendLimitExceededError,
    ValidationConflictError,
)
from qr_auth.schemas.auth import AuthResponse, RegisterSubmitResponse, ResendOtpResponse
from qr_auth.services import account_store
from qr_auth.services.email_service import EmailService
from qr_auth.services.otp_service import OtpService
from qr_auth.services.session_service import SessionService
from qr_auth.utils.cache import TokenCache

logger = logging.getLogger(__name__)

REGISTRATION_DEVICE_INFO = "Registration Device"
SUBMIT_MESSAGE = "Validation successful. OTP sent to email."
RESEND_MESSAGE = "A new OTP has been sent to your email."


class RegistrationService:
    """Stage-then-commit owner registration."""

    def __init__(
        self,
        db: AsyncSession,
        cache: TokenCache,
        email_service: EmailService,
        session_service: SessionService,
        otp_service: OtpService | None = None,
        expiry_seconds: int | None = None,
        max_resends: int | None = None,
    ):
        self.db = db
        self.cache = cache
        self.email_service = email_service
        self.session_service = session_service
        self.otp_service = otp_service or OtpService()
        self.expiry_seconds = expiry_seconds or settings.registration_data_expiry_seconds
        self.max_resends = settings.registration_max_otp_resends if max_resends is None else max_resends

    @staticmethod
    def generate_registration_token() -> str:
        """64 hex characters from 32 random bytes."""
        return secrets.token_hex(32)

    async def _dispatch_otp(self, email: str, otp: str) -> bool:
        # smtplib blocks; keep it off the event loop
        return await run_in_threadpool(self.email_service.send_otp, email, otp)

    async def submit(
        self,
        email: str,
        password: str,
        full_name: str,
        tenant_name: str,
        slug: str,
    ) -> RegisterSubmitResponse:
        if await account_store.email_exists(self.db, email):
            raise ValidationConflictError("email")
        if await account_store.slug_exists(self.db, slug):
            raise ValidationConflictError("slug")

        otp = self.otp_service.generate()
        token = self.generate_registration_token()
        pending: dict[str, Any] = {
            "email": email,
            "password_hash": hash_password(password),
            "full_name": full_name,
            "tenant_name": tenant_name,
            "slug": slug,
            "otp": otp,
        }

        await self.cache.put(token, pending, self.expiry_seconds)

        try:
            delivered = await self._dispatch_otp(email, otp)
        except Exception as e:
            await self.cache.delete(token)
            logger.exception(f"OTP dispatch raised for pending registration slug={slug}")
            raise DispatchFailureError() from e

        if not delivered:
            # A staged entry whose OTP never arrived is useless
            await self.cache.delete(token)
            logger.error(f"OTP dispatch failed for pending registration slug={slug}")
            raise DispatchFailureError()

        logger.info(f"Registration staged for slug={slug}")
        return RegisterSubmitResponse(
            message=SUBMIT_MESSAGE,
            registration_token=token,
            expires_in_seconds=self.expiry_seconds,
        )

    async def confirm(self, registration_token: str, otp: str) -> AuthResponse:
        pending = await self.cache.get(registration_token)
        if pending is None:
            raise InvalidOrExpiredTokenError()

        if not hmac.compare_digest(pending["otp"].encode(), otp.encode()):
            logger.info(f"Wrong OTP for pending registration slug={pending['slug']}")
            raise InvalidOtpError()

        try:
            user = await account_store.create_tenant_with_owner(
                self.db,
                email=pending["email"],
                password_hash=pending["password_hash"],
                full_name=pending["full_name"],
                tenant_name=pending["tenant_name"],
                slug=pending["slug"],
            )
        except SQLAlchemyError:
            # Entry is kept so the caller can retry
            raise DurableConflictError()

        response = await self.session_service.create_session(user, REGISTRATION_DEVICE_INFO)
        await self.cache.delete(registration_token)

        logger.info(f"Registration confirmed: user={user.id} tenant={user.tenant_id}")
        return response

    async def resend_otp(self, registration_token: str) -> ResendOtpResponse:
        """Replace the OTP of a pending registration and email the new one."""
        pending = await self.cache.get(registration_token)
        if pending is None:
            raise InvalidOrExpiredTokenError()

        # Each resend restarts the TTL; the cap bounds the entry's total lifetime
        resends = pending.get("resends", 0)
        if resends >= self.max_resends:
            await self.cache.delete(registration_token)
            logger.info(f"OTP resend limit reached for pending registration slug={pending['slug']}")
            raise ResendLimitExceededError(self.max_resends)

        otp = self.otp_service.generate()
        pending["otp"] = otp
        pending["resends"] = resends + 1
        await self.cache.put(registration_token, pending, self.expiry_seconds)

        try:
            delivered = await self._dispatch_otp(pending["email"], otp)
        except Exception as e:
            logger.exception(f"OTP resend raised for pending registration slug={pending['slug']}")
            raise DispatchFailureError() from e
        if not delivered:
            raise DispatchFailureError()

        logger.info(f"OTP resent for pending registration slug={pending['slug']}")
        return ResendOtpResponse(message=RESEND_MESSAGE, expires_in_seconds=self.expiry_seconds)
