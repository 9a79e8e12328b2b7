"""
Session Service

Per-device login sessions. Each login or confirmed registration issues an
access/refresh token pair and stores one UserSession row holding only a
hash of the refresh token.
"""

import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from qr_auth.auth import hash_password, verify_password
from qr_auth.exceptions import (
    AccountNotActiveError,
    InvalidRefreshTokenError,
    InvalidTokenError,
    SessionExpiredOrInvalidError,
    TokenExpiredError,
)
from qr_auth.models.user import User
from qr_auth.models.user_session import UserSession
from qr_auth.schemas.auth import AuthResponse, RefreshTokenResponse, TenantSummary, UserSummary
from qr_auth.services import account_store
from qr_auth.services.token_service import TokenService
from qr_auth.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_DEVICE_INFO = "Unknown"


def build_auth_response(user: User, access_token: str, refresh_token: str, expires_in_seconds: int) -> AuthResponse:
    tenant = TenantSummary.model_validate(user.tenant) if user.tenant is not None else None
    return AuthResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in_seconds=expires_in_seconds,
        user=UserSummary.model_validate(user),
        tenant=tenant,
    )


class SessionService:
    """Issues, refreshes and revokes per-device sessions."""

    def __init__(self, db: AsyncSession, token_service: TokenService | None = None):
        self.db = db
        self.token_service = token_service or TokenService()

    async def create_session(self, user: User, device_info: str | None = None) -> AuthResponse:
        access_token = self.token_service.generate_access_token(
            user_id=user.id,
            email=user.email,
            role=user.role,
            tenant_id=user.tenant_id,
        )
        refresh_token = self.token_service.generate_refresh_token(user.id)

        expires_at = utcnow() + timedelta(seconds=self.token_service.refresh_token_expiry_seconds)
        session = await account_store.add_session(
            self.db,
            user_id=user.id,
            refresh_token_hash=hash_password(refresh_token),
            device_info=device_info or DEFAULT_DEVICE_INFO,
            expires_at=expires_at,
        )
        logger.info(f"Session {session.id} created for user {user.id} ({session.device_info})")

        return build_auth_response(
            user,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in_seconds=self.token_service.access_token_expiry_seconds,
        )

    async def refresh_access_token(self, refresh_token: str) -> RefreshTokenResponse:
        """
        Exchange a refresh token for a new access token.

        The presented token must verify and must hash-match one of the
        subject's non-expired sessions. The refresh token itself is not
        rotated.
        """
        try:
            payload = self.token_service.verify_refresh_token(refresh_token)
        except (TokenExpiredError, InvalidTokenError):
            raise InvalidRefreshTokenError()

        user_id = payload["sub"]
        sessions = await account_store.list_live_sessions(self.db, user_id)
        if not sessions:
            logger.info(f"Refresh rejected: no live session for user {user_id}")
            raise SessionExpiredOrInvalidError()

        session = self._find_matching_session(sessions, refresh_token)
        if session is None:
            logger.warning(f"Refresh rejected: token matches no session of user {user_id}")
            raise InvalidRefreshTokenError()

        user = await account_store.get_user_by_id(self.db, user_id)
        if user is None:
            raise InvalidRefreshTokenError()
        if not user.is_active:
            raise AccountNotActiveError()

        await account_store.touch_session(self.db, session)

        access_token = self.token_service.generate_access_token(
            user_id=user.id,
            email=user.email,
            role=user.role,
            tenant_id=user.tenant_id,
        )
        return RefreshTokenResponse(
            access_token=access_token,
            expires_in_seconds=self.token_service.access_token_expiry_seconds,
        )

    async def logout(self, user_id: str, refresh_token: str) -> None:
        """Delete the one session of ``user_id`` whose hash matches ``refresh_token``."""
        sessions = await account_store.list_user_sessions(self.db, user_id)
        session = self._find_matching_session(sessions, refresh_token)
        if session is None:
            raise InvalidRefreshTokenError()

        await account_store.delete_session(self.db, session)
        logger.info(f"Session {session.id} of user {user_id} logged out")

    async def logout_all(self, user_id: str) -> int:
        count = await account_store.delete_all_sessions(self.db, user_id)
        logger.info(f"Logged out {count} session(s) of user {user_id}")
        return count

    async def list_sessions(self, user_id: str) -> list[UserSession]:
        return await account_store.list_live_sessions(self.db, user_id)

    @staticmethod
    def _find_matching_session(sessions: list[UserSession], refresh_token: str) -> UserSession | None:
        for session in sessions:
            if verify_password(refresh_token, session.refresh_token_hash):
                return session
        return None


async def cleanup_expired_sessions(db: AsyncSession) -> int:
    """Delete every session row whose refresh window has closed."""
    count = await account_store.delete_expired_sessions(db)
    if count:
        logger.info(f"Removed {count} expired session(s)")
    return count
