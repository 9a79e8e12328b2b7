from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from qr_auth.config import settings
from qr_auth.database import get_db
from qr_auth.exceptions import AccountNotActiveError, AuthenticationError, InvalidTokenError
from qr_auth.services import account_store
from qr_auth.services.token_service import TokenService, get_token_service
import logging

# Initialize logging
logger = logging.getLogger(__name__)

# Password hashing context.
# bcrypt_sha256 pre-hashes the input so secrets longer than 72 bytes (JWTs)
# are not truncated; plain bcrypt digests still verify.
pwd_context = CryptContext(
    schemes=["bcrypt_sha256", "bcrypt"],
    deprecated="auto",
    bcrypt_sha256__rounds=settings.bcrypt_rounds,
    bcrypt__rounds=settings.bcrypt_rounds,
)

# Bearer scheme for access tokens; errors are raised by get_current_user
bearer_scheme = HTTPBearer(auto_error=False)


# Function to hash a password or refresh token
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


# Function to verify a secret against a stored digest
def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        # Malformed or unknown digest
        logger.warning("Password verification against a malformed hash")
        return False


@dataclass(frozen=True)
class AuthContext:
    """Identity extracted from a verified access token."""

    user_id: str
    email: str
    role: str
    tenant_id: Optional[str]


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
    token_service: TokenService = Depends(get_token_service),
) -> AuthContext:
    """
    Resolve the caller from an ``Authorization: Bearer <access token>`` header.

    The user must still exist and be ACTIVE.
    """
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        logger.warning("Request without bearer credentials")
        raise AuthenticationError("Not authenticated")

    payload = token_service.verify_access_token(credentials.credentials)

    user = await account_store.get_user_by_id(db, payload["sub"])
    if user is None:
        logger.warning(f"Access token for unknown user: {payload['sub']}")
        raise InvalidTokenError("Could not validate credentials")
    if not user.is_active:
        raise AccountNotActiveError()

    return AuthContext(
        user_id=user.id,
        email=user.email,
        role=user.role,
        tenant_id=user.tenant_id,
    )
