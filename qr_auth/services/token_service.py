"""
Token Service

Signs and verifies the short claim sets handed to clients:

- access tokens: ``sub``, ``email``, ``role``, ``tenantId`` (short TTL)
- refresh tokens: ``sub`` only (long TTL)

Both carry ``exp``/``iat``/``jti`` and a ``type`` marker so an access token
can never be presented where a refresh token is expected.
"""

import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import ExpiredSignatureError, JWTError, jwt

from qr_auth.config import settings
from qr_auth.exceptions import InvalidTokenError, TokenExpiredError

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

_EXPIRY_PATTERN = re.compile(r"^(\d+)([smhd]?)$")
_UNIT_SECONDS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}
DEFAULT_EXPIRY_SECONDS = 3600


def parse_expiry_to_seconds(expiry: str | int) -> int:
    """
    Convert an expiry such as "15m", "1h", "7d", "30s" or "3600" to seconds.

    Unparseable values fall back to one hour.
    """
    if isinstance(expiry, int):
        return expiry
    match = _EXPIRY_PATTERN.match(expiry.strip())
    if not match:
        logger.warning(f"Unparseable token expiry '{expiry}', using {DEFAULT_EXPIRY_SECONDS}s")
        return DEFAULT_EXPIRY_SECONDS
    value, unit = match.groups()
    return int(value) * _UNIT_SECONDS[unit]


class TokenService:
    """Issues and verifies JWTs with independently configured TTLs."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        access_expires_in: str | int | None = None,
        refresh_expires_in: str | int | None = None,
    ):
        self.secret_key = secret_key or settings.secret_key
        self.algorithm = algorithm or settings.jwt_algorithm
        self.access_token_expiry_seconds = parse_expiry_to_seconds(
            access_expires_in if access_expires_in is not None else settings.jwt_access_token_expires_in
        )
        self.refresh_token_expiry_seconds = parse_expiry_to_seconds(
            refresh_expires_in if refresh_expires_in is not None else settings.jwt_refresh_token_expires_in
        )

    def sign(self, claims: dict[str, Any], ttl_seconds: int) -> str:
        """Sign a claim set that expires ``ttl_seconds`` from now."""
        if "sub" not in claims:
            raise ValueError("Missing 'sub' claim in token data.")

        now = datetime.now(timezone.utc)
        to_encode = claims.copy()
        to_encode.update(
            {
                "iat": now,
                "exp": now + timedelta(seconds=ttl_seconds),
                "jti": uuid.uuid4().hex,
            }
        )
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str, expected_type: Optional[str] = None) -> dict[str, Any]:
        """
        Verify signature and expiry and return the claims.

        Raises:
            TokenExpiredError: the token is well-formed but expired
            InvalidTokenError: bad signature, malformed token, missing subject
                or a ``type`` other than ``expected_type``
        """
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            logger.debug("Token verification failed: expired")
            raise TokenExpiredError()
        except JWTError as e:
            logger.debug(f"Token verification failed: {e}")
            raise InvalidTokenError()

        if not payload.get("sub"):
            raise InvalidTokenError("Token does not contain 'sub' field.")
        if expected_type is not None and payload.get("type") != expected_type:
            raise InvalidTokenError(f"Expected a {expected_type} token")
        return payload

    def generate_access_token(self, user_id: str, email: str, role: str, tenant_id: Optional[str]) -> str:
        claims = {
            "sub": user_id,
            "email": email,
            "role": role,
            "tenantId": tenant_id,
            "type": ACCESS_TOKEN_TYPE,
        }
        token = self.sign(claims, self.access_token_expiry_seconds)
        logger.debug(f"Access token generated for user: {user_id}")
        return token

    def generate_refresh_token(self, user_id: str) -> str:
        token = self.sign({"sub": user_id, "type": REFRESH_TOKEN_TYPE}, self.refresh_token_expiry_seconds)
        logger.debug(f"Refresh token generated for user: {user_id}")
        return token

    def verify_access_token(self, token: str) -> dict[str, Any]:
        return self.verify(token, expected_type=ACCESS_TOKEN_TYPE)

    def verify_refresh_token(self, token: str) -> dict[str, Any]:
        return self.verify(token, expected_type=REFRESH_TOKEN_TYPE)


def get_token_service() -> TokenService:
    """FastAPI dependency for TokenService."""
    return TokenService()
