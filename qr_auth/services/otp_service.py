"""
OTP Service

Generates the numeric one-time codes emailed during registration.
"""

import logging
import secrets

from qr_auth.config import settings

logger = logging.getLogger(__name__)

DEFAULT_OTP_LENGTH = 6


class OtpService:
    """Numeric OTP generator backed by the ``secrets`` CSPRNG."""

    def __init__(self, length: int | None = None):
        length = settings.otp_length if length is None else length
        if length <= 0:
            logger.warning(f"Invalid OTP length {length}, using {DEFAULT_OTP_LENGTH}")
            length = DEFAULT_OTP_LENGTH
        self.length = length

    def generate(self) -> str:
        """Return a zero-padded code drawn uniformly from [0, 10**length)."""
        return str(secrets.randbelow(10**self.length)).zfill(self.length)

    def validate_format(self, code: str) -> bool:
        return isinstance(code, str) and len(code) == self.length and code.isdigit()


def get_otp_service() -> OtpService:
    return OtpService()
