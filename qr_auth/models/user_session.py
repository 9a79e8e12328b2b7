"""Per-device login sessions."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import relationship

from qr_auth.database import Base
from qr_auth.utils.timeutils import utcnow


class UserSession(Base):
    """One row per logged-in device. Only a hash of the refresh token is stored."""

    __tablename__ = "user_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    refresh_token_hash = Column(String(255), nullable=False)
    device_info = Column(String(255), nullable=False, default="Unknown")  # e.g. "Chrome on Windows"

    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_used_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    user = relationship("User", back_populates="sessions")

    __table_args__ = (Index("idx_user_sessions_user_expires", "user_id", "expires_at"),)

    def is_expired(self) -> bool:
        return utcnow() >= self.expires_at
