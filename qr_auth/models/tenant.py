"""
Tenant model.

A Tenant is one restaurant account. It is only ever created together with
its OWNER user, inside the same transaction.
"""

import enum
import uuid

from sqlalchemy import Column, DateTime, Index, Integer, String
from sqlalchemy.orm import relationship

from qr_auth.database import Base
from qr_auth.utils.timeutils import utcnow


class TenantStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(200), nullable=False)
    slug = Column(String(50), nullable=False, unique=True)  # URL-safe, e.g. "pho-1"
    status = Column(String(20), nullable=False, default=TenantStatus.DRAFT.value)
    onboarding_step = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    users = relationship("User", back_populates="tenant")

    __table_args__ = (Index("idx_tenant_status", "status"),)
