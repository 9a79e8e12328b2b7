from .tenant import Tenant, TenantStatus
from .user import User, UserRole, UserStatus
from .user_session import UserSession

__all__ = [
    "Tenant",
    "TenantStatus",
    "User",
    "UserRole",
    "UserStatus",
    "UserSession",
]
