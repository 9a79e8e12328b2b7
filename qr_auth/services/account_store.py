"""
Account Store

Async persistence operations for tenants, users and login sessions.
All functions accept an injected AsyncSession.
"""

import logging
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from qr_auth.models.tenant import Tenant, TenantStatus
from qr_auth.models.user import User, UserRole, UserStatus
from qr_auth.models.user_session import UserSession
from qr_auth.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


# ── Users & tenants ───────────────────────────────────────────────────────────


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalars().first()


async def get_user_by_id(db: AsyncSession, user_id: str) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalars().first()


async def email_exists(db: AsyncSession, email: str) -> bool:
    result = await db.execute(select(User.id).where(User.email == email).limit(1))
    return result.first() is not None


async def slug_exists(db: AsyncSession, slug: str) -> bool:
    result = await db.execute(select(Tenant.id).where(Tenant.slug == slug).limit(1))
    return result.first() is not None


async def create_tenant_with_owner(
    db: AsyncSession,
    *,
    email: str,
    password_hash: str,
    full_name: str,
    tenant_name: str,
    slug: str,
) -> User:
    """
    Create a Tenant and its OWNER user in a single transaction.

    The tenant starts ACTIVE at onboarding step 1. On any database error
    the transaction is rolled back and the error re-raised; neither row
    survives.
    """
    try:
        tenant = Tenant(
            name=tenant_name,
            slug=slug,
            status=TenantStatus.ACTIVE.value,
            onboarding_step=1,
        )
        db.add(tenant)
        await db.flush()

        user = User(
            email=email,
            password_hash=password_hash,
            full_name=full_name,
            role=UserRole.OWNER.value,
            status=UserStatus.ACTIVE.value,
            tenant=tenant,
        )
        db.add(user)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Tenant/owner creation rolled back for slug={slug}: {e}")
        raise

    logger.info(f"Tenant created: id={tenant.id} slug={tenant.slug} owner={user.id}")
    return user


async def update_password_hash(db: AsyncSession, user: User, password_hash: str) -> None:
    user.password_hash = password_hash
    await db.commit()


async def update_full_name(db: AsyncSession, user: User, full_name: str) -> User:
    user.full_name = full_name
    await db.commit()
    return user


# ── Sessions ──────────────────────────────────────────────────────────────────


async def add_session(
    db: AsyncSession,
    *,
    user_id: str,
    refresh_token_hash: str,
    device_info: str,
    expires_at: datetime,
) -> UserSession:
    now = utcnow()
    session = UserSession(
        user_id=user_id,
        refresh_token_hash=refresh_token_hash,
        device_info=device_info,
        created_at=now,
        last_used_at=now,
        expires_at=expires_at,
    )
    db.add(session)
    await db.commit()
    return session


async def list_live_sessions(db: AsyncSession, user_id: str) -> list[UserSession]:
    """Sessions of ``user_id`` that have not yet expired, most recently used first."""
    result = await db.execute(
        select(UserSession)
        .where(UserSession.user_id == user_id, UserSession.expires_at > utcnow())
        .order_by(UserSession.last_used_at.desc())
    )
    return list(result.scalars().all())


async def list_user_sessions(db: AsyncSession, user_id: str) -> list[UserSession]:
    """All session rows of ``user_id``, including expired ones."""
    result = await db.execute(
        select(UserSession).where(UserSession.user_id == user_id).order_by(UserSession.created_at)
    )
    return list(result.scalars().all())


async def touch_session(db: AsyncSession, session: UserSession) -> None:
    session.last_used_at = utcnow()
    await db.commit()


async def delete_session(db: AsyncSession, session: UserSession) -> None:
    await db.delete(session)
    await db.commit()


async def delete_all_sessions(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(delete(UserSession).where(UserSession.user_id == user_id))
    await db.commit()
    return result.rowcount or 0


async def delete_expired_sessions(db: AsyncSession) -> int:
    result = await db.execute(delete(UserSession).where(UserSession.expires_at <= utcnow()))
    await db.commit()
    return result.rowcount or 0
