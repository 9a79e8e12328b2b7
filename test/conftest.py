"""
Pytest configuration and fixtures for the auth service tests
"""

import os
import sys
from collections.abc import AsyncGenerator

# Settings are read at import time; configure them before any qr_auth import
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-that-is-at-least-32-characters"
os.environ["CACHE_BACKEND"] = "memory"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_JSON"] = "false"

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))  # noqa: PTH100, PTH118, PTH120

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import qr_auth.database as database_module  # noqa: E402
from qr_auth.auth import hash_password  # noqa: E402
from qr_auth.database import Base, get_db  # noqa: E402
from qr_auth.models import Tenant, TenantStatus, User, UserRole, UserStatus  # noqa: E402
from qr_auth.services.auth_service import AuthService  # noqa: E402
from qr_auth.services.email_service import get_email_service  # noqa: E402
from qr_auth.services.token_service import TokenService  # noqa: E402
from qr_auth.utils.cache import (  # noqa: E402
    PASSWORD_RESET_PREFIX,
    InMemoryTokenCache,
    get_password_reset_cache,
    get_registration_cache,
)

# One shared in-memory database for every session in a test
test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)

# Replace the app's engine and session maker with test versions
database_module.engine = test_engine
database_module.AsyncSessionLocal = TestSessionLocal

from main import app as fastapi_app  # noqa: E402

TEST_PASSWORD = "Secret123"


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeEmailService:
    """Records OTP and reset emails instead of sending them."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.reset_links: list[tuple[str, str]] = []
        self.fail = False
        self.error: Exception | None = None

    def _deliver(self, outbox: list, to_email: str, payload: str) -> bool:
        if self.error is not None:
            raise self.error
        if self.fail:
            return False
        outbox.append((to_email, payload))
        return True

    def send_otp(self, to_email: str, otp_code: str) -> bool:
        return self._deliver(self.sent, to_email, otp_code)

    def send_password_reset(self, to_email: str, reset_link: str) -> bool:
        return self._deliver(self.reset_links, to_email, reset_link)

    @property
    def last_reset_token(self) -> str:
        return self.reset_links[-1][1].rsplit("token=", 1)[1]

    @property
    def last_code(self) -> str:
        return self.sent[-1][1]


@pytest.fixture(scope="function", autouse=True)
async def setup_database():
    """Create a fresh database for each test function"""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionLocal() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> InMemoryTokenCache:
    return InMemoryTokenCache(clock=clock)


@pytest.fixture
def reset_cache(clock) -> InMemoryTokenCache:
    return InMemoryTokenCache(clock=clock, prefix=PASSWORD_RESET_PREFIX)


@pytest.fixture
def email_service() -> FakeEmailService:
    return FakeEmailService()


@pytest.fixture
def token_service() -> TokenService:
    return TokenService()


@pytest.fixture
def auth_service(db, cache, reset_cache, email_service, token_service) -> AuthService:
    return AuthService(
        db,
        cache=cache,
        email_service=email_service,
        token_service=token_service,
        reset_cache=reset_cache,
    )


async def create_user(
    db: AsyncSession,
    email: str = "owner@example.com",
    password: str = TEST_PASSWORD,
    status: str = UserStatus.ACTIVE.value,
    slug: str = "test-bistro",
) -> User:
    """Insert a tenant and its owner directly, bypassing registration."""
    tenant = Tenant(name="Test Bistro", slug=slug, status=TenantStatus.ACTIVE.value, onboarding_step=1)
    user = User(
        email=email,
        password_hash=hash_password(password),
        full_name="Test Owner",
        role=UserRole.OWNER.value,
        status=status,
        tenant=tenant,
    )
    db.add_all([tenant, user])
    await db.commit()
    return user


@pytest.fixture
def make_user(db):
    async def _make(**kwargs) -> User:
        return await create_user(db, **kwargs)

    return _make


@pytest.fixture
async def active_user(db) -> User:
    return await create_user(db)


@pytest.fixture
async def client(cache, reset_cache, email_service) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with the database, cache and mailer swapped for test doubles."""

    async def override_get_db():
        async with TestSessionLocal() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_registration_cache] = lambda: cache
    fastapi_app.dependency_overrides[get_password_reset_cache] = lambda: reset_cache
    fastapi_app.dependency_overrides[get_email_service] = lambda: email_service

    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as ac:
        yield ac

    fastapi_app.dependency_overrides.clear()
