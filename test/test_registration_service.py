"""
Tests for two-step owner registration
"""

import pytest
from sqlalchemy import func, select

from qr_auth.auth import verify_password
from qr_auth.exceptions import (
    CacheUnavailableError,
    DispatchFailureError,
    DurableConflictError,
    InvalidOrExpiredTokenError,
    InvalidOtpError,
    ResendLimitExceededError,
    ValidationConflictError,
)
from qr_auth.models import Tenant, User, UserSession
from qr_auth.services.registration_service import REGISTRATION_DEVICE_INFO, SUBMIT_MESSAGE

REGISTRATION = {
    "email": "a@b.com",
    "password": "Secret123",
    "full_name": "An Owner",
    "tenant_name": "Pho One",
    "slug": "pho-1",
}


async def _count(db, model) -> int:
    result = await db.execute(select(func.count()).select_from(model))
    return result.scalar_one()


class TestSubmit:
    async def test_submit_stages_entry_and_sends_otp(self, auth_service, cache, email_service, db):
        result = await auth_service.submit_registration(**REGISTRATION)

        assert result.message == SUBMIT_MESSAGE
        assert result.expires_in_seconds == 600
        assert len(result.registration_token) == 64
        int(result.registration_token, 16)

        pending = await cache.get(result.registration_token)
        assert pending["email"] == "a@b.com"
        assert pending["slug"] == "pho-1"
        assert pending["otp"] == email_service.last_code
        assert email_service.sent == [("a@b.com", pending["otp"])]

        # Password is only ever staged as a hash
        assert "password" not in pending
        assert pending["password_hash"] != "Secret123"
        assert verify_password("Secret123", pending["password_hash"])

        # Nothing durable yet
        assert await _count(db, User) == 0
        assert await _count(db, Tenant) == 0

    async def test_tokens_differ_per_submit(self, auth_service):
        first = await auth_service.submit_registration(**REGISTRATION)
        second = await auth_service.submit_registration(**REGISTRATION)
        assert first.registration_token != second.registration_token

    async def test_existing_email_conflicts(self, auth_service, make_user, email_service):
        await make_user(email="a@b.com", slug="other-slug")

        with pytest.raises(ValidationConflictError) as exc_info:
            await auth_service.submit_registration(**REGISTRATION)

        assert exc_info.value.field == "email"
        assert exc_info.value.status_code == 409
        assert email_service.sent == []

    async def test_existing_slug_conflicts(self, auth_service, make_user):
        await make_user(email="someone@else.com", slug="pho-1")

        with pytest.raises(ValidationConflictError) as exc_info:
            await auth_service.submit_registration(**REGISTRATION)

        assert exc_info.value.field == "slug"

    async def test_dispatch_failure_removes_entry(self, auth_service, cache, email_service):
        email_service.fail = True

        with pytest.raises(DispatchFailureError):
            await auth_service.submit_registration(**REGISTRATION)

        assert len(cache) == 0

    async def test_raising_mailer_removes_entry(self, auth_service, cache, email_service):
        email_service.error = RuntimeError("SMTP relay crashed")

        with pytest.raises(DispatchFailureError) as exc_info:
            await auth_service.submit_registration(**REGISTRATION)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert len(cache) == 0

    async def test_cache_failure_fails_submit(self, auth_service, cache, email_service, monkeypatch):
        async def broken_put(*args, **kwargs):
            raise CacheUnavailableError()

        monkeypatch.setattr(cache, "put", broken_put)

        with pytest.raises(CacheUnavailableError):
            await auth_service.submit_registration(**REGISTRATION)

        assert email_service.sent == []


class TestConfirm:
    async def test_confirm_creates_tenant_owner_and_session(self, auth_service, cache, email_service, db, token_service):
        submitted = await auth_service.submit_registration(**REGISTRATION)

        result = await auth_service.confirm_registration(submitted.registration_token, email_service.last_code)

        assert result.user.email == "a@b.com"
        assert result.user.role == "OWNER"
        assert result.tenant.slug == "pho-1"
        assert result.tenant.status == "ACTIVE"
        assert result.tenant.onboarding_step == 1
        assert result.user.tenant_id == result.tenant.id
        assert result.expires_in_seconds == token_service.access_token_expiry_seconds

        claims = token_service.verify_access_token(result.access_token)
        assert claims["sub"] == result.user.id
        assert claims["tenantId"] == result.tenant.id

        sessions = (await db.execute(select(UserSession))).scalars().all()
        assert len(sessions) == 1
        assert sessions[0].device_info == REGISTRATION_DEVICE_INFO
        assert sessions[0].refresh_token_hash != result.refresh_token
        assert verify_password(result.refresh_token, sessions[0].refresh_token_hash)

        # Entry is consumed
        assert await cache.get(submitted.registration_token) is None

    async def test_owner_can_log_in_with_registered_password(self, auth_service, email_service):
        submitted = await auth_service.submit_registration(**REGISTRATION)
        await auth_service.confirm_registration(submitted.registration_token, email_service.last_code)

        result = await auth_service.login("a@b.com", "Secret123")
        assert result.user.email == "a@b.com"

    async def test_unknown_token(self, auth_service):
        with pytest.raises(InvalidOrExpiredTokenError):
            await auth_service.confirm_registration("0" * 64, "123456")

    async def test_expired_entry(self, auth_service, email_service, clock, db):
        submitted = await auth_service.submit_registration(**REGISTRATION)
        clock.advance(601)

        with pytest.raises(InvalidOrExpiredTokenError):
            await auth_service.confirm_registration(submitted.registration_token, email_service.last_code)

        assert await _count(db, User) == 0

    async def test_wrong_otp_keeps_entry(self, auth_service, cache, email_service, db):
        submitted = await auth_service.submit_registration(**REGISTRATION)
        code = email_service.last_code
        wrong = "000000" if code != "000000" else "111111"

        with pytest.raises(InvalidOtpError):
            await auth_service.confirm_registration(submitted.registration_token, wrong)

        assert await cache.get(submitted.registration_token) is not None
        assert await _count(db, User) == 0

        result = await auth_service.confirm_registration(submitted.registration_token, code)
        assert result.user.email == "a@b.com"

    async def test_second_confirm_of_same_account_conflicts(self, auth_service, cache, email_service, db):
        first = await auth_service.submit_registration(**REGISTRATION)
        first_code = email_service.last_code
        second = await auth_service.submit_registration(**REGISTRATION)
        second_code = email_service.last_code

        await auth_service.confirm_registration(first.registration_token, first_code)

        with pytest.raises(DurableConflictError):
            await auth_service.confirm_registration(second.registration_token, second_code)

        # Rolled back, entry kept for a retry
        assert await _count(db, User) == 1
        assert await _count(db, Tenant) == 1
        assert await cache.get(second.registration_token) is not None

    async def test_confirm_cannot_be_replayed(self, auth_service, email_service):
        submitted = await auth_service.submit_registration(**REGISTRATION)
        code = email_service.last_code
        await auth_service.confirm_registration(submitted.registration_token, code)

        with pytest.raises(InvalidOrExpiredTokenError):
            await auth_service.confirm_registration(submitted.registration_token, code)


class TestResendOtp:
    async def test_resend_replaces_code(self, auth_service, cache, email_service):
        submitted = await auth_service.submit_registration(**REGISTRATION)
        old_code = email_service.last_code

        result = await auth_service.resend_registration_otp(submitted.registration_token)

        assert result.expires_in_seconds == 600
        assert len(email_service.sent) == 2
        new_code = email_service.last_code
        assert (await cache.get(submitted.registration_token))["otp"] == new_code

        if new_code != old_code:
            with pytest.raises(InvalidOtpError):
                await auth_service.confirm_registration(submitted.registration_token, old_code)

        confirmed = await auth_service.confirm_registration(submitted.registration_token, new_code)
        assert confirmed.tenant.slug == "pho-1"

    async def test_resend_refreshes_ttl(self, auth_service, cache, email_service, clock):
        submitted = await auth_service.submit_registration(**REGISTRATION)
        clock.advance(500)
        await auth_service.resend_registration_otp(submitted.registration_token)
        clock.advance(500)

        assert await cache.get(submitted.registration_token) is not None

    async def test_resend_unknown_token(self, auth_service):
        with pytest.raises(InvalidOrExpiredTokenError):
            await auth_service.resend_registration_otp("f" * 64)

    async def test_resend_dispatch_failure(self, auth_service, cache, email_service):
        submitted = await auth_service.submit_registration(**REGISTRATION)
        email_service.fail = True

        with pytest.raises(DispatchFailureError):
            await auth_service.resend_registration_otp(submitted.registration_token)

        assert await cache.get(submitted.registration_token) is not None

    async def test_resend_raising_mailer_keeps_entry(self, auth_service, cache, email_service):
        submitted = await auth_service.submit_registration(**REGISTRATION)
        email_service.error = RuntimeError("SMTP relay crashed")

        with pytest.raises(DispatchFailureError):
            await auth_service.resend_registration_otp(submitted.registration_token)

        assert await cache.get(submitted.registration_token) is not None

    async def test_resends_are_capped(self, auth_service, cache, email_service, clock):
        auth_service.registration.max_resends = 2
        submitted = await auth_service.submit_registration(**REGISTRATION)

        for _ in range(2):
            clock.advance(500)
            await auth_service.resend_registration_otp(submitted.registration_token)

        with pytest.raises(ResendLimitExceededError) as exc_info:
            await auth_service.resend_registration_otp(submitted.registration_token)

        assert exc_info.value.status_code == 429
        assert len(email_service.sent) == 3
        # The pending registration cannot be kept alive past the cap
        assert await cache.get(submitted.registration_token) is None
