"""
Unit tests for registration, email verification and JWT handling.

Tests cover:
- Registration (admin gate, verified conflict, refresh, rollback on email failure)
- OTP verification (expiry, mismatch, single use)
- Initial password setup
- Login failures
- JWT creation, validation and expiration
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from jose import jwt

from api.src.config import clear_settings_cache, get_settings
from api.src.exceptions import (
    AuthenticationError,
    BadRequestError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
)
from api.src.models.auth import Role, UserDB
from api.src.models.base import utc_now
from api.src.services.auth_service import AuthService
from shared.security.crypto import generate_hmac
from tests.support.factories import new_id


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    monkeypatch.setenv("FOOD_API_PASSWORD_BCRYPT_ROUNDS", "4")
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def user_repo():
    return AsyncMock()


@pytest.fixture
def email_service():
    service = AsyncMock()
    service.send_otp_email.return_value = True
    return service


@pytest.fixture
def auth(user_repo, email_service):
    return AuthService(user_repo, email_service)


def make_db_user(**overrides) -> UserDB:
    data = {
        "id": new_id(),
        "name": "Asha Rao",
        "email": "asha@example.com",
        "role": Role.CUSTOMER,
    }
    data.update(overrides)
    return UserDB(**data)


def pending_user(otp: str = "482913", expires_in: timedelta = timedelta(minutes=5)) -> UserDB:
    return make_db_user(
        otp_hash=generate_hmac(otp, get_settings().jwt_secret_key),
        otp_expiry=utc_now() + expires_in,
    )


# ============================================================================
# REGISTRATION
# ============================================================================


class TestRegister:
    """Tests for account registration."""

    @pytest.mark.asyncio
    async def test_new_user(self, auth, user_repo, email_service):
        created = make_db_user()
        user_repo.get_by_email.return_value = None
        user_repo.create_user.return_value = created

        user, is_new = await auth.register("Asha Rao", "asha@example.com", Role.CUSTOMER)

        assert is_new
        assert user is created
        args = user_repo.create_user.await_args.args
        assert args[:3] == ("Asha Rao", "asha@example.com", Role.CUSTOMER)
        sent_otp = email_service.send_otp_email.await_args.args[2]
        assert len(sent_otp) == 6
        assert args[3] == generate_hmac(sent_otp, get_settings().jwt_secret_key)

    @pytest.mark.asyncio
    async def test_admin_registration_disabled(self, auth, user_repo):
        with pytest.raises(PermissionDeniedError):
            await auth.register("Root", "root@example.com", Role.ADMIN)
        user_repo.get_by_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_verified_email_conflicts(self, auth, user_repo):
        user_repo.get_by_email.return_value = make_db_user(is_verified=True)

        with pytest.raises(ConflictError):
            await auth.register("Asha Rao", "asha@example.com", Role.CUSTOMER)

    @pytest.mark.asyncio
    async def test_unverified_registration_refreshed(self, auth, user_repo):
        existing = make_db_user()
        user_repo.get_by_email.return_value = existing
        user_repo.refresh_registration.return_value = existing.model_copy(update={"role": Role.VENDOR})

        user, is_new = await auth.register("Asha", "asha@example.com", Role.VENDOR)

        assert not is_new
        assert user.role == Role.VENDOR
        user_repo.create_user.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_email_failure_rolls_back(self, auth, user_repo, email_service):
        created = make_db_user()
        user_repo.get_by_email.return_value = None
        user_repo.create_user.return_value = created
        email_service.send_otp_email.return_value = False

        with pytest.raises(ExternalServiceError):
            await auth.register("Asha Rao", "asha@example.com", Role.CUSTOMER)

        user_repo.delete_by_id.assert_awaited_once_with(created.id)


# ============================================================================
# OTP VERIFICATION
# ============================================================================


class TestVerifyOtp:
    """Tests for email verification."""

    @pytest.mark.asyncio
    async def test_valid_code(self, auth, user_repo):
        user = pending_user()
        user_repo.get_by_email.return_value = user
        user_repo.mark_verified.return_value = user.model_copy(update={"is_verified": True})

        verified = await auth.verify_otp(user.email, "482913")

        assert verified.is_verified
        user_repo.mark_verified.assert_awaited_once_with(user.id, user.otp_hash)

    @pytest.mark.asyncio
    async def test_unknown_email(self, auth, user_repo):
        user_repo.get_by_email.return_value = None
        with pytest.raises(NotFoundError):
            await auth.verify_otp("nobody@example.com", "482913")

    @pytest.mark.asyncio
    async def test_wrong_code(self, auth, user_repo):
        user_repo.get_by_email.return_value = pending_user()
        with pytest.raises(BadRequestError, match="Invalid OTP"):
            await auth.verify_otp("asha@example.com", "111111")

    @pytest.mark.asyncio
    async def test_expired_code(self, auth, user_repo):
        user_repo.get_by_email.return_value = pending_user(expires_in=timedelta(minutes=-1))
        with pytest.raises(BadRequestError, match="expired"):
            await auth.verify_otp("asha@example.com", "482913")

    @pytest.mark.asyncio
    async def test_missing_code(self, auth, user_repo):
        user_repo.get_by_email.return_value = make_db_user()
        with pytest.raises(BadRequestError, match="No OTP"):
            await auth.verify_otp("asha@example.com", "482913")

    @pytest.mark.asyncio
    async def test_already_verified(self, auth, user_repo):
        user_repo.get_by_email.return_value = make_db_user(is_verified=True)
        with pytest.raises(BadRequestError, match="already verified"):
            await auth.verify_otp("asha@example.com", "482913")

    @pytest.mark.asyncio
    async def test_code_used_concurrently(self, auth, user_repo):
        user_repo.get_by_email.return_value = pending_user()
        user_repo.mark_verified.return_value = None

        with pytest.raises(ConflictError):
            await auth.verify_otp("asha@example.com", "482913")


# ============================================================================
# PASSWORD SETUP
# ============================================================================


class TestSetPassword:
    """Tests for the one-time password setup."""

    @pytest.mark.asyncio
    async def test_sets_hash(self, auth, user_repo):
        user = make_db_user(is_verified=True)
        user_repo.get_by_email.return_value = user
        user_repo.set_password_hash.side_effect = lambda user_id, hashed: user.model_copy(
            update={"password_hash": hashed}
        )

        updated = await auth.set_password(user.email, "secret123")

        assert updated.has_password
        assert auth.verify_password("secret123", updated.password_hash)

    @pytest.mark.asyncio
    async def test_too_short(self, auth, user_repo):
        with pytest.raises(BadRequestError, match="at least"):
            await auth.set_password("asha@example.com", "abc")
        user_repo.get_by_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_requires_verification(self, auth, user_repo):
        user_repo.get_by_email.return_value = make_db_user()
        with pytest.raises(BadRequestError, match="verify"):
            await auth.set_password("asha@example.com", "secret123")

    @pytest.mark.asyncio
    async def test_only_once(self, auth, user_repo):
        user_repo.get_by_email.return_value = make_db_user(is_verified=True, password_hash="$2b$04$x")
        with pytest.raises(BadRequestError, match="already set"):
            await auth.set_password("asha@example.com", "secret123")

    @pytest.mark.asyncio
    async def test_lost_race(self, auth, user_repo):
        user_repo.get_by_email.return_value = make_db_user(is_verified=True)
        user_repo.set_password_hash.return_value = None
        with pytest.raises(ConflictError, match="another request"):
            await auth.set_password("asha@example.com", "secret123")


# ============================================================================
# LOGIN
# ============================================================================


class TestLogin:
    """Tests for email/password login."""

    @pytest.mark.asyncio
    async def test_success(self, auth, user_repo):
        user = make_db_user(is_verified=True, password_hash=auth.hash_password("secret123"))
        user_repo.get_by_email.return_value = user

        logged_in, token = await auth.login(user.email, "secret123")

        assert logged_in is user
        assert auth.decode_token(token).sub == user.id
        user_repo.record_login.assert_awaited_once_with(user.id)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides,message", [
        ({}, "verify"),
        ({"is_verified": True}, "set your password"),
    ])
    async def test_incomplete_account(self, auth, user_repo, overrides, message):
        user_repo.get_by_email.return_value = make_db_user(**overrides)
        with pytest.raises(AuthenticationError, match=message):
            await auth.login("asha@example.com", "secret123")

    @pytest.mark.asyncio
    async def test_wrong_password(self, auth, user_repo):
        user_repo.get_by_email.return_value = make_db_user(
            is_verified=True, password_hash=auth.hash_password("secret123")
        )
        with pytest.raises(AuthenticationError, match="Invalid email or password"):
            await auth.login("asha@example.com", "wrong-password")
        user_repo.record_login.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_email(self, auth, user_repo):
        user_repo.get_by_email.return_value = None
        with pytest.raises(AuthenticationError):
            await auth.login("nobody@example.com", "secret123")

    @pytest.mark.asyncio
    async def test_disabled_account(self, auth, user_repo):
        user_repo.get_by_email.return_value = make_db_user(
            is_verified=True, is_active=False, password_hash=auth.hash_password("secret123")
        )
        with pytest.raises(PermissionDeniedError):
            await auth.login("asha@example.com", "secret123")


# ============================================================================
# TOKENS
# ============================================================================


class TestTokens:
    """Tests for JWT access tokens."""

    def test_claims(self, auth):
        user = make_db_user(role=Role.VENDOR)
        token = auth.create_access_token(user)
        settings = get_settings()

        claims = jwt.get_unverified_claims(token)

        assert claims["sub"] == user.id
        assert claims["role"] == "vendor"
        assert claims["iss"] == settings.jwt_issuer
        assert claims["aud"] == settings.jwt_audience
        assert claims["exp"] - claims["iat"] == settings.token_max_age_seconds

    def test_expired_token_rejected(self, auth):
        token = auth.create_access_token(make_db_user(), expires_delta=timedelta(seconds=-10))
        assert auth.decode_token(token) is None

    def test_wrong_secret_rejected(self, auth):
        user = make_db_user()
        settings = get_settings()
        token = jwt.encode(
            {"sub": user.id, "email": user.email, "role": "customer", "name": user.name,
             "exp": 9999999999, "iat": 0, "iss": settings.jwt_issuer, "aud": settings.jwt_audience},
            "another-secret-key-that-is-long-enough-to-sign",
            algorithm="HS256",
        )
        assert auth.decode_token(token) is None

    def test_wrong_audience_rejected(self, auth):
        user = make_db_user()
        settings = get_settings()
        token = jwt.encode(
            {"sub": user.id, "email": user.email, "role": "customer", "name": user.name,
             "exp": 9999999999, "iat": 0, "iss": settings.jwt_issuer, "aud": "someone-else"},
            settings.jwt_secret_key,
            algorithm="HS256",
        )
        assert auth.decode_token(token) is None

    def test_malformed_token(self, auth):
        assert auth.decode_token("not.a.token") is None

    @pytest.mark.asyncio
    async def test_current_user_requires_active_verified_account(self, auth, user_repo):
        user = make_db_user(is_verified=True)
        token = auth.create_access_token(user)

        user_repo.get_by_id.return_value = user
        current = await auth.get_current_user(token)
        assert current.id == user.id
        assert current.role == Role.CUSTOMER

        user_repo.get_by_id.return_value = user.model_copy(update={"is_active": False})
        assert await auth.get_current_user(token) is None
