"""
Authentication service for registration, email verification and JWT tokens.

Provides:
- Password hashing and verification (passlib + bcrypt)
- Verification code issue, delivery and validation
- JWT token creation and validation
- Login and current-user resolution
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import structlog
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import ValidationError

from api.src.config import get_settings
from api.src.exceptions import (
    AuthenticationError,
    BadRequestError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
)
from api.src.models.auth import CurrentUser, Role, TokenPayload, UserDB
from api.src.models.base import utc_now
from api.src.repositories.user_repo import UserRepository
from api.src.services.email_service import EmailService
from shared.metrics import setup_metrics
from shared.security.crypto import generate_hmac, generate_numeric_code, verify_hmac

logger = structlog.get_logger(__name__)


class AuthService:
    """Service for authentication operations."""

    def __init__(self, user_repo: UserRepository, email_service: EmailService):
        """
        Initialize auth service.

        Args:
            user_repo: User repository
            email_service: Sender for verification codes
        """
        self.user_repo = user_repo
        self.email_service = email_service
        self.settings = get_settings()
        self.metrics = setup_metrics()

        self.pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=self.settings.password_bcrypt_rounds
        )

    # ========================================================================
    # Passwords
    # ========================================================================

    def hash_password(self, password: str) -> str:
        """
        Hash a password using bcrypt.

        Args:
            password: Plain text password

        Returns:
            Hashed password
        """
        return self.pwd_context.hash(password)

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """
        Verify a password against its hash.

        Args:
            plain_password: Plain text password
            hashed_password: Hashed password

        Returns:
            True if password matches, False otherwise
        """
        try:
            return self.pwd_context.verify(plain_password, hashed_password)
        except ValueError as e:
            logger.error("password_verify_failed", error=str(e))
            return False

    # ========================================================================
    # Verification codes
    # ========================================================================

    def generate_otp(self) -> Tuple[str, str, datetime]:
        """
        Generate a verification code.

        Returns:
            Tuple of (code, keyed hash to store, expiry)
        """
        otp = generate_numeric_code(self.settings.otp_length)
        expiry = utc_now() + timedelta(minutes=self.settings.otp_expire_minutes)
        return otp, self._hash_otp(otp), expiry

    def _hash_otp(self, otp: str) -> str:
        return generate_hmac(otp, self.settings.jwt_secret_key)

    async def _deliver_otp(self, user: UserDB, otp: str) -> bool:
        sent = await self.email_service.send_otp_email(user.email, user.name, otp)
        self.metrics.otp_emails.labels(result="sent" if sent else "failed").inc()
        return sent

    async def register(self, name: str, email: str, role: Role) -> Tuple[UserDB, bool]:
        """
        Register a user or refresh a pending registration.

        Args:
            name: Display name
            email: Email address (lower-case)
            role: Requested role

        Returns:
            Tuple of (user, created) where created is False for a refreshed
            unverified registration

        Raises:
            PermissionDeniedError: Admin self-registration is disabled
            ConflictError: Email belongs to a verified account
            ExternalServiceError: Verification email could not be sent
        """
        if role == Role.ADMIN and not self.settings.allow_admin_registration:
            raise PermissionDeniedError("Admin accounts cannot self-register")

        otp, otp_hash, expiry = self.generate_otp()
        existing = await self.user_repo.get_by_email(email)

        if existing is not None:
            if existing.is_verified:
                raise ConflictError("User already exists and is verified")
            user = await self.user_repo.refresh_registration(existing.id, name, role, otp_hash, expiry)
            if not await self._deliver_otp(user, otp):
                raise ExternalServiceError("Failed to send OTP email")
            logger.info("registration_refreshed", user_id=user.id)
            return user, False

        user = await self.user_repo.create_user(name, email, role, otp_hash, expiry)
        if not await self._deliver_otp(user, otp):
            await self.user_repo.delete_by_id(user.id)
            logger.warning("registration_rolled_back", user_id=user.id)
            raise ExternalServiceError("Failed to send OTP email")
        return user, True

    async def verify_otp(self, email: str, otp: str) -> UserDB:
        """
        Verify an email address with its code.

        Raises:
            NotFoundError: Unknown email
            BadRequestError: Already verified, no pending code, expired or wrong code
        """
        user = await self.user_repo.get_by_email(email)
        if user is None:
            raise NotFoundError("User not found")
        if user.is_verified:
            raise BadRequestError("User already verified")
        if not user.otp_hash or user.otp_expiry is None:
            raise BadRequestError("No OTP found. Please request a new one")

        expiry = user.otp_expiry
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)
        if utc_now() > expiry:
            raise BadRequestError("OTP has expired. Please request a new one")
        if not verify_hmac(otp, self.settings.jwt_secret_key, user.otp_hash):
            logger.warning("otp_mismatch", user_id=user.id)
            raise BadRequestError("Invalid OTP")

        verified = await self.user_repo.mark_verified(user.id, user.otp_hash)
        if verified is None:
            raise ConflictError("OTP was already used")
        return verified

    async def resend_otp(self, email: str) -> UserDB:
        user = await self.user_repo.get_by_email(email)
        if user is None:
            raise NotFoundError("User not found")
        if user.is_verified:
            raise BadRequestError("User already verified")

        otp, otp_hash, expiry = self.generate_otp()
        user = await self.user_repo.set_otp(user.id, otp_hash, expiry)
        if not await self._deliver_otp(user, otp):
            raise ExternalServiceError("Failed to send OTP email")
        logger.info("otp_resent", user_id=user.id)
        return user

    async def set_password(self, email: str, password: str) -> UserDB:
        """
        Set the initial password of a verified account.

        Raises:
            NotFoundError: Unknown email
            BadRequestError: Not verified, password too short or already set
            ConflictError: Password set concurrently
        """
        if len(password) < self.settings.password_min_length:
            raise BadRequestError(
                f"Password must be at least {self.settings.password_min_length} characters"
            )
        user = await self.user_repo.get_by_email(email)
        if user is None:
            raise NotFoundError("User not found")
        if not user.is_verified:
            raise BadRequestError("Please verify your email first")
        if user.has_password:
            raise BadRequestError("Password already set. Please login")

        updated = await self.user_repo.set_password_hash(user.id, self.hash_password(password))
        if updated is None:
            raise ConflictError("Password was set by another request. Please login")
        logger.info("password_set", user_id=user.id)
        return updated

    # ========================================================================
    # Tokens
    # ========================================================================

    def create_access_token(self, user: UserDB, expires_delta: Optional[timedelta] = None) -> str:
        """
        Create JWT access token.

        Args:
            user: Authenticated user
            expires_delta: Custom expiration time (optional)

        Returns:
            JWT token string
        """
        if expires_delta is None:
            expires_delta = timedelta(minutes=self.settings.jwt_access_token_expire_minutes)

        now = datetime.now(timezone.utc)
        payload = {
            "sub": user.id,
            "email": user.email,
            "role": user.role.value,
            "name": user.name,
            "exp": int((now + expires_delta).timestamp()),
            "iat": int(now.timestamp()),
            "iss": self.settings.jwt_issuer,
            "aud": self.settings.jwt_audience,
        }
        token = jwt.encode(payload, self.settings.jwt_secret_key, algorithm=self.settings.jwt_algorithm)
        logger.info("access_token_created", user_id=user.id, expires_in=expires_delta.total_seconds())
        return token

    def decode_token(self, token: str) -> Optional[TokenPayload]:
        """
        Decode and validate JWT token.

        Args:
            token: JWT token string

        Returns:
            Token payload or None if invalid
        """
        try:
            payload = jwt.decode(
                token,
                self.settings.jwt_secret_key,
                algorithms=[self.settings.jwt_algorithm],
                audience=self.settings.jwt_audience,
                issuer=self.settings.jwt_issuer,
            )
            return TokenPayload.model_validate(payload)
        except (JWTError, ValidationError) as e:
            logger.warning("token_decode_failed", error=str(e))
            return None

    # ========================================================================
    # Login
    # ========================================================================

    async def login(self, email: str, password: str) -> Tuple[UserDB, str]:
        """
        Authenticate with email and password.

        Returns:
            Tuple of (user, access token)

        Raises:
            AuthenticationError: Unknown email, unverified, no password, wrong password
            PermissionDeniedError: Account disabled
        """
        user = await self.user_repo.get_by_email(email)
        if user is None:
            logger.warning("login_failed_unknown_email")
            raise AuthenticationError("Invalid email or password")
        if not user.is_verified:
            raise AuthenticationError("Please verify your email first")
        if not user.has_password:
            raise AuthenticationError("Please set your password first")
        if not self.verify_password(password, user.password_hash):
            logger.warning("login_failed_bad_password", user_id=user.id)
            raise AuthenticationError("Invalid email or password")
        if not user.is_active:
            raise PermissionDeniedError("Account is disabled")

        await self.user_repo.record_login(user.id)
        token = self.create_access_token(user)
        logger.info("login_succeeded", user_id=user.id, role=user.role.value)
        return user, token

    async def get_current_user(self, token: str) -> Optional[CurrentUser]:
        """
        Resolve the user behind an access token.

        Returns:
            CurrentUser, or None if the token is invalid or the account is
            missing, unverified or inactive
        """
        payload = self.decode_token(token)
        if payload is None:
            return None
        user = await self.user_repo.get_by_id(payload.sub)
        if user is None or not user.is_active or not user.is_verified:
            return None
        return CurrentUser(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            is_verified=user.is_verified,
        )
