"""
Authentication and user account models.

Provides Pydantic schemas for:
- User documents (MongoDB ``users`` collection)
- Registration, OTP verification and password setup requests
- Login requests and token responses
- JWT payloads and the authenticated-user view
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, EmailStr, field_validator

from api.src.models.base import DocumentModel


# ============================================================================
# Role Enum
# ============================================================================


class Role(str, Enum):
    """
    Account roles.

    - ADMIN: platform administration, audit log access
    - VENDOR: restaurant owner managing menu and orders
    - DELIVERY_PARTNER: courier fulfilling assigned deliveries
    - CUSTOMER: places orders
    """

    ADMIN = "admin"
    VENDOR = "vendor"
    DELIVERY_PARTNER = "delivery_partner"
    CUSTOMER = "customer"


# ============================================================================
# Documents
# ============================================================================


class UserDB(DocumentModel):
    """User account as stored in the ``users`` collection."""

    name: str
    email: str
    role: Role
    is_verified: bool = False
    is_active: bool = True
    password_hash: Optional[str] = None
    otp_hash: Optional[str] = None
    otp_expiry: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)


# ============================================================================
# Pydantic Request Models
# ============================================================================


def _normalize_email(v: str) -> str:
    return v.strip().lower()


class RegisterRequest(BaseModel):
    """Registration request; a verification code is emailed on success."""

    name: str = Field(..., min_length=1, max_length=100, description="Display name")
    email: EmailStr = Field(..., description="Email address")
    role: Role = Field(..., description="Account role")

    model_config = {
        "json_schema_extra": {
            "example": {
                "name": "Asha Rao",
                "email": "asha@example.com",
                "role": "customer"
            }
        }
    }

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return _normalize_email(v)


class VerifyOtpRequest(BaseModel):
    """OTP verification request."""

    email: EmailStr
    otp: str = Field(..., pattern=r"^[0-9]{4,10}$", description="Numeric verification code")

    @field_validator("otp", mode="before")
    @classmethod
    def strip_otp(cls, v):
        return str(v).strip() if v is not None else v

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return _normalize_email(v)


class ResendOtpRequest(BaseModel):
    """Request a fresh verification code."""

    email: EmailStr

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return _normalize_email(v)


class SetPasswordRequest(BaseModel):
    """Set the initial password after email verification."""

    email: EmailStr
    password: str = Field(..., min_length=6, description="New password")

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return _normalize_email(v)

    @field_validator("password")
    @classmethod
    def validate_password_bytes(cls, v: str) -> str:
        # bcrypt only considers the first 72 bytes
        if len(v.encode("utf-8")) > 72:
            raise ValueError("Password must be at most 72 bytes")
        return v


class LoginRequest(BaseModel):
    """Login request schema."""

    email: EmailStr
    password: str = Field(..., min_length=1, description="Password")

    model_config = {
        "json_schema_extra": {
            "example": {
                "email": "asha@example.com",
                "password": "secret123"
            }
        }
    }

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return _normalize_email(v)


# ============================================================================
# Pydantic Response Models
# ============================================================================


class UserResponse(BaseModel):
    """Public view of a user account."""

    id: str
    name: str
    email: str
    role: Role
    is_verified: bool

    @classmethod
    def from_user(cls, user: UserDB) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            is_verified=user.is_verified,
        )


class RegistrationResponse(BaseModel):
    message: str
    user_id: str


class VerifyOtpResponse(BaseModel):
    message: str
    user: UserResponse


class LoginResponse(BaseModel):
    """Login response; the token is also set as an httpOnly cookie."""

    message: str = "Login successful"
    user: UserResponse
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer")
    expires_in: int = Field(..., description="Token lifetime in seconds")


class TokenPayload(BaseModel):
    """Decoded JWT payload."""

    sub: str = Field(..., description="User ID")
    email: str
    role: Role
    name: str
    exp: int
    iat: int


class CurrentUser(BaseModel):
    """Authenticated caller resolved from the access token."""

    id: str
    name: str
    email: str
    role: Role
    is_verified: bool = True

    def has_role(self, *roles: Role) -> bool:
        return self.role in roles
