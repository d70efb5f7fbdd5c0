"""
FastAPI application configuration using Pydantic Settings.

Provides centralized configuration for:
- Database connection (MongoDB)
- Authentication (JWT, auth cookie, OTP, password hashing)
- Outbound email (SMTP) for OTP delivery
- Image storage (S3-compatible / MinIO)
- Order pricing and delivery-partner rules
- API settings (CORS, rate limiting, security headers)
- Audit, logging and monitoring

All settings support environment variable overrides and .env file loading.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from cryptography.fernet import Fernet
from typing import List, Optional
from functools import lru_cache


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables with the
    prefix "FOOD_API_" (e.g., FOOD_API_MONGODB_URL).

    Environment variables are loaded from:
    1. System environment
    2. .env file in the current directory
    3. Default values defined below
    """

    # =========================================================================
    # API Settings
    # =========================================================================

    app_name: str = Field(
        default="Food Delivery Marketplace API",
        description="Application name"
    )
    app_version: str = Field(
        default="0.1.0",
        description="API version"
    )
    api_prefix: str = Field(
        default="/api",
        description="API URL prefix"
    )

    debug: bool = Field(
        default=False,
        description="Debug mode - enables verbose logging and error traces"
    )
    environment: str = Field(
        default="production",
        description="Environment: development|staging|production"
    )

    host: str = Field(
        default="0.0.0.0",
        description="API bind host"
    )
    port: int = Field(
        default=8000,
        description="API bind port",
        gt=0,
        lt=65536
    )

    # =========================================================================
    # Database Settings (MongoDB)
    # =========================================================================

    mongodb_url: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URL"
    )
    mongodb_database: str = Field(
        default="food_delivery",
        description="MongoDB database name"
    )
    mongodb_server_selection_timeout_ms: int = Field(
        default=5000,
        description="Server selection timeout (milliseconds)",
        gt=0
    )
    mongodb_max_pool_size: int = Field(
        default=50,
        description="Maximum connections in the client pool",
        gt=0,
        le=500
    )

    # =========================================================================
    # JWT Authentication Settings
    # =========================================================================

    jwt_secret_key: str = Field(
        default="change-this-secret-key-in-production-use-env-var-minimum-32-chars",
        description="Secret key for JWT token signing (MUST be changed in production)",
        min_length=32
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm (HS256, HS384, HS512)"
    )
    jwt_access_token_expire_minutes: int = Field(
        default=7 * 24 * 60,
        description="Access token expiration time in minutes",
        gt=0,
        le=30 * 24 * 60  # Max 30 days
    )
    jwt_issuer: str = Field(
        default="food-delivery-api",
        description="JWT issuer claim"
    )
    jwt_audience: str = Field(
        default="food-delivery-users",
        description="JWT audience claim"
    )

    auth_cookie_name: str = Field(
        default="token",
        description="Name of the httpOnly cookie carrying the access token"
    )
    auth_cookie_secure: Optional[bool] = Field(
        default=None,
        description="Secure flag for the auth cookie (defaults to true in production)"
    )
    auth_cookie_samesite: str = Field(
        default="lax",
        description="SameSite policy for the auth cookie: lax|strict|none"
    )

    # =========================================================================
    # OTP / Registration Settings
    # =========================================================================

    otp_length: int = Field(
        default=6,
        description="Number of digits in a verification code",
        ge=4,
        le=10
    )
    otp_expire_minutes: int = Field(
        default=10,
        description="Verification code lifetime in minutes",
        gt=0,
        le=60
    )
    allow_admin_registration: bool = Field(
        default=False,
        description="Allow self-registration with the admin role"
    )

    # =========================================================================
    # Password Hashing Settings
    # =========================================================================

    password_bcrypt_rounds: int = Field(
        default=12,
        description="BCrypt hash rounds (higher = slower but more secure)",
        ge=4,
        le=14
    )
    password_min_length: int = Field(
        default=6,
        description="Minimum password length",
        ge=6,
        le=72
    )

    # =========================================================================
    # SMTP Settings
    # =========================================================================

    smtp_enabled: bool = Field(
        default=False,
        description="Send OTP emails over SMTP (when false codes are only logged in development)"
    )
    smtp_host: str = Field(
        default="smtp.gmail.com",
        description="SMTP server host"
    )
    smtp_port: int = Field(
        default=587,
        description="SMTP server port",
        gt=0,
        lt=65536
    )
    smtp_username: Optional[str] = Field(
        default=None,
        description="SMTP username"
    )
    smtp_password: Optional[str] = Field(
        default=None,
        description="SMTP password or app password"
    )
    smtp_start_tls: bool = Field(
        default=True,
        description="Upgrade the SMTP connection with STARTTLS"
    )
    smtp_from_address: str = Field(
        default="no-reply@food-delivery.local",
        description="Sender address for outbound email"
    )
    smtp_timeout_seconds: float = Field(
        default=10.0,
        description="SMTP operation timeout (seconds)",
        gt=0
    )

    # =========================================================================
    # Image Storage Settings (S3 / MinIO)
    # =========================================================================

    storage_enabled: bool = Field(
        default=False,
        description="Enable image uploads to S3-compatible storage"
    )
    storage_endpoint: str = Field(
        default="http://minio:9000",
        description="S3 endpoint URL"
    )
    storage_access_key: str = Field(
        default="minio_access_key",
        description="S3 access key"
    )
    storage_secret_key: str = Field(
        default="minio_secret_key",
        description="S3 secret key"
    )
    storage_region: str = Field(
        default="us-east-1",
        description="S3 region"
    )
    storage_bucket: str = Field(
        default="marketplace-images",
        description="Bucket holding uploaded images"
    )
    storage_public_base_url: Optional[str] = Field(
        default=None,
        description="Public base URL for uploaded objects (defaults to endpoint/bucket)"
    )
    upload_max_bytes: int = Field(
        default=5 * 1024 * 1024,  # 5 MB
        description="Maximum image size in bytes",
        gt=0
    )
    upload_allowed_content_types: List[str] = Field(
        default=["image/jpeg", "image/png", "image/webp", "image/gif"],
        description="Accepted image MIME types"
    )
    upload_allowed_folders: List[str] = Field(
        default=["restaurants", "menu", "delivery-partners", "profiles", "uploads"],
        description="Folders uploads may be stored under"
    )

    # =========================================================================
    # Order Settings
    # =========================================================================

    order_estimated_delivery_minutes: int = Field(
        default=45,
        description="Default delivery estimate from placement (minutes)",
        gt=0
    )
    order_history_limit: int = Field(
        default=50,
        description="Orders returned in a customer's history",
        gt=0
    )
    vendor_order_list_limit: int = Field(
        default=100,
        description="Orders returned in a vendor's order list",
        gt=0
    )
    delivery_base_fee: float = Field(
        default=25.0,
        description="Delivery fee charged up to the free distance",
        ge=0
    )
    delivery_partner_base_earnings: float = Field(
        default=20.0,
        description="Partner share of the base delivery fee",
        ge=0
    )
    delivery_platform_margin: float = Field(
        default=5.0,
        description="Platform share of the delivery fee beyond the free distance",
        ge=0
    )
    delivery_free_distance_km: float = Field(
        default=5.0,
        description="Distance covered by the base fee (km)",
        ge=0
    )
    delivery_per_km_fee: float = Field(
        default=5.0,
        description="Additional fee per km beyond the free distance",
        ge=0
    )

    # =========================================================================
    # Delivery Partner Settings
    # =========================================================================

    partner_min_completion_for_availability: int = Field(
        default=80,
        description="Profile completion (%) required to go available",
        ge=0,
        le=100
    )
    partner_profile_complete_threshold: int = Field(
        default=90,
        description="Profile completion (%) at which a profile counts as complete",
        ge=0,
        le=100
    )
    partner_available_orders_limit: int = Field(
        default=20,
        description="Max open orders shown to a partner",
        gt=0
    )
    partner_completed_orders_limit: int = Field(
        default=50,
        description="Max completed orders shown to a partner",
        gt=0
    )
    partner_all_orders_limit: int = Field(
        default=100,
        description="Max orders in a partner's full history",
        gt=0
    )

    # =========================================================================
    # Field Encryption
    # =========================================================================

    field_encryption_key: str = Field(
        default="YWFhYWFhYWFhYWFhYWFhYWFhYWFhYWFhYWFhYWFhYWE=",
        description="Fernet key used for sensitive fields at rest (MUST be changed in production)"
    )

    # =========================================================================
    # CORS Settings
    # =========================================================================

    cors_enabled: bool = Field(
        default=True,
        description="Enable CORS middleware"
    )
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )
    cors_allow_credentials: bool = Field(
        default=True,
        description="Allow credentials (cookies, authorization headers) in CORS"
    )
    cors_allow_methods: List[str] = Field(
        default=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        description="Allowed HTTP methods"
    )
    cors_allow_headers: List[str] = Field(
        default=["*"],
        description="Allowed HTTP headers"
    )
    cors_max_age: int = Field(
        default=600,
        description="CORS preflight cache duration (seconds)"
    )

    # =========================================================================
    # Rate Limiting Settings
    # =========================================================================

    rate_limit_enabled: bool = Field(
        default=True,
        description="Enable rate limiting"
    )
    rate_limit_auth: str = Field(
        default="10/minute",
        description="Limit applied to register, resend-otp and login"
    )
    rate_limit_storage_url: Optional[str] = Field(
        default=None,
        description="Storage URI for distributed rate limiting (optional)"
    )

    # =========================================================================
    # Security Settings
    # =========================================================================

    security_headers_enabled: bool = Field(
        default=True,
        description="Enable security headers (X-Frame-Options, etc.)"
    )
    security_hsts_max_age: int = Field(
        default=31536000,  # 1 year
        description="HSTS max age (seconds)"
    )
    security_csp_enabled: bool = Field(
        default=False,
        description="Enable Content Security Policy header"
    )

    # =========================================================================
    # Audit Logging Settings
    # =========================================================================

    audit_enabled: bool = Field(
        default=True,
        description="Record mutating API requests in the audit log"
    )
    audit_retention_days: int = Field(
        default=90,
        description="Audit log retention period (days)",
        gt=0,
        le=365
    )
    audit_log_anonymous: bool = Field(
        default=True,
        description="Record requests from unauthenticated users"
    )

    # =========================================================================
    # Monitoring and Observability
    # =========================================================================

    metrics_enabled: bool = Field(
        default=True,
        description="Enable Prometheus metrics"
    )
    metrics_endpoint: str = Field(
        default="/metrics",
        description="Metrics endpoint path"
    )

    tracing_enabled: bool = Field(
        default=False,
        description="Enable OpenTelemetry tracing"
    )
    tracing_otlp_endpoint: str = Field(
        default="http://otel-collector:4318/v1/traces",
        description="OTLP/HTTP traces endpoint"
    )
    tracing_sample_rate: float = Field(
        default=0.1,
        description="Trace sampling rate (0.0-1.0, where 1.0 = 100%)",
        ge=0.0,
        le=1.0
    )

    # =========================================================================
    # Logging Settings
    # =========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level: DEBUG|INFO|WARNING|ERROR|CRITICAL"
    )
    log_format: str = Field(
        default="json",
        description="Log format: json|text"
    )

    # =========================================================================
    # Pagination Settings
    # =========================================================================

    pagination_default_limit: int = Field(
        default=10,
        description="Default page size",
        gt=0,
        le=1000
    )
    pagination_max_limit: int = Field(
        default=100,
        description="Maximum page size",
        gt=0,
        le=1000
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got: {v}")
        return v_upper

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of the allowed values."""
        allowed = ["development", "staging", "production"]
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"environment must be one of {allowed}, got: {v}")
        return v_lower

    @field_validator("cors_origins")
    @classmethod
    def validate_cors_origins(cls, v: List[str]) -> List[str]:
        """Validate CORS origins are not empty."""
        if not v:
            return ["*"]
        return v

    @field_validator("jwt_algorithm")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """Validate JWT algorithm is a supported shared-secret algorithm."""
        allowed = ["HS256", "HS384", "HS512"]
        if v not in allowed:
            raise ValueError(f"jwt_algorithm must be one of {allowed}, got: {v}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        allowed = ["json", "text"]
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"log_format must be one of {allowed}, got: {v}")
        return v_lower

    @field_validator("auth_cookie_samesite")
    @classmethod
    def validate_samesite(cls, v: str) -> str:
        """Validate the SameSite cookie policy."""
        allowed = ["lax", "strict", "none"]
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"auth_cookie_samesite must be one of {allowed}, got: {v}")
        return v_lower

    @field_validator("field_encryption_key")
    @classmethod
    def validate_encryption_key(cls, v: str) -> str:
        """Validate the key is a usable Fernet key."""
        try:
            Fernet(v.encode())
        except (ValueError, TypeError) as e:
            raise ValueError(f"field_encryption_key is not a valid Fernet key: {e}")
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_staging(self) -> bool:
        """Check if running in staging mode."""
        return self.environment == "staging"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def cookie_secure(self) -> bool:
        """Secure flag for the auth cookie."""
        if self.auth_cookie_secure is not None:
            return self.auth_cookie_secure
        return self.is_production

    @property
    def token_max_age_seconds(self) -> int:
        """Access token lifetime in seconds."""
        return self.jwt_access_token_expire_minutes * 60

    @property
    def storage_public_url(self) -> str:
        """Base URL under which stored objects are publicly reachable."""
        if self.storage_public_base_url:
            return self.storage_public_base_url.rstrip("/")
        return f"{self.storage_endpoint.rstrip('/')}/{self.storage_bucket}"

    # =========================================================================
    # Model Config
    # =========================================================================

    model_config = SettingsConfigDict(
        env_prefix="FOOD_API_",  # Environment variable prefix
        env_file=".env",          # Load from .env file
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",           # Ignore extra environment variables
        validate_default=True,    # Validate default values
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once and shared
    across the application. Settings are loaded from:
    1. Environment variables with FOOD_API_ prefix
    2. .env file in the current directory
    3. Default values

    Returns:
        Settings: Cached settings instance

    Example:
        >>> from api.src.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.mongodb_database)
        food_delivery
    """
    return Settings()


def clear_settings_cache():
    """
    Clear the settings cache.

    Useful for testing when you need to reload settings with different
    environment variables.
    """
    get_settings.cache_clear()
