"""
FastAPI dependency injection for database, authentication, and authorization.

Provides injectable dependencies for:
- Database client (pymongo async client)
- User authentication (JWT from the auth cookie or a Bearer header)
- Authorization (role checking)
- Repository instances
- Service instances

All dependencies use FastAPI's dependency injection system and are designed
to be composable and testable.
"""

from typing import Callable, Optional

import structlog
from fastapi import Depends, HTTPException, Query, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import PyMongoError

from api.src.config import get_settings
from api.src.models.auth import CurrentUser, Role
from api.src.repositories.audit_repo import AuditRepository
from api.src.repositories.customer_repo import CustomerProfileRepository, PincodeRepository
from api.src.repositories.delivery_partner_repo import DeliveryPartnerRepository
from api.src.repositories.order_repo import OrderRepository
from api.src.repositories.user_repo import UserRepository
from api.src.repositories.vendor_repo import MenuRepository, VendorRepository
from api.src.services.auth_service import AuthService
from api.src.services.catalog_service import CatalogService
from api.src.services.customer_profile_service import CustomerProfileService
from api.src.services.delivery_partner_service import DeliveryPartnerService
from api.src.services.dispatch_service import DispatchService
from api.src.services.email_service import EmailService
from api.src.services.order_service import OrderService
from api.src.services.storage_service import StorageService
from api.src.services.vendor_service import VendorService
from api.src.services.verification_service import PartnerVerificationService

logger = structlog.get_logger(__name__)

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


# ============================================================================
# DATABASE CLIENT
# ============================================================================

_client: Optional[AsyncMongoClient] = None


async def init_mongo() -> AsyncMongoClient:
    """
    Initialize the MongoDB client and check connectivity.

    Should be called during application startup.

    Returns:
        pymongo async client
    """
    global _client

    if _client is not None:
        return _client

    settings = get_settings()
    client = AsyncMongoClient(
        settings.mongodb_url,
        serverSelectionTimeoutMS=settings.mongodb_server_selection_timeout_ms,
        maxPoolSize=settings.mongodb_max_pool_size,
        tz_aware=True,
    )
    try:
        await client.admin.command("ping")
    except PyMongoError as e:
        logger.error("mongo_ping_failed", error=str(e))
        await client.close()
        raise
    _client = client

    logger.info(
        "mongo_client_initialized",
        database=settings.mongodb_database,
        max_pool_size=settings.mongodb_max_pool_size,
    )
    return _client


async def close_mongo() -> None:
    """
    Close the MongoDB client.

    Should be called during application shutdown.
    """
    global _client

    if _client is not None:
        await _client.close()
        logger.info("mongo_client_closed")
        _client = None


def is_database_ready() -> bool:
    return _client is not None


def get_database() -> AsyncDatabase:
    """
    Get the application database.

    Raises:
        RuntimeError: If the client is not initialized
    """
    if _client is None:
        logger.error("mongo_client_not_initialized")
        raise RuntimeError("MongoDB client not initialized. Call init_mongo() during startup.")
    return _client[get_settings().mongodb_database]


# ============================================================================
# REPOSITORY DEPENDENCIES
# ============================================================================


def get_user_repository(db: AsyncDatabase = Depends(get_database)) -> UserRepository:
    return UserRepository(db)


def get_audit_repository(db: AsyncDatabase = Depends(get_database)) -> AuditRepository:
    return AuditRepository(db)


def get_vendor_repository(db: AsyncDatabase = Depends(get_database)) -> VendorRepository:
    return VendorRepository(db)


def get_menu_repository(db: AsyncDatabase = Depends(get_database)) -> MenuRepository:
    return MenuRepository(db)


def get_order_repository(db: AsyncDatabase = Depends(get_database)) -> OrderRepository:
    return OrderRepository(db)


def get_partner_repository(db: AsyncDatabase = Depends(get_database)) -> DeliveryPartnerRepository:
    return DeliveryPartnerRepository(db)


def get_customer_repository(db: AsyncDatabase = Depends(get_database)) -> CustomerProfileRepository:
    return CustomerProfileRepository(db)


def get_pincode_repository(db: AsyncDatabase = Depends(get_database)) -> PincodeRepository:
    return PincodeRepository(db)


# ============================================================================
# SERVICE DEPENDENCIES
# ============================================================================


def get_email_service() -> EmailService:
    return EmailService()


def get_auth_service(
    user_repo: UserRepository = Depends(get_user_repository),
    email_service: EmailService = Depends(get_email_service),
) -> AuthService:
    """
    Get authentication service with injected user repository.

    Args:
        user_repo: User repository
        email_service: Verification email sender

    Returns:
        Authentication service
    """
    return AuthService(user_repo, email_service)


def get_vendor_service(
    vendor_repo: VendorRepository = Depends(get_vendor_repository),
    menu_repo: MenuRepository = Depends(get_menu_repository),
) -> VendorService:
    return VendorService(vendor_repo, menu_repo)


def get_catalog_service(
    vendor_repo: VendorRepository = Depends(get_vendor_repository),
    menu_repo: MenuRepository = Depends(get_menu_repository),
    pincode_repo: PincodeRepository = Depends(get_pincode_repository),
) -> CatalogService:
    return CatalogService(vendor_repo, menu_repo, pincode_repo)


def get_customer_profile_service(
    profile_repo: CustomerProfileRepository = Depends(get_customer_repository),
) -> CustomerProfileService:
    return CustomerProfileService(profile_repo)


def get_order_service(
    order_repo: OrderRepository = Depends(get_order_repository),
    vendor_repo: VendorRepository = Depends(get_vendor_repository),
    menu_repo: MenuRepository = Depends(get_menu_repository),
    customer_repo: CustomerProfileRepository = Depends(get_customer_repository),
    user_repo: UserRepository = Depends(get_user_repository),
    partner_repo: DeliveryPartnerRepository = Depends(get_partner_repository),
) -> OrderService:
    return OrderService(order_repo, vendor_repo, menu_repo, customer_repo, user_repo, partner_repo)


def get_dispatch_service(
    order_repo: OrderRepository = Depends(get_order_repository),
    vendor_repo: VendorRepository = Depends(get_vendor_repository),
    partner_repo: DeliveryPartnerRepository = Depends(get_partner_repository),
) -> DispatchService:
    return DispatchService(order_repo, vendor_repo, partner_repo)


def get_delivery_partner_service(
    partner_repo: DeliveryPartnerRepository = Depends(get_partner_repository),
    order_repo: OrderRepository = Depends(get_order_repository),
) -> DeliveryPartnerService:
    return DeliveryPartnerService(partner_repo, order_repo)


def get_verification_service(
    partner_repo: DeliveryPartnerRepository = Depends(get_partner_repository),
    vendor_repo: VendorRepository = Depends(get_vendor_repository),
    user_repo: UserRepository = Depends(get_user_repository),
) -> PartnerVerificationService:
    return PartnerVerificationService(partner_repo, vendor_repo, user_repo)


_storage_service: Optional[StorageService] = None


def get_storage_service() -> StorageService:
    """Process-wide storage service (one aioboto3 session)."""
    global _storage_service
    if _storage_service is None:
        _storage_service = StorageService()
    return _storage_service


# ============================================================================
# AUTHENTICATION DEPENDENCIES
# ============================================================================


def get_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """
    Extract the JWT from the auth cookie, falling back to a Bearer header.

    Returns:
        Token string or None
    """
    token = request.cookies.get(get_settings().auth_cookie_name)
    if token:
        return token
    if credentials and credentials.scheme.lower() == "bearer":
        return credentials.credentials
    return None


async def get_current_user(
    request: Request,
    token: Optional[str] = Depends(get_token),
    auth_service: AuthService = Depends(get_auth_service),
) -> CurrentUser:
    """
    Get current authenticated user from JWT token.

    The user is also stored on ``request.state.user`` for the audit
    middleware.

    Raises:
        HTTPException: If the token is missing or invalid or the account is
            missing, unverified or inactive
    """
    if not token:
        logger.warning("auth_missing_credentials", path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    current_user = await auth_service.get_current_user(token)
    if current_user is None:
        logger.warning("auth_invalid_token", path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    request.state.user = current_user
    logger.debug("user_authenticated", user_id=current_user.id, role=current_user.role.value)
    return current_user


async def get_optional_user(
    token: Optional[str] = Depends(get_token),
    auth_service: AuthService = Depends(get_auth_service),
) -> Optional[CurrentUser]:
    """
    Get current user if authenticated, None otherwise.

    Does not raise for missing or invalid tokens.
    """
    if not token:
        return None
    return await auth_service.get_current_user(token)


# ============================================================================
# AUTHORIZATION DEPENDENCIES (ROLE-BASED)
# ============================================================================


def require_roles(*roles: Role) -> Callable:
    """
    Build a dependency that admits only the given roles.

    Example:
        @router.get("/vendor/profile")
        async def profile(user: CurrentUser = Depends(require_roles(Role.VENDOR))):
            ...
    """
    allowed = ", ".join(r.value for r in roles)

    async def dependency(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not current_user.has_role(*roles):
            logger.warning(
                "access_denied_role_required",
                user_id=current_user.id,
                role=current_user.role.value,
                required=allowed,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {allowed}",
            )
        return current_user

    return dependency


require_admin = require_roles(Role.ADMIN)
require_vendor = require_roles(Role.VENDOR)
require_delivery_partner = require_roles(Role.DELIVERY_PARTNER)
require_customer = require_roles(Role.CUSTOMER)


# ============================================================================
# UTILITY DEPENDENCIES
# ============================================================================


def get_client_ip(request: Request) -> str:
    """
    Get client IP address from request.

    Checks X-Forwarded-For header first (for proxies),
    then falls back to client host.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs, get the first one
        return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"


def get_user_agent(request: Request) -> Optional[str]:
    return request.headers.get("User-Agent")


def get_correlation_id(request: Request) -> Optional[str]:
    """Correlation ID assigned by the request middleware, or the client's header."""
    return getattr(request.state, "correlation_id", None) or request.headers.get("X-Correlation-ID")


# ============================================================================
# PAGINATION DEPENDENCIES
# ============================================================================


class PaginationParams:
    """Page-based pagination parameters for list endpoints."""

    def __init__(self, page: int = 1, limit: Optional[int] = None):
        """
        Initialize pagination parameters.

        Args:
            page: 1-based page number
            limit: Page size (clamped to the configured maximum)
        """
        settings = get_settings()

        if limit is None:
            limit = settings.pagination_default_limit
        limit = max(1, min(limit, settings.pagination_max_limit))
        page = max(1, page)

        self.page = page
        self.limit = limit
        self.skip = (page - 1) * limit


def get_pagination_params(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
) -> PaginationParams:
    return PaginationParams(page=page, limit=limit)
