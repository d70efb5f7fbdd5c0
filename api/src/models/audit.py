"""
Audit logging models.

Provides Pydantic schemas for:
- Audit log documents (``audit_logs`` collection)
- Mapping of API requests onto audit actions and resource types
- Audit log queries and paginated responses
"""

import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from api.src.models.base import utc_now


# ============================================================================
# Enums
# ============================================================================


class AuditAction(str, Enum):
    """
    Audit action types.

    Generic CRUD actions plus the marketplace events worth singling out.
    """

    # Authentication actions
    REGISTER = "register"
    OTP_VERIFY = "otp_verify"
    OTP_RESEND = "otp_resend"
    PASSWORD_SET = "password_set"
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILURE = "login_failure"
    LOGOUT = "logout"

    # Generic resource actions
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    # Marketplace events
    ORDER_PLACE = "order_place"
    ORDER_STATUS_CHANGE = "order_status_change"
    ORDER_CANCEL = "order_cancel"
    ORDER_RATE = "order_rate"
    DELIVERY_ASSIGN = "delivery_assign"
    DELIVERY_ACTION = "delivery_action"
    PARTNER_VERIFY = "partner_verify"
    STORE_STATUS_TOGGLE = "store_status_toggle"
    IMAGE_UPLOAD = "image_upload"
    IMAGE_DELETE = "image_delete"

    # Security actions
    PERMISSION_DENIED = "permission_denied"
    UNAUTHORIZED_ACCESS = "unauthorized_access"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"


class ResourceType(str, Enum):
    """Resource types that can be audited."""

    AUTH = "auth"
    USER = "user"
    ORDER = "order"
    MENU_ITEM = "menu_item"
    VENDOR = "vendor"
    DELIVERY_PARTNER = "delivery_partner"
    CUSTOMER_PROFILE = "customer_profile"
    UPLOAD = "upload"
    SYSTEM = "system"


class AuditStatus(str, Enum):
    """Outcome of the audited action."""

    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"


# ============================================================================
# Request -> Action Mapping
# ============================================================================

# (method, path regex relative to the API prefix, action, resource type)
_ROUTE_ACTIONS: Tuple[Tuple[str, "re.Pattern[str]", AuditAction, ResourceType], ...] = tuple(
    (method, re.compile(pattern), action, resource)
    for method, pattern, action, resource in (
        ("POST", r"^/auth/register$", AuditAction.REGISTER, ResourceType.AUTH),
        ("POST", r"^/auth/verify-otp$", AuditAction.OTP_VERIFY, ResourceType.AUTH),
        ("POST", r"^/auth/resend-otp$", AuditAction.OTP_RESEND, ResourceType.AUTH),
        ("POST", r"^/auth/set-password$", AuditAction.PASSWORD_SET, ResourceType.AUTH),
        ("POST", r"^/auth/logout$", AuditAction.LOGOUT, ResourceType.AUTH),
        ("POST", r"^/customer/orders$", AuditAction.ORDER_PLACE, ResourceType.ORDER),
        ("POST", r"^/customer/orders/[^/]+/cancel$", AuditAction.ORDER_CANCEL, ResourceType.ORDER),
        ("POST", r"^/customer/orders/[^/]+/rating$", AuditAction.ORDER_RATE, ResourceType.ORDER),
        ("POST", r"^/vendor/orders/assign-delivery$", AuditAction.DELIVERY_ASSIGN, ResourceType.ORDER),
        ("PUT", r"^/vendor/orders/[^/]+$", AuditAction.ORDER_STATUS_CHANGE, ResourceType.ORDER),
        ("POST", r"^/vendor/toggle-status$", AuditAction.STORE_STATUS_TOGGLE, ResourceType.VENDOR),
        ("POST", r"^/vendor/delivery-partners/verify$", AuditAction.PARTNER_VERIFY, ResourceType.DELIVERY_PARTNER),
        ("POST", r"^/delivery-partner/orders/[^/]+/[a-z_]+$", AuditAction.DELIVERY_ACTION, ResourceType.ORDER),
        ("POST", r"^/upload/image$", AuditAction.IMAGE_UPLOAD, ResourceType.UPLOAD),
        ("DELETE", r"^/upload/image$", AuditAction.IMAGE_DELETE, ResourceType.UPLOAD),
    )
)

_PREFIX_RESOURCES: Tuple[Tuple[str, ResourceType], ...] = (
    ("/vendor/menu", ResourceType.MENU_ITEM),
    ("/vendor/orders", ResourceType.ORDER),
    ("/vendor", ResourceType.VENDOR),
    ("/delivery-partner", ResourceType.DELIVERY_PARTNER),
    ("/profile", ResourceType.CUSTOMER_PROFILE),
    ("/customer/orders", ResourceType.ORDER),
    ("/auth", ResourceType.AUTH),
)

_METHOD_ACTIONS = {
    "POST": AuditAction.CREATE,
    "PUT": AuditAction.UPDATE,
    "PATCH": AuditAction.UPDATE,
    "DELETE": AuditAction.DELETE,
}


def resolve_audit_action(
    method: str, path: str, status_code: int
) -> Tuple[AuditAction, ResourceType]:
    """
    Map a request (path relative to the API prefix) onto an audit action.

    Login is split into success/failure by status code; 401/403 responses
    elsewhere are recorded as security events.
    """
    method = method.upper()
    if method == "POST" and path == "/auth/login":
        action = AuditAction.LOGIN_SUCCESS if status_code < 400 else AuditAction.LOGIN_FAILURE
        return action, ResourceType.AUTH
    if status_code == 401:
        return AuditAction.UNAUTHORIZED_ACCESS, ResourceType.SYSTEM
    if status_code == 403:
        return AuditAction.PERMISSION_DENIED, ResourceType.SYSTEM
    if status_code == 429:
        return AuditAction.RATE_LIMIT_EXCEEDED, ResourceType.SYSTEM

    for route_method, pattern, action, resource in _ROUTE_ACTIONS:
        if route_method == method and pattern.match(path):
            return action, resource

    resource = next(
        (res for prefix, res in _PREFIX_RESOURCES if path.startswith(prefix)),
        ResourceType.SYSTEM,
    )
    return _METHOD_ACTIONS.get(method, AuditAction.UPDATE), resource


def status_from_code(status_code: int) -> AuditStatus:
    if status_code >= 500:
        return AuditStatus.ERROR
    if status_code >= 400:
        return AuditStatus.FAILURE
    return AuditStatus.SUCCESS


# ============================================================================
# Documents
# ============================================================================


class AuditLogCreate(BaseModel):
    """
    Audit record written for a mutating API request.

    Stores:
    - Who performed the action (user_id, user_email, user_role)
    - What was done (action, resource_type, resource_path, method)
    - Where it came from (ip_address, user_agent)
    - Outcome (status_code, status, duration_ms)
    """

    user_id: Optional[str] = Field(None, description="User who performed the action (None for anonymous)")
    user_email: Optional[str] = None
    user_role: Optional[str] = None
    action: AuditAction
    resource_type: ResourceType
    resource_path: str = Field(..., max_length=500)
    method: str = Field(..., max_length=10)
    ip_address: Optional[str] = Field(None, max_length=45)
    user_agent: Optional[str] = Field(None, max_length=500)
    status_code: int = Field(..., ge=100, le=599)
    status: AuditStatus
    duration_ms: Optional[int] = Field(None, ge=0)
    correlation_id: Optional[str] = Field(None, max_length=100)
    details: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=utc_now)


class AuditLogEntry(AuditLogCreate):
    """Stored audit log entry."""

    id: str


class AuditLogFilter(BaseModel):
    user_id: Optional[str] = None
    action: Optional[AuditAction] = None
    resource_type: Optional[ResourceType] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class AuditLogListResponse(BaseModel):
    """Paginated audit log response."""

    items: List[AuditLogEntry]
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    limit: int = Field(..., gt=0)
    pages: int = Field(..., ge=0)
