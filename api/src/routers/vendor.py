"""
Vendor router.

Provides REST API endpoints for:
- Restaurant profile and open/closed status
- Menu management
- Order workflow, statistics and delivery assignment
- Delivery partner verification in the vendor's delivery areas

All endpoints require the vendor role.
"""

from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, Query, status

from api.src.dependencies import (
    PaginationParams,
    get_dispatch_service,
    get_order_service,
    get_pagination_params,
    get_vendor_service,
    get_verification_service,
    require_vendor,
)
from api.src.models.auth import CurrentUser
from api.src.models.base import ErrorResponse, MessageResponse
from api.src.models.delivery_partner import VerifyPartnerRequest
from api.src.models.order import (
    AssignDeliveryRequest,
    Order,
    OrderResponse,
    OrderStatus,
    UpdateOrderStatusRequest,
)
from api.src.models.vendor import (
    MenuBulkCreateRequest,
    MenuItem,
    MenuItemUpdate,
    MenuListResponse,
    ToggleStatusRequest,
    VendorOrderStats,
    VendorProfile,
    VendorProfileRequest,
)
from api.src.services.dispatch_service import DispatchService
from api.src.services.order_service import OrderService
from api.src.services.vendor_service import VendorService
from api.src.services.verification_service import PartnerVerificationService

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/vendor",
    tags=["Vendor"],
    responses={
        400: {"model": ErrorResponse, "description": "Bad Request"},
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        403: {"model": ErrorResponse, "description": "Forbidden"},
        404: {"model": ErrorResponse, "description": "Not Found"},
    },
)


# ============================================================================
# PROFILE
# ============================================================================


@router.get("/profile", response_model=VendorProfile, summary="Restaurant Profile")
async def get_profile(
    current_user: CurrentUser = Depends(require_vendor),
    vendors: VendorService = Depends(get_vendor_service),
) -> VendorProfile:
    return await vendors.get_profile(current_user)


@router.post(
    "/profile",
    response_model=VendorProfile,
    summary="Save Restaurant Profile",
    description="""
    Create or update the restaurant profile.

    `delivery_pincodes` accepts a list or a comma separated string. Saving
    the profile lists the restaurant for customers.
    """,
)
async def save_profile(
    body: VendorProfileRequest,
    current_user: CurrentUser = Depends(require_vendor),
    vendors: VendorService = Depends(get_vendor_service),
) -> VendorProfile:
    return await vendors.save_profile(current_user, body)


@router.post("/toggle-status", response_model=VendorProfile, summary="Open or Close Restaurant")
async def toggle_status(
    body: ToggleStatusRequest,
    current_user: CurrentUser = Depends(require_vendor),
    vendors: VendorService = Depends(get_vendor_service),
) -> VendorProfile:
    return await vendors.toggle_status(current_user, body)


# ============================================================================
# MENU
# ============================================================================


@router.get("/menu", response_model=MenuListResponse, summary="Menu")
async def list_menu(
    category: Optional[str] = Query(None, max_length=60),
    search: Optional[str] = Query(None, max_length=100),
    current_user: CurrentUser = Depends(require_vendor),
    vendors: VendorService = Depends(get_vendor_service),
) -> MenuListResponse:
    return await vendors.list_menu(current_user, category=category or None, search=search or None)


@router.post(
    "/menu",
    response_model=List[MenuItem],
    status_code=status.HTTP_201_CREATED,
    summary="Add Menu Items",
)
async def add_menu_items(
    body: MenuBulkCreateRequest,
    current_user: CurrentUser = Depends(require_vendor),
    vendors: VendorService = Depends(get_vendor_service),
) -> List[MenuItem]:
    return await vendors.add_menu_items(current_user, body)


@router.get("/menu/{item_id}", response_model=MenuItem, summary="Menu Item")
async def get_menu_item(
    item_id: str,
    current_user: CurrentUser = Depends(require_vendor),
    vendors: VendorService = Depends(get_vendor_service),
) -> MenuItem:
    return await vendors.get_menu_item(current_user, item_id)


@router.put("/menu/{item_id}", response_model=MenuItem, summary="Update Menu Item")
async def update_menu_item(
    item_id: str,
    body: MenuItemUpdate,
    current_user: CurrentUser = Depends(require_vendor),
    vendors: VendorService = Depends(get_vendor_service),
) -> MenuItem:
    return await vendors.update_menu_item(current_user, item_id, body)


@router.delete("/menu/{item_id}", response_model=MessageResponse, summary="Delete Menu Item")
async def delete_menu_item(
    item_id: str,
    current_user: CurrentUser = Depends(require_vendor),
    vendors: VendorService = Depends(get_vendor_service),
) -> MessageResponse:
    await vendors.delete_menu_item(current_user, item_id)
    return MessageResponse(message="Menu item deleted successfully")


# ============================================================================
# ORDERS
# ============================================================================


@router.get("/orders", summary="Restaurant Orders")
async def list_orders(
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    current_user: CurrentUser = Depends(require_vendor),
    orders: OrderService = Depends(get_order_service),
) -> Dict[str, Any]:
    """Latest orders grouped by status, with headline statistics."""
    return await orders.list_vendor_orders(current_user, order_status)


@router.get("/orders/stats", response_model=VendorOrderStats, summary="Order Statistics")
async def order_stats(
    current_user: CurrentUser = Depends(require_vendor),
    orders: OrderService = Depends(get_order_service),
) -> VendorOrderStats:
    return await orders.vendor_stats(current_user)


@router.post(
    "/orders/assign-delivery",
    response_model=OrderResponse,
    summary="Assign Delivery Partner",
    description="""
    Assign a ready order to an available, approved delivery partner who
    serves the restaurant's delivery areas.

    **Error Responses:**
    - 400: Order not ready, already assigned, or partner not eligible
    - 403: Order belongs to another restaurant
    - 409: Order changed concurrently
    """,
    responses={409: {"model": ErrorResponse, "description": "Order changed concurrently"}},
)
async def assign_delivery(
    body: AssignDeliveryRequest,
    current_user: CurrentUser = Depends(require_vendor),
    dispatch: DispatchService = Depends(get_dispatch_service),
) -> OrderResponse:
    order = await dispatch.assign_delivery_partner(current_user, body)
    return OrderResponse(message="Delivery partner assigned successfully", order=order)


@router.get("/orders/{order_id}", response_model=Order, summary="Order Details")
async def get_order(
    order_id: str,
    current_user: CurrentUser = Depends(require_vendor),
    orders: OrderService = Depends(get_order_service),
) -> Order:
    vendor = await orders.require_vendor(current_user)
    return await orders.get_vendor_order(vendor, order_id)


@router.put(
    "/orders/{order_id}",
    response_model=OrderResponse,
    summary="Update Order Status",
    responses={409: {"model": ErrorResponse, "description": "Order changed concurrently"}},
)
async def update_order_status(
    order_id: str,
    body: UpdateOrderStatusRequest,
    current_user: CurrentUser = Depends(require_vendor),
    orders: OrderService = Depends(get_order_service),
) -> OrderResponse:
    order = await orders.update_status_by_vendor(current_user, order_id, body)
    return OrderResponse(message=f"Order status updated to {order.status.value}", order=order)


# ============================================================================
# DELIVERY PARTNERS
# ============================================================================


@router.get("/delivery-partners", summary="Delivery Partners In My Areas")
async def list_delivery_partners(
    partner_status: str = Query("pending", alias="status"),
    pagination: PaginationParams = Depends(get_pagination_params),
    current_user: CurrentUser = Depends(require_vendor),
    verification: PartnerVerificationService = Depends(get_verification_service),
) -> Dict[str, Any]:
    return await verification.list_partners(
        current_user, partner_status, page=pagination.page, limit=pagination.limit
    )


@router.get("/delivery-partners/available", summary="Available Delivery Partners")
async def list_available_partners(
    current_user: CurrentUser = Depends(require_vendor),
    verification: PartnerVerificationService = Depends(get_verification_service),
) -> Dict[str, Any]:
    partners = await verification.list_available(current_user)
    return {"partners": partners, "total": len(partners)}


@router.post("/delivery-partners/verify", summary="Verify Delivery Partner")
async def verify_partner(
    body: VerifyPartnerRequest,
    current_user: CurrentUser = Depends(require_vendor),
    verification: PartnerVerificationService = Depends(get_verification_service),
) -> Dict[str, Any]:
    """Approve or reject a delivery partner serving the restaurant's areas."""
    summary = await verification.verify_partner(current_user, body)
    verb = "approved" if summary["is_verified"] else "rejected"
    return {"message": f"Delivery partner {verb} successfully", "verification": summary}


@router.get("/delivery-partners/verify", summary="Delivery Partner Details")
async def partner_details(
    partner_id: str = Query(...),
    current_user: CurrentUser = Depends(require_vendor),
    verification: PartnerVerificationService = Depends(get_verification_service),
) -> Dict[str, Any]:
    return await verification.partner_details(current_user, partner_id)
