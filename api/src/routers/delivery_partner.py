"""
Delivery partner router.

Provides REST API endpoints for:
- Profile (auto-created), completion and verification status
- Availability and live location
- Order lists and the accept/reject/pickup/start_delivery/deliver actions
- Dashboard

All endpoints require the delivery_partner role.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from api.src.dependencies import (
    get_delivery_partner_service,
    get_dispatch_service,
    require_delivery_partner,
)
from api.src.models.auth import CurrentUser
from api.src.models.base import ErrorResponse
from api.src.models.delivery_partner import (
    AvailabilityRequest,
    LocationUpdateRequest,
    PartnerProfileUpdate,
)
from api.src.models.order import OrderResponse, PartnerAction, PartnerActionRequest
from api.src.services.delivery_partner_service import DeliveryPartnerService
from api.src.services.dispatch_service import DispatchService

router = APIRouter(
    prefix="/delivery-partner",
    tags=["Delivery Partner"],
    responses={
        400: {"model": ErrorResponse, "description": "Bad Request"},
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        403: {"model": ErrorResponse, "description": "Forbidden"},
    },
)

ACTION_MESSAGES = {
    PartnerAction.ACCEPT: "Order accepted",
    PartnerAction.REJECT: "Order rejected",
    PartnerAction.PICKUP: "Order picked up",
    PartnerAction.START_DELIVERY: "Delivery started",
    PartnerAction.DELIVER: "Order delivered",
}


# ============================================================================
# PROFILE
# ============================================================================


@router.get("/profile", summary="My Profile")
async def get_profile(
    current_user: CurrentUser = Depends(require_delivery_partner),
    partners: DeliveryPartnerService = Depends(get_delivery_partner_service),
) -> Dict[str, Any]:
    """Profile with completion score and verification summary."""
    partner = await partners.get_or_create_profile(current_user)
    return partners.profile_view(partner)


@router.put("/profile", summary="Update Profile")
async def update_profile(
    body: PartnerProfileUpdate,
    current_user: CurrentUser = Depends(require_delivery_partner),
    partners: DeliveryPartnerService = Depends(get_delivery_partner_service),
) -> Dict[str, Any]:
    partner = await partners.update_profile(current_user, body)
    view = partners.profile_view(partner)
    view["message"] = "Profile updated successfully"
    return view


@router.post(
    "/availability",
    summary="Set Availability",
    description="""
    Go available or unavailable for deliveries.

    Going available requires a sufficiently complete profile; the 400
    response carries the current `completion`.
    """,
)
async def set_availability(
    body: AvailabilityRequest,
    current_user: CurrentUser = Depends(require_delivery_partner),
    partners: DeliveryPartnerService = Depends(get_delivery_partner_service),
) -> Dict[str, Any]:
    partner = await partners.set_availability(current_user, body.is_available)
    state = "available" if partner.is_available else "unavailable"
    return {"message": f"You are now {state}", "is_available": partner.is_available}


@router.put("/location", summary="Update Location")
async def update_location(
    body: LocationUpdateRequest,
    current_user: CurrentUser = Depends(require_delivery_partner),
    partners: DeliveryPartnerService = Depends(get_delivery_partner_service),
) -> Dict[str, Any]:
    partner = await partners.update_location(current_user, body)
    return {"message": "Location updated", "current_location": partner.current_location}


# ============================================================================
# ORDERS
# ============================================================================


@router.get("/orders", summary="My Orders")
async def list_orders(
    list_type: str = Query("available", alias="type"),
    current_user: CurrentUser = Depends(require_delivery_partner),
    dispatch: DispatchService = Depends(get_dispatch_service),
) -> Dict[str, Any]:
    """
    Orders by list type: available, assigned, active, completed or all.

    Counts for every list are returned in ``stats``.
    """
    return await dispatch.list_partner_orders(current_user, list_type)


@router.post(
    "/orders/{order_id}/{action}",
    response_model=OrderResponse,
    summary="Order Action",
    responses={409: {"model": ErrorResponse, "description": "Order changed concurrently"}},
)
async def order_action(
    order_id: str,
    action: PartnerAction,
    body: Optional[PartnerActionRequest] = None,
    current_user: CurrentUser = Depends(require_delivery_partner),
    dispatch: DispatchService = Depends(get_dispatch_service),
) -> OrderResponse:
    reason = body.reason if body else None
    order = await dispatch.apply_partner_action(current_user, order_id, action, reason)
    return OrderResponse(message=ACTION_MESSAGES[action], order=order)


# ============================================================================
# DASHBOARD
# ============================================================================


@router.get("/dashboard", summary="Dashboard")
async def dashboard(
    current_user: CurrentUser = Depends(require_delivery_partner),
    partners: DeliveryPartnerService = Depends(get_delivery_partner_service),
) -> Dict[str, Any]:
    return await partners.dashboard(current_user)
