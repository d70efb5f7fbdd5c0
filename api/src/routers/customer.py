"""
Customer router.

Provides REST API endpoints for:
- Restaurant discovery (public)
- Pincode lookup (public)
- Order placement, history, cancellation and rating (customer role)
"""

from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Query, status

from api.src.dependencies import get_catalog_service, get_order_service, require_customer
from api.src.models.auth import CurrentUser
from api.src.models.base import ErrorResponse
from api.src.models.catalog import (
    Pincode,
    RestaurantDetail,
    RestaurantListResponse,
    RestaurantMenuResponse,
    RestaurantSearch,
    SortBy,
)
from api.src.models.order import (
    CancelOrderRequest,
    CreateOrderRequest,
    Order,
    OrderCreatedResponse,
    OrderResponse,
    RateOrderRequest,
)
from api.src.services.catalog_service import CatalogService
from api.src.services.order_service import OrderService

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/customer",
    tags=["Customer"],
    responses={
        400: {"model": ErrorResponse, "description": "Bad Request"},
        404: {"model": ErrorResponse, "description": "Not Found"},
    },
)


# ============================================================================
# DISCOVERY (PUBLIC)
# ============================================================================


@router.get(
    "/restaurants",
    response_model=RestaurantListResponse,
    summary="Browse Restaurants",
    description="""
    List restaurants with a preview of matching menu items.

    **Query Parameters:**
    - pincode: Only restaurants delivering to this pincode
    - category: Menu category (singular and plural spellings match)
    - search: Substring of dish name or description
    - veg_only: Only vegetarian dishes
    - min_rating: Minimum restaurant rating
    - sort_by: relevance | rating | delivery_time
    """,
)
async def list_restaurants(
    pincode: Optional[str] = Query(None, max_length=6),
    category: Optional[str] = Query(None, max_length=60),
    search: Optional[str] = Query(None, max_length=100),
    veg_only: bool = False,
    min_rating: Optional[float] = Query(None, ge=0, le=5),
    sort_by: SortBy = SortBy.RELEVANCE,
    catalog: CatalogService = Depends(get_catalog_service),
) -> RestaurantListResponse:
    filters = RestaurantSearch(
        pincode=pincode or None,
        category=category or None,
        search=search or None,
        veg_only=veg_only,
        min_rating=min_rating,
        sort_by=sort_by,
    )
    return await catalog.list_restaurants(filters)


@router.get("/restaurants/{restaurant_id}", response_model=RestaurantDetail, summary="Restaurant Details")
async def get_restaurant(
    restaurant_id: str,
    catalog: CatalogService = Depends(get_catalog_service),
) -> RestaurantDetail:
    return await catalog.get_restaurant(restaurant_id)


@router.get("/restaurants/{restaurant_id}/menu", response_model=RestaurantMenuResponse, summary="Restaurant Menu")
async def get_restaurant_menu(
    restaurant_id: str,
    catalog: CatalogService = Depends(get_catalog_service),
) -> RestaurantMenuResponse:
    return await catalog.get_menu(restaurant_id)


@router.get("/pincode/{pincode}", response_model=Pincode, summary="Pincode Lookup")
async def lookup_pincode(
    pincode: str,
    catalog: CatalogService = Depends(get_catalog_service),
) -> Pincode:
    return await catalog.lookup_pincode(pincode)


# ============================================================================
# ORDERS
# ============================================================================


@router.get("/orders", response_model=List[Order], summary="My Orders")
async def list_orders(
    current_user: CurrentUser = Depends(require_customer),
    orders: OrderService = Depends(get_order_service),
) -> List[Order]:
    """The caller's most recent orders, newest first."""
    return await orders.list_customer_orders(current_user)


@router.post(
    "/orders",
    response_model=OrderCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place Order",
    description="""
    Place an order at a restaurant.

    Prices come from the restaurant's menu. Deliver to a saved address
    (`address_id`) or an inline `delivery_address`.

    **Error Responses:**
    - 400: Restaurant closed, unavailable item, unknown address or pincode not served
    - 404: Restaurant not found
    """,
)
async def place_order(
    body: CreateOrderRequest,
    current_user: CurrentUser = Depends(require_customer),
    orders: OrderService = Depends(get_order_service),
) -> OrderCreatedResponse:
    order = await orders.place_order(current_user, body)
    return OrderCreatedResponse(
        order_id=order.id,
        order_number=order.order_number,
        total_amount=order.total_amount,
        status=order.status,
    )


@router.get("/orders/{order_id}", response_model=Order, summary="Order Details")
async def get_order(
    order_id: str,
    current_user: CurrentUser = Depends(require_customer),
    orders: OrderService = Depends(get_order_service),
) -> Order:
    return await orders.get_customer_order(current_user, order_id)


@router.post(
    "/orders/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel Order",
    responses={409: {"model": ErrorResponse, "description": "Order changed concurrently"}},
)
async def cancel_order(
    order_id: str,
    body: Optional[CancelOrderRequest] = None,
    current_user: CurrentUser = Depends(require_customer),
    orders: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Cancel an order that the restaurant has not confirmed yet."""
    reason = body.reason if body else None
    order = await orders.cancel_by_customer(current_user, order_id, reason)
    return OrderResponse(message="Order cancelled successfully", order=order)


@router.post(
    "/orders/{order_id}/rating",
    response_model=OrderResponse,
    summary="Rate Order",
    responses={409: {"model": ErrorResponse, "description": "Already rated"}},
)
async def rate_order(
    order_id: str,
    body: RateOrderRequest,
    current_user: CurrentUser = Depends(require_customer),
    orders: OrderService = Depends(get_order_service),
) -> OrderResponse:
    order = await orders.rate_order(current_user, order_id, body)
    return OrderResponse(message="Thank you for your feedback", order=order)
