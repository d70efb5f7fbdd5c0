"""
Order service: customer ordering and vendor order management.

Provides:
- Order placement with server-side pricing from the vendor's menu
- Customer order history, cancellation and rating
- Vendor order lists, statistics and status updates through the
  vendor transition table
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import structlog

from api.src.config import get_settings
from api.src.exceptions import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
)
from api.src.models.auth import CurrentUser
from api.src.models.base import is_object_id, utc_now
from api.src.models.customer import Address, CustomerProfile
from api.src.models.order import (
    CUSTOMER_CANCELLABLE,
    PENDING_STATUSES,
    ACTIVE_STATUSES,
    CreateOrderRequest,
    CustomerDetails,
    DeliveryDetails,
    Order,
    OrderItem,
    OrderRating,
    OrderStatus,
    OrderTimestamps,
    PaymentDetails,
    RateOrderRequest,
    RestaurantDetails,
    SELF_DELIVERY_STATUSES,
    TransitionActor,
    UpdateOrderStatusRequest,
    allowed_vendor_targets,
    calculate_delivery_earnings,
    can_vendor_transition,
    generate_order_number,
)
from api.src.models.vendor import VendorOrderStats, VendorProfile
from api.src.repositories.customer_repo import CustomerProfileRepository
from api.src.repositories.delivery_partner_repo import DeliveryPartnerRepository
from api.src.repositories.order_repo import OrderRepository
from api.src.repositories.user_repo import UserRepository
from api.src.repositories.vendor_repo import MenuRepository, VendorRepository
from shared.metrics import setup_metrics
from shared.tracing import trace_function

logger = structlog.get_logger(__name__)

CONCURRENT_UPDATE_MESSAGE = "Order was modified concurrently; refresh and retry"


def group_by_status(orders: List[Order]) -> Dict[str, List[Order]]:
    """Bucket orders under every status key (empty lists included)."""
    grouped: Dict[str, List[Order]] = {status.value: [] for status in OrderStatus}
    for order in orders:
        grouped[order.status.value].append(order)
    return grouped


def start_of_day(now: datetime) -> datetime:
    return now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


class OrderService:
    """Service for order placement and vendor-side order handling."""

    def __init__(
        self,
        order_repo: OrderRepository,
        vendor_repo: VendorRepository,
        menu_repo: MenuRepository,
        customer_repo: CustomerProfileRepository,
        user_repo: UserRepository,
        partner_repo: DeliveryPartnerRepository,
    ):
        self.order_repo = order_repo
        self.vendor_repo = vendor_repo
        self.menu_repo = menu_repo
        self.customer_repo = customer_repo
        self.user_repo = user_repo
        self.partner_repo = partner_repo
        self.settings = get_settings()
        self.metrics = setup_metrics()

    def _conflict(self, actor: TransitionActor) -> ConflictError:
        self.metrics.transition_conflicts.labels(actor=actor.value).inc()
        return ConflictError(CONCURRENT_UPDATE_MESSAGE)

    # ========================================================================
    # Customer: placement
    # ========================================================================

    @trace_function("order.place")
    async def place_order(self, user: CurrentUser, request: CreateOrderRequest) -> Order:
        """
        Place an order at a restaurant.

        Items are priced from the restaurant's current menu; client prices are
        never trusted.

        Raises:
            BadRequestError: Invalid ids, closed restaurant, unavailable items,
                unknown saved address or undeliverable pincode
            NotFoundError: Restaurant missing or not yet listed
        """
        if not is_object_id(request.restaurant_id):
            raise BadRequestError("Invalid restaurant ID")
        vendor = await self.vendor_repo.get_by_id(request.restaurant_id)
        if vendor is None or not vendor.is_profile_complete:
            raise NotFoundError("Restaurant not found")
        if not vendor.is_open:
            raise BadRequestError("Restaurant is currently closed", extra={
                "closure_reason": vendor.closure_reason,
            })

        profile = await self.customer_repo.get_by_user_id(user.id)
        address = self._resolve_address(profile, request)
        service_pincodes = vendor.service_pincodes()
        if service_pincodes and address.pincode not in service_pincodes:
            raise BadRequestError(f"Restaurant does not deliver to pincode {address.pincode}")

        items = await self._price_items(vendor, request)
        items_total = round(sum(item.subtotal for item in items), 2)
        delivery_fee, partner_earnings = calculate_delivery_earnings(
            request.distance_km,
            base_fee=self.settings.delivery_base_fee,
            partner_base=self.settings.delivery_partner_base_earnings,
            free_distance_km=self.settings.delivery_free_distance_km,
            per_km_fee=self.settings.delivery_per_km_fee,
            platform_margin=self.settings.delivery_platform_margin,
        )

        now = utc_now()
        order = Order(
            order_number=generate_order_number(),
            customer_id=user.id,
            vendor_id=vendor.id,
            items=items,
            items_total=items_total,
            total_amount=round(items_total + delivery_fee, 2),
            status=OrderStatus.PLACED,
            customer_details=CustomerDetails(
                name=self._customer_name(user, profile, request),
                phone=self._customer_phone(profile, address, request),
                address=address.formatted(),
                pincode=address.pincode,
            ),
            restaurant_details=RestaurantDetails(
                name=vendor.restaurant_name,
                address=vendor.display_address,
            ),
            delivery_details=DeliveryDetails(
                delivery_fee=delivery_fee,
                partner_earnings=partner_earnings,
                distance_km=request.distance_km,
            ),
            timestamps=OrderTimestamps(placed_at=now),
            payment_details=PaymentDetails(method=request.payment_method),
            estimated_delivery_time=Order.estimate_delivery(
                now, self.settings.order_estimated_delivery_minutes
            ),
        )
        order = await self.order_repo.create_order(order)

        self.metrics.orders_placed.labels(payment_method=request.payment_method.value).inc()
        self.metrics.order_value.observe(order.total_amount)
        logger.info(
            "order_placed",
            order_id=order.id,
            order_number=order.order_number,
            customer_id=user.id,
            vendor_id=vendor.id,
            item_count=len(items),
        )
        return order

    def _resolve_address(self, profile: Optional[CustomerProfile], request: CreateOrderRequest) -> Address:
        if request.address_id:
            address = profile.find_address(request.address_id) if profile else None
            if address is None:
                raise BadRequestError("Delivery address not found")
            return address
        inline = request.delivery_address
        return Address(**inline.model_dump())

    async def _price_items(self, vendor: VendorProfile, request: CreateOrderRequest) -> List[OrderItem]:
        quantities: Dict[str, int] = {}
        for line in request.items:
            if not is_object_id(line.menu_item_id):
                raise BadRequestError(f"Invalid menu item ID: {line.menu_item_id}")
            quantities[line.menu_item_id] = quantities.get(line.menu_item_id, 0) + line.quantity

        menu_items = {
            item.id: item
            for item in await self.menu_repo.get_many_for_vendor(list(quantities), vendor.id)
        }
        priced: List[OrderItem] = []
        for item_id, quantity in quantities.items():
            menu_item = menu_items.get(item_id)
            if menu_item is None:
                raise BadRequestError(f"Menu item {item_id} is not offered by this restaurant")
            if not menu_item.is_available:
                raise BadRequestError(f"{menu_item.dish_name} is currently unavailable")
            priced.append(OrderItem(
                menu_item_id=item_id,
                name=menu_item.dish_name,
                price=menu_item.price,
                quantity=quantity,
                subtotal=round(menu_item.price * quantity, 2),
                is_veg=menu_item.is_veg,
            ))
        return priced

    @staticmethod
    def _customer_name(
        user: CurrentUser, profile: Optional[CustomerProfile], request: CreateOrderRequest
    ) -> str:
        if request.customer_details and request.customer_details.name:
            return request.customer_details.name.strip()
        if profile and profile.personal_info.full_name:
            return profile.personal_info.full_name
        return user.name or "Customer"

    @staticmethod
    def _customer_phone(
        profile: Optional[CustomerProfile], address: Address, request: CreateOrderRequest
    ) -> str:
        if request.customer_details and request.customer_details.phone:
            return request.customer_details.phone.strip()
        if address.phone:
            return address.phone
        if profile and profile.personal_info.phone:
            return profile.personal_info.phone
        return ""

    # ========================================================================
    # Customer: history, cancel, rate
    # ========================================================================

    async def list_customer_orders(self, user: CurrentUser) -> List[Order]:
        return await self.order_repo.list_for_customer(user.id, self.settings.order_history_limit)

    async def get_customer_order(self, user: CurrentUser, order_id: str) -> Order:
        if not is_object_id(order_id):
            raise BadRequestError("Invalid order ID")
        order = await self.order_repo.get_by_id(order_id)
        if order is None or order.customer_id != user.id:
            raise NotFoundError("Order not found")
        return order

    async def cancel_by_customer(self, user: CurrentUser, order_id: str, reason: Optional[str]) -> Order:
        order = await self.get_customer_order(user, order_id)
        if order.status not in CUSTOMER_CANCELLABLE:
            raise BadRequestError(
                f"Order can no longer be cancelled (status: {order.status.value})"
            )
        updated = await self.order_repo.transition(
            order.id,
            order.status,
            OrderStatus.CANCELLED,
            extra_filter={"customer_id": user.id},
            set_fields={"cancellation_reason": reason or "Cancelled by customer"},
        )
        if updated is None:
            raise self._conflict(TransitionActor.CUSTOMER)
        self.metrics.status_transitions.labels(
            from_status=order.status.value, to_status=OrderStatus.CANCELLED.value,
            actor=TransitionActor.CUSTOMER.value,
        ).inc()
        return updated

    async def rate_order(self, user: CurrentUser, order_id: str, request: RateOrderRequest) -> Order:
        """
        Rate a delivered order once, folding the scores into the vendor's and
        the delivery partner's running averages.
        """
        order = await self.get_customer_order(user, order_id)
        if order.status != OrderStatus.DELIVERED:
            raise BadRequestError("Only delivered orders can be rated")
        if order.rating is not None:
            raise ConflictError("Order has already been rated")

        rating = OrderRating(**request.model_dump())
        updated = await self.order_repo.set_rating(order.id, user.id, rating.model_dump())
        if updated is None:
            raise ConflictError("Order has already been rated")

        await self.vendor_repo.add_rating(order.vendor_id, request.overall)
        if order.partner_id:
            await self.partner_repo.add_rating(order.partner_id, request.delivery)
        logger.info("order_rated", order_id=order.id, overall=request.overall)
        return updated

    # ========================================================================
    # Vendor
    # ========================================================================

    async def require_vendor(self, user: CurrentUser) -> VendorProfile:
        vendor = await self.vendor_repo.get_by_user_id(user.id)
        if vendor is None:
            raise NotFoundError("Vendor profile not found")
        return vendor

    async def get_vendor_order(self, vendor: VendorProfile, order_id: str) -> Order:
        if not is_object_id(order_id):
            raise BadRequestError("Invalid order ID")
        order = await self.order_repo.get_by_id(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        if order.vendor_id != vendor.id:
            raise PermissionDeniedError("Unauthorized to access this order")
        return order

    async def list_vendor_orders(
        self, user: CurrentUser, status: Optional[OrderStatus] = None
    ) -> Dict[str, Any]:
        """Latest orders of the vendor grouped by status, with headline stats."""
        vendor = await self.require_vendor(user)
        orders = await self.order_repo.list_for_vendor(
            vendor.id, status, self.settings.vendor_order_list_limit
        )

        base = {"vendor_id": vendor.id}
        today = start_of_day(utc_now())
        delivered = {**base, "status": OrderStatus.DELIVERED.value}
        stats = {
            "total": await self.order_repo.count(base),
            "today": await self.order_repo.count({**base, "created_at": {"$gte": today}}),
            "pending": await self.order_repo.count(
                {**base, "status": {"$in": [s.value for s in PENDING_STATUSES]}}
            ),
            "completed": await self.order_repo.count(delivered),
            "revenue": await self.order_repo.sum_amount(delivered),
        }
        return {
            "orders": orders,
            "grouped_orders": group_by_status(orders),
            "stats": stats,
        }

    async def vendor_stats(self, user: CurrentUser) -> VendorOrderStats:
        vendor = await self.require_vendor(user)
        base = {"vendor_id": vendor.id}
        return VendorOrderStats(
            total_orders=await self.order_repo.count(base),
            total_revenue=await self.order_repo.sum_amount(
                {**base, "status": OrderStatus.DELIVERED.value}
            ),
            active_orders=await self.order_repo.count(
                {**base, "status": {"$in": [s.value for s in ACTIVE_STATUSES]}}
            ),
        )

    @trace_function("order.vendor_update_status")
    async def update_status_by_vendor(
        self, user: CurrentUser, order_id: str, request: UpdateOrderStatusRequest
    ) -> Order:
        """
        Move an order along the vendor transition table.

        Raises:
            BadRequestError: Transition not allowed from the current status
            PermissionDeniedError: Order belongs to another vendor
            ConflictError: Order changed between read and write
        """
        vendor = await self.require_vendor(user)
        order = await self.get_vendor_order(vendor, order_id)
        target = request.status

        if not can_vendor_transition(order.status, target):
            raise BadRequestError(
                f"Cannot change order status from {order.status.value} to {target.value}",
                extra={"allowed": allowed_vendor_targets(order.status)},
            )

        set_fields: Dict[str, Any] = {}
        extra_filter: Dict[str, Any] = {"vendor_id": vendor.id}
        if target in SELF_DELIVERY_STATUSES:
            if not order.is_self_delivery:
                raise BadRequestError("Order is being handled by a delivery partner")
            extra_filter["delivery_details.partner_id"] = None
        if target == OrderStatus.CANCELLED:
            set_fields["cancellation_reason"] = request.reason or "Cancelled by restaurant"
        if request.estimated_time:
            set_fields["estimated_delivery_time"] = utc_now() + timedelta(minutes=request.estimated_time)

        updated = await self.order_repo.transition(
            order.id,
            order.status,
            target,
            extra_filter=extra_filter,
            set_fields=set_fields,
        )
        if updated is None:
            raise self._conflict(TransitionActor.VENDOR)

        self.metrics.status_transitions.labels(
            from_status=order.status.value, to_status=target.value,
            actor=TransitionActor.VENDOR.value,
        ).inc()
        return updated
