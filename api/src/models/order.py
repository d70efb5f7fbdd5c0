"""
Order models and the order status workflow.

Provides:
- Order document schema (``orders`` collection)
- The status transition tables for vendors, delivery partners and customers
- Delivery fee / partner earnings calculation
- Order placement, status update, assignment and rating requests
"""

import math
import random
import time
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from api.src.models.base import DocumentModel, utc_now


# ============================================================================
# Enums
# ============================================================================


class OrderStatus(str, Enum):
    PLACED = "placed"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    PICKED_UP = "picked_up"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    COD = "cod"
    RAZORPAY = "razorpay"
    CARD = "card"
    UPI = "upi"
    WALLET = "wallet"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PartnerAction(str, Enum):
    """Actions a delivery partner can take on an assigned order."""

    ACCEPT = "accept"
    REJECT = "reject"
    PICKUP = "pickup"
    START_DELIVERY = "start_delivery"
    DELIVER = "deliver"


class TransitionActor(str, Enum):
    VENDOR = "vendor"
    DELIVERY_PARTNER = "delivery_partner"
    CUSTOMER = "customer"


# ============================================================================
# Status Workflow
# ============================================================================

# Vendor-driven transitions. Moves into out_for_delivery/delivered are only
# allowed for orders without a delivery partner (self delivery).
VENDOR_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PLACED: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({
        OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.CANCELLED
    }),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED}),
}

SELF_DELIVERY_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED
})

# action -> (required current status, resulting status, error when status differs)
PARTNER_TRANSITIONS: Dict[PartnerAction, Tuple[OrderStatus, OrderStatus, str]] = {
    PartnerAction.ACCEPT: (
        OrderStatus.ASSIGNED, OrderStatus.ACCEPTED, "Order is not awaiting acceptance"
    ),
    PartnerAction.REJECT: (
        OrderStatus.ASSIGNED, OrderStatus.READY, "Order is not awaiting acceptance"
    ),
    PartnerAction.PICKUP: (
        OrderStatus.ACCEPTED, OrderStatus.PICKED_UP, "Order not ready for pickup"
    ),
    PartnerAction.START_DELIVERY: (
        OrderStatus.PICKED_UP, OrderStatus.OUT_FOR_DELIVERY, "Order not picked up yet"
    ),
    PartnerAction.DELIVER: (
        OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED, "Order not out for delivery"
    ),
}

CUSTOMER_CANCELLABLE: FrozenSet[OrderStatus] = frozenset({OrderStatus.PLACED})

PENDING_STATUSES: Tuple[OrderStatus, ...] = (
    OrderStatus.PLACED, OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY
)
ACTIVE_STATUSES: Tuple[OrderStatus, ...] = (
    OrderStatus.PLACED, OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY,
    OrderStatus.ASSIGNED, OrderStatus.ACCEPTED, OrderStatus.PICKED_UP,
    OrderStatus.OUT_FOR_DELIVERY,
)
PARTNER_ACTIVE_STATUSES: Tuple[OrderStatus, ...] = (
    OrderStatus.ACCEPTED, OrderStatus.PICKED_UP, OrderStatus.OUT_FOR_DELIVERY
)

# Status -> timestamps.<field> stamped when the order enters it
STATUS_TIMESTAMP_FIELDS: Dict[OrderStatus, str] = {
    status: f"{status.value}_at" for status in OrderStatus
}


def can_vendor_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Check whether a vendor may move an order from ``current`` to ``target``."""
    return target in VENDOR_TRANSITIONS.get(current, frozenset())


def allowed_vendor_targets(current: OrderStatus) -> List[str]:
    return sorted(s.value for s in VENDOR_TRANSITIONS.get(current, frozenset()))


def calculate_delivery_earnings(
    distance_km: float,
    base_fee: float = 25.0,
    partner_base: float = 20.0,
    free_distance_km: float = 5.0,
    per_km_fee: float = 5.0,
    platform_margin: float = 5.0,
) -> Tuple[float, float]:
    """
    Compute the delivery fee charged and the partner's share of it.

    The base fee covers the first ``free_distance_km``; beyond that the fee grows
    by ``ceil(extra_km * per_km_fee)`` and the partner keeps all but the platform
    margin.

    Returns:
        (delivery_fee, partner_earnings)
    """
    fee = float(base_fee)
    earnings = float(partner_base)
    if distance_km and distance_km > free_distance_km:
        fee += math.ceil((distance_km - free_distance_km) * per_km_fee)
        earnings = fee - platform_margin
    return fee, earnings


def generate_order_number(now_ms: Optional[int] = None) -> str:
    """Human-friendly order number: ``ORD`` + last 8 ms-timestamp digits + 3 random digits."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = random.randint(0, 999)
    return f"ORD{str(now_ms)[-8:]}{suffix:03d}"


# ============================================================================
# Embedded Documents
# ============================================================================


class OrderItem(BaseModel):
    menu_item_id: str
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    subtotal: float = Field(..., ge=0)
    is_veg: Optional[bool] = None


class CustomerDetails(BaseModel):
    name: str
    phone: str = ""
    address: str
    pincode: Optional[str] = None


class RestaurantDetails(BaseModel):
    name: str
    address: str = ""


class DeliveryRejection(BaseModel):
    partner_id: str
    rejected_at: datetime = Field(default_factory=utc_now)
    reason: str = "Not specified"


class DeliveryDetails(BaseModel):
    partner_id: Optional[str] = None
    partner_name: str = ""
    partner_phone: str = ""
    delivery_fee: float = 25.0
    partner_earnings: float = 20.0
    distance_km: float = 0.0
    assigned_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    actual_pickup_time: Optional[datetime] = None
    rejected_by: List[DeliveryRejection] = Field(default_factory=list)

    def was_rejected_by(self, partner_id: str) -> bool:
        return any(r.partner_id == partner_id for r in self.rejected_by)


class OrderTimestamps(BaseModel):
    placed_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    preparing_at: Optional[datetime] = None
    ready_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    out_for_delivery_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class PaymentDetails(BaseModel):
    method: PaymentMethod = PaymentMethod.COD
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: Optional[str] = None


class OrderRating(BaseModel):
    food: int = Field(..., ge=1, le=5)
    delivery: int = Field(..., ge=1, le=5)
    overall: int = Field(..., ge=1, le=5)
    feedback: str = ""
    rated_at: datetime = Field(default_factory=utc_now)


# ============================================================================
# Order Document
# ============================================================================


class Order(DocumentModel):
    """An order placed by a customer at a vendor."""

    order_number: str
    customer_id: str
    vendor_id: str = Field(..., description="Vendor profile ID")
    items: List[OrderItem]
    items_total: float = 0.0
    total_amount: float
    status: OrderStatus = OrderStatus.PLACED
    customer_details: CustomerDetails
    restaurant_details: RestaurantDetails
    delivery_details: DeliveryDetails = Field(default_factory=DeliveryDetails)
    timestamps: OrderTimestamps = Field(default_factory=OrderTimestamps)
    payment_details: PaymentDetails = Field(default_factory=PaymentDetails)
    rating: Optional[OrderRating] = None
    estimated_delivery_time: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    @property
    def partner_id(self) -> Optional[str]:
        return self.delivery_details.partner_id

    @property
    def is_self_delivery(self) -> bool:
        return self.delivery_details.partner_id is None

    @classmethod
    def estimate_delivery(cls, placed_at: datetime, minutes: int) -> datetime:
        return placed_at + timedelta(minutes=minutes)


# ============================================================================
# Requests
# ============================================================================


class OrderItemRequest(BaseModel):
    menu_item_id: str
    quantity: int = Field(..., ge=1, le=50)


class DeliveryAddressInput(BaseModel):
    """Inline delivery address used when no saved address is referenced."""

    address_line1: str = Field(..., min_length=1)
    address_line2: str = ""
    landmark: str = ""
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    pincode: str = Field(..., pattern=r"^[0-9]{6}$")
    phone: Optional[str] = None


class CustomerContact(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None


class CreateOrderRequest(BaseModel):
    """Customer order placement."""

    restaurant_id: str
    items: List[OrderItemRequest] = Field(..., min_length=1, max_length=100)
    address_id: Optional[str] = None
    delivery_address: Optional[DeliveryAddressInput] = None
    customer_details: Optional[CustomerContact] = None
    payment_method: PaymentMethod = PaymentMethod.COD
    distance_km: float = Field(0.0, ge=0, le=100)

    @model_validator(mode="after")
    def require_address(self) -> "CreateOrderRequest":
        if not self.address_id and self.delivery_address is None:
            raise ValueError("Either address_id or delivery_address is required")
        return self


class UpdateOrderStatusRequest(BaseModel):
    status: OrderStatus
    reason: Optional[str] = Field(None, max_length=300)
    estimated_time: Optional[int] = Field(None, gt=0, le=24 * 60, description="Minutes")


class AssignDeliveryRequest(BaseModel):
    order_id: str
    delivery_partner_id: str


class PartnerActionRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=300)


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=300)


class RateOrderRequest(BaseModel):
    food: int = Field(..., ge=1, le=5)
    delivery: int = Field(..., ge=1, le=5)
    overall: int = Field(..., ge=1, le=5)
    feedback: str = Field("", max_length=1000)

    @field_validator("feedback")
    @classmethod
    def strip_feedback(cls, v: str) -> str:
        return v.strip()


# ============================================================================
# Responses
# ============================================================================


class OrderCreatedResponse(BaseModel):
    message: str = "Order placed successfully"
    order_id: str
    order_number: str
    total_amount: float
    status: OrderStatus


class OrderResponse(BaseModel):
    message: str
    order: Order
