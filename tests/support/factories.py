"""Builders for domain objects used across the test suites."""

from typing import Any, Optional

from bson import ObjectId

from api.src.models.auth import CurrentUser, Role
from api.src.models.delivery_partner import (
    BankDetails,
    DeliveryPartner,
    PartnerAddress,
    VehicleDetails,
    VehicleType,
    VerificationStatus,
)
from api.src.models.order import (
    CustomerDetails,
    DeliveryDetails,
    Order,
    OrderItem,
    OrderStatus,
    RestaurantDetails,
)
from api.src.models.vendor import MenuItem, VendorProfile


def new_id() -> str:
    return str(ObjectId())


def make_user(role: Role = Role.CUSTOMER, **overrides: Any) -> CurrentUser:
    data = {
        "id": new_id(),
        "name": "Asha Rao",
        "email": f"{role.value}@example.com",
        "role": role,
        "is_verified": True,
    }
    data.update(overrides)
    return CurrentUser(**data)


def make_vendor(user_id: Optional[str] = None, **overrides: Any) -> VendorProfile:
    data = {
        "id": new_id(),
        "user_id": user_id or new_id(),
        "restaurant_name": "Spice Route",
        "city": "Bengaluru",
        "mobile_no": "9876543210",
        "full_address": "12 MG Road",
        "pincode": "560001",
        "delivery_pincodes": ["560001", "560002"],
        "is_open": True,
        "is_profile_complete": True,
    }
    data.update(overrides)
    return VendorProfile(**data)


def make_menu_item(vendor_id: str, **overrides: Any) -> MenuItem:
    data = {
        "id": new_id(),
        "vendor_id": vendor_id,
        "dish_name": "Paneer Tikka",
        "category": "Starters",
        "price": 180.0,
        "preparation_time": 15,
        "is_veg": True,
        "is_available": True,
    }
    data.update(overrides)
    return MenuItem(**data)


def make_partner(user_id: Optional[str] = None, complete: bool = True, **overrides: Any) -> DeliveryPartner:
    data: dict = {"id": new_id(), "user_id": user_id or new_id()}
    if complete:
        data.update({
            "full_name": "Ravi Kumar",
            "mobile_no": "9123456780",
            "address": PartnerAddress(
                street="4 Church Street", city="Bengaluru", state="Karnataka", pincode="560001"
            ),
            "vehicle_details": VehicleDetails(
                vehicle_type=VehicleType.BIKE, vehicle_number="ka01ab1234", license_number="DL-0420110012345"
            ),
            "bank_details": BankDetails(
                account_holder_name="Ravi Kumar",
                account_number="123456789012",
                ifsc_code="sbin0001234",
                bank_name="State Bank",
            ),
            "delivery_zones": ["560001"],
            "is_profile_complete": True,
        })
    data.update(overrides)
    return DeliveryPartner(**data)


def make_approved_partner(**overrides: Any) -> DeliveryPartner:
    data = {
        "is_available": True,
        "is_verified": True,
        "verification_status": VerificationStatus.APPROVED,
    }
    data.update(overrides)
    return make_partner(**data)


def make_order(
    vendor_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    status: OrderStatus = OrderStatus.PLACED,
    partner_id: Optional[str] = None,
    **overrides: Any,
) -> Order:
    item = OrderItem(menu_item_id=new_id(), name="Paneer Tikka", price=180.0, quantity=2, subtotal=360.0)
    data = {
        "id": new_id(),
        "order_number": "ORD12345678001",
        "customer_id": customer_id or new_id(),
        "vendor_id": vendor_id or new_id(),
        "items": [item],
        "items_total": 360.0,
        "total_amount": 385.0,
        "status": status,
        "customer_details": CustomerDetails(
            name="Asha Rao", phone="9876543210", address="1 Residency Road, Bengaluru - 560001",
            pincode="560001",
        ),
        "restaurant_details": RestaurantDetails(name="Spice Route", address="12 MG Road, Bengaluru"),
        "delivery_details": DeliveryDetails(partner_id=partner_id),
    }
    data.update(overrides)
    return Order(**data)
