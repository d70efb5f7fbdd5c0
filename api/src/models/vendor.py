"""
Vendor (restaurant) and menu models.

Provides Pydantic schemas for:
- Vendor profiles (``vendor_profiles`` collection)
- Menu items (``menu_items`` collection)
- Profile, store status and menu requests
"""

import re
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from api.src.models.base import DocumentModel, RatingSummary


PINCODE_PATTERN = re.compile(r"[0-9]{6}")


def split_pincodes(value: Union[str, List[str], None]) -> List[str]:
    """
    Normalize a pincode list given either as a comma separated string or a list.

    Blank entries are dropped and order is preserved without duplicates.
    """
    if value is None:
        return []
    if isinstance(value, str):
        parts = value.split(",")
    else:
        parts = list(value)
    seen: List[str] = []
    for part in parts:
        code = str(part).strip()
        if code and code not in seen:
            seen.append(code)
    return seen


# ============================================================================
# Documents
# ============================================================================


class VendorProfile(DocumentModel):
    """Restaurant profile owned by a vendor account."""

    user_id: str
    restaurant_name: str
    restaurant_photo: Optional[str] = None
    city: str = ""
    mobile_no: str = ""
    full_address: str = ""
    pincode: Optional[str] = None
    delivery_pincodes: List[str] = Field(default_factory=list)
    is_open: bool = True
    closure_reason: Optional[str] = None
    working_hours: str = "9:00 AM - 10:00 PM"
    rating: RatingSummary = Field(default_factory=RatingSummary)
    is_profile_complete: bool = False

    def service_pincodes(self) -> List[str]:
        """Pincodes this restaurant delivers to."""
        if self.delivery_pincodes:
            return list(self.delivery_pincodes)
        return [self.pincode] if self.pincode else []

    @property
    def display_address(self) -> str:
        return ", ".join(p for p in (self.full_address, self.city) if p)


class MenuItem(DocumentModel):
    """A dish offered by a vendor."""

    vendor_id: str = Field(..., description="Vendor profile ID")
    dish_name: str
    category: str
    price: float = Field(..., ge=1)
    photo: Optional[str] = None
    description: str = ""
    is_available: bool = True
    preparation_time: int = Field(15, ge=0, description="Minutes")
    is_veg: bool = True


# ============================================================================
# Requests
# ============================================================================


class VendorProfileRequest(BaseModel):
    """Create or replace the vendor's restaurant profile."""

    restaurant_name: str = Field(..., min_length=1, max_length=120)
    restaurant_photo: Optional[str] = None
    city: str = Field(..., min_length=1)
    mobile_no: str = Field(..., min_length=6, max_length=15)
    full_address: str = Field(..., min_length=1)
    pincode: Optional[str] = None
    delivery_pincodes: Union[str, List[str]] = Field(
        default_factory=list,
        description="Pincodes served, as a list or comma separated string"
    )
    working_hours: Optional[str] = None

    @field_validator("restaurant_name", "city", "full_address")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Field cannot be blank")
        return v

    @field_validator("pincode")
    @classmethod
    def validate_pincode(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not PINCODE_PATTERN.fullmatch(v):
            raise ValueError("Pincode must be 6 digits")
        return v

    @field_validator("delivery_pincodes", mode="after")
    @classmethod
    def normalize_pincodes(cls, v: Union[str, List[str]]) -> List[str]:
        codes = split_pincodes(v)
        for code in codes:
            if not PINCODE_PATTERN.fullmatch(code):
                raise ValueError(f"Invalid pincode: {code}")
        return codes


class ToggleStatusRequest(BaseModel):
    is_open: bool
    closure_reason: Optional[str] = Field(None, max_length=300)


class MenuItemCreate(BaseModel):
    """A menu item in a bulk create request."""

    dish_name: str = Field(..., min_length=1, max_length=120)
    category: str = Field(..., min_length=1, max_length=60)
    price: float = Field(..., ge=1)
    photo: Optional[str] = None
    description: str = Field("", max_length=1000)
    is_available: bool = True
    preparation_time: int = Field(15, ge=0, le=240)
    is_veg: bool = True

    @field_validator("dish_name", "category")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Field cannot be blank")
        return v


class MenuBulkCreateRequest(BaseModel):
    items: List[MenuItemCreate] = Field(..., min_length=1, max_length=200)


class MenuItemUpdate(BaseModel):
    """Partial update of a menu item."""

    dish_name: Optional[str] = Field(None, min_length=1, max_length=120)
    category: Optional[str] = Field(None, min_length=1, max_length=60)
    price: Optional[float] = Field(None, ge=1)
    photo: Optional[str] = None
    description: Optional[str] = Field(None, max_length=1000)
    is_available: Optional[bool] = None
    preparation_time: Optional[int] = Field(None, ge=0, le=240)
    is_veg: Optional[bool] = None


# ============================================================================
# Responses
# ============================================================================


class MenuListResponse(BaseModel):
    menu_items: List[MenuItem]
    grouped_items: Dict[str, List[MenuItem]]
    total_items: int
    categories: List[str]


class VendorOrderStats(BaseModel):
    total_orders: int
    total_revenue: float
    active_orders: int
