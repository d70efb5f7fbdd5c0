"""
Customer profile models.

Provides Pydantic schemas for:
- Customer profiles (``customer_profiles`` collection)
- Saved delivery addresses
- Profile completion tracking
- Profile and address requests
"""

import re
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from bson import ObjectId
from pydantic import BaseModel, Field, field_validator

from api.src.models.base import DocumentModel, utc_now


PHONE_PATTERN = re.compile(r"\+?[1-9][0-9]{1,14}")


def _validate_phone(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    if v and not PHONE_PATTERN.fullmatch(v):
        raise ValueError("Please enter a valid phone number")
    return v


# ============================================================================
# Enums
# ============================================================================


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    PREFER_NOT_TO_SAY = "prefer_not_to_say"


class AddressType(str, Enum):
    HOME = "home"
    WORK = "work"
    OTHER = "other"


class DietaryPreference(str, Enum):
    VEGETARIAN = "vegetarian"
    VEGAN = "vegan"
    JAIN = "jain"
    GLUTEN_FREE = "gluten_free"
    DAIRY_FREE = "dairy_free"
    NON_VEGETARIAN = "non_vegetarian"


class SpiceLevel(str, Enum):
    MILD = "mild"
    MEDIUM = "medium"
    HOT = "hot"
    EXTRA_HOT = "extra_hot"


# ============================================================================
# Embedded Documents
# ============================================================================


class PersonalInfo(BaseModel):
    first_name: str = Field("", max_length=50)
    last_name: str = Field("", max_length=50)
    email: str = ""
    phone: str = ""
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        return _validate_phone(v)

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p).strip()


class Address(BaseModel):
    id: str = Field(default_factory=lambda: str(ObjectId()))
    type: AddressType = AddressType.HOME
    label: str = Field("", max_length=50)
    address_line1: str = Field(..., min_length=1, max_length=200)
    address_line2: str = Field("", max_length=200)
    landmark: str = Field("", max_length=100)
    city: str = Field(..., min_length=1, max_length=50)
    state: str = Field(..., min_length=1, max_length=50)
    pincode: str = Field(..., pattern=r"^[0-9]{6}$")
    phone: Optional[str] = None
    is_default: bool = False
    created_at: datetime = Field(default_factory=utc_now)

    def formatted(self) -> str:
        parts = [self.address_line1, self.address_line2, self.city, self.state]
        return f"{', '.join(p for p in parts if p)} - {self.pincode}"


class Preferences(BaseModel):
    dietary: List[DietaryPreference] = Field(default_factory=list)
    cuisine: List[str] = Field(default_factory=list)
    spice_level: SpiceLevel = SpiceLevel.MEDIUM


class CustomerCompletion(BaseModel):
    personal_info: bool = False
    address_info: bool = False
    is_complete: bool = False
    completed_at: Optional[datetime] = None


# ============================================================================
# Customer Profile Document
# ============================================================================


class CustomerProfile(DocumentModel):
    user_id: str
    personal_info: PersonalInfo = Field(default_factory=PersonalInfo)
    addresses: List[Address] = Field(default_factory=list)
    preferences: Preferences = Field(default_factory=Preferences)
    profile_completion: CustomerCompletion = Field(default_factory=CustomerCompletion)

    def refresh_completion(self) -> CustomerCompletion:
        """Recalculate completion flags; ``completed_at`` is set the first time only."""
        info = self.personal_info
        completion = self.profile_completion
        completion.personal_info = bool(info.first_name and info.last_name and info.phone)
        completion.address_info = len(self.addresses) > 0
        completion.is_complete = completion.personal_info and completion.address_info
        if completion.is_complete and completion.completed_at is None:
            completion.completed_at = utc_now()
        return completion

    def default_address(self) -> Optional[Address]:
        for address in self.addresses:
            if address.is_default:
                return address
        return self.addresses[0] if self.addresses else None

    def find_address(self, address_id: str) -> Optional[Address]:
        return next((a for a in self.addresses if a.id == address_id), None)

    def add_address(self, address: Address) -> Address:
        """Append an address; the first one, or an explicit default, becomes the only default."""
        if not self.addresses or address.is_default:
            for existing in self.addresses:
                existing.is_default = False
            address.is_default = True
        self.addresses.append(address)
        return address

    def remove_address(self, address_id: str) -> bool:
        address = self.find_address(address_id)
        if address is None:
            return False
        self.addresses.remove(address)
        if address.is_default and self.addresses:
            self.addresses[0].is_default = True
        return True


# ============================================================================
# Requests
# ============================================================================


class PersonalInfoUpdate(BaseModel):
    first_name: Optional[str] = Field(None, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return _validate_phone(v)


class PreferencesUpdate(BaseModel):
    dietary: Optional[List[DietaryPreference]] = None
    cuisine: Optional[List[str]] = None
    spice_level: Optional[SpiceLevel] = None


class CustomerProfileUpdate(BaseModel):
    personal_info: Optional[PersonalInfoUpdate] = None
    preferences: Optional[PreferencesUpdate] = None


class AddressCreate(BaseModel):
    type: AddressType = AddressType.HOME
    label: str = Field("", max_length=50)
    address_line1: str = Field(..., min_length=1, max_length=200)
    address_line2: str = Field("", max_length=200)
    landmark: str = Field("", max_length=100)
    city: str = Field(..., min_length=1, max_length=50)
    state: str = Field(..., min_length=1, max_length=50)
    pincode: str = Field(..., pattern=r"^[0-9]{6}$")
    phone: Optional[str] = None
    is_default: bool = False

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return _validate_phone(v)


class AddressResponse(BaseModel):
    message: str
    address: Address
    completion: CustomerCompletion
