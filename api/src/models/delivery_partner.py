"""
Delivery partner models.

Provides Pydantic schemas for:
- Delivery partner profiles (``delivery_partners`` collection)
- Profile completion scoring used for availability and verification
- Vendor verification actions and history
- Profile, availability and location requests
"""

import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from api.src.models.base import DocumentModel, RatingSummary, utc_now


# ============================================================================
# Enums
# ============================================================================


class WeekDay(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"


class VehicleType(str, Enum):
    NONE = ""
    BIKE = "bike"
    SCOOTER = "scooter"
    BICYCLE = "bicycle"
    CAR = "car"


class VerificationStatus(str, Enum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class VerificationAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


_TIME_PATTERN = re.compile(r"([01][0-9]|2[0-3]):[0-5][0-9]")


# ============================================================================
# Embedded Documents
# ============================================================================


class WorkingHours(BaseModel):
    day: WeekDay
    is_working: bool = True
    start_time: str = "09:00"
    end_time: str = "22:00"

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        if not _TIME_PATTERN.fullmatch(v):
            raise ValueError("Time must be HH:MM (24h)")
        return v


def default_working_hours() -> List[WorkingHours]:
    return [WorkingHours(day=day) for day in WeekDay]


class PartnerAddress(BaseModel):
    street: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""


class VehicleDetails(BaseModel):
    vehicle_type: VehicleType = VehicleType.NONE
    vehicle_number: str = ""
    license_number: str = ""

    @field_validator("vehicle_number")
    @classmethod
    def upper_vehicle_number(cls, v: str) -> str:
        return v.strip().upper()


class BankDetails(BaseModel):
    """Payout account; ``account_number`` is encrypted at rest."""

    account_holder_name: str = ""
    account_number: str = ""
    ifsc_code: str = ""
    bank_name: str = ""

    @field_validator("ifsc_code")
    @classmethod
    def upper_ifsc(cls, v: str) -> str:
        return v.strip().upper()


class PartnerDocuments(BaseModel):
    profile_photo: Optional[str] = None
    license_photo: Optional[str] = None
    aadhar_photo: Optional[str] = None


class CurrentLocation(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: str = ""
    updated_at: datetime = Field(default_factory=utc_now)


class DeliveryStats(BaseModel):
    total_deliveries: int = 0
    completed_deliveries: int = 0
    cancelled_deliveries: int = 0
    total_earnings: float = 0.0
    this_month_deliveries: int = 0
    this_month_earnings: float = 0.0
    stats_month: Optional[str] = Field(None, description="YYYY-MM the monthly counters belong to")


class VerificationRecord(BaseModel):
    vendor_id: str
    vendor_name: str
    at: datetime = Field(default_factory=utc_now)
    reason: Optional[str] = None


class VerificationHistoryEntry(BaseModel):
    vendor_id: str
    vendor_name: str
    action: VerificationAction
    reason: Optional[str] = None
    action_date: datetime = Field(default_factory=utc_now)


class ProfileCompletion(BaseModel):
    percentage: int
    is_complete: bool
    completed_fields: int
    total_required: int
    missing_fields: List[str]


# ============================================================================
# Delivery Partner Document
# ============================================================================

# (label, accessor) pairs for the required scalar profile fields
_REQUIRED_FIELDS = (
    ("Full Name", lambda p: p.full_name),
    ("Mobile Number", lambda p: p.mobile_no),
    ("Street Address", lambda p: p.address.street),
    ("City", lambda p: p.address.city),
    ("State", lambda p: p.address.state),
    ("Pincode", lambda p: p.address.pincode),
    ("Vehicle Type", lambda p: p.vehicle_details.vehicle_type.value),
    ("Vehicle Number", lambda p: p.vehicle_details.vehicle_number),
    ("License Number", lambda p: p.vehicle_details.license_number),
    ("Account Holder Name", lambda p: p.bank_details.account_holder_name),
    ("Account Number", lambda p: p.bank_details.account_number),
    ("IFSC Code", lambda p: p.bank_details.ifsc_code),
    ("Bank Name", lambda p: p.bank_details.bank_name),
)


class DeliveryPartner(DocumentModel):
    """Courier profile owned by a delivery partner account."""

    user_id: str
    full_name: str = ""
    mobile_no: str = ""
    alternate_no: str = ""
    address: PartnerAddress = Field(default_factory=PartnerAddress)
    working_hours: List[WorkingHours] = Field(default_factory=default_working_hours)
    vehicle_details: VehicleDetails = Field(default_factory=VehicleDetails)
    bank_details: BankDetails = Field(default_factory=BankDetails)
    documents: PartnerDocuments = Field(default_factory=PartnerDocuments)
    delivery_zones: List[str] = Field(default_factory=list)
    is_available: bool = False
    is_online: bool = False
    current_location: Optional[CurrentLocation] = None
    rating: RatingSummary = Field(default_factory=RatingSummary)
    delivery_stats: DeliveryStats = Field(default_factory=DeliveryStats)
    is_profile_complete: bool = False
    is_verified: bool = False
    verification_status: VerificationStatus = VerificationStatus.PENDING
    verified_by: Optional[VerificationRecord] = None
    rejected_by: Optional[VerificationRecord] = None
    verification_history: List[VerificationHistoryEntry] = Field(default_factory=list)

    @field_validator("delivery_zones")
    @classmethod
    def clean_zones(cls, v: List[str]) -> List[str]:
        return [z.strip() for z in v if z and z.strip()]

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def calculate_completion(self, complete_threshold: int = 90) -> ProfileCompletion:
        """
        Score the profile against the required fields.

        The 13 scalar fields count one each, plus one for at least one working
        day and one for at least one delivery zone.
        """
        missing = [label for label, get in _REQUIRED_FIELDS if not str(get(self) or "").strip()]
        if not any(wh.is_working for wh in self.working_hours):
            missing.append("Working Hours")
        if not self.delivery_zones:
            missing.append("Delivery Zones")

        total = len(_REQUIRED_FIELDS) + 2
        completed = total - len(missing)
        percentage = round(completed / total * 100)
        return ProfileCompletion(
            percentage=percentage,
            is_complete=percentage >= complete_threshold,
            completed_fields=completed,
            total_required=total,
            missing_fields=missing,
        )

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def can_be_verified_by(self, vendor_pincodes: List[str]) -> bool:
        """A vendor may act on partners whose zones overlap its service pincodes."""
        return bool(set(self.delivery_zones) & set(vendor_pincodes))

    def verification_summary(self) -> Dict[str, Any]:
        return {
            "is_verified": self.is_verified,
            "status": self.verification_status.value,
            "verified_by": self.verified_by.model_dump() if self.verified_by else None,
            "rejected_by": self.rejected_by.model_dump() if self.rejected_by else None,
            "history_count": len(self.verification_history),
        }


def verification_decision(
    vendor_id: str,
    vendor_name: str,
    action: VerificationAction,
    reason: Optional[str] = None,
) -> Tuple[Dict[str, Any], VerificationHistoryEntry]:
    """
    Fields to set for an approve/reject decision and its history entry.

    Approval clears any earlier rejection and rejection clears any earlier
    approval.
    """
    now = utc_now()
    if action == VerificationAction.APPROVE:
        record = VerificationRecord(vendor_id=vendor_id, vendor_name=vendor_name, at=now)
        fields = {
            "is_verified": True,
            "verification_status": VerificationStatus.APPROVED,
            "verified_by": record.model_dump(),
            "rejected_by": None,
        }
    else:
        reason = reason or "No reason provided"
        record = VerificationRecord(vendor_id=vendor_id, vendor_name=vendor_name, at=now, reason=reason)
        fields = {
            "is_verified": False,
            "verification_status": VerificationStatus.REJECTED,
            "verified_by": None,
            "rejected_by": record.model_dump(),
        }

    entry = VerificationHistoryEntry(
        vendor_id=vendor_id,
        vendor_name=vendor_name,
        action=action,
        reason=reason,
        action_date=now,
    )
    return fields, entry


# ============================================================================
# Requests
# ============================================================================


class PartnerAddressUpdate(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None


class VehicleDetailsUpdate(BaseModel):
    vehicle_type: Optional[VehicleType] = None
    vehicle_number: Optional[str] = None
    license_number: Optional[str] = None


class BankDetailsUpdate(BaseModel):
    account_holder_name: Optional[str] = None
    account_number: Optional[str] = None
    ifsc_code: Optional[str] = None
    bank_name: Optional[str] = None


class DocumentsUpdate(BaseModel):
    profile_photo: Optional[str] = None
    license_photo: Optional[str] = None
    aadhar_photo: Optional[str] = None


class PartnerProfileUpdate(BaseModel):
    """
    Partial profile update.

    Nested objects are merged field by field; empty strings and ``None`` keep
    the stored value.
    """

    full_name: Optional[str] = None
    mobile_no: Optional[str] = None
    alternate_no: Optional[str] = None
    address: Optional[PartnerAddressUpdate] = None
    working_hours: Optional[List[WorkingHours]] = None
    vehicle_details: Optional[VehicleDetailsUpdate] = None
    bank_details: Optional[BankDetailsUpdate] = None
    documents: Optional[DocumentsUpdate] = None
    delivery_zones: Optional[List[str]] = None


class AvailabilityRequest(BaseModel):
    is_available: bool


class LocationUpdateRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: str = ""


class VerifyPartnerRequest(BaseModel):
    partner_id: str
    action: VerificationAction
    reason: Optional[str] = Field(None, max_length=500)
