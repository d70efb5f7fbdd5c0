"""
Delivery partner verification by vendors.

A vendor may list and act on partners whose delivery zones overlap the
vendor's service pincodes.
"""

import math
from typing import Any, Dict, List, Optional

import structlog

from api.src.config import get_settings
from api.src.exceptions import BadRequestError, NotFoundError, PermissionDeniedError
from api.src.models.auth import CurrentUser
from api.src.models.base import is_object_id
from api.src.models.delivery_partner import (
    DeliveryPartner,
    VerificationStatus,
    VerifyPartnerRequest,
    verification_decision,
)
from api.src.models.vendor import VendorProfile
from api.src.repositories.delivery_partner_repo import DeliveryPartnerRepository
from api.src.repositories.user_repo import UserRepository
from api.src.repositories.vendor_repo import VendorRepository

logger = structlog.get_logger(__name__)

STATUS_FILTERS: Dict[str, Optional[List[VerificationStatus]]] = {
    "pending": [VerificationStatus.PENDING, VerificationStatus.IN_REVIEW],
    "verified": [VerificationStatus.APPROVED],
    "rejected": [VerificationStatus.REJECTED],
    "all": None,
}


def partner_public_view(partner: DeliveryPartner) -> Dict[str, Any]:
    """Partner data shown to vendors; payout details are never included."""
    return partner.model_dump(exclude={"bank_details"})


class PartnerVerificationService:
    """Service for vendor-side partner listing and verification."""

    def __init__(
        self,
        partner_repo: DeliveryPartnerRepository,
        vendor_repo: VendorRepository,
        user_repo: UserRepository,
    ):
        self.partner_repo = partner_repo
        self.vendor_repo = vendor_repo
        self.user_repo = user_repo

    async def _require_vendor(self, user: CurrentUser) -> VendorProfile:
        vendor = await self.vendor_repo.get_by_user_id(user.id)
        if vendor is None:
            raise NotFoundError("Vendor profile not found")
        return vendor

    async def _partner_in_area(self, vendor: VendorProfile, partner_id: str) -> DeliveryPartner:
        if not is_object_id(partner_id):
            raise BadRequestError("Invalid delivery partner ID")
        partner = await self.partner_repo.get_by_id(partner_id)
        if partner is None:
            raise NotFoundError("Delivery partner not found")
        if not partner.can_be_verified_by(vendor.service_pincodes()):
            raise PermissionDeniedError("You can only verify delivery partners in your delivery areas")
        return partner

    async def list_partners(
        self, user: CurrentUser, status: str = "pending", page: int = 1, limit: int = 10
    ) -> Dict[str, Any]:
        """
        Complete partner profiles in the vendor's areas, newest first.

        Raises:
            BadRequestError: Unknown status filter
        """
        if status not in STATUS_FILTERS:
            raise BadRequestError(
                f"Invalid status. Use one of: {', '.join(STATUS_FILTERS)}"
            )
        vendor = await self._require_vendor(user)
        zones = vendor.service_pincodes()
        pagination = {"page": page, "limit": limit, "total": 0, "pages": 0}
        if not zones:
            return {
                "partners": [],
                "pagination": pagination,
                "message": "Add delivery pincodes to your profile to see delivery partners",
            }

        partners, total = await self.partner_repo.list_for_verification(
            zones, STATUS_FILTERS[status], skip=(page - 1) * limit, limit=limit
        )
        pagination.update(total=total, pages=math.ceil(total / limit) if limit else 0)
        return {
            "partners": [partner_public_view(p) for p in partners],
            "pagination": pagination,
        }

    async def list_available(self, user: CurrentUser) -> List[Dict[str, Any]]:
        """Dispatchable partners in the vendor's areas, with their account email."""
        vendor = await self._require_vendor(user)
        zones = vendor.service_pincodes()
        if not zones:
            return []
        partners = await self.partner_repo.list_dispatchable(zones)
        users = {u.id: u for u in await self.user_repo.get_many([p.user_id for p in partners])}
        result = []
        for partner in partners:
            view = partner_public_view(partner)
            account = users.get(partner.user_id)
            view["email"] = account.email if account else None
            result.append(view)
        return result

    async def verify_partner(self, user: CurrentUser, request: VerifyPartnerRequest) -> Dict[str, Any]:
        """
        Approve or reject a partner.

        Raises:
            PermissionDeniedError: Partner outside the vendor's areas
        """
        vendor = await self._require_vendor(user)
        partner = await self._partner_in_area(vendor, request.partner_id)

        fields, entry = verification_decision(
            vendor.id, vendor.restaurant_name, request.action, request.reason
        )
        partner = await self.partner_repo.record_verification(partner.id, fields, entry)
        if partner is None:
            raise NotFoundError("Delivery partner not found")
        logger.info(
            "delivery_partner_verification",
            partner_id=partner.id,
            vendor_id=vendor.id,
            action=request.action.value,
        )
        return partner.verification_summary()

    async def partner_details(self, user: CurrentUser, partner_id: str) -> Dict[str, Any]:
        vendor = await self._require_vendor(user)
        partner = await self._partner_in_area(vendor, partner_id)
        return {
            "partner": partner_public_view(partner),
            "completion": partner.calculate_completion(get_settings().partner_profile_complete_threshold),
            "verification_history": partner.verification_history,
        }
