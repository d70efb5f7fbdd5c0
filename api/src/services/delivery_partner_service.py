"""
Delivery partner service.

Provides:
- Profile auto-creation, partial updates and completion scoring
- Availability (gated on profile completion) and location updates
- Dashboard with daily, weekly and all-time delivery figures
"""

from datetime import datetime, timedelta
from typing import Any, Dict

import structlog

from api.src.config import get_settings
from api.src.exceptions import BadRequestError, NotFoundError
from api.src.models.auth import CurrentUser
from api.src.models.base import utc_now
from api.src.models.delivery_partner import (
    CurrentLocation,
    DeliveryPartner,
    LocationUpdateRequest,
    PartnerProfileUpdate,
)
from api.src.models.order import PARTNER_ACTIVE_STATUSES, OrderStatus
from api.src.repositories.delivery_partner_repo import DeliveryPartnerRepository
from api.src.repositories.order_repo import OrderRepository
from api.src.services.order_service import start_of_day
from shared.security.crypto import mask_value

logger = structlog.get_logger(__name__)

RECENT_ORDERS_LIMIT = 5

_NESTED_FIELDS = ("address", "vehicle_details", "bank_details", "documents")
_SCALAR_FIELDS = ("full_name", "mobile_no", "alternate_no")


def start_of_week(now: datetime) -> datetime:
    """Midnight UTC of the most recent Sunday."""
    day = start_of_day(now)
    return day - timedelta(days=(day.weekday() + 1) % 7)


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


class DeliveryPartnerService:
    """Service for delivery partner profile and dashboard operations."""

    def __init__(self, partner_repo: DeliveryPartnerRepository, order_repo: OrderRepository):
        self.partner_repo = partner_repo
        self.order_repo = order_repo
        self.settings = get_settings()

    def profile_view(self, partner: DeliveryPartner) -> Dict[str, Any]:
        completion = partner.calculate_completion(self.settings.partner_profile_complete_threshold)
        return {
            "profile": partner,
            "completion": completion,
            "verification": partner.verification_summary(),
        }

    async def get_or_create_profile(self, user: CurrentUser) -> DeliveryPartner:
        partner = await self.partner_repo.get_by_user_id(user.id)
        if partner is not None:
            return partner
        partner = await self.partner_repo.insert(
            DeliveryPartner(user_id=user.id, full_name=user.name)
        )
        logger.info("delivery_partner_profile_created", user_id=user.id, partner_id=partner.id)
        return partner

    async def update_profile(self, user: CurrentUser, request: PartnerProfileUpdate) -> DeliveryPartner:
        """
        Merge a partial update into the profile.

        Nested objects are merged field by field; ``None`` and blank strings
        keep the stored value. Completion is recalculated on every save.
        Only the merged profile fields are written; counters, rating and
        verification are left as stored.
        """
        partner = await self.get_or_create_profile(user)
        changes: Dict[str, Any] = {}

        for name in _SCALAR_FIELDS:
            value = getattr(request, name)
            if _present(value):
                changes[name] = value.strip()

        for name in _NESTED_FIELDS:
            patch = getattr(request, name)
            if patch is None:
                continue
            current = getattr(partner, name)
            patched = {k: v for k, v in patch.model_dump().items() if _present(v)}
            changes[name] = type(current).model_validate({**current.model_dump(), **patched})
            if name == "bank_details" and "account_number" in patched:
                logger.info(
                    "delivery_partner_bank_account_changed",
                    user_id=user.id,
                    account=mask_value(patched["account_number"]),
                )

        if request.working_hours is not None:
            changes["working_hours"] = request.working_hours
        if request.delivery_zones is not None:
            changes["delivery_zones"] = [z.strip() for z in request.delivery_zones if z and z.strip()]

        merged = partner.model_copy(update=changes)
        completion = merged.calculate_completion(self.settings.partner_profile_complete_threshold)
        fields = merged.model_dump(include=set(changes))
        fields["is_profile_complete"] = completion.is_complete

        updated = await self.partner_repo.update_profile(partner.id, fields)
        if updated is None:
            raise NotFoundError("Delivery partner profile not found")
        logger.info(
            "delivery_partner_profile_updated",
            partner_id=updated.id,
            completion=completion.percentage,
        )
        return updated

    async def set_availability(self, user: CurrentUser, is_available: bool) -> DeliveryPartner:
        """
        Raises:
            BadRequestError: Going available with an incomplete profile
        """
        partner = await self.get_or_create_profile(user)
        if is_available:
            completion = partner.calculate_completion(self.settings.partner_profile_complete_threshold)
            minimum = self.settings.partner_min_completion_for_availability
            if completion.percentage < minimum:
                raise BadRequestError(
                    f"Complete at least {minimum}% of your profile to go available",
                    extra={"completion": completion.model_dump()},
                )
        updated = await self.partner_repo.set_availability(partner.id, is_available)
        logger.info("delivery_partner_availability", partner_id=partner.id, is_available=is_available)
        return updated

    async def update_location(self, user: CurrentUser, request: LocationUpdateRequest) -> DeliveryPartner:
        partner = await self.get_or_create_profile(user)
        location = CurrentLocation(
            latitude=request.latitude,
            longitude=request.longitude,
            address=request.address,
            updated_at=utc_now(),
        )
        return await self.partner_repo.set_location(partner.id, location.model_dump())

    async def dashboard(self, user: CurrentUser) -> Dict[str, Any]:
        partner = await self.get_or_create_profile(user)
        now = utc_now()

        today = await self.order_repo.delivered_summary(partner.id, start_of_day(now))
        week = await self.order_repo.delivered_summary(partner.id, start_of_week(now))
        assigned = await self.order_repo.count({
            "delivery_details.partner_id": partner.id,
            "status": OrderStatus.ASSIGNED.value,
        })
        active = await self.order_repo.count({
            "delivery_details.partner_id": partner.id,
            "status": {"$in": [s.value for s in PARTNER_ACTIVE_STATUSES]},
        })
        recent = await self.order_repo.list_orders(
            {"delivery_details.partner_id": partner.id}, limit=RECENT_ORDERS_LIMIT
        )
        completion = partner.calculate_completion(self.settings.partner_profile_complete_threshold)

        return {
            "today": today,
            "this_week": week,
            "all_time": partner.delivery_stats,
            "current": {"assigned": assigned, "active": active},
            "recent_orders": recent,
            "rating": partner.rating,
            "is_available": partner.is_available,
            "is_verified": partner.is_verified,
            "verification_status": partner.verification_status,
            "completion": completion,
        }
