"""
Customer profile service: personal details, preferences and saved addresses.
"""

from typing import List, Tuple

import structlog

from api.src.exceptions import NotFoundError
from api.src.models.auth import CurrentUser
from api.src.models.customer import (
    Address,
    AddressCreate,
    CustomerProfile,
    CustomerProfileUpdate,
    PersonalInfo,
)
from api.src.repositories.customer_repo import CustomerProfileRepository

logger = structlog.get_logger(__name__)


class CustomerProfileService:
    """Service for customer profile operations."""

    def __init__(self, profile_repo: CustomerProfileRepository):
        self.profile_repo = profile_repo

    async def get_or_create(self, user: CurrentUser) -> CustomerProfile:
        """Return the caller's profile, seeding a new one from the account."""
        profile = await self.profile_repo.get_by_user_id(user.id)
        if profile is not None:
            return profile

        first, _, last = (user.name or "").strip().partition(" ")
        profile = CustomerProfile(
            user_id=user.id,
            personal_info=PersonalInfo(first_name=first, last_name=last.strip(), email=user.email),
        )
        profile.refresh_completion()
        profile = await self.profile_repo.insert(profile)
        logger.info("customer_profile_created", user_id=user.id, profile_id=profile.id)
        return profile

    async def update(self, user: CurrentUser, request: CustomerProfileUpdate) -> CustomerProfile:
        profile = await self.get_or_create(user)
        if request.personal_info is not None:
            changes = request.personal_info.model_dump(exclude_unset=True, exclude_none=True)
            profile.personal_info = profile.personal_info.model_copy(update=changes)
        if request.preferences is not None:
            changes = request.preferences.model_dump(exclude_unset=True, exclude_none=True)
            profile.preferences = profile.preferences.model_copy(update=changes)
        profile.refresh_completion()
        return await self.profile_repo.save(profile)

    async def list_addresses(self, user: CurrentUser) -> List[Address]:
        profile = await self.get_or_create(user)
        return profile.addresses

    async def add_address(self, user: CurrentUser, request: AddressCreate) -> Tuple[Address, CustomerProfile]:
        profile = await self.get_or_create(user)
        address = profile.add_address(Address(**request.model_dump()))
        profile.refresh_completion()
        profile = await self.profile_repo.save(profile)
        logger.info("customer_address_added", profile_id=profile.id, address_id=address.id)
        return address, profile

    async def delete_address(self, user: CurrentUser, address_id: str) -> CustomerProfile:
        """
        Raises:
            NotFoundError: No such address on the profile
        """
        profile = await self.get_or_create(user)
        if not profile.remove_address(address_id):
            raise NotFoundError("Address not found")
        profile.refresh_completion()
        return await self.profile_repo.save(profile)
