"""
Vendor service: restaurant profile, store status and menu management.
"""

from typing import Dict, List, Optional

import structlog

from api.src.exceptions import BadRequestError, NotFoundError
from api.src.models.auth import CurrentUser
from api.src.models.vendor import (
    MenuBulkCreateRequest,
    MenuItem,
    MenuItemUpdate,
    MenuListResponse,
    ToggleStatusRequest,
    VendorProfile,
    VendorProfileRequest,
)
from api.src.repositories.vendor_repo import MenuRepository, VendorRepository

logger = structlog.get_logger(__name__)


def group_by_category(items: List[MenuItem]) -> Dict[str, List[MenuItem]]:
    grouped: Dict[str, List[MenuItem]] = {}
    for item in items:
        grouped.setdefault(item.category, []).append(item)
    return grouped


class VendorService:
    """Service for vendor profile and menu operations."""

    def __init__(self, vendor_repo: VendorRepository, menu_repo: MenuRepository):
        self.vendor_repo = vendor_repo
        self.menu_repo = menu_repo

    # ========================================================================
    # Profile
    # ========================================================================

    async def get_profile(self, user: CurrentUser) -> VendorProfile:
        profile = await self.vendor_repo.get_by_user_id(user.id)
        if profile is None:
            raise NotFoundError("Vendor profile not found")
        return profile

    async def save_profile(self, user: CurrentUser, request: VendorProfileRequest) -> VendorProfile:
        """Create or update the restaurant profile and mark it complete."""
        fields = request.model_dump(exclude_none=True)
        fields["is_profile_complete"] = True
        profile = await self.vendor_repo.upsert_profile(user.id, fields)
        logger.info("vendor_profile_saved", user_id=user.id, vendor_id=profile.id)
        return profile

    async def toggle_status(self, user: CurrentUser, request: ToggleStatusRequest) -> VendorProfile:
        profile = await self.vendor_repo.set_open_status(user.id, request.is_open, request.closure_reason)
        if profile is None:
            raise NotFoundError("Vendor profile not found")
        logger.info("vendor_status_changed", vendor_id=profile.id, is_open=profile.is_open)
        return profile

    # ========================================================================
    # Menu
    # ========================================================================

    async def list_menu(
        self, user: CurrentUser, category: Optional[str] = None, search: Optional[str] = None
    ) -> MenuListResponse:
        profile = await self.get_profile(user)
        items = await self.menu_repo.search(profile.id, category=category, search=search)
        grouped = group_by_category(items)
        return MenuListResponse(
            menu_items=items,
            grouped_items=grouped,
            total_items=len(items),
            categories=sorted(grouped),
        )

    async def add_menu_items(self, user: CurrentUser, request: MenuBulkCreateRequest) -> List[MenuItem]:
        """
        Raises:
            BadRequestError: Vendor has no profile yet
        """
        profile = await self.vendor_repo.get_by_user_id(user.id)
        if profile is None:
            raise BadRequestError("Please complete your profile first")
        items = [MenuItem(vendor_id=profile.id, **item.model_dump()) for item in request.items]
        return await self.menu_repo.insert_many(items)

    async def get_menu_item(self, user: CurrentUser, item_id: str) -> MenuItem:
        profile = await self.get_profile(user)
        item = await self.menu_repo.get_for_vendor(item_id, profile.id)
        if item is None:
            raise NotFoundError("Menu item not found")
        return item

    async def update_menu_item(self, user: CurrentUser, item_id: str, request: MenuItemUpdate) -> MenuItem:
        profile = await self.get_profile(user)
        fields = request.model_dump(exclude_unset=True, exclude_none=True)
        if not fields:
            return await self.get_menu_item(user, item_id)
        item = await self.menu_repo.update_for_vendor(item_id, profile.id, fields)
        if item is None:
            raise NotFoundError("Menu item not found")
        logger.info("menu_item_updated", vendor_id=profile.id, item_id=item_id, fields=sorted(fields))
        return item

    async def delete_menu_item(self, user: CurrentUser, item_id: str) -> None:
        profile = await self.get_profile(user)
        if not await self.menu_repo.delete_for_vendor(item_id, profile.id):
            raise NotFoundError("Menu item not found")
        logger.info("menu_item_deleted", vendor_id=profile.id, item_id=item_id)
