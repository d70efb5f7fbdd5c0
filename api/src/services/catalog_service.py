"""
Restaurant discovery for customers: listing, details, menus, categories and
pincode lookup.
"""

import asyncio
from typing import List, Optional

import structlog

from api.src.config import get_settings
from api.src.exceptions import BadRequestError, NotFoundError
from api.src.models.base import is_object_id
from api.src.models.catalog import (
    CategoriesResponse,
    Category,
    Pincode,
    RestaurantDetail,
    RestaurantListResponse,
    RestaurantMenuResponse,
    RestaurantSearch,
    RestaurantSummary,
    SortBy,
    slugify,
)
from api.src.models.vendor import PINCODE_PATTERN, MenuItem, VendorProfile
from api.src.repositories.customer_repo import PincodeRepository
from api.src.repositories.vendor_repo import MenuRepository, VendorRepository
from api.src.services.vendor_service import group_by_category

logger = structlog.get_logger(__name__)

CATEGORY_ITEMS_LIMIT = 50
DEFAULT_ITEMS_LIMIT = 10
DEFAULT_PREPARATION_MINUTES = 15
TRAVEL_MINUTES = 20


def estimate_delivery_minutes(items: List[MenuItem]) -> int:
    """Longest preparation time among the items plus travel time."""
    prep = max((i.preparation_time for i in items), default=DEFAULT_PREPARATION_MINUTES)
    return prep + TRAVEL_MINUTES


class CatalogService:
    """Service for restaurant discovery."""

    def __init__(
        self,
        vendor_repo: VendorRepository,
        menu_repo: MenuRepository,
        pincode_repo: PincodeRepository,
    ):
        self.vendor_repo = vendor_repo
        self.menu_repo = menu_repo
        self.pincode_repo = pincode_repo
        self.settings = get_settings()

    async def _summarize(self, vendor: VendorProfile, filters: RestaurantSearch) -> RestaurantSummary:
        limit = CATEGORY_ITEMS_LIMIT if filters.category else DEFAULT_ITEMS_LIMIT
        items = await self.menu_repo.search(
            vendor.id,
            category=filters.category,
            search=filters.search,
            veg_only=filters.veg_only,
            available_only=True,
            limit=limit,
        )
        return RestaurantSummary(
            id=vendor.id,
            name=vendor.restaurant_name,
            image=vendor.restaurant_photo,
            city=vendor.city,
            address=vendor.full_address,
            pincode=vendor.pincode,
            delivery_pincodes=vendor.delivery_pincodes,
            is_open=vendor.is_open,
            closure_reason=vendor.closure_reason,
            working_hours=vendor.working_hours,
            rating=vendor.rating.average,
            total_ratings=vendor.rating.total_ratings,
            delivery_time_minutes=estimate_delivery_minutes(items),
            categories=sorted({i.category for i in items}),
            menu_items=items,
            total_menu_items=len(items),
        )

    async def list_restaurants(self, filters: RestaurantSearch) -> RestaurantListResponse:
        """
        Restaurants serving a pincode with a preview of matching menu items.

        With a search term or category, restaurants without a matching item
        are left out.
        """
        vendors = await self.vendor_repo.find_restaurants(filters.pincode)
        if filters.min_rating is not None:
            vendors = [v for v in vendors if v.rating.average >= filters.min_rating]

        summaries = list(await asyncio.gather(*(self._summarize(v, filters) for v in vendors)))
        if filters.search or filters.category:
            summaries = [s for s in summaries if s.menu_items]

        if filters.sort_by == SortBy.RATING:
            summaries.sort(key=lambda s: s.rating, reverse=True)
        elif filters.sort_by == SortBy.DELIVERY_TIME:
            summaries.sort(key=lambda s: s.delivery_time_minutes)

        logger.debug("restaurants_listed", pincode=filters.pincode, count=len(summaries))
        return RestaurantListResponse(restaurants=summaries, total=len(summaries), filters=filters)

    async def _get_listed(self, restaurant_id: str) -> VendorProfile:
        if not is_object_id(restaurant_id):
            raise BadRequestError("Invalid restaurant ID")
        vendor = await self.vendor_repo.get_by_id(restaurant_id)
        if vendor is None or not vendor.is_profile_complete:
            raise NotFoundError("Restaurant not found")
        return vendor

    async def get_restaurant(self, restaurant_id: str) -> RestaurantDetail:
        vendor = await self._get_listed(restaurant_id)
        items = await self.menu_repo.search(vendor.id, available_only=True)
        cuisines = sorted({i.category for i in items}) or ["Multi-Cuisine"]
        return RestaurantDetail(
            id=vendor.id,
            name=vendor.restaurant_name,
            image=vendor.restaurant_photo,
            description=", ".join(cuisines),
            cuisines=cuisines,
            city=vendor.city,
            address=vendor.full_address,
            pincode=vendor.pincode,
            phone=vendor.mobile_no,
            is_open=vendor.is_open,
            closure_reason=vendor.closure_reason,
            working_hours=vendor.working_hours,
            rating=vendor.rating.average,
            total_ratings=vendor.rating.total_ratings,
            delivery_time_minutes=estimate_delivery_minutes(items),
            delivery_fee=self.settings.delivery_base_fee,
        )

    async def get_menu(self, restaurant_id: str) -> RestaurantMenuResponse:
        vendor = await self._get_listed(restaurant_id)
        items = await self.menu_repo.search(vendor.id, available_only=True)
        return RestaurantMenuResponse(
            restaurant_id=vendor.id,
            menu_items=items,
            grouped_items=group_by_category(items),
            total_items=len(items),
        )

    async def list_categories(self) -> CategoriesResponse:
        names = await self.menu_repo.distinct_categories()
        categories = [Category(name=name, slug=slugify(name)) for name in names]
        return CategoriesResponse(categories=categories, total=len(categories))

    async def lookup_pincode(self, pincode: str) -> Pincode:
        """
        Raises:
            BadRequestError: Not a 6-digit pincode
            NotFoundError: Unknown pincode
        """
        if not PINCODE_PATTERN.fullmatch(pincode or ""):
            raise BadRequestError("Pincode must be 6 digits")
        entry: Optional[Pincode] = await self.pincode_repo.get(pincode)
        if entry is None:
            raise NotFoundError("Pincode not found")
        return entry
