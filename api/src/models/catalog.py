"""
Restaurant discovery models: search filters, restaurant views, categories and pincodes.
"""

import re
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from api.src.models.vendor import MenuItem


_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    """Lower-case a category name and collapse non-alphanumeric runs to ``-``."""
    return _SLUG_PATTERN.sub("-", name.lower())


def category_variations(category: str) -> List[str]:
    """Singular/plural spellings of a category: ``Pizza`` -> ``Pizza``, ``Pizzas``."""
    category = category.strip()
    variations = [category, f"{category}s"]
    if category.lower().endswith("s") and len(category) > 1:
        variations.append(category[:-1])
    return variations


class SortBy(str, Enum):
    RELEVANCE = "relevance"
    RATING = "rating"
    DELIVERY_TIME = "delivery_time"


class RestaurantSearch(BaseModel):
    pincode: Optional[str] = None
    category: Optional[str] = None
    search: Optional[str] = None
    veg_only: bool = False
    min_rating: Optional[float] = Field(None, ge=0, le=5)
    sort_by: SortBy = SortBy.RELEVANCE


class RestaurantSummary(BaseModel):
    id: str
    name: str
    image: Optional[str] = None
    city: str
    address: str
    pincode: Optional[str] = None
    delivery_pincodes: List[str] = Field(default_factory=list)
    is_open: bool
    closure_reason: Optional[str] = None
    working_hours: str
    rating: float
    total_ratings: int
    delivery_time_minutes: int
    categories: List[str]
    menu_items: List[MenuItem]
    total_menu_items: int


class RestaurantListResponse(BaseModel):
    restaurants: List[RestaurantSummary]
    total: int
    filters: RestaurantSearch


class RestaurantDetail(BaseModel):
    id: str
    name: str
    image: Optional[str] = None
    description: str
    cuisines: List[str]
    city: str
    address: str
    pincode: Optional[str] = None
    phone: str
    is_open: bool
    closure_reason: Optional[str] = None
    working_hours: str
    rating: float
    total_ratings: int
    delivery_time_minutes: int
    delivery_fee: float


class RestaurantMenuResponse(BaseModel):
    restaurant_id: str
    menu_items: List[MenuItem]
    grouped_items: Dict[str, List[MenuItem]]
    total_items: int


class Category(BaseModel):
    name: str
    slug: str


class CategoriesResponse(BaseModel):
    categories: List[Category]
    total: int


class Pincode(BaseModel):
    """Entry of the ``pincodes`` reference collection."""

    pincode: str
    city: str = ""
    state: str = ""
    district: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
