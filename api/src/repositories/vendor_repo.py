"""
Vendor and menu repositories.

Provides async operations on the ``vendor_profiles`` and ``menu_items``
collections, including the restaurant discovery queries.
"""

import re
from typing import Any, Dict, List, Optional, Sequence

import structlog
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from api.src.models.base import utc_now
from api.src.models.catalog import category_variations
from api.src.models.vendor import MenuItem, VendorProfile
from api.src.repositories.base import MongoRepository, rating_update_pipeline, to_bson, to_object_id

logger = structlog.get_logger(__name__)


class VendorRepository(MongoRepository[VendorProfile]):
    """Repository for vendor profile operations."""

    collection_name = "vendor_profiles"
    model = VendorProfile

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("user_id", ASCENDING)], unique=True, name="uniq_user")
        await self.collection.create_index([("pincode", ASCENDING)], name="pincode")
        await self.collection.create_index([("delivery_pincodes", ASCENDING)], name="delivery_pincodes")

    async def get_by_user_id(self, user_id: str) -> Optional[VendorProfile]:
        return self._from_doc(await self.collection.find_one({"user_id": user_id}))

    async def upsert_profile(self, user_id: str, fields: Dict[str, Any]) -> VendorProfile:
        """Create or update the profile owned by ``user_id``."""
        now = utc_now()
        doc = await self.collection.find_one_and_update(
            {"user_id": user_id},
            {
                "$set": {**to_bson(fields), "updated_at": now},
                "$setOnInsert": {
                    "user_id": user_id,
                    "created_at": now,
                    "rating": {"average": 0.0, "total_ratings": 0},
                    "is_open": True,
                    "closure_reason": None,
                },
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return self._from_doc(doc)

    async def set_open_status(
        self, user_id: str, is_open: bool, closure_reason: Optional[str]
    ) -> Optional[VendorProfile]:
        doc = await self.collection.find_one_and_update(
            {"user_id": user_id},
            {"$set": {
                "is_open": is_open,
                "closure_reason": None if is_open else (closure_reason or None),
                "updated_at": utc_now(),
            }},
            return_document=ReturnDocument.AFTER,
        )
        return self._from_doc(doc)

    async def find_restaurants(self, pincode: Optional[str] = None) -> List[VendorProfile]:
        """Complete vendor profiles, optionally restricted to those serving a pincode."""
        query: Dict[str, Any] = {"is_profile_complete": True}
        if pincode:
            query["$or"] = [{"pincode": pincode}, {"delivery_pincodes": pincode}]
        return await self._find_models(query, sort=[("created_at", DESCENDING)])

    async def add_rating(self, vendor_id: str, score: int) -> None:
        """Fold a 1-5 score into the running rating average atomically."""
        await self.collection.update_one(
            {"_id": to_object_id(vendor_id)},
            [rating_update_pipeline("rating", score)],
        )


class MenuRepository(MongoRepository[MenuItem]):
    """Repository for menu item operations."""

    collection_name = "menu_items"
    model = MenuItem

    async def ensure_indexes(self) -> None:
        await self.collection.create_index(
            [("vendor_id", ASCENDING), ("category", ASCENDING), ("dish_name", ASCENDING)],
            name="vendor_category_dish",
        )
        await self.collection.create_index([("category", ASCENDING)], name="category")

    async def insert_many(self, items: Sequence[MenuItem]) -> List[MenuItem]:
        now = utc_now()
        for item in items:
            item.created_at = now
            item.updated_at = now
        result = await self.collection.insert_many([self._to_doc(i) for i in items])
        for item, oid in zip(items, result.inserted_ids):
            item.id = str(oid)
        logger.info("menu_items_created", vendor_id=items[0].vendor_id if items else None, count=len(items))
        return list(items)

    async def get_for_vendor(self, item_id: str, vendor_id: str) -> Optional[MenuItem]:
        oid = to_object_id(item_id)
        if oid is None:
            return None
        return self._from_doc(await self.collection.find_one({"_id": oid, "vendor_id": vendor_id}))

    async def update_for_vendor(
        self, item_id: str, vendor_id: str, fields: Dict[str, Any]
    ) -> Optional[MenuItem]:
        oid = to_object_id(item_id)
        if oid is None:
            return None
        doc = await self.collection.find_one_and_update(
            {"_id": oid, "vendor_id": vendor_id},
            {"$set": {**to_bson(fields), "updated_at": utc_now()}},
            return_document=ReturnDocument.AFTER,
        )
        return self._from_doc(doc)

    async def delete_for_vendor(self, item_id: str, vendor_id: str) -> bool:
        oid = to_object_id(item_id)
        if oid is None:
            return False
        result = await self.collection.delete_one({"_id": oid, "vendor_id": vendor_id})
        return result.deleted_count > 0

    async def search(
        self,
        vendor_id: str,
        category: Optional[str] = None,
        search: Optional[str] = None,
        veg_only: bool = False,
        available_only: bool = False,
        limit: int = 0,
    ) -> List[MenuItem]:
        """
        Menu items of a vendor sorted by category then name.

        ``category`` matches case-insensitively including singular/plural
        spellings; ``search`` is a case-insensitive substring of name or
        description.
        """
        query: Dict[str, Any] = {"vendor_id": vendor_id}
        if available_only:
            query["is_available"] = True
        if category:
            query["category"] = {"$in": [
                re.compile(f"^{re.escape(c)}$", re.IGNORECASE) for c in category_variations(category)
            ]}
        if search:
            pattern = re.compile(re.escape(search.strip()), re.IGNORECASE)
            query["$or"] = [{"dish_name": pattern}, {"description": pattern}]
        if veg_only:
            query["is_veg"] = True
        return await self._find_models(
            query, sort=[("category", ASCENDING), ("dish_name", ASCENDING)], limit=limit
        )

    async def get_many_for_vendor(self, item_ids: Sequence[str], vendor_id: str) -> List[MenuItem]:
        oids = [oid for oid in (to_object_id(i) for i in item_ids) if oid is not None]
        if not oids:
            return []
        return await self._find_models({"_id": {"$in": oids}, "vendor_id": vendor_id})

    async def distinct_categories(self, vendor_id: Optional[str] = None, available_only: bool = False) -> List[str]:
        query: Dict[str, Any] = {}
        if vendor_id:
            query["vendor_id"] = vendor_id
        if available_only:
            query["is_available"] = True
        values = await self.collection.distinct("category", query)
        return sorted({v.strip() for v in values if isinstance(v, str) and v.strip()})
