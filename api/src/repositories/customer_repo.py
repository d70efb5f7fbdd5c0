"""
Customer profile and pincode repositories.
"""

from typing import Optional

import structlog
from pymongo import ASCENDING

from api.src.models.catalog import Pincode
from api.src.models.customer import CustomerProfile
from api.src.repositories.base import MongoRepository

logger = structlog.get_logger(__name__)


class CustomerProfileRepository(MongoRepository[CustomerProfile]):
    """Repository for customer profile operations."""

    collection_name = "customer_profiles"
    model = CustomerProfile

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("user_id", ASCENDING)], unique=True, name="uniq_user")

    async def get_by_user_id(self, user_id: str) -> Optional[CustomerProfile]:
        return self._from_doc(await self.collection.find_one({"user_id": user_id}))


class PincodeRepository:
    """Read access to the ``pincodes`` reference collection."""

    collection_name = "pincodes"

    def __init__(self, db):
        self.db = db
        self.collection = db[self.collection_name]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("pincode", ASCENDING)], unique=True, name="uniq_pincode")

    async def get(self, pincode: str) -> Optional[Pincode]:
        doc = await self.collection.find_one({"pincode": pincode}, projection={"_id": False})
        if doc is None:
            return None
        return Pincode.model_validate(doc)
