"""
Delivery partner repository.

Provides async operations on the ``delivery_partners`` collection. Bank
account numbers are encrypted on write and decrypted on read.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from api.src.models.base import utc_now
from api.src.models.delivery_partner import DeliveryPartner, VerificationHistoryEntry, VerificationStatus
from api.src.repositories.base import MongoRepository, rating_update_pipeline, to_bson, to_object_id
from shared.security.crypto import decrypt_field, encrypt_field

logger = structlog.get_logger(__name__)


class DeliveryPartnerRepository(MongoRepository[DeliveryPartner]):
    """Repository for delivery partner operations."""

    collection_name = "delivery_partners"
    model = DeliveryPartner

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("user_id", ASCENDING)], unique=True, name="uniq_user")
        await self.collection.create_index([("delivery_zones", ASCENDING)], name="delivery_zones")
        await self.collection.create_index(
            [("verification_status", ASCENDING), ("is_available", ASCENDING)],
            name="status_available",
        )

    # ------------------------------------------------------------------
    # Encryption at rest
    # ------------------------------------------------------------------

    def _to_doc(self, model: DeliveryPartner) -> Dict[str, Any]:
        doc = super()._to_doc(model)
        bank = doc.get("bank_details") or {}
        if bank.get("account_number"):
            bank["account_number"] = encrypt_field(
                bank["account_number"], self.settings.field_encryption_key
            )
        return doc

    def _from_doc(self, doc: Optional[Dict[str, Any]]) -> Optional[DeliveryPartner]:
        if doc is not None:
            bank = doc.get("bank_details") or {}
            if bank.get("account_number"):
                bank["account_number"] = decrypt_field(
                    bank["account_number"], self.settings.field_encryption_key
                )
        return super()._from_doc(doc)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_by_user_id(self, user_id: str) -> Optional[DeliveryPartner]:
        return self._from_doc(await self.collection.find_one({"user_id": user_id}))

    async def list_for_verification(
        self,
        zones: Sequence[str],
        statuses: Optional[Sequence[VerificationStatus]],
        skip: int,
        limit: int,
    ) -> Tuple[List[DeliveryPartner], int]:
        """
        Complete profiles whose delivery zones overlap ``zones``.

        Returns:
            Tuple of (partners newest first, total matching count)
        """
        query: Dict[str, Any] = {
            "delivery_zones": {"$in": list(zones)},
            "is_profile_complete": True,
        }
        if statuses:
            query["verification_status"] = {"$in": [s.value for s in statuses]}
        partners = await self._find_models(query, sort=[("created_at", DESCENDING)], skip=skip, limit=limit)
        total = await self.count(query)
        return partners, total

    async def list_dispatchable(self, zones: Sequence[str]) -> List[DeliveryPartner]:
        """Available, verified and approved partners serving any of ``zones``."""
        return await self._find_models(
            {
                "delivery_zones": {"$in": list(zones)},
                "is_available": True,
                "is_verified": True,
                "verification_status": VerificationStatus.APPROVED.value,
            },
            sort=[("rating.average", DESCENDING), ("created_at", ASCENDING)],
        )

    # ------------------------------------------------------------------
    # Targeted writes
    # ------------------------------------------------------------------

    async def update_profile(self, partner_id: str, fields: Dict[str, Any]) -> Optional[DeliveryPartner]:
        """
        Set profile fields without touching counters, rating or verification.

        ``fields`` holds top-level profile fields; a ``bank_details`` entry
        has its account number encrypted before the write.
        """
        fields = dict(fields)
        bank = fields.get("bank_details")
        if bank and bank.get("account_number"):
            fields["bank_details"] = {
                **bank,
                "account_number": encrypt_field(bank["account_number"], self.settings.field_encryption_key),
            }
        return await self.update_fields(partner_id, fields)

    async def record_verification(
        self,
        partner_id: str,
        fields: Dict[str, Any],
        entry: VerificationHistoryEntry,
    ) -> Optional[DeliveryPartner]:
        """Set the verification fields and append ``entry`` to the history."""
        oid = to_object_id(partner_id)
        if oid is None:
            return None
        doc = await self.collection.find_one_and_update(
            {"_id": oid},
            {
                "$set": {**to_bson(fields), "updated_at": utc_now()},
                "$push": {"verification_history": to_bson(entry.model_dump())},
            },
            return_document=ReturnDocument.AFTER,
        )
        return self._from_doc(doc)

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------

    async def set_availability(self, partner_id: str, is_available: bool) -> Optional[DeliveryPartner]:
        return await self.update_fields(partner_id, {"is_available": is_available, "is_online": is_available})

    async def set_location(self, partner_id: str, location: Dict[str, Any]) -> Optional[DeliveryPartner]:
        return await self.update_fields(partner_id, {"current_location": location})

    async def increment_pickups(self, partner_id: str) -> None:
        await self.collection.update_one(
            {"_id": to_object_id(partner_id)},
            {"$inc": {"delivery_stats.total_deliveries": 1}, "$set": {"updated_at": utc_now()}},
        )

    async def increment_cancellations(self, partner_id: str) -> None:
        await self.collection.update_one(
            {"_id": to_object_id(partner_id)},
            {"$inc": {"delivery_stats.cancelled_deliveries": 1}, "$set": {"updated_at": utc_now()}},
        )

    async def record_delivery(self, partner_id: str, earnings: float, month: str) -> Optional[DeliveryPartner]:
        """
        Count a completed delivery and its earnings.

        Monthly counters restart when ``month`` (YYYY-MM) differs from the
        month they were accumulated in. One pipeline update does both.
        """
        doc = await self.collection.find_one_and_update(
            {"_id": to_object_id(partner_id)},
            [delivery_stats_pipeline(earnings, month)],
            return_document=ReturnDocument.AFTER,
        )
        return self._from_doc(doc)

    async def add_rating(self, partner_id: str, score: int) -> None:
        await self.collection.update_one(
            {"_id": to_object_id(partner_id)},
            [rating_update_pipeline("rating", score)],
        )


def delivery_stats_pipeline(earnings: float, month: str) -> Dict[str, Any]:
    """Aggregation-pipeline update stage adding one delivery to ``delivery_stats``."""

    def plus(field: str, amount: Any) -> Dict[str, Any]:
        return {"$add": [{"$ifNull": [f"$delivery_stats.{field}", 0]}, amount]}

    same_month = {"$eq": ["$delivery_stats.stats_month", {"$literal": month}]}
    return {"$set": {
        "delivery_stats.completed_deliveries": plus("completed_deliveries", 1),
        "delivery_stats.total_earnings": plus("total_earnings", earnings),
        "delivery_stats.this_month_deliveries": {
            "$cond": [same_month, plus("this_month_deliveries", 1), 1]
        },
        "delivery_stats.this_month_earnings": {
            "$cond": [same_month, plus("this_month_earnings", earnings), earnings]
        },
        "delivery_stats.stats_month": {"$literal": month},
        "updated_at": "$$NOW",
    }}
