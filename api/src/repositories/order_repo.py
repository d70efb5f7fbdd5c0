"""
Order repository.

Provides async operations on the ``orders`` collection. Every status change
goes through :meth:`OrderRepository.transition`, a single
``find_one_and_update`` whose filter pins the expected current status (and
delivery partner where relevant), so concurrent writers cannot both win.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import structlog
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from api.src.exceptions import ConflictError
from api.src.models.base import utc_now
from api.src.models.order import (
    Order,
    OrderStatus,
    STATUS_TIMESTAMP_FIELDS,
    generate_order_number,
)
from api.src.repositories.base import MongoRepository, SortSpec, to_bson, to_object_id

logger = structlog.get_logger(__name__)

ORDER_NUMBER_ATTEMPTS = 5

_UNSET = object()


class OrderRepository(MongoRepository[Order]):
    """Repository for order operations."""

    collection_name = "orders"
    model = Order

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("order_number", ASCENDING)], unique=True, name="uniq_order_number")
        await self.collection.create_index([("customer_id", ASCENDING), ("created_at", DESCENDING)], name="customer_time")
        await self.collection.create_index([("vendor_id", ASCENDING), ("created_at", DESCENDING)], name="vendor_time")
        await self.collection.create_index(
            [("delivery_details.partner_id", ASCENDING), ("status", ASCENDING)], name="partner_status"
        )
        await self.collection.create_index([("status", ASCENDING)], name="status")

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_order(self, order: Order) -> Order:
        """
        Insert an order, regenerating the order number on collision.

        Raises:
            ConflictError: If no unique order number could be allocated
        """
        now = utc_now()
        order.created_at = now
        order.updated_at = now
        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            try:
                result = await self.collection.insert_one(self._to_doc(order))
                order.id = str(result.inserted_id)
                logger.info(
                    "order_created",
                    order_id=order.id,
                    order_number=order.order_number,
                    vendor_id=order.vendor_id,
                    total_amount=order.total_amount,
                )
                return order
            except DuplicateKeyError:
                logger.warning("order_number_collision", order_number=order.order_number, attempt=attempt)
                order.order_number = generate_order_number()
        raise ConflictError("Could not allocate an order number; please retry")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def transition(
        self,
        order_id: str,
        expected_status: OrderStatus,
        new_status: OrderStatus,
        *,
        expected_partner_id: Any = _UNSET,
        extra_filter: Optional[Dict[str, Any]] = None,
        set_fields: Optional[Dict[str, Any]] = None,
        unset_fields: Optional[Sequence[str]] = None,
        push: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Order]:
        """
        Atomically move an order from ``expected_status`` to ``new_status``.

        Args:
            order_id: Order ID
            expected_status: Status the order must currently have
            new_status: Status to set
            expected_partner_id: Partner the order must be assigned to (None = unassigned)
            extra_filter: Additional filter conditions
            set_fields: Extra fields to set
            unset_fields: Fields to clear
            push: Array pushes
            now: Timestamp to stamp (defaults to current time)

        Returns:
            Updated order, or None if the order no longer matched the filter
        """
        oid = to_object_id(order_id)
        if oid is None:
            return None
        now = now or utc_now()

        query: Dict[str, Any] = {"_id": oid, "status": expected_status.value}
        if expected_partner_id is not _UNSET:
            query["delivery_details.partner_id"] = expected_partner_id
        if extra_filter:
            query.update(extra_filter)

        fields: Dict[str, Any] = {
            "status": new_status.value,
            f"timestamps.{STATUS_TIMESTAMP_FIELDS[new_status]}": now,
            "updated_at": now,
        }
        if set_fields:
            fields.update(set_fields)

        update: Dict[str, Any] = {"$set": to_bson(fields)}
        if unset_fields:
            update["$unset"] = {f: "" for f in unset_fields}
        if push:
            update["$push"] = to_bson(push)

        doc = await self.collection.find_one_and_update(
            query, update, return_document=ReturnDocument.AFTER
        )
        if doc is None:
            logger.warning(
                "order_transition_not_applied",
                order_id=order_id,
                expected_status=expected_status.value,
                new_status=new_status.value,
            )
            return None

        logger.info(
            "order_status_changed",
            order_id=order_id,
            from_status=expected_status.value,
            to_status=new_status.value,
        )
        return self._from_doc(doc)

    async def set_rating(self, order_id: str, customer_id: str, rating: Dict[str, Any]) -> Optional[Order]:
        """Attach a rating to a delivered, unrated order of the customer."""
        doc = await self.collection.find_one_and_update(
            {
                "_id": to_object_id(order_id),
                "customer_id": customer_id,
                "status": OrderStatus.DELIVERED.value,
                "rating": None,
            },
            {"$set": {"rating": to_bson(rating), "updated_at": utc_now()}},
            return_document=ReturnDocument.AFTER,
        )
        return self._from_doc(doc)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_orders(
        self,
        query: Dict[str, Any],
        sort: Optional[SortSpec] = None,
        limit: int = 0,
    ) -> List[Order]:
        return await self._find_models(query, sort=sort or [("created_at", DESCENDING)], limit=limit)

    async def list_for_customer(self, customer_id: str, limit: int) -> List[Order]:
        return await self.list_orders({"customer_id": customer_id}, limit=limit)

    async def list_for_vendor(
        self, vendor_id: str, status: Optional[OrderStatus], limit: int
    ) -> List[Order]:
        query: Dict[str, Any] = {"vendor_id": vendor_id}
        if status:
            query["status"] = status.value
        return await self.list_orders(query, limit=limit)

    async def sum_amount(self, query: Dict[str, Any], field: str = "total_amount") -> float:
        """Sum a numeric field over matching orders."""
        cursor = await self.collection.aggregate([
            {"$match": query},
            {"$group": {"_id": None, "total": {"$sum": f"${field}"}}},
        ])
        rows = await cursor.to_list(length=None)
        return float(rows[0]["total"]) if rows else 0.0

    async def delivered_summary(
        self, partner_id: str, start: datetime, end: Optional[datetime] = None
    ) -> Dict[str, float]:
        """Delivered count and partner earnings for a partner within a time window."""
        window: Dict[str, Any] = {"$gte": start}
        if end is not None:
            window["$lt"] = end
        cursor = await self.collection.aggregate([
            {"$match": {
                "delivery_details.partner_id": partner_id,
                "status": OrderStatus.DELIVERED.value,
                "timestamps.delivered_at": window,
            }},
            {"$group": {
                "_id": None,
                "count": {"$sum": 1},
                "earnings": {"$sum": "$delivery_details.partner_earnings"},
            }},
        ])
        rows = await cursor.to_list(length=None)
        if not rows:
            return {"count": 0, "earnings": 0.0}
        return {"count": int(rows[0]["count"]), "earnings": float(rows[0]["earnings"])}
