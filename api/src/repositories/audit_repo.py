"""
Audit log repository for database operations.

Provides async writes and filtered, paginated reads over the ``audit_logs``
collection. Retention is enforced by a TTL index on ``timestamp``.
"""

from typing import Any, Dict, List, Tuple

import structlog
from pymongo import ASCENDING, DESCENDING
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import PyMongoError

from api.src.config import get_settings
from api.src.models.audit import AuditLogCreate, AuditLogEntry, AuditLogFilter
from api.src.repositories.base import to_bson

logger = structlog.get_logger(__name__)


class AuditRepository:
    """Repository for audit log database operations."""

    collection_name = "audit_logs"

    def __init__(self, db: AsyncDatabase):
        """
        Initialize audit repository.

        Args:
            db: pymongo async database handle
        """
        self.db = db
        self.collection = db[self.collection_name]
        self.settings = get_settings()

    async def ensure_indexes(self) -> None:
        await self.collection.create_index(
            [("timestamp", ASCENDING)],
            expireAfterSeconds=self.settings.audit_retention_days * 24 * 3600,
            name="ttl_timestamp",
        )
        await self.collection.create_index([("user_id", ASCENDING), ("timestamp", DESCENDING)], name="user_time")
        await self.collection.create_index([("action", ASCENDING)], name="action")

    async def create_audit_log(self, entry: AuditLogCreate) -> str:
        """
        Create a new audit log entry.

        Args:
            entry: Audit record

        Returns:
            ID of the created entry
        """
        try:
            result = await self.collection.insert_one(to_bson(entry.model_dump()))
            logger.debug(
                "audit_log_created",
                audit_id=str(result.inserted_id),
                user_id=entry.user_id,
                action=entry.action.value,
            )
            return str(result.inserted_id)
        except PyMongoError as e:
            logger.error(
                "audit_log_create_failed",
                error=str(e),
                user_id=entry.user_id,
                action=entry.action.value,
            )
            raise

    @staticmethod
    def _build_query(filters: AuditLogFilter) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if filters.user_id:
            query["user_id"] = filters.user_id
        if filters.action:
            query["action"] = filters.action.value
        if filters.resource_type:
            query["resource_type"] = filters.resource_type.value
        if filters.start_date or filters.end_date:
            window: Dict[str, Any] = {}
            if filters.start_date:
                window["$gte"] = filters.start_date
            if filters.end_date:
                window["$lte"] = filters.end_date
            query["timestamp"] = window
        return query

    async def list_audit_logs(
        self, filters: AuditLogFilter, skip: int, limit: int
    ) -> Tuple[List[AuditLogEntry], int]:
        """
        List audit logs newest first.

        Returns:
            Tuple of (entries, total matching count)
        """
        query = self._build_query(filters)
        cursor = self.collection.find(query, sort=[("timestamp", DESCENDING)], skip=skip, limit=limit)
        docs = await cursor.to_list(length=None)
        total = await self.collection.count_documents(query)

        entries = []
        for doc in docs:
            doc["id"] = str(doc.pop("_id"))
            entries.append(AuditLogEntry.model_validate(doc))
        return entries, total
