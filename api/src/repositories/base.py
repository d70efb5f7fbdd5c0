"""
Base repository for MongoDB collections.

Wraps a pymongo async collection with model conversion (``_id`` <-> ``id``),
BSON-safe serialization, and consistent error logging.
"""

from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, Dict, Generic, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar

import structlog
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError

from api.src.config import get_settings
from api.src.exceptions import ConflictError
from api.src.models.base import DocumentModel, utc_now

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=DocumentModel)

SortSpec = Sequence[Tuple[str, int]]


def to_object_id(value: Optional[str]) -> Optional[ObjectId]:
    """Parse a hex string into an ObjectId, returning None when invalid."""
    if isinstance(value, ObjectId):
        return value
    if value and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def to_bson(value: Any) -> Any:
    """Convert model dumps into BSON-encodable values (enums, bare dates)."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, Mapping):
        return {k: to_bson(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_bson(v) for v in value]
    return value


class MongoRepository(Generic[ModelT]):
    """Common CRUD operations for a single collection."""

    collection_name: str = ""
    model: Type[ModelT]

    def __init__(self, db: AsyncDatabase):
        """
        Initialize repository.

        Args:
            db: pymongo async database handle
        """
        self.db = db
        self.collection = db[self.collection_name]
        self.settings = get_settings()

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def _from_doc(self, doc: Optional[Dict[str, Any]]) -> Optional[ModelT]:
        if doc is None:
            return None
        data = dict(doc)
        data["id"] = str(data.pop("_id"))
        return self.model.model_validate(data)

    def _to_doc(self, model: ModelT) -> Dict[str, Any]:
        return to_bson(model.model_dump(exclude={"id"}))

    async def _find_models(
        self,
        query: Dict[str, Any],
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[ModelT]:
        cursor = self.collection.find(query, sort=list(sort) if sort else None, skip=skip, limit=limit)
        docs = await cursor.to_list(length=None)
        return [self._from_doc(doc) for doc in docs]

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def ensure_indexes(self) -> None:
        """Create collection indexes; overridden per collection."""

    async def get_by_id(self, doc_id: str) -> Optional[ModelT]:
        oid = to_object_id(doc_id)
        if oid is None:
            return None
        try:
            return self._from_doc(await self.collection.find_one({"_id": oid}))
        except PyMongoError as e:
            logger.error("document_get_failed", collection=self.collection_name, doc_id=doc_id, error=str(e))
            raise

    async def get_many(self, doc_ids: Sequence[str]) -> List[ModelT]:
        oids = [oid for oid in (to_object_id(i) for i in doc_ids) if oid is not None]
        if not oids:
            return []
        return await self._find_models({"_id": {"$in": oids}})

    async def insert(self, model: ModelT) -> ModelT:
        """
        Insert a new document.

        Raises:
            ConflictError: If a unique index is violated
        """
        now = utc_now()
        model.created_at = now
        model.updated_at = now
        try:
            result = await self.collection.insert_one(self._to_doc(model))
        except DuplicateKeyError as e:
            logger.warning("document_duplicate", collection=self.collection_name, error=str(e))
            raise ConflictError(f"{self.model.__name__} already exists")
        except PyMongoError as e:
            logger.error("document_insert_failed", collection=self.collection_name, error=str(e))
            raise
        model.id = str(result.inserted_id)
        return model

    async def save(self, model: ModelT) -> ModelT:
        """Replace the stored document with the model's current state."""
        oid = to_object_id(model.id)
        if oid is None:
            raise ValueError("Cannot save a document without an id")
        model.updated_at = utc_now()
        try:
            await self.collection.replace_one({"_id": oid}, self._to_doc(model))
        except PyMongoError as e:
            logger.error("document_save_failed", collection=self.collection_name, doc_id=model.id, error=str(e))
            raise
        return model

    async def update_fields(self, doc_id: str, fields: Dict[str, Any]) -> Optional[ModelT]:
        """Set fields on a document and return the updated model."""
        oid = to_object_id(doc_id)
        if oid is None:
            return None
        update = {"$set": {**to_bson(fields), "updated_at": utc_now()}}
        doc = await self.collection.find_one_and_update(
            {"_id": oid}, update, return_document=ReturnDocument.AFTER
        )
        return self._from_doc(doc)

    async def delete_by_id(self, doc_id: str) -> bool:
        oid = to_object_id(doc_id)
        if oid is None:
            return False
        result = await self.collection.delete_one({"_id": oid})
        return result.deleted_count > 0

    async def count(self, query: Dict[str, Any]) -> int:
        return await self.collection.count_documents(query)


def rating_update_pipeline(field: str, score: int) -> Dict[str, Any]:
    """Aggregation-pipeline update stage folding ``score`` into ``<field>.average``."""
    avg = {"$ifNull": [f"${field}.average", 0]}
    total = {"$ifNull": [f"${field}.total_ratings", 0]}
    return {"$set": {
        f"{field}.average": {
            "$round": [
                {"$divide": [
                    {"$add": [{"$multiply": [avg, total]}, score]},
                    {"$add": [total, 1]},
                ]},
                2,
            ]
        },
        f"{field}.total_ratings": {"$add": [total, 1]},
        "updated_at": "$$NOW",
    }}
