"""
MongoDB implementation of the analysis record store.

Document schema:
{
    "user_id": "string",
    "image_address": "https://...",
    "created_date": "2026-10-19",          # day granularity, set on insert
    "item_name": "burrito",
    "health_label": "Healthy",
    "nutrient_detail": {"name": "...", "calories": 206.0, "fiber": "N/A", ...},
    "updated_at": datetime
}

Indexes:
- (user_id, image_address): unique, upsert identity
- (user_id, created_date DESC): history queries
"""

from datetime import date, datetime, timezone
from typing import Any, Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from nutrivision.domain.analysis.records import AnalysisPatch, AnalysisRecord
from nutrivision.domain.shared.errors import StoreError

logger = structlog.get_logger(__name__)


class MongoAnalysisRecordStore:
    """
    MongoDB implementation of IAnalysisRecordStore.

    Upsert is a single find_one_and_update with $set for patch fields and
    $setOnInsert for the creation date, so the database merges fields
    atomically. Two concurrent first inserts for the same key race on the
    unique index; the loser retries as a plain update.

    Example:
        >>> from motor.motor_asyncio import AsyncIOMotorClient
        >>> client = AsyncIOMotorClient("mongodb://localhost:27017")
        >>> store = MongoAnalysisRecordStore(client.nutrivision)
        >>> record = await store.upsert("user123", url, patch)
    """

    COLLECTION_NAME = "food_details"

    def __init__(
        self,
        db: AsyncIOMotorDatabase[Any],
        collection_name: Optional[str] = None,
    ):
        self.db = db
        self.collection = db[collection_name or self.COLLECTION_NAME]
        self._indexes_created = False

    async def _ensure_indexes(self) -> None:
        if self._indexes_created:
            return

        try:
            await self.collection.create_index(
                [("user_id", 1), ("image_address", 1)],
                unique=True,
                name="unique_user_image",
            )
            await self.collection.create_index(
                [("user_id", 1), ("created_date", -1)],
                name="idx_user_history",
            )
        except PyMongoError as e:
            raise StoreError.transport(f"Index creation failed: {e}") from e

        self._indexes_created = True

    @staticmethod
    def _patch_to_set(patch: AnalysisPatch) -> dict[str, Any]:
        fields = patch.set_fields()
        fields.pop("image_address", None)
        doc: dict[str, Any] = {}
        for name, value in fields.items():
            if name == "nutrient_detail" and value is not None:
                doc[name] = value.model_dump(mode="json")
            elif name == "health_label" and value is not None:
                doc[name] = value.value
            else:
                doc[name] = value
        doc["updated_at"] = datetime.now(timezone.utc)
        return doc

    @staticmethod
    def _from_document(doc: dict[str, Any]) -> AnalysisRecord:
        data = {k: v for k, v in doc.items() if k != "_id"}
        return AnalysisRecord.model_validate(data)

    async def upsert(
        self, user_id: str, image_address: str, patch: AnalysisPatch
    ) -> AnalysisRecord:
        """Merge patch into the (user_id, image_address) document.

        Raises:
            StoreError: conflict on identity change or an unreconciled
                concurrent insert, transport on driver errors
        """
        if patch.image_address is not None and patch.image_address != image_address:
            raise StoreError.conflict(
                f"Patch image_address {patch.image_address!r} does not match key"
            )

        await self._ensure_indexes()

        query = {"user_id": user_id, "image_address": image_address}
        set_doc = self._patch_to_set(patch)
        today = datetime.now(timezone.utc).date().isoformat()

        try:
            doc = await self.collection.find_one_and_update(
                query,
                {"$set": set_doc, "$setOnInsert": {"created_date": today}},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # Concurrent insert won the race: merge into its document
            logger.info("Upsert raced with insert, retrying as update", image_address=image_address)
            try:
                doc = await self.collection.find_one_and_update(
                    query,
                    {"$set": set_doc},
                    return_document=ReturnDocument.AFTER,
                )
            except PyMongoError as e:
                raise StoreError.transport(f"MongoDB upsert failed: {e}") from e
            if doc is None:
                raise StoreError.conflict(
                    f"Record for {image_address!r} vanished during concurrent upsert"
                )
        except PyMongoError as e:
            raise StoreError.transport(f"MongoDB upsert failed: {e}") from e

        if doc is None:
            raise StoreError.transport("MongoDB upsert returned no document")

        logger.info(
            "Analysis record upserted",
            image_address=image_address,
            fields=sorted(patch.model_fields_set),
        )
        return self._from_document(doc)

    async def get(self, user_id: str, image_address: str) -> Optional[AnalysisRecord]:
        await self._ensure_indexes()
        try:
            doc = await self.collection.find_one(
                {"user_id": user_id, "image_address": image_address}
            )
        except PyMongoError as e:
            raise StoreError.transport(f"MongoDB query failed: {e}") from e
        return self._from_document(doc) if doc else None

    async def list_by_user(
        self, user_id: str, on_date: Optional[date] = None
    ) -> list[AnalysisRecord]:
        """User's records, newest first, optionally for one day."""
        await self._ensure_indexes()

        query: dict[str, Any] = {"user_id": user_id}
        if on_date is not None:
            query["created_date"] = on_date.isoformat()

        try:
            cursor = self.collection.find(query).sort(
                [("created_date", -1), ("updated_at", -1)]
            )
            docs = await cursor.to_list(length=None)
        except PyMongoError as e:
            raise StoreError.transport(f"MongoDB query failed: {e}") from e

        return [self._from_document(doc) for doc in docs]
