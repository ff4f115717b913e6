"""In-memory analysis record store.

Dictionary storage keyed by (user_id, image_address). Records are frozen
pydantic models, so handing them out needs no copying.
"""

import asyncio
from datetime import date
from typing import Dict, List, Optional, Tuple

import structlog

from nutrivision.domain.analysis.records import AnalysisPatch, AnalysisRecord
from nutrivision.domain.shared.errors import StoreError

logger = structlog.get_logger(__name__)


class InMemoryAnalysisRecordStore:
    """
    In-memory implementation of IAnalysisRecordStore.

    Upserts are serialized with an asyncio.Lock, so concurrent patches for
    the same key merge field by field instead of overwriting each other.

    Example:
        >>> store = InMemoryAnalysisRecordStore()
        >>> await store.upsert("user123", url, AnalysisPatch(health_label="Healthy"))
        >>> record = await store.get("user123", url)
    """

    def __init__(self) -> None:
        self._records: Dict[Tuple[str, str], AnalysisRecord] = {}
        self._lock = asyncio.Lock()

    async def upsert(
        self, user_id: str, image_address: str, patch: AnalysisPatch
    ) -> AnalysisRecord:
        if patch.image_address is not None and patch.image_address != image_address:
            raise StoreError.conflict(
                f"Patch image_address {patch.image_address!r} does not match key"
            )

        key = (user_id, image_address)
        async with self._lock:
            existing = self._records.get(key)
            if existing is None:
                record = AnalysisRecord.from_patch(user_id, image_address, patch)
                action = "insert"
            else:
                record = existing.merge(patch)
                action = "update"
            self._records[key] = record

        logger.info(
            "Analysis record upserted",
            action=action,
            image_address=image_address,
            fields=sorted(patch.model_fields_set),
        )
        return record

    async def get(self, user_id: str, image_address: str) -> Optional[AnalysisRecord]:
        return self._records.get((user_id, image_address))

    async def list_by_user(
        self, user_id: str, on_date: Optional[date] = None
    ) -> List[AnalysisRecord]:
        records = [
            r
            for (owner, _), r in self._records.items()
            if owner == user_id and (on_date is None or r.created_date == on_date)
        ]
        records.sort(key=lambda r: (r.created_date, r.updated_at), reverse=True)
        return records

    def __len__(self) -> int:
        return len(self._records)

    def clear(self) -> None:
        """Drop all records (test utility)."""
        self._records.clear()
