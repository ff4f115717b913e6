"""
Ports (Interfaces) for pipeline collaborators.

The orchestrator only talks to these protocols. Adapters in
nutrivision.infrastructure implement them.
"""

from datetime import date
from typing import Optional, Protocol, Sequence, runtime_checkable

from nutrivision.domain.analysis.records import AnalysisPatch, AnalysisRecord
from nutrivision.domain.nutrition.usda_models import USDASearchResult
from nutrivision.domain.recognition.candidates import ClassificationCandidate


@runtime_checkable
class IImageStore(Protocol):
    """
    Port for durable image storage.

    Addresses returned are stable, publicly dereferenceable URLs.
    """

    async def store(
        self,
        user_id: str,
        filename: str,
        data: bytes,
        content_type: str,
    ) -> str:
        """
        Store an image under the user's namespace.

        Returns:
            Public address of the stored image

        Raises:
            StoreError: If the storage backend fails
        """
        ...


@runtime_checkable
class IClassifierClient(Protocol):
    """
    Port for a remote image classifier.

    Candidates are returned as received, in no guaranteed order.
    """

    async def classify(
        self, data: bytes, content_type: str = "application/octet-stream"
    ) -> list[ClassificationCandidate]:
        """
        Raises:
            ClassifierError: transport, rejected or malformed
        """
        ...


@runtime_checkable
class IFoodSearchClient(Protocol):
    """Port for a text search over a nutrition database."""

    async def search_foods(
        self,
        query: str,
        data_types: Sequence[str],
        page_size: int,
    ) -> USDASearchResult:
        """
        Raises:
            NutrientResolutionError: transport failures only. Zero hits is
                an empty result, not an error.
        """
        ...


@runtime_checkable
class IAnalysisRecordStore(Protocol):
    """Port for analysis record persistence keyed by (user_id, image_address)."""

    async def upsert(
        self, user_id: str, image_address: str, patch: AnalysisPatch
    ) -> AnalysisRecord:
        """
        Merge patch into the existing record or insert a new one.

        Returns:
            The record as stored after the merge

        Raises:
            StoreError: transport, or conflict when the patch changes identity
        """
        ...

    async def get(self, user_id: str, image_address: str) -> Optional[AnalysisRecord]:
        ...

    async def list_by_user(
        self, user_id: str, on_date: Optional[date] = None
    ) -> list[AnalysisRecord]:
        """User's records, newest first, optionally for a single day."""
        ...
