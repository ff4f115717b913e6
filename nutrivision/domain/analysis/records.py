"""
Persisted analysis records.

A record is keyed by (user_id, image_address). It is written first as a
provisional record right after classification, then completed in place
once nutrients are resolved.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from nutrivision.domain.analysis.health import HealthLabel
from nutrivision.domain.nutrition.models import NutrientRecord


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnalysisPatch(BaseModel):
    """
    Partial record used by upsert.

    Only fields explicitly set are merged, so a patch carrying
    `nutrient_detail` leaves an earlier `health_label` untouched unless it
    sets one too.

    Example:
        >>> patch = AnalysisPatch(health_label=HealthLabel.UNHEALTHY)
        >>> patch.set_fields()
        {'health_label': <HealthLabel.UNHEALTHY: 'Unhealthy'>}
    """

    model_config = ConfigDict(frozen=True)

    image_address: Optional[str] = None
    item_name: Optional[str] = None
    health_label: Optional[HealthLabel] = None
    nutrient_detail: Optional[NutrientRecord] = None

    def set_fields(self) -> dict[str, Any]:
        """Explicitly set fields, with model values kept as objects."""
        return {name: getattr(self, name) for name in sorted(self.model_fields_set)}


class AnalysisRecord(BaseModel):
    """
    One analysed image for one user.

    Example:
        >>> record = AnalysisRecord(
        ...     user_id="user_123",
        ...     image_address="https://cdn.example.com/user_123/a.jpg",
        ...     health_label=HealthLabel.HEALTHY,
        ... )
        >>> assert record.is_provisional
    """

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    image_address: str = Field(..., min_length=1)
    created_date: date = Field(default_factory=lambda: _utcnow().date())
    item_name: Optional[str] = None
    health_label: Optional[HealthLabel] = None
    nutrient_detail: Optional[NutrientRecord] = None
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("created_date", mode="before")
    @classmethod
    def truncate_to_day(cls, v: Any) -> Any:
        if isinstance(v, datetime):
            return v.date()
        return v

    @property
    def key(self) -> tuple[str, str]:
        return (self.user_id, self.image_address)

    @property
    def is_provisional(self) -> bool:
        return self.nutrient_detail is None

    @classmethod
    def from_patch(
        cls,
        user_id: str,
        image_address: str,
        patch: AnalysisPatch,
        today: Optional[date] = None,
    ) -> AnalysisRecord:
        fields = patch.set_fields()
        fields.pop("image_address", None)
        return cls(
            user_id=user_id,
            image_address=image_address,
            created_date=today or _utcnow().date(),
            **fields,
        )

    def merge(self, patch: AnalysisPatch) -> AnalysisRecord:
        """Field-level overwrite with the patch's set fields."""
        update = patch.set_fields()
        update.pop("image_address", None)
        update["updated_at"] = _utcnow()
        return self.model_copy(update=update)

    def to_document(self) -> dict[str, Any]:
        """Plain dict for storage and JSON responses."""
        return self.model_dump(mode="json")
