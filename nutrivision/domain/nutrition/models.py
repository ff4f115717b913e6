"""
Nutrition domain models.

A NutrientRecord is built from exactly one nutrition-database search hit.
Fields the source food does not report carry the "N/A" sentinel instead
of a number, so "unknown" never gets confused with a genuine zero.
"""

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

NOT_AVAILABLE = "N/A"

NutrientValue = Union[float, Literal["N/A"]]

# Record field -> exact nutrientName in FoodData Central responses
CANONICAL_NUTRIENT_NAMES: dict[str, str] = {
    "calories": "Energy",
    "total_fat": "Total lipid (fat)",
    "saturated_fat": "Fatty acids, total saturated",
    "cholesterol": "Cholesterol",
    "sodium": "Sodium, Na",
    "carbohydrates": "Carbohydrate, by difference",
    "fiber": "Fiber, total dietary",
    "sugar": "Sugars, total including NLEA",
    "protein": "Protein",
}

DEFAULT_SERVING_SIZE = "100g"


class NutrientRecord(BaseModel):
    """
    Nutrient values for one resolved food.

    Example:
        >>> record = NutrientRecord(
        ...     name="Burrito, bean",
        ...     calories=206.0,
        ...     total_fat=6.1,
        ...     fiber="N/A",
        ... )
        >>> record.numeric("calories")
        206.0
        >>> record.numeric("fiber") is None
        True
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Description of the matched food")
    serving_size: str = Field(DEFAULT_SERVING_SIZE, description="e.g. '100g', '240g'")
    calories: NutrientValue = NOT_AVAILABLE
    total_fat: NutrientValue = NOT_AVAILABLE
    saturated_fat: NutrientValue = NOT_AVAILABLE
    cholesterol: NutrientValue = NOT_AVAILABLE
    sodium: NutrientValue = NOT_AVAILABLE
    carbohydrates: NutrientValue = NOT_AVAILABLE
    fiber: NutrientValue = NOT_AVAILABLE
    sugar: NutrientValue = NOT_AVAILABLE
    protein: NutrientValue = NOT_AVAILABLE

    def numeric(self, field: str) -> Optional[float]:
        """Value of a nutrient field, or None when it holds the sentinel."""
        if field not in CANONICAL_NUTRIENT_NAMES:
            raise KeyError(f"Unknown nutrient field: {field}")
        value = getattr(self, field)
        if value == NOT_AVAILABLE:
            return None
        return float(value)

    def available_fields(self) -> list[str]:
        return [f for f in CANONICAL_NUTRIENT_NAMES if self.numeric(f) is not None]
