"""
USDA domain models.

These models represent FoodData Central search responses
mapped to our domain.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class USDADataType(str, Enum):
    """USDA food database types."""

    BRANDED = "Branded"
    SR_LEGACY = "SR Legacy"
    SURVEY = "Survey (FNDDS)"
    FOUNDATION = "Foundation"


DEFAULT_DATA_TYPES: tuple[str, ...] = (
    USDADataType.SURVEY.value,
    USDADataType.FOUNDATION.value,
    USDADataType.SR_LEGACY.value,
)


class USDANutrient(BaseModel):
    """Single nutrient from a search hit.

    Example:
        >>> nutrient = USDANutrient(name="Energy", amount=150.0, unit="KCAL")
        >>> assert nutrient.amount == 150.0
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="nutrientName as returned by USDA")
    amount: float = Field(..., description="Amount per 100g")
    unit: str = Field("", description="Unit of measurement")
    number: str = Field("", description="USDA nutrient number")


class USDAFoodItem(BaseModel):
    """Food item from a search response.

    `data_type` is kept as a plain string since FoodData Central
    occasionally adds dataset names.

    Example:
        >>> food = USDAFoodItem(
        ...     fdc_id="2709224",
        ...     description="Burrito, bean",
        ...     data_type="Survey (FNDDS)",
        ... )
        >>> assert food.serving_size is None
    """

    model_config = ConfigDict(frozen=True)

    fdc_id: str = Field(..., description="FoodData Central ID")
    description: str = Field(..., description="Food description")
    data_type: Optional[str] = Field(None, description="Dataset the food comes from")
    serving_size: Optional[float] = Field(None, ge=0, description="Serving size amount")
    serving_size_unit: Optional[str] = Field(None, description="Serving size unit")
    nutrients: list[USDANutrient] = Field(default_factory=list, description="Nutrient list")


class USDASearchResult(BaseModel):
    """foods/search response, in the order USDA returned the foods.

    Example:
        >>> result = USDASearchResult(total_hits=0, foods=[])
        >>> assert result.is_empty()
    """

    model_config = ConfigDict(frozen=True)

    total_hits: int = Field(0, ge=0, description="Total results")
    current_page: int = Field(1, ge=0, description="Current page")
    total_pages: int = Field(0, ge=0, description="Total pages")
    foods: list[USDAFoodItem] = Field(default_factory=list, description="Food items")

    def is_empty(self) -> bool:
        return not self.foods
