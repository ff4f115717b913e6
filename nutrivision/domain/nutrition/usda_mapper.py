"""
USDA data mapper.

Transforms FoodData Central responses to domain models.
"""

from typing import Any

from nutrivision.domain.nutrition.models import (
    CANONICAL_NUTRIENT_NAMES,
    DEFAULT_SERVING_SIZE,
    NOT_AVAILABLE,
    NutrientRecord,
    NutrientValue,
)
from nutrivision.domain.nutrition.usda_models import (
    USDAFoodItem,
    USDANutrient,
    USDASearchResult,
)


class USDAMapper:
    """Maps USDA API data to domain models."""

    @staticmethod
    def format_serving_size(food_item: USDAFoodItem) -> str:
        """Render serving size as '<amount><unit>', or '100g' when absent.

        Example:
            >>> food = USDAFoodItem(
            ...     fdc_id="1", description="Milk", serving_size=240.0
            ... )
            >>> USDAMapper.format_serving_size(food)
            '240g'
        """
        if food_item.serving_size is None:
            return DEFAULT_SERVING_SIZE

        amount = food_item.serving_size
        text = str(int(amount)) if float(amount).is_integer() else f"{amount:g}"
        unit = (food_item.serving_size_unit or "g").strip() or "g"
        return f"{text}{unit}"

    @staticmethod
    def extract_nutrient(nutrients: list[USDANutrient], canonical_name: str) -> NutrientValue:
        """Value of the first nutrient whose name matches exactly, else 'N/A'."""
        for nutrient in nutrients:
            if nutrient.name == canonical_name:
                return nutrient.amount
        return NOT_AVAILABLE

    @staticmethod
    def to_nutrient_record(food_item: USDAFoodItem) -> NutrientRecord:
        """Convert one USDA food item to a NutrientRecord.

        Example:
            >>> food = USDAFoodItem(
            ...     fdc_id="123",
            ...     description="Apple, raw",
            ...     nutrients=[USDANutrient(name="Energy", amount=52.0, unit="KCAL")],
            ... )
            >>> record = USDAMapper.to_nutrient_record(food)
            >>> record.calories
            52.0
            >>> record.protein
            'N/A'
        """
        values = {
            field: USDAMapper.extract_nutrient(food_item.nutrients, name)
            for field, name in CANONICAL_NUTRIENT_NAMES.items()
        }
        return NutrientRecord(
            name=food_item.description,
            serving_size=USDAMapper.format_serving_size(food_item),
            **values,
        )

    @staticmethod
    def parse_search_response(response_data: dict[str, Any]) -> USDASearchResult:
        """Parse a foods/search response body.

        Nutrients without a numeric value are skipped so they surface as
        'N/A' rather than a fabricated zero. Null strings and counters
        fall back to their defaults.

        Raises:
            pydantic.ValidationError, AttributeError, TypeError: on bodies
                whose structure is not a foods/search response

        Example:
            >>> response = {
            ...     "totalHits": 1,
            ...     "foods": [
            ...         {
            ...             "fdcId": 123,
            ...             "description": "Apple, raw",
            ...             "dataType": "SR Legacy",
            ...             "foodNutrients": [
            ...                 {"nutrientName": "Energy", "value": 52.0, "unitName": "KCAL"}
            ...             ],
            ...         }
            ...     ],
            ... }
            >>> result = USDAMapper.parse_search_response(response)
            >>> assert len(result.foods) == 1
        """
        foods = []
        for food_data in response_data.get("foods") or []:
            nutrients = []
            for n in food_data.get("foodNutrients") or []:
                if not isinstance(n, dict):
                    continue
                value = n.get("value")
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    continue
                nutrients.append(
                    USDANutrient(
                        name=n.get("nutrientName") or "",
                        amount=float(value),
                        unit=n.get("unitName") or "",
                        number=str(n.get("nutrientNumber") or ""),
                    )
                )

            serving_size = food_data.get("servingSize")
            foods.append(
                USDAFoodItem(
                    fdc_id=str(food_data.get("fdcId") or ""),
                    description=food_data.get("description") or "",
                    data_type=food_data.get("dataType"),
                    serving_size=(
                        float(serving_size)
                        if isinstance(serving_size, (int, float)) and serving_size >= 0
                        else None
                    ),
                    serving_size_unit=food_data.get("servingSizeUnit"),
                    nutrients=nutrients,
                )
            )

        return USDASearchResult(
            total_hits=response_data.get("totalHits") or len(foods),
            current_page=response_data.get("currentPage") or 1,
            total_pages=response_data.get("totalPages") or 0,
            foods=foods,
        )
