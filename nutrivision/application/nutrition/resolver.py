"""
Nutrient Resolver.

Turns a normalized search term into a NutrientRecord using one
nutrition-database search.
"""

from typing import Optional, Sequence

import structlog

from nutrivision.domain.analysis.ports import IFoodSearchClient
from nutrivision.domain.nutrition.models import NutrientRecord
from nutrivision.domain.nutrition.usda_mapper import USDAMapper
from nutrivision.domain.nutrition.usda_models import (
    DEFAULT_DATA_TYPES,
    USDAFoodItem,
    USDASearchResult,
)
from nutrivision.domain.shared.errors import NutrientResolutionError
from nutrivision.metrics.pipeline import record_resolver_selection

logger = structlog.get_logger(__name__)

MIN_PAGE_SIZE = 20

SELECTION_SUBSTRING = "substring"
SELECTION_FALLBACK = "fallback"


def select_food(
    search_term: str, foods: Sequence[USDAFoodItem]
) -> tuple[Optional[USDAFoodItem], str]:
    """Pick the best food for a term.

    First food whose description contains the term (case-insensitive),
    else the first food returned. Returns (None, fallback) for no foods.

    Example:
        >>> foods = [
        ...     USDAFoodItem(fdc_id="1", description="Taco salad"),
        ...     USDAFoodItem(fdc_id="2", description="Enchilada"),
        ... ]
        >>> food, strategy = select_food("burrito", foods)
        >>> (food.description, strategy)
        ('Taco salad', 'fallback')
    """
    if not foods:
        return None, SELECTION_FALLBACK

    needle = search_term.lower()
    for food in foods:
        if needle in food.description.lower():
            return food, SELECTION_SUBSTRING
    # Availability over precision: a weak match beats no record
    return foods[0], SELECTION_FALLBACK


class NutrientResolver:
    """Resolves search terms to nutrient records.

    Flow:
    1. Search several dataset categories with a page of >= 20 foods
    2. Prefer a substring match, fall back to the first food
    3. Extract the nine canonical nutrients
    """

    def __init__(
        self,
        search_client: IFoodSearchClient,
        data_types: Sequence[str] = DEFAULT_DATA_TYPES,
        page_size: int = 25,
    ) -> None:
        if page_size < MIN_PAGE_SIZE:
            raise ValueError(f"page_size must be >= {MIN_PAGE_SIZE}, got {page_size}")
        if not data_types:
            raise ValueError("At least one data type is required")
        self.search_client = search_client
        self.data_types = tuple(data_types)
        self.page_size = page_size

    async def resolve(self, search_term: str) -> NutrientRecord:
        """Resolve a normalized term to one NutrientRecord.

        Raises:
            NutrientResolutionError: no_match when the search returns no
                foods (or the term is empty), transport when the database
                cannot be reached
        """
        term = search_term.strip()
        if not term:
            raise NutrientResolutionError.no_match("Empty search term")

        result: USDASearchResult = await self.search_client.search_foods(
            term, data_types=self.data_types, page_size=self.page_size
        )

        food, strategy = select_food(term, result.foods)
        if food is None:
            logger.info("No foods found", query=term)
            raise NutrientResolutionError.no_match(f"No foods found for '{term}'")

        record_resolver_selection(strategy)
        record = USDAMapper.to_nutrient_record(food)
        logger.info(
            "Resolved nutrient record",
            query=term,
            match=food.description,
            fdc_id=food.fdc_id,
            strategy=strategy,
            candidates=len(result.foods),
            available=record.available_fields(),
        )
        return record
