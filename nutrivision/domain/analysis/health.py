"""
Health classification strategies.

Two strategies answer different questions with different inputs:

- keyword: only the top candidate's raw label is known (right after
  classification). Healthy vocabulary wins over unhealthy vocabulary.
- threshold: a NutrientRecord is available. Any required value that is
  "N/A" yields Unhealthy, never Unknown.

The pipeline picks the strategy by stage. A later threshold verdict
overwrites an earlier keyword verdict on the same record.
"""

from enum import Enum
from typing import Protocol, Union, runtime_checkable

from nutrivision.domain.nutrition.models import NutrientRecord


class HealthLabel(str, Enum):
    HEALTHY = "Healthy"
    UNHEALTHY = "Unhealthy"
    UNKNOWN = "Unknown"


HEALTHY_TERMS: tuple[str, ...] = (
    "salad",
    "fruit",
    "vegetable",
    "fish",
    "chicken",
    "turkey",
    "quinoa",
    "yogurt",
    "eggs",
    "smoothie",
    "soup",
    "nuts",
)

UNHEALTHY_TERMS: tuple[str, ...] = (
    "pizza",
    "burger",
    "fries",
    "cake",
    "ice cream",
    "candy",
    "chips",
    "soda",
    "donut",
    "fried",
)


@runtime_checkable
class HealthStrategy(Protocol):
    name: str

    def classify(self, subject: Union[str, NutrientRecord]) -> HealthLabel:
        ...


class KeywordHealthStrategy:
    """
    Verdict from vocabulary matching on a raw classifier label.

    Example:
        >>> KeywordHealthStrategy().classify("pizza slice")
        <HealthLabel.UNHEALTHY: 'Unhealthy'>
        >>> KeywordHealthStrategy().classify("fried chicken")
        <HealthLabel.HEALTHY: 'Healthy'>
    """

    name = "keyword"

    def __init__(
        self,
        healthy_terms: tuple[str, ...] = HEALTHY_TERMS,
        unhealthy_terms: tuple[str, ...] = UNHEALTHY_TERMS,
    ) -> None:
        self.healthy_terms = tuple(t.lower() for t in healthy_terms)
        self.unhealthy_terms = tuple(t.lower() for t in unhealthy_terms)

    def classify(self, subject: Union[str, NutrientRecord]) -> HealthLabel:
        if not isinstance(subject, str):
            raise TypeError("Keyword strategy classifies raw labels only")

        label = subject.lower()
        if any(term in label for term in self.healthy_terms):
            return HealthLabel.HEALTHY
        if any(term in label for term in self.unhealthy_terms):
            return HealthLabel.UNHEALTHY
        return HealthLabel.UNKNOWN


class ThresholdHealthStrategy:
    """
    Verdict from nutrient limits.

    Healthy iff calories <= 400, total_fat <= 10, fiber >= 3 and
    sugar <= 10, with all four values numeric. Everything else,
    including any "N/A", is Unhealthy.

    Example:
        >>> record = NutrientRecord(
        ...     name="Lentil soup", calories=350, total_fat=8, fiber=4, sugar=6
        ... )
        >>> ThresholdHealthStrategy().classify(record)
        <HealthLabel.HEALTHY: 'Healthy'>
    """

    name = "threshold"

    def __init__(
        self,
        max_calories: float = 400.0,
        max_total_fat: float = 10.0,
        min_fiber: float = 3.0,
        max_sugar: float = 10.0,
    ) -> None:
        self.max_calories = max_calories
        self.max_total_fat = max_total_fat
        self.min_fiber = min_fiber
        self.max_sugar = max_sugar

    def classify(self, subject: Union[str, NutrientRecord]) -> HealthLabel:
        if not isinstance(subject, NutrientRecord):
            raise TypeError("Threshold strategy classifies nutrient records only")

        calories = subject.numeric("calories")
        total_fat = subject.numeric("total_fat")
        fiber = subject.numeric("fiber")
        sugar = subject.numeric("sugar")

        if calories is None or total_fat is None or fiber is None or sugar is None:
            return HealthLabel.UNHEALTHY

        if (
            calories <= self.max_calories
            and total_fat <= self.max_total_fat
            and fiber >= self.min_fiber
            and sugar <= self.max_sugar
        ):
            return HealthLabel.HEALTHY
        return HealthLabel.UNHEALTHY


_STRATEGIES = {
    KeywordHealthStrategy.name: KeywordHealthStrategy,
    ThresholdHealthStrategy.name: ThresholdHealthStrategy,
}


def get_health_strategy(name: str) -> HealthStrategy:
    """Build a strategy by name ('keyword' or 'threshold')."""
    try:
        return _STRATEGIES[name]()
    except KeyError:
        raise ValueError(
            f"Unknown health strategy '{name}'. Valid: {sorted(_STRATEGIES)}"
        ) from None
