"""
Shared fixtures for nutrivision tests.
"""

import io
from typing import Any, Iterator
from unittest.mock import AsyncMock

import pytest
from PIL import Image

from nutrivision.application.nutrition.resolver import NutrientResolver
from nutrivision.application.pipeline.orchestrator import PipelineOrchestrator
from nutrivision.domain.nutrition.models import NutrientRecord
from nutrivision.domain.nutrition.usda_mapper import USDAMapper
from nutrivision.domain.nutrition.usda_models import USDASearchResult
from nutrivision.domain.recognition.candidates import ClassificationCandidate
from nutrivision.infrastructure.persistence.in_memory_record_store import (
    InMemoryAnalysisRecordStore,
)
from nutrivision.infrastructure.storage.in_memory_image_store import InMemoryImageStore
from nutrivision.metrics.pipeline import reset_all


def _encode(fmt: str) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), (200, 120, 40)).save(buffer, format=fmt)
    return buffer.getvalue()


# ═══════════════════════════════════════════════════════════
# IMAGES
# ═══════════════════════════════════════════════════════════


@pytest.fixture
def jpeg_bytes() -> bytes:
    """Tiny valid JPEG."""
    return _encode("JPEG")


@pytest.fixture
def png_bytes() -> bytes:
    """Tiny valid PNG."""
    return _encode("PNG")


# ═══════════════════════════════════════════════════════════
# DOMAIN MODEL FIXTURES
# ═══════════════════════════════════════════════════════════


@pytest.fixture
def burrito_candidates() -> list[ClassificationCandidate]:
    """Unsorted classifier output."""
    return [
        ClassificationCandidate(label="tacos", score=0.02),
        ClassificationCandidate(label="burrito", score=0.91),
        ClassificationCandidate(label="nachos", score=0.04),
    ]


@pytest.fixture
def usda_search_payload() -> dict[str, Any]:
    """foods/search body where the substring match is not the first food."""
    return {
        "totalHits": 2,
        "currentPage": 1,
        "totalPages": 1,
        "foods": [
            {
                "fdcId": 2709224,
                "description": "Taco salad",
                "dataType": "Survey (FNDDS)",
                "foodNutrients": [
                    {"nutrientName": "Energy", "value": 156, "unitName": "KCAL"},
                ],
            },
            {
                "fdcId": 2709201,
                "description": "Burrito, bean, fast food",
                "dataType": "Survey (FNDDS)",
                "servingSize": 198,
                "servingSizeUnit": "g",
                "foodNutrients": [
                    {"nutrientName": "Energy", "value": 206, "unitName": "KCAL"},
                    {"nutrientName": "Total lipid (fat)", "value": 6.1, "unitName": "G"},
                    {
                        "nutrientName": "Fatty acids, total saturated",
                        "value": 2.3,
                        "unitName": "G",
                    },
                    {"nutrientName": "Cholesterol", "value": 5, "unitName": "MG"},
                    {"nutrientName": "Sodium, Na", "value": 480, "unitName": "MG"},
                    {
                        "nutrientName": "Carbohydrate, by difference",
                        "value": 30.2,
                        "unitName": "G",
                    },
                    {"nutrientName": "Fiber, total dietary", "value": 4.5, "unitName": "G"},
                    {
                        "nutrientName": "Sugars, total including NLEA",
                        "value": 1.8,
                        "unitName": "G",
                    },
                    {"nutrientName": "Protein", "value": 7.9, "unitName": "G"},
                ],
            },
        ],
    }


@pytest.fixture
def usda_search_result(usda_search_payload: dict[str, Any]) -> USDASearchResult:
    return USDAMapper.parse_search_response(usda_search_payload)


@pytest.fixture
def healthy_record() -> NutrientRecord:
    return NutrientRecord(
        name="Lentil soup", calories=350, total_fat=8, fiber=4, sugar=6
    )


# ═══════════════════════════════════════════════════════════
# PIPELINE FIXTURES
# ═══════════════════════════════════════════════════════════


@pytest.fixture
def image_store() -> InMemoryImageStore:
    return InMemoryImageStore("https://img.test")


@pytest.fixture
def record_store() -> InMemoryAnalysisRecordStore:
    return InMemoryAnalysisRecordStore()


@pytest.fixture
def classifier(burrito_candidates: list[ClassificationCandidate]) -> AsyncMock:
    """Classifier double returning burrito candidates."""
    client = AsyncMock()
    client.classify = AsyncMock(return_value=burrito_candidates)
    return client


@pytest.fixture
def search_client(usda_search_result: USDASearchResult) -> AsyncMock:
    client = AsyncMock()
    client.search_foods = AsyncMock(return_value=usda_search_result)
    return client


@pytest.fixture
def resolver(search_client: AsyncMock) -> NutrientResolver:
    return NutrientResolver(search_client)


@pytest.fixture
def orchestrator(
    image_store: InMemoryImageStore,
    classifier: AsyncMock,
    resolver: NutrientResolver,
    record_store: InMemoryAnalysisRecordStore,
) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        image_store=image_store,
        classifier=classifier,
        resolver=resolver,
        record_store=record_store,
        call_timeout_seconds=2.0,
    )


@pytest.fixture(autouse=True)
def reset_metrics() -> Iterator[None]:
    """Isolate the process-wide metrics registry between tests."""
    reset_all()
    yield
    reset_all()
