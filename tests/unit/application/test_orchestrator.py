"""
Unit tests for PipelineOrchestrator.

Real in-memory stores, AsyncMock classifier and nutrition search.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from PIL import Image

from nutrivision.application.nutrition.resolver import NutrientResolver
from nutrivision.application.pipeline.orchestrator import PipelineOrchestrator
from nutrivision.domain.analysis.health import HealthLabel
from nutrivision.domain.analysis.outcome import (
    Completed,
    Failed,
    NoConfidentDetection,
    PipelineState,
)
from nutrivision.domain.nutrition.usda_mapper import USDAMapper
from nutrivision.domain.nutrition.usda_models import USDASearchResult
from nutrivision.domain.recognition.candidates import (
    ClassificationCandidate,
    ThresholdAdmission,
)
from nutrivision.domain.shared.errors import (
    ClassifierError,
    ErrorKind,
    NutrientResolutionError,
    StoreError,
)
from nutrivision.infrastructure.persistence.in_memory_record_store import (
    InMemoryAnalysisRecordStore,
)
from nutrivision.infrastructure.storage.in_memory_image_store import InMemoryImageStore
from nutrivision.metrics.core import registry
from nutrivision.metrics.pipeline import OUTCOMES_TOTAL, TRANSITIONS_TOTAL


class TestCompletedFlow:
    @pytest.mark.asyncio
    async def test_complete_analysis(
        self,
        orchestrator: PipelineOrchestrator,
        classifier: AsyncMock,
        record_store: InMemoryAnalysisRecordStore,
        image_store: InMemoryImageStore,
        jpeg_bytes: bytes,
    ) -> None:
        outcome = await orchestrator.analyze("user_1", jpeg_bytes, "lunch.jpg")

        assert isinstance(outcome, Completed)
        record = outcome.record
        assert record.user_id == "user_1"
        assert record.item_name == "burrito"
        assert record.nutrient_detail.name == "Burrito, bean, fast food"
        assert record.nutrient_detail.serving_size == "198g"
        # 206 kcal, 6.1 fat, 4.5 fiber, 1.8 sugar
        assert record.health_label == HealthLabel.HEALTHY
        assert [c.label for c in outcome.candidates.candidates] == [
            "burrito",
            "nachos",
            "tacos",
        ]

        assert len(record_store) == 1
        assert await record_store.get("user_1", record.image_address) == record
        assert image_store.get(record.image_address) == jpeg_bytes
        classifier.classify.assert_awaited_once_with(jpeg_bytes, "image/jpeg")

    @pytest.mark.asyncio
    async def test_state_history(
        self, orchestrator: PipelineOrchestrator, jpeg_bytes: bytes
    ) -> None:
        await orchestrator.analyze("user_1", jpeg_bytes, "lunch.jpg")

        run = orchestrator.last_run("user_1")
        assert run is not None
        assert run.history == [
            PipelineState.IDLE,
            PipelineState.UPLOADING,
            PipelineState.CLASSIFYING,
            PipelineState.CANDIDATES_READY,
            PipelineState.RESOLVING,
            PipelineState.COMPLETED,
        ]

    @pytest.mark.asyncio
    async def test_metrics_recorded(
        self, orchestrator: PipelineOrchestrator, jpeg_bytes: bytes
    ) -> None:
        await orchestrator.analyze("user_1", jpeg_bytes, "lunch.jpg")

        assert registry.counter_value(OUTCOMES_TOTAL, outcome="completed") == 1
        assert registry.counter_value(TRANSITIONS_TOTAL, state="Resolving") == 1
        stages = {
            h["tags"]["stage"]
            for h in registry.snapshot()["histograms"]
        }
        assert stages == {"upload", "classify", "resolve", "persist"}

    @pytest.mark.asyncio
    async def test_reanalysis_of_same_address_upserts_one_row(
        self,
        orchestrator: PipelineOrchestrator,
        image_store: InMemoryImageStore,
        record_store: InMemoryAnalysisRecordStore,
        jpeg_bytes: bytes,
    ) -> None:
        image_store.store = AsyncMock(return_value="https://img.test/user_1/fixed.jpg")

        await orchestrator.analyze("user_1", jpeg_bytes, "a.jpg")
        await orchestrator.analyze("user_1", jpeg_bytes, "a.jpg")

        assert len(record_store) == 1


class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "data, content_type",
        [
            (b"", None),
            (b"definitely not an image", None),
            (b"definitely not an image", "image/png"),
        ],
    )
    async def test_invalid_input_makes_no_calls(
        self,
        orchestrator: PipelineOrchestrator,
        classifier: AsyncMock,
        search_client: AsyncMock,
        image_store: InMemoryImageStore,
        record_store: InMemoryAnalysisRecordStore,
        data: bytes,
        content_type: str,
    ) -> None:
        outcome = await orchestrator.analyze(
            "user_1", data, "x.bin", content_type=content_type
        )

        assert outcome == Failed(kind=ErrorKind.VALIDATION, message=outcome.message)
        assert len(image_store) == 0
        assert len(record_store) == 0
        classifier.classify.assert_not_called()
        search_client.search_foods.assert_not_called()

    @pytest.mark.asyncio
    async def test_declared_non_image_rejected(
        self,
        orchestrator: PipelineOrchestrator,
        classifier: AsyncMock,
        jpeg_bytes: bytes,
    ) -> None:
        outcome = await orchestrator.analyze(
            "user_1", jpeg_bytes, "x.txt", content_type="text/plain"
        )

        assert isinstance(outcome, Failed)
        assert outcome.kind is ErrorKind.VALIDATION
        classifier.classify.assert_not_called()

    @pytest.mark.asyncio
    async def test_decompression_bomb_is_validation_failure(
        self,
        orchestrator: PipelineOrchestrator,
        classifier: AsyncMock,
        image_store: InMemoryImageStore,
        png_bytes: bytes,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 16)

        outcome = await orchestrator.analyze(
            "user_1", png_bytes, "huge.png", content_type="image/png"
        )

        assert outcome == Failed(
            kind=ErrorKind.VALIDATION, message="Image dimensions too large"
        )
        assert len(image_store) == 0
        classifier.classify.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_user_rejected(
        self, orchestrator: PipelineOrchestrator, jpeg_bytes: bytes
    ) -> None:
        outcome = await orchestrator.analyze("", jpeg_bytes, "a.jpg")

        assert isinstance(outcome, Failed)
        assert outcome.kind is ErrorKind.VALIDATION


class TestNoConfidentDetection:
    @pytest.mark.asyncio
    async def test_threshold_rule_nothing_admitted(
        self,
        image_store: InMemoryImageStore,
        classifier: AsyncMock,
        resolver: NutrientResolver,
        search_client: AsyncMock,
        record_store: InMemoryAnalysisRecordStore,
        jpeg_bytes: bytes,
    ) -> None:
        orchestrator = PipelineOrchestrator(
            image_store,
            classifier,
            resolver,
            record_store,
            admission_rule=ThresholdAdmission(threshold=0.95),
        )

        outcome = await orchestrator.analyze("user_1", jpeg_bytes, "blurry.jpg")

        assert isinstance(outcome, NoConfidentDetection)
        assert outcome.received == 3
        assert outcome.candidates.is_empty()
        assert len(record_store) == 0
        search_client.search_foods.assert_not_called()
        assert orchestrator.last_run("user_1").state == PipelineState.COMPLETED
        assert registry.counter_value(OUTCOMES_TOTAL, outcome="no_confident_detection") == 1

    @pytest.mark.asyncio
    async def test_classifier_returned_nothing(
        self,
        orchestrator: PipelineOrchestrator,
        classifier: AsyncMock,
        record_store: InMemoryAnalysisRecordStore,
        jpeg_bytes: bytes,
    ) -> None:
        classifier.classify.return_value = []

        outcome = await orchestrator.analyze("user_1", jpeg_bytes, "empty.jpg")

        assert isinstance(outcome, NoConfidentDetection)
        assert outcome.received == 0
        assert len(record_store) == 0


class TestFailures:
    @pytest.mark.asyncio
    async def test_resolution_failure_keeps_provisional_record(
        self,
        orchestrator: PipelineOrchestrator,
        classifier: AsyncMock,
        search_client: AsyncMock,
        record_store: InMemoryAnalysisRecordStore,
        jpeg_bytes: bytes,
    ) -> None:
        classifier.classify.return_value = [
            ClassificationCandidate(label="grilled chicken salad", score=0.88)
        ]
        search_client.search_foods.return_value = USDASearchResult(foods=[])

        outcome = await orchestrator.analyze("user_1", jpeg_bytes, "lunch.jpg")

        assert isinstance(outcome, Failed)
        assert outcome.kind is ErrorKind.NUTRIENT_NO_MATCH

        records = await record_store.list_by_user("user_1")
        assert len(records) == 1
        assert records[0].is_provisional
        assert records[0].item_name is None
        assert records[0].health_label == HealthLabel.HEALTHY

        run = orchestrator.last_run("user_1")
        assert run.state == PipelineState.ERRORED
        assert run.history[-2] == PipelineState.RESOLVING

    @pytest.mark.asyncio
    async def test_null_nutrient_names_still_complete(
        self,
        orchestrator: PipelineOrchestrator,
        search_client: AsyncMock,
        jpeg_bytes: bytes,
    ) -> None:
        search_client.search_foods.return_value = USDAMapper.parse_search_response(
            {
                "foods": [
                    {
                        "fdcId": 1,
                        "description": "Burrito",
                        "foodNutrients": [{"nutrientName": None, "value": 5}],
                    }
                ]
            }
        )

        outcome = await orchestrator.analyze("user_1", jpeg_bytes, "lunch.jpg")

        assert isinstance(outcome, Completed)
        assert outcome.record.nutrient_detail.calories == "N/A"
        assert outcome.record.health_label == HealthLabel.UNHEALTHY

    @pytest.mark.asyncio
    async def test_nutrient_transport_failure_ends_errored(
        self,
        orchestrator: PipelineOrchestrator,
        search_client: AsyncMock,
        jpeg_bytes: bytes,
    ) -> None:
        search_client.search_foods.side_effect = NutrientResolutionError.transport(
            "USDA API returned malformed foods"
        )

        outcome = await orchestrator.analyze("user_1", jpeg_bytes, "lunch.jpg")

        assert isinstance(outcome, Failed)
        assert outcome.kind is ErrorKind.NUTRIENT_TRANSPORT
        assert orchestrator.last_run("user_1").state == PipelineState.ERRORED

    @pytest.mark.asyncio
    async def test_classifier_rejected(
        self,
        orchestrator: PipelineOrchestrator,
        classifier: AsyncMock,
        record_store: InMemoryAnalysisRecordStore,
        jpeg_bytes: bytes,
    ) -> None:
        classifier.classify.side_effect = ClassifierError.rejected("loading", status=503)

        outcome = await orchestrator.analyze("user_1", jpeg_bytes, "lunch.jpg")

        assert outcome == Failed(kind=ErrorKind.CLASSIFIER_REJECTED, message="loading")
        assert len(record_store) == 0
        assert registry.counter_value(
            OUTCOMES_TOTAL, outcome="failed", kind="CLASSIFIER_REJECTED"
        ) == 1

    @pytest.mark.asyncio
    async def test_classifier_timeout_is_transport(
        self,
        image_store: InMemoryImageStore,
        classifier: AsyncMock,
        resolver: NutrientResolver,
        record_store: InMemoryAnalysisRecordStore,
        jpeg_bytes: bytes,
    ) -> None:
        async def slow_classify(data: bytes, content_type: str) -> list:
            await asyncio.sleep(5)
            return []

        classifier.classify.side_effect = slow_classify
        orchestrator = PipelineOrchestrator(
            image_store, classifier, resolver, record_store, call_timeout_seconds=0.05
        )

        outcome = await orchestrator.analyze("user_1", jpeg_bytes, "lunch.jpg")

        assert isinstance(outcome, Failed)
        assert outcome.kind is ErrorKind.CLASSIFIER_TRANSPORT
        assert "timed out" in outcome.message

    @pytest.mark.asyncio
    async def test_upload_failure_stops_pipeline(
        self,
        orchestrator: PipelineOrchestrator,
        image_store: InMemoryImageStore,
        classifier: AsyncMock,
        jpeg_bytes: bytes,
    ) -> None:
        image_store.store = AsyncMock(side_effect=StoreError.transport("bucket down"))

        outcome = await orchestrator.analyze("user_1", jpeg_bytes, "lunch.jpg")

        assert isinstance(outcome, Failed)
        assert outcome.kind is ErrorKind.STORE_TRANSPORT
        classifier.classify.assert_not_called()


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_resubmission_supersedes_in_flight_run(
        self,
        orchestrator: PipelineOrchestrator,
        classifier: AsyncMock,
        burrito_candidates: list[ClassificationCandidate],
        record_store: InMemoryAnalysisRecordStore,
        jpeg_bytes: bytes,
    ) -> None:
        entered = asyncio.Event()
        release = asyncio.Event()
        calls = 0

        async def classify(data: bytes, content_type: str) -> list:
            nonlocal calls
            calls += 1
            if calls == 1:
                entered.set()
                await release.wait()
            return burrito_candidates

        classifier.classify.side_effect = classify

        first_task = asyncio.create_task(
            orchestrator.analyze("user_1", jpeg_bytes, "first.jpg")
        )
        await entered.wait()
        second = await orchestrator.analyze("user_1", jpeg_bytes, "second.jpg")
        release.set()
        first = await first_task

        assert isinstance(second, Completed)
        assert first == Failed(kind=ErrorKind.SUPERSEDED, message=first.message)

        # The superseded run never wrote its provisional record
        records = await record_store.list_by_user("user_1")
        assert [r.image_address for r in records] == [second.record.image_address]
        assert orchestrator.last_run("user_1").state == PipelineState.COMPLETED

    @pytest.mark.asyncio
    async def test_distinct_sessions_do_not_supersede(
        self,
        orchestrator: PipelineOrchestrator,
        record_store: InMemoryAnalysisRecordStore,
        jpeg_bytes: bytes,
    ) -> None:
        first, second = await asyncio.gather(
            orchestrator.analyze("user_1", jpeg_bytes, "a.jpg", session_id="phone"),
            orchestrator.analyze("user_1", jpeg_bytes, "b.jpg", session_id="tablet"),
        )

        assert isinstance(first, Completed)
        assert isinstance(second, Completed)
        assert len(await record_store.list_by_user("user_1")) == 2

    @pytest.mark.asyncio
    async def test_concurrent_users_never_cross_write(
        self,
        orchestrator: PipelineOrchestrator,
        record_store: InMemoryAnalysisRecordStore,
        jpeg_bytes: bytes,
    ) -> None:
        outcomes = await asyncio.gather(
            *(orchestrator.analyze(f"user_{i}", jpeg_bytes, "a.jpg") for i in range(5))
        )

        assert all(isinstance(o, Completed) for o in outcomes)
        for i, outcome in enumerate(outcomes):
            records = await record_store.list_by_user(f"user_{i}")
            assert len(records) == 1
            assert records[0].user_id == f"user_{i}"
            assert records[0].image_address.startswith(f"https://img.test/user_{i}/")
            assert outcome.record == records[0]

    @pytest.mark.asyncio
    async def test_session_bookkeeping_stays_bounded(
        self,
        image_store: InMemoryImageStore,
        classifier: AsyncMock,
        resolver: NutrientResolver,
        record_store: InMemoryAnalysisRecordStore,
        jpeg_bytes: bytes,
    ) -> None:
        orchestrator = PipelineOrchestrator(
            image_store, classifier, resolver, record_store, max_tracked_sessions=10
        )

        for i in range(50):
            await orchestrator.analyze(
                "user_1", jpeg_bytes, "a.jpg", session_id=f"session_{i}"
            )

        assert orchestrator._generations == {}
        assert len(orchestrator._last_runs) == 10
        assert orchestrator.last_run("session_0") is None
        assert orchestrator.last_run("session_49").state == PipelineState.COMPLETED

    @pytest.mark.asyncio
    async def test_rerun_after_finished_run_is_current(
        self,
        orchestrator: PipelineOrchestrator,
        jpeg_bytes: bytes,
    ) -> None:
        first = await orchestrator.analyze("user_1", jpeg_bytes, "a.jpg")
        second = await orchestrator.analyze("user_1", jpeg_bytes, "b.jpg")

        assert isinstance(first, Completed)
        assert isinstance(second, Completed)
        assert orchestrator.last_run("user_1").generation > 1
        assert orchestrator._generations == {}

    def test_tracked_sessions_must_be_positive(
        self,
        image_store: InMemoryImageStore,
        classifier: AsyncMock,
        resolver: NutrientResolver,
        record_store: InMemoryAnalysisRecordStore,
    ) -> None:
        with pytest.raises(ValueError, match="max_tracked_sessions"):
            PipelineOrchestrator(
                image_store, classifier, resolver, record_store, max_tracked_sessions=0
            )
