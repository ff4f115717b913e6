"""Food photo analysis orchestrator.

Drives one submission through upload, classification, admission,
nutrient resolution and persistence, and owns the run's state machine.
"""

from __future__ import annotations

import asyncio
import itertools
from collections import OrderedDict
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from nutrivision.application.nutrition.resolver import NutrientResolver
from nutrivision.application.pipeline.validation import validate_submission
from nutrivision.domain.analysis.health import (
    HealthStrategy,
    KeywordHealthStrategy,
    ThresholdHealthStrategy,
)
from nutrivision.domain.analysis.outcome import (
    AnalysisOutcome,
    AnalysisRun,
    Completed,
    Failed,
    NoConfidentDetection,
    PipelineState,
)
from nutrivision.domain.analysis.ports import (
    IAnalysisRecordStore,
    IClassifierClient,
    IImageStore,
)
from nutrivision.domain.analysis.records import AnalysisPatch
from nutrivision.domain.recognition.candidates import AdmissionRule, TopKAdmission
from nutrivision.domain.recognition.normalizer import normalize_label
from nutrivision.domain.shared.errors import (
    ClassifierError,
    DomainError,
    InvalidTransitionError,
    NutrientResolutionError,
    StoreError,
    SupersededError,
    ValidationError,
)
from nutrivision.metrics.pipeline import record_outcome, record_transition, time_stage

logger = structlog.get_logger(__name__)

T = TypeVar("T")

MAX_TRACKED_SESSIONS = 1024


class PipelineOrchestrator:
    """
    Orchestrate the food photo analysis workflow.

    Flow:
    1. Validate the submission (no network call on failure)
    2. Store the image and obtain its address
    3. Classify, then apply the admission rule
    4. Upsert a provisional record (keyword health label)
    5. Resolve nutrients for the top candidate only
    6. Upsert the completed record (threshold health label)

    Every failure ends the run in Errored and returns Failed(kind). Nothing
    is retried here. A newer submission for the same session supersedes an
    in-flight run: the older run stops before its next side effect and
    returns Failed(SUPERSEDED).

    Example:
        >>> orchestrator = PipelineOrchestrator(
        ...     image_store, classifier, resolver, record_store
        ... )
        >>> outcome = await orchestrator.analyze("user_123", jpeg_bytes, "lunch.jpg")
        >>> isinstance(outcome, Completed)
        True
    """

    def __init__(
        self,
        image_store: IImageStore,
        classifier: IClassifierClient,
        resolver: NutrientResolver,
        record_store: IAnalysisRecordStore,
        admission_rule: Optional[AdmissionRule] = None,
        keyword_strategy: Optional[HealthStrategy] = None,
        threshold_strategy: Optional[HealthStrategy] = None,
        call_timeout_seconds: float = 30.0,
        max_tracked_sessions: int = MAX_TRACKED_SESSIONS,
    ):
        if call_timeout_seconds <= 0:
            raise ValueError("call_timeout_seconds must be positive")
        if max_tracked_sessions < 1:
            raise ValueError("max_tracked_sessions must be at least 1")
        self._image_store = image_store
        self._classifier = classifier
        self._resolver = resolver
        self._records = record_store
        self._admission = admission_rule or TopKAdmission(k=3)
        self._keyword = keyword_strategy or KeywordHealthStrategy()
        self._threshold = threshold_strategy or ThresholdHealthStrategy()
        self._call_timeout = call_timeout_seconds
        self._max_tracked = max_tracked_sessions
        # Generations are unique across sessions, so a dropped entry is never reused
        self._generation_counter = itertools.count(1)
        # Only sessions with a run in flight
        self._generations: dict[str, int] = {}
        self._last_runs: OrderedDict[str, AnalysisRun] = OrderedDict()

    @property
    def admission_rule(self) -> AdmissionRule:
        return self._admission

    def last_run(self, session_id: str) -> Optional[AnalysisRun]:
        """Most recent registered run for a session.

        Only the most recently active sessions are kept.
        """
        return self._last_runs.get(session_id)

    async def analyze(
        self,
        user_id: str,
        image_bytes: bytes,
        filename: str,
        *,
        content_type: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> AnalysisOutcome:
        """
        Analyze one food image.

        Args:
            user_id: Owner of the image and of the resulting record
            image_bytes: Encoded image
            filename: Original filename (used to name the stored object)
            content_type: Caller-declared MIME type, if any
            session_id: Supersession scope, defaults to user_id

        Returns:
            NoConfidentDetection, Completed(record) or Failed(kind)
        """
        session = session_id or user_id
        run = AnalysisRun(user_id=user_id, session_id=session)

        with structlog.contextvars.bound_contextvars(
            run_id=run.run_id, user_id=user_id, session_id=session
        ):
            try:
                mime = validate_submission(user_id, image_bytes, content_type)
            except ValidationError as exc:
                # Invalid resubmissions never cancel a valid in-flight run
                return self._fail(run, exc)

            self._register(run)
            logger.info(
                "Analysis started",
                filename=filename,
                size=len(image_bytes),
                content_type=mime,
                rule=self._admission.name,
            )

            try:
                return await self._execute(run, image_bytes, filename, mime)
            except InvalidTransitionError:
                raise
            except DomainError as exc:
                return self._fail(run, exc)
            finally:
                self._release(run)

    # ═══════════════════════════════════════════════════════════
    # STAGES
    # ═══════════════════════════════════════════════════════════

    async def _execute(
        self, run: AnalysisRun, image_bytes: bytes, filename: str, mime: str
    ) -> AnalysisOutcome:
        user_id = run.user_id

        # 1. Upload
        self._advance(run, PipelineState.UPLOADING)
        with time_stage("upload"):
            address = await self._guarded(
                lambda: self._image_store.store(user_id, filename, image_bytes, mime),
                StoreError.transport,
                "Image upload",
            )
        run.image_address = address
        self._ensure_current(run)

        # 2. Classify + admit
        self._advance(run, PipelineState.CLASSIFYING)
        with time_stage("classify"):
            raw_candidates = await self._guarded(
                lambda: self._classifier.classify(image_bytes, mime),
                ClassifierError.transport,
                "Classification",
            )
        self._ensure_current(run)

        ranked = self._admission.admit(raw_candidates)
        run.candidates = ranked
        logger.info(
            "Candidates admitted",
            rule=ranked.rule,
            received=ranked.received,
            admitted=ranked.labels(),
        )

        if ranked.is_empty():
            self._advance(run, PipelineState.COMPLETED)
            record_outcome("no_confident_detection")
            logger.info("No confident detection", image_address=address)
            return NoConfidentDetection(image_address=address, candidates=ranked)

        self._advance(run, PipelineState.CANDIDATES_READY)
        top = ranked.candidates[0]

        # 3. Provisional record, durable even if resolution fails
        provisional = AnalysisPatch(
            image_address=address,
            health_label=self._keyword.classify(top.label),
        )
        with time_stage("persist"):
            await self._guarded(
                lambda: self._records.upsert(user_id, address, provisional),
                StoreError.transport,
                "Provisional upsert",
            )
        self._ensure_current(run)

        # 4. Resolve the top candidate only
        self._advance(run, PipelineState.RESOLVING)
        search_term = normalize_label(top.label)
        with time_stage("resolve"):
            nutrients = await self._guarded(
                lambda: self._resolver.resolve(search_term),
                NutrientResolutionError.transport,
                "Nutrient resolution",
            )
        self._ensure_current(run)

        # 5. Completion
        completion = AnalysisPatch(
            item_name=search_term,
            nutrient_detail=nutrients,
            health_label=self._threshold.classify(nutrients),
        )
        with time_stage("persist"):
            record = await self._guarded(
                lambda: self._records.upsert(user_id, address, completion),
                StoreError.transport,
                "Completion upsert",
            )
        self._ensure_current(run)

        self._advance(run, PipelineState.COMPLETED)
        record_outcome("completed")
        logger.info(
            "Analysis completed",
            image_address=address,
            item_name=record.item_name,
            health_label=record.health_label.value if record.health_label else None,
        )
        return Completed(record=record, candidates=ranked)

    # ═══════════════════════════════════════════════════════════
    # HELPERS
    # ═══════════════════════════════════════════════════════════

    async def _guarded(
        self,
        call: Callable[[], Awaitable[T]],
        on_timeout: Callable[[str], DomainError],
        what: str,
    ) -> T:
        """Await an external call with the configured timeout.

        Expiry is reported as the component's transport failure.
        """
        try:
            return await asyncio.wait_for(call(), timeout=self._call_timeout)
        except asyncio.TimeoutError as exc:
            raise on_timeout(f"{what} timed out after {self._call_timeout}s") from exc

    def _register(self, run: AnalysisRun) -> None:
        run.generation = next(self._generation_counter)
        self._generations[run.session_id] = run.generation
        self._last_runs[run.session_id] = run
        self._last_runs.move_to_end(run.session_id)
        while len(self._last_runs) > self._max_tracked:
            self._last_runs.popitem(last=False)

    def _release(self, run: AnalysisRun) -> None:
        if self._generations.get(run.session_id) == run.generation:
            del self._generations[run.session_id]

    def _ensure_current(self, run: AnalysisRun) -> None:
        if self._generations.get(run.session_id) != run.generation:
            raise SupersededError(
                f"Run {run.run_id} superseded by a newer submission"
            )

    def _advance(self, run: AnalysisRun, target: PipelineState) -> None:
        previous = run.state
        run.advance(target)
        record_transition(target.value)
        logger.debug("State transition", from_state=previous.value, to_state=target.value)

    def _fail(self, run: AnalysisRun, exc: DomainError) -> Failed:
        failed = run.fail(exc.kind, exc.message)
        record_transition(PipelineState.ERRORED.value)
        record_outcome("failed", kind=exc.kind.value)
        logger.warning(
            "Analysis failed",
            kind=exc.kind.value,
            error=exc.message,
            state=run.history[-2].value,
        )
        return failed
