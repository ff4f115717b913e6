"""
Analysis lifecycle and outcomes.

State machine:

    Idle -> Uploading -> Classifying -> CandidatesReady -> Resolving -> Completed
                                    +-> Completed (no confident detection)

Errored is reachable from every non-terminal state.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from nutrivision.domain.analysis.records import AnalysisRecord
from nutrivision.domain.recognition.candidates import RankedCandidateSet
from nutrivision.domain.shared.errors import ErrorKind, InvalidTransitionError


class PipelineState(str, Enum):
    IDLE = "Idle"
    UPLOADING = "Uploading"
    CLASSIFYING = "Classifying"
    CANDIDATES_READY = "CandidatesReady"
    RESOLVING = "Resolving"
    COMPLETED = "Completed"
    ERRORED = "Errored"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.COMPLETED, PipelineState.ERRORED)


ALLOWED_TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.IDLE: frozenset({PipelineState.UPLOADING, PipelineState.ERRORED}),
    PipelineState.UPLOADING: frozenset({PipelineState.CLASSIFYING, PipelineState.ERRORED}),
    PipelineState.CLASSIFYING: frozenset(
        {PipelineState.CANDIDATES_READY, PipelineState.COMPLETED, PipelineState.ERRORED}
    ),
    PipelineState.CANDIDATES_READY: frozenset(
        {PipelineState.RESOLVING, PipelineState.ERRORED}
    ),
    PipelineState.RESOLVING: frozenset({PipelineState.COMPLETED, PipelineState.ERRORED}),
    PipelineState.COMPLETED: frozenset(),
    PipelineState.ERRORED: frozenset(),
}


# ═══════════════════════════════════════════════════════════
# OUTCOMES
# ═══════════════════════════════════════════════════════════


@dataclass(frozen=True)
class NoConfidentDetection:
    """Classifier answered but nothing passed the admission rule."""

    image_address: str
    candidates: RankedCandidateSet

    @property
    def received(self) -> int:
        return self.candidates.received


@dataclass(frozen=True)
class Completed:
    record: AnalysisRecord
    candidates: Optional[RankedCandidateSet] = None


@dataclass(frozen=True)
class Failed:
    kind: ErrorKind
    message: str = ""


AnalysisOutcome = Union[NoConfidentDetection, Completed, Failed]


# ═══════════════════════════════════════════════════════════
# RUN
# ═══════════════════════════════════════════════════════════


@dataclass
class AnalysisRun:
    """
    Mutable bookkeeping for one `analyze` call.

    Example:
        >>> run = AnalysisRun(user_id="u1", session_id="u1")
        >>> run.advance(PipelineState.UPLOADING)
        >>> run.state
        <PipelineState.UPLOADING: 'Uploading'>
    """

    user_id: str
    session_id: str
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    generation: int = 0
    state: PipelineState = PipelineState.IDLE
    history: list[PipelineState] = field(default_factory=lambda: [PipelineState.IDLE])
    image_address: Optional[str] = None
    candidates: Optional[RankedCandidateSet] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def can_advance(self, target: PipelineState) -> bool:
        return target in ALLOWED_TRANSITIONS[self.state]

    def advance(self, target: PipelineState) -> None:
        if not self.can_advance(target):
            raise InvalidTransitionError(
                f"Cannot move from {self.state.value} to {target.value}"
            )
        self.state = target
        self.history.append(target)

    def fail(self, kind: ErrorKind, message: str) -> Failed:
        self.advance(PipelineState.ERRORED)
        self.error_kind = kind
        self.error_message = message
        return Failed(kind=kind, message=message)
