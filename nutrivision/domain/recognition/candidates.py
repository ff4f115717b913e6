"""
Classification candidates and admission rules.

The classifier returns (label, score) pairs in no particular order.
An admission rule sorts them by score and keeps only the ones
trustworthy enough to act on.
"""

from __future__ import annotations

from typing import Iterable, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ClassificationCandidate(BaseModel):
    """
    Single (label, confidence) pair returned by the image classifier.

    Example:
        >>> candidate = ClassificationCandidate(label="burrito", score=0.97)
        >>> assert candidate.score > 0.9
    """

    model_config = ConfigDict(frozen=True)

    label: str = Field(..., min_length=1, description="Raw classifier label")
    score: float = Field(..., ge=0.0, le=1.0, description="Confidence (0-1)")

    @field_validator("label")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Candidate label cannot be blank")
        return v


class RankedCandidateSet(BaseModel):
    """
    Candidates admitted by a rule, highest score first.

    `received` counts what the classifier returned before admission, so an
    empty set can be told apart from "classifier returned nothing".

    Example:
        >>> ranked = TopKAdmission(k=2).admit([
        ...     ClassificationCandidate(label="a", score=0.2),
        ...     ClassificationCandidate(label="b", score=0.9),
        ... ])
        >>> assert ranked.top().label == "b"
    """

    model_config = ConfigDict(frozen=True)

    candidates: tuple[ClassificationCandidate, ...] = Field(default_factory=tuple)
    rule: str = Field(..., description="Name of the admission rule that produced the set")
    received: int = Field(0, ge=0, description="Candidates returned before admission")

    def __len__(self) -> int:
        return len(self.candidates)

    def is_empty(self) -> bool:
        return not self.candidates

    def top(self) -> Optional[ClassificationCandidate]:
        """Highest-scoring admitted candidate, or None when nothing was admitted."""
        return self.candidates[0] if self.candidates else None

    def labels(self) -> list[str]:
        return [c.label for c in self.candidates]


def rank_candidates(
    candidates: Iterable[ClassificationCandidate],
) -> list[ClassificationCandidate]:
    """Sort candidates by descending score. Ties keep their original order."""
    return sorted(candidates, key=lambda c: c.score, reverse=True)


@runtime_checkable
class AdmissionRule(Protocol):
    """Policy that narrows raw candidates to a RankedCandidateSet."""

    name: str

    def admit(self, candidates: Iterable[ClassificationCandidate]) -> RankedCandidateSet:
        ...


class TopKAdmission:
    """
    Keep the K highest-scoring candidates regardless of score.

    Example:
        >>> rule = TopKAdmission(k=3)
        >>> rule.admit([]).is_empty()
        True
    """

    name = "top_k"

    def __init__(self, k: int = 3) -> None:
        if k < 1:
            raise ValueError(f"k must be at least 1, got {k}")
        self.k = k

    def admit(self, candidates: Iterable[ClassificationCandidate]) -> RankedCandidateSet:
        received = list(candidates)
        ranked = rank_candidates(received)[: self.k]
        return RankedCandidateSet(
            candidates=tuple(ranked), rule=self.name, received=len(received)
        )


class ThresholdAdmission:
    """
    Keep every candidate whose score is at least `threshold`.

    Example:
        >>> rule = ThresholdAdmission(threshold=0.95)
        >>> ranked = rule.admit([ClassificationCandidate(label="a", score=0.5)])
        >>> ranked.is_empty()
        True
    """

    name = "threshold"

    def __init__(self, threshold: float = 0.95) -> None:
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be between 0.0 and 1.0, got {threshold}")
        self.threshold = threshold

    def admit(self, candidates: Iterable[ClassificationCandidate]) -> RankedCandidateSet:
        received = list(candidates)
        ranked = [c for c in rank_candidates(received) if c.score >= self.threshold]
        return RankedCandidateSet(
            candidates=tuple(ranked), rule=self.name, received=len(received)
        )
