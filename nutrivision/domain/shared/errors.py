"""
Domain exceptions.

Typed exceptions for every failure the analysis pipeline can report.
Each error carries an ErrorKind so the orchestrator can turn it into a
Failed outcome without inspecting messages.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Flat failure identifier carried by a Failed outcome."""

    VALIDATION = "VALIDATION"
    CLASSIFIER_TRANSPORT = "CLASSIFIER_TRANSPORT"
    CLASSIFIER_REJECTED = "CLASSIFIER_REJECTED"
    CLASSIFIER_MALFORMED = "CLASSIFIER_MALFORMED"
    NUTRIENT_NO_MATCH = "NUTRIENT_NO_MATCH"
    NUTRIENT_TRANSPORT = "NUTRIENT_TRANSPORT"
    STORE_TRANSPORT = "STORE_TRANSPORT"
    STORE_CONFLICT = "STORE_CONFLICT"
    SUPERSEDED = "SUPERSEDED"


# ═══════════════════════════════════════════════════════════
# BASE EXCEPTION
# ═══════════════════════════════════════════════════════════


class DomainError(Exception):
    """
    Base exception for all domain errors.

    Subclasses set `kind` so callers can report the failure without
    matching on exception types. There is no default: an error without a
    kind is not reportable as a Failed outcome.
    """

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


# ═══════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════


class ValidationError(DomainError):
    """
    Submitted input is unusable.

    Raised when:
    - Image bytes are empty
    - Content is not an image
    - User ID is empty

    Example:
        >>> raise ValidationError("Content type 'text/plain' is not an image")
    """

    kind = ErrorKind.VALIDATION


class InvalidTransitionError(DomainError):
    """Pipeline attempted a state change the state machine does not allow.

    A programming error, not a submission failure, so it carries no kind
    and propagates out of the orchestrator.
    """


class SupersededError(DomainError):
    """A newer submission for the same session replaced this run."""

    kind = ErrorKind.SUPERSEDED


# ═══════════════════════════════════════════════════════════
# CLASSIFIER
# ═══════════════════════════════════════════════════════════


class ClassifierFailure(str, Enum):
    TRANSPORT = "transport"
    REJECTED = "rejected"
    MALFORMED = "malformed"


class ClassifierError(DomainError):
    """
    Image classification failed.

    Variants:
    - transport: network error or timeout (safe to resubmit)
    - rejected: service answered with a non-success status
    - malformed: response body could not be parsed into candidates

    Example:
        >>> raise ClassifierError.rejected("Model is loading", status=503)
    """

    _KINDS = {
        ClassifierFailure.TRANSPORT: ErrorKind.CLASSIFIER_TRANSPORT,
        ClassifierFailure.REJECTED: ErrorKind.CLASSIFIER_REJECTED,
        ClassifierFailure.MALFORMED: ErrorKind.CLASSIFIER_MALFORMED,
    }

    def __init__(
        self,
        message: str,
        failure: ClassifierFailure,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.failure = failure
        self.status = status
        self.kind = self._KINDS[failure]

    @property
    def retryable(self) -> bool:
        """Only transport failures are worth resubmitting."""
        return self.failure is ClassifierFailure.TRANSPORT

    @classmethod
    def transport(cls, message: str) -> ClassifierError:
        return cls(message, ClassifierFailure.TRANSPORT)

    @classmethod
    def rejected(cls, message: str, status: Optional[int] = None) -> ClassifierError:
        return cls(message, ClassifierFailure.REJECTED, status=status)

    @classmethod
    def malformed(cls, message: str) -> ClassifierError:
        return cls(message, ClassifierFailure.MALFORMED)


# ═══════════════════════════════════════════════════════════
# NUTRIENT RESOLUTION
# ═══════════════════════════════════════════════════════════


class NutrientResolutionFailure(str, Enum):
    NO_MATCH = "no_match"
    TRANSPORT = "transport"


class NutrientResolutionError(DomainError):
    """
    Nutrient lookup failed.

    Raised when:
    - The nutrition database returned zero foods (no_match)
    - The nutrition database could not be reached or answered with an error (transport)

    Example:
        >>> raise NutrientResolutionError.no_match("No foods found for 'xyz'")
    """

    _KINDS = {
        NutrientResolutionFailure.NO_MATCH: ErrorKind.NUTRIENT_NO_MATCH,
        NutrientResolutionFailure.TRANSPORT: ErrorKind.NUTRIENT_TRANSPORT,
    }

    def __init__(self, message: str, failure: NutrientResolutionFailure) -> None:
        super().__init__(message)
        self.failure = failure
        self.kind = self._KINDS[failure]

    @classmethod
    def no_match(cls, message: str) -> NutrientResolutionError:
        return cls(message, NutrientResolutionFailure.NO_MATCH)

    @classmethod
    def transport(cls, message: str) -> NutrientResolutionError:
        return cls(message, NutrientResolutionFailure.TRANSPORT)


# ═══════════════════════════════════════════════════════════
# STORAGE
# ═══════════════════════════════════════════════════════════


class StoreFailure(str, Enum):
    TRANSPORT = "transport"
    CONFLICT = "conflict"


class StoreError(DomainError):
    """
    Image or record storage failed.

    Raised when:
    - Storage backend unreachable or erroring (transport)
    - A patch would change a record's identity, or a concurrent
      insert could not be reconciled (conflict)

    Example:
        >>> raise StoreError.transport("MongoDB connection lost")
    """

    _KINDS = {
        StoreFailure.TRANSPORT: ErrorKind.STORE_TRANSPORT,
        StoreFailure.CONFLICT: ErrorKind.STORE_CONFLICT,
    }

    def __init__(self, message: str, failure: StoreFailure) -> None:
        super().__init__(message)
        self.failure = failure
        self.kind = self._KINDS[failure]

    @classmethod
    def transport(cls, message: str) -> StoreError:
        return cls(message, StoreFailure.TRANSPORT)

    @classmethod
    def conflict(cls, message: str) -> StoreError:
        return cls(message, StoreFailure.CONFLICT)
