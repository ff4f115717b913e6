"""Instrumentation helpers for the analysis pipeline.

Metrics:
* Counter analysis_outcomes_total{outcome,kind?}
* Counter analysis_transitions_total{state}
* Histogram analysis_stage_latency_ms{stage}
* Counter nutrient_resolver_selection_total{strategy}

`stage` is one of upload|classify|resolve|persist.
`strategy` is substring|fallback.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator, Optional

from .core import RegistrySnapshot, registry

OUTCOMES_TOTAL = "analysis_outcomes_total"
TRANSITIONS_TOTAL = "analysis_transitions_total"
STAGE_LATENCY_MS = "analysis_stage_latency_ms"
RESOLVER_SELECTION_TOTAL = "nutrient_resolver_selection_total"


def record_outcome(outcome: str, *, kind: Optional[str] = None) -> None:
    tags = {"outcome": outcome}
    if kind:
        tags["kind"] = kind
    registry.counter(OUTCOMES_TOTAL, **tags).inc()


def record_transition(state: str) -> None:
    registry.counter(TRANSITIONS_TOTAL, state=state).inc()


def record_stage_latency_ms(stage: str, ms: float) -> None:
    registry.histogram(STAGE_LATENCY_MS, stage=stage).observe(ms)


def record_resolver_selection(strategy: str) -> None:
    registry.counter(RESOLVER_SELECTION_TOTAL, strategy=strategy).inc()


@contextmanager
def time_stage(stage: str) -> Iterator[None]:
    """Observe wall time of the block, failed or not."""
    start = time.perf_counter()
    try:
        yield
    finally:
        record_stage_latency_ms(stage, (time.perf_counter() - start) * 1000.0)


def snapshot() -> RegistrySnapshot:  # pragma: no cover - passthrough
    return registry.snapshot()


def reset_all() -> None:
    """Drop every metric (test utility)."""
    registry.reset()
