"""In-memory metrics registry.

* Counters and bounded-window histograms keyed by name + tags.
* Thread-safe; snapshot() returns plain dicts for tests.
* No exporter: scraping can be added on top of snapshot().
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Deque, Dict, List, Optional, Tuple, TypedDict

MetricKey = Tuple[str, Tuple[Tuple[str, str], ...]]  # (name, sorted tags)

DEFAULT_WINDOW = 2000


def _metric_key(name: str, tags: Dict[str, str]) -> MetricKey:
    return name, tuple(sorted(tags.items()))


@dataclass
class Counter:
    name: str
    tags: Dict[str, str]
    _value: int = 0
    _lock: Lock = field(default_factory=Lock, repr=False)

    def inc(self, amount: int = 1) -> None:
        if amount < 0:
            raise ValueError("Counters only go up")
        with self._lock:
            self._value += amount

    def value(self) -> int:
        with self._lock:
            return self._value


@dataclass
class Histogram:
    name: str
    tags: Dict[str, str]
    window: int = DEFAULT_WINDOW
    _values: Deque[float] = field(default_factory=deque, repr=False)
    _lock: Lock = field(default_factory=Lock, repr=False)

    def __post_init__(self) -> None:
        self._values = deque(self._values, maxlen=self.window)

    def observe(self, value: float) -> None:
        with self._lock:
            self._values.append(value)

    def summary(self) -> Dict[str, Any]:
        with self._lock:
            vals = sorted(self._values)
        if not vals:
            return {"count": 0, "avg": 0.0, "p95": 0.0, "min": 0.0, "max": 0.0}
        count = len(vals)
        return {
            "count": count,
            "avg": sum(vals) / count,
            "p95": vals[int(0.95 * (count - 1))],
            "min": vals[0],
            "max": vals[-1],
        }


class CounterSnap(TypedDict):
    name: str
    tags: Dict[str, str]
    value: int


class HistogramSnap(TypedDict):
    name: str
    tags: Dict[str, str]
    count: int
    avg: float
    p95: float
    min: float
    max: float


class RegistrySnapshot(TypedDict):
    counters: List[CounterSnap]
    histograms: List[HistogramSnap]
    generated_at: float


class MetricsRegistry:
    def __init__(self, window: int = DEFAULT_WINDOW) -> None:
        self._counters: Dict[MetricKey, Counter] = {}
        self._histograms: Dict[MetricKey, Histogram] = {}
        self._window = window
        self._lock = Lock()

    def counter(self, name: str, **tags: str) -> Counter:
        key = _metric_key(name, tags)
        with self._lock:
            ctr = self._counters.get(key)
            if ctr is None:
                ctr = Counter(name=name, tags=tags)
                self._counters[key] = ctr
            return ctr

    def histogram(self, name: str, **tags: str) -> Histogram:
        key = _metric_key(name, tags)
        with self._lock:
            h = self._histograms.get(key)
            if h is None:
                h = Histogram(name=name, tags=tags, window=self._window)
                self._histograms[key] = h
            return h

    def counter_value(self, name: str, **tags: str) -> int:
        """Current value, 0 for a counter never touched."""
        with self._lock:
            ctr: Optional[Counter] = self._counters.get(_metric_key(name, tags))
        return ctr.value() if ctr else 0

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._histograms.clear()

    def snapshot(self) -> RegistrySnapshot:
        data: RegistrySnapshot = {
            "counters": [],
            "histograms": [],
            "generated_at": time.time(),
        }
        # copy references under lock, read values outside it
        with self._lock:
            counters = list(self._counters.values())
            histograms = list(self._histograms.values())
        for c in counters:
            data["counters"].append({"name": c.name, "tags": c.tags, "value": c.value()})
        for h in histograms:
            s = h.summary()
            data["histograms"].append(
                {
                    "name": h.name,
                    "tags": h.tags,
                    "count": s["count"],
                    "avg": s["avg"],
                    "p95": s["p95"],
                    "min": s["min"],
                    "max": s["max"],
                }
            )
        return data


registry = MetricsRegistry()
