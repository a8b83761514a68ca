from __future__ import annotations

import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Tuple

MetricKey = Tuple[str, Tuple[Tuple[str, str], ...]]


def _labels_tuple(labels: Optional[Dict[str, Any]]) -> Tuple[Tuple[str, str], ...]:
    if not labels:
        return ()
    return tuple(sorted((key, str(value)) for key, value in labels.items()))


@dataclass
class Histogram:
    count: int = 0
    total: float = 0.0
    min_value: float = field(default=float("inf"))
    max_value: float = field(default=float("-inf"))

    def observe(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.min_value = min(self.min_value, value)
        self.max_value = max(self.max_value, value)

    def snapshot(self) -> Dict[str, Any]:
        avg = self.total / self.count if self.count else 0.0
        return {
            "count": self.count,
            "avg": avg,
            "min": None if self.count == 0 else self.min_value,
            "max": None if self.count == 0 else self.max_value,
        }


_lock = threading.Lock()
_counters: Dict[MetricKey, float] = defaultdict(float)
_gauges: Dict[MetricKey, float] = {}
_histograms: Dict[MetricKey, Histogram] = {}
_events: list[Dict[str, Any]] = []
_max_events = 200


def increment_counter(name: str, amount: float = 1.0, labels: Optional[Dict[str, Any]] = None) -> None:
    with _lock:
        _counters[(name, _labels_tuple(labels))] += amount


def set_gauge(name: str, value: float, labels: Optional[Dict[str, Any]] = None) -> None:
    with _lock:
        _gauges[(name, _labels_tuple(labels))] = value


def observe_latency(name: str, value: float, labels: Optional[Dict[str, Any]] = None) -> None:
    with _lock:
        histogram = _histograms.setdefault((name, _labels_tuple(labels)), Histogram())
        histogram.observe(value)


@contextmanager
def timed(name: str, labels: Optional[Dict[str, Any]] = None) -> Iterator[None]:
    """Record the wall time of the block, in milliseconds, even when it raises."""
    started = time.perf_counter()
    try:
        yield
    finally:
        observe_latency(name, (time.perf_counter() - started) * 1000, labels)


def record_event(name: str, payload: Dict[str, Any]) -> None:
    event = {"name": name, "timestamp": time.time(), "payload": payload}
    with _lock:
        _events.append(event)
        if len(_events) > _max_events:
            _events.pop(0)


def get_counter_value(name: str, labels: Optional[Dict[str, Any]] = None) -> float:
    with _lock:
        return _counters.get((name, _labels_tuple(labels)), 0.0)


def get_metrics_snapshot() -> Dict[str, Any]:
    snapshot: Dict[str, Any] = {"counters": {}, "gauges": {}, "histograms": {}}
    with _lock:
        snapshot["events"] = list(_events)
        for (name, labels), value in _counters.items():
            snapshot["counters"].setdefault(name, []).append({"labels": dict(labels), "value": value})

        for (name, labels), value in _gauges.items():
            snapshot["gauges"].setdefault(name, []).append({"labels": dict(labels), "value": value})

        for (name, labels), histogram in _histograms.items():
            snapshot["histograms"].setdefault(name, []).append(
                {"labels": dict(labels), "stats": histogram.snapshot()}
            )

    return snapshot


def reset_metrics() -> None:
    """Testing helper."""
    with _lock:
        _counters.clear()
        _gauges.clear()
        _histograms.clear()
        _events.clear()
