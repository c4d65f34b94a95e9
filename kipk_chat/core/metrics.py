from __future__ import annotations

from collections import defaultdict
from threading import Lock
from typing import Mapping


class ChatMetrics:
    """Process-local counters and latency totals exposed on ``/metrics``."""

    def __init__(self) -> None:
        self._counters: dict[str, int] = defaultdict(int)
        self._latency_ms: dict[str, float] = defaultdict(float)
        self._lock = Lock()

    def inc(self, name: str, labels: Mapping[str, str] | None = None, value: int = 1) -> None:
        key = _series(name, labels)
        with self._lock:
            self._counters[key] += value

    def observe_ms(self, name: str, elapsed_ms: float, labels: Mapping[str, str] | None = None) -> None:
        with self._lock:
            self._latency_ms[_series(f"{name}_sum", labels)] += float(elapsed_ms)
            self._counters[_series(f"{name}_count", labels)] += 1

    def get(self, name: str, labels: Mapping[str, str] | None = None) -> int:
        with self._lock:
            return self._counters.get(_series(name, labels), 0)

    def snapshot(self) -> dict[str, float | int]:
        with self._lock:
            merged: dict[str, float | int] = dict(self._counters)
            merged.update({key: round(value, 3) for key, value in self._latency_ms.items()})
            return merged

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._latency_ms.clear()


def _series(name: str, labels: Mapping[str, str] | None) -> str:
    if not labels:
        return name
    parts = [f"{k}={labels[k]}" for k in sorted(labels)]
    return f"{name}{{{','.join(parts)}}}"


metrics = ChatMetrics()
