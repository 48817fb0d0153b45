"""
Metrics — in-process counters, gauges and windowed histograms.

One registry is shared by the response cache, the process executor,
the operation service and the gateway.  Those are hit from several
request threads at once, so every instrument carries its own lock and
the registry guards its index with another.

``MetricsRegistry.to_dict`` is what ``PackageGateway.metrics`` returns.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Any

# Samples kept per histogram; ``count`` still reports every observation.
HISTOGRAM_WINDOW = 1024

_LabelKey = tuple[tuple[str, str], ...]


class _Instrument:
    kind = ""

    def __init__(self, name: str, labels: dict[str, str] | None = None):
        self.name = name
        self.labels = dict(labels or {})
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, {self.labels!r})"

    def _describe(self) -> dict[str, Any]:
        return {"name": self.name, "type": self.kind, "labels": self.labels}


class Counter(_Instrument):
    """Monotonic count of events."""

    kind = "counter"

    def __init__(self, name: str, labels: dict[str, str] | None = None):
        super().__init__(name, labels)
        self._value = 0

    @property
    def value(self) -> int:
        return self._value

    def inc(self, n: int = 1) -> None:
        if n < 0:
            raise ValueError("counters only go up")
        with self._lock:
            self._value += n

    def to_dict(self) -> dict[str, Any]:
        return {**self._describe(), "value": self._value}


class Gauge(_Instrument):
    """Current level of something, e.g. live cache keys."""

    kind = "gauge"

    def __init__(self, name: str, labels: dict[str, str] | None = None):
        super().__init__(name, labels)
        self._value = 0.0

    @property
    def value(self) -> float:
        return self._value

    def set(self, v: float) -> None:
        with self._lock:
            self._value = v

    def inc(self, n: float = 1.0) -> None:
        with self._lock:
            self._value += n

    def dec(self, n: float = 1.0) -> None:
        with self._lock:
            self._value -= n

    def to_dict(self) -> dict[str, Any]:
        return {**self._describe(), "value": self._value}


class Histogram(_Instrument):
    """Durations and sizes.

    Statistics cover the most recent ``HISTOGRAM_WINDOW`` samples so a
    gateway that runs for weeks does not grow without bound.
    """

    kind = "histogram"

    def __init__(self, name: str, labels: dict[str, str] | None = None):
        super().__init__(name, labels)
        self._window: deque[float] = deque(maxlen=HISTOGRAM_WINDOW)
        self._count = 0

    def observe(self, value: float) -> None:
        with self._lock:
            self._window.append(value)
            self._count += 1

    def _samples(self) -> list[float]:
        with self._lock:
            return list(self._window)

    @property
    def count(self) -> int:
        return self._count

    @property
    def mean(self) -> float:
        samples = self._samples()
        return sum(samples) / len(samples) if samples else 0.0

    @property
    def min(self) -> float:
        samples = self._samples()
        return min(samples) if samples else 0.0

    @property
    def max(self) -> float:
        samples = self._samples()
        return max(samples) if samples else 0.0

    @property
    def p95(self) -> float:
        return self.quantile(0.95)

    def quantile(self, q: float) -> float:
        """Nearest-rank quantile over the current window."""
        samples = sorted(self._samples())
        if not samples:
            return 0.0
        return samples[min(int(len(samples) * q), len(samples) - 1)]

    def to_dict(self) -> dict[str, Any]:
        samples = sorted(self._samples())
        if samples:
            n = len(samples)
            stats = {
                "mean": round(sum(samples) / n, 2),
                "min": samples[0],
                "max": samples[-1],
                "p95": samples[min(int(n * 0.95), n - 1)],
            }
        else:
            stats = {"mean": 0.0, "min": 0.0, "max": 0.0, "p95": 0.0}
        return {**self._describe(), "count": self._count, **stats}


class MetricsRegistry:
    """Get-or-create index of instruments keyed by name and labels."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._instruments: dict[tuple[str, str, _LabelKey], _Instrument] = {}

    def _get(self, cls: type[_Instrument], name: str, labels: dict[str, str]) -> Any:
        key = (cls.kind, name, tuple(sorted(labels.items())))
        with self._lock:
            inst = self._instruments.get(key)
            if inst is None:
                inst = self._instruments[key] = cls(name, labels)
            return inst

    def counter(self, name: str, **labels: str) -> Counter:
        return self._get(Counter, name, labels)

    def gauge(self, name: str, **labels: str) -> Gauge:
        return self._get(Gauge, name, labels)

    def histogram(self, name: str, **labels: str) -> Histogram:
        return self._get(Histogram, name, labels)

    def timer(self, name: str, **labels: str) -> TimerContext:
        """Time a block into the named histogram, in milliseconds."""
        return TimerContext(self.histogram(name, **labels))

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        with self._lock:
            instruments = list(self._instruments.values())
        out: dict[str, list[dict[str, Any]]] = {"counters": [], "gauges": [], "histograms": []}
        for inst in instruments:
            out[inst.kind + "s"].append(inst.to_dict())  # type: ignore[attr-defined]
        return out

    def reset(self) -> None:
        """Forget every instrument. Holders of old references keep counting privately."""
        with self._lock:
            self._instruments.clear()


class TimerContext:
    def __init__(self, histogram: Histogram):
        self._histogram = histogram
        self._start = 0.0
        self.elapsed_ms = 0

    def __enter__(self) -> TimerContext:
        self._start = time.monotonic()
        return self

    def __exit__(self, *exc: Any) -> None:
        elapsed = (time.monotonic() - self._start) * 1000
        self.elapsed_ms = int(elapsed)
        self._histogram.observe(elapsed)
