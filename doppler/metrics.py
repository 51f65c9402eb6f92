"""In-process counters and gauges reported by the router."""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Tuple


class Counter:
    """A monotonically accumulated delta."""

    def __init__(self, name: str = "", source_id: str = "", version: Tuple[int, int] = (2, 0),
                 tags: Optional[Dict[str, str]] = None) -> None:
        self.name = name
        self.source_id = source_id
        self.version = version
        self.tags = dict(tags or {})
        self._delta = 0
        self._lock = threading.Lock()

    def increment(self, delta: int = 1) -> None:
        if delta < 0:
            raise ValueError("counter delta must not be negative")
        with self._lock:
            self._delta += delta

    def get_delta(self) -> int:
        with self._lock:
            return self._delta


class Gauge:
    """A value that can move up and down."""

    def __init__(self, name: str = "", unit: str = "", source_id: str = "",
                 version: Tuple[int, int] = (2, 0), tags: Optional[Dict[str, str]] = None) -> None:
        self.name = name
        self.unit = unit
        self.source_id = source_id
        self.version = version
        self.tags = dict(tags or {})
        self._value = 0.0
        self._lock = threading.Lock()

    def increment(self, amount: float = 1.0) -> None:
        with self._lock:
            self._value += amount

    def decrement(self, amount: float = 1.0) -> None:
        with self._lock:
            self._value -= amount

    def set(self, value: float) -> None:
        with self._lock:
            self._value = float(value)

    def get_value(self) -> float:
        with self._lock:
            return self._value


class MetricClient:
    """Creates and keeps track of metrics for one source."""

    def __init__(self, source_id: str = "doppler", origin: str = "loggregator.doppler") -> None:
        self.source_id = source_id
        self.origin = origin
        self._counters: List[Counter] = []
        self._gauges: List[Gauge] = []
        self._lock = threading.Lock()

    def new_counter(self, name: str, version: Tuple[int, int] = (2, 0),
                    tags: Optional[Dict[str, str]] = None) -> Counter:
        counter = Counter(name, self.source_id, version, tags)
        with self._lock:
            self._counters.append(counter)
        return counter

    def new_gauge(self, name: str, unit: str, version: Tuple[int, int] = (2, 0),
                  tags: Optional[Dict[str, str]] = None) -> Gauge:
        gauge = Gauge(name, unit, self.source_id, version, tags)
        with self._lock:
            self._gauges.append(gauge)
        return gauge

    def get_delta(self, name: str) -> int:
        """Sum of the deltas of all counters with this name."""
        with self._lock:
            counters = [c for c in self._counters if c.name == name]
        return sum(c.get_delta() for c in counters)