"""
Broker Metrics

Counters, gauges and histograms for broker tool calls and operation
dispatches, exported as a JSON summary and in Prometheus text format.
"""

import threading
import time
from collections import defaultdict
from typing import Optional

# Label value used when a caller supplied a name that is not in the catalog
UNKNOWN_LABEL = "<unknown>"


def _label_key(labels: dict) -> tuple:
    return tuple(sorted((k, str(v)) for k, v in labels.items()))


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\"", "\\\"").replace("\n", "\\n")


class Counter:
    """A monotonically increasing counter metric."""

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description
        self._value = 0.0
        self._lock = threading.Lock()
        self._labels: dict[tuple, float] = defaultdict(float)

    def inc(self, value: float = 1.0, **labels) -> None:
        with self._lock:
            if labels:
                self._labels[_label_key(labels)] += value
            self._value += value

    def get(self, **labels) -> float:
        with self._lock:
            if labels:
                return self._labels.get(_label_key(labels), 0.0)
            return self._value

    def get_labelled(self) -> dict[tuple, float]:
        with self._lock:
            return dict(self._labels)

    def get_all(self) -> dict:
        """All label combinations and their values."""
        with self._lock:
            result = {"_total": self._value}
            for key, value in self._labels.items():
                label_str = ",".join(f"{k}={v}" for k, v in key)
                result[label_str] = value
            return result


class Gauge:
    """A metric that can increase or decrease."""

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description
        self._value = 0.0
        self._lock = threading.Lock()
        self._labels: dict[tuple, float] = defaultdict(float)

    def set(self, value: float, **labels) -> None:
        with self._lock:
            if labels:
                self._labels[_label_key(labels)] = value
            else:
                self._value = value

    def inc(self, value: float = 1.0, **labels) -> None:
        with self._lock:
            if labels:
                self._labels[_label_key(labels)] += value
            self._value += value

    def dec(self, value: float = 1.0, **labels) -> None:
        self.inc(-value, **labels)

    def get(self, **labels) -> float:
        with self._lock:
            if labels:
                return self._labels.get(_label_key(labels), 0.0)
            return self._value


class Histogram:
    """A metric that tracks value distribution."""

    # Default bucket boundaries (in seconds for latency)
    DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

    def __init__(self, name: str, description: str = "", buckets: tuple = None):
        self.name = name
        self.description = description
        self.buckets = buckets or self.DEFAULT_BUCKETS
        self._lock = threading.Lock()
        self._counts = {b: 0 for b in self.buckets}
        self._counts[float('inf')] = 0
        self._sum = 0.0
        self._count = 0

    def observe(self, value: float) -> None:
        with self._lock:
            self._sum += value
            self._count += 1
            for bucket in self.buckets:
                if value <= bucket:
                    self._counts[bucket] += 1
            self._counts[float('inf')] += 1

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "count": self._count,
                "sum": self._sum,
                "avg": self._sum / self._count if self._count > 0 else 0,
                "buckets": {
                    f"le_{b}": c for b, c in self._counts.items()
                    if b != float('inf')
                },
                "le_inf": self._counts[float('inf')],
            }


class Timer:
    """Context manager for timing operations."""

    def __init__(self, histogram: Histogram):
        self.histogram = histogram
        self._start: Optional[float] = None

    def __enter__(self):
        self._start = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._start is not None:
            self.histogram.observe(time.monotonic() - self._start)
        return False


class BrokerMetrics:
    """
    Central metrics registry for the broker.

    Tracks:
    - Broker tool calls by tool name
    - Operation dispatches by category and outcome
    - In-flight dispatches per category
    - Dispatch latency
    """

    def __init__(self):
        self.broker_calls_total = Counter(
            "broker_tool_calls_total",
            "Total number of broker tool calls"
        )
        self.broker_errors_total = Counter(
            "broker_tool_errors_total",
            "Broker tool calls answered with an error envelope"
        )
        self.broker_call_duration = Histogram(
            "broker_tool_call_duration_seconds",
            "Duration of broker tool calls"
        )

        self.dispatch_total = Counter(
            "broker_dispatch_total",
            "Total number of operation dispatches"
        )
        self.dispatch_in_flight = Gauge(
            "broker_dispatch_in_flight",
            "Handler invocations currently running"
        )
        self.dispatch_duration = Histogram(
            "broker_dispatch_duration_seconds",
            "Duration of handler invocations",
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)
        )

    def time_broker_call(self) -> Timer:
        return Timer(self.broker_call_duration)

    def record_broker_call(self, tool: str, is_error: bool) -> None:
        self.broker_calls_total.inc(tool=tool)
        if is_error:
            self.broker_errors_total.inc(tool=tool)

    def record_dispatch(self, category: str, outcome: str, duration: float = 0) -> None:
        """Record one dispatch with its outcome kind."""
        self.dispatch_total.inc(category=category, outcome=outcome)
        if duration > 0:
            self.dispatch_duration.observe(duration)

    def get_summary(self) -> dict:
        return {
            "broker_tools": {
                "calls_total": self.broker_calls_total.get_all(),
                "errors_total": self.broker_errors_total.get_all(),
                "duration": self.broker_call_duration.get_stats(),
            },
            "dispatch": {
                "total": self.dispatch_total.get_all(),
                "in_flight": self.dispatch_in_flight.get(),
                "duration": self.dispatch_duration.get_stats(),
            },
        }

    def to_prometheus_format(self) -> str:
        """Export metrics in Prometheus text format."""
        lines = []

        def add_family(counter: Counter, metric_type: str = "counter"):
            lines.append(f"# HELP {counter.name} {counter.description}")
            lines.append(f"# TYPE {counter.name} {metric_type}")
            for key, value in sorted(counter.get_labelled().items()):
                label_str = ",".join(f'{k}="{_escape_label(v)}"' for k, v in key)
                lines.append(f"{counter.name}{{{label_str}}} {value}")

        add_family(self.broker_calls_total)
        add_family(self.broker_errors_total)
        add_family(self.dispatch_total)

        lines.append(f"# HELP {self.dispatch_in_flight.name} {self.dispatch_in_flight.description}")
        lines.append(f"# TYPE {self.dispatch_in_flight.name} gauge")
        lines.append(f"{self.dispatch_in_flight.name} {self.dispatch_in_flight.get()}")

        for histogram in (self.broker_call_duration, self.dispatch_duration):
            stats = histogram.get_stats()
            lines.append(f"# HELP {histogram.name} {histogram.description}")
            lines.append(f"# TYPE {histogram.name} histogram")
            for bucket in histogram.buckets:
                lines.append(f'{histogram.name}_bucket{{le="{bucket}"}} {stats["buckets"][f"le_{bucket}"]}')
            lines.append(f'{histogram.name}_bucket{{le="+Inf"}} {stats["le_inf"]}')
            lines.append(f"{histogram.name}_sum {stats['sum']}")
            lines.append(f"{histogram.name}_count {stats['count']}")

        return "\n".join(lines) + "\n"
