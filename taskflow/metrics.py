"""
In-process counters and gauges for the task manager and gateway.

Counters can carry labels (`op="create_task"`); reading a counter without
labels sums every label set. Exposed as a dict for debug panels or as
Prometheus text.
"""

from __future__ import annotations

import time
from collections import defaultdict
from typing import Any

PREFIX = "taskflow_"

LabelSet = tuple[tuple[str, str], ...]


def _labels(labels: dict[str, Any]) -> LabelSet:
    return tuple(sorted((k, str(v)) for k, v in labels.items()))


def _render(name: str, labels: LabelSet) -> str:
    if not labels:
        return f"{PREFIX}{name}"
    inner = ",".join(f'{k}="{v}"' for k, v in labels)
    return f"{PREFIX}{name}{{{inner}}}"


class MetricsCollector:
    """Operation/failure counters and collection-size gauges."""

    def __init__(self) -> None:
        self._counters: dict[str, dict[LabelSet, int]] = defaultdict(lambda: defaultdict(int))
        self._gauges: dict[str, float] = {}
        self._started = time.monotonic()

    def inc(self, name: str, value: int = 1, **labels: Any) -> None:
        self._counters[name][_labels(labels)] += value

    def set_gauge(self, name: str, value: float) -> None:
        self._gauges[name] = value

    def get(self, name: str, **labels: Any) -> int | float:
        if name in self._gauges:
            return self._gauges[name]
        series = self._counters.get(name, {})
        if labels:
            return series.get(_labels(labels), 0)
        return sum(series.values())

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self._started

    def to_prometheus(self) -> str:
        lines = []
        for name in sorted(self._counters):
            lines.append(f"# TYPE {PREFIX}{name} counter")
            for labels, value in sorted(self._counters[name].items()):
                lines.append(f"{_render(name, labels)} {value}")
        for name, value in sorted(self._gauges.items()):
            lines.append(f"# TYPE {PREFIX}{name} gauge")
            lines.append(f"{PREFIX}{name} {value}")
        lines.append(f"# TYPE {PREFIX}uptime_seconds gauge")
        lines.append(f"{PREFIX}uptime_seconds {self.uptime_seconds:.1f}")
        return "\n".join(lines) + "\n"

    def to_dict(self) -> dict[str, Any]:
        return {
            "counters": {
                _render(name, labels): value
                for name, series in sorted(self._counters.items())
                for labels, value in sorted(series.items())
            },
            "gauges": {f"{PREFIX}{k}": v for k, v in sorted(self._gauges.items())},
            "uptime_seconds": self.uptime_seconds,
        }
