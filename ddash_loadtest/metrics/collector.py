"""Append-only metric samples with trend, rate and counter aggregation."""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import numpy as np
import structlog

from ddash_loadtest.errors import ConfigurationError
from ddash_loadtest.metrics.thresholds import ThresholdResult, ThresholdSpec

logger = structlog.get_logger()


class MetricType(StrEnum):
    COUNTER = "counter"
    TREND = "trend"
    RATE = "rate"


# Built-in metrics every run records.
HTTP_REQS = "http_reqs"
HTTP_REQ_DURATION = "http_req_duration"
HTTP_REQ_FAILED = "http_req_failed"
CHECKS = "checks"
ITERATIONS = "iterations"
ITERATION_DURATION = "iteration_duration"
DROPPED_ITERATIONS = "dropped_iterations"

BUILTIN_METRICS: dict[str, MetricType] = {
    HTTP_REQS: MetricType.COUNTER,
    HTTP_REQ_DURATION: MetricType.TREND,
    HTTP_REQ_FAILED: MetricType.RATE,
    CHECKS: MetricType.RATE,
    ITERATIONS: MetricType.COUNTER,
    ITERATION_DURATION: MetricType.TREND,
    DROPPED_ITERATIONS: MetricType.COUNTER,
}

_AGGREGATIONS: dict[MetricType, frozenset[str]] = {
    MetricType.TREND: frozenset({"avg", "min", "max", "med", "percentile", "count"}),
    MetricType.RATE: frozenset({"rate", "passes", "fails"}),
    MetricType.COUNTER: frozenset({"count", "rate"}),
}


@dataclass(frozen=True)
class MetricSample:
    name: str
    value: float
    tags: Mapping[str, str] = field(default_factory=dict)
    timestamp: float = 0.0

    def matches(self, selector: Iterable[tuple[str, str]]) -> bool:
        return all(self.tags.get(tag) == value for tag, value in selector)


class MetricsCollector:
    """Collects samples for one run and judges thresholds against them.

    Samples are only ever appended. All workers run on one event loop, so
    appends need no locking.
    """

    def __init__(self) -> None:
        self._types: dict[str, MetricType] = dict(BUILTIN_METRICS)
        self._samples: dict[str, list[MetricSample]] = {name: [] for name in BUILTIN_METRICS}
        self._started_at: float | None = None
        self._stopped_at: float | None = None

    # ---- registration ------------------------------------------------------

    def register(self, name: str, metric_type: MetricType) -> str:
        existing = self._types.get(name)
        if existing is not None and existing != metric_type:
            raise ConfigurationError(
                f"Metric {name!r} already registered as {existing}, not {metric_type}"
            )
        self._types[name] = metric_type
        self._samples.setdefault(name, [])
        return name

    def trend(self, name: str) -> str:
        return self.register(name, MetricType.TREND)

    def rate(self, name: str) -> str:
        return self.register(name, MetricType.RATE)

    def counter(self, name: str) -> str:
        return self.register(name, MetricType.COUNTER)

    def metric_type(self, name: str) -> MetricType:
        return self._types[name]

    def metric_names(self) -> list[str]:
        return list(self._types)

    # ---- recording ---------------------------------------------------------

    def start(self) -> None:
        self._started_at = time.monotonic()
        self._stopped_at = None

    def stop(self) -> None:
        self._stopped_at = time.monotonic()

    @property
    def elapsed_seconds(self) -> float:
        if self._started_at is None:
            return 0.0
        end = self._stopped_at if self._stopped_at is not None else time.monotonic()
        return max(end - self._started_at, 0.0)

    def record(self, name: str, value: float, tags: Mapping[str, str] | None = None) -> None:
        """Append one sample. Unknown metric names raise ``KeyError``."""
        if name not in self._types:
            raise KeyError(f"Unknown metric: {name}")
        self._samples[name].append(
            MetricSample(
                name=name,
                value=float(value),
                tags=dict(tags or {}),
                timestamp=time.monotonic(),
            )
        )

    def add(self, name: str, tags: Mapping[str, str] | None = None) -> None:
        """Increment a counter by one."""
        self.record(name, 1.0, tags)

    # ---- queries -----------------------------------------------------------

    def samples(
        self, name: str, selector: Iterable[tuple[str, str]] = ()
    ) -> list[MetricSample]:
        selector = tuple(selector)
        return [s for s in self._samples.get(name, []) if s.matches(selector)]

    def values(self, name: str, selector: Iterable[tuple[str, str]] = ()) -> np.ndarray:
        return np.array([s.value for s in self.samples(name, selector)], dtype=float)

    def tag_values(self, name: str, tag: str) -> list[str]:
        seen: dict[str, None] = {}
        for sample in self._samples.get(name, []):
            value = sample.tags.get(tag)
            if value is not None:
                seen.setdefault(value, None)
        return list(seen)

    def aggregate(
        self,
        name: str,
        aggregation: str,
        selector: Iterable[tuple[str, str]] = (),
        percentile: float | None = None,
    ) -> float | None:
        """Aggregate the matching samples; ``None`` when there are none."""
        metric_type = self._types[name]
        data = self.values(name, selector)
        if data.size == 0:
            return 0.0 if metric_type == MetricType.COUNTER else None

        if metric_type == MetricType.COUNTER:
            total = float(data.sum())
            if aggregation == "rate":
                return total / self.elapsed_seconds if self.elapsed_seconds > 0 else 0.0
            return total

        if metric_type == MetricType.RATE:
            passes = float(np.count_nonzero(data))
            if aggregation == "passes":
                return passes
            if aggregation == "fails":
                return float(data.size) - passes
            return passes / data.size

        if aggregation == "avg":
            return float(data.mean())
        if aggregation == "min":
            return float(data.min())
        if aggregation == "max":
            return float(data.max())
        if aggregation == "med":
            return float(np.median(data))
        if aggregation == "count":
            return float(data.size)
        return float(np.percentile(data, percentile if percentile is not None else 95.0))

    # ---- thresholds --------------------------------------------------------

    def validate(self, thresholds: Iterable[ThresholdSpec]) -> None:
        """Reject thresholds on unknown metrics or with unfit aggregations."""
        for spec in thresholds:
            metric_type = self._types.get(spec.metric)
            if metric_type is None:
                raise ConfigurationError(f"Threshold references unknown metric {spec.metric!r}")
            if spec.aggregation not in _AGGREGATIONS[metric_type]:
                raise ConfigurationError(
                    f"Aggregation {spec.expression!r} does not apply to {metric_type} "
                    f"metric {spec.metric!r}"
                )

    def evaluate(self, thresholds: Iterable[ThresholdSpec]) -> list[ThresholdResult]:
        results: list[ThresholdResult] = []
        for spec in thresholds:
            count = len(self.samples(spec.metric, spec.tags))
            actual = self.aggregate(spec.metric, spec.aggregation, spec.tags, spec.percentile)
            if actual is None:
                results.append(
                    ThresholdResult(spec=spec, actual=None, passed=True, notes=["no samples"])
                )
                continue

            result = ThresholdResult(
                spec=spec, actual=actual, passed=spec.check(actual), sample_count=count
            )
            if not result.passed:
                logger.warning(
                    "threshold_breached",
                    metric=spec.key,
                    expression=spec.expression,
                    actual=round(actual, 4),
                    margin=round(result.margin or 0.0, 4),
                )
            results.append(result)
        return results

    # ---- summaries ---------------------------------------------------------

    def summary(self) -> dict[str, dict[str, Any]]:
        """Per-metric aggregates over all samples, for the run report."""
        out: dict[str, dict[str, Any]] = {}
        for name, metric_type in self._types.items():
            data = self.values(name)
            if metric_type == MetricType.TREND:
                out[name] = {
                    "type": str(metric_type),
                    "count": int(data.size),
                    **_trend_stats(data),
                }
            elif metric_type == MetricType.RATE:
                passes = int(np.count_nonzero(data))
                out[name] = {
                    "type": str(metric_type),
                    "rate": round(passes / data.size, 4) if data.size else 0.0,
                    "passes": passes,
                    "fails": int(data.size) - passes,
                }
            else:
                total = float(data.sum()) if data.size else 0.0
                elapsed = self.elapsed_seconds
                out[name] = {
                    "type": str(metric_type),
                    "count": int(total),
                    "rate_per_second": round(total / elapsed, 2) if elapsed > 0 else 0.0,
                }
        return out

    def per_endpoint(self) -> dict[str, dict[str, Any]]:
        """Latency percentiles and error rate per ``endpoint`` tag."""
        table: dict[str, dict[str, Any]] = {}
        for endpoint in self.tag_values(HTTP_REQ_DURATION, "endpoint"):
            selector = (("endpoint", endpoint),)
            latencies = self.values(HTTP_REQ_DURATION, selector)
            failed = self.values(HTTP_REQ_FAILED, selector)
            errors = int(np.count_nonzero(failed))
            table[endpoint] = {
                "latency": {"count": int(latencies.size), **_trend_stats(latencies)},
                "error_count": errors,
                "error_rate": round(errors / failed.size, 4) if failed.size else 0.0,
            }
        return table

    def checks(self) -> dict[str, dict[str, int]]:
        table: dict[str, dict[str, int]] = {}
        for sample in self._samples[CHECKS]:
            name = sample.tags.get("check", "unnamed")
            entry = table.setdefault(name, {"passes": 0, "fails": 0})
            if sample.value:
                entry["passes"] += 1
            else:
                entry["fails"] += 1
        return table


def _trend_stats(data: np.ndarray) -> dict[str, float]:
    if data.size == 0:
        return {
            "avg_ms": 0.0,
            "min_ms": 0.0,
            "med_ms": 0.0,
            "max_ms": 0.0,
            "p90_ms": 0.0,
            "p95_ms": 0.0,
            "p99_ms": 0.0,
        }
    return {
        "avg_ms": round(float(data.mean()), 2),
        "min_ms": round(float(data.min()), 2),
        "med_ms": round(float(np.median(data)), 2),
        "max_ms": round(float(data.max()), 2),
        "p90_ms": round(float(np.percentile(data, 90)), 2),
        "p95_ms": round(float(np.percentile(data, 95)), 2),
        "p99_ms": round(float(np.percentile(data, 99)), 2),
    }
