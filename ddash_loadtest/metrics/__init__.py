"""Run metrics and threshold evaluation."""

from ddash_loadtest.metrics.collector import MetricSample, MetricsCollector, MetricType
from ddash_loadtest.metrics.thresholds import (
    ThresholdResult,
    ThresholdSpec,
    all_passed,
    load_thresholds_file,
    parse_thresholds,
)

__all__ = [
    "MetricSample",
    "MetricType",
    "MetricsCollector",
    "ThresholdResult",
    "ThresholdSpec",
    "all_passed",
    "load_thresholds_file",
    "parse_thresholds",
]
