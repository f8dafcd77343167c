"""Threshold expressions: parsing and pass/fail results.

A threshold is keyed by a metric selector and holds one or more expressions::

    http_req_duration                    p(95)<500
    http_req_duration{endpoint:home}     p(95)<400
    http_req_failed                      rate<0.01

The selector narrows the samples to those whose tags match every
``tag:value`` pair. Expressions are ``<aggregation><op><number>``.
"""

from __future__ import annotations

import operator
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ddash_loadtest.errors import ConfigurationError

_SELECTOR_RE = re.compile(r"^\s*(?P<name>[A-Za-z_][\w.]*)\s*(?:\{(?P<tags>[^{}]*)\})?\s*$")
_EXPRESSION_RE = re.compile(
    r"^\s*(?P<agg>avg|min|max|med|count|rate|passes|fails|p\(\s*(?P<pct>\d+(?:\.\d+)?)\s*\))"
    r"\s*(?P<op><=|>=|==|!=|<|>)\s*(?P<bound>-?\d+(?:\.\d+)?)\s*$"
)

_OPERATORS: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}


def parse_selector(key: str) -> tuple[str, tuple[tuple[str, str], ...]]:
    """Split ``name{tag:value,...}`` into the metric name and sorted tag pairs."""
    match = _SELECTOR_RE.match(key)
    if match is None:
        raise ConfigurationError(f"Malformed metric selector: {key!r}")

    tags: dict[str, str] = {}
    raw_tags = match.group("tags")
    if raw_tags is not None:
        for part in raw_tags.split(","):
            tag, sep, value = part.partition(":")
            if not sep or not tag.strip() or not value.strip():
                raise ConfigurationError(f"Malformed tag filter {part!r} in {key!r}")
            tags[tag.strip()] = value.strip()
    return match.group("name"), tuple(sorted(tags.items()))


@dataclass(frozen=True)
class ThresholdSpec:
    metric: str
    tags: tuple[tuple[str, str], ...]
    aggregation: str
    operator: str
    bound: float
    expression: str
    percentile: float | None = None

    @classmethod
    def parse(cls, key: str, expression: str) -> ThresholdSpec:
        metric, tags = parse_selector(key)
        match = _EXPRESSION_RE.match(expression)
        if match is None:
            raise ConfigurationError(f"Malformed threshold expression {expression!r} for {key!r}")

        percentile = None
        aggregation = match.group("agg")
        if match.group("pct") is not None:
            percentile = float(match.group("pct"))
            if not 0.0 <= percentile <= 100.0:
                raise ConfigurationError(f"Percentile out of range in {expression!r}")
            aggregation = "percentile"

        return cls(
            metric=metric,
            tags=tags,
            aggregation=aggregation,
            operator=match.group("op"),
            bound=float(match.group("bound")),
            expression=expression.strip(),
            percentile=percentile,
        )

    @property
    def key(self) -> str:
        if not self.tags:
            return self.metric
        inner = ",".join(f"{tag}:{value}" for tag, value in self.tags)
        return f"{self.metric}{{{inner}}}"

    def check(self, actual: float) -> bool:
        return _OPERATORS[self.operator](actual, self.bound)


@dataclass
class ThresholdResult:
    spec: ThresholdSpec
    actual: float | None
    passed: bool
    sample_count: int = 0
    notes: list[str] = field(default_factory=list)

    @property
    def margin(self) -> float | None:
        """Distance past the bound; positive when breached, negative when within.

        ``None`` for ``!=``, which has no distance to report.
        """
        if self.actual is None:
            return None
        op = self.spec.operator
        if op in ("<", "<="):
            return self.actual - self.spec.bound
        if op in (">", ">="):
            return self.spec.bound - self.actual
        if op == "==":
            return abs(self.actual - self.spec.bound)
        return None

    def describe(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        if self.actual is None:
            return f"[{status}] {self.spec.key} {self.spec.expression} (no samples)"
        text = f"[{status}] {self.spec.key} {self.spec.expression} actual={self.actual:.4g}"
        if not self.passed and self.margin is not None:
            text += f" breached by {self.margin:.4g}"
        return text

    def as_dict(self) -> dict[str, Any]:
        return {
            "metric": self.spec.key,
            "expression": self.spec.expression,
            "actual": self.actual,
            "passed": self.passed,
            "margin": self.margin,
            "sample_count": self.sample_count,
            "notes": list(self.notes),
        }


def parse_thresholds(mapping: Mapping[str, Sequence[str] | str]) -> list[ThresholdSpec]:
    """Parse ``{selector: [expression, ...]}`` into threshold specs."""
    specs: list[ThresholdSpec] = []
    for key, expressions in mapping.items():
        if isinstance(expressions, str):
            expressions = [expressions]
        if not expressions:
            raise ConfigurationError(f"Threshold {key!r} has no expressions")
        for expression in expressions:
            if not isinstance(expression, str):
                raise ConfigurationError(f"Threshold expression for {key!r} must be a string")
            specs.append(ThresholdSpec.parse(key, expression))
    return specs


def load_thresholds_file(path: Path) -> list[ThresholdSpec]:
    """Read threshold overrides from a YAML mapping of selector to expressions."""
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Cannot read thresholds file {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Thresholds file {path} must contain a mapping")
    return parse_thresholds(data)


def all_passed(results: Sequence[ThresholdResult]) -> bool:
    return all(result.passed for result in results)
