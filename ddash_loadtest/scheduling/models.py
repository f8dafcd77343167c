"""Scenario definitions and the four executor models.

Each executor is a frozen dataclass tagged by ``kind``. The driver only
needs ``start_value``, ``effective_stages()`` and ``total_duration`` to
schedule any of them; arrival-rate executors add the worker-pool bounds.
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar, Literal

from ddash_loadtest.errors import ConfigurationError

if TYPE_CHECKING:
    from ddash_loadtest.scheduling.worker import VirtualUser

IterationFn = Callable[["VirtualUser"], Awaitable[None]]

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: str | float | int) -> float:
    """Convert ``"500ms"``, ``"30s"``, ``"2m"``, ``"1h30m"`` or a number to seconds."""
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ConfigurationError(f"Duration must not be negative: {value!r}")
        return float(value)

    text = value.strip().lower()
    if not text:
        raise ConfigurationError("Duration must not be empty")
    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        if seconds < 0:
            raise ConfigurationError(f"Duration must not be negative: {value!r}")
        return seconds

    position = 0
    total = 0.0
    for match in _DURATION_PART_RE.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position != len(text):
        raise ConfigurationError(f"Invalid duration: {value!r}")
    return total


@dataclass(frozen=True)
class Stage:
    target: float
    duration: float

    @classmethod
    def of(cls, target: float, duration: str | float) -> Stage:
        return cls(target=target, duration=parse_duration(duration))


def _check_stages(stages: tuple[Stage, ...], what: str) -> None:
    if not stages:
        raise ConfigurationError(f"{what} requires a non-empty list of stages")
    for index, stage in enumerate(stages):
        if stage.duration < 0:
            raise ConfigurationError(f"{what} stage {index} has a negative duration")
        if stage.target < 0:
            raise ConfigurationError(f"{what} stage {index} has a negative target")


def _check_pool(pre_allocated_vus: int, max_vus: int, what: str) -> None:
    if pre_allocated_vus < 0:
        raise ConfigurationError(f"{what} pre_allocated_vus must be >= 0")
    if max_vus < 1:
        raise ConfigurationError(f"{what} max_vus must be >= 1")
    if max_vus < pre_allocated_vus:
        raise ConfigurationError(f"{what} max_vus must be >= pre_allocated_vus")


@dataclass(frozen=True)
class RampingArrivalRate:
    """Iteration starts per ``time_unit`` follow the stages."""

    start_rate: float
    stages: tuple[Stage, ...]
    pre_allocated_vus: int
    max_vus: int
    time_unit: float = 1.0
    kind: ClassVar[Literal["ramping-arrival-rate"]] = "ramping-arrival-rate"

    def __post_init__(self) -> None:
        object.__setattr__(self, "stages", tuple(self.stages))
        _check_stages(self.stages, self.kind)
        if self.start_rate < 0:
            raise ConfigurationError(f"{self.kind} start_rate must be >= 0")
        if self.time_unit <= 0:
            raise ConfigurationError(f"{self.kind} time_unit must be > 0")
        _check_pool(self.pre_allocated_vus, self.max_vus, self.kind)

    @property
    def start_value(self) -> float:
        return self.start_rate

    def effective_stages(self) -> tuple[Stage, ...]:
        return self.stages

    @property
    def total_duration(self) -> float:
        return sum(stage.duration for stage in self.stages)


@dataclass(frozen=True)
class ConstantArrivalRate:
    """A fixed number of iteration starts per ``time_unit``."""

    rate: float
    duration: float
    pre_allocated_vus: int
    max_vus: int
    time_unit: float = 1.0
    kind: ClassVar[Literal["constant-arrival-rate"]] = "constant-arrival-rate"

    def __post_init__(self) -> None:
        if self.rate <= 0:
            raise ConfigurationError(f"{self.kind} rate must be > 0")
        if self.duration <= 0:
            raise ConfigurationError(f"{self.kind} duration must be > 0")
        if self.time_unit <= 0:
            raise ConfigurationError(f"{self.kind} time_unit must be > 0")
        _check_pool(self.pre_allocated_vus, self.max_vus, self.kind)

    @property
    def start_value(self) -> float:
        return self.rate

    def effective_stages(self) -> tuple[Stage, ...]:
        return (Stage(target=self.rate, duration=self.duration),)

    @property
    def total_duration(self) -> float:
        return self.duration


@dataclass(frozen=True)
class RampingVUs:
    """The number of looping workers follows the stages."""

    start_vus: int
    stages: tuple[Stage, ...]
    kind: ClassVar[Literal["ramping-vus"]] = "ramping-vus"

    def __post_init__(self) -> None:
        object.__setattr__(self, "stages", tuple(self.stages))
        _check_stages(self.stages, self.kind)
        if self.start_vus < 0:
            raise ConfigurationError(f"{self.kind} start_vus must be >= 0")

    @property
    def start_value(self) -> float:
        return float(self.start_vus)

    def effective_stages(self) -> tuple[Stage, ...]:
        return self.stages

    @property
    def total_duration(self) -> float:
        return sum(stage.duration for stage in self.stages)


@dataclass(frozen=True)
class ConstantVUs:
    """A fixed number of looping workers."""

    vus: int
    duration: float
    kind: ClassVar[Literal["constant-vus"]] = "constant-vus"

    def __post_init__(self) -> None:
        if self.vus < 1:
            raise ConfigurationError(f"{self.kind} vus must be >= 1")
        if self.duration <= 0:
            raise ConfigurationError(f"{self.kind} duration must be > 0")

    @property
    def start_value(self) -> float:
        return float(self.vus)

    def effective_stages(self) -> tuple[Stage, ...]:
        return (Stage(target=self.vus, duration=self.duration),)

    @property
    def total_duration(self) -> float:
        return self.duration


Executor = RampingArrivalRate | ConstantArrivalRate | RampingVUs | ConstantVUs
ArrivalRateExecutor = RampingArrivalRate | ConstantArrivalRate
ConcurrencyExecutor = RampingVUs | ConstantVUs


@dataclass(frozen=True)
class ScenarioConfig:
    """One named workload: an executor plus the iteration routine it drives."""

    name: str
    executor: Executor
    exec: IterationFn
    start_time: float = 0.0
    tags: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ConfigurationError("Scenario name must not be empty")
        if self.start_time < 0:
            raise ConfigurationError(f"Scenario {self.name!r} start_time must be >= 0")
        if not callable(self.exec):
            raise ConfigurationError(f"Scenario {self.name!r} exec must be callable")
