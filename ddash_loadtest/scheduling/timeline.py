"""Stage interpolation and arrival-time math.

Within a stage the effective value moves linearly from the previous
target (or the start value) to the stage's own target.
"""

from __future__ import annotations

import math
from collections.abc import Iterator, Sequence

from ddash_loadtest.scheduling.models import Stage

_EPSILON = 1e-9


def value_at(start: float, stages: Sequence[Stage], elapsed: float) -> float | None:
    """Effective target at *elapsed* seconds, or ``None`` once all stages are over."""
    if elapsed < 0:
        return start
    previous = start
    stage_start = 0.0
    for stage in stages:
        stage_end = stage_start + stage.duration
        if elapsed < stage_end:
            fraction = (elapsed - stage_start) / stage.duration
            return previous + (stage.target - previous) * fraction
        previous = stage.target
        stage_start = stage_end
    return None


def arrival_offsets(
    start_rate: float, stages: Sequence[Stage], time_unit: float = 1.0
) -> Iterator[float]:
    """Yield the start offset (seconds) of every arrival-rate iteration.

    Iteration ``k`` (from 0) starts when the integral of the rate reaches
    ``k``, solved in closed form per stage.
    """
    emitted = 0
    completed = 0.0
    stage_start = 0.0
    r0 = start_rate / time_unit

    for stage in stages:
        r1 = stage.target / time_unit
        duration = stage.duration
        if duration <= 0:
            r0 = r1
            continue

        accel = (r1 - r0) / duration
        stage_total = (r0 + r1) / 2.0 * duration
        while emitted < completed + stage_total - _EPSILON:
            needed = emitted - completed
            if abs(accel) < _EPSILON:
                offset = needed / r0
            else:
                discriminant = max(r0 * r0 + 2.0 * accel * needed, 0.0)
                offset = (-r0 + math.sqrt(discriminant)) / accel
            yield stage_start + min(max(offset, 0.0), duration)
            emitted += 1

        completed += stage_total
        stage_start += duration
        r0 = r1


def expected_iterations(
    start_rate: float, stages: Sequence[Stage], time_unit: float = 1.0
) -> float:
    """Area under the rate curve: the number of iterations the stages call for."""
    total = 0.0
    previous = start_rate / time_unit
    for stage in stages:
        current = stage.target / time_unit
        total += (previous + current) / 2.0 * stage.duration
        previous = current
    return total
