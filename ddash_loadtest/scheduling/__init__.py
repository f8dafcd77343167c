"""Traffic shaping: executor models, timeline math and the scenario driver."""

from ddash_loadtest.scheduling.driver import ScenarioDriver, ScenarioStats
from ddash_loadtest.scheduling.models import (
    ConstantArrivalRate,
    ConstantVUs,
    Executor,
    RampingArrivalRate,
    RampingVUs,
    ScenarioConfig,
    Stage,
    parse_duration,
)
from ddash_loadtest.scheduling.worker import VirtualUser

__all__ = [
    "ConstantArrivalRate",
    "ConstantVUs",
    "Executor",
    "RampingArrivalRate",
    "RampingVUs",
    "ScenarioConfig",
    "ScenarioDriver",
    "ScenarioStats",
    "Stage",
    "VirtualUser",
    "parse_duration",
]
