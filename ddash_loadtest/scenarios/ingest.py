"""Write-path workload: signed deployment events at a ramping arrival rate."""

from __future__ import annotations

import asyncio

from ddash_loadtest.events.factory import EventParams, SequenceCounter, build_event, chain_id_for
from ddash_loadtest.metrics.thresholds import parse_thresholds
from ddash_loadtest.scenarios.common import Profile, WorkloadContext
from ddash_loadtest.scheduling.models import RampingArrivalRate, ScenarioConfig, Stage
from ddash_loadtest.scheduling.worker import VirtualUser

INGEST_LATENCY_METRIC = "ingest_latency_ms"
CUSTOM_EVENT_TYPE = "dev.cdevents.pipeline.run.started.0.3.0"
CHAIN_PREFIX = "lt-chain"
CHAIN_GROUP_SIZE = 3
PACING_SECONDS = 0.05

THRESHOLDS = {
    "http_req_failed": ["rate<0.01"],
    "http_req_duration": ["p(95)<500"],
    INGEST_LATENCY_METRIC: ["p(95)<350"],
}


def event_params_for(sequence: int, include_custom_types: bool = False) -> EventParams:
    """Deterministic event mix keyed on ``sequence % 10``.

    Slots 7 and 8 send rollbacks and publishes. Slot 9 sends an
    uncatalogued pipeline type when custom types are enabled and falls
    back to ``service.deployed`` otherwise.
    """
    selector = sequence % 10
    event_type = "service.deployed"
    if selector == 7:
        event_type = "service.rolledback"
    elif selector == 8:
        event_type = "service.published"
    elif selector == 9 and include_custom_types:
        event_type = CUSTOM_EVENT_TYPE

    return EventParams(
        type=event_type,
        service="orders" if selector % 2 == 0 else "billing",
        environment="production" if selector % 3 == 0 else "staging",
        sequence=sequence,
        chain_id=chain_id_for(CHAIN_PREFIX, sequence, CHAIN_GROUP_SIZE),
        pipeline_run=f"lt-run-{sequence}",
    )


class IngestWorkload:
    def __init__(self, context: WorkloadContext, pacing_seconds: float = PACING_SECONDS) -> None:
        self._context = context
        self._sequence = SequenceCounter()
        self._include_custom = context.settings.ingest_include_custom_types
        self._pacing = pacing_seconds
        context.metrics.trend(INGEST_LATENCY_METRIC)

    async def __call__(self, vu: VirtualUser) -> None:
        sequence = self._sequence.next()
        event = build_event(event_params_for(sequence, self._include_custom))

        t0 = asyncio.get_running_loop().time()
        await vu.client.post_webhook(event, self._context.signer)
        elapsed_ms = (asyncio.get_running_loop().time() - t0) * 1000.0
        self._context.metrics.record(
            INGEST_LATENCY_METRIC, elapsed_ms, {"scenario": vu.scenario}
        )
        await asyncio.sleep(self._pacing)


def build_profile(context: WorkloadContext) -> Profile:
    s = context.settings
    executor = RampingArrivalRate(
        start_rate=s.ingest_start_rps,
        stages=(
            Stage.of(s.ingest_rps_1, s.ingest_stage_1),
            Stage.of(s.ingest_rps_2, s.ingest_stage_2),
            Stage.of(s.ingest_rps_3, s.ingest_stage_3),
        ),
        pre_allocated_vus=s.pre_vus,
        max_vus=s.max_vus,
    )
    return Profile(
        name="ingest",
        scenarios=[
            ScenarioConfig(name="ingest_step", executor=executor, exec=IngestWorkload(context))
        ],
        thresholds=parse_thresholds(THRESHOLDS),
    )
