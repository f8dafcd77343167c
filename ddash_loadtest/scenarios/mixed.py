"""Write and read traffic sharing one run window."""

from __future__ import annotations

import asyncio

from ddash_loadtest.events.factory import EventParams, SequenceCounter, build_event, chain_id_for
from ddash_loadtest.metrics.thresholds import parse_thresholds
from ddash_loadtest.scenarios.common import Profile, WorkloadContext
from ddash_loadtest.scheduling.models import (
    ConstantArrivalRate,
    ConstantVUs,
    ScenarioConfig,
    parse_duration,
)
from ddash_loadtest.scheduling.worker import VirtualUser

CHAIN_PREFIX = "mixed-chain"
CHAIN_GROUP_SIZE = 4
INGEST_PACING_SECONDS = 0.02
READ_PACING_SECONDS = 0.08
DETAIL_PATH = "/s/orders"

THRESHOLDS = {
    "http_req_failed": ["rate<0.02"],
    "http_req_duration": ["p(95)<700"],
    "http_req_duration{endpoint:webhook_ingest}": ["p(95)<450"],
    "http_req_duration{endpoint:service_detail}": ["p(95)<600"],
}


def event_params_for(sequence: int) -> EventParams:
    return EventParams(
        type="service.rolledback" if sequence % 6 == 0 else "service.deployed",
        service="orders" if sequence % 2 == 0 else "billing",
        environment="production" if sequence % 3 == 0 else "staging",
        sequence=sequence,
        chain_id=chain_id_for(CHAIN_PREFIX, sequence, CHAIN_GROUP_SIZE),
    )


class MixedIngestWorkload:
    def __init__(
        self, context: WorkloadContext, pacing_seconds: float = INGEST_PACING_SECONDS
    ) -> None:
        self._context = context
        self._sequence = SequenceCounter()
        self._pacing = pacing_seconds

    async def __call__(self, vu: VirtualUser) -> None:
        event = build_event(event_params_for(self._sequence.next()))
        await vu.client.post_webhook(event, self._context.signer)
        await asyncio.sleep(self._pacing)


class MixedReadWorkload:
    def __init__(
        self, context: WorkloadContext, pacing_seconds: float = READ_PACING_SECONDS
    ) -> None:
        self._context = context
        self._pacing = pacing_seconds

    async def __call__(self, vu: VirtualUser) -> None:
        await self._context.sessions.ensure_session(vu)
        response = await vu.client.get(DETAIL_PATH, endpoint="service_detail")
        vu.client.check(
            "service detail 200",
            response is not None and response.status_code == 200,
            endpoint="service_detail",
        )
        await asyncio.sleep(self._pacing)


def build_profile(context: WorkloadContext) -> Profile:
    s = context.settings
    duration = parse_duration(s.mixed_duration)
    ingest = ConstantArrivalRate(
        rate=s.mixed_ingest_rps,
        duration=duration,
        pre_allocated_vus=s.mixed_ingest_pre_vus,
        max_vus=s.mixed_ingest_max_vus,
    )
    read = ConstantVUs(vus=s.mixed_read_vus, duration=duration)
    return Profile(
        name="mixed",
        scenarios=[
            ScenarioConfig(name="mixed_ingest", executor=ingest, exec=MixedIngestWorkload(context)),
            ScenarioConfig(name="mixed_read", executor=read, exec=MixedReadWorkload(context)),
        ],
        thresholds=parse_thresholds(THRESHOLDS),
    )
