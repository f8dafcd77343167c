"""Read-path workload: logged-in workers browsing the dashboard pages."""

from __future__ import annotations

import asyncio

from ddash_loadtest.metrics.thresholds import parse_thresholds
from ddash_loadtest.scenarios.common import Profile, WorkloadContext
from ddash_loadtest.scheduling.models import RampingVUs, ScenarioConfig, Stage
from ddash_loadtest.scheduling.worker import VirtualUser

PACING_SECONDS = 0.1

# (upper bound of the roll, path, endpoint tag)
READ_MIX: tuple[tuple[float, str, str], ...] = (
    (0.40, "/services/grid?env=all", "services_grid"),
    (0.65, "/deployments", "deployments"),
    (0.85, "/s/orders", "service_detail"),
    (1.00, "/", "home"),
)

THRESHOLDS = {
    "http_req_failed": ["rate<0.01"],
    "http_req_duration{endpoint:home}": ["p(95)<400"],
    "http_req_duration{endpoint:services_grid}": ["p(95)<400"],
    "http_req_duration{endpoint:deployments}": ["p(95)<450"],
    "http_req_duration{endpoint:service_detail}": ["p(95)<450"],
}


def pick_page(roll: float) -> tuple[str, str]:
    for bound, path, endpoint in READ_MIX:
        if roll < bound:
            return path, endpoint
    return READ_MIX[-1][1], READ_MIX[-1][2]


class ReadWorkload:
    def __init__(self, context: WorkloadContext, pacing_seconds: float = PACING_SECONDS) -> None:
        self._context = context
        self._pacing = pacing_seconds

    async def __call__(self, vu: VirtualUser) -> None:
        await self._context.sessions.ensure_session(vu)

        path, endpoint = pick_page(vu.rng.random())
        response = await vu.client.get(path, endpoint=endpoint)
        vu.client.check(
            "read status 200",
            response is not None and response.status_code == 200,
            endpoint=endpoint,
        )
        await asyncio.sleep(self._pacing)


def build_profile(context: WorkloadContext) -> Profile:
    s = context.settings
    executor = RampingVUs(
        start_vus=s.read_start_vus,
        stages=(
            Stage.of(s.read_vus_1, s.read_stage_1),
            Stage.of(s.read_vus_2, s.read_stage_2),
            Stage.of(0, s.read_stage_3),
        ),
    )
    return Profile(
        name="read",
        scenarios=[ScenarioConfig(name="read_mix", executor=executor, exec=ReadWorkload(context))],
        thresholds=parse_thresholds(THRESHOLDS),
    )
