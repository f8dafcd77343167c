"""Tests for the scenario driver and its executors."""

import asyncio

import pytest

from ddash_loadtest.metrics.collector import DROPPED_ITERATIONS, ITERATION_DURATION, ITERATIONS
from ddash_loadtest.scheduling.driver import ScenarioDriver
from ddash_loadtest.scheduling.models import (
    ConstantArrivalRate,
    ConstantVUs,
    RampingArrivalRate,
    RampingVUs,
    ScenarioConfig,
    Stage,
)
from ddash_loadtest.target import TargetClient, build_http_client


@pytest.fixture
def driver(metrics, mock_ddash):
    def client_factory(config):
        client = build_http_client("http://ddash.test", 5.0, transport=mock_ddash.transport)
        return TargetClient(client, metrics, tags={"scenario": config.name})

    return ScenarioDriver(metrics, client_factory, seed=11)


def sleeper(seconds):
    async def _iteration(vu):
        await asyncio.sleep(seconds)

    return _iteration


class ConcurrencyProbe:
    """Iteration routine that records how many iterations overlap."""

    def __init__(self, seconds):
        self.seconds = seconds
        self.current = 0
        self.samples = []
        self.started = None

    async def __call__(self, vu):
        loop = asyncio.get_running_loop()
        if self.started is None:
            self.started = loop.time()
        self.current += 1
        self.samples.append((loop.time() - self.started, self.current))
        try:
            await asyncio.sleep(self.seconds)
        finally:
            self.current -= 1


class TestArrivalRate:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("iteration_seconds", [0.01, 0.25])
    async def test_constant_rate_independent_of_iteration_time(self, driver, iteration_seconds):
        scenario = ScenarioConfig(
            name="ingest",
            executor=ConstantArrivalRate(rate=20, duration=1.0, pre_allocated_vus=2, max_vus=50),
            exec=sleeper(iteration_seconds),
        )
        stats = (await driver.run([scenario]))["ingest"]

        assert stats.iterations == 20
        assert stats.dropped_iterations == 0
        assert stats.workers_created <= 50

    @pytest.mark.asyncio
    async def test_pool_exhaustion_drops_iterations(self, driver, metrics):
        scenario = ScenarioConfig(
            name="ingest",
            executor=ConstantArrivalRate(rate=20, duration=1.0, pre_allocated_vus=1, max_vus=2),
            exec=sleeper(0.5),
        )
        stats = (await driver.run([scenario]))["ingest"]

        assert stats.dropped_iterations > 0
        assert stats.iterations + stats.dropped_iterations == 20
        assert stats.workers_created == 2
        assert stats.peak_concurrency <= 2
        assert metrics.aggregate(DROPPED_ITERATIONS, "count") == stats.dropped_iterations

    @pytest.mark.asyncio
    async def test_ramping_rate_follows_area(self, driver):
        scenario = ScenarioConfig(
            name="ingest",
            executor=RampingArrivalRate(
                start_rate=0,
                stages=[Stage(20, 0.5), Stage(20, 0.5)],
                pre_allocated_vus=5,
                max_vus=20,
            ),
            exec=sleeper(0.01),
        )
        stats = (await driver.run([scenario]))["ingest"]
        assert 14 <= stats.iterations <= 16
        assert stats.expected_iterations == pytest.approx(15.0)
        assert stats.as_dict()["expected_iterations"] == 15.0

    @pytest.mark.asyncio
    async def test_in_flight_iterations_complete(self, driver):
        finished = []

        async def slow(vu):
            await asyncio.sleep(0.4)
            finished.append(vu.index)

        scenario = ScenarioConfig(
            name="ingest",
            executor=ConstantArrivalRate(rate=10, duration=0.3, pre_allocated_vus=5, max_vus=5),
            exec=slow,
        )
        stats = (await driver.run([scenario]))["ingest"]

        assert stats.iterations == 3
        assert len(finished) == 3
        assert stats.elapsed_seconds >= 0.4


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_ramping_vus_respects_stage_targets(self, driver):
        probe = ConcurrencyProbe(0.02)
        scenario = ScenarioConfig(
            name="read_mix",
            executor=RampingVUs(start_vus=0, stages=[Stage(5, 0.5), Stage(20, 0.5)]),
            exec=probe,
        )
        stats = (await driver.run([scenario]))["read_mix"]

        first_stage = [current for offset, current in probe.samples if offset < 0.3]
        assert first_stage
        assert max(first_stage) <= 5
        assert max(current for _, current in probe.samples) <= 20
        assert stats.peak_concurrency <= 20
        assert stats.workers_created <= 20
        assert stats.iterations > 0

    @pytest.mark.asyncio
    async def test_constant_vus_hold_worker_count(self, driver):
        probe = ConcurrencyProbe(0.05)
        scenario = ScenarioConfig(
            name="mixed_read",
            executor=ConstantVUs(vus=3, duration=0.5),
            exec=probe,
        )
        stats = (await driver.run([scenario]))["mixed_read"]

        assert stats.workers_created == 3
        assert stats.peak_concurrency == 3
        assert stats.expected_iterations is None
        assert stats.iterations >= 3 * 5

    @pytest.mark.asyncio
    async def test_running_iterations_are_not_cancelled(self, driver):
        finished = []

        async def slow(vu):
            await asyncio.sleep(0.4)
            finished.append(vu.index)

        scenario = ScenarioConfig(
            name="mixed_read", executor=ConstantVUs(vus=2, duration=0.2), exec=slow
        )
        stats = (await driver.run([scenario]))["mixed_read"]

        assert sorted(finished) == [0, 1]
        assert stats.iterations == 2
        assert stats.elapsed_seconds >= 0.4

    @pytest.mark.asyncio
    async def test_ramp_down_then_up_never_exceeds_target(self, driver):
        probe = ConcurrencyProbe(0.4)
        scenario = ScenarioConfig(
            name="read_mix",
            executor=RampingVUs(
                start_vus=4, stages=[Stage(4, 0.2), Stage(0, 0.02), Stage(4, 0.3)]
            ),
            exec=probe,
        )
        stats = (await driver.run([scenario]))["read_mix"]

        assert max(current for _, current in probe.samples) <= 4
        assert stats.peak_concurrency <= 4
        assert stats.workers_created <= 4

    @pytest.mark.asyncio
    async def test_ramp_down_lets_running_iterations_finish(self, driver):
        finished = []

        async def slow(vu):
            await asyncio.sleep(0.3)
            finished.append(vu.index)

        scenario = ScenarioConfig(
            name="read_mix",
            executor=RampingVUs(start_vus=4, stages=[Stage(4, 0.1), Stage(0, 0.1)]),
            exec=slow,
        )
        stats = (await driver.run([scenario]))["read_mix"]

        assert sorted(finished) == [0, 1, 2, 3]
        assert stats.iterations == 4
        assert stats.elapsed_seconds >= 0.3

    @pytest.mark.asyncio
    async def test_non_suspending_iterations_share_the_loop(self, driver):
        seen = set()

        async def fast(vu):
            seen.add(vu.index)

        scenarios = [
            ScenarioConfig(name="mixed_read", executor=ConstantVUs(vus=3, duration=0.2), exec=fast),
            ScenarioConfig(
                name="mixed_ingest",
                executor=ConstantArrivalRate(rate=10, duration=0.2, pre_allocated_vus=1, max_vus=2),
                exec=sleeper(0),
            ),
        ]
        stats = await driver.run(scenarios)

        assert seen == {0, 1, 2}
        assert stats["mixed_read"].workers_created == 3
        assert stats["mixed_ingest"].iterations == 2


class TestDriver:
    @pytest.mark.asyncio
    async def test_iteration_exceptions_are_counted(self, driver, metrics):
        async def broken(vu):
            raise RuntimeError("boom")

        scenario = ScenarioConfig(
            name="ingest",
            executor=ConstantArrivalRate(rate=10, duration=0.5, pre_allocated_vus=2, max_vus=2),
            exec=broken,
        )
        stats = (await driver.run([scenario]))["ingest"]

        assert stats.iterations == 5
        assert stats.iteration_errors == 5
        assert metrics.aggregate(ITERATIONS, "count") == 5.0
        assert metrics.aggregate(ITERATION_DURATION, "count") == 5.0

    @pytest.mark.asyncio
    async def test_scenarios_run_concurrently(self, driver):
        scenarios = [
            ScenarioConfig(
                name="mixed_ingest",
                executor=ConstantArrivalRate(rate=10, duration=0.5, pre_allocated_vus=2, max_vus=5),
                exec=sleeper(0.01),
            ),
            ScenarioConfig(
                name="mixed_read", executor=ConstantVUs(vus=2, duration=0.5), exec=sleeper(0.05)
            ),
        ]
        loop = asyncio.get_running_loop()
        started = loop.time()
        stats = await driver.run(scenarios)

        assert set(stats) == {"mixed_ingest", "mixed_read"}
        assert loop.time() - started < 0.9
        assert stats["mixed_ingest"].iterations == 5

    @pytest.mark.asyncio
    async def test_start_time_delays_scenario(self, driver):
        loop = asyncio.get_running_loop()
        started = loop.time()
        first = []

        async def record(vu):
            first.append(loop.time() - started)

        scenario = ScenarioConfig(
            name="late",
            executor=ConstantArrivalRate(rate=10, duration=0.2, pre_allocated_vus=1, max_vus=1),
            exec=record,
            start_time=0.2,
        )
        await driver.run([scenario])
        assert min(first) >= 0.19

    @pytest.mark.asyncio
    async def test_duplicate_names_rejected(self, driver):
        scenario = ScenarioConfig(name="x", executor=ConstantVUs(1, 0.1), exec=sleeper(0))
        with pytest.raises(ValueError):
            await driver.run([scenario, scenario])

    @pytest.mark.asyncio
    async def test_seeded_worker_rngs_are_reproducible(self, metrics, mock_ddash):
        def factory(config):
            client = build_http_client("http://ddash.test", 5.0, transport=mock_ddash.transport)
            return TargetClient(client, metrics)

        draws = []
        for _ in range(2):
            seen = {}

            async def draw(vu, seen=seen):
                seen.setdefault(vu.index, vu.rng.random())

            scenario = ScenarioConfig(
                name="read_mix", executor=ConstantVUs(vus=2, duration=0.1), exec=draw
            )
            await ScenarioDriver(metrics, factory, seed=42).run([scenario])
            draws.append(seen)

        assert draws[0] == draws[1]
        assert draws[0][0] != draws[0][1]
