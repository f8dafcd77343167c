"""Run scenarios under their executor models on one asyncio event loop.

Arrival-rate executors start iterations on a fixed schedule, taking an idle
worker from a bounded pool for each start; when the pool is exhausted the
iteration is dropped and counted in ``dropped_iterations``. Concurrency
executors keep a target number of workers looping their iteration back to
back.

When a scenario's duration ends no new iteration starts; iterations already
running are awaited, never cancelled.
"""

from __future__ import annotations

import asyncio
import math
import random
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from ddash_loadtest.metrics.collector import (
    DROPPED_ITERATIONS,
    ITERATION_DURATION,
    ITERATIONS,
    MetricsCollector,
)
from ddash_loadtest.scheduling.models import (
    ConstantArrivalRate,
    ConstantVUs,
    RampingArrivalRate,
    RampingVUs,
    ScenarioConfig,
)
from ddash_loadtest.scheduling.timeline import arrival_offsets, expected_iterations, value_at
from ddash_loadtest.scheduling.worker import VirtualUser
from ddash_loadtest.target import TargetClient

logger = structlog.get_logger()

# How often a concurrency executor re-reads its worker target.
CONTROL_INTERVAL_SECONDS = 0.05

ClientFactory = Callable[[ScenarioConfig], TargetClient]


@dataclass
class ScenarioStats:
    name: str
    executor: str
    iterations: int = 0
    dropped_iterations: int = 0
    iteration_errors: int = 0
    peak_concurrency: int = 0
    workers_created: int = 0
    elapsed_seconds: float = 0.0
    # Arrival-rate executors only: the iteration count the stages call for.
    expected_iterations: float | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "executor": self.executor,
            "iterations": self.iterations,
            "dropped_iterations": self.dropped_iterations,
            "iteration_errors": self.iteration_errors,
            "peak_concurrency": self.peak_concurrency,
            "workers_created": self.workers_created,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "expected_iterations": (
                None
                if self.expected_iterations is None
                else round(self.expected_iterations, 2)
            ),
        }


@dataclass
class _ScenarioRun:
    """Mutable bookkeeping for one scenario while it runs."""

    config: ScenarioConfig
    stats: ScenarioStats
    tags: dict[str, str]
    workers: list[VirtualUser] = field(default_factory=list)
    busy: int = 0

    def iteration_started(self) -> None:
        self.busy += 1
        self.stats.peak_concurrency = max(self.stats.peak_concurrency, self.busy)

    def iteration_finished(self) -> None:
        self.busy -= 1


class ScenarioDriver:
    """Executes scenarios concurrently and independently within one run."""

    def __init__(
        self,
        metrics: MetricsCollector,
        client_factory: ClientFactory,
        seed: int | None = None,
    ) -> None:
        self._metrics = metrics
        self._client_factory = client_factory
        self._seed = seed

    async def run(self, scenarios: Sequence[ScenarioConfig]) -> dict[str, ScenarioStats]:
        names = [scenario.name for scenario in scenarios]
        if len(set(names)) != len(names):
            raise ValueError(f"Scenario names must be unique: {names}")

        stats = await asyncio.gather(*(self._run_scenario(s) for s in scenarios))
        return {s.name: s for s in stats}

    # ---- per-scenario dispatch ----------------------------------------------

    async def _run_scenario(self, config: ScenarioConfig) -> ScenarioStats:
        run = _ScenarioRun(
            config=config,
            stats=ScenarioStats(name=config.name, executor=config.executor.kind),
            tags={**config.tags, "scenario": config.name},
        )
        if config.start_time > 0:
            await asyncio.sleep(config.start_time)

        logger.info(
            "scenario_started",
            scenario=config.name,
            executor=config.executor.kind,
            duration_seconds=config.executor.total_duration,
        )
        started = time.monotonic()
        try:
            executor = config.executor
            if isinstance(executor, (RampingArrivalRate, ConstantArrivalRate)):
                await self._run_arrival_rate(run, executor)
            elif isinstance(executor, (RampingVUs, ConstantVUs)):
                await self._run_concurrency(run, executor)
            else:
                raise TypeError(f"Unsupported executor: {executor!r}")
        finally:
            await asyncio.gather(*(vu.client.aclose() for vu in run.workers))
            run.stats.elapsed_seconds = time.monotonic() - started

        logger.info("scenario_finished", scenario=config.name, **run.stats.as_dict())
        return run.stats

    # ---- arrival-rate executors ---------------------------------------------

    async def _run_arrival_rate(
        self, run: _ScenarioRun, executor: RampingArrivalRate | ConstantArrivalRate
    ) -> None:
        idle: list[VirtualUser] = [
            self._new_worker(run) for _ in range(executor.pre_allocated_vus)
        ]
        in_flight: set[asyncio.Task[None]] = set()
        warned = False

        async def _iterate_and_release(vu: VirtualUser) -> None:
            try:
                await self._iterate(run, vu)
            finally:
                idle.append(vu)

        loop = asyncio.get_running_loop()
        start = loop.time()
        stages = executor.effective_stages()
        run.stats.expected_iterations = expected_iterations(
            executor.start_value, stages, executor.time_unit
        )
        offsets = arrival_offsets(executor.start_value, stages, executor.time_unit)
        for offset in offsets:
            delay = start + offset - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)

            if idle:
                vu = idle.pop()
            elif len(run.workers) < executor.max_vus:
                vu = self._new_worker(run)
            else:
                run.stats.dropped_iterations += 1
                self._metrics.add(DROPPED_ITERATIONS, run.tags)
                if not warned:
                    warned = True
                    logger.warning(
                        "insufficient_vus",
                        scenario=run.config.name,
                        max_vus=executor.max_vus,
                        in_flight=len(in_flight),
                    )
                continue

            task = asyncio.create_task(_iterate_and_release(vu))
            in_flight.add(task)
            task.add_done_callback(in_flight.discard)

        if in_flight:
            logger.debug("draining_iterations", scenario=run.config.name, count=len(in_flight))
            await asyncio.gather(*in_flight)

    # ---- concurrency executors ----------------------------------------------

    async def _run_concurrency(
        self, run: _ScenarioRun, executor: RampingVUs | ConstantVUs
    ) -> None:
        loop = asyncio.get_running_loop()
        start = loop.time()
        deadline = start + executor.total_duration
        stages = executor.effective_stages()

        idle: list[VirtualUser] = []
        active: dict[VirtualUser, asyncio.Event] = {}
        # Retired workers still finishing their current iteration.
        draining: dict[VirtualUser, asyncio.Event] = {}
        loops: set[asyncio.Task[None]] = set()

        async def _loop(vu: VirtualUser, retire: asyncio.Event) -> None:
            try:
                while not retire.is_set() and loop.time() < deadline:
                    await self._iterate(run, vu)
                    await asyncio.sleep(0)
            finally:
                draining.pop(vu, None)
                idle.append(vu)

        while True:
            now = loop.time()
            target = value_at(executor.start_value, stages, now - start)
            if target is None or now >= deadline:
                break

            desired = math.floor(target + 1e-9)
            while len(active) < desired:
                if draining:
                    # Revive draining workers before adding new ones.
                    vu, retire = draining.popitem()
                    retire.clear()
                    active[vu] = retire
                    continue
                vu = idle.pop() if idle else self._new_worker(run)
                retire = asyncio.Event()
                active[vu] = retire
                task = asyncio.create_task(_loop(vu, retire))
                loops.add(task)
                task.add_done_callback(loops.discard)
            while len(active) > desired:
                # Newest workers retire first; each finishes its current iteration.
                vu, retire = active.popitem()
                retire.set()
                draining[vu] = retire

            await asyncio.sleep(min(CONTROL_INTERVAL_SECONDS, max(deadline - loop.time(), 0.0)))

        for retire in active.values():
            retire.set()
        if loops:
            await asyncio.gather(*loops)

    # ---- shared helpers -----------------------------------------------------

    def _new_worker(self, run: _ScenarioRun) -> VirtualUser:
        index = len(run.workers)
        seed = None if self._seed is None else f"{self._seed}:{run.config.name}:{index}"
        rng = random.Random(seed)
        vu = VirtualUser(
            index=index,
            scenario=run.config.name,
            client=self._client_factory(run.config),
            rng=rng,
        )
        run.workers.append(vu)
        run.stats.workers_created += 1
        return vu

    async def _iterate(self, run: _ScenarioRun, vu: VirtualUser) -> None:
        run.iteration_started()
        t0 = time.perf_counter()
        try:
            await run.config.exec(vu)
        except Exception:
            run.stats.iteration_errors += 1
            logger.exception("iteration_failed", scenario=run.config.name, vu=vu.index)
        finally:
            elapsed_ms = (time.perf_counter() - t0) * 1000.0
            run.iteration_finished()
            run.stats.iterations += 1
            self._metrics.add(ITERATIONS, run.tags)
            self._metrics.record(ITERATION_DURATION, elapsed_ms, run.tags)
