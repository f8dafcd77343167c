"""One load-test run: build the profile, drive it, judge the thresholds."""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

from ddash_loadtest.config import Settings
from ddash_loadtest.errors import ConfigurationError
from ddash_loadtest.metrics.collector import MetricsCollector
from ddash_loadtest.metrics.thresholds import ThresholdResult, ThresholdSpec, all_passed
from ddash_loadtest.scenarios import PROFILES
from ddash_loadtest.scenarios.common import Profile, WorkloadContext
from ddash_loadtest.scheduling.driver import ScenarioDriver, ScenarioStats
from ddash_loadtest.scheduling.models import ScenarioConfig
from ddash_loadtest.target import TargetClient, build_http_client

logger = structlog.get_logger()


@dataclass
class RunResult:
    profile: str
    run_id: str
    scenarios: dict[str, ScenarioStats]
    thresholds: list[ThresholdResult]
    metrics: dict[str, dict[str, Any]]
    per_endpoint: dict[str, dict[str, Any]]
    checks: dict[str, dict[str, int]]
    elapsed_seconds: float
    started_at: datetime
    settings: dict[str, Any] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return all_passed(self.thresholds)

    @property
    def breached(self) -> list[ThresholdResult]:
        return [result for result in self.thresholds if not result.passed]


class LoadTestRun:
    """Drives a profile against the target and evaluates it afterwards.

    Configuration problems surface from the constructor or :meth:`prepare`,
    before any request is sent. Once traffic starts, the run always
    completes and returns a :class:`RunResult`.
    """

    def __init__(
        self,
        settings: Settings,
        profile: str,
        *,
        thresholds: Sequence[ThresholdSpec] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if profile not in PROFILES:
            raise ConfigurationError(
                f"Unknown profile {profile!r}; expected one of {sorted(PROFILES)}"
            )
        self.settings = settings
        self.metrics = MetricsCollector()
        self.context = WorkloadContext.from_settings(settings, self.metrics)
        self.profile: Profile = PROFILES[profile](self.context)
        if thresholds is not None:
            self.profile.thresholds = list(thresholds)
        self.metrics.validate(self.profile.thresholds)
        self._transport = transport

    def _client_for(self, scenario: ScenarioConfig) -> TargetClient:
        client = build_http_client(
            self.settings.base_url,
            self.settings.request_timeout_seconds,
            transport=self._transport,
        )
        return TargetClient(client, self.metrics, tags={"scenario": scenario.name})

    async def execute(self) -> RunResult:
        run_id = uuid.uuid4().hex[:12]
        structlog.contextvars.bind_contextvars(run_id=run_id)
        started_at = datetime.now(UTC)
        try:
            logger.info(
                "run_started",
                profile=self.profile.name,
                base_url=self.settings.base_url,
                scenarios=[s.name for s in self.profile.scenarios],
            )
            driver = ScenarioDriver(self.metrics, self._client_for, seed=self.settings.seed)
            self.metrics.start()
            try:
                stats = await driver.run(self.profile.scenarios)
            finally:
                self.metrics.stop()

            results = self.metrics.evaluate(self.profile.thresholds)
            result = RunResult(
                profile=self.profile.name,
                run_id=run_id,
                scenarios=stats,
                thresholds=results,
                metrics=self.metrics.summary(),
                per_endpoint=self.metrics.per_endpoint(),
                checks=self.metrics.checks(),
                elapsed_seconds=self.metrics.elapsed_seconds,
                started_at=started_at,
                settings={
                    "base_url": self.settings.base_url,
                    "include_custom_types": self.settings.ingest_include_custom_types,
                    "seed": self.settings.seed,
                },
            )
            logger.info(
                "run_finished",
                profile=self.profile.name,
                passed=result.passed,
                breached=len(result.breached),
                elapsed_seconds=round(result.elapsed_seconds, 2),
            )
            return result
        finally:
            structlog.contextvars.unbind_contextvars("run_id")
