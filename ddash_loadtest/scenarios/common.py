"""Pieces shared by the workloads: their runtime context and threshold sets."""

from __future__ import annotations

from dataclasses import dataclass, field

from ddash_loadtest.config import Settings
from ddash_loadtest.metrics.collector import MetricsCollector
from ddash_loadtest.metrics.thresholds import ThresholdSpec
from ddash_loadtest.scheduling.models import ScenarioConfig
from ddash_loadtest.session import SessionBroker
from ddash_loadtest.signing import RequestSigner


@dataclass
class WorkloadContext:
    """Run-wide collaborators handed to every workload at build time."""

    settings: Settings
    metrics: MetricsCollector
    signer: RequestSigner
    sessions: SessionBroker = field(default_factory=SessionBroker)

    @classmethod
    def from_settings(cls, settings: Settings, metrics: MetricsCollector) -> WorkloadContext:
        return cls(
            settings=settings,
            metrics=metrics,
            signer=RequestSigner(settings.webhook_secret, settings.auth_token),
        )


@dataclass
class Profile:
    """A named set of scenarios run together plus the thresholds that judge them."""

    name: str
    scenarios: list[ScenarioConfig]
    thresholds: list[ThresholdSpec]
