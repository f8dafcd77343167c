"""Build CDEvents-style deployment events from sparse parameters."""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from ddash_loadtest.events.catalog import resolve_event_type

SPEC_VERSION = "0.5.0"
DEFAULT_SOURCE = "loadtest/ddash-loadtest"


def utc_now() -> datetime:
    return datetime.now(UTC)


class _WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class EventContext(_WireModel):
    id: str
    source: str
    type: str
    timestamp: datetime
    spec_version: str = Field(default=SPEC_VERSION, alias="specversion")
    chain_id: str | None = Field(default=None, alias="chainId")


class Environment(_WireModel):
    id: str


class Pipeline(_WireModel):
    run_id: str = Field(alias="runId")
    url: str = ""


class Actor(_WireModel):
    name: str


class SubjectContent(_WireModel):
    environment: Environment
    artifact_id: str = Field(alias="artifactId")
    pipeline: Pipeline
    actor: Actor


class EventSubject(_WireModel):
    id: str
    source: str
    content: SubjectContent


class DomainEvent(_WireModel):
    context: EventContext
    subject: EventSubject

    def to_bytes(self) -> bytes:
        """Serialize to the exact byte sequence that is signed and sent."""
        return self.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")


@dataclass(frozen=True)
class EventParams:
    """Sparse inputs for :func:`build_event`.

    ``sequence`` drives every derived identifier; when it is ``None`` the
    clock reading in epoch milliseconds is used instead. ``0`` is a valid
    sequence number.
    """

    service: str = "orders"
    environment: str = "staging"
    type: str = "service.deployed"
    sequence: int | None = None
    chain_id: str | None = None
    source: str = DEFAULT_SOURCE
    artifact: str | None = None
    pipeline_run: str | None = None
    pipeline_url: str = ""
    actor: str = "loadtest-bot"
    event_id: str | None = None


def build_event(
    params: EventParams | None = None,
    *,
    clock: Callable[[], datetime] = utc_now,
) -> DomainEvent:
    """Build a deployment event, filling every missing field with its default."""
    params = params or EventParams()
    now = clock()
    discriminator = (
        params.sequence if params.sequence is not None else int(now.timestamp() * 1000)
    )

    return DomainEvent(
        context=EventContext(
            id=params.event_id or f"lt-{params.service}-{discriminator}",
            source=params.source,
            type=resolve_event_type(params.type),
            timestamp=now,
            chain_id=params.chain_id,
        ),
        subject=EventSubject(
            id=f"service/{params.service}",
            source=params.source,
            content=SubjectContent(
                environment=Environment(id=params.environment),
                artifact_id=params.artifact or f"pkg:generic/{params.service}@{discriminator}",
                pipeline=Pipeline(
                    run_id=params.pipeline_run or f"run-{discriminator}",
                    url=params.pipeline_url,
                ),
                actor=Actor(name=params.actor),
            ),
        ),
    )


def chain_id_for(prefix: str, sequence: int, group_size: int) -> str:
    """Group *group_size* consecutive sequence numbers under one chain id."""
    return f"{prefix}-{sequence // group_size}"


class SequenceCounter:
    """Monotonic counter shared by every worker of a workload."""

    def __init__(self, start: int = 0) -> None:
        self._value = start
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            self._value += 1
            return self._value
