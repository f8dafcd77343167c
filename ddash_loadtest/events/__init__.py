"""Deployment-lifecycle event construction."""

from ddash_loadtest.events.catalog import EVENT_TYPE_CATALOG, is_catalogued, resolve_event_type
from ddash_loadtest.events.factory import (
    DomainEvent,
    EventParams,
    SequenceCounter,
    build_event,
    chain_id_for,
)

__all__ = [
    "EVENT_TYPE_CATALOG",
    "DomainEvent",
    "EventParams",
    "SequenceCounter",
    "build_event",
    "chain_id_for",
    "is_catalogued",
    "resolve_event_type",
]
