"""Short event-type names and the versioned CDEvents types they stand for."""

from types import MappingProxyType

EVENT_TYPE_CATALOG: MappingProxyType[str, str] = MappingProxyType(
    {
        "service.deployed": "dev.cdevents.service.deployed.0.3.0",
        "service.upgraded": "dev.cdevents.service.upgraded.0.3.0",
        "service.rolledback": "dev.cdevents.service.rolledback.0.3.0",
        "service.removed": "dev.cdevents.service.removed.0.3.0",
        "service.published": "dev.cdevents.service.published.0.3.0",
        "environment.created": "dev.cdevents.environment.created.0.3.0",
        "environment.modified": "dev.cdevents.environment.modified.0.3.0",
        "environment.deleted": "dev.cdevents.environment.deleted.0.3.0",
    }
)

_VERSIONED_TYPES = frozenset(EVENT_TYPE_CATALOG.values())


def resolve_event_type(name: str) -> str:
    """Return the versioned type for *name*, or *name* itself if not catalogued."""
    return EVENT_TYPE_CATALOG.get(name, name)


def is_catalogued(name: str) -> bool:
    return name in EVENT_TYPE_CATALOG or name in _VERSIONED_TYPES
