"""Built-in workload profiles."""

from collections.abc import Callable

from ddash_loadtest.scenarios import ingest, mixed, read
from ddash_loadtest.scenarios.common import Profile, WorkloadContext

PROFILES: dict[str, Callable[[WorkloadContext], Profile]] = {
    "ingest": ingest.build_profile,
    "read": read.build_profile,
    "mixed": mixed.build_profile,
}

__all__ = ["PROFILES", "Profile", "WorkloadContext"]
