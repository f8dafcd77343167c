"""A worker ("virtual user"): the state one iteration routine sees."""

from __future__ import annotations

import random

from ddash_loadtest.session import WorkerSessionState
from ddash_loadtest.target import TargetClient


class VirtualUser:
    def __init__(
        self,
        index: int,
        scenario: str,
        client: TargetClient,
        rng: random.Random | None = None,
    ) -> None:
        self.index = index
        self.scenario = scenario
        self.client = client
        self.rng = rng or random.Random()
        self.session = WorkerSessionState()

    def __repr__(self) -> str:
        return f"VirtualUser(scenario={self.scenario!r}, index={self.index})"
