"""Read-path sessions established through the dev login endpoint."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from ddash_loadtest.scheduling.worker import VirtualUser

logger = structlog.get_logger()

LOGIN_PATH = "/auth/dev/login"
REDIRECT_STATUSES = frozenset({302, 303})


@dataclass(frozen=True)
class LoginIdentity:
    email: str = "loadtest-admin@example.local"
    nickname: str = "loadtest-user"
    name: str = "Load Test User"
    next_path: str = "/"

    def form(self) -> dict[str, str]:
        return {
            "email": self.email,
            "nickname": self.nickname,
            "name": self.name,
            "next": self.next_path,
        }


@dataclass
class WorkerSessionState:
    """Per-worker login state. Never shared between workers.

    The session cookie itself lives in the cookie jar of the worker's own
    HTTP client.
    """

    active: bool = False


class SessionBroker:
    """Logs each worker in once and leaves it logged in for the run.

    A login that does not redirect is recorded as a failed check, but the
    worker still counts as logged in: later reads may then fail with 401,
    and that degraded behaviour is what gets measured.
    """

    def __init__(self, identity: LoginIdentity | None = None) -> None:
        self.identity = identity or LoginIdentity()

    async def ensure_session(self, vu: VirtualUser) -> None:
        state = vu.session
        if state.active:
            return

        response = await vu.client.post(
            LOGIN_PATH,
            endpoint="dev_login",
            data=self.identity.form(),
        )
        redirected = response is not None and response.status_code in REDIRECT_STATUSES
        vu.client.check("dev login redirect", redirected, endpoint="dev_login")

        state.active = True
        if not redirected:
            logger.warning(
                "dev_login_not_redirected",
                scenario=vu.scenario,
                vu=vu.index,
                status=response.status_code if response is not None else None,
            )
