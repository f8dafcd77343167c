"""Shared test fixtures for the ddash load harness tests."""

import hashlib
import hmac

import httpx
import pytest

from ddash_loadtest.config import Settings
from ddash_loadtest.metrics.collector import MetricsCollector
from ddash_loadtest.scenarios.common import WorkloadContext
from ddash_loadtest.scheduling.worker import VirtualUser
from ddash_loadtest.target import TargetClient, build_http_client

BASE_URL = "http://ddash.test"
SECRET = "test-secret"
TOKEN = "test-token"
SESSION_COOKIE = "ddash_session"

READ_PATHS = {"/", "/services/grid", "/deployments", "/s/orders"}


class MockDdash:
    """In-memory stand-in for the ddash HTTP surface the harness drives.

    Verifies webhook signatures against the raw body, issues a session
    cookie on dev login and requires it on every read path.
    """

    def __init__(self, *, secret: str = SECRET, token: str = TOKEN, login_status: int = 303):
        self.secret = secret
        self.token = token
        self.login_status = login_status
        self.webhooks: list[bytes] = []
        self.logins = 0
        self.reads: list[str] = []
        self.read_sessions: list[str] = []
        self.rejected = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "POST" and path == "/webhooks/cdevents":
            body = request.content
            expected = hmac.new(self.secret.encode(), body, hashlib.sha256).hexdigest()
            if request.headers.get("Authorization") != f"Bearer {self.token}":
                self.rejected += 1
                return httpx.Response(401)
            if request.headers.get("X-Webhook-Signature") != expected:
                self.rejected += 1
                return httpx.Response(401)
            self.webhooks.append(body)
            return httpx.Response(202, json={"status": "accepted"})

        if request.method == "POST" and path == "/auth/dev/login":
            self.logins += 1
            if self.login_status not in (302, 303):
                return httpx.Response(self.login_status)
            return httpx.Response(
                self.login_status,
                headers={
                    "Location": "/",
                    "Set-Cookie": f"{SESSION_COOKIE}=s{self.logins}; Path=/",
                },
            )

        if request.method == "GET" and path in READ_PATHS:
            cookie = request.headers.get("Cookie", "")
            if SESSION_COOKIE not in cookie:
                return httpx.Response(401)
            self.reads.append(path)
            self.read_sessions.append(cookie)
            return httpx.Response(200, text="<html></html>")

        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def mock_ddash() -> MockDdash:
    return MockDdash()


@pytest.fixture
def settings() -> Settings:
    return Settings(base_url=BASE_URL, auth_token=TOKEN, webhook_secret=SECRET, seed=7)


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def workload_context(settings, metrics) -> WorkloadContext:
    return WorkloadContext.from_settings(settings, metrics)


@pytest.fixture
def make_vu(metrics, mock_ddash):
    """Build workers wired to the mock target."""

    def _make(index: int = 0, scenario: str = "test", transport=None) -> VirtualUser:
        client = build_http_client(BASE_URL, 5.0, transport=transport or mock_ddash.transport)
        vu = VirtualUser(
            index=index,
            scenario=scenario,
            client=TargetClient(client, metrics, tags={"scenario": scenario}),
        )
        return vu

    return _make


@pytest.fixture
def sample_deployed_event() -> dict:
    return {
        "context": {
            "id": "lt-orders-42",
            "source": "loadtest/ddash-loadtest",
            "type": "dev.cdevents.service.deployed.0.3.0",
            "timestamp": "2026-01-15T10:30:00Z",
            "specversion": "0.5.0",
            "chainId": "lt-chain-14",
        },
        "subject": {
            "id": "service/orders",
            "source": "loadtest/ddash-loadtest",
            "content": {
                "environment": {"id": "staging"},
                "artifactId": "pkg:generic/orders@42",
                "pipeline": {"runId": "lt-run-42", "url": ""},
                "actor": {"name": "loadtest-bot"},
            },
        },
    }
