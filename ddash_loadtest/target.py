"""Instrumented HTTP access to the system under test.

Every request made through :class:`TargetClient` is timed and recorded.
Transport errors and unexpected statuses become failed samples; nothing
is retried and nothing is raised to the iteration.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from ddash_loadtest.metrics.collector import (
    CHECKS,
    HTTP_REQ_DURATION,
    HTTP_REQ_FAILED,
    HTTP_REQS,
    MetricsCollector,
)

if TYPE_CHECKING:
    from ddash_loadtest.events.factory import DomainEvent
    from ddash_loadtest.signing import RequestSigner

logger = structlog.get_logger()

WEBHOOK_PATH = "/webhooks/cdevents"


def build_http_client(
    base_url: str,
    timeout_seconds: float,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """One client per worker: its cookie jar is that worker's session."""
    if transport is None:
        transport = httpx.AsyncHTTPTransport(retries=0)
    return httpx.AsyncClient(
        base_url=base_url.rstrip("/"),
        transport=transport,
        timeout=httpx.Timeout(timeout_seconds),
        follow_redirects=False,
    )


def is_expected_status(status_code: int) -> bool:
    return 200 <= status_code < 400


class TargetClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        metrics: MetricsCollector,
        tags: Mapping[str, str] | None = None,
    ) -> None:
        self._client = client
        self._metrics = metrics
        self._tags = dict(tags or {})

    async def request(
        self,
        method: str,
        path: str,
        *,
        endpoint: str,
        **kwargs: Any,
    ) -> httpx.Response | None:
        """Send one request and record its latency and outcome.

        Returns ``None`` when the request never produced a response.
        """
        tags = {**self._tags, "endpoint": endpoint, "method": method}
        t0 = time.perf_counter()
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            elapsed_ms = (time.perf_counter() - t0) * 1000.0
            logger.warning(
                "request_transport_error",
                endpoint=endpoint,
                method=method,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            self._record(tags, elapsed_ms, status=0, failed=True)
            return None

        elapsed_ms = (time.perf_counter() - t0) * 1000.0
        self._record(
            tags,
            elapsed_ms,
            status=response.status_code,
            failed=not is_expected_status(response.status_code),
        )
        return response

    async def get(self, path: str, *, endpoint: str, **kwargs: Any) -> httpx.Response | None:
        return await self.request("GET", path, endpoint=endpoint, **kwargs)

    async def post(self, path: str, *, endpoint: str, **kwargs: Any) -> httpx.Response | None:
        return await self.request("POST", path, endpoint=endpoint, **kwargs)

    def check(self, name: str, ok: bool, **tags: str) -> bool:
        """Record a named pass/fail check and return *ok*."""
        self._metrics.record(CHECKS, 1.0 if ok else 0.0, {**self._tags, **tags, "check": name})
        if not ok:
            logger.debug("check_failed", check=name, **self._tags)
        return ok

    async def post_webhook(
        self, event: DomainEvent, signer: RequestSigner
    ) -> httpx.Response | None:
        """Deliver *event* with a signature over the exact bytes sent."""
        body = event.to_bytes()
        response = await self.post(
            WEBHOOK_PATH,
            endpoint="webhook_ingest",
            content=body,
            headers=signer.headers(body),
        )
        self.check(
            "webhook accepted",
            response is not None and response.status_code < 300,
            endpoint="webhook_ingest",
        )
        return response

    async def aclose(self) -> None:
        await self._client.aclose()

    def _record(
        self, tags: dict[str, str], elapsed_ms: float, *, status: int, failed: bool
    ) -> None:
        tags = {**tags, "status": str(status)}
        self._metrics.add(HTTP_REQS, tags)
        self._metrics.record(HTTP_REQ_DURATION, elapsed_ms, tags)
        self._metrics.record(HTTP_REQ_FAILED, 1.0 if failed else 0.0, tags)
