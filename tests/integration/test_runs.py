"""End-to-end profile runs against the in-memory ddash stand-in."""

import io
import json

import pytest

from ddash_loadtest.config import Settings
from ddash_loadtest.errors import ConfigurationError
from ddash_loadtest.metrics.thresholds import parse_thresholds
from ddash_loadtest.report import build_report, print_summary
from ddash_loadtest.runner import LoadTestRun

SHORT_MIXED = {
    "mixed_duration": "1s",
    "mixed_ingest_rps": 10,
    "mixed_ingest_pre_vus": 2,
    "mixed_ingest_max_vus": 10,
    "mixed_read_vus": 2,
}

SHORT_READ = {
    "read_start_vus": 1,
    "read_vus_1": 2,
    "read_stage_1": "300ms",
    "read_vus_2": 4,
    "read_stage_2": "300ms",
    "read_stage_3": "200ms",
}

SHORT_INGEST = {
    "ingest_start_rps": 5,
    "ingest_rps_1": 10,
    "ingest_stage_1": "300ms",
    "ingest_rps_2": 20,
    "ingest_stage_2": "300ms",
    "ingest_rps_3": 10,
    "ingest_stage_3": "300ms",
    "pre_vus": 2,
    "max_vus": 20,
}


def _settings(settings: Settings, **overrides) -> Settings:
    return settings.model_copy(update=overrides)


class TestMixedRun:
    @pytest.mark.asyncio
    async def test_healthy_target_passes(self, settings, mock_ddash):
        run = LoadTestRun(
            _settings(settings, **SHORT_MIXED), "mixed", transport=mock_ddash.transport
        )
        result = await run.execute()

        assert result.passed
        assert result.breached == []
        assert mock_ddash.rejected == 0
        assert result.scenarios["mixed_ingest"].iterations == 10
        assert result.scenarios["mixed_ingest"].dropped_iterations == 0
        assert result.scenarios["mixed_read"].workers_created == 2
        assert mock_ddash.logins == 2
        assert len(mock_ddash.webhooks) == 10
        assert result.metrics["http_req_failed"]["rate"] == 0.0
        assert all(counts["fails"] == 0 for counts in result.checks.values())
        assert {"webhook_ingest", "service_detail", "dev_login"} <= set(result.per_endpoint)

    @pytest.mark.asyncio
    async def test_rejected_webhooks_breach_error_rate(self, settings, mock_ddash):
        broken = _settings(settings, webhook_secret="not-the-secret", **SHORT_MIXED)
        result = await LoadTestRun(broken, "mixed", transport=mock_ddash.transport).execute()

        assert not result.passed
        assert mock_ddash.rejected == 10
        assert result.checks["webhook accepted"] == {"passes": 0, "fails": 10}
        breached = {t.spec.key for t in result.breached}
        assert "http_req_failed" in breached

        report = build_report(result)
        assert report["overall_pass"] is False
        assert report["scenarios"]["mixed_ingest"]["expected_iterations"] == 10.0
        assert report["scenarios"]["mixed_read"]["expected_iterations"] is None
        json.dumps(report, default=str)

        stream = io.StringIO()
        print_summary(result, stream=stream)
        text = stream.getvalue()
        assert "Thresholds: FAIL" in text
        assert "[FAIL] webhook accepted" in text

    @pytest.mark.asyncio
    async def test_threshold_overrides_replace_defaults(self, settings, mock_ddash):
        thresholds = parse_thresholds({"http_req_duration": ["p(95)<0"]})
        run = LoadTestRun(
            _settings(settings, **SHORT_MIXED),
            "mixed",
            thresholds=thresholds,
            transport=mock_ddash.transport,
        )
        result = await run.execute()

        assert len(result.thresholds) == 1
        assert not result.passed
        assert result.thresholds[0].margin > 0


class TestOtherProfiles:
    @pytest.mark.asyncio
    async def test_read_profile(self, settings, mock_ddash):
        run = LoadTestRun(_settings(settings, **SHORT_READ), "read", transport=mock_ddash.transport)
        result = await run.execute()

        stats = result.scenarios["read_mix"]
        assert stats.workers_created <= 4
        assert stats.iterations > 0
        assert mock_ddash.logins == stats.workers_created
        assert result.checks["read status 200"]["fails"] == 0
        assert result.passed

    @pytest.mark.asyncio
    async def test_ingest_profile(self, settings, mock_ddash):
        run = LoadTestRun(
            _settings(settings, **SHORT_INGEST), "ingest", transport=mock_ddash.transport
        )
        result = await run.execute()

        stats = result.scenarios["ingest_step"]
        assert 11 <= stats.iterations <= 13
        assert len(mock_ddash.webhooks) == stats.iterations
        assert result.metrics["ingest_latency_ms"]["count"] == stats.iterations
        ids = {json.loads(body)["context"]["id"] for body in mock_ddash.webhooks}
        assert len(ids) == stats.iterations
        assert result.passed


class TestConfiguration:
    def test_unknown_profile(self, settings):
        with pytest.raises(ConfigurationError):
            LoadTestRun(settings, "soak")

    def test_invalid_override_threshold(self, settings):
        with pytest.raises(ConfigurationError):
            LoadTestRun(settings, "read", thresholds=parse_thresholds({"nope": "avg<1"}))
