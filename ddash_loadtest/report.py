"""Run reports: a JSON document and a human-readable summary."""

from __future__ import annotations

import sys
from datetime import UTC, datetime
from typing import Any, TextIO

from ddash_loadtest.runner import RunResult


def build_report(result: RunResult) -> dict[str, Any]:
    """Aggregate a run into the final JSON-serialisable report."""
    return {
        "run": {
            "run_id": result.run_id,
            "profile": result.profile,
            "started_at": result.started_at.isoformat(),
            "elapsed_seconds": round(result.elapsed_seconds, 3),
            **result.settings,
        },
        "scenarios": {name: stats.as_dict() for name, stats in result.scenarios.items()},
        "metrics": result.metrics,
        "per_endpoint": result.per_endpoint,
        "checks": result.checks,
        "thresholds": [r.as_dict() for r in result.thresholds],
        "overall_pass": result.passed,
        "generated_at": datetime.now(UTC).isoformat(),
    }


def print_summary(result: RunResult, stream: TextIO = sys.stderr) -> None:
    line = "-" * 72

    def out(text: str = "") -> None:
        print(text, file=stream)

    out(f"\n{line}")
    out(f"  LOAD TEST RESULTS: {result.profile} (run {result.run_id})")
    out(line)

    reqs = result.metrics.get("http_reqs", {})
    failed = result.metrics.get("http_req_failed", {})
    out(f"  Requests:       {reqs.get('count', 0)} ({reqs.get('rate_per_second', 0.0)}/s)")
    out(f"  Failure rate:   {failed.get('rate', 0.0) * 100:.2f}%")
    out(f"  Elapsed:        {result.elapsed_seconds:.1f}s")

    out(
        f"\n  {'Scenario':<20} {'Iterations':>10} {'Planned':>8} {'Dropped':>8} "
        f"{'Errors':>7} {'Peak':>6}"
    )
    out(f"  {'-' * 20} {'-' * 10} {'-' * 8} {'-' * 8} {'-' * 7} {'-' * 6}")
    for name, stats in result.scenarios.items():
        planned = "-" if stats.expected_iterations is None else f"{stats.expected_iterations:.0f}"
        out(
            f"  {name:<20} {stats.iterations:>10} {planned:>8} {stats.dropped_iterations:>8} "
            f"{stats.iteration_errors:>7} {stats.peak_concurrency:>6}"
        )
    dropped = sum(stats.dropped_iterations for stats in result.scenarios.values())
    if dropped:
        out(f"  WARNING: {dropped} iterations dropped for lack of free workers")

    if result.per_endpoint:
        out(f"\n  {'Endpoint':<20} {'p95 (ms)':>10} {'p99 (ms)':>10} {'Errors':>8} {'Count':>8}")
        out(f"  {'-' * 20} {'-' * 10} {'-' * 10} {'-' * 8} {'-' * 8}")
        for endpoint, data in result.per_endpoint.items():
            latency = data["latency"]
            out(
                f"  {endpoint:<20} {latency['p95_ms']:>10} {latency['p99_ms']:>10} "
                f"{data['error_count']:>8} {latency['count']:>8}"
            )

    if result.checks:
        out("\n  Checks:")
        for name, counts in result.checks.items():
            mark = "ok  " if counts["fails"] == 0 else "FAIL"
            out(f"    [{mark}] {name}: {counts['passes']} passed, {counts['fails']} failed")

    out(f"\n  Thresholds: {'PASS' if result.passed else 'FAIL'}")
    for threshold in result.thresholds:
        out(f"    {threshold.describe()}")
    out(f"{line}\n")
