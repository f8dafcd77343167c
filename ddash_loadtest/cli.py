"""Command-line entry point.

Usage:
    python -m ddash_loadtest ingest
    python -m ddash_loadtest read --base-url http://ddash.internal:19090
    python -m ddash_loadtest mixed --thresholds thresholds.yml --output results/mixed.json

Scenario rates, stages and durations come from the environment (see
``ddash_loadtest.config.Settings``), e.g. ``MIXED_DURATION=30s``.

Exit codes:
    0  every threshold passed
    1  the run completed but at least one threshold was breached
    2  the run could not start (configuration error)
"""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import Any

import structlog

from ddash_loadtest.config import load_settings
from ddash_loadtest.errors import ConfigurationError
from ddash_loadtest.metrics.thresholds import load_thresholds_file
from ddash_loadtest.report import build_report, print_summary
from ddash_loadtest.runner import LoadTestRun
from ddash_loadtest.scenarios import PROFILES
from ddash_loadtest.shared.logging import setup_logging

logger = structlog.get_logger()

EXIT_PASS = 0
EXIT_THRESHOLD_BREACH = 1
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ddash-loadtest",
        description="Synthetic traffic harness for the ddash deployment-event service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("profile", choices=sorted(PROFILES), help="Workload profile to run.")
    parser.add_argument("--base-url", type=str, default=None, help="Target base URL.")
    parser.add_argument(
        "--thresholds",
        type=Path,
        default=None,
        help="YAML file of {metric selector: [expressions]} replacing the profile defaults.",
    )
    parser.add_argument(
        "--output", type=Path, default=None, help="Write the JSON report here instead of stdout."
    )
    parser.add_argument("--log-level", type=str, default=None, help="Log level (default: INFO).")
    parser.add_argument(
        "--log-format", choices=["console", "json"], default=None, help="Log renderer."
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for per-worker RNGs.")
    return parser


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    candidates = {
        "base_url": args.base_url,
        "log_level": args.log_level,
        "log_format": args.log_format,
        "seed": args.seed,
    }
    return {key: value for key, value in candidates.items() if value is not None}


def run(args: argparse.Namespace) -> int:
    try:
        settings = load_settings(**_overrides(args))
    except ConfigurationError as exc:
        setup_logging()
        logger.error("configuration_error", error=str(exc))
        return EXIT_CONFIG_ERROR

    setup_logging(settings.log_level, settings.log_format)
    try:
        thresholds = load_thresholds_file(args.thresholds) if args.thresholds else None
        load_test = LoadTestRun(settings, args.profile, thresholds=thresholds)
    except ConfigurationError as exc:
        logger.error("configuration_error", error=str(exc))
        return EXIT_CONFIG_ERROR

    result = asyncio.run(load_test.execute())
    print_summary(result)

    report = json.dumps(build_report(result), indent=2, default=str)
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(report)
        logger.info("report_written", path=str(args.output))
    else:
        print(report)

    return EXIT_PASS if result.passed else EXIT_THRESHOLD_BREACH


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return run(args)


if __name__ == "__main__":
    raise SystemExit(main())
