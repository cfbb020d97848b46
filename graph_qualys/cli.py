"""Collect Qualys data into a graph document.

Usage:
    python -m graph_qualys.cli
    python -m graph_qualys.cli --steps fetch-hosts,fetch-host-detections
    python -m graph_qualys.cli --output out/graph.json --log-format json
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time

from graph_qualys.config import settings
from graph_qualys.logging_config import setup_logging
from graph_qualys.steps.pipeline import FAILURE, STEPS, run_integration, select_steps

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Collect Qualys assets and findings")
    parser.add_argument(
        "--steps", type=str, default=None,
        help="Comma-separated step IDs; dependencies are added "
             f"(choices: {', '.join(s.id for s in STEPS)})",
    )
    parser.add_argument(
        "--output", type=str, default=settings.output_path,
        help=f"Graph JSON output path (default: {settings.output_path})",
    )
    parser.add_argument("--log-level", type=str, default=settings.log_level)
    parser.add_argument(
        "--log-format", choices=["text", "json"], default=settings.log_format,
    )
    args = parser.parse_args(argv)

    setup_logging(args.log_level, args.log_format)

    only = [s.strip() for s in args.steps.split(",") if s.strip()] if args.steps else None
    try:
        select_steps(STEPS, only)
    except ValueError as exc:
        parser.error(str(exc))

    total_start = time.monotonic()
    results, job_state, metrics = asyncio.run(run_integration(settings, only=only))
    total_elapsed = time.monotonic() - total_start

    job_state.write_json(args.output)
    failed = [step_id for step_id, status in results.items() if status == FAILURE]
    logger.info(
        "=== DONE === %d steps, %d failed in %.1fs; %s",
        len(results), len(failed), total_elapsed, job_state.summary(),
    )
    logger.info("Request metrics: %s", metrics.snapshot())
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
