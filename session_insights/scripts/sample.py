#!/usr/bin/env python3
"""Print sampled transcripts for sessions listed in an aggregation output.

Reads stats.json written by insights-orchestrate. Without --ids the
highest-scoring multi-turn sessions are sampled.

Usage:
  insights-sample
  insights-sample --ids abc,def
  insights-sample --work-dir /tmp/work --sample-size 5 --output excerpts.txt
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from session_insights import config
from session_insights.repositories import PipelineArtifacts
from session_insights.services.sampling import build_sampling_payload

logger = logging.getLogger("insights.sample")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Print sampled session transcripts for qualitative analysis")
    parser.add_argument("--work-dir", default="", help="Directory holding stats.json (default: INSIGHTS_TEMP_DIR)")
    parser.add_argument("--cache-dir", default="", help="Cache root (default: INSIGHTS_CACHE_DIR)")
    parser.add_argument(
        "--ids",
        default=os.getenv("SELECTED_SESSION_IDS", ""),
        help="Comma-separated session ids (default: SELECTED_SESSION_IDS, else top sessions by score)",
    )
    parser.add_argument("--sample-size", type=int, default=config.SAMPLE_SIZE, help="Sessions sampled without --ids")
    parser.add_argument("--output", default="", help="Write excerpts here instead of stdout")
    args = parser.parse_args(argv)

    logging.basicConfig(level=config.LOG_LEVEL.upper(), format="[%(levelname)s] %(name)s: %(message)s")

    work_dir = Path(args.work_dir).expanduser() if args.work_dir else config.resolve_temp_dir()
    cache_dir = Path(args.cache_dir).expanduser() if args.cache_dir else config.resolve_cache_dir()
    artifacts = PipelineArtifacts(work_dir, cache_dir)
    report = artifacts.read_stats()
    if report is None:
        logger.error("No aggregation output at %s; run insights-orchestrate first", artifacts.stats_path)
        return 1

    selected_ids = [token.strip() for token in args.ids.split(",") if token.strip()]
    payload = build_sampling_payload(report, selected_ids=selected_ids, sample_size=max(0, args.sample_size))

    if args.output:
        output_path = Path(args.output).expanduser()
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(payload, encoding="utf-8")
        except OSError as exc:
            logger.error("Failed to write excerpts to %s: %s", output_path, exc)
            return 1
        print(output_path)
    else:
        sys.stdout.write(payload)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
