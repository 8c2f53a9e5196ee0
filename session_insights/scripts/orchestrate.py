#!/usr/bin/env python3
"""Advance the insights pipeline by one invocation.

Each run aggregates the session logs, then either writes a work request for
the external analyst (missing facets or global synthesis) or renders the final
report. Re-run after the requested work has been saved.

Usage:
  insights-orchestrate
  insights-orchestrate --sample-size 5
  insights-orchestrate --session-dir ~/.gemini/tmp --template docs/index.html --output insights.html
"""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Any

from session_insights import config, observability
from session_insights.models import PipelineStage
from session_insights.services.orchestrator import InsightsPipeline, PipelineSettings


def _build_settings(args: argparse.Namespace) -> PipelineSettings:
    overrides: dict[str, Any] = {}
    if args.session_dir:
        overrides["session_dir"] = Path(args.session_dir).expanduser()
    if args.cache_dir:
        cache_dir = Path(args.cache_dir).expanduser()
        cache_dir.mkdir(parents=True, exist_ok=True)
        overrides["cache_dir"] = cache_dir
    if args.work_dir:
        work_dir = Path(args.work_dir).expanduser()
        work_dir.mkdir(parents=True, exist_ok=True)
        overrides["work_dir"] = work_dir
    if args.sample_size is not None:
        overrides["sample_size"] = max(1, args.sample_size)
    if args.template:
        overrides["template_path"] = Path(args.template).expanduser()
    if args.output:
        overrides["report_path"] = Path(args.output).expanduser()
    return PipelineSettings.from_env(**overrides)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Generate a usage insights report from session logs")
    parser.add_argument("--session-dir", default="", help="Session log root (default: GEMINI_SESSION_DIR or ~/.gemini/tmp)")
    parser.add_argument("--cache-dir", default="", help="Facet cache root (default: INSIGHTS_CACHE_DIR)")
    parser.add_argument("--work-dir", default="", help="Scratch directory for pass artifacts")
    parser.add_argument("--sample-size", type=int, default=None, help="Number of sessions sent for qualitative analysis")
    parser.add_argument("--template", default="", help="HTML template with an EMBEDDED_DATA marker")
    parser.add_argument("--output", default="", help="Report output path")
    args = parser.parse_args(argv)

    logging.basicConfig(level=config.LOG_LEVEL.upper(), format="[%(levelname)s] %(name)s: %(message)s")
    observability.initialize()
    try:
        outcome = InsightsPipeline(_build_settings(args)).run()
    finally:
        observability.shutdown()

    print(outcome.message)
    return 1 if outcome.stage is PipelineStage.FAILED else 0


if __name__ == "__main__":
    raise SystemExit(main())
