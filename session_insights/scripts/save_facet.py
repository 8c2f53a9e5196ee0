#!/usr/bin/env python3
"""Save an analyst-produced facet into the facet cache.

The text only needs to contain a JSON object; surrounding prose is ignored.

Usage:
  insights-save-facet <session_id> '<text containing a JSON object>'
  echo '<text>' | insights-save-facet <session_id>
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from session_insights import config
from session_insights.repositories import FacetCache, FacetParseError

logger = logging.getLogger("insights.save_facet")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Store one session facet in the insights cache")
    parser.add_argument("session_id", help="Session identifier the facet describes")
    parser.add_argument("text", nargs="?", default="-", help="Facet text; '-' or omitted reads stdin")
    parser.add_argument("--cache-dir", default="", help="Cache root (default: INSIGHTS_CACHE_DIR)")
    args = parser.parse_args(argv)

    logging.basicConfig(level=config.LOG_LEVEL.upper(), format="[%(levelname)s] %(name)s: %(message)s")

    text = sys.stdin.read() if args.text == "-" else args.text
    cache_root = Path(args.cache_dir).expanduser() if args.cache_dir else config.resolve_cache_dir()
    cache = FacetCache(cache_root / "facets")
    try:
        path = cache.save_raw(args.session_id, text)
    except FacetParseError as exc:
        logger.error("Failed to save facet for %s: %s", args.session_id, exc)
        return 1
    except OSError as exc:
        logger.error("Failed to write facet for %s: %s", args.session_id, exc)
        return 1

    print(path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
