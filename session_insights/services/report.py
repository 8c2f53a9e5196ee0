"""Report payload assembly and renderers.

The payload is a compact, capped view of the aggregation output plus the
recognized sections of the global synthesis. Renderers decide how to persist
it; the HTML renderer embeds it into a template that decodes it client-side.
"""
from __future__ import annotations

import base64
import gzip
import json
import logging
from pathlib import Path
from typing import Any, Protocol

from session_insights.models import AggregateReport

logger = logging.getLogger("insights.report")

TEMPLATE_MARKER = 'const EMBEDDED_DATA = "";'

_TOP_TOOLS = 8
_TOP_LANGUAGES = 8
_TOP_ERRORS = 6
_TOP_PROJECT_AREAS = 5

# (label, exclusive upper bound in seconds)
_RESPONSE_TIME_BINS: list[tuple[str, float]] = [
    ("< 2s", 2),
    ("2-10s", 10),
    ("10-30s", 30),
    ("30s-1m", 60),
    ("1-2m", 120),
    ("2-5m", 300),
    ("5-15m", 900),
]
_RESPONSE_TIME_OVERFLOW_BIN = ">15m"


class RenderError(RuntimeError):
    """Raised when a report cannot be produced."""


class ReportRenderer(Protocol):
    def render(self, report: AggregateReport, synthesis: dict[str, Any], output_path: Path) -> Path:
        ...


def response_time_histogram(response_times: list[float]) -> dict[str, int]:
    bins = {label: 0 for label, _ in _RESPONSE_TIME_BINS}
    bins[_RESPONSE_TIME_OVERFLOW_BIN] = 0
    for seconds in response_times:
        for label, upper in _RESPONSE_TIME_BINS:
            if seconds < upper:
                bins[label] += 1
                break
        else:
            bins[_RESPONSE_TIME_OVERFLOW_BIN] += 1
    return bins


def _top(counts: dict[str, int], limit: int) -> dict[str, int]:
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return dict(ranked[:limit])


def build_report_payload(report: AggregateReport, synthesis: dict[str, Any]) -> dict[str, Any]:
    """Merge capped quantitative stats with the recognized synthesis sections."""
    stats: dict[str, Any] = {
        "tm": report.totalMessages,
        "sa": report.sessionsAnalyzed,
        "la": report.linesAdded,
        "lr": report.linesRemoved,
        "ft": report.filesTouchedCount,
        "ad": report.activeDays,
        "to": _top(report.tools, _TOP_TOOLS),
        "lg": _top(report.languages, _TOP_LANGUAGES),
        "er": _top(report.toolErrors, _TOP_ERRORS),
        "ha": list(report.hourlyActivity),
        "rt": response_time_histogram(report.userResponseTimes),
        "mrt": report.medianResponseTime,
        "art": report.avgResponseTime,
        "mc": report.concurrentSessions.model_dump(mode="json"),
        "dr": report.dateRange.model_dump(mode="json"),
        "ql": report.qualitative.model_dump(mode="json") if report.qualitative else {},
    }
    if report.meta:
        stats["me"] = {
            "qs": report.meta.qualitativeSessionsAnalyzed,
            "gt": report.meta.generationTimeMs,
        }

    project_areas = synthesis.get("project_areas")
    sections = {
        "ag": synthesis.get("at_a_glance") or {},
        "pa": project_areas[:_TOP_PROJECT_AREAS] if isinstance(project_areas, list) else [],
        "is": synthesis.get("interaction_style") or {},
        "ww": synthesis.get("what_works") or {},
        "fa": synthesis.get("friction_analysis") or {},
        "su": synthesis.get("suggestions") or {},
        "oh": synthesis.get("on_the_horizon") or {},
        "fm": synthesis.get("notable_moment") or synthesis.get("fun_moment"),
    }
    return {"s": stats, "y": sections}


def encode_payload(payload: dict[str, Any]) -> str:
    """gzip + base64 encoding used for template embedding."""
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.b64encode(gzip.compress(raw)).decode("ascii")


class JsonReportRenderer:
    """Write the report payload as a plain JSON document."""

    def render(self, report: AggregateReport, synthesis: dict[str, Any], output_path: Path) -> Path:
        payload = build_report_payload(report, synthesis)
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as exc:
            raise RenderError(f"Cannot write report to {output_path}: {exc}") from exc
        return output_path


class HtmlReportRenderer:
    """Embed the encoded payload into an HTML template."""

    def __init__(self, template_path: Path):
        self.template_path = template_path

    def render(self, report: AggregateReport, synthesis: dict[str, Any], output_path: Path) -> Path:
        try:
            template = self.template_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise RenderError(f"Cannot read report template {self.template_path}: {exc}") from exc
        if TEMPLATE_MARKER not in template:
            raise RenderError(f"Template {self.template_path} has no embedded-data marker")

        encoded = encode_payload(build_report_payload(report, synthesis))
        html = template.replace(TEMPLATE_MARKER, f'const EMBEDDED_DATA = "{encoded}";', 1)
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(html, encoding="utf-8")
        except OSError as exc:
            raise RenderError(f"Cannot write report to {output_path}: {exc}") from exc
        logger.info("Rendered HTML report to %s", output_path)
        return output_path
