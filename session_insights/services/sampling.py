"""Bounded transcript excerpts for external qualitative analysis.

Each excerpt keeps the opening and closing turns of a session plus every turn
with a failed tool call. Content is capped per message, which keeps the
payload bounded however long the raw transcript is.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from session_insights import config
from session_insights.date_utils import to_epoch_ms
from session_insights.models import AggregateReport, SessionSummary
from session_insights.parsers.sessions import SessionParseError, load_session_record
from session_insights.services.aggregator import message_role, result_text

logger = logging.getLogger("insights.sampling")

HEAD_MESSAGES = 8
TAIL_MESSAGES = 6
MAX_CONTENT_CHARS = 4000


def select_top_sessions(summaries: Iterable[SessionSummary], sample_size: int) -> list[SessionSummary]:
    """Highest-scoring multi-turn sessions; ties keep discovery order."""
    candidates = [summary for summary in summaries if summary.userMessages > 1]
    ranked = sorted(candidates, key=lambda summary: summary.score, reverse=True)
    return ranked[: max(0, sample_size)]


def _has_failed_tool_call(message: dict[str, Any]) -> bool:
    calls = message.get("toolCalls")
    if not isinstance(calls, list):
        return False
    return any(isinstance(call, dict) and call.get("status") == "error" for call in calls)


def _render_part(part: Any) -> str:
    if isinstance(part, str):
        return part
    if not isinstance(part, dict):
        return "[PART]"
    text = part.get("text")
    if isinstance(text, str) and text:
        return text
    call = part.get("functionCall")
    if isinstance(call, dict):
        return f"[CALL: {call.get('name', 'unknown')}]"
    response = part.get("functionResponse")
    if isinstance(response, dict):
        return f"[RESPONSE: {response.get('name', 'unknown')}]"
    part_type = part.get("type")
    if isinstance(part_type, str) and part_type:
        return f"[{part_type}]"
    return "[PART]"


def message_text(message: dict[str, Any]) -> str:
    """Flatten message content into a string capped at MAX_CONTENT_CHARS."""
    content = message.get("content") or message.get("text")
    if isinstance(content, str):
        return content[:MAX_CONTENT_CHARS]
    if isinstance(content, list):
        return "\n".join(_render_part(part) for part in content)[:MAX_CONTENT_CHARS]
    parts = message.get("parts")
    if isinstance(parts, list):
        return "\n".join(_render_part(part) for part in parts)[:MAX_CONTENT_CHARS]
    return ""


def sample_messages(messages: list[Any]) -> list[dict[str, Any]]:
    """Head, failed-tool turns and tail, deduplicated and ordered by time."""
    indexed = [(index, msg) for index, msg in enumerate(messages) if isinstance(msg, dict)]
    head = indexed[:HEAD_MESSAGES]
    tail = indexed[-TAIL_MESSAGES:]
    errors = [(index, msg) for index, msg in indexed if _has_failed_tool_call(msg)]

    chosen: dict[int, dict[str, Any]] = {}
    for index, msg in head + errors + tail:
        chosen.setdefault(index, msg)

    return sorted(chosen.values(), key=lambda msg: to_epoch_ms(msg.get("timestamp")) or 0)


def _role_label(message: dict[str, Any]) -> str:
    role = message_role(message)
    if role == "assistant":
        return "ASSISTANT"
    return (role or "user").upper()


def build_session_excerpt(summary: SessionSummary) -> str:
    """Render one session's sampled transcript, header first."""
    lines = [
        f"===SESSION_BOUNDARY::{summary.id}===",
        (
            f"[METADATA] ID: {summary.id}, Date: {summary.date or 'unknown'}, "
            f"Duration: {summary.durationMinutes}m, Tools: {summary.toolCount}, "
            f"Errors: {summary.errorCount}"
        ),
        "",
    ]

    try:
        record = load_session_record(Path(summary.path))
    except SessionParseError as exc:
        logger.warning("Transcript for %s unavailable: %s", summary.id, exc)
        lines.extend([f"[UNAVAILABLE] {exc}", ""])
        return "\n".join(lines) + "\n"

    messages = record.get("messages")
    for message in sample_messages(messages if isinstance(messages, list) else []):
        content = message_text(message)
        if content:
            lines.extend([f"[{_role_label(message)}] {content}", ""])
        calls = message.get("toolCalls")
        for call in calls if isinstance(calls, list) else []:
            if isinstance(call, dict) and call.get("status") == "error":
                result = result_text(call.get("resultDisplay"))[:MAX_CONTENT_CHARS]
                lines.extend([f"[TOOL_ERROR] {call.get('name', 'unknown')}: {result}", ""])

    return "\n".join(lines) + "\n"


def build_sampling_payload(
    report: AggregateReport,
    selected_ids: Iterable[str] | None = None,
    sample_size: int = config.SAMPLE_SIZE,
) -> str:
    """Concatenated excerpts for the given ids, or for the default top-K."""
    wanted = [session_id for session_id in (selected_ids or []) if session_id]
    if wanted:
        wanted_set = set(wanted)
        selected = [summary for summary in report.sessionList if summary.id in wanted_set]
    else:
        selected = select_top_sessions(report.sessionList, sample_size)
    return "".join(build_session_excerpt(summary) for summary in selected)
