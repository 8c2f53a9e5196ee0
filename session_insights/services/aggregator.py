"""Single-pass metric aggregation over session log files."""
from __future__ import annotations

import json
import logging
import statistics
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path, PurePath
from typing import Any

from session_insights import config, observability
from session_insights.date_utils import (
    MS_PER_DAY,
    MS_PER_HOUR,
    MS_PER_MINUTE,
    epoch_ms_to_date,
    local_hour,
    now_ms,
    to_epoch_ms,
)
from session_insights.models import (
    AggregateReport,
    DateRange,
    GitCounters,
    SessionSummary,
    TokenTotals,
    UserMessageStamp,
)
from session_insights.parsers.sessions import (
    SessionParseError,
    load_session_record,
    session_id_for,
)
from session_insights.services.overlap import detect_concurrent_sessions

logger = logging.getLogger("insights.aggregator")

USER_ROLES = {"user"}
ASSISTANT_ROLES = {"gemini", "assistant", "model"}

WRITE_TOOLS = {"write_file"}
EDIT_TOOLS = {"replace", "edit"}
SHELL_TOOLS = {"run_shell_command"}
_FILE_PATH_KEYS = ("file_path", "path")
_TOKEN_FIELDS = ("input", "output", "thoughts", "total")

# First matching keyword wins.
_ERROR_CATEGORY_RULES: list[tuple[str, str]] = [
    ("string to replace", "Edit Failed"),
    ("not found", "File Not Found"),
    ("timeout", "Timeout"),
    ("rejected", "User Rejected"),
]
_DEFAULT_ERROR_CATEGORY = "Other"

_RESPONSE_TIME_MAX_SECONDS = 3600


def _coerce_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default


def result_text(value: Any) -> str:
    """Tool result display value as text; None becomes an empty string."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return str(value)


def _count_lines(text: Any) -> int:
    if not isinstance(text, str) or not text:
        return 0
    return text.count("\n") + 1


def classify_tool_error(text: str) -> str:
    lowered = (text or "").lower()
    for keyword, category in _ERROR_CATEGORY_RULES:
        if keyword in lowered:
            return category
    return _DEFAULT_ERROR_CATEGORY


def message_role(message: dict[str, Any]) -> str:
    raw = message.get("type") or message.get("role") or ""
    role = str(raw).strip().lower()
    if role in ASSISTANT_ROLES:
        return "assistant"
    return role


def touched_file_path(args: dict[str, Any]) -> str:
    for key in _FILE_PATH_KEYS:
        value = args.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


@dataclass
class AggregateStats:
    """Scan accumulator. Owned by one MetricAggregator for one scan."""

    total_sessions_scanned: int = 0
    sessions_analyzed: int = 0
    sessions_skipped: int = 0
    sessions_expired: int = 0
    total_messages: int = 0
    user_messages: int = 0
    assistant_messages: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    files_overwritten: int = 0
    unique_files_touched: set[str] = field(default_factory=set)
    tokens: Counter[str] = field(default_factory=Counter)
    tools: Counter[str] = field(default_factory=Counter)
    tool_errors: Counter[str] = field(default_factory=Counter)
    languages: Counter[str] = field(default_factory=Counter)
    git: Counter[str] = field(default_factory=Counter)
    total_duration_ms: int = 0
    active_days: set[str] = field(default_factory=set)
    hourly_activity: list[int] = field(default_factory=lambda: [0] * 24)
    user_response_times: list[float] = field(default_factory=list)
    session_list: list[SessionSummary] = field(default_factory=list)
    user_message_timestamps: list[UserMessageStamp] = field(default_factory=list)


class MetricAggregator:
    """Accumulate usage statistics one session file at a time.

    Each file is read, folded into the accumulator, and released before the
    next is opened. Sessions older than the retention window, or with missing
    or malformed timestamps or message lists, are excluded as a whole.
    """

    def __init__(self, now: int | None = None, retention_days: int = config.RETENTION_DAYS):
        self.now_ms = now if now is not None else now_ms()
        self.cutoff_ms = self.now_ms - retention_days * MS_PER_DAY
        self.stats = AggregateStats()

    def add_path(self, path: Path) -> bool:
        """Scan one session file. Returns True when the session was admitted."""
        self.stats.total_sessions_scanned += 1
        try:
            record = load_session_record(path)
        except SessionParseError as exc:
            logger.info("Skipping %s: %s", path, exc)
            self.stats.sessions_skipped += 1
            observability.record_session_scan("skipped")
            return False
        return self.add_record(record, path)

    def add_record(self, record: dict[str, Any], path: Path) -> bool:
        raw_start = record.get("startTime")
        raw_last = record.get("lastUpdated")
        if not raw_start or not raw_last:
            logger.info("Skipping %s: missing startTime or lastUpdated", path)
            return self._skip()

        start_ms = to_epoch_ms(raw_start)
        last_ms = to_epoch_ms(raw_last)
        if start_ms is None or last_ms is None:
            logger.info("Skipping %s: unparseable startTime or lastUpdated", path)
            return self._skip()

        messages = record.get("messages")
        if not isinstance(messages, list):
            logger.info("Skipping %s: messages is not an array", path)
            return self._skip()

        if start_ms < self.cutoff_ms:
            self.stats.sessions_expired += 1
            observability.record_session_scan("expired")
            return False

        session_id = session_id_for(record, path)
        date = epoch_ms_to_date(start_ms)
        duration_ms = max(0, last_ms - start_ms)

        stats = self.stats
        stats.sessions_analyzed += 1
        stats.active_days.add(date)
        stats.total_duration_ms += duration_ms

        user_count = 0
        tool_count = 0
        error_count = 0
        last_assistant_ms: int | None = None

        for message in messages:
            stats.total_messages += 1
            if not isinstance(message, dict):
                continue
            msg_ms = to_epoch_ms(message.get("timestamp"))
            if msg_ms is not None:
                stats.hourly_activity[local_hour(msg_ms)] += 1

            role = message_role(message)
            if role in USER_ROLES:
                user_count += 1
                stats.user_messages += 1
                if msg_ms is None:
                    continue
                stats.user_message_timestamps.append(UserMessageStamp(ts=msg_ms, sessionId=session_id))
                if last_assistant_ms is not None:
                    response_seconds = (msg_ms - last_assistant_ms) / 1000
                    if 0 < response_seconds < _RESPONSE_TIME_MAX_SECONDS:
                        stats.user_response_times.append(response_seconds)
            elif role == "assistant":
                stats.assistant_messages += 1
                if msg_ms is not None:
                    last_assistant_ms = msg_ms
                self._add_tokens(message.get("tokens"))
                calls, errors = self._add_tool_calls(message.get("toolCalls"))
                tool_count += calls
                error_count += errors

        stats.session_list.append(
            SessionSummary.build(
                id=session_id,
                path=str(path),
                startTime=start_ms,
                date=date,
                durationMinutes=round(duration_ms / MS_PER_MINUTE),
                userMessages=user_count,
                toolCount=tool_count,
                errorCount=error_count,
            )
        )
        observability.record_session_scan("admitted")
        return True

    def _skip(self) -> bool:
        self.stats.sessions_skipped += 1
        observability.record_session_scan("skipped")
        return False

    def _add_tokens(self, tokens: Any) -> None:
        if not isinstance(tokens, dict):
            return
        for key in _TOKEN_FIELDS:
            amount = _coerce_int(tokens.get(key))
            self.stats.tokens[key] += amount
            if key in ("input", "output"):
                observability.record_tokens(key, amount)

    def _add_tool_calls(self, tool_calls: Any) -> tuple[int, int]:
        """Fold one message's tool calls in. Returns (calls, errors)."""
        if not isinstance(tool_calls, list):
            return 0, 0

        stats = self.stats
        calls = 0
        errors = 0
        for call in tool_calls:
            if not isinstance(call, dict):
                continue
            calls += 1
            name = call.get("name")
            name = name if isinstance(name, str) and name else "unknown"
            stats.tools[name] += 1

            status = call.get("status")
            if status == "error":
                errors += 1
                stats.tool_errors[classify_tool_error(result_text(call.get("resultDisplay")))] += 1
            observability.record_tool_result(name, "error" if status == "error" else "ok")

            args = call.get("args")
            if not isinstance(args, dict):
                continue

            file_path = touched_file_path(args)
            if file_path:
                stats.unique_files_touched.add(file_path)
                extension = PurePath(file_path).suffix
                if extension:
                    stats.languages[extension] += 1
                if name in WRITE_TOOLS:
                    stats.files_overwritten += 1
                elif name in EDIT_TOOLS:
                    stats.lines_added += _count_lines(args.get("new_string"))
                    stats.lines_removed += _count_lines(args.get("old_string"))

            if name in SHELL_TOOLS:
                self._add_git_command(args.get("command"))

        return calls, errors

    def _add_git_command(self, command: Any) -> None:
        if not isinstance(command, str):
            return
        cmd = command.strip()
        if not cmd.startswith("git "):
            return
        self.stats.git["total"] += 1
        if " commit" in cmd:
            self.stats.git["commits"] += 1
        if " push" in cmd:
            self.stats.git["pushes"] += 1

    def finalize(self) -> AggregateReport:
        """Derive rates and the overlap summary from the accumulated counters."""
        stats = self.stats
        summaries = stats.session_list
        active_days = len(stats.active_days)
        response_times = stats.user_response_times

        date_range = DateRange()
        if summaries:
            date_range = DateRange(
                start=epoch_ms_to_date(min(s.startTime for s in summaries)),
                end=epoch_ms_to_date(max(s.startTime for s in summaries)),
            )

        return AggregateReport(
            totalSessionsScanned=stats.total_sessions_scanned,
            sessionsAnalyzed=stats.sessions_analyzed,
            sessionsSkipped=stats.sessions_skipped,
            sessionsExpired=stats.sessions_expired,
            totalMessages=stats.total_messages,
            userMessages=stats.user_messages,
            assistantMessages=stats.assistant_messages,
            linesAdded=stats.lines_added,
            linesRemoved=stats.lines_removed,
            filesOverwritten=stats.files_overwritten,
            uniqueFilesTouched=sorted(stats.unique_files_touched),
            filesTouchedCount=len(stats.unique_files_touched),
            tokens=TokenTotals(**{key: stats.tokens[key] for key in _TOKEN_FIELDS}),
            tools=dict(stats.tools),
            toolErrors=dict(stats.tool_errors),
            languages=dict(stats.languages),
            git=GitCounters(
                commits=stats.git["commits"],
                pushes=stats.git["pushes"],
                total=stats.git["total"],
            ),
            totalDurationMs=stats.total_duration_ms,
            totalDurationHours=round(stats.total_duration_ms / MS_PER_HOUR, 1),
            activeDays=active_days,
            hourlyActivity=list(stats.hourly_activity),
            userResponseTimes=list(response_times),
            sessionList=list(summaries),
            userMessageTimestamps=list(stats.user_message_timestamps),
            dateRange=date_range,
            msgsPerDay=round(stats.total_messages / active_days, 1) if active_days else 0.0,
            concurrentSessions=detect_concurrent_sessions(stats.user_message_timestamps),
            medianResponseTime=statistics.median_high(response_times) if response_times else 0.0,
            avgResponseTime=statistics.fmean(response_times) if response_times else 0.0,
        )


def aggregate_sessions(
    paths: Iterable[Path],
    now: int | None = None,
    retention_days: int = config.RETENTION_DAYS,
) -> AggregateReport:
    """Scan every path once and return the finalized aggregation report."""
    aggregator = MetricAggregator(now=now, retention_days=retention_days)
    for path in paths:
        aggregator.add_path(path)
    report = aggregator.finalize()
    logger.info(
        "Aggregated %d of %d scanned sessions (%d skipped, %d outside retention window)",
        report.sessionsAnalyzed,
        report.totalSessionsScanned,
        report.sessionsSkipped,
        report.sessionsExpired,
    )
    return report
