"""Observability helpers."""

from session_insights.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_session_scan,
    record_tool_result,
    record_tokens,
    record_pass,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_session_scan",
    "record_tool_result",
    "record_tokens",
    "record_pass",
]
