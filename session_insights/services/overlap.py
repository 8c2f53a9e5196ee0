"""Sweep-line detection of concurrent session activity.

Works on the flat list of user-message timestamps collected across every
admitted session. After one sort, each message looks backward and then forward
through neighbours inside the window, stopping at the first message that
belongs to a different session. Cost is O(N log N) for the sort plus the
typical window occupancy per message, not a pairwise session comparison.
"""
from __future__ import annotations

from collections.abc import Iterable

from session_insights.date_utils import MS_PER_MINUTE
from session_insights.models import OverlapResult, UserMessageStamp

OVERLAP_WINDOW_MS = 30 * MS_PER_MINUTE
# Heuristic: roughly five overlapping user messages per concurrent-usage
# episode. The resulting event count is an approximation, not a measurement.
MESSAGES_PER_EVENT = 5


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def _cross_session_neighbour(
    stamps: list[UserMessageStamp],
    index: int,
    window_ms: int,
) -> str | None:
    current = stamps[index]

    j = index - 1
    while j >= 0 and current.ts - stamps[j].ts < window_ms:
        if stamps[j].sessionId != current.sessionId:
            return stamps[j].sessionId
        j -= 1

    j = index + 1
    while j < len(stamps) and stamps[j].ts - current.ts < window_ms:
        if stamps[j].sessionId != current.sessionId:
            return stamps[j].sessionId
        j += 1

    return None


def detect_concurrent_sessions(
    entries: Iterable[UserMessageStamp],
    window_ms: int = OVERLAP_WINDOW_MS,
) -> OverlapResult:
    """Summarize near-simultaneous user activity across sessions."""
    stamps = sorted(entries, key=lambda stamp: stamp.ts)
    if not stamps:
        return OverlapResult()

    involved: set[str] = set()
    messages_during = 0
    for index, stamp in enumerate(stamps):
        neighbour = _cross_session_neighbour(stamps, index, window_ms)
        if neighbour is None:
            continue
        messages_during += 1
        involved.add(stamp.sessionId)
        involved.add(neighbour)

    return OverlapResult(
        overlapEvents=_round_half_up(messages_during / MESSAGES_PER_EVENT) if involved else 0,
        sessionsInvolved=len(involved),
        userMessagesDuring=messages_during,
    )
