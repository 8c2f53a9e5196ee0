"""Shared timestamp normalization helpers."""
from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any

MS_PER_MINUTE = 60_000
MS_PER_HOUR = 3_600_000
MS_PER_DAY = 24 * MS_PER_HOUR
# 9999-12-30T00:00:00Z. Later instants overflow datetime once shifted to a
# local timezone east of UTC.
_MAX_EPOCH_MS = 253_402_128_000_000


def _parse_datetime_token(token: str) -> datetime | None:
    cleaned = token.strip()
    if not cleaned:
        return None
    try:
        parsed = datetime.fromisoformat(cleaned.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def to_epoch_ms(value: Any) -> int | None:
    """Convert an ISO-8601 string or epoch-millisecond number to epoch ms.

    Returns None for anything that cannot be interpreted as a point in time
    at or after the Unix epoch. Naive ISO strings are treated as UTC.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        value = dt.timestamp() * 1000
    elif isinstance(value, str):
        parsed = _parse_datetime_token(value)
        if parsed is None:
            return None
        value = parsed.timestamp() * 1000
    if not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or not 0 <= value <= _MAX_EPOCH_MS:
        return None
    return int(value)


def epoch_ms_to_date(value_ms: int) -> str:
    """Return the UTC calendar date (YYYY-MM-DD) of an epoch-ms timestamp."""
    return datetime.fromtimestamp(value_ms / 1000, timezone.utc).date().isoformat()


def local_hour(value_ms: int) -> int:
    """Return the hour-of-day of an epoch-ms timestamp in the local timezone."""
    return datetime.fromtimestamp(value_ms / 1000).hour


def now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)
