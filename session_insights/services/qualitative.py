"""Roll cached facets up into qualitative tallies."""
from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable
from typing import Any

from session_insights.models import QualitativeTallies

# tally name -> facet field holding a single label
_LABEL_FIELDS: dict[str, str] = {
    "outcomes": "outcome",
    "satisfaction": "claude_helpfulness",
    "sessionTypes": "session_type",
    "successTypes": "primary_success",
    "projectAreas": "project_area",
}


def _label(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    return ""


def _friction_amount(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if not math.isfinite(value) or value < 0:
        return 0
    return int(value)


def merge_facets(facets: Iterable[Any]) -> QualitativeTallies:
    """Count outcomes, helpfulness, session types, friction and successes.

    Order independent and free of side effects: the same facet collection
    always yields the same tallies. Non-object facets and fields of an
    unexpected type are ignored.
    """
    counters: dict[str, Counter[str]] = {name: Counter() for name in _LABEL_FIELDS}
    friction: Counter[str] = Counter()

    for facet in facets:
        if not isinstance(facet, dict):
            continue
        for tally_name, field_name in _LABEL_FIELDS.items():
            label = _label(facet.get(field_name))
            if label:
                counters[tally_name][label] += 1

        friction_counts = facet.get("friction_counts")
        if isinstance(friction_counts, dict):
            for friction_type, count in friction_counts.items():
                amount = _friction_amount(count)
                if amount:
                    friction[str(friction_type)] += amount

    return QualitativeTallies(
        frictionTypes=dict(sorted(friction.items())),
        **{name: dict(sorted(counter.items())) for name, counter in counters.items()},
    )
