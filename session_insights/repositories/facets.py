"""Durable per-session facet cache.

Facets are qualitative annotations written by an external analyst, one JSON
file per session id. A facet never expires: it describes a fixed transcript.
Writes overwrite the whole file; a file that cannot be read back is treated
as if it were never written.
"""
from __future__ import annotations

import hashlib
import json
import logging
import re
from pathlib import Path
from typing import Any

logger = logging.getLogger("insights.facets")

_SAFE_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_:-][A-Za-z0-9._:-]*$")
_json_decoder = json.JSONDecoder()


class FacetParseError(ValueError):
    """Raised when text handed to the cache contains no JSON object."""


def extract_json(text: str | None) -> dict[str, Any] | None:
    """Return the first JSON object embedded in *text*, ignoring surrounding prose."""
    if not text:
        return None
    index = text.find("{")
    while index != -1:
        try:
            value, _ = _json_decoder.raw_decode(text, index)
        except json.JSONDecodeError:
            index = text.find("{", index + 1)
            continue
        if isinstance(value, dict):
            return value
        index = text.find("{", index + 1)
    return None


def cache_key(session_id: str) -> str:
    """Filename-safe key for a session id."""
    cleaned = (session_id or "").strip()
    if cleaned and _SAFE_KEY_PATTERN.match(cleaned):
        return cleaned
    return hashlib.sha1(cleaned.encode("utf-8")).hexdigest()


class FacetCache:
    """Session-id keyed facet store rooted at one directory."""

    def __init__(self, root: Path):
        self.root = root

    def path_for(self, session_id: str) -> Path:
        return self.root / f"{cache_key(session_id)}.json"

    def has(self, session_id: str) -> bool:
        return self.read(session_id) is not None

    def read(self, session_id: str) -> Any | None:
        path = self.path_for(session_id)
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Unreadable facet for %s: %s", session_id, exc)
            return None
        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            logger.warning("Corrupt facet for %s treated as missing: %s", session_id, exc)
            return None

    def write(self, session_id: str, facet: Any) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.path_for(session_id)
        path.write_text(json.dumps(facet, indent=2), encoding="utf-8")
        return path

    def save_raw(self, session_id: str, text: str) -> Path:
        """Extract a facet object from free text and store it."""
        facet = extract_json(text)
        if facet is None:
            raise FacetParseError(f"No valid JSON object found in facet text for {session_id}")
        path = self.write(session_id, facet)
        logger.info("Saved facet for %s", session_id)
        return path
