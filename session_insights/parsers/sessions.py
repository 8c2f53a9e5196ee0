"""Enumerate and load session log files."""
from __future__ import annotations

import json
import os
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from session_insights import config


class SessionParseError(ValueError):
    """Raised when a session file cannot be read or is not a JSON object."""


def is_session_file(name: str) -> bool:
    return name.startswith(config.SESSION_FILE_PREFIX) and name.endswith(config.SESSION_FILE_SUFFIX)


def iter_session_files(root: Path | None) -> Iterator[Path]:
    """Yield session files under *root*, depth-first, in name order.

    A missing root yields nothing: having no session history is a valid state.
    Re-invoking restarts the walk from the beginning.
    """
    if root is None:
        return
    try:
        with os.scandir(root) as scanner:
            entries = sorted(scanner, key=lambda entry: entry.name)
    except OSError:
        return

    for entry in entries:
        path = Path(entry.path)
        if entry.is_dir():
            yield from iter_session_files(path)
        elif entry.is_file() and is_session_file(entry.name):
            yield path


def load_session_record(path: Path) -> dict[str, Any]:
    """Read one session file and return its top-level JSON object."""
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise SessionParseError(f"Unreadable session file {path}: {exc}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SessionParseError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise SessionParseError(f"Expected a JSON object in {path}")
    return data


def session_id_for(record: dict[str, Any], path: Path) -> str:
    """Stable session identifier, falling back to the filename stem."""
    raw_id = record.get("sessionId")
    if isinstance(raw_id, str) and raw_id.strip():
        return raw_id.strip()
    return path.stem
