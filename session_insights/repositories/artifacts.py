"""Filesystem-resident pipeline artifacts.

Every pass reads its inputs back from here rather than from memory, so a run
can stop after any pass and the next invocation picks up from disk.

Layout:
    <cache>/state.json          run start marker (PipelineState)
    <work>/stats.json           aggregation output (AggregateReport)
    <work>/TODO.json            pending work request for the external analyst
    <work>/all-facets.json      merged facet collection for synthesis
    <work>/synthesis.json       global synthesis written by the external analyst
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from session_insights.models import AggregateReport, PipelineState, WorkRequest

logger = logging.getLogger("insights.artifacts")


def read_json(path: Path) -> Any | None:
    """Load a JSON document, treating missing or corrupt files as absent."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable artifact %s: %s", path, exc)
        return None


def write_json_atomic(path: Path, payload: Any) -> Path:
    """Replace *path* with *payload* so readers never observe a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
            f.write("\n")
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return path


def _unlink(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


class PipelineArtifacts:
    """Paths and typed accessors for one work directory + cache root."""

    def __init__(self, work_dir: Path, cache_dir: Path):
        self.work_dir = work_dir
        self.cache_dir = cache_dir
        self.state_path = cache_dir / "state.json"
        self.stats_path = work_dir / "stats.json"
        self.todo_path = work_dir / "TODO.json"
        self.facets_path = work_dir / "all-facets.json"
        self.synthesis_path = work_dir / "synthesis.json"

    # ── Run state ──────────────────────────────────────────────────

    def load_state(self) -> PipelineState | None:
        raw = read_json(self.state_path)
        if not isinstance(raw, dict):
            return None
        try:
            return PipelineState.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Ignoring malformed run state %s: %s", self.state_path, exc)
            return None

    def save_state(self, state: PipelineState) -> None:
        write_json_atomic(self.state_path, state.model_dump(mode="json"))

    def clear_state(self) -> None:
        _unlink(self.state_path)

    # ── Aggregation output ─────────────────────────────────────────

    def write_stats(self, report: AggregateReport) -> Path:
        return write_json_atomic(self.stats_path, report.model_dump(mode="json"))

    def read_stats(self) -> AggregateReport | None:
        raw = read_json(self.stats_path)
        if not isinstance(raw, dict):
            return None
        try:
            return AggregateReport.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Ignoring malformed stats %s: %s", self.stats_path, exc)
            return None

    # ── Work requests ──────────────────────────────────────────────

    def write_work_request(self, request: WorkRequest) -> Path:
        return write_json_atomic(self.todo_path, request.model_dump(mode="json"))

    def read_work_request(self) -> WorkRequest | None:
        raw = read_json(self.todo_path)
        if not isinstance(raw, dict):
            return None
        try:
            return WorkRequest.model_validate(raw)
        except ValidationError:
            return None

    def clear_work_request(self) -> None:
        _unlink(self.todo_path)

    # ── Qualitative inputs ─────────────────────────────────────────

    def write_facets(self, facets: list[Any]) -> Path:
        return write_json_atomic(self.facets_path, facets)

    def read_synthesis(self) -> dict[str, Any] | None:
        raw = read_json(self.synthesis_path)
        return raw if isinstance(raw, dict) else None
