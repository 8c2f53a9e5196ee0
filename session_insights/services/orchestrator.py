"""Resumable multi-pass insights pipeline.

One invocation advances the pipeline as far as the persisted inputs allow:

    aggregating -> sampling (awaiting facets) -> synthesizing (awaiting the
    global synthesis) -> rendering -> done

Waiting is never done in-process. When a pass needs external work it writes
a work request, returns, and the next invocation re-derives every decision
from what is on disk. Aggregation always re-runs in full; facets and the
synthesis are reused once they exist.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from session_insights import config, observability
from session_insights.models import (
    AggregateReport,
    FacetSchema,
    PipelineOutcome,
    PipelineStage,
    PipelineState,
    RunMetadata,
    SampledTranscript,
    SessionSummary,
    WorkRequest,
)
from session_insights.parsers.sessions import iter_session_files
from session_insights.repositories import FacetCache, PipelineArtifacts
from session_insights.services.aggregator import aggregate_sessions
from session_insights.services.qualitative import merge_facets
from session_insights.services.report import HtmlReportRenderer, JsonReportRenderer, ReportRenderer
from session_insights.services.sampling import build_session_excerpt, select_top_sessions

logger = logging.getLogger("insights.orchestrator")

SYNTHESIS_SECTIONS = (
    "at_a_glance",
    "project_areas",
    "interaction_style",
    "what_works",
    "friction_analysis",
    "suggestions",
    "on_the_horizon",
    "notable_moment",
)


class SessionRootNotFoundError(RuntimeError):
    """Raised when no session directory could be resolved."""


@dataclass
class PipelineSettings:
    session_dir: Path | None
    cache_dir: Path
    work_dir: Path
    report_path: Path
    sample_size: int = config.SAMPLE_SIZE
    retention_days: int = config.RETENTION_DAYS
    template_path: Path | None = None

    @property
    def facets_dir(self) -> Path:
        return self.cache_dir / "facets"

    @classmethod
    def from_env(cls, **overrides: Any) -> PipelineSettings:
        """Resolve settings from the environment; explicit overrides win."""
        if "template_path" not in overrides:
            overrides["template_path"] = Path(config.TEMPLATE_PATH) if config.TEMPLATE_PATH else None
        if "report_path" not in overrides:
            if config.REPORT_PATH:
                overrides["report_path"] = Path(config.REPORT_PATH)
            else:
                suffix = "html" if overrides["template_path"] else "json"
                overrides["report_path"] = Path.cwd() / f"insights-report.{suffix}"
        if "session_dir" not in overrides:
            overrides["session_dir"] = config.resolve_session_dir()
        if "cache_dir" not in overrides:
            overrides["cache_dir"] = config.resolve_cache_dir()
        if "work_dir" not in overrides:
            overrides["work_dir"] = config.resolve_temp_dir()
        return cls(**overrides)


def _facet_instructions() -> str:
    return (
        "For each session below, analyze its sampled transcript and produce one facet "
        "object matching facetSchema. Batch the sessions and delegate each one to a "
        "session analyst. Save every result with "
        "`insights-save-facet <session_id> '<json>'`, then re-run the pipeline."
    )


def _synthesis_instructions(artifacts: PipelineArtifacts) -> str:
    sections = ", ".join(SYNTHESIS_SECTIONS)
    return (
        f"Read '{artifacts.stats_path}' and '{artifacts.facets_path}'. Produce one JSON "
        f"object with the sections {sections} and save it directly to "
        f"'{artifacts.synthesis_path}', then re-run the pipeline."
    )


class InsightsPipeline:
    """Drive one invocation of the insights state machine."""

    def __init__(
        self,
        settings: PipelineSettings,
        renderer: ReportRenderer | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.artifacts = PipelineArtifacts(settings.work_dir, settings.cache_dir)
        self.facets = FacetCache(settings.facets_dir)
        self.clock = clock
        if renderer is None:
            if settings.template_path:
                renderer = HtmlReportRenderer(settings.template_path)
            else:
                renderer = JsonReportRenderer()
        self.renderer = renderer

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def run(self) -> PipelineOutcome:
        """Advance the pipeline; failures are logged and reported, never raised."""
        started = time.monotonic()
        try:
            with observability.start_span("insights.run", {"sample_size": self.settings.sample_size}):
                outcome = self._advance()
        except Exception as exc:  # noqa: BLE001
            logger.exception("Orchestration failed")
            outcome = PipelineOutcome(stage=PipelineStage.FAILED, message=f"Orchestration failed: {exc}")
        observability.record_pass(outcome.stage.value, (time.monotonic() - started) * 1000)
        return outcome

    def _advance(self) -> PipelineOutcome:
        state = self._load_or_start_state()

        report = self._aggregate()
        selected = select_top_sessions(report.sessionList, self.settings.sample_size)
        logger.info("Selected %d of %d sessions for qualitative analysis", len(selected), len(report.sessionList))

        missing = [summary for summary in selected if not self.facets.has(summary.id)]
        if missing:
            return self._request_facets(missing)

        facets = self._collect_facets(selected)
        with observability.start_span("insights.synthesize", {"facets": len(facets)}):
            report = report.model_copy(update={"qualitative": merge_facets(facets)})
            self.artifacts.write_facets(facets)
            self.artifacts.write_stats(report)

        synthesis = self.artifacts.read_synthesis()
        if synthesis is None:
            return self._request_synthesis()

        return self._render(report, synthesis, state, selected)

    def _load_or_start_state(self) -> PipelineState:
        state = self.artifacts.load_state()
        if state is not None:
            logger.info("Resuming run started at %d", state.startTime)
            pending = self.artifacts.read_work_request()
            if pending is not None:
                logger.info("Re-checking pending %s request", pending.task)
            return state
        state = PipelineState(startTime=self._now_ms())
        self.artifacts.save_state(state)
        return state

    def _aggregate(self) -> AggregateReport:
        session_dir = self.settings.session_dir
        if session_dir is None:
            raise SessionRootNotFoundError("Could not resolve session directory")

        logger.info("Pass 1: aggregating sessions under %s", session_dir)
        with observability.start_span("insights.aggregate", {"session_dir": str(session_dir)}):
            report = aggregate_sessions(
                iter_session_files(session_dir),
                now=self._now_ms(),
                retention_days=self.settings.retention_days,
            )
            self.artifacts.write_stats(report)

        persisted = self.artifacts.read_stats()
        if persisted is None:
            raise RuntimeError(f"Aggregation output {self.artifacts.stats_path} could not be read back")
        return persisted

    def _request_facets(self, missing: list[SessionSummary]) -> PipelineOutcome:
        logger.info("Pass 2: %d selected sessions need facets", len(missing))
        with observability.start_span("insights.sample", {"sessions": len(missing)}):
            request = WorkRequest(
                task="EXTRACT_FACETS",
                sessions=[
                    SampledTranscript(id=summary.id, transcript=build_session_excerpt(summary))
                    for summary in missing
                ],
                instructions=_facet_instructions(),
                facetSchema=FacetSchema.model_json_schema(),
            )
            todo_path = self.artifacts.write_work_request(request)
        return PipelineOutcome(
            stage=PipelineStage.SAMPLING,
            message=f"TODO: Please read '{todo_path}' and process the missing session facets.",
            artifactPath=str(todo_path),
        )

    def _collect_facets(self, selected: list[SessionSummary]) -> list[Any]:
        facets: list[Any] = []
        for summary in selected:
            facet = self.facets.read(summary.id)
            if facet is None:
                continue
            if isinstance(facet, dict):
                facet = {"session_id": summary.id, **facet}
            facets.append(facet)
        return facets

    def _request_synthesis(self) -> PipelineOutcome:
        logger.info("Pass 3: global synthesis missing at %s", self.artifacts.synthesis_path)
        request = WorkRequest(
            task="GLOBAL_SYNTHESIS",
            statsFile=str(self.artifacts.stats_path),
            facetsFile=str(self.artifacts.facets_path),
            synthesisPath=str(self.artifacts.synthesis_path),
            instructions=_synthesis_instructions(self.artifacts),
        )
        todo_path = self.artifacts.write_work_request(request)
        return PipelineOutcome(
            stage=PipelineStage.SYNTHESIZING,
            message=f"TODO: Please read '{todo_path}' and perform the global synthesis.",
            artifactPath=str(todo_path),
        )

    def _render(
        self,
        report: AggregateReport,
        synthesis: dict[str, Any],
        state: PipelineState,
        selected: list[SessionSummary],
    ) -> PipelineOutcome:
        logger.info("Pass 4: generating report")
        report = report.model_copy(
            update={
                "meta": RunMetadata(
                    generationTimeMs=max(0, self._now_ms() - state.startTime),
                    qualitativeSessionsAnalyzed=len(selected),
                    totalSessionsScanned=report.totalSessionsScanned,
                    sessionsAnalyzedCount=report.sessionsAnalyzed,
                    sampleSize=self.settings.sample_size,
                )
            }
        )
        self.artifacts.write_stats(report)

        with observability.start_span("insights.render", {"output": str(self.settings.report_path)}):
            output_path = self.renderer.render(report, synthesis, self.settings.report_path)

        self.artifacts.clear_work_request()
        self.artifacts.clear_state()
        return PipelineOutcome(
            stage=PipelineStage.DONE,
            message=f"FINISH: Report generated successfully at {output_path}",
            artifactPath=str(output_path),
        )
