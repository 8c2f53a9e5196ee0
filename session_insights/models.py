"""Pydantic models for persisted pipeline documents."""
from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def importance_score(user_messages: int, tool_count: int, error_count: int) -> int:
    """Ranking value used to pick sessions for qualitative analysis."""
    return user_messages * 2 + tool_count + error_count * 5


# ── Aggregation models ─────────────────────────────────────────────

class TokenTotals(BaseModel):
    input: int = 0
    output: int = 0
    thoughts: int = 0
    total: int = 0


class GitCounters(BaseModel):
    commits: int = 0
    pushes: int = 0
    total: int = 0


class SessionSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    path: str
    startTime: int  # epoch ms
    date: str = ""
    durationMinutes: int = 0
    userMessages: int = 0
    toolCount: int = 0
    errorCount: int = 0
    score: int = 0

    @classmethod
    def build(
        cls,
        *,
        id: str,
        path: str,
        startTime: int,
        date: str,
        durationMinutes: int,
        userMessages: int,
        toolCount: int,
        errorCount: int,
    ) -> SessionSummary:
        return cls(
            id=id,
            path=path,
            startTime=startTime,
            date=date,
            durationMinutes=durationMinutes,
            userMessages=userMessages,
            toolCount=toolCount,
            errorCount=errorCount,
            score=importance_score(userMessages, toolCount, errorCount),
        )


class UserMessageStamp(BaseModel):
    ts: int
    sessionId: str


class OverlapResult(BaseModel):
    overlapEvents: int = 0  # heuristic: userMessagesDuring / 5, see services.overlap
    sessionsInvolved: int = 0
    userMessagesDuring: int = 0


class DateRange(BaseModel):
    start: str = ""
    end: str = ""


class QualitativeTallies(BaseModel):
    outcomes: dict[str, int] = Field(default_factory=dict)
    satisfaction: dict[str, int] = Field(default_factory=dict)
    sessionTypes: dict[str, int] = Field(default_factory=dict)
    frictionTypes: dict[str, int] = Field(default_factory=dict)
    successTypes: dict[str, int] = Field(default_factory=dict)
    projectAreas: dict[str, int] = Field(default_factory=dict)


class RunMetadata(BaseModel):
    generationTimeMs: int = 0
    qualitativeSessionsAnalyzed: int = 0
    totalSessionsScanned: int = 0
    sessionsAnalyzedCount: int = 0
    sampleSize: int = 0


class AggregateReport(BaseModel):
    """Aggregation output artifact (stats.json)."""

    totalSessionsScanned: int = 0
    sessionsAnalyzed: int = 0
    sessionsSkipped: int = 0
    sessionsExpired: int = 0
    totalMessages: int = 0
    userMessages: int = 0
    assistantMessages: int = 0
    linesAdded: int = 0
    linesRemoved: int = 0
    filesOverwritten: int = 0
    uniqueFilesTouched: list[str] = Field(default_factory=list)
    filesTouchedCount: int = 0
    tokens: TokenTotals = Field(default_factory=TokenTotals)
    tools: dict[str, int] = Field(default_factory=dict)
    toolErrors: dict[str, int] = Field(default_factory=dict)
    languages: dict[str, int] = Field(default_factory=dict)
    git: GitCounters = Field(default_factory=GitCounters)
    totalDurationMs: int = 0
    totalDurationHours: float = 0.0
    activeDays: int = 0
    hourlyActivity: list[int] = Field(default_factory=lambda: [0] * 24)
    userResponseTimes: list[float] = Field(default_factory=list)
    sessionList: list[SessionSummary] = Field(default_factory=list)
    userMessageTimestamps: list[UserMessageStamp] = Field(default_factory=list)
    dateRange: DateRange = Field(default_factory=DateRange)
    msgsPerDay: float = 0.0
    concurrentSessions: OverlapResult = Field(default_factory=OverlapResult)
    medianResponseTime: float = 0.0
    avgResponseTime: float = 0.0
    qualitative: Optional[QualitativeTallies] = None
    meta: Optional[RunMetadata] = None


# ── Facet schema published to the external analyst ─────────────────

class FrictionCounts(BaseModel):
    misunderstood_request: int = 0
    wrong_approach: int = 0
    buggy_code: int = 0
    user_rejected_action: int = 0
    excessive_changes: int = 0
    tool_failures: int = 0


class FacetSchema(BaseModel):
    """Shape each extracted facet should have.

    Only used to publish a JSON schema in work requests. Cached facets are
    stored as-is and merged permissively.
    """

    underlying_goal: str = Field(description="What the user fundamentally wanted to achieve")
    outcome: Literal[
        "fully_achieved",
        "mostly_achieved",
        "partially_achieved",
        "not_achieved",
        "unclear_from_transcript",
    ]
    claude_helpfulness: Literal[
        "unhelpful",
        "slightly_helpful",
        "moderately_helpful",
        "very_helpful",
        "essential",
    ]
    session_type: Literal[
        "single_task",
        "multi_task",
        "iterative_refinement",
        "exploration",
        "quick_question",
    ]
    friction_counts: FrictionCounts = Field(default_factory=FrictionCounts)
    friction_detail: str = Field(default="", description="One sentence describing friction, or empty")
    primary_success: Literal[
        "none",
        "fast_accurate_search",
        "correct_code_edits",
        "good_explanations",
        "proactive_help",
        "multi_file_changes",
        "good_debugging",
    ] = "none"
    brief_summary: str = Field(description="One sentence: what the user wanted and whether they got it")
    project_area: str = Field(default="", description="Short tag for the part of the project worked on")


# ── Pipeline state & work requests ─────────────────────────────────

class PipelineStage(str, Enum):
    AGGREGATING = "aggregating"
    SAMPLING = "sampling"
    SYNTHESIZING = "synthesizing"
    RENDERING = "rendering"
    DONE = "done"
    FAILED = "failed"


class PipelineState(BaseModel):
    startTime: int  # epoch ms


class SampledTranscript(BaseModel):
    id: str
    transcript: str


class WorkRequest(BaseModel):
    task: Literal["EXTRACT_FACETS", "GLOBAL_SYNTHESIS"]
    instructions: str = ""
    sessions: list[SampledTranscript] = Field(default_factory=list)
    facetSchema: dict[str, Any] = Field(default_factory=dict)
    statsFile: str = ""
    facetsFile: str = ""
    synthesisPath: str = ""


class PipelineOutcome(BaseModel):
    stage: PipelineStage
    message: str = ""
    artifactPath: Optional[str] = None
