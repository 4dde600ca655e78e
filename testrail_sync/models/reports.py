"""Report structures returned by the sync and analysis operations."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from .remote import StatusCode


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


class RunStats(BaseModel):
    total_tests: int = 0
    passed: int = 0
    failed: int = 0
    blocked: int = 0
    untested: int = 0
    retest: int = 0
    pass_rate: float = 0.0
    completion_rate: float = 0.0


class TrendPoint(BaseModel):
    date: str  # YYYY-MM-DD
    run_id: Optional[int] = None
    stats: RunStats


class TrendReport(BaseModel):
    success: bool = True
    period: dict[str, str] = Field(
        default_factory=lambda: {"start": "all_time", "end": "now"}
    )
    data_points: int = 0
    trend_points: list[TrendPoint] = Field(default_factory=list)
    avg_pass_rate: float = 0.0
    avg_completion_rate: float = 0.0
    trend_direction: str = "insufficient_data"  # improving, declining, stable
    overall: RunStats = Field(default_factory=RunStats)
    errors: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------


class StatusChange(BaseModel):
    case_id: int
    from_status: int
    to_status: int
    is_regression: bool = False

    @property
    def is_improvement(self) -> bool:
        return self.from_status == StatusCode.FAILED and self.to_status == StatusCode.PASSED


class CaseStatus(BaseModel):
    case_id: int
    status: int


class ComparisonResult(BaseModel):
    common_case_count: int = 0
    status_changes: list[StatusChange] = Field(default_factory=list)
    new_cases: list[CaseStatus] = Field(default_factory=list)
    missing_cases: list[CaseStatus] = Field(default_factory=list)
    regression_count: int = 0

    @property
    def regressions(self) -> list[StatusChange]:
        return [c for c in self.status_changes if c.is_regression]

    @property
    def improvements(self) -> list[StatusChange]:
        return [c for c in self.status_changes if c.is_improvement]


class Indicator(BaseModel):
    case_id: int
    type: str
    severity: Optional[str] = None
    description: str


class RunSnapshot(BaseModel):
    run_id: int
    name: str = ""
    stats: RunStats = Field(default_factory=RunStats)


class ComparisonReport(BaseModel):
    success: bool = True
    baseline: Optional[RunSnapshot] = None
    current: Optional[RunSnapshot] = None
    comparison: Optional[ComparisonResult] = None
    regression_indicators: list[Indicator] = Field(default_factory=list)
    improvement_indicators: list[Indicator] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Submission / sync
# ---------------------------------------------------------------------------


class BatchOutcome(BaseModel):
    index: int
    size: int
    addressing: str  # test, case
    submitted: bool = False
    error: Optional[str] = None


class SubmissionReport(BaseModel):
    submitted_count: int = 0
    failed_count: int = 0
    batch_count: int = 0
    outcomes: list[BatchOutcome] = Field(default_factory=list)
    status_counts: dict[int, int] = Field(default_factory=dict)


class SyncReport(BaseModel):
    success: bool = False
    run_id: Optional[int] = None
    created_cases: int = 0
    submitted_results: int = 0
    total_results: int = 0
    submission: Optional[SubmissionReport] = None
    errors: list[str] = Field(default_factory=list)


class ConnectionReport(BaseModel):
    success: bool = False
    user: Optional[dict[str, Any]] = None
    errors: list[str] = Field(default_factory=list)
