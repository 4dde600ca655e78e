"""Trend analysis over a project's run history."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timezone
from typing import Iterable, Optional

from pydantic import BaseModel

from testrail_sync.models.remote import RemoteRun
from testrail_sync.models.reports import TrendPoint, TrendReport

from .run_stats import aggregate_stats, stats_from_run

logger = logging.getLogger(__name__)

TREND_WINDOW = 3
IMPROVING_RATIO = 1.05
DECLINING_RATIO = 0.95


class DateRange(BaseModel):
    start: date
    end: date

    def bounds(self) -> tuple[int, int]:
        """Inclusive unix-second bounds: start of ``start`` to end of ``end`` (UTC)."""
        lower = datetime.combine(self.start, time.min, tzinfo=timezone.utc)
        upper = datetime.combine(self.end, time.max, tzinfo=timezone.utc)
        return int(lower.timestamp()), int(upper.timestamp())

    def as_period(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def trend_direction(pass_rates: list[float]) -> str:
    """Classify pass-rate movement of the last window against the first."""
    if len(pass_rates) < 2:
        return "insufficient_data"
    recent = _mean(pass_rates[-TREND_WINDOW:])
    older = _mean(pass_rates[:TREND_WINDOW])
    if recent > older * IMPROVING_RATIO:
        return "improving"
    if recent < older * DECLINING_RATIO:
        return "declining"
    return "stable"


def analyze_trends(
    runs: Iterable[RemoteRun],
    date_range: Optional[DateRange] = None,
) -> TrendReport:
    """Build per-run trend points and classify the overall direction.

    Runs are ordered oldest first before windowing, whatever order
    TestRail returned them in.
    """
    selected = sorted(runs, key=lambda r: r.created_on)
    if date_range:
        lower, upper = date_range.bounds()
        selected = [r for r in selected if lower <= r.created_on <= upper]

    points = [
        TrendPoint(
            date=datetime.fromtimestamp(run.created_on, tz=timezone.utc).date().isoformat(),
            run_id=run.id,
            stats=stats_from_run(run),
        )
        for run in selected
    ]
    pass_rates = [p.stats.pass_rate for p in points]

    report = TrendReport(
        data_points=len(points),
        trend_points=points,
        avg_pass_rate=_mean(pass_rates),
        avg_completion_rate=_mean([p.stats.completion_rate for p in points]),
        trend_direction=trend_direction(pass_rates),
        overall=aggregate_stats(selected),
    )
    if date_range:
        report.period = date_range.as_period()

    logger.info("Trend analysis: %d runs, avg pass rate %.1f%%, direction %s",
                report.data_points, report.avg_pass_rate, report.trend_direction)
    return report
