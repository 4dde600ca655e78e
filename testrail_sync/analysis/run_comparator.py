"""Run comparison: finds regressions and improvements between two runs."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Union

from pydantic import ValidationError

from testrail_sync.errors import ComparisonInputError
from testrail_sync.models.remote import RemoteTest, StatusCode
from testrail_sync.models.reports import (
    CaseStatus,
    ComparisonResult,
    Indicator,
    StatusChange,
)

logger = logging.getLogger(__name__)

TestSnapshot = Iterable[Union[RemoteTest, dict[str, Any]]]


def _index(tests: TestSnapshot, side: str) -> dict[int, int]:
    if tests is None or isinstance(tests, (str, bytes, dict)):
        raise ComparisonInputError(f"{side} snapshot must be a list of tests")
    try:
        items = list(tests)
    except TypeError as e:
        raise ComparisonInputError(f"{side} snapshot must be a list of tests") from e

    index: dict[int, int] = {}
    for item in items:
        try:
            test = item if isinstance(item, RemoteTest) else RemoteTest.model_validate(item)
        except ValidationError as e:
            raise ComparisonInputError(f"Malformed test in {side} snapshot: {e}") from e
        index[test.case_id] = test.status_id
    return index


def is_regression(from_status: int, to_status: int) -> bool:
    return from_status == StatusCode.PASSED and to_status == StatusCode.FAILED


def compare_runs(
    baseline_tests: TestSnapshot,
    current_tests: TestSnapshot,
    include_new: bool = False,
    include_missing: bool = False,
) -> ComparisonResult:
    """Compare two runs' per-case statuses, keyed by case id."""
    baseline = _index(baseline_tests, "baseline")
    current = _index(current_tests, "current")

    result = ComparisonResult()
    for case_id, status in current.items():
        if case_id in baseline:
            result.common_case_count += 1
            before = baseline[case_id]
            if before != status:
                result.status_changes.append(StatusChange(
                    case_id=case_id,
                    from_status=before,
                    to_status=status,
                    is_regression=is_regression(before, status),
                ))
        elif include_new:
            result.new_cases.append(CaseStatus(case_id=case_id, status=status))

    if include_missing:
        result.missing_cases = [
            CaseStatus(case_id=case_id, status=status)
            for case_id, status in baseline.items()
            if case_id not in current
        ]

    result.regression_count = sum(1 for c in result.status_changes if c.is_regression)
    if result.regression_count:
        logger.warning("Detected %d regressions", result.regression_count)
    return result


def regression_indicators(result: ComparisonResult) -> list[Indicator]:
    return [
        Indicator(
            case_id=c.case_id,
            type="status_regression",
            severity="high",
            description=f"Test case {c.case_id} regressed from passed to failed",
        )
        for c in result.regressions
    ]


def improvement_indicators(result: ComparisonResult) -> list[Indicator]:
    return [
        Indicator(
            case_id=c.case_id,
            type="status_improvement",
            description=f"Test case {c.case_id} improved from failed to passed",
        )
        for c in result.improvements
    ]
