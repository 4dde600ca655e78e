"""Pass-rate and completion-rate statistics for runs and test lists."""

from __future__ import annotations

from collections import Counter
from typing import Iterable

from testrail_sync.models.remote import RemoteRun, RemoteTest, StatusCode
from testrail_sync.models.reports import RunStats


def _build(passed: int, failed: int, blocked: int, untested: int, retest: int) -> RunStats:
    total = passed + failed + blocked + untested + retest
    return RunStats(
        total_tests=total,
        passed=passed,
        failed=failed,
        blocked=blocked,
        untested=untested,
        retest=retest,
        pass_rate=passed / total * 100 if total else 0.0,
        completion_rate=(total - untested) / total * 100 if total else 0.0,
    )


def stats_from_run(run: RemoteRun) -> RunStats:
    return _build(run.passed_count, run.failed_count, run.blocked_count,
                  run.untested_count, run.retest_count)


def stats_from_tests(tests: Iterable[RemoteTest]) -> RunStats:
    """Stats from each test's current status.

    Custom statuses (ids above 5) count towards nothing but the total.
    """
    counts = Counter(t.status_id for t in tests)
    stats = _build(
        counts[StatusCode.PASSED], counts[StatusCode.FAILED], counts[StatusCode.BLOCKED],
        counts[StatusCode.UNTESTED], counts[StatusCode.RETEST],
    )
    other = sum(n for status, n in counts.items() if status not in set(StatusCode))
    if other:
        total = stats.total_tests + other
        stats.total_tests = total
        stats.pass_rate = stats.passed / total * 100
        stats.completion_rate = (total - stats.untested) / total * 100
    return stats


def aggregate_stats(runs: Iterable[RemoteRun]) -> RunStats:
    passed = failed = blocked = untested = retest = 0
    for run in runs:
        passed += run.passed_count
        failed += run.failed_count
        blocked += run.blocked_count
        untested += run.untested_count
        retest += run.retest_count
    return _build(passed, failed, blocked, untested, retest)
