"""Pytest configuration and shared fixtures."""

import asyncio
from collections import Counter
from typing import Any, Optional

import pytest

from testrail_sync.errors import TestRailAPIError
from testrail_sync.models.config import BridgeConfig
from testrail_sync.models.external import ExternalResult, ExternalSuite, SuiteSummary
from testrail_sync.models.remote import (
    CasePayload,
    RemoteCase,
    RemoteRun,
    RemoteTest,
    RunPayload,
)
from testrail_sync.orchestrator import Orchestrator


# ============================================================================
# Fake TestRail backend
# ============================================================================


class FakeTestRailClient:
    """In-memory stand-in for TestRailClient with per-endpoint call counts.

    Every call suspends for ``delay`` seconds so concurrent callers really
    interleave. Put an exception in ``fail_on[<method name>]`` to make that
    endpoint raise on every call, or in ``fail_once`` for the next call only.
    ``max_in_flight`` records the highest number of overlapping calls.
    """

    def __init__(self):
        self.cases: list[RemoteCase] = []
        self.case_payloads: list[CasePayload] = []
        self.runs: dict[int, RemoteRun] = {}
        self.run_payloads: list[RunPayload] = []
        self.tests: dict[int, list[RemoteTest]] = {}
        self.submissions: list[tuple[str, int, list[dict[str, Any]]]] = []
        self.closed_runs: list[int] = []
        self.calls: Counter = Counter()
        self.fail_on: dict[str, Exception] = {}
        self.fail_once: dict[str, Exception] = {}
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0
        self._next_case_id = 1
        self._next_run_id = 1

    async def _call(self, name: str) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        self.calls[name] += 1
        if name in self.fail_once:
            raise self.fail_once.pop(name)
        if name in self.fail_on:
            raise self.fail_on[name]

    async def get_cases(self, project_id: int, suite_id=None, limit=None, offset=None):
        await self._call("get_cases")
        return list(self.cases[:limit] if limit else self.cases)

    async def add_case(self, section_id: int, payload: CasePayload) -> RemoteCase:
        await self._call("add_case")
        case = RemoteCase(id=self._next_case_id, title=payload.title,
                          section_id=section_id, refs=payload.refs)
        self._next_case_id += 1
        self.cases.append(case)
        self.case_payloads.append(payload)
        return case

    async def add_run(self, project_id: int, payload: RunPayload) -> RemoteRun:
        await self._call("add_run")
        run = RemoteRun(id=self._next_run_id, name=payload.name,
                        description=payload.description, project_id=project_id)
        self._next_run_id += 1
        self.runs[run.id] = run
        self.run_payloads.append(payload)
        return run

    async def get_run(self, run_id: int) -> RemoteRun:
        await self._call("get_run")
        if run_id not in self.runs:
            raise TestRailAPIError("Field :run_id is not a valid test run.", status_code=400)
        return self.runs[run_id]

    async def get_runs(self, project_id: int, created_after=None, created_before=None,
                       limit=None) -> list[RemoteRun]:
        await self._call("get_runs")
        runs = list(self.runs.values())
        if created_after is not None:
            runs = [r for r in runs if r.created_on >= created_after]
        if created_before is not None:
            runs = [r for r in runs if r.created_on <= created_before]
        return runs[:limit] if limit else runs

    async def close_run(self, run_id: int) -> RemoteRun:
        await self._call("close_run")
        self.closed_runs.append(run_id)
        return self.runs[run_id]

    async def get_tests(self, run_id: int) -> list[RemoteTest]:
        await self._call("get_tests")
        if run_id not in self.tests:
            raise TestRailAPIError("Field :run_id is not a valid test run.", status_code=400)
        return self.tests[run_id]

    async def add_results(self, run_id: int, results: list[dict]) -> list[dict]:
        await self._call("add_results")
        self.submissions.append(("test", run_id, results))
        return results

    async def add_results_for_cases(self, run_id: int, results: list[dict]) -> list[dict]:
        await self._call("add_results_for_cases")
        self.submissions.append(("case", run_id, results))
        return results

    async def get_user_by_email(self, email: str) -> dict:
        await self._call("get_user_by_email")
        return {"id": 1, "name": "QA Bot", "email": email}

    async def aclose(self) -> None:
        pass


# ============================================================================
# Helpers
# ============================================================================


def make_result(
    external_test_id: str = "t1",
    title: str = "Login works",
    status: str = "passed",
    duration_ms: Optional[int] = None,
    error: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> ExternalResult:
    return ExternalResult(
        external_test_id=external_test_id,
        title=title,
        status=status,
        duration_ms=duration_ms,
        error=error,
        metadata=metadata,
    )


def make_run(run_id: int, passed=0, failed=0, blocked=0, untested=0, retest=0,
             created_on: int = 1_700_000_000) -> RemoteRun:
    return RemoteRun(
        id=run_id, name=f"Run {run_id}",
        passed_count=passed, failed_count=failed, blocked_count=blocked,
        untested_count=untested, retest_count=retest, created_on=created_on,
    )


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def bridge_config() -> BridgeConfig:
    """Create a test bridge configuration."""
    return BridgeConfig(
        base_url="https://example.testrail.io",
        username="qa@example.com",
        api_key="test-key",
        default_section_id=7,
    )


@pytest.fixture
def fake_client() -> FakeTestRailClient:
    return FakeTestRailClient()


@pytest.fixture
def orchestrator(bridge_config: BridgeConfig, fake_client: FakeTestRailClient) -> Orchestrator:
    return Orchestrator(bridge_config, client=fake_client)


@pytest.fixture
def login_suite() -> ExternalSuite:
    """The two-result login suite used by the end-to-end scenarios."""
    return ExternalSuite(
        external_suite_id="login-suite",
        name="Login",
        results=[
            make_result("t1", "Login works", "passed"),
            make_result("t2", "Login rejects bad pw", "failed", error="timeout"),
        ],
        summary=SuiteSummary(total=2, passed=1, failed=1, skipped=0, blocked=0,
                             duration_ms=4300),
    )
