"""Run coordination: one TestRail run per external suite identity."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel

from testrail_sync.api.client import TestRailClient
from testrail_sync.errors import RunCreationError, TestRailAPIError
from testrail_sync.models.external import ExternalSuite
from testrail_sync.models.remote import RunPayload

from .result_builder import format_duration
from .session import RunMapping

logger = logging.getLogger(__name__)


class RunOptions(BaseModel):
    milestone_id: Optional[int] = None
    assigned_to_id: Optional[int] = None
    suite_id: Optional[int] = None
    case_ids: Optional[list[int]] = None
    environment: Optional[str] = None
    build_number: Optional[str] = None


def build_run_name(suite: ExternalSuite, prefix: str, now: datetime) -> str:
    return f"{prefix} - {suite.name} - {now.strftime('%Y-%m-%d')}"


def build_run_description(
    suite: ExternalSuite,
    environment: Optional[str] = None,
    build_number: Optional[str] = None,
    prefix: str = "Automated",
    now: Optional[datetime] = None,
) -> str:
    now = now or datetime.now(timezone.utc)
    summary = suite.summary
    lines = [
        f"{prefix} Test Execution - {suite.name}",
        "",
        "Summary:",
        f"- Total Tests: {summary.total}",
        f"- Passed: {summary.passed}",
        f"- Failed: {summary.failed}",
        f"- Skipped: {summary.skipped}",
        f"- Duration: {format_duration(summary.duration_ms)}",
        "",
    ]
    if environment:
        lines.append(f"Environment: {environment}")
    if build_number:
        lines.append(f"Build: {build_number}")
    lines.append(f"Generated by testrail-sync at {now.isoformat()}")
    return "\n".join(lines)


class RunCoordinator:
    """Creates a run on first sight of a suite id and reuses it afterwards."""

    def __init__(self, client: TestRailClient, name_prefix: str = "Automated"):
        self.client = client
        self.name_prefix = name_prefix

    async def get_or_create_run(
        self,
        project_id: int,
        suite: ExternalSuite,
        run_mapping: RunMapping,
        options: Optional[RunOptions] = None,
    ) -> int:
        key = suite.external_suite_id
        existing = run_mapping.get(key)
        if existing is not None:
            logger.debug("Reusing run R%d for suite '%s'", existing, key)
            return existing

        async with run_mapping.lock(key):
            existing = run_mapping.get(key)
            if existing is not None:
                return existing

            run_id = await self._create_run(project_id, suite, options or RunOptions())
            run_mapping.set(key, run_id)
            return run_id

    async def _create_run(self, project_id: int, suite: ExternalSuite, options: RunOptions) -> int:
        now = datetime.now(timezone.utc)
        payload = RunPayload(
            name=build_run_name(suite, self.name_prefix, now),
            description=build_run_description(
                suite, options.environment, options.build_number, self.name_prefix, now,
            ),
            suite_id=options.suite_id,
            milestone_id=options.milestone_id,
            assignedto_id=options.assigned_to_id,
            case_ids=options.case_ids,
        )
        try:
            run = await self.client.add_run(project_id, payload)
        except TestRailAPIError as e:
            raise RunCreationError(f"Failed to create TestRail run: {e}") from e
        logger.info("Created run R%d '%s' for suite '%s'",
                    run.id, payload.name, suite.external_suite_id)
        return run.id

    async def close_run(self, run_id: int) -> None:
        await self.client.close_run(run_id)
        logger.info("Closed run R%d", run_id)
