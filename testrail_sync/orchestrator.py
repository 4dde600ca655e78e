"""Bridge orchestrator: the public sync, compare and trend operations.

Every operation returns a report with an explicit ``success`` flag and an
``errors`` list; failures inside the components are converted into those
fields here and never raised to the caller.
"""

from __future__ import annotations

import logging
import time
from typing import Optional, Union

from pydantic import BaseModel, ValidationError

from testrail_sync.analysis.run_comparator import (
    compare_runs,
    improvement_indicators,
    regression_indicators,
)
from testrail_sync.analysis.run_stats import stats_from_tests
from testrail_sync.analysis.trend_analyzer import DateRange, analyze_trends
from testrail_sync.api.client import TestRailClient
from testrail_sync.errors import SyncError, TestRailAPIError
from testrail_sync.models.config import BridgeConfig
from testrail_sync.models.external import ExternalSuite
from testrail_sync.models.reports import (
    ComparisonReport,
    ConnectionReport,
    RunSnapshot,
    SyncReport,
    TrendReport,
)
from testrail_sync.sync.batch_submitter import BatchSubmitter
from testrail_sync.sync.case_resolver import CaseResolver
from testrail_sync.sync.result_builder import build_mapped_result
from testrail_sync.sync.run_coordinator import RunCoordinator, RunOptions
from testrail_sync.sync.session import SyncSession
from testrail_sync.sync.tasks import gather_or_cancel

logger = logging.getLogger(__name__)


class SyncOptions(BaseModel):
    create_cases_if_missing: bool = True
    milestone_id: Optional[int] = None
    assigned_to_id: Optional[int] = None
    environment: Optional[str] = None
    build_number: Optional[str] = None
    section_id: Optional[int] = None
    close_run: bool = False
    add_defects: bool = True


class Orchestrator:
    """Coordinates case resolution, run coordination and result submission."""

    def __init__(self, config: BridgeConfig, client: TestRailClient | None = None):
        self.config = config
        self.client = client or TestRailClient(config)
        self.case_resolver = CaseResolver(
            self.client,
            default_section_id=config.default_section_id,
            page_limit=config.case_page_limit,
            max_parallel=config.max_parallel_resolutions,
        )
        self.run_coordinator = RunCoordinator(self.client, name_prefix=config.run_name_prefix)
        self.batch_submitter = BatchSubmitter(self.client, max_parallel=config.max_parallel_batches)

    async def __aenter__(self) -> "Orchestrator":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.client.aclose()

    # ------------------------------------------------------------------
    # Synchronization
    # ------------------------------------------------------------------

    async def sync(
        self,
        project_id: int,
        suite: ExternalSuite,
        options: SyncOptions | None = None,
        session: SyncSession | None = None,
    ) -> SyncReport:
        """Push ``suite`` into TestRail: resolve cases, get the run, submit results.

        Pass the same ``session`` to later calls to keep reusing its run and
        cases; without one, every call starts a fresh session.
        """
        options = options or SyncOptions()
        session = session or SyncSession()
        report = SyncReport(total_results=len(suite.results))
        start = time.time()
        logger.info("=== Syncing suite '%s' (%d results) to project %d ===",
                    suite.name, len(suite.results), project_id)

        try:
            created_before = set(session.case_mapping.created)

            logger.info("--- Resolving cases ---")
            resolved, failures = await self.case_resolver.resolve_all(
                project_id,
                suite.results,
                session.case_mapping,
                create_if_missing=options.create_cases_if_missing,
                section_id=options.section_id,
            )
            report.errors.extend(str(f) for f in failures)
            report.created_cases = len(session.case_mapping.created - created_before)

            logger.info("--- Coordinating run ---")
            run_id = await self.run_coordinator.get_or_create_run(
                project_id,
                suite,
                session.run_mapping,
                RunOptions(
                    milestone_id=options.milestone_id,
                    assigned_to_id=options.assigned_to_id,
                    environment=options.environment,
                    build_number=options.build_number,
                ),
            )
            report.run_id = run_id

            logger.info("--- Submitting results ---")
            mapped = [
                build_mapped_result(
                    r, resolved[r.external_test_id],
                    add_defects=options.add_defects,
                    build_number=options.build_number,
                )
                for r in suite.results
                if r.external_test_id in resolved
            ]
            submission = await self.batch_submitter.submit(
                run_id, mapped, batch_size=self.config.batch_size
            )
            report.submission = submission
            report.submitted_results = submission.submitted_count
            report.errors.extend(
                f"Batch {o.index} ({o.size} results) failed: {o.error}"
                for o in submission.outcomes if not o.submitted
            )

            if options.close_run:
                try:
                    await self.run_coordinator.close_run(run_id)
                except TestRailAPIError as e:
                    report.errors.append(f"Failed to close run R{run_id}: {e}")

            report.success = True
        except SyncError as e:
            logger.error("Sync of suite '%s' failed: %s", suite.name, e)
            report.errors.append(str(e))
        except Exception as e:
            logger.exception("Unexpected error while syncing suite '%s'", suite.name)
            report.errors.append(f"Unexpected error: {e}")

        logger.info("=== Sync complete in %.1fs: %d/%d results submitted, %d cases created ===",
                    time.time() - start, report.submitted_results,
                    report.total_results, report.created_cases)
        return report

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def compare(
        self,
        baseline_run_id: int,
        current_run_id: int,
        include_new_tests: bool = False,
        include_missing_tests: bool = False,
    ) -> ComparisonReport:
        """Compare two runs for regressions and improvements.

        Snapshot stats are computed from the same test lists that are compared.
        """
        report = ComparisonReport()
        try:
            baseline_run, current_run = await gather_or_cancel(
                self.client.get_run(baseline_run_id),
                self.client.get_run(current_run_id),
            )
            baseline_tests, current_tests = await gather_or_cancel(
                self.client.get_tests(baseline_run_id),
                self.client.get_tests(current_run_id),
            )

            comparison = compare_runs(
                baseline_tests, current_tests,
                include_new=include_new_tests,
                include_missing=include_missing_tests,
            )
            report.baseline = RunSnapshot(
                run_id=baseline_run.id, name=baseline_run.name,
                stats=stats_from_tests(baseline_tests),
            )
            report.current = RunSnapshot(
                run_id=current_run.id, name=current_run.name,
                stats=stats_from_tests(current_tests),
            )
            report.comparison = comparison
            report.regression_indicators = regression_indicators(comparison)
            report.improvement_indicators = improvement_indicators(comparison)
            logger.info("Compared R%d -> R%d: %d common, %d changed, %d regressions",
                        baseline_run_id, current_run_id, comparison.common_case_count,
                        len(comparison.status_changes), comparison.regression_count)
        except SyncError as e:
            logger.error("Run comparison failed: %s", e)
            report.success = False
            report.errors.append(str(e))
        except Exception as e:
            logger.exception("Unexpected error while comparing runs")
            report.success = False
            report.errors.append(f"Unexpected error: {e}")
        return report

    async def trends(
        self,
        project_id: int,
        time_range: Union[DateRange, dict, None] = None,
    ) -> TrendReport:
        """Pass-rate trend over the project's recent runs."""
        try:
            date_range = None
            created_after = created_before = None
            if time_range is not None:
                date_range = (
                    time_range if isinstance(time_range, DateRange)
                    else DateRange.model_validate(time_range)
                )
                created_after, created_before = date_range.bounds()

            runs = await self.client.get_runs(
                project_id,
                created_after=created_after,
                created_before=created_before,
                limit=self.config.run_history_limit,
            )
            return analyze_trends(runs, date_range)
        except ValidationError as e:
            logger.error("Invalid time range %r: %s", time_range, e)
            return TrendReport(success=False, errors=[f"Invalid time range: {e}"])
        except SyncError as e:
            logger.error("Trend analysis failed: %s", e)
            return TrendReport(success=False, errors=[str(e)])
        except Exception as e:
            logger.exception("Unexpected error during trend analysis")
            return TrendReport(success=False, errors=[f"Unexpected error: {e}"])

    async def check_connection(self) -> ConnectionReport:
        """Verify credentials by looking up the configured user."""
        try:
            user = await self.client.get_user_by_email(self.config.username)
        except SyncError as e:
            logger.error("TestRail connection check failed: %s", e)
            return ConnectionReport(success=False, errors=[str(e)])
        logger.info("Connected to %s as %s", self.config.base_url, self.config.username)
        return ConnectionReport(success=True, user=user)
