"""Case resolution: finds or creates the TestRail case behind an external test."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from testrail_sync.api.client import TestRailClient
from testrail_sync.errors import ResolutionError, SyncError, TestRailAPIError
from testrail_sync.models.external import ExternalResult
from testrail_sync.models.remote import CasePayload

from .session import CaseMapping
from .tasks import gather_or_cancel

logger = logging.getLogger(__name__)

EXPECTED_RESULT_PLACEHOLDER = "Test should pass without errors"


def build_case_payload(result: ExternalResult) -> CasePayload:
    framework = (result.metadata.framework if result.metadata else None) or "unknown"
    return CasePayload(
        title=result.title,
        refs=result.external_test_id,
        custom_steps=f"Automated test: {result.external_test_id}",
        custom_expected=EXPECTED_RESULT_PLACEHOLDER,
        custom_fields={
            "custom_automation_type": "Automated",
            "custom_test_framework": framework,
        },
    )


class CaseResolver:
    """Maps external tests to TestRail cases by case-insensitive title.

    Titles are treated as the natural key: two external tests sharing a
    title resolve to the same case.
    """

    def __init__(
        self,
        client: TestRailClient,
        default_section_id: int = 1,
        page_limit: int = 1000,
        max_parallel: int = 5,
    ):
        self.client = client
        self.default_section_id = default_section_id
        self.page_limit = page_limit
        self._semaphore = asyncio.Semaphore(max_parallel)

    async def resolve(
        self,
        project_id: int,
        result: ExternalResult,
        cache: CaseMapping,
        create_if_missing: bool = True,
        section_id: Optional[int] = None,
    ) -> int:
        """Return the case id for ``result``, creating the case if allowed.

        Raises ResolutionError when lookup or creation fails for this result.
        Connection errors propagate unchanged.
        """
        key = result.external_test_id
        cached = cache.get(key)
        if cached is not None:
            return cached

        # Same-id resolutions queue on the id lock, same-title ones on the
        # title lock, so each case is created at most once.
        async with cache.lock(key), cache.title_lock(result.title):
            cached = cache.get(key)
            if cached is not None:
                return cached

            async with self._semaphore:
                case_id = await self._find_existing(project_id, result)
                created = False
                if case_id is None:
                    if not create_if_missing:
                        raise ResolutionError(key, "no case with a matching title")
                    case_id = await self._create(result, section_id or self.default_section_id)
                    created = True

            cache.set(key, case_id)
            if created:
                cache.mark_created(key)
            return case_id

    async def resolve_all(
        self,
        project_id: int,
        results: list[ExternalResult],
        cache: CaseMapping,
        create_if_missing: bool = True,
        section_id: Optional[int] = None,
    ) -> tuple[dict[str, int], list[ResolutionError]]:
        """Resolve many results concurrently; per-result failures are collected.

        A fatal error cancels the resolutions still in flight and propagates.
        """

        async def _one(result: ExternalResult):
            try:
                return await self.resolve(
                    project_id, result, cache, create_if_missing, section_id
                )
            except SyncError as e:
                if e.fatal:
                    raise
                failure = e if isinstance(e, ResolutionError) else ResolutionError(
                    result.external_test_id, str(e)
                )
                logger.warning("%s", failure)
                return failure

        outcomes = await gather_or_cancel(*(_one(r) for r in results))

        resolved: dict[str, int] = {}
        failures: list[ResolutionError] = []
        for result, outcome in zip(results, outcomes):
            if isinstance(outcome, ResolutionError):
                failures.append(outcome)
            else:
                resolved[result.external_test_id] = outcome
        logger.info("Resolved %d/%d cases (%d created this session, %d failed)",
                    len(resolved), len(results), len(cache.created), len(failures))
        return resolved, failures

    async def _find_existing(self, project_id: int, result: ExternalResult) -> Optional[int]:
        try:
            cases = await self.client.get_cases(project_id, limit=self.page_limit)
        except TestRailAPIError as e:
            raise ResolutionError(result.external_test_id, f"case listing failed: {e}") from e

        wanted = result.title.casefold()
        for case in cases:
            if case.title.casefold() == wanted:
                logger.debug("Matched '%s' to existing case C%d", result.title, case.id)
                return case.id
        return None

    async def _create(self, result: ExternalResult, section_id: int) -> int:
        try:
            case = await self.client.add_case(section_id, build_case_payload(result))
        except TestRailAPIError as e:
            raise ResolutionError(result.external_test_id, f"case creation failed: {e}") from e
        logger.info("Created case C%d for '%s' in section %d", case.id, result.title, section_id)
        return case.id
