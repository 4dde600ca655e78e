"""Batch submission of mapped results to a TestRail run."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter

from testrail_sync.api.client import TestRailClient
from testrail_sync.errors import MixedAddressingError, SyncError
from testrail_sync.models.remote import MappedResult
from testrail_sync.models.reports import BatchOutcome, SubmissionReport

from .tasks import gather_or_cancel

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50


def chunk(items: list, size: int) -> list[list]:
    if size < 1:
        raise ValueError("batch size must be at least 1")
    return [items[i:i + size] for i in range(0, len(items), size)]


def batch_addressing(batch: list[MappedResult], index: int = 0) -> str:
    """Return ``"test"`` or ``"case"``; raise MixedAddressingError if both appear."""
    modes = {r.addressing for r in batch}
    if len(modes) != 1:
        raise MixedAddressingError(index)
    return modes.pop()


class BatchSubmitter:
    """Submits results in fixed-size chunks, best effort per chunk.

    Chunks all target one run and are sent with bounded parallelism;
    TestRail's run counters are sums, so chunk order does not matter.
    A fatal error stops the chunks still in flight and propagates.
    """

    def __init__(self, client: TestRailClient, max_parallel: int = 3):
        self.client = client
        self.max_parallel = max_parallel

    async def submit(
        self,
        run_id: int,
        results: list[MappedResult],
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> SubmissionReport:
        batches = chunk(results, batch_size)
        # Classify every batch before sending anything.
        modes = [batch_addressing(b, i) for i, b in enumerate(batches)]

        logger.info("Submitting %d results to run R%d in %d batches",
                    len(results), run_id, len(batches))

        semaphore = asyncio.Semaphore(self.max_parallel)

        async def _send(index: int, batch: list[MappedResult], mode: str) -> BatchOutcome:
            outcome = BatchOutcome(index=index, size=len(batch), addressing=mode)
            payload = [r.model_dump(exclude_none=True) for r in batch]
            async with semaphore:
                try:
                    if mode == "test":
                        await self.client.add_results(run_id, payload)
                    else:
                        await self.client.add_results_for_cases(run_id, payload)
                    outcome.submitted = True
                except SyncError as e:
                    if e.fatal:
                        raise
                    logger.warning("Batch %d (%d results) failed: %s", index, len(batch), e)
                    outcome.error = str(e)
            return outcome

        outcomes = await gather_or_cancel(
            *(_send(i, b, m) for i, (b, m) in enumerate(zip(batches, modes)))
        )

        report = SubmissionReport(batch_count=len(batches), outcomes=list(outcomes))
        status_counts: Counter[int] = Counter()
        for outcome, batch in zip(outcomes, batches):
            if outcome.submitted:
                report.submitted_count += outcome.size
                status_counts.update(r.status_id for r in batch)
            else:
                report.failed_count += outcome.size
        report.status_counts = dict(status_counts)

        logger.info("Submitted %d results (%d failed) to run R%d",
                    report.submitted_count, report.failed_count, run_id)
        return report
