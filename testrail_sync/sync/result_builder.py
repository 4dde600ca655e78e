"""Builds TestRail result payloads from external results."""

from __future__ import annotations

import time
from typing import Optional

from testrail_sync.models.external import ExternalResult
from testrail_sync.models.remote import MappedResult

from .status_mapper import map_status


def format_duration(milliseconds: int) -> str:
    if milliseconds < 1000:
        return f"{milliseconds}ms"
    if milliseconds < 60000:
        return f"{milliseconds / 1000:.1f}s"
    minutes = milliseconds // 60000
    seconds = (milliseconds % 60000) // 1000
    return f"{minutes}m {seconds}s"


def format_elapsed(milliseconds: int) -> str:
    """TestRail timespan for a result's ``elapsed`` field.

    TestRail rejects sub-second and fractional timespans, so the value is
    rounded up to whole seconds.
    """
    total_seconds = max(1, -(-milliseconds // 1000))
    minutes, seconds = divmod(total_seconds, 60)
    if minutes and seconds:
        return f"{minutes}m {seconds}s"
    if minutes:
        return f"{minutes}m"
    return f"{seconds}s"


def build_result_comment(result: ExternalResult) -> str:
    lines = [f"Automated Test Result: {result.status.upper()}", ""]

    if result.error:
        lines += [f"Error: {result.error}", ""]

    meta = result.metadata
    if meta:
        lines.append("Execution Details:")
        for label, value in (
            ("Framework", meta.framework),
            ("Browser", meta.browser),
            ("Environment", meta.environment),
            ("Build", meta.build_number),
            ("Branch", meta.branch),
            ("Commit", meta.commit),
        ):
            if value:
                lines.append(f"- {label}: {value}")

    if result.attachments.screenshots:
        lines.append(f"Screenshots: {len(result.attachments.screenshots)} captured")
    if result.attachments.logs:
        lines.append(f"Logs: {len(result.attachments.logs)} files available")

    return "\n".join(lines).rstrip()


def build_mapped_result(
    result: ExternalResult,
    case_id: int,
    add_defects: bool = False,
    build_number: Optional[str] = None,
) -> MappedResult:
    """Case-addressed result for ``result``.

    Failed results get an ``AUTO-<id>-<epoch ms>`` defect reference when
    ``add_defects`` is set.
    """
    status_id = map_status(result.status)
    version = (result.metadata.build_number if result.metadata else None) or build_number
    defects = None
    if add_defects and result.status.lower() == "failed":
        defects = f"AUTO-{result.external_test_id}-{int(time.time() * 1000)}"

    return MappedResult(
        case_id=case_id,
        status_id=int(status_id),
        comment=build_result_comment(result),
        elapsed=format_elapsed(result.duration_ms) if result.duration_ms else None,
        version=version,
        defects=defects,
    )
