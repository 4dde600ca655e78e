"""Maps external framework statuses onto TestRail status codes."""

from __future__ import annotations

from testrail_sync.models.remote import StatusCode

_STATUS_MAP = {
    "passed": StatusCode.PASSED,
    "failed": StatusCode.FAILED,
    "skipped": StatusCode.BLOCKED,
    "blocked": StatusCode.BLOCKED,
}


def map_status(status) -> StatusCode:
    """Return the TestRail status for ``status``; unknown values are UNTESTED."""
    if not isinstance(status, str):
        return StatusCode.UNTESTED
    return _STATUS_MAP.get(status.strip().lower(), StatusCode.UNTESTED)
