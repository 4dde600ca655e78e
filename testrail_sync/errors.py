"""Error taxonomy shared by the sync and analysis components."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    CONNECTION = "connection"
    API = "api"
    RESOLUTION = "resolution"
    RUN_CREATION = "run_creation"
    SUBMISSION = "submission"
    COMPARISON_INPUT = "comparison_input"


class SyncError(Exception):
    """Base class for every error raised inside testrail-sync."""

    __test__ = False  # not a pytest test class despite the TestRail* names
    kind: ErrorKind = ErrorKind.API

    @property
    def fatal(self) -> bool:
        return self.kind in (ErrorKind.CONNECTION, ErrorKind.RUN_CREATION)


class TestRailConnectionError(SyncError):
    """TestRail is unreachable or rejected our credentials."""

    kind = ErrorKind.CONNECTION


class TestRailAPIError(SyncError):
    """TestRail answered with a non-success status."""

    kind = ErrorKind.API

    def __init__(self, message: str, status_code: int | None = None, details=None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class TestRailTimeoutError(TestRailAPIError):
    """A single request exceeded its timeout."""


class ResolutionError(SyncError):
    kind = ErrorKind.RESOLUTION

    def __init__(self, external_test_id: str, message: str):
        super().__init__(f"Could not resolve case for '{external_test_id}': {message}")
        self.external_test_id = external_test_id


class RunCreationError(SyncError):
    kind = ErrorKind.RUN_CREATION


class SubmissionError(SyncError):
    kind = ErrorKind.SUBMISSION


class MixedAddressingError(SubmissionError):
    """A batch mixes test-id and case-id addressed results."""

    def __init__(self, batch_index: int):
        super().__init__(
            f"Batch {batch_index} mixes test IDs and case IDs; "
            "batches must use a single addressing mode"
        )
        self.batch_index = batch_index


class ComparisonInputError(SyncError):
    kind = ErrorKind.COMPARISON_INPUT
