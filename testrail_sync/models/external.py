"""Test results as produced by an external test framework."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _ExternalModel(BaseModel):
    # Accept both the camelCase wire names and the Python field names.
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True,
    )


class Attachments(_ExternalModel):
    screenshots: list[str] = Field(default_factory=list)
    logs: list[str] = Field(default_factory=list)


class ResultMetadata(_ExternalModel):
    framework: Optional[str] = None
    browser: Optional[str] = None
    environment: Optional[str] = None
    build_number: Optional[str] = None
    branch: Optional[str] = None
    commit: Optional[str] = None


class ExternalResult(_ExternalModel):
    external_test_id: str
    title: str
    status: str  # passed, failed, skipped, blocked
    duration_ms: Optional[int] = None
    error: Optional[str] = None
    attachments: Attachments = Field(default_factory=Attachments)
    metadata: Optional[ResultMetadata] = None


class SuiteSummary(_ExternalModel):
    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    blocked: int = 0
    duration_ms: int = 0


class ExternalSuite(_ExternalModel):
    """One framework suite execution.

    ``summary`` is taken as reported; it is not reconciled against
    ``results`` since callers may send partial summaries.
    """

    external_suite_id: str
    name: str
    results: list[ExternalResult] = Field(default_factory=list)
    summary: SuiteSummary = Field(default_factory=SuiteSummary)
