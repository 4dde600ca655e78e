"""TestRail entities and write payloads."""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class StatusCode(IntEnum):
    PASSED = 1
    BLOCKED = 2
    UNTESTED = 3
    RETEST = 4
    FAILED = 5


CASE_TYPE_FUNCTIONAL = 6
CASE_PRIORITY_MEDIUM = 2


# ---------------------------------------------------------------------------
# Read models (TestRail returns many more fields; extras are kept verbatim)
# ---------------------------------------------------------------------------


class RemoteCase(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    title: str
    section_id: Optional[int] = None
    refs: Optional[str] = None


class RemoteRun(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    name: str = ""
    description: Optional[str] = None
    project_id: Optional[int] = None
    suite_id: Optional[int] = None
    is_completed: bool = False
    passed_count: int = 0
    failed_count: int = 0
    blocked_count: int = 0
    untested_count: int = 0
    retest_count: int = 0
    created_on: int = 0  # unix seconds
    completed_on: Optional[int] = None
    url: str = ""


class RemoteTest(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None
    case_id: int
    status_id: int
    priority_id: Optional[int] = None
    run_id: Optional[int] = None
    title: str = ""


# ---------------------------------------------------------------------------
# Write payloads
# ---------------------------------------------------------------------------


class _Payload(BaseModel):
    def to_api(self) -> dict[str, Any]:
        """Serialize for the TestRail API, omitting fields that were never set."""
        return self.model_dump(exclude_none=True)


class CasePayload(_Payload):
    title: str
    type_id: int = CASE_TYPE_FUNCTIONAL
    priority_id: int = CASE_PRIORITY_MEDIUM
    refs: Optional[str] = None
    custom_steps: Optional[str] = None
    custom_expected: Optional[str] = None
    custom_fields: dict[str, Any] = Field(default_factory=dict)

    def to_api(self) -> dict[str, Any]:
        data = self.model_dump(exclude_none=True, exclude={"custom_fields"})
        data.update(self.custom_fields)
        return data


class RunPayload(_Payload):
    name: str
    description: Optional[str] = None
    suite_id: Optional[int] = None
    milestone_id: Optional[int] = None
    assignedto_id: Optional[int] = None
    include_all: bool = True
    case_ids: Optional[list[int]] = None

    @model_validator(mode="after")
    def _case_ids_disable_include_all(self) -> "RunPayload":
        if self.case_ids:
            self.include_all = False
        return self


class ResultPayload(_Payload):
    status_id: int
    comment: Optional[str] = None
    elapsed: Optional[str] = None
    version: Optional[str] = None
    defects: Optional[str] = None


class MappedResult(ResultPayload):
    """A result addressed by exactly one of ``test_id`` or ``case_id``."""

    test_id: Optional[int] = None
    case_id: Optional[int] = None

    @model_validator(mode="after")
    def _single_address(self) -> "MappedResult":
        if (self.test_id is None) == (self.case_id is None):
            raise ValueError("exactly one of test_id or case_id must be set")
        return self

    @property
    def addressing(self) -> str:
        return "test" if self.test_id is not None else "case"
