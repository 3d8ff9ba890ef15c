"""
Test Tracker Pydantic Schemas
=============================

Request/Response schemas for the test tracker endpoints.

These schemas provide:
- Input validation for API requests (rejected with 422 before a handler runs)
- Response serialization with camelCase field names on the wire
- OpenAPI documentation

Mirrors the SQLAlchemy models in api/database.py
"""
from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

TEST_STATUSES = Literal["pending", "in_progress", "finished"]


class CamelModel(BaseModel):
    """Base schema: snake_case attributes, camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# =============================================================================
# Requests
# =============================================================================

class TestNameRequest(CamelModel):
    """Body carrying only a test name (start / finish)."""

    __test__ = False

    name: str = Field(..., min_length=1, max_length=255, description="Unique test name")


class TestCreateRequest(TestNameRequest):
    """Request schema for registering a test run."""

    params: str = Field(
        ...,
        max_length=1_000_000,
        description="Run parameters, stored verbatim (JSON-encoded by convention)",
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """The name doubles as the artifact directory, so it must be one path component."""
        if v in (".", "..") or any(ch in v for ch in ("/", "\\", "\x00")):
            raise ValueError("name must not contain path separators or be '.' or '..'")
        return v


class WorkflowRunRequest(CamelModel):
    """
    Parameters for triggering the external test workflow.

    Omitted fields take the defaults below.
    """

    ref: str = Field(default="main", min_length=1, max_length=255, description="Git ref to run the workflow on")
    test_name: str | None = Field(default=None, max_length=255, description="Test run name to report under")
    test_suite: str = Field(default="all", max_length=255)
    environment: str = Field(default="staging", max_length=100)
    browser: str = Field(default="chromium", max_length=100)
    extra_args: str = Field(default="", max_length=2000)


# =============================================================================
# Responses
# =============================================================================

class TestCreatedResponse(BaseModel):
    __test__ = False

    message: str
    id: int


class TestStartedResponse(BaseModel):
    __test__ = False

    message: str
    id: int


class TestFinishedResponse(BaseModel):
    __test__ = False

    status: Literal["finished"] = "finished"


class FileUploadResponse(BaseModel):
    message: str
    id: int
    uid: str


class FileRecord(CamelModel):
    """A stored artifact as returned by the info endpoint."""

    id: int
    uid: str
    original_name: str
    path: str
    size: int
    test_id: int


class FileSummary(CamelModel):
    """Artifact entry in the run list: id and display name only."""

    id: int
    original_name: str


class TestInfoResponse(CamelModel):
    """Full test row with its files."""

    __test__ = False

    id: int
    name: str
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    parameters: str
    status: TEST_STATUSES
    files: list[FileRecord] = Field(default_factory=list)


class TestSummary(CamelModel):
    """One entry of GET /public/test/list."""

    __test__ = False

    id: int
    name: str
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    params: str
    status: TEST_STATUSES
    files: list[FileSummary] = Field(default_factory=list)
