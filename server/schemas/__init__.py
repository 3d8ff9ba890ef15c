"""
Pydantic Schemas Package
========================

Organized schemas for the test tracker API.
"""

from .tracker import (
    FileRecord,
    FileSummary,
    FileUploadResponse,
    TestCreatedResponse,
    TestCreateRequest,
    TestFinishedResponse,
    TestInfoResponse,
    TestNameRequest,
    TestStartedResponse,
    TestSummary,
    WorkflowRunRequest,
)

__all__ = [
    "FileRecord",
    "FileSummary",
    "FileUploadResponse",
    "TestCreatedResponse",
    "TestCreateRequest",
    "TestFinishedResponse",
    "TestInfoResponse",
    "TestNameRequest",
    "TestStartedResponse",
    "TestSummary",
    "WorkflowRunRequest",
]
