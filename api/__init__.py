"""
API Package
============

Database models, storage and outbound clients for the test tracker.
"""

from api.artifact_store import ArtifactStore, ArtifactStoreError, ArtifactTooLarge, InvalidArtifactName
from api.config import Settings
from api.database import Base, File, Test, create_database, get_db
from api.tracker import (
    create_file,
    create_test,
    finish_test,
    get_file,
    get_test,
    list_tests,
    start_test,
)
from api.workflow import WorkflowDispatcher, WorkflowDispatchError, build_dispatch_payload

__all__ = [
    "ArtifactStore",
    "ArtifactStoreError",
    "ArtifactTooLarge",
    "InvalidArtifactName",
    "Settings",
    "Base",
    "File",
    "Test",
    "create_database",
    "get_db",
    "create_file",
    "create_test",
    "finish_test",
    "get_file",
    "get_test",
    "list_tests",
    "start_test",
    "WorkflowDispatcher",
    "WorkflowDispatchError",
    "build_dispatch_payload",
]
