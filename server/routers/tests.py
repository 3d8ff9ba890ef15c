"""
Tests Router
============

API endpoints for test run registration, lifecycle and artifact upload.

Implements:
- POST /test/new - Register a test run
- POST /test/start - Mark a pending test as started
- POST /test/finish - Mark a test as finished
- POST /test/{name}/upload/file - Upload an artifact (multipart ``file``)
- GET /public/test/{name}/info - Test with its files
- GET /public/test/list - All tests, newest first
"""

import logging

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from api.artifact_store import ArtifactStore, ArtifactStoreError, ArtifactTooLarge, InvalidArtifactName
from api.config import Settings
from api.database import get_db
from api.tracker import (
    create_file,
    create_test,
    finish_test,
    get_test,
    list_tests,
    start_test,
)

from ..auth import require_bearer_token_for_reads
from ..dependencies import get_artifact_store, get_settings
from ..exceptions import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    PayloadTooLargeError,
    StorageError,
)
from ..schemas import (
    FileSummary,
    FileUploadResponse,
    TestCreatedResponse,
    TestCreateRequest,
    TestFinishedResponse,
    TestInfoResponse,
    TestNameRequest,
    TestStartedResponse,
    TestSummary,
)

_logger = logging.getLogger(__name__)

router = APIRouter(tags=["tests"])


# =============================================================================
# Lifecycle
# =============================================================================

@router.post("/test/new", response_model=TestCreatedResponse)
async def create_test_run(
    body: TestCreateRequest,
    db: Session = Depends(get_db),
):
    """
    Register a new test run.

    Raises:
        409: If a test with this name already exists
    """
    test = create_test(db, body.name, body.params)
    test_id = test.id
    db.commit()

    _logger.info("Test %s created (id=%d)", body.name, test_id)
    return TestCreatedResponse(message=f"Test {body.name} created", id=test_id)


@router.post("/test/start", response_model=TestStartedResponse)
async def start_test_run(
    body: TestNameRequest,
    db: Session = Depends(get_db),
):
    """
    Start a pending test run.

    Only a test that has never been started is touched; starting twice is a
    conflict and leaves ``startedAt`` where it was.

    Raises:
        404: If the test does not exist
        409: If the test was already started
    """
    test = start_test(db, body.name)
    if test is None:
        db.rollback()
        if get_test(db, body.name) is None:
            raise NotFoundError("test", body.name)
        raise ConflictError(message=f"Test {body.name} already started")

    test_id = test.id
    db.commit()

    _logger.info("Test %s started", body.name)
    return TestStartedResponse(message=f"Test {body.name} started", id=test_id)


@router.post("/test/finish", response_model=TestFinishedResponse)
async def finish_test_run(
    body: TestNameRequest,
    db: Session = Depends(get_db),
):
    """
    Mark a test run as finished.

    Raises:
        404: If the test does not exist
    """
    test = finish_test(db, body.name)
    if test is None:
        raise NotFoundError("test", body.name)
    db.commit()

    _logger.info("Test %s finished", body.name)
    return TestFinishedResponse()


# =============================================================================
# Upload
# =============================================================================

@router.post("/test/{name}/upload/file", response_model=FileUploadResponse)
async def upload_test_file(
    name: str,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    store: ArtifactStore = Depends(get_artifact_store),
    settings: Settings = Depends(get_settings),
):
    """
    Upload one artifact file for a test.

    The file is written to ``{UPLOAD_PATH}/{name}/{basename}``, replacing any
    earlier upload with the same name, then recorded in the File table.

    Raises:
        400: If the filename or test name cannot be stored safely
        404: If the test does not exist (nothing is written)
        413: If the file grows past MAX_UPLOAD_MB while streaming
        500: If the test directory or file cannot be written
    """
    test = get_test(db, name)
    if test is None:
        raise NotFoundError("test", name)

    try:
        filename = store.sanitize_filename(file.filename)
        test_dir = store.ensure_test_dir(name)
        target = test_dir / filename
        size = await store.write_stream(file, target, max_bytes=settings.max_upload_bytes)
    except InvalidArtifactName as e:
        raise BadRequestError(str(e)) from e
    except ArtifactTooLarge as e:
        _logger.warning("Rejected upload for test %s: body over %d bytes", name, e.limit_bytes)
        raise PayloadTooLargeError(e.limit_bytes) from e
    except ArtifactStoreError as e:
        raise StorageError(str(e)) from e
    finally:
        await file.close()

    try:
        record = create_file(db, test, file.filename, str(target), size)
        record_id, record_uid = record.id, record.uid
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        store.discard(target)
        raise

    _logger.info(
        "Stored %s for test %s (%d bytes, file id=%d)",
        filename, name, size, record_id
    )
    return FileUploadResponse(
        message="File uploaded successfully",
        id=record_id,
        uid=record_uid,
    )


# =============================================================================
# Queries
# =============================================================================

@router.get(
    "/public/test/list",
    response_model=list[TestSummary],
    dependencies=[Depends(require_bearer_token_for_reads)],
)
async def list_test_runs(db: Session = Depends(get_db)):
    """All test runs with their files (id and name), most recent first."""
    return [
        TestSummary(
            id=test.id,
            name=test.name,
            created_at=test.created_at,
            started_at=test.started_at,
            finished_at=test.finished_at,
            params=test.parameters,
            status=test.status,
            files=[FileSummary.model_validate(f) for f in test.files],
        )
        for test in list_tests(db)
    ]


@router.get(
    "/public/test/{name}/info",
    response_model=TestInfoResponse,
    dependencies=[Depends(require_bearer_token_for_reads)],
)
async def get_test_info(name: str, db: Session = Depends(get_db)):
    """
    Get a test run with all its files.

    Raises:
        404: If the test does not exist
    """
    test = get_test(db, name)
    if test is None:
        raise NotFoundError("test", name)
    return TestInfoResponse.model_validate(test)
