"""
Test Tracker CRUD Operations
============================

Database operations for Test runs and their uploaded Files.

All operations are session-based: they flush but never commit, so the
caller decides where the transaction boundary sits.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import desc, func, update
from sqlalchemy.orm import Session, selectinload

from api.database import File, Test


def _utc_now() -> datetime:
    """Return current UTC time."""
    return datetime.now(timezone.utc)


def generate_uid() -> str:
    """Generate the opaque external identifier for a File."""
    return uuid.uuid4().hex


# =============================================================================
# Test CRUD
# =============================================================================

def create_test(session: Session, name: str, parameters: str) -> Test:
    """
    Register a new test run.

    Raises:
        sqlalchemy.exc.IntegrityError: if a test with this name already exists
    """
    test = Test(name=name, parameters=parameters, created_at=_utc_now())
    session.add(test)
    session.flush()  # Get ID assigned, surfaces the unique constraint
    return test


def get_test(session: Session, name: str) -> Test | None:
    """Get a Test by name, with its files loaded."""
    return (
        session.query(Test)
        .options(selectinload(Test.files))
        .filter(Test.name == name)
        .first()
    )


def list_tests(session: Session) -> list[Test]:
    """All tests with their files, most recently started (or created) first."""
    return (
        session.query(Test)
        .options(selectinload(Test.files))
        .order_by(desc(func.coalesce(Test.started_at, Test.created_at)), desc(Test.id))
        .all()
    )


def start_test(session: Session, name: str) -> Test | None:
    """
    Mark a pending test as started.

    Only a row whose ``startedAt`` is still NULL is touched, in a single
    conditional UPDATE, so a repeated start never moves ``startedAt``.

    Returns:
        The started Test, or None if no pending test has this name
    """
    result = session.execute(
        update(Test)
        .where(Test.name == name, Test.started_at.is_(None))
        .values(started_at=_utc_now(), finished_at=None)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return None
    session.expire_all()
    return get_test(session, name)


def finish_test(session: Session, name: str) -> Test | None:
    """Set ``finishedAt`` on a test. Returns None for an unknown name."""
    test = session.query(Test).filter(Test.name == name).first()
    if test is None:
        return None
    test.finished_at = _utc_now()
    session.flush()
    return test


# =============================================================================
# File CRUD
# =============================================================================

def create_file(
    session: Session,
    test: Test,
    original_name: str,
    path: str,
    size: int,
) -> File:
    """Record an uploaded artifact against its owning test."""
    record = File(
        uid=generate_uid(),
        original_name=original_name,
        path=path,
        size=size,
        test_id=test.id,
    )
    session.add(record)
    session.flush()
    return record


def get_file(session: Session, identifier: str | int) -> File | None:
    """
    Resolve a File by numeric id or by uid.

    All-digit identifiers are tried as an id first and fall back to a uid
    lookup, since a uid could in principle be all digits.
    """
    identifier = str(identifier)
    if identifier.isascii() and identifier.isdigit():
        record = session.get(File, int(identifier))
        if record is not None:
            return record
    return session.query(File).filter(File.uid == identifier).first()
