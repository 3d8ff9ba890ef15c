"""
Legacy Database Migration Tests
===============================

Databases written by earlier releases lack Test.parameters, Test.createdAt,
File.uid and File.size, and may hold timestamps as epoch milliseconds or as
ISO-8601 text. Tests verify that opening such a database is:
1. Additive (new columns appear)
2. Non-destructive (every existing row survives, ids unchanged)
3. Idempotent (running the migrations again changes nothing)
4. Readable through the API afterwards, whatever the timestamp encoding
"""
import sqlite3
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, inspect, text

from api.config import Settings
from api.database import (
    _migrate_normalize_timestamps,
    _migrate_rebuild_file_table,
    _migrate_rebuild_test_table,
    create_database,
)
from api.tracker import create_file, get_file, get_test, list_tests
from server.main import create_app

from conftest import API_SECRET

LEGACY_SCHEMA = """
CREATE TABLE "Test" (
    "id" INTEGER NOT NULL PRIMARY KEY AUTOINCREMENT,
    "name" TEXT NOT NULL,
    "startedAt" DATETIME NOT NULL,
    "finishedAt" DATETIME
);
CREATE UNIQUE INDEX "Test_name_key" ON "Test"("name");
CREATE TABLE "File" (
    "id" INTEGER NOT NULL PRIMARY KEY AUTOINCREMENT,
    "originalName" TEXT NOT NULL,
    "path" TEXT NOT NULL,
    "testId" INTEGER NOT NULL,
    CONSTRAINT "File_testId_fkey" FOREIGN KEY ("testId") REFERENCES "Test" ("id")
        ON DELETE RESTRICT ON UPDATE CASCADE
);
"""

# 2023-05-01 10:00:00 UTC in each encoding found in older databases
LEGACY_TESTS = [
    (1, "legacy", "2023-05-01 10:00:00.000000", None),
    (2, "iso", "2023-05-01T10:00:00.000Z", "2023-05-01T10:30:00.000Z"),
    (3, "epoch", 1682935200000, 1682937000000),
]
LEGACY_FILES = [
    (1, "old.log", "/data/uploads/legacy/old.log", 1),
    (2, "old2.log", "/data/uploads/legacy/old2.log", 1),
    (3, "report.html", "/data/uploads/epoch/report.html", 3),
]

STARTED = datetime(2023, 5, 1, 10, 0, 0)
FINISHED = datetime(2023, 5, 1, 10, 30, 0)


@pytest.fixture
def legacy_db(tmp_path):
    """A database file in the pre-migration layout, with sample rows."""
    db_path = tmp_path / "legacy.db"
    conn = sqlite3.connect(db_path)
    conn.executescript(LEGACY_SCHEMA)
    conn.executemany(
        'INSERT INTO "Test" ("id", "name", "startedAt", "finishedAt") VALUES (?, ?, ?, ?)',
        LEGACY_TESTS,
    )
    conn.executemany(
        'INSERT INTO "File" ("id", "originalName", "path", "testId") VALUES (?, ?, ?, ?)',
        LEGACY_FILES,
    )
    conn.commit()
    conn.close()
    return db_path


@pytest.fixture
def legacy_engine(legacy_db):
    """Plain engine on the legacy file; no migrations run yet."""
    engine = create_engine(f"sqlite:///{legacy_db}")
    yield engine
    engine.dispose()


@pytest.fixture
def migrated(legacy_db):
    engine, SessionLocal = create_database(legacy_db)
    session = SessionLocal()
    yield session
    session.close()
    engine.dispose()


# =============================================================================
# Additive
# =============================================================================

class TestAdditive:

    def test_test_table_gains_columns(self, legacy_engine):
        _migrate_rebuild_test_table(legacy_engine)

        columns = {c["name"] for c in inspect(legacy_engine).get_columns("Test")}
        assert {"id", "name", "createdAt", "startedAt", "finishedAt", "parameters"} <= columns

    def test_file_table_gains_columns(self, legacy_engine):
        _migrate_rebuild_file_table(legacy_engine)

        columns = {c["name"] for c in inspect(legacy_engine).get_columns("File")}
        assert {"id", "uid", "originalName", "path", "size", "testId"} <= columns

    def test_started_at_becomes_nullable(self, legacy_engine):
        _migrate_rebuild_test_table(legacy_engine)

        started = next(c for c in inspect(legacy_engine).get_columns("Test") if c["name"] == "startedAt")
        assert started["nullable"] is True

    def test_fresh_database_has_unique_name(self, tmp_path):
        engine, _ = create_database(tmp_path / "nested" / "fresh.db")
        inspector = inspect(engine)
        unique = inspector.get_unique_constraints("Test") + [
            i for i in inspector.get_indexes("Test") if i["unique"]
        ]
        engine.dispose()

        assert (tmp_path / "nested" / "fresh.db").exists()
        assert any(c["column_names"] == ["name"] for c in unique)


# =============================================================================
# Non-destructive
# =============================================================================

class TestNonDestructive:

    def test_rows_and_ids_survive(self, migrated):
        assert [t.name for t in sorted(list_tests(migrated), key=lambda t: t.id)] == ["legacy", "iso", "epoch"]

        test = get_test(migrated, "legacy")
        assert test.parameters == ""
        assert test.created_at == test.started_at
        assert [(f.id, f.original_name) for f in test.files] == [(1, "old.log"), (2, "old2.log")]

    def test_files_get_unique_uids_and_zero_size(self, migrated):
        files = get_test(migrated, "legacy").files + get_test(migrated, "epoch").files

        uids = [f.uid for f in files]
        assert all(len(uid) == 32 for uid in uids)
        assert len(set(uids)) == len(uids)
        assert all(f.size == 0 for f in files)
        assert get_file(migrated, uids[0]).id == 1

    def test_new_rows_continue_after_old_ids(self, migrated):
        record = create_file(migrated, get_test(migrated, "legacy"), "new.log", "/data/uploads/legacy/new.log", 5)
        migrated.commit()
        assert record.id == 4


# =============================================================================
# Idempotent
# =============================================================================

class TestIdempotent:

    def test_second_open_changes_nothing(self, legacy_db):
        engine, SessionLocal = create_database(legacy_db)
        session = SessionLocal()
        first = {f.id: f.uid for f in get_test(session, "legacy").files}
        session.close()
        engine.dispose()

        engine, SessionLocal = create_database(legacy_db)
        session = SessionLocal()
        try:
            second = {f.id: f.uid for f in get_test(session, "legacy").files}
            assert second == first
            assert get_test(session, "epoch").started_at == STARTED
        finally:
            session.close()
            engine.dispose()

    def test_normalize_leaves_current_rows_alone(self, legacy_engine):
        _migrate_rebuild_test_table(legacy_engine)
        _migrate_normalize_timestamps(legacy_engine)
        with legacy_engine.connect() as conn:
            before = conn.execute(text('SELECT "startedAt", "finishedAt" FROM "Test" ORDER BY "id"')).all()

        _migrate_normalize_timestamps(legacy_engine)
        with legacy_engine.connect() as conn:
            after = conn.execute(text('SELECT "startedAt", "finishedAt" FROM "Test" ORDER BY "id"')).all()

        assert after == before


# =============================================================================
# Legacy timestamp encodings
# =============================================================================

class TestLegacyTimestamps:

    @pytest.mark.parametrize("name", ["legacy", "iso", "epoch"])
    def test_started_at_reads_back(self, migrated, name):
        assert get_test(migrated, name).started_at == STARTED

    @pytest.mark.parametrize("name", ["iso", "epoch"])
    def test_finished_at_reads_back(self, migrated, name):
        test = get_test(migrated, name)
        assert test.finished_at == FINISHED
        assert test.status == "finished"

    def test_stored_as_text(self, legacy_db):
        engine, _ = create_database(legacy_db)
        engine.dispose()

        conn = sqlite3.connect(legacy_db)
        try:
            kinds = conn.execute('SELECT DISTINCT typeof("startedAt") FROM "Test"').fetchall()
        finally:
            conn.close()
        assert kinds == [("text",)]

    def test_list_and_info_serve_migrated_rows(self, legacy_db, tmp_path):
        settings = Settings(
            database_path=legacy_db,
            upload_path=tmp_path / "uploads",
            api_secret=API_SECRET,
        )
        headers = {"Authorization": f"Bearer {API_SECRET}"}
        with TestClient(create_app(settings)) as client:
            response = client.get("/public/test/list", headers=headers)
            assert response.status_code == 200
            assert {t["name"] for t in response.json()} == {"legacy", "iso", "epoch"}

            response = client.get("/public/test/epoch/info", headers=headers)
            assert response.status_code == 200
            body = response.json()
            assert body["startedAt"].startswith("2023-05-01T10:00:00")
            assert body["files"][0]["originalName"] == "report.html"
