"""
Database Models and Connection
==============================

SQLite database schema for test runs and their uploaded files using SQLAlchemy.

Table and column names keep the camelCase layout of the existing
``test-tracker.db`` files so databases created by earlier releases open
without an export/import step.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from fastapi import Request
from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    event,
    inspect,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker

_logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    """Return current UTC time."""
    return datetime.now(timezone.utc)


Base = declarative_base()


class Test(Base):
    """A named test run registered by a client."""

    __tablename__ = "Test"
    __test__ = False  # keep pytest from collecting the model

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)
    created_at = Column("createdAt", DateTime, nullable=False, default=_utc_now)
    started_at = Column("startedAt", DateTime, nullable=True)
    finished_at = Column("finishedAt", DateTime, nullable=True)
    # Opaque to the service, JSON-encoded by convention
    parameters = Column(Text, nullable=False, default="")

    files = relationship("File", back_populates="test", order_by="File.id")

    @property
    def status(self) -> str:
        """finished once ``finishedAt`` is set, whether or not it was started."""
        if self.finished_at is not None:
            return "finished"
        if self.started_at is None:
            return "pending"
        return "in_progress"

    def __repr__(self) -> str:
        return f"<Test {self.id} {self.name} ({self.status})>"


class File(Base):
    """An artifact uploaded against a test run. Bytes live on disk at ``path``."""

    __tablename__ = "File"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uid = Column(String, nullable=False, unique=True)
    original_name = Column("originalName", String, nullable=False)
    path = Column(String, nullable=False)
    size = Column(Integer, nullable=False, default=0)
    test_id = Column(
        "testId",
        Integer,
        ForeignKey("Test.id", ondelete="RESTRICT", onupdate="CASCADE"),
        nullable=False,
    )

    test = relationship("Test", back_populates="files")


def get_database_url(db_path: Path) -> str:
    """Return the SQLAlchemy database URL for a database file.

    Uses POSIX-style paths (forward slashes) for cross-platform compatibility.
    """
    return f"sqlite:///{Path(db_path).as_posix()}"


def _table_columns(engine: Engine, table_name: str) -> list[str]:
    return [col["name"] for col in inspect(engine).get_columns(table_name)]


def _migrate_rebuild_test_table(engine: Engine) -> None:
    """Bring a legacy Test table up to the current column set.

    Older databases lack ``parameters`` and ``createdAt`` and declare
    ``startedAt`` NOT NULL. SQLite cannot alter columns in place, so the table
    is rebuilt and rows are copied across. Legacy ``startedAt`` doubles as the
    creation time.
    """
    columns = _table_columns(engine, "Test")
    if "parameters" in columns and "createdAt" in columns:
        return

    created_expr = '"createdAt"' if "createdAt" in columns else 'COALESCE("startedAt", CURRENT_TIMESTAMP)'
    params_expr = '"parameters"' if "parameters" in columns else "''"

    _logger.info("Migrating Test table (columns present: %s)", ", ".join(columns))
    with engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys=OFF"))
        conn.execute(text(
            'CREATE TABLE "new_Test" ('
            '"id" INTEGER NOT NULL PRIMARY KEY AUTOINCREMENT, '
            '"name" VARCHAR NOT NULL, '
            '"createdAt" DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP, '
            '"startedAt" DATETIME, '
            '"finishedAt" DATETIME, '
            '"parameters" TEXT NOT NULL DEFAULT \'\')'
        ))
        conn.execute(text(
            'INSERT INTO "new_Test" ("id", "name", "createdAt", "startedAt", "finishedAt", "parameters") '
            f'SELECT "id", "name", {created_expr}, "startedAt", "finishedAt", {params_expr} FROM "Test"'
        ))
        conn.execute(text('DROP TABLE "Test"'))
        conn.execute(text('ALTER TABLE "new_Test" RENAME TO "Test"'))
        conn.execute(text('CREATE UNIQUE INDEX IF NOT EXISTS "Test_name_key" ON "Test"("name")'))
        conn.commit()
        # PRAGMA foreign_keys is ignored inside a transaction
        conn.execute(text("PRAGMA foreign_keys=ON"))
        conn.commit()


def _migrate_rebuild_file_table(engine: Engine) -> None:
    """Add ``uid`` and ``size`` to a legacy File table.

    Rows that predate ``uid`` get a random hex identifier; ``size`` defaults to 0
    since the original byte count was never recorded.
    """
    columns = _table_columns(engine, "File")
    if "uid" in columns and "size" in columns:
        return

    uid_expr = '"uid"' if "uid" in columns else "lower(hex(randomblob(16)))"
    size_expr = '"size"' if "size" in columns else "0"

    _logger.info("Migrating File table (columns present: %s)", ", ".join(columns))
    with engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys=OFF"))
        conn.execute(text(
            'CREATE TABLE "new_File" ('
            '"id" INTEGER NOT NULL PRIMARY KEY AUTOINCREMENT, '
            '"uid" VARCHAR NOT NULL, '
            '"originalName" VARCHAR NOT NULL, '
            '"path" VARCHAR NOT NULL, '
            '"size" INTEGER NOT NULL DEFAULT 0, '
            '"testId" INTEGER NOT NULL, '
            'CONSTRAINT "File_testId_fkey" FOREIGN KEY ("testId") REFERENCES "Test" ("id") '
            'ON DELETE RESTRICT ON UPDATE CASCADE)'
        ))
        conn.execute(text(
            'INSERT INTO "new_File" ("id", "uid", "originalName", "path", "size", "testId") '
            f'SELECT "id", {uid_expr}, "originalName", "path", {size_expr}, "testId" FROM "File"'
        ))
        conn.execute(text('DROP TABLE "File"'))
        conn.execute(text('ALTER TABLE "new_File" RENAME TO "File"'))
        conn.execute(text('CREATE UNIQUE INDEX IF NOT EXISTS "File_uid_key" ON "File"("uid")'))
        conn.commit()
        # PRAGMA foreign_keys is ignored inside a transaction
        conn.execute(text("PRAGMA foreign_keys=ON"))
        conn.commit()


TIMESTAMP_COLUMNS = ("createdAt", "startedAt", "finishedAt")

# SQLAlchemy reads DATETIME columns back with datetime.fromisoformat
_SQLITE_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%f"


def _migrate_normalize_timestamps(engine: Engine) -> None:
    """Rewrite legacy Test timestamps into the text form SQLAlchemy writes.

    Earlier writers left two other encodings behind: integer milliseconds
    since the epoch, and ISO-8601 text with a ``T`` separator and a ``Z``
    suffix. Both are converted to UTC ``YYYY-MM-DD HH:MM:SS.SSS``. Text that
    SQLite cannot parse is left untouched.
    """
    with engine.begin() as conn:
        for column in TIMESTAMP_COLUMNS:
            epoch = conn.execute(text(
                f'UPDATE "Test" SET "{column}" = '
                f"strftime('{_SQLITE_DATETIME_FORMAT}', \"{column}\" / 1000.0, 'unixepoch') "
                f"WHERE typeof(\"{column}\") IN ('integer', 'real')"
            ))
            iso = conn.execute(text(
                f'UPDATE "Test" SET "{column}" = '
                f"COALESCE(strftime('{_SQLITE_DATETIME_FORMAT}', \"{column}\"), \"{column}\") "
                f"WHERE typeof(\"{column}\") = 'text' "
                f"AND (\"{column}\" LIKE '%T%' OR \"{column}\" LIKE '%Z')"
            ))
            if epoch.rowcount or iso.rowcount:
                _logger.info(
                    "Normalized Test.%s: %d epoch values, %d ISO values",
                    column, epoch.rowcount, iso.rowcount
                )


def _enable_foreign_keys(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _sqlite_pragmas(dbapi_connection, connection_record):
        if isinstance(dbapi_connection, sqlite3.Connection):
            cur = dbapi_connection.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()


def create_database(db_path: Path | str) -> tuple:
    """
    Create database and return engine + session maker.

    Args:
        db_path: SQLite file location (``:memory:`` for an in-memory database)

    Returns:
        Tuple of (engine, SessionLocal)
    """
    db_path = str(db_path)
    if db_path == ":memory:":
        from sqlalchemy.pool import StaticPool

        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(get_database_url(Path(db_path)), connect_args={
            "check_same_thread": False,
            "timeout": 30,  # Wait up to 30s for locks
        })
    _enable_foreign_keys(engine)

    Base.metadata.create_all(bind=engine)

    # Migrate existing databases
    _migrate_rebuild_test_table(engine)
    _migrate_rebuild_file_table(engine)
    _migrate_normalize_timestamps(engine)

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return engine, SessionLocal


def get_db(request: Request) -> Iterator[Session]:
    """
    Dependency for FastAPI to get database session.

    Yields a session from the app's session maker and ensures it's closed after use.
    """
    session_maker: Optional[sessionmaker] = getattr(request.app.state, "session_maker", None)
    if session_maker is None:
        raise RuntimeError("Database not initialized. Build the app with create_app().")

    db = session_maker()
    try:
        yield db
    finally:
        db.close()
