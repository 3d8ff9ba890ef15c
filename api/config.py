"""
Service Configuration
=====================

Immutable settings for the test tracker, read once from the environment
at startup and handed to every component that needs them.

Environment variables:
- DATABASE_PATH: SQLite database file (a leading ``file:`` is tolerated)
- UPLOAD_PATH: Root directory of the artifact store
- API_SECRET: Shared bearer secret for protected routes
- GITHUB_TOKEN: Credential for the workflow dispatch call
- PUBLIC_READS_REQUIRE_AUTH: Gate /public/test/list and /info behind the bearer check
- MAX_UPLOAD_MB: Request body cap enforced before handlers run
- HOST / PORT / LOG_LEVEL: uvicorn binding and log verbosity
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

DEFAULT_DATABASE_PATH = "./test-tracker.db"
DEFAULT_UPLOAD_PATH = "./uploads"
DEFAULT_MAX_UPLOAD_MB = 100


def _env_flag(value: str | None, default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _strip_file_prefix(db_path: str) -> str:
    return db_path[len("file:"):] if db_path.startswith("file:") else db_path


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration. Construct once, never mutate."""

    database_path: Path
    upload_path: Path
    api_secret: str | None = None
    github_token: str | None = None
    public_reads_require_auth: bool = True
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_MB * 1024 * 1024
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from environment variables (``os.environ`` by default)."""
        env = os.environ if environ is None else environ

        database_path = _strip_file_prefix(env.get("DATABASE_PATH") or DEFAULT_DATABASE_PATH)
        max_mb = int(env.get("MAX_UPLOAD_MB") or DEFAULT_MAX_UPLOAD_MB)

        return cls(
            database_path=Path(database_path),
            upload_path=Path(env.get("UPLOAD_PATH") or DEFAULT_UPLOAD_PATH),
            api_secret=env.get("API_SECRET") or None,
            github_token=env.get("GITHUB_TOKEN") or None,
            public_reads_require_auth=_env_flag(env.get("PUBLIC_READS_REQUIRE_AUTH"), True),
            max_upload_bytes=max_mb * 1024 * 1024,
            host=env.get("HOST") or "0.0.0.0",
            port=int(env.get("PORT") or 3000),
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        )
