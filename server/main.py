"""
FastAPI Main Application
========================

Main entry point for the test tracker server.
Provides the REST API for test runs, artifact upload/download and workflow dispatch.
"""

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request

from api.artifact_store import ArtifactStore, ArtifactStoreError
from api.config import Settings
from api.database import create_database
from api.workflow import WorkflowDispatcher

from .exceptions import PayloadTooLargeError, api_error_handler, register_exception_handlers
from .routers import files_router, tests_router, workflow_router

_logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    settings: Settings = app.state.settings
    _logger.info(
        "Test tracker ready: database=%s uploads=%s auth=%s",
        settings.database_path,
        app.state.artifact_store.root,
        "configured" if settings.api_secret else "not configured",
    )

    yield

    app.state.engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Creates the upload root and the database (running migrations) up front;
    either failing is fatal.

    Args:
        settings: Configuration to use; read from the environment when omitted
    """
    if settings is None:
        load_dotenv()
        settings = Settings.from_env()

    store = ArtifactStore(settings.upload_path)
    try:
        store.ensure_root()
    except ArtifactStoreError:
        _logger.critical("Failed to ensure upload directory %s", settings.upload_path)
        raise

    engine, session_maker = create_database(settings.database_path)

    app = FastAPI(
        title="Test Tracker",
        description="Tracks test runs and their result artifacts",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_maker = session_maker
    app.state.artifact_store = store
    app.state.dispatcher = WorkflowDispatcher(settings.github_token)

    register_exception_handlers(app)

    # ========================================================================
    # Transport-level body cap
    # ========================================================================

    @app.middleware("http")
    async def limit_request_size(request: Request, call_next):
        """Reject requests whose declared Content-Length exceeds MAX_UPLOAD_MB."""
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > settings.max_upload_bytes:
            _logger.warning(
                "Rejected %s %s: body of %s bytes over limit",
                request.method, request.url.path, content_length
            )
            return await api_error_handler(request, PayloadTooLargeError(settings.max_upload_bytes))
        return await call_next(request)

    app.include_router(tests_router)
    app.include_router(files_router)
    app.include_router(workflow_router)

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


# ============================================================================
# Main Entry Point
# ============================================================================

def main() -> None:
    import uvicorn

    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
