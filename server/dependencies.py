"""
Shared FastAPI Dependencies
===========================

Everything a handler needs is built once by ``create_app`` and parked on
``app.state``; these helpers hand it to routes through ``Depends``.
"""

from fastapi import Request

from api.artifact_store import ArtifactStore
from api.config import Settings
from api.workflow import WorkflowDispatcher


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_artifact_store(request: Request) -> ArtifactStore:
    return request.app.state.artifact_store


def get_dispatcher(request: Request) -> WorkflowDispatcher:
    return request.app.state.dispatcher
