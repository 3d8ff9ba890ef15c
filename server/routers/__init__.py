"""
API Routers
===========

FastAPI routers for different API endpoints.
"""

from .files import router as files_router
from .tests import router as tests_router
from .workflow import router as workflow_router

__all__ = [
    "tests_router",
    "files_router",
    "workflow_router",
]
