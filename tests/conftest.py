"""
Shared fixtures: a fully wired app on a temporary database and upload root.
"""
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Add project root to path for imports
ROOT_DIR = Path(__file__).parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from api.config import Settings  # noqa: E402
from server.main import create_app  # noqa: E402

API_SECRET = "s3cret-token-value"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_path=tmp_path / "tracker.db",
        upload_path=tmp_path / "uploads",
        api_secret=API_SECRET,
        github_token="ghp_test",
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {API_SECRET}"}


@pytest.fixture
def db_session(app):
    """Direct session on the app's database, for asserting on stored rows."""
    session = app.state.session_maker()
    yield session
    session.close()
