"""
Tests for Settings.from_env
"""
from pathlib import Path

import pytest

from api.config import DEFAULT_MAX_UPLOAD_MB, Settings


def test_defaults():
    settings = Settings.from_env({})
    assert settings.database_path == Path("./test-tracker.db")
    assert settings.upload_path == Path("./uploads")
    assert settings.api_secret is None
    assert settings.github_token is None
    assert settings.public_reads_require_auth is True
    assert settings.max_upload_bytes == DEFAULT_MAX_UPLOAD_MB * 1024 * 1024
    assert settings.port == 3000
    assert settings.log_level == "INFO"


def test_reads_environment():
    settings = Settings.from_env({
        "DATABASE_PATH": "file:./data/tracker.db",
        "UPLOAD_PATH": "/srv/uploads",
        "API_SECRET": "abc",
        "GITHUB_TOKEN": "ghp_x",
        "MAX_UPLOAD_MB": "5",
        "HOST": "127.0.0.1",
        "PORT": "8080",
        "LOG_LEVEL": "debug",
    })
    assert settings.database_path == Path("./data/tracker.db")
    assert settings.upload_path == Path("/srv/uploads")
    assert settings.api_secret == "abc"
    assert settings.github_token == "ghp_x"
    assert settings.max_upload_bytes == 5 * 1024 * 1024
    assert settings.host == "127.0.0.1"
    assert settings.port == 8080
    assert settings.log_level == "DEBUG"


def test_empty_secret_means_unconfigured():
    assert Settings.from_env({"API_SECRET": ""}).api_secret is None


@pytest.mark.parametrize(
    "value, expected",
    [("false", False), ("0", False), ("no", False), ("true", True), ("1", True), ("", True)],
)
def test_public_reads_flag(value, expected):
    settings = Settings.from_env({"PUBLIC_READS_REQUIRE_AUTH": value})
    assert settings.public_reads_require_auth is expected


def test_settings_are_frozen():
    settings = Settings.from_env({})
    with pytest.raises(AttributeError):
        settings.api_secret = "changed"
