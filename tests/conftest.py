"""Shared test fixtures and configuration."""

import os

import pytest

from fts_bridge.config import reset_settings


# Test environment that overrides every setting the package reads
TEST_ENV = {
    "FTS_BRIDGE_LOG_LEVEL": "info",
    "FTS_BRIDGE_JSON_LOGS": "true",
    "FTS_BRIDGE_LOCK_TIMEOUT_MS": "0",
    "FTS_BRIDGE_READ_BUSY_TIMEOUT_MS": "1000",
    "FTS_BRIDGE_MAX_TERM_LENGTH": "245",
    "FTS_BRIDGE_DEFAULT_SNIPPET_LENGTH": "500",
    "FTS_BRIDGE_WILDCARD_MAX_EXPANSION": "0",
    "FTS_BRIDGE_TRACING_ENABLED": "false",
}

for key, value in TEST_ENV.items():
    os.environ[key] = value


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Apply test settings and drop the cached Settings around each test."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def db_path(tmp_path):
    """Path for an on-disk database that does not exist yet."""
    return tmp_path / "db"


@pytest.fixture
def writable(db_path):
    """A fresh on-disk WritableDatabase, closed after the test."""
    from fts_bridge.database import WritableDatabase

    db = WritableDatabase(db_path)
    yield db
    db.close()


@pytest.fixture
def memory_db():
    """An in-memory WritableDatabase, closed after the test."""
    from fts_bridge.database import WritableDatabase

    db = WritableDatabase()
    yield db
    db.close()
