"""
Pytest configuration and shared fixtures.
"""

import pytest
from pathlib import Path

from jerbs.env import Settings
from jerbs.logger import reset_logger
from jerbs.store import JobStore


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Keep tests independent of the developer's JERBS_* variables and .env file."""
    for name in (
        "JERBS_DB",
        "JERBS_BUSY_TIMEOUT",
        "JERBS_JOURNAL_MODE",
        "JERBS_LOG_LEVEL",
        "JERBS_LOG_DIR",
        "JERBS_POLL_INTERVAL",
        "JERBS_POLL_MAX_INTERVAL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    reset_logger()
    yield
    reset_logger()


@pytest.fixture
def settings() -> Settings:
    return Settings(busy_timeout=30.0)


@pytest.fixture
def store_path(tmp_path) -> Path:
    """Path for a store that does not exist yet."""
    return tmp_path / "jobs.db"


@pytest.fixture
def store(store_path, settings):
    """A freshly initialized, empty store."""
    job_store = JobStore.init(store_path, settings)
    yield job_store
    job_store.close()


@pytest.fixture
def payload() -> bytes:
    return b"info for thing to do 17 times"
