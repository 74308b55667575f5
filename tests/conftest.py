"""Shared test fixtures."""

from datetime import datetime, timezone

import pytest


@pytest.fixture(autouse=True)
def temp_data_dir(monkeypatch, tmp_path):
    """Override data paths to use a temp dir for each test."""
    import studycompass.config as config

    data_dir = tmp_path / "data"
    data_dir.mkdir()

    monkeypatch.setattr(config, "DATA_DIR", data_dir)
    monkeypatch.setattr(config, "DB_PATH", data_dir / "studycompass.db")
    monkeypatch.setattr(config, "PREFERENCES_PATH", data_dir / "preferences.yaml")

    return data_dir


@pytest.fixture
def store(temp_data_dir):
    """Initialized store in the temp data dir."""
    from studycompass.db import StudyStore

    s = StudyStore(temp_data_dir / "studycompass.db")
    s.init_db()
    return s


@pytest.fixture
def now():
    """Fixed reference time for time-dependent analyses (a Wednesday)."""
    return datetime(2024, 6, 12, 12, 0, tzinfo=timezone.utc)
