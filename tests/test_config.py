"""Tests for the config module (paths, constants, env overrides)."""

from pathlib import Path

import pytest

import studycompass.config as config
from studycompass.config import (
    ALLOCATION_PRIORITY_CUTOFFS,
    BURNOUT_MAX_SCORES,
    DURATION_BUCKETS,
    SR_STRENGTH_MULTIPLIERS,
    SYNTH_PRIORITY_ORDER,
    ensure_data_dirs,
)


class TestEnsureDataDirs:
    def test_creates_directory(self, temp_data_dir):
        config.DATA_DIR.rmdir()
        ensure_data_dirs()
        assert config.DATA_DIR.exists()

    def test_idempotent(self, temp_data_dir):
        ensure_data_dirs()
        ensure_data_dirs()
        assert config.DATA_DIR.exists()


class TestConstants:
    def test_burnout_max_scores_total_100(self):
        assert sum(BURNOUT_MAX_SCORES.values()) == 100

    def test_duration_buckets_contiguous(self):
        for (_, _, high), (_, low, _) in zip(DURATION_BUCKETS, DURATION_BUCKETS[1:]):
            assert high == low

    def test_strength_multipliers(self):
        assert SR_STRENGTH_MULTIPLIERS["easy"] > SR_STRENGTH_MULTIPLIERS["good"] > 1
        assert SR_STRENGTH_MULTIPLIERS["forgot"] < SR_STRENGTH_MULTIPLIERS["hard"] < 1

    def test_priority_cutoffs_descending(self):
        thresholds = [t for t, _ in ALLOCATION_PRIORITY_CUTOFFS]
        assert thresholds == sorted(thresholds, reverse=True)

    def test_priority_order(self):
        assert sorted(SYNTH_PRIORITY_ORDER, key=SYNTH_PRIORITY_ORDER.get) == ["urgent", "high", "medium", "low"]


class TestEnvOverrides:
    @pytest.fixture(autouse=True)
    def restore_globals(self, monkeypatch):
        for name in ("DEFAULT_USER_ID", "SYNTH_MAX_WORKERS", "LOG_LEVEL"):
            monkeypatch.setattr(config, name, getattr(config, name))

    def test_overrides_applied(self, monkeypatch, tmp_path):
        monkeypatch.setenv("STUDYCOMPASS_DB_PATH", str(tmp_path / "other.db"))
        monkeypatch.setenv("STUDYCOMPASS_DEFAULT_USER", "alex")
        monkeypatch.setenv("STUDYCOMPASS_SYNTH_WORKERS", "2")
        monkeypatch.setenv("STUDYCOMPASS_LOG_LEVEL", "debug")
        config._init_env_vars()
        assert config.DB_PATH == Path(tmp_path / "other.db")
        assert config.DEFAULT_USER_ID == "alex"
        assert config.SYNTH_MAX_WORKERS == 2
        assert config.LOG_LEVEL == "DEBUG"

    def test_bad_int_falls_back(self, monkeypatch):
        monkeypatch.setenv("STUDYCOMPASS_SYNTH_WORKERS", "many")
        assert config._int_env("STUDYCOMPASS_SYNTH_WORKERS", 8) == 8
