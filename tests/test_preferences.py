"""Tests for the preferences module (YAML read/write)."""

import pytest
import yaml

import studycompass.config as config
from studycompass.preferences import DEFAULT_PREFERENCES, get_preferences, update_preference


class TestGetPreferences:
    def test_creates_default_if_missing(self):
        prefs = get_preferences()
        assert prefs.available_weekly_hours == 20.0
        assert config.PREFERENCES_PATH.exists()

    def test_reads_existing(self):
        config.PREFERENCES_PATH.write_text(
            yaml.dump({**DEFAULT_PREFERENCES, "available_weekly_hours": 12.5}), encoding="utf-8",
        )
        assert get_preferences().available_weekly_hours == 12.5

    def test_corrupt_file_falls_back(self):
        config.PREFERENCES_PATH.write_text("available_weekly_hours: [unclosed", encoding="utf-8")
        assert get_preferences().available_weekly_hours == 20.0

    def test_invalid_values_fall_back(self):
        config.PREFERENCES_PATH.write_text("available_weekly_hours: -4\n", encoding="utf-8")
        assert get_preferences().available_weekly_hours == 20.0


class TestUpdatePreference:
    def test_update_and_persist(self):
        update_preference("available_weekly_hours", "25")
        assert get_preferences().available_weekly_hours == 25.0
        data = yaml.safe_load(config.PREFERENCES_PATH.read_text(encoding="utf-8"))
        assert data["available_weekly_hours"] == 25.0

    def test_other_keys_kept(self):
        update_preference("target_performance", 90)
        update_preference("default_user", "alex")
        prefs = get_preferences()
        assert prefs.target_performance == 90
        assert prefs.default_user == "alex"

    def test_unknown_key(self):
        with pytest.raises(ValueError, match="Invalid preference"):
            update_preference("theme", "dark")

    def test_invalid_value(self):
        with pytest.raises(ValueError, match="Invalid value"):
            update_preference("available_weekly_hours", 500)
