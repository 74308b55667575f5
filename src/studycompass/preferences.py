"""Study preferences YAML read/write."""

from __future__ import annotations

import logging
from typing import Any

import yaml
from pydantic import ValidationError

from . import config
from .models import StudyPreferences

logger = logging.getLogger(__name__)

DEFAULT_PREFERENCES = StudyPreferences().model_dump()


def _ensure_preferences_exist() -> None:
    """Create default preferences.yaml if it doesn't exist."""
    config.ensure_data_dirs()
    if not config.PREFERENCES_PATH.exists():
        config.PREFERENCES_PATH.write_text(
            yaml.dump(DEFAULT_PREFERENCES, default_flow_style=False, sort_keys=False),
            encoding="utf-8",
        )


def get_preferences() -> StudyPreferences:
    """Read preferences from YAML, falling back to defaults on a bad file."""
    _ensure_preferences_exist()
    try:
        with open(config.PREFERENCES_PATH, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return StudyPreferences(**(data or {}))
    except (yaml.YAMLError, ValidationError, TypeError) as e:
        logger.warning("Failed to read preferences, returning defaults: %s", e)
        return StudyPreferences()


def update_preference(key: str, value: Any) -> StudyPreferences:
    """Set one preference and write the file back.

    Raises ValueError for unknown keys or values that fail validation.
    """
    if key not in StudyPreferences.model_fields:
        raise ValueError(
            f"Invalid preference '{key}'. Must be one of: {', '.join(StudyPreferences.model_fields)}"
        )
    current = get_preferences().model_dump()
    current[key] = value
    try:
        updated = StudyPreferences(**current)
    except ValidationError as e:
        raise ValueError(f"Invalid value for {key}: {value!r}") from e

    config.PREFERENCES_PATH.write_text(
        yaml.dump(updated.model_dump(), default_flow_style=False, sort_keys=False),
        encoding="utf-8",
    )
    logger.info("Updated preference %s", key)
    return updated
