"""Paths, constants, and data directory setup."""

import logging
import os
from pathlib import Path

# Base directories
PROJECT_ROOT = Path(__file__).parent.parent.parent


def _load_env() -> None:
    """Load .env file from project root if present. Existing env vars take priority."""
    env_file = PROJECT_ROOT / ".env"
    if not env_file.exists():
        return
    with open(env_file) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip()
            if not os.environ.get(key):
                os.environ[key] = value


_env_initialized = False


def init() -> None:
    """Load .env and set env-dependent constants. Safe to call multiple times."""
    global _env_initialized
    if _env_initialized:
        return
    _load_env()
    _init_env_vars()
    _env_initialized = True


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except (ValueError, TypeError):
        logging.getLogger(__name__).warning(
            "Invalid %s env var, defaulting to %d", name, default
        )
        return default


def _init_env_vars() -> None:
    """Read environment variables into module-level constants."""
    global DB_PATH, DEFAULT_USER_ID, SYNTH_MAX_WORKERS, LOG_LEVEL

    db_override = os.environ.get("STUDYCOMPASS_DB_PATH", "")
    if db_override:
        DB_PATH = Path(os.path.expanduser(db_override))
    DEFAULT_USER_ID = os.environ.get("STUDYCOMPASS_DEFAULT_USER", DEFAULT_USER_ID)
    SYNTH_MAX_WORKERS = _int_env("STUDYCOMPASS_SYNTH_WORKERS", SYNTH_MAX_WORKERS)
    LOG_LEVEL = os.environ.get("STUDYCOMPASS_LOG_LEVEL", LOG_LEVEL).upper()


DATA_DIR = PROJECT_ROOT / "data"
DB_PATH = DATA_DIR / "studycompass.db"
PREFERENCES_PATH = DATA_DIR / "preferences.yaml"

DEFAULT_USER_ID = "local"
LOG_LEVEL = "INFO"

# --- Forgetting-curve scheduler ---
SR_TARGET_RETENTION = 75.0
SR_BASE_STRENGTH_DAYS = 3.0
SR_MIN_STRENGTH = 1.0
SR_MAX_INITIAL_STRENGTH = 7.0
SR_MAX_STRENGTH = 90.0
SR_STRENGTH_MULTIPLIERS = {
    "easy": 2.5,
    "good": 2.0,
    "hard": 1.5,
    "forgot": 0.5,
}
SR_MASTERY_WINDOW = 5
SR_MASTERY_MIN_CONFIDENCE = 8
SR_DUE_LIMIT = 20
SR_AT_RISK_THRESHOLD = 60.0
SR_REMINDER_RISK_THRESHOLD = 50.0
SR_CRITICAL_RETENTION = 40.0

# --- Trend detector ---
TREND_WINDOW = 7
TREND_STABLE_PERCENT = 5.0
TREND_EMA_ALPHA = 0.3
ANOMALY_THRESHOLD = 2.0
ANOMALY_MIN_SAMPLES = 14
ANOMALY_WARMUP = 7
WEEKLY_PATTERN_MIN_DAYS = 5
WEEKLY_PATTERN_DEVIATION = 15.0
TREND_FOCUS_DAYS = 30
TREND_PERFORMANCE_DAYS = 60
TREND_HOURS_DAYS = 30
TREND_PERFORMANCE_MIN_POINTS = 10

# --- Burnout scorer ---
BURNOUT_MAX_SCORES = {
    "focus": 25,
    "performance": 30,
    "avoidance": 20,
    "emotional": 15,
    "extreme_behavior": 10,
}
BURNOUT_SEVERITY_CUTOFFS = [
    (86, "critical"),
    (76, "high"),
    (61, "moderate"),
    (41, "mild"),
]
BURNOUT_INTERVENTION_SCORE = 60
BURNOUT_FOCUS_DECLINE_PERCENT = 15.0
BURNOUT_HOURS_RISE_PERCENT = 20.0
BURNOUT_PERFORMANCE_DROP_PERCENT = -5.0
BURNOUT_AVOIDANCE_DROP_PERCENT = 40.0
BURNOUT_EMOTIONAL_PERCENT = 30.0
BURNOUT_NOTES_LIMIT = 20
BURNOUT_MARATHON_MINUTES = 180
BURNOUT_LATE_NIGHT_MIN_COUNT = 3
BURNOUT_WEEKLY_HOURS_LIMIT = 50.0
BURNOUT_EXTREME_POINTS = 3
BURNOUT_NEGATIVE_KEYWORDS = [
    "exhausted",
    "tired",
    "can't focus",
    "giving up",
    "frustrated",
    "overwhelmed",
    "stressed",
    "anxious",
    "burnout",
    "quit",
    "pointless",
]

# --- Subject attention allocator ---
ALLOCATION_DEFAULT_WEEKLY_HOURS = 20.0
ALLOCATION_DEFAULT_TARGET_PERFORMANCE = 85.0
ALLOCATION_BLOCK_HOURS = 1.5
# (min days since last study, points)
ALLOCATION_RECENCY_POINTS = [(7, 20), (4, 12), (2, 6)]
ALLOCATION_NEVER_STUDIED_POINTS = 15
# (gap greater than, points)
ALLOCATION_GAP_POINTS = [(20, 30), (10, 20), (5, 10)]
ALLOCATION_EXCEEDING_TARGET_PENALTY = -10
ALLOCATION_DIFFICULTY_POINTS = {
    "very_hard": 15,
    "hard": 10,
    "medium": 0,
    "easy": -5,
}
# (max days until exam, points, urgency factor)
ALLOCATION_DEADLINE_BUCKETS = [(7, 25, 2.0), (14, 18, 1.5), (30, 10, 1.2)]
ALLOCATION_REVIEW_WINDOW_DAYS = 3
ALLOCATION_PRIORITY_CUTOFFS = [(75, "critical"), (55, "high"), (35, "medium")]
WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

# --- Learning-preference profiler ---
PROFILE_FREQUENCY_WEIGHT = 40.0
PROFILE_FOCUS_WEIGHT = 30.0
PROFILE_DURATION_WEIGHT = 30.0
PROFILE_PERFORMANCE_BONUS = 20.0
PROFILE_PERFORMANCE_LINK_DAYS = 7
PROFILE_MULTIMODAL_SCORE = 20.0
PROFILE_MULTIMODAL_COUNT = 3
PROFILE_PREFERRED_SCORE = 25.0
PROFILE_MIN_PATTERN_SESSIONS = 5
PROFILE_PATTERN_SESSION_LIMIT = 50
PROFILE_FULL_CONFIDENCE_SESSIONS = 20

# --- Duration optimizer ---
DURATION_BUCKETS = [
    ("0-15min", 0, 15),
    ("15-30min", 15, 30),
    ("30-45min", 30, 45),
    ("45-60min", 45, 60),
    ("60-90min", 60, 90),
    ("90-120min", 90, 120),
    ("120+min", 120, 999),
]
DURATION_MIN_LINKED_SESSIONS = 10
DURATION_MIN_BUCKET_SESSIONS = 3
DURATION_SESSION_LIMIT = 100

# --- Correlation analysis ---
CORRELATION_STRENGTH_CUTOFFS = [(0.8, "very_strong"), (0.6, "strong"), (0.4, "moderate")]
CORRELATION_SIGNIFICANCE = 0.05
CORRELATION_MIN_DURATION_PAIRS = 8
CORRELATION_DURATION_LIMIT = 100
CORRELATION_GROUP_LIMIT = 200
CORRELATION_MIN_WINDOW_SAMPLES = 5
CORRELATION_MIN_METHOD_SAMPLES = 3
# Group comparisons are averages, not regressions; they carry fixed significance
CORRELATION_WINDOW_P_VALUE = 0.01
CORRELATION_METHOD_P_VALUE = 0.02
CORRELATION_GROUP_CONFIDENCE = 95.0
CORRELATION_TIME_WINDOWS = [
    ("early_morning", (5, 6, 7)),
    ("morning", (8, 9, 10, 11)),
    ("afternoon", (12, 13, 14, 15, 16)),
    ("evening", (17, 18, 19, 20)),
    ("night", (21, 22, 23, 0, 1, 2, 3, 4)),
]
CORRELATION_PATTERN_DAYS = 30
CORRELATION_PATTERN_LIMIT = 20

# --- Recommendation synthesizer ---
SYNTH_MAX_WORKERS = 8
SYNTH_MIN_SESSIONS = 5
SYNTH_MIN_ASSESSMENTS = 2
SYNTH_MIN_PROFILE_SESSIONS = 10
SYNTH_MIN_SUBJECTS = 2
SYNTH_MIN_PATTERN_SESSIONS = 3
SYNTH_PATTERN_DAYS = 30
SYNTH_PRIORITY_ORDER = {"urgent": 0, "high": 1, "medium": 2, "low": 3}
SYNTH_ACTIVE_DAYS = 7


def ensure_data_dirs() -> None:
    """Create all required data directories if they don't exist."""
    init()
    DATA_DIR.mkdir(parents=True, exist_ok=True)
