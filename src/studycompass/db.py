"""SQLite record store: schema, connection handling, and CRUD helpers.

The store is injected into every analysis as a ``StudyStore``. Each call to
``StudyStore.connect()`` opens a fresh connection, so analyses running on
different threads never share one. Callers own the store's lifecycle.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, TypeVar

from pydantic import ValidationError

from .models import (
    ActivityRecord,
    AssessmentRecord,
    DifficultyTier,
    GoalRecord,
    GoalStatus,
    ItemStatus,
    OnTrackStatus,
    PriorityTier,
    ReviewEvent,
    ReviewItem,
    StudyMethod,
    SubjectProfile,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)


class StudyStore:
    """Handle to one SQLite database file."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)

    def connect(self) -> sqlite3.Connection:
        """Open a connection with Row factory, WAL, and foreign keys."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path), timeout=10.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def init_db(self) -> None:
        """Initialize the database schema."""
        conn = self.connect()
        try:
            conn.executescript(SCHEMA_SQL)
            conn.commit()
        finally:
            conn.close()

    def __repr__(self) -> str:
        return f"StudyStore({str(self.db_path)!r})"


def default_store() -> StudyStore:
    """Build a store at the configured DB_PATH and make sure the schema exists."""
    from . import config

    config.ensure_data_dirs()
    store = StudyStore(config.DB_PATH)
    store.init_db()
    return store


SCHEMA_SQL = """
-- Subjects
CREATE TABLE IF NOT EXISTS subjects (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    difficulty_level TEXT NOT NULL DEFAULT 'medium',
    priority_level TEXT NOT NULL DEFAULT 'medium',
    next_exam_date TEXT,
    target_performance REAL NOT NULL DEFAULT 85,
    current_performance REAL,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_subjects_user ON subjects(user_id, is_active);

-- Study sessions
CREATE TABLE IF NOT EXISTS study_sessions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    subject_id TEXT,
    started_at TEXT NOT NULL,
    duration_minutes REAL NOT NULL DEFAULT 0,
    focus_score REAL,
    study_method TEXT,
    notes TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sessions_user_started ON study_sessions(user_id, started_at);
CREATE INDEX IF NOT EXISTS idx_sessions_subject ON study_sessions(subject_id);

-- Graded assessments
CREATE TABLE IF NOT EXISTS assessments (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    subject_id TEXT NOT NULL,
    assessment_date TEXT NOT NULL,
    percentage REAL NOT NULL,
    weaknesses TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_assessments_user_date ON assessments(user_id, assessment_date);

-- Goals
CREATE TABLE IF NOT EXISTS goals (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    goal_type TEXT NOT NULL,
    subject_id TEXT,
    target_value REAL NOT NULL DEFAULT 0,
    current_value REAL NOT NULL DEFAULT 0,
    target_date TEXT,
    status TEXT NOT NULL DEFAULT 'active',
    on_track_status TEXT NOT NULL DEFAULT 'unknown',
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_goals_user_status ON goals(user_id, status);

-- Spaced repetition items
CREATE TABLE IF NOT EXISTS review_items (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    subject_id TEXT NOT NULL,
    topic_name TEXT NOT NULL,
    chapter_reference TEXT NOT NULL DEFAULT '',
    initial_study_date TEXT NOT NULL,
    memory_strength REAL NOT NULL,
    initial_confidence INTEGER NOT NULL,
    difficulty_level INTEGER NOT NULL,
    next_review_date TEXT NOT NULL,
    review_count INTEGER NOT NULL DEFAULT 0,
    last_review_date TEXT,
    last_review_confidence INTEGER,
    status TEXT NOT NULL DEFAULT 'active',
    review_history TEXT NOT NULL DEFAULT '[]',
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_review_items_user_status ON review_items(user_id, status);
CREATE INDEX IF NOT EXISTS idx_review_items_next ON review_items(next_review_date);

-- Burnout assessment snapshots
CREATE TABLE IF NOT EXISTS burnout_assessments (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    assessment_date TEXT NOT NULL,
    focus_decline_score REAL NOT NULL DEFAULT 0,
    performance_effort_mismatch_score REAL NOT NULL DEFAULT 0,
    avoidance_behavior_score REAL NOT NULL DEFAULT 0,
    emotional_indicator_score REAL NOT NULL DEFAULT 0,
    extreme_behavior_score REAL NOT NULL DEFAULT 0,
    total_score REAL NOT NULL,
    severity TEXT NOT NULL,
    indicators TEXT NOT NULL DEFAULT '[]',
    recommendations TEXT NOT NULL DEFAULT '[]'
);

-- Learning profile snapshots
CREATE TABLE IF NOT EXISTS learning_profiles (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    payload TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_learning_profiles_user ON learning_profiles(user_id, updated_at);

-- Synthesized recommendations
CREATE TABLE IF NOT EXISTS recommendations (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    type TEXT NOT NULL,
    priority TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    rationale TEXT NOT NULL DEFAULT '',
    expected_outcome TEXT NOT NULL DEFAULT '',
    action_items TEXT NOT NULL DEFAULT '[]',
    confidence REAL NOT NULL DEFAULT 0,
    evidence TEXT NOT NULL DEFAULT '[]',
    tags TEXT NOT NULL DEFAULT '[]',
    status TEXT NOT NULL DEFAULT 'pending',
    user_feedback TEXT,
    created_at TEXT NOT NULL,
    completed_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_recommendations_user_status ON recommendations(user_id, status);

-- Stored correlation patterns
CREATE TABLE IF NOT EXISTS correlation_patterns (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    subject_id TEXT,
    pattern_type TEXT NOT NULL DEFAULT 'correlation',
    variable_x TEXT NOT NULL,
    variable_y TEXT NOT NULL,
    correlation_coefficient REAL NOT NULL,
    p_value REAL NOT NULL,
    sample_size INTEGER NOT NULL,
    confidence_level REAL NOT NULL,
    pattern_strength TEXT NOT NULL,
    pattern_description TEXT NOT NULL DEFAULT '',
    recommendation_text TEXT NOT NULL DEFAULT '',
    data_start_date TEXT NOT NULL,
    data_end_date TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_correlation_patterns_user ON correlation_patterns(user_id, is_active);
"""


# --- Time helpers ---

def now_iso() -> str:
    """Return current UTC time as ISO string."""
    return datetime.now(timezone.utc).isoformat()


def to_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso(value: datetime) -> str:
    return to_utc(value).isoformat()


def parse_dt(value: str) -> datetime:
    return to_utc(datetime.fromisoformat(value))


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    return date.fromisoformat(value[:10])


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def enum_or_default(enum_cls: type[E], value, default: E, table: str, row_id: str, column: str) -> E:
    """Map a stored string onto `enum_cls`, logging and using `default` when unknown."""
    try:
        return enum_cls(value)
    except ValueError:
        logger.warning(
            "%s row %s has unknown %s %r, using %s",
            table, row_id, column, value, default.value,
        )
        return default


def _parse_history(row) -> list[ReviewEvent]:
    """Decode review history, dropping events that no longer validate."""
    try:
        raw = json.loads(row["review_history"] or "[]")
    except json.JSONDecodeError:
        logger.warning("review_items row %s has unreadable history, ignoring it", row["id"])
        return []
    events = []
    for event in raw if isinstance(raw, list) else []:
        try:
            events.append(ReviewEvent(**event))
        except (TypeError, ValidationError) as e:
            logger.warning("review_items row %s has an invalid history event: %s", row["id"], e)
    return events


# --- Row parsing ---

def _parse_session_row(row) -> ActivityRecord:
    """Convert a study_sessions row, clamping values that are out of range."""
    method = None
    if row["study_method"]:
        try:
            method = StudyMethod(row["study_method"])
        except ValueError:
            logger.warning(
                "Session %s has unmapped study method %r, ignoring it",
                row["id"], row["study_method"],
            )
    focus = row["focus_score"]
    return ActivityRecord(
        id=row["id"],
        user_id=row["user_id"],
        subject_id=row["subject_id"],
        started_at=parse_dt(row["started_at"]),
        duration_minutes=max(0.0, row["duration_minutes"] or 0.0),
        focus_score=_clamp(focus, 0.0, 10.0) if focus is not None else None,
        study_method=method,
        notes=row["notes"] or "",
    )


def _parse_assessment_row(row) -> AssessmentRecord:
    return AssessmentRecord(
        id=row["id"],
        user_id=row["user_id"],
        subject_id=row["subject_id"],
        assessment_date=parse_dt(row["assessment_date"]),
        percentage=_clamp(row["percentage"] or 0.0, 0.0, 100.0),
        weaknesses=row["weaknesses"] or "",
    )


def _parse_subject_row(row) -> SubjectProfile:
    return SubjectProfile(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        difficulty=enum_or_default(
            DifficultyTier, row["difficulty_level"], DifficultyTier.MEDIUM, "subjects", row["id"], "difficulty_level",
        ),
        priority=enum_or_default(
            PriorityTier, row["priority_level"], PriorityTier.MEDIUM, "subjects", row["id"], "priority_level",
        ),
        next_exam_date=_parse_date(row["next_exam_date"]),
        target_performance=row["target_performance"],
        current_performance=row["current_performance"],
        is_active=bool(row["is_active"]),
    )


def _parse_goal_row(row) -> GoalRecord:
    return GoalRecord(
        id=row["id"],
        user_id=row["user_id"],
        goal_type=row["goal_type"],
        subject_id=row["subject_id"],
        target_value=row["target_value"],
        current_value=row["current_value"],
        target_date=_parse_date(row["target_date"]),
        status=enum_or_default(GoalStatus, row["status"], GoalStatus.ACTIVE, "goals", row["id"], "status"),
        on_track_status=enum_or_default(
            OnTrackStatus, row["on_track_status"], OnTrackStatus.UNKNOWN, "goals", row["id"], "on_track_status",
        ),
        created_at=parse_dt(row["created_at"]),
    )


def parse_review_item_row(row) -> ReviewItem:
    """Convert a review_items row to a ReviewItem model."""
    history = _parse_history(row)
    return ReviewItem(
        id=row["id"],
        user_id=row["user_id"],
        subject_id=row["subject_id"],
        topic_name=row["topic_name"],
        chapter_reference=row["chapter_reference"] or "",
        initial_study_date=parse_dt(row["initial_study_date"]),
        memory_strength=_clamp(row["memory_strength"], 1.0, 90.0),
        initial_confidence=int(_clamp(row["initial_confidence"], 1, 10)),
        difficulty_level=int(_clamp(row["difficulty_level"], 1, 5)),
        next_review_date=parse_dt(row["next_review_date"]),
        review_count=row["review_count"],
        last_review_date=parse_dt(row["last_review_date"]) if row["last_review_date"] else None,
        last_review_confidence=row["last_review_confidence"],
        status=enum_or_default(ItemStatus, row["status"], ItemStatus.ACTIVE, "review_items", row["id"], "status"),
        history=history,
    )


# --- Subjects ---

def insert_subject(
    conn: sqlite3.Connection,
    subject_id: str,
    user_id: str,
    name: str,
    difficulty: str = "medium",
    priority: str = "medium",
    next_exam_date: Optional[date] = None,
    target_performance: float = 85.0,
    current_performance: Optional[float] = None,
    is_active: bool = True,
) -> None:
    conn.execute(
        """INSERT INTO subjects
        (id, user_id, name, difficulty_level, priority_level, next_exam_date,
         target_performance, current_performance, is_active, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            subject_id, user_id, name, difficulty, priority,
            next_exam_date.isoformat() if next_exam_date else None,
            target_performance, current_performance, int(is_active), now_iso(),
        ),
    )
    conn.commit()


def get_subject(conn: sqlite3.Connection, subject_id: str) -> Optional[SubjectProfile]:
    row = conn.execute("SELECT * FROM subjects WHERE id = ?", (subject_id,)).fetchone()
    return _parse_subject_row(row) if row else None


def list_active_subjects(conn: sqlite3.Connection, user_id: str) -> list[SubjectProfile]:
    """Active subjects, high priority first, then by name."""
    rows = conn.execute(
        """SELECT * FROM subjects
        WHERE user_id = ? AND is_active = 1
        ORDER BY CASE priority_level
            WHEN 'high' THEN 0 WHEN 'medium' THEN 1 ELSE 2 END,
            name ASC, id ASC""",
        (user_id,),
    ).fetchall()
    return [_parse_subject_row(r) for r in rows]


# --- Sessions ---

def insert_session(
    conn: sqlite3.Connection,
    session_id: str,
    user_id: str,
    subject_id: Optional[str],
    started_at: datetime,
    duration_minutes: float,
    focus_score: Optional[float] = None,
    study_method: Optional[str] = None,
    notes: str = "",
) -> None:
    conn.execute(
        """INSERT INTO study_sessions
        (id, user_id, subject_id, started_at, duration_minutes, focus_score,
         study_method, notes, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            session_id, user_id, subject_id, iso(started_at), duration_minutes,
            focus_score, study_method, notes, now_iso(),
        ),
    )
    conn.commit()


def fetch_sessions(
    conn: sqlite3.Connection,
    user_id: str,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    subject_id: Optional[str] = None,
) -> list[ActivityRecord]:
    """Sessions for a user in [since, until), oldest first."""
    query = "SELECT * FROM study_sessions WHERE user_id = ?"
    params: list = [user_id]
    if since is not None:
        query += " AND started_at >= ?"
        params.append(iso(since))
    if until is not None:
        query += " AND started_at < ?"
        params.append(iso(until))
    if subject_id:
        query += " AND subject_id = ?"
        params.append(subject_id)
    query += " ORDER BY started_at ASC, id ASC"
    return [_parse_session_row(r) for r in conn.execute(query, params).fetchall()]


def last_studied_by_subject(conn: sqlite3.Connection, user_id: str) -> dict[str, datetime]:
    """Most recent session start per subject."""
    rows = conn.execute(
        """SELECT subject_id, MAX(started_at) AS last_studied
        FROM study_sessions
        WHERE user_id = ? AND subject_id IS NOT NULL
        GROUP BY subject_id""",
        (user_id,),
    ).fetchall()
    return {r["subject_id"]: parse_dt(r["last_studied"]) for r in rows}


def count_sessions(conn: sqlite3.Connection, user_id: str) -> int:
    row = conn.execute(
        "SELECT COUNT(*) AS n FROM study_sessions WHERE user_id = ?", (user_id,)
    ).fetchone()
    return row["n"]


# --- Assessments ---

def insert_assessment(
    conn: sqlite3.Connection,
    assessment_id: str,
    user_id: str,
    subject_id: str,
    assessment_date: datetime,
    percentage: float,
    weaknesses: str = "",
) -> None:
    conn.execute(
        """INSERT INTO assessments
        (id, user_id, subject_id, assessment_date, percentage, weaknesses, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (
            assessment_id, user_id, subject_id, iso(assessment_date),
            percentage, weaknesses, now_iso(),
        ),
    )
    conn.commit()


def fetch_assessments(
    conn: sqlite3.Connection,
    user_id: str,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    subject_id: Optional[str] = None,
) -> list[AssessmentRecord]:
    """Assessments for a user in [since, until), oldest first."""
    query = "SELECT * FROM assessments WHERE user_id = ?"
    params: list = [user_id]
    if since is not None:
        query += " AND assessment_date >= ?"
        params.append(iso(since))
    if until is not None:
        query += " AND assessment_date < ?"
        params.append(iso(until))
    if subject_id:
        query += " AND subject_id = ?"
        params.append(subject_id)
    query += " ORDER BY assessment_date ASC, id ASC"
    return [_parse_assessment_row(r) for r in conn.execute(query, params).fetchall()]


def count_assessments(conn: sqlite3.Connection, user_id: str) -> int:
    row = conn.execute(
        "SELECT COUNT(*) AS n FROM assessments WHERE user_id = ?", (user_id,)
    ).fetchone()
    return row["n"]


# --- Goals ---

def insert_goal(
    conn: sqlite3.Connection,
    goal_id: str,
    user_id: str,
    goal_type: str,
    target_value: float,
    current_value: float = 0.0,
    subject_id: Optional[str] = None,
    target_date: Optional[date] = None,
    status: str = "active",
    on_track_status: str = "unknown",
    created_at: Optional[datetime] = None,
) -> None:
    conn.execute(
        """INSERT INTO goals
        (id, user_id, goal_type, subject_id, target_value, current_value,
         target_date, status, on_track_status, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            goal_id, user_id, goal_type, subject_id, target_value, current_value,
            target_date.isoformat() if target_date else None,
            status, on_track_status,
            iso(created_at) if created_at else now_iso(),
        ),
    )
    conn.commit()


def get_goal(conn: sqlite3.Connection, goal_id: str) -> Optional[GoalRecord]:
    row = conn.execute("SELECT * FROM goals WHERE id = ?", (goal_id,)).fetchone()
    return _parse_goal_row(row) if row else None


def list_goals(
    conn: sqlite3.Connection,
    user_id: str,
    statuses: tuple[str, ...] = ("active", "paused", "completed"),
) -> list[GoalRecord]:
    """Goals ordered behind > on_track > ahead > unknown, then by deadline."""
    placeholders = ", ".join("?" for _ in statuses)
    rows = conn.execute(
        f"""SELECT * FROM goals
        WHERE user_id = ? AND status IN ({placeholders})
        ORDER BY CASE on_track_status
            WHEN 'behind' THEN 0 WHEN 'on_track' THEN 1 WHEN 'ahead' THEN 2 ELSE 3 END,
            target_date IS NULL, target_date ASC, id ASC""",
        (user_id, *statuses),
    ).fetchall()
    return [_parse_goal_row(r) for r in rows]


# --- Review items ---

def insert_review_item(conn: sqlite3.Connection, item: ReviewItem, commit: bool = True) -> None:
    conn.execute(
        """INSERT INTO review_items
        (id, user_id, subject_id, topic_name, chapter_reference,
         initial_study_date, memory_strength, initial_confidence,
         difficulty_level, next_review_date, review_count, last_review_date,
         last_review_confidence, status, review_history, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            item.id, item.user_id, item.subject_id, item.topic_name,
            item.chapter_reference, iso(item.initial_study_date),
            item.memory_strength, item.initial_confidence, item.difficulty_level,
            iso(item.next_review_date), item.review_count,
            iso(item.last_review_date) if item.last_review_date else None,
            item.last_review_confidence, item.status.value,
            _dump_history(item), now_iso(),
        ),
    )
    if commit:
        conn.commit()


def update_review_item(conn: sqlite3.Connection, item: ReviewItem, commit: bool = True) -> None:
    """Write back every mutable column of an item."""
    conn.execute(
        """UPDATE review_items
        SET memory_strength = ?, next_review_date = ?, review_count = ?,
            last_review_date = ?, last_review_confidence = ?, status = ?,
            review_history = ?, updated_at = ?
        WHERE id = ?""",
        (
            item.memory_strength, iso(item.next_review_date), item.review_count,
            iso(item.last_review_date) if item.last_review_date else None,
            item.last_review_confidence, item.status.value,
            _dump_history(item), now_iso(), item.id,
        ),
    )
    if commit:
        conn.commit()


def _dump_history(item: ReviewItem) -> str:
    return json.dumps([event.model_dump(mode="json") for event in item.history])


def get_review_item(conn: sqlite3.Connection, item_id: str) -> Optional[ReviewItem]:
    row = conn.execute("SELECT * FROM review_items WHERE id = ?", (item_id,)).fetchone()
    return parse_review_item_row(row) if row else None


def list_review_items(
    conn: sqlite3.Connection,
    user_id: str,
    status: Optional[str] = "active",
    subject_id: Optional[str] = None,
) -> list[ReviewItem]:
    """Review items ordered by next review date."""
    query = "SELECT * FROM review_items WHERE user_id = ?"
    params: list = [user_id]
    if status:
        query += " AND status = ?"
        params.append(status)
    if subject_id:
        query += " AND subject_id = ?"
        params.append(subject_id)
    query += " ORDER BY next_review_date ASC, id ASC"
    return [parse_review_item_row(r) for r in conn.execute(query, params).fetchall()]


# --- Stats ---

def data_availability(conn: sqlite3.Connection, user_id: str) -> dict:
    """Row counts used to gate analyses."""
    subjects = conn.execute(
        "SELECT COUNT(*) AS n FROM subjects WHERE user_id = ? AND is_active = 1",
        (user_id,),
    ).fetchone()["n"]
    goals = conn.execute(
        "SELECT COUNT(*) AS n FROM goals WHERE user_id = ? AND status IN ('active', 'paused')",
        (user_id,),
    ).fetchone()["n"]
    return {
        "sessions": count_sessions(conn, user_id),
        "assessments": count_assessments(conn, user_id),
        "subjects": subjects,
        "goals": goals,
    }
