"""Record-store entry points: subjects, sessions, assessments, and goals."""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from typing import Optional

from .db import (
    StudyStore,
    get_goal,
    get_subject,
    insert_assessment,
    insert_goal,
    insert_session,
    insert_subject,
    list_active_subjects,
    list_goals,
    fetch_sessions,
    to_utc,
)
from .models import (
    ActivityRecord,
    AssessmentCreate,
    AssessmentRecord,
    GoalCreate,
    GoalRecord,
    SessionCreate,
    SubjectCreate,
    SubjectProfile,
)

logger = logging.getLogger(__name__)


def _generate_id() -> str:
    return uuid.uuid4().hex[:12]


def add_subject(
    store: StudyStore,
    user_id: str,
    name: str,
    difficulty: str = "medium",
    priority: str = "medium",
    next_exam_date: Optional[date] = None,
    target_performance: float = 85.0,
    current_performance: Optional[float] = None,
) -> SubjectProfile:
    """Create a subject. Raises ValueError on invalid fields."""
    data = SubjectCreate(
        name=name,
        difficulty=difficulty,
        priority=priority,
        next_exam_date=next_exam_date,
        target_performance=target_performance,
        current_performance=current_performance,
    )
    subject_id = _generate_id()
    conn = store.connect()
    try:
        insert_subject(
            conn, subject_id, user_id, data.name,
            data.difficulty.value, data.priority.value, data.next_exam_date,
            data.target_performance, data.current_performance,
        )
        logger.info("Added subject %s (%s) for %s", subject_id, data.name, user_id)
        return get_subject(conn, subject_id)
    finally:
        conn.close()


def get_subjects(store: StudyStore, user_id: str) -> list[SubjectProfile]:
    conn = store.connect()
    try:
        return list_active_subjects(conn, user_id)
    finally:
        conn.close()


def log_session(
    store: StudyStore,
    user_id: str,
    started_at: datetime,
    duration_minutes: float,
    subject_id: Optional[str] = None,
    focus_score: Optional[float] = None,
    study_method: Optional[str] = None,
    notes: str = "",
) -> ActivityRecord:
    """Record one study session. Raises ValueError on invalid fields."""
    data = SessionCreate(
        subject_id=subject_id,
        started_at=started_at,
        duration_minutes=duration_minutes,
        focus_score=focus_score,
        study_method=study_method,
        notes=notes,
    )
    session_id = _generate_id()
    conn = store.connect()
    try:
        insert_session(
            conn, session_id, user_id, data.subject_id, data.started_at,
            data.duration_minutes, data.focus_score,
            data.study_method.value if data.study_method else None,
            data.notes,
        )
    finally:
        conn.close()
    return ActivityRecord(
        id=session_id,
        user_id=user_id,
        subject_id=data.subject_id,
        started_at=to_utc(data.started_at),
        duration_minutes=data.duration_minutes,
        focus_score=data.focus_score,
        study_method=data.study_method,
        notes=data.notes,
    )


def get_sessions(
    store: StudyStore,
    user_id: str,
    since: Optional[datetime] = None,
    subject_id: Optional[str] = None,
) -> list[ActivityRecord]:
    conn = store.connect()
    try:
        return fetch_sessions(conn, user_id, since=since, subject_id=subject_id)
    finally:
        conn.close()


def log_assessment(
    store: StudyStore,
    user_id: str,
    subject_id: str,
    assessment_date: datetime,
    percentage: float,
    weaknesses: str = "",
) -> AssessmentRecord:
    """Record a graded assessment. Raises ValueError on invalid fields."""
    data = AssessmentCreate(
        subject_id=subject_id,
        assessment_date=assessment_date,
        percentage=percentage,
        weaknesses=weaknesses,
    )
    assessment_id = _generate_id()
    conn = store.connect()
    try:
        insert_assessment(
            conn, assessment_id, user_id, data.subject_id,
            data.assessment_date, data.percentage, data.weaknesses,
        )
    finally:
        conn.close()
    return AssessmentRecord(
        id=assessment_id,
        user_id=user_id,
        subject_id=data.subject_id,
        assessment_date=to_utc(data.assessment_date),
        percentage=data.percentage,
        weaknesses=data.weaknesses,
    )


def add_goal(
    store: StudyStore,
    user_id: str,
    goal_type: str,
    target_value: float,
    current_value: float = 0.0,
    subject_id: Optional[str] = None,
    target_date: Optional[date] = None,
    status: str = "active",
    on_track_status: str = "unknown",
    created_at: Optional[datetime] = None,
) -> GoalRecord:
    """Create a goal. Raises ValueError on invalid fields."""
    data = GoalCreate(
        goal_type=goal_type,
        subject_id=subject_id,
        target_value=target_value,
        current_value=current_value,
        target_date=target_date,
        status=status,
        on_track_status=on_track_status,
    )
    goal_id = _generate_id()
    conn = store.connect()
    try:
        insert_goal(
            conn, goal_id, user_id, data.goal_type, data.target_value,
            data.current_value, data.subject_id, data.target_date,
            data.status.value, data.on_track_status.value, created_at,
        )
        return get_goal(conn, goal_id)
    finally:
        conn.close()


def get_goals(store: StudyStore, user_id: str) -> list[GoalRecord]:
    conn = store.connect()
    try:
        return list_goals(conn, user_id)
    finally:
        conn.close()
