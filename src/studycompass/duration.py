"""Optimal session length from sessions linked to later assessments."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional, Sequence

import numpy as np

from .config import (
    DURATION_BUCKETS,
    DURATION_MIN_BUCKET_SESSIONS,
    DURATION_MIN_LINKED_SESSIONS,
    DURATION_SESSION_LIMIT,
    PROFILE_PERFORMANCE_LINK_DAYS,
)
from .db import StudyStore, fetch_assessments, fetch_sessions, list_active_subjects
from .models import ActivityRecord, AssessmentRecord, DurationAnalysis, DurationBucket

logger = logging.getLogger(__name__)

DEFAULT_DURATION_ADVICE = "Keep sessions between 45-60 minutes for optimal focus and retention."

# Fixed consistency score, averaged with the sample-share confidence
FIXED_CONSISTENCY_CONFIDENCE = 85.0


def linked_rows(
    sessions: Sequence[ActivityRecord],
    assessments: Sequence[AssessmentRecord],
    limit: int = DURATION_SESSION_LIMIT,
) -> list[tuple[float, float, float]]:
    """(duration, focus, performance) for every session/assessment pair.

    A pair links when the assessment is in the session's subject and dated
    between the session day and a week later. Newest sessions first.
    """
    rows = []
    for session in sorted(sessions, key=lambda s: s.started_at, reverse=True):
        if session.duration_minutes <= 0 or session.focus_score is None or not session.subject_id:
            continue
        start = session.started_at.date()
        end = start + timedelta(days=PROFILE_PERFORMANCE_LINK_DAYS)
        for assessment in assessments:
            if assessment.subject_id == session.subject_id and start <= assessment.assessment_date.date() <= end:
                rows.append((session.duration_minutes, session.focus_score, assessment.percentage))
    return rows[:limit]


def build_buckets(rows: Sequence[tuple[float, float, float]]) -> list[DurationBucket]:
    """Per-duration-bucket averages, efficiency, and marginal benefit."""
    grouped: dict[str, list[tuple[float, float, float]]] = {}
    for row in rows:
        for label, low, high in DURATION_BUCKETS:
            if low <= row[0] < high:
                grouped.setdefault(label, []).append(row)
                break

    buckets = []
    for label, low, high in DURATION_BUCKETS:
        members = grouped.get(label, [])
        bucket = DurationBucket(label=label, min_minutes=low, max_minutes=high)
        if members:
            data = np.asarray(members, dtype=float)
            avg_duration = float(data[:, 0].mean())
            bucket.session_count = len(members)
            bucket.avg_focus = float(data[:, 1].mean())
            bucket.avg_performance = float(data[:, 2].mean())
            bucket.efficiency = bucket.avg_performance / avg_duration if avg_duration > 0 else 0.0
        buckets.append(bucket)

    for previous, current in zip(buckets, buckets[1:]):
        if current.session_count and previous.session_count:
            gain = current.avg_performance - previous.avg_performance
            step = (current.min_minutes + current.max_minutes) / 2 - (previous.min_minutes + previous.max_minutes) / 2
            current.marginal_benefit = gain / step if step > 0 else 0.0
    return buckets


def _normalized(value: float, maximum: float) -> float:
    return value / maximum if maximum > 0 else 0.0


def _recommendation(optimal: DurationBucket, valid: Sequence[DurationBucket], minutes: int) -> str:
    longer = [b for b in valid if b.min_minutes > optimal.max_minutes]
    if any(b.avg_performance < optimal.avg_performance * 0.95 for b in longer):
        decline = optimal.avg_performance - longer[0].avg_performance
        return (
            f"Optimal session length is {minutes} minutes. "
            f"Longer sessions show {decline:.1f}% performance decline."
        )
    return (
        f"Your most effective session length is {minutes} minutes, showing "
        f"{optimal.avg_performance:.1f}% avg performance and {optimal.avg_focus:.1f}/10 focus."
    )


def _reasoning(optimal: DurationBucket, valid: Sequence[DurationBucket]) -> str:
    reasons = []
    avg_performance = float(np.mean([b.avg_performance for b in valid]))
    if avg_performance > 0 and optimal.avg_performance > avg_performance * 1.1:
        above = (optimal.avg_performance - avg_performance) / avg_performance * 100
        reasons.append(f"{above:.0f}% above average performance")
    avg_focus = float(np.mean([b.avg_focus for b in valid]))
    if optimal.avg_focus > avg_focus * 1.05:
        reasons.append("highest focus ratings")
    if optimal.efficiency >= max(b.efficiency for b in valid) * 0.9:
        reasons.append("best efficiency (results per minute)")
    reasons.append(f"based on {optimal.session_count} sessions")
    return ", ".join(reasons)


def optimal_duration(
    rows: Sequence[tuple[float, float, float]],
    subject_id: Optional[str] = None,
) -> Optional[DurationAnalysis]:
    """Pick the bucket with the best 40/30/30 performance, focus, efficiency blend.

    Returns None without enough linked sessions or comparable buckets.
    """
    if len(rows) < DURATION_MIN_LINKED_SESSIONS:
        return None
    buckets = build_buckets(rows)
    valid = [b for b in buckets if b.session_count >= DURATION_MIN_BUCKET_SESSIONS]
    if len(valid) < 2:
        return None

    max_performance = max(b.avg_performance for b in valid)
    max_focus = max(b.avg_focus for b in valid)
    max_efficiency = max(b.efficiency for b in valid)

    best, best_score = None, float("-inf")
    for bucket in valid:
        score = (
            _normalized(bucket.avg_performance, max_performance) * 0.4
            + _normalized(bucket.avg_focus, max_focus) * 0.3
            + _normalized(bucket.efficiency, max_efficiency) * 0.3
        )
        if bucket.marginal_benefit < 0:
            score *= 0.7
        if score > best_score:
            best, best_score = bucket, score

    total = sum(b.session_count for b in valid)
    sample_confidence = min(100.0, best.session_count / total * 100)
    minutes = round((best.min_minutes + best.max_minutes) / 2)
    return DurationAnalysis(
        subject_id=subject_id,
        optimal_minutes=minutes,
        optimal_range=(best.min_minutes, best.max_minutes),
        confidence=round((sample_confidence + FIXED_CONSISTENCY_CONFIDENCE) / 2),
        buckets=buckets,
        recommendation=_recommendation(best, valid, minutes),
        reasoning=_reasoning(best, valid),
    )


def analyze_optimal_duration(
    store: StudyStore,
    user_id: str,
    subject_id: Optional[str] = None,
) -> Optional[DurationAnalysis]:
    conn = store.connect()
    try:
        sessions = fetch_sessions(conn, user_id, subject_id=subject_id)
        assessments = fetch_assessments(conn, user_id, subject_id=subject_id)
    finally:
        conn.close()
    analysis = optimal_duration(linked_rows(sessions, assessments), subject_id)
    if analysis is None:
        logger.debug("Not enough linked sessions for duration analysis (%s, %s)", user_id, subject_id)
    return analysis


def duration_by_subject(store: StudyStore, user_id: str) -> dict[str, DurationAnalysis]:
    """Duration analysis for every active subject that has enough data."""
    conn = store.connect()
    try:
        subjects = list_active_subjects(conn, user_id)
    finally:
        conn.close()
    result = {}
    for subject in subjects:
        analysis = analyze_optimal_duration(store, user_id, subject.id)
        if analysis is not None:
            result[subject.id] = analysis
    return result


def quick_duration_recommendation(store: StudyStore, user_id: str, subject_id: Optional[str] = None) -> str:
    analysis = analyze_optimal_duration(store, user_id, subject_id)
    return analysis.recommendation if analysis else DEFAULT_DURATION_ADVICE
