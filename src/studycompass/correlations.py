"""Correlations between study behaviour and assessment results.

Each session is linked to every assessment in the same subject dated within
a week after it. Duration vs. score gets a Pearson r with a significance
test; time-of-day windows and study methods are compared by their average
linked score. Significant results can be stored as correlation patterns and
read back later.
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

import numpy as np

from .config import (
    CORRELATION_DURATION_LIMIT,
    CORRELATION_GROUP_CONFIDENCE,
    CORRELATION_GROUP_LIMIT,
    CORRELATION_METHOD_P_VALUE,
    CORRELATION_MIN_DURATION_PAIRS,
    CORRELATION_MIN_METHOD_SAMPLES,
    CORRELATION_MIN_WINDOW_SAMPLES,
    CORRELATION_PATTERN_DAYS,
    CORRELATION_PATTERN_LIMIT,
    CORRELATION_SIGNIFICANCE,
    CORRELATION_STRENGTH_CUTOFFS,
    CORRELATION_TIME_WINDOWS,
    CORRELATION_WINDOW_P_VALUE,
    PROFILE_PERFORMANCE_LINK_DAYS,
)
from .db import StudyStore, enum_or_default, fetch_assessments, fetch_sessions, iso, to_utc
from .models import (
    ActivityRecord,
    AssessmentRecord,
    CorrelationReport,
    CorrelationResult,
    CorrelationStrength,
)

logger = logging.getLogger(__name__)

# Neutral focus for sessions logged without a rating
_DEFAULT_FOCUS = 5.0


# --- Statistics ---

def pearson_correlation(pairs: Sequence[tuple[float, float]]) -> float:
    """Pearson r of (x, y) pairs. 0.0 with fewer than two pairs or no variance."""
    if len(pairs) < 2:
        return 0.0
    data = np.asarray(pairs, dtype=float)
    dx = data[:, 0] - data[:, 0].mean()
    dy = data[:, 1] - data[:, 1].mean()
    denominator = math.sqrt(float(np.sum(dx * dx)) * float(np.sum(dy * dy)))
    if denominator == 0:
        return 0.0
    return float(np.clip(np.sum(dx * dy) / denominator, -1.0, 1.0))


def p_value(coefficient: float, sample_size: int) -> float:
    """Two-sided p-value for r, using a normal approximation of the t statistic."""
    if sample_size < 3:
        return 1.0
    if abs(coefficient) >= 1.0:
        return 0.0
    df = sample_size - 2
    t = coefficient * math.sqrt(df / (1 - coefficient * coefficient))
    return max(0.0, min(1.0, math.erfc(abs(t) / math.sqrt(2))))


def classify_strength(coefficient: float) -> CorrelationStrength:
    magnitude = abs(coefficient)
    for cutoff, strength in CORRELATION_STRENGTH_CUTOFFS:
        if magnitude >= cutoff:
            return CorrelationStrength(strength)
    return CorrelationStrength.WEAK


def confidence_level(p: float) -> float:
    return (1 - p) * 100


# --- Linking ---

def linked_pairs(
    sessions: Sequence[ActivityRecord],
    assessments: Sequence[AssessmentRecord],
) -> list[tuple[ActivityRecord, float]]:
    """(session, score) for every assessment within a week after a session, newest first."""
    pairs = []
    for session in sorted(sessions, key=lambda s: (s.started_at, s.id), reverse=True):
        if not session.subject_id:
            continue
        start = session.started_at.date()
        end = start + timedelta(days=PROFILE_PERFORMANCE_LINK_DAYS)
        for assessment in assessments:
            if assessment.subject_id == session.subject_id and start <= assessment.assessment_date.date() <= end:
                pairs.append((session, assessment.percentage))
    return pairs


# --- Analyses over linked pairs ---

def _duration_recommendation(coefficient: float, durations: Sequence[float]) -> str:
    avg_duration = float(np.mean(durations))
    if coefficient > 0.5:
        return (
            "Longer study sessions correlate with better performance. Your optimal range "
            f"appears to be {round(avg_duration)}-{round(avg_duration * 1.2)} minutes."
        )
    if coefficient < -0.5:
        return (
            "Shorter, focused sessions work better for you. "
            f"Try keeping sessions under {round(avg_duration * 0.8)} minutes."
        )
    return "Study duration shows weak correlation with performance. Focus on quality over quantity."


def duration_performance(pairs: Sequence[tuple[ActivityRecord, float]]) -> Optional[CorrelationResult]:
    """Duration vs. score. None below the sample minimum or when not significant."""
    points = [(s.duration_minutes, score) for s, score in pairs if s.duration_minutes > 0]
    points = points[:CORRELATION_DURATION_LIMIT]
    if len(points) < CORRELATION_MIN_DURATION_PAIRS:
        return None

    coefficient = pearson_correlation(points)
    p = p_value(coefficient, len(points))
    if p > CORRELATION_SIGNIFICANCE:
        logger.debug("Duration correlation r=%.2f not significant (p=%.3f)", coefficient, p)
        return None

    strength = classify_strength(coefficient)
    direction = "positive" if coefficient > 0 else "negative"
    return CorrelationResult(
        variable_x="study_duration",
        coefficient=coefficient,
        p_value=p,
        sample_size=len(points),
        confidence_level=confidence_level(p),
        strength=strength,
        description=(
            f"Found {strength.value} {direction} correlation between study duration "
            f"and performance ({len(points)} sessions analyzed)"
        ),
        recommendation=_duration_recommendation(coefficient, [x for x, _ in points]),
    )


def _window_strength(avg: float) -> CorrelationStrength:
    if avg > 80:
        return CorrelationStrength.STRONG
    if avg > 70:
        return CorrelationStrength.MODERATE
    return CorrelationStrength.WEAK


def time_of_day_performance(pairs: Sequence[tuple[ActivityRecord, float]]) -> list[CorrelationResult]:
    """Average linked score per time-of-day window (UTC hours), in window order."""
    scores: dict[str, list[float]] = {name: [] for name, _ in CORRELATION_TIME_WINDOWS}
    for session, score in pairs[:CORRELATION_GROUP_LIMIT]:
        for name, hours in CORRELATION_TIME_WINDOWS:
            if session.started_at.hour in hours:
                scores[name].append(score)
                break

    results = []
    for name, _ in CORRELATION_TIME_WINDOWS:
        values = scores[name]
        if len(values) < CORRELATION_MIN_WINDOW_SAMPLES:
            continue
        avg = float(np.mean(values))
        label = name.replace("_", " ")
        results.append(CorrelationResult(
            variable_x=f"time_window_{name}",
            coefficient=avg / 100,
            p_value=CORRELATION_WINDOW_P_VALUE,
            sample_size=len(values),
            confidence_level=CORRELATION_GROUP_CONFIDENCE,
            strength=_window_strength(avg),
            description=f"{label} sessions show {avg:.1f}% average performance",
            recommendation=f"{'Prioritize' if avg > 80 else 'Consider'} studying during {label} hours",
        ))
    return results


def _method_strength(avg: float) -> CorrelationStrength:
    if avg > 85:
        return CorrelationStrength.VERY_STRONG
    if avg > 75:
        return CorrelationStrength.STRONG
    return CorrelationStrength.MODERATE


def study_method_performance(pairs: Sequence[tuple[ActivityRecord, float]]) -> list[CorrelationResult]:
    """Average linked score and focus per study method, best first."""
    method_pairs = [(s, score) for s, score in pairs if s.study_method is not None]
    groups: dict[str, list[tuple[float, float]]] = {}
    for session, score in method_pairs[:CORRELATION_GROUP_LIMIT]:
        focus = session.focus_score if session.focus_score is not None else _DEFAULT_FOCUS
        groups.setdefault(session.study_method.value, []).append((score, focus))

    results = []
    for method, values in groups.items():
        if len(values) < CORRELATION_MIN_METHOD_SAMPLES:
            continue
        data = np.asarray(values, dtype=float)
        avg, avg_focus = float(data[:, 0].mean()), float(data[:, 1].mean())
        effective = avg > 80
        results.append(CorrelationResult(
            variable_x=f"study_method_{method}",
            coefficient=avg / 100,
            p_value=CORRELATION_METHOD_P_VALUE,
            sample_size=len(values),
            confidence_level=CORRELATION_GROUP_CONFIDENCE,
            strength=_method_strength(avg),
            description=f"{method} method: {avg:.1f}% avg performance, {avg_focus:.1f}/10 focus",
            recommendation=(
                f"{'Highly effective' if effective else 'Moderately effective'} - "
                f"{method} shows {'excellent' if effective else 'good'} results"
            ),
        ))
    results.sort(key=lambda r: (-r.coefficient, r.variable_x))
    return results


# --- Store-backed ---

def _load_pairs(store: StudyStore, user_id: str, subject_id: Optional[str]) -> list[tuple[ActivityRecord, float]]:
    conn = store.connect()
    try:
        sessions = fetch_sessions(conn, user_id, subject_id=subject_id)
        assessments = fetch_assessments(conn, user_id, subject_id=subject_id)
    finally:
        conn.close()
    return linked_pairs(sessions, assessments)


def analyze_duration_performance(
    store: StudyStore, user_id: str, subject_id: Optional[str] = None,
) -> Optional[CorrelationResult]:
    return duration_performance(_load_pairs(store, user_id, subject_id))


def analyze_time_of_day_performance(
    store: StudyStore, user_id: str, subject_id: Optional[str] = None,
) -> list[CorrelationResult]:
    return time_of_day_performance(_load_pairs(store, user_id, subject_id))


def analyze_study_method_performance(
    store: StudyStore, user_id: str, subject_id: Optional[str] = None,
) -> list[CorrelationResult]:
    return study_method_performance(_load_pairs(store, user_id, subject_id))


def analyze_correlations(
    store: StudyStore, user_id: str, subject_id: Optional[str] = None,
) -> CorrelationReport:
    """All three analyses over one load of linked sessions."""
    pairs = _load_pairs(store, user_id, subject_id)
    report = CorrelationReport(
        duration=duration_performance(pairs),
        time_of_day=time_of_day_performance(pairs),
        study_methods=study_method_performance(pairs),
    )
    logger.debug(
        "Correlations for %s: %d linked pairs, duration=%s, %d windows, %d methods",
        user_id, len(pairs), report.duration is not None,
        len(report.time_of_day), len(report.study_methods),
    )
    return report


# --- Pattern storage ---

def store_correlation_pattern(
    store: StudyStore,
    user_id: str,
    result: CorrelationResult,
    subject_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """Store a pattern as active, deactivating the previous one for the same variables."""
    now = to_utc(now) if now is not None else datetime.now(timezone.utc)
    pattern_id = uuid.uuid4().hex[:12]
    conn = store.connect()
    try:
        conn.execute(
            """UPDATE correlation_patterns SET is_active = 0
            WHERE user_id = ? AND subject_id IS ? AND variable_x = ? AND variable_y = ?""",
            (user_id, subject_id, result.variable_x, result.variable_y),
        )
        conn.execute(
            """INSERT INTO correlation_patterns
            (id, user_id, subject_id, pattern_type, variable_x, variable_y,
             correlation_coefficient, p_value, sample_size, confidence_level,
             pattern_strength, pattern_description, recommendation_text,
             data_start_date, data_end_date, is_active, created_at)
            VALUES (?, ?, ?, 'correlation', ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?)""",
            (
                pattern_id, user_id, subject_id, result.variable_x, result.variable_y,
                result.coefficient, result.p_value, result.sample_size,
                result.confidence_level, result.strength.value,
                result.description, result.recommendation,
                (now - timedelta(days=CORRELATION_PATTERN_DAYS)).date().isoformat(),
                now.date().isoformat(), iso(now),
            ),
        )
        conn.commit()
    finally:
        conn.close()
    return pattern_id


def store_correlation_report(
    store: StudyStore,
    user_id: str,
    report: CorrelationReport,
    subject_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> int:
    results = ([report.duration] if report.duration else []) + report.time_of_day + report.study_methods
    for result in results:
        store_correlation_pattern(store, user_id, result, subject_id, now)
    if results:
        logger.info("Stored %d correlation patterns for %s", len(results), user_id)
    return len(results)


def _parse_pattern_row(row) -> CorrelationResult:
    return CorrelationResult(
        variable_x=row["variable_x"],
        variable_y=row["variable_y"],
        coefficient=max(-1.0, min(1.0, row["correlation_coefficient"])),
        p_value=max(0.0, min(1.0, row["p_value"])),
        sample_size=max(0, row["sample_size"]),
        confidence_level=max(0.0, min(100.0, row["confidence_level"])),
        strength=enum_or_default(
            CorrelationStrength, row["pattern_strength"], CorrelationStrength.WEAK,
            "correlation_patterns", row["id"], "pattern_strength",
        ),
        description=row["pattern_description"],
        recommendation=row["recommendation_text"],
    )


def active_correlation_patterns(
    store: StudyStore,
    user_id: str,
    subject_id: Optional[str] = None,
    limit: int = CORRELATION_PATTERN_LIMIT,
) -> list[CorrelationResult]:
    """Active patterns, most confident first. A subject filter also includes user-wide patterns."""
    query = """SELECT * FROM correlation_patterns
        WHERE user_id = ? AND pattern_type = 'correlation' AND is_active = 1"""
    params: list = [user_id]
    if subject_id:
        query += " AND (subject_id = ? OR subject_id IS NULL)"
        params.append(subject_id)
    query += " ORDER BY confidence_level DESC, sample_size DESC, created_at DESC, id ASC LIMIT ?"
    params.append(limit)
    conn = store.connect()
    try:
        rows = conn.execute(query, params).fetchall()
    finally:
        conn.close()
    return [_parse_pattern_row(r) for r in rows]
