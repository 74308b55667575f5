"""Burnout risk scoring from five independent indicators.

Each indicator scores one risk factor from recent sessions and assessments.
Missing or thin data scores 0 and is never an error. The total is the sum of
indicator scores, classified into a severity tier.
"""

from __future__ import annotations

import json
import logging
import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

import numpy as np

from .config import (
    BURNOUT_AVOIDANCE_DROP_PERCENT,
    BURNOUT_EMOTIONAL_PERCENT,
    BURNOUT_EXTREME_POINTS,
    BURNOUT_FOCUS_DECLINE_PERCENT,
    BURNOUT_HOURS_RISE_PERCENT,
    BURNOUT_INTERVENTION_SCORE,
    BURNOUT_LATE_NIGHT_MIN_COUNT,
    BURNOUT_MARATHON_MINUTES,
    BURNOUT_MAX_SCORES,
    BURNOUT_NEGATIVE_KEYWORDS,
    BURNOUT_NOTES_LIMIT,
    BURNOUT_PERFORMANCE_DROP_PERCENT,
    BURNOUT_SEVERITY_CUTOFFS,
    BURNOUT_WEEKLY_HOURS_LIMIT,
)
from .db import StudyStore, fetch_assessments, fetch_sessions, iso, parse_dt, to_utc
from .models import (
    ActivityRecord,
    AssessmentRecord,
    BurnoutAssessment,
    BurnoutCategory,
    BurnoutIndicator,
    BurnoutSeverity,
)

logger = logging.getLogger(__name__)

_CATEGORY_ADVICE = {
    BurnoutCategory.FOCUS: [
        "Shorten session duration to 30-40 minutes with mandatory breaks",
        "Try changing study environment or time of day",
    ],
    BurnoutCategory.PERFORMANCE: [
        "Quality over quantity: Focus on shorter, more effective sessions",
        "Review your study methods - current approach isn't working",
    ],
    BurnoutCategory.AVOIDANCE: [
        "Start with just 15-minute sessions to rebuild study habit",
        "Focus on your favorite/easiest subject first",
    ],
    BurnoutCategory.EMOTIONAL: [
        "Practice self-compassion - academic struggles are normal",
        "Consider talking to a counselor or trusted friend",
    ],
    BurnoutCategory.EXTREME_BEHAVIOR: [
        "Stop studying after 9 PM - sleep is critical for retention",
        "Limit individual sessions to maximum 90 minutes",
    ],
}

_WELLNESS_ADVICE = [
    "Prioritize 7-8 hours of sleep",
    "Include physical activity or walks between study sessions",
    "Connect with friends - social support prevents burnout",
]


def _round(value: float) -> int:
    """Round half up to a whole point."""
    return int(math.floor(value + 0.5))


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _window(records, when, start: datetime, end: datetime) -> list:
    return [r for r in records if start <= when(r) < end]


def _indicator(
    name: str,
    category: BurnoutCategory,
    score: float = 0,
    severity: str = "low",
    description: str = "",
    detected: bool = False,
) -> BurnoutIndicator:
    return BurnoutIndicator(
        name=name,
        category=category,
        score=score,
        max_score=BURNOUT_MAX_SCORES[category.value],
        severity=severity,
        description=description,
        detected=detected,
    )


# --- Indicators ---

def focus_decline(sessions: Sequence[ActivityRecord], now: datetime) -> BurnoutIndicator:
    """Average focus over the last 14 days vs. days 30-60 ago."""
    name, category = "Focus Rating Decline", BurnoutCategory.FOCUS
    baseline = [
        s.focus_score for s in _window(
            sessions, lambda s: s.started_at, now - timedelta(days=60), now - timedelta(days=30),
        ) if s.focus_score is not None
    ]
    recent = [
        s.focus_score for s in _window(
            sessions, lambda s: s.started_at, now - timedelta(days=14), now + timedelta(seconds=1),
        ) if s.focus_score is not None
    ]
    if not baseline or not recent:
        return _indicator(name, category, description="Insufficient data to assess focus trends")

    baseline_avg = float(np.mean(baseline))
    recent_avg = float(np.mean(recent))
    if baseline_avg == 0 or recent_avg == 0:
        return _indicator(name, category, description="Baseline focus data insufficient")

    decline = (baseline_avg - recent_avg) / baseline_avg * 100
    score = _clamp(decline * 1.2, 0, BURNOUT_MAX_SCORES["focus"])
    detected = decline > BURNOUT_FOCUS_DECLINE_PERCENT
    severity = "high" if decline > 25 else "medium" if detected else "low"
    if detected:
        description = (
            f"Focus ratings declined {decline:.1f}% from baseline "
            f"{baseline_avg:.1f} to {recent_avg:.1f}"
        )
    else:
        description = f"Focus ratings stable at {recent_avg:.1f}/10"
    return _indicator(name, category, _round(score), severity, description, detected)


def performance_effort_mismatch(
    sessions: Sequence[ActivityRecord],
    assessments: Sequence[AssessmentRecord],
    now: datetime,
) -> BurnoutIndicator:
    """Hours going up while performance goes down, last 14 vs. prior 14 days."""
    name, category = "Performance-Effort Mismatch", BurnoutCategory.PERFORMANCE
    end = now + timedelta(seconds=1)
    split = now - timedelta(days=14)
    start = now - timedelta(days=28)

    recent_hours = sum(s.duration_minutes for s in _window(sessions, lambda s: s.started_at, split, end)) / 60
    previous_hours = sum(s.duration_minutes for s in _window(sessions, lambda s: s.started_at, start, split)) / 60
    recent_scores = [a.percentage for a in _window(assessments, lambda a: a.assessment_date, split, end)]
    previous_scores = [a.percentage for a in _window(assessments, lambda a: a.assessment_date, start, split)]
    recent_perf = float(np.mean(recent_scores)) if recent_scores else 0.0
    previous_perf = float(np.mean(previous_scores)) if previous_scores else 0.0

    if previous_hours == 0 or previous_perf == 0:
        return _indicator(
            name, category,
            description="Insufficient data to assess effort-performance relationship",
        )

    hours_change = (recent_hours - previous_hours) / previous_hours * 100
    perf_change = (recent_perf - previous_perf) / previous_perf * 100
    mismatch = hours_change > BURNOUT_HOURS_RISE_PERCENT and perf_change < BURNOUT_PERFORMANCE_DROP_PERCENT
    score = _clamp(abs(perf_change) + hours_change / 2, 0, BURNOUT_MAX_SCORES["performance"]) if mismatch else 0
    severity = "high" if score > 20 else "medium" if score > 10 else "low"
    if mismatch:
        description = (
            f"Study hours increased {hours_change:.0f}% but performance "
            f"declined {abs(perf_change):.1f}%"
        )
    else:
        description = "Effort and performance are aligned"
    return _indicator(name, category, _round(score), severity, description, mismatch)


def avoidance_behavior(sessions: Sequence[ActivityRecord], now: datetime) -> BurnoutIndicator:
    """Drop in session count, last 7 days vs. the 7 days before."""
    name, category = "Avoidance Behavior", BurnoutCategory.AVOIDANCE
    split = now - timedelta(days=7)
    recent = len(_window(sessions, lambda s: s.started_at, split, now + timedelta(seconds=1)))
    previous = len(_window(sessions, lambda s: s.started_at, now - timedelta(days=14), split))
    if previous == 0:
        return _indicator(name, category, description="Insufficient session history")

    drop = (previous - recent) / previous * 100
    return avoidance_from_drop(drop, previous, recent)


def avoidance_from_drop(drop_percent: float, previous: int, recent: int) -> BurnoutIndicator:
    """Score a session-frequency drop percentage."""
    detected = drop_percent > BURNOUT_AVOIDANCE_DROP_PERCENT
    score = _clamp(drop_percent / 2, 0, BURNOUT_MAX_SCORES["avoidance"])
    severity = "high" if drop_percent > 60 else "medium" if detected else "low"
    if detected:
        description = (
            f"Session frequency dropped {drop_percent:.0f}% "
            f"({previous} → {recent} sessions/week)"
        )
    else:
        description = f"Session frequency stable at {recent} sessions/week"
    return _indicator(
        "Avoidance Behavior", BurnoutCategory.AVOIDANCE,
        _round(score), severity, description, detected,
    )


def emotional_indicators(sessions: Sequence[ActivityRecord], now: datetime) -> BurnoutIndicator:
    """Share of recent session notes containing negative-sentiment keywords."""
    name, category = "Emotional Indicators", BurnoutCategory.EMOTIONAL
    noted = [
        s for s in _window(sessions, lambda s: s.started_at, now - timedelta(days=14), now + timedelta(seconds=1))
        if s.notes.strip()
    ]
    noted = noted[-BURNOUT_NOTES_LIMIT:]
    negative = sum(
        1 for s in noted
        if any(keyword in s.notes.lower() for keyword in BURNOUT_NEGATIVE_KEYWORDS)
    )
    percent = negative / len(noted) * 100 if noted else 0.0

    detected = percent > BURNOUT_EMOTIONAL_PERCENT
    score = _clamp(percent / 2, 0, BURNOUT_MAX_SCORES["emotional"])
    severity = "high" if percent > 50 else "medium" if detected else "low"
    if detected:
        description = f"{percent:.0f}% of recent sessions contain negative emotional indicators"
    else:
        description = "No significant emotional distress detected"
    return _indicator(name, category, _round(score), severity, description, detected)


def extreme_behaviors(sessions: Sequence[ActivityRecord], now: datetime) -> BurnoutIndicator:
    """Marathon sessions, repeated late nights, and an unsustainable weekly pace."""
    name, category = "Extreme Behaviors", BurnoutCategory.EXTREME_BEHAVIOR
    recent = _window(sessions, lambda s: s.started_at, now - timedelta(days=7), now + timedelta(seconds=1))
    if not recent:
        return _indicator(name, category, description="No recent sessions to analyze")

    marathons = sum(1 for s in recent if s.duration_minutes > BURNOUT_MARATHON_MINUTES)
    late_nights = sum(1 for s in recent if s.started_at.hour >= 23 or s.started_at.hour <= 4)
    weekly_hours = sum(s.duration_minutes for s in recent) / 60

    issues = []
    score = 0
    if marathons > 0:
        issues.append(f"{marathons} sessions over 3 hours")
        score += BURNOUT_EXTREME_POINTS
    if late_nights >= BURNOUT_LATE_NIGHT_MIN_COUNT:
        issues.append(f"{late_nights} late-night sessions (11PM-4AM)")
        score += BURNOUT_EXTREME_POINTS
    if weekly_hours > BURNOUT_WEEKLY_HOURS_LIMIT:
        issues.append(f"unsustainable pace ({weekly_hours:.0f} hours/week)")
        score += BURNOUT_EXTREME_POINTS
    score = min(score, BURNOUT_MAX_SCORES["extreme_behavior"])

    detected = score > 0
    severity = "high" if score >= 7 else "medium" if score >= 4 else "low"
    description = "; ".join(issues) if detected else "No extreme study patterns detected"
    return _indicator(name, category, score, severity, description, detected)


# --- Aggregation ---

def classify_severity(total_score: float) -> BurnoutSeverity:
    for cutoff, name in BURNOUT_SEVERITY_CUTOFFS:
        if total_score >= cutoff:
            return BurnoutSeverity(name)
    return BurnoutSeverity.NONE


def burnout_recommendations(
    indicators: Sequence[BurnoutIndicator],
    severity: BurnoutSeverity,
) -> list[str]:
    """Severity-tier advice, then per-indicator advice, then general wellness."""
    recommendations = []
    if severity in (BurnoutSeverity.CRITICAL, BurnoutSeverity.HIGH):
        recommendations.append("URGENT: Take 2-3 complete rest days immediately")
        recommendations.append("Consider reducing your course load or seeking academic counseling")
    if severity in (BurnoutSeverity.MODERATE, BurnoutSeverity.HIGH):
        recommendations.append("Reduce daily study hours by 40% for the next week")
        recommendations.append("Schedule at least one full rest day this week")

    for indicator in indicators:
        if indicator.detected:
            recommendations.extend(_CATEGORY_ADVICE[indicator.category])

    if recommendations:
        recommendations.extend(_WELLNESS_ADVICE)
    return list(dict.fromkeys(recommendations))


def combine_indicators(
    user_id: str,
    indicators: list[BurnoutIndicator],
    assessed_at: datetime,
) -> BurnoutAssessment:
    total = _clamp(sum(i.score for i in indicators), 0, 100)
    severity = classify_severity(total)
    return BurnoutAssessment(
        user_id=user_id,
        assessment_date=assessed_at,
        total_score=total,
        severity=severity,
        indicators=indicators,
        recommendations=burnout_recommendations(indicators, severity),
        needs_intervention=total >= BURNOUT_INTERVENTION_SCORE,
    )


def assess_burnout_risk(
    store: StudyStore,
    user_id: str,
    now: Optional[datetime] = None,
    persist: bool = True,
) -> BurnoutAssessment:
    """Score all five indicators from the last 60 days of activity."""
    now = to_utc(now) if now is not None else datetime.now(timezone.utc)
    since = now - timedelta(days=60)

    conn = store.connect()
    try:
        sessions = fetch_sessions(conn, user_id, since=since)
        assessments = fetch_assessments(conn, user_id, since=since)
    finally:
        conn.close()

    indicators = [
        focus_decline(sessions, now),
        performance_effort_mismatch(sessions, assessments, now),
        avoidance_behavior(sessions, now),
        emotional_indicators(sessions, now),
        extreme_behaviors(sessions, now),
    ]
    assessment = combine_indicators(user_id, indicators, now)
    logger.info(
        "Burnout assessment for %s: %.0f (%s)",
        user_id, assessment.total_score, assessment.severity.value,
    )
    if persist:
        store_assessment(store, assessment)
    return assessment


# --- Persistence ---

def store_assessment(store: StudyStore, assessment: BurnoutAssessment) -> str:
    """Save a point-in-time snapshot. Returns the snapshot id."""
    scores = {i.category: i.score for i in assessment.indicators}
    snapshot_id = uuid.uuid4().hex[:12]
    conn = store.connect()
    try:
        conn.execute(
            """INSERT INTO burnout_assessments
            (id, user_id, assessment_date, focus_decline_score,
             performance_effort_mismatch_score, avoidance_behavior_score,
             emotional_indicator_score, extreme_behavior_score, total_score,
             severity, indicators, recommendations)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                snapshot_id, assessment.user_id, iso(assessment.assessment_date),
                scores.get(BurnoutCategory.FOCUS, 0),
                scores.get(BurnoutCategory.PERFORMANCE, 0),
                scores.get(BurnoutCategory.AVOIDANCE, 0),
                scores.get(BurnoutCategory.EMOTIONAL, 0),
                scores.get(BurnoutCategory.EXTREME_BEHAVIOR, 0),
                assessment.total_score, assessment.severity.value,
                json.dumps([i.model_dump(mode="json") for i in assessment.indicators]),
                json.dumps(assessment.recommendations),
            ),
        )
        conn.commit()
    finally:
        conn.close()
    return snapshot_id


def burnout_history(
    store: StudyStore,
    user_id: str,
    days: int = 30,
    now: Optional[datetime] = None,
) -> list[BurnoutAssessment]:
    """Stored assessments from the last `days` days, newest first."""
    now = to_utc(now) if now is not None else datetime.now(timezone.utc)
    conn = store.connect()
    try:
        rows = conn.execute(
            """SELECT * FROM burnout_assessments
            WHERE user_id = ? AND assessment_date >= ?
            ORDER BY assessment_date DESC""",
            (user_id, iso(now - timedelta(days=days))),
        ).fetchall()
    finally:
        conn.close()

    return [
        BurnoutAssessment(
            user_id=row["user_id"],
            assessment_date=parse_dt(row["assessment_date"]),
            total_score=row["total_score"],
            severity=row["severity"],
            indicators=[BurnoutIndicator(**i) for i in json.loads(row["indicators"])],
            recommendations=json.loads(row["recommendations"]),
            needs_intervention=row["total_score"] >= BURNOUT_INTERVENTION_SCORE,
        )
        for row in rows
    ]
