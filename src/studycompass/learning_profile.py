"""Learning-preference profiling from study-method usage.

Each study method maps to one of four learning styles. Per method, usage
share, average focus, average duration, and the performance of assessments
taken in the week after the sessions are blended into a style score. Scores
are normalized to sum to 100.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

import numpy as np

from .config import (
    PROFILE_DURATION_WEIGHT,
    PROFILE_FOCUS_WEIGHT,
    PROFILE_FREQUENCY_WEIGHT,
    PROFILE_FULL_CONFIDENCE_SESSIONS,
    PROFILE_MIN_PATTERN_SESSIONS,
    PROFILE_MULTIMODAL_COUNT,
    PROFILE_MULTIMODAL_SCORE,
    PROFILE_PATTERN_SESSION_LIMIT,
    PROFILE_PERFORMANCE_BONUS,
    PROFILE_PERFORMANCE_LINK_DAYS,
    PROFILE_PREFERRED_SCORE,
)
from .db import StudyStore, fetch_assessments, fetch_sessions, now_iso, to_utc
from .models import (
    ActivityRecord,
    AssessmentRecord,
    ConcentrationPattern,
    DominantStyle,
    LearningProfile,
    LearningStyle,
    StudyMethod,
    TimeOfDay,
)

logger = logging.getLogger(__name__)

METHOD_STYLES: dict[StudyMethod, LearningStyle] = {
    StudyMethod.WATCHING_VIDEOS: LearningStyle.VISUAL,
    StudyMethod.DIAGRAMS: LearningStyle.VISUAL,
    StudyMethod.FLASHCARDS: LearningStyle.VISUAL,
    StudyMethod.MIND_MAPS: LearningStyle.VISUAL,
    StudyMethod.LECTURES: LearningStyle.AUDITORY,
    StudyMethod.DISCUSSIONS: LearningStyle.AUDITORY,
    StudyMethod.PODCASTS: LearningStyle.AUDITORY,
    StudyMethod.READING_ALOUD: LearningStyle.AUDITORY,
    StudyMethod.PRACTICE_PROBLEMS: LearningStyle.KINESTHETIC,
    StudyMethod.LAB_WORK: LearningStyle.KINESTHETIC,
    StudyMethod.EXPERIMENTS: LearningStyle.KINESTHETIC,
    StudyMethod.HANDS_ON: LearningStyle.KINESTHETIC,
    StudyMethod.READING: LearningStyle.READING_WRITING,
    StudyMethod.NOTE_TAKING: LearningStyle.READING_WRITING,
    StudyMethod.ESSAYS: LearningStyle.READING_WRITING,
    StudyMethod.SUMMARIES: LearningStyle.READING_WRITING,
}

_unmapped = set(StudyMethod) - set(METHOD_STYLES)
if _unmapped:
    raise RuntimeError(f"Study methods without a learning style: {sorted(m.value for m in _unmapped)}")

PREFERRED_METHODS = {
    LearningStyle.VISUAL: ["visual aids", "diagrams", "videos"],
    LearningStyle.AUDITORY: ["lectures", "discussions", "audio materials"],
    LearningStyle.KINESTHETIC: ["practice problems", "hands-on activities"],
    LearningStyle.READING_WRITING: ["reading", "note-taking", "writing summaries"],
}

STYLE_SUGGESTIONS = {
    LearningStyle.VISUAL: ("Visual Learning", [
        "Use color-coded notes and highlighting",
        "Create mind maps and concept diagrams",
        "Watch educational videos and animations",
        "Use flashcards with images",
        "Draw diagrams to explain concepts",
    ]),
    LearningStyle.AUDITORY: ("Auditory Learning", [
        "Listen to lectures and podcasts",
        "Discuss topics with study groups",
        "Read notes aloud",
        "Use mnemonic devices and rhymes",
        "Record and replay your explanations",
    ]),
    LearningStyle.KINESTHETIC: ("Kinesthetic Learning", [
        "Solve practice problems actively",
        "Create physical models or demonstrations",
        "Take breaks for movement",
        "Use hands-on experiments",
        "Study while walking or standing",
    ]),
    LearningStyle.READING_WRITING: ("Reading/Writing Learning", [
        "Take detailed written notes",
        "Rewrite notes in your own words",
        "Create written summaries",
        "Make lists and outlines",
        "Write practice essays",
    ]),
}

_PATTERN_DURATIONS = {
    ConcentrationPattern.SPRINT: 25,
    ConcentrationPattern.MARATHON: 90,
    ConcentrationPattern.STEADY: 45,
}

_PATTERN_ADVICE = {
    ConcentrationPattern.SPRINT: "Short, focused sessions (20-30 min) work best for you - use Pomodoro technique",
    ConcentrationPattern.MARATHON: "You thrive in longer sessions (60-90 min) - ensure proper breaks to sustain focus",
    ConcentrationPattern.STEADY: "Moderate sessions (45-60 min) align with your concentration pattern",
}


def _linked_scores(session: ActivityRecord, assessments: Sequence[AssessmentRecord]) -> list[float]:
    """Assessments in the same subject dated within the week after the session."""
    if not session.subject_id:
        return []
    start = session.started_at.date()
    end = start + timedelta(days=PROFILE_PERFORMANCE_LINK_DAYS)
    return [
        a.percentage for a in assessments
        if a.subject_id == session.subject_id and start <= a.assessment_date.date() <= end
    ]


def style_scores(
    sessions: Sequence[ActivityRecord],
    assessments: Sequence[AssessmentRecord],
) -> dict[LearningStyle, float]:
    """Normalized style scores; all zero when no session has a method."""
    scores = {style: 0.0 for style in LearningStyle}

    focused: dict[StudyMethod, list[ActivityRecord]] = {}
    linked: dict[StudyMethod, list[float]] = {}
    for session in sessions:
        if session.study_method is None:
            continue
        if session.focus_score is not None:
            focused.setdefault(session.study_method, []).append(session)
        linked.setdefault(session.study_method, []).extend(_linked_scores(session, assessments))

    total_sessions = sum(len(group) for group in focused.values())
    for method, group in focused.items():
        avg_focus = float(np.mean([s.focus_score for s in group]))
        avg_duration = float(np.mean([s.duration_minutes for s in group]))
        frequency = len(group) / total_sessions * PROFILE_FREQUENCY_WEIGHT
        focus = avg_focus / 10 * PROFILE_FOCUS_WEIGHT
        duration = min(avg_duration / 60 * PROFILE_DURATION_WEIGHT, PROFILE_DURATION_WEIGHT)
        scores[METHOD_STYLES[method]] += frequency + focus + duration

    for method, percentages in linked.items():
        if percentages:
            scores[METHOD_STYLES[method]] += float(np.mean(percentages)) / 100 * PROFILE_PERFORMANCE_BONUS

    total = sum(scores.values())
    if total > 0:
        scores = {style: value / total * 100 for style, value in scores.items()}
    return scores


def dominant_style(scores: dict[LearningStyle, float]) -> DominantStyle:
    """Highest-scoring style, or multimodal when several styles are strong."""
    strong = sum(1 for value in scores.values() if value > PROFILE_MULTIMODAL_SCORE)
    if strong >= PROFILE_MULTIMODAL_COUNT:
        return DominantStyle.MULTIMODAL
    best = LearningStyle.VISUAL
    for style in LearningStyle:
        if scores[style] > scores[best]:
            best = style
    return DominantStyle(best.value)


def concentration_pattern(sessions: Sequence[ActivityRecord]) -> tuple[ConcentrationPattern, int]:
    """Session-length pattern with the highest focus, and its optimal minutes."""
    focused = [s for s in sessions if s.focus_score is not None]
    if len(focused) < PROFILE_MIN_PATTERN_SESSIONS:
        return ConcentrationPattern.STEADY, _PATTERN_DURATIONS[ConcentrationPattern.STEADY]

    short = [s.focus_score for s in focused if s.duration_minutes <= 30]
    medium = [s.focus_score for s in focused if 30 < s.duration_minutes <= 60]
    long = [s.focus_score for s in focused if s.duration_minutes > 60]
    avg_short = sum(short) / (len(short) or 1)
    avg_medium = sum(medium) / (len(medium) or 1)
    avg_long = sum(long) / (len(long) or 1)

    if avg_short > avg_medium and avg_short > avg_long:
        pattern = ConcentrationPattern.SPRINT
    elif avg_long > avg_medium and len(long) >= PROFILE_MIN_PATTERN_SESSIONS:
        pattern = ConcentrationPattern.MARATHON
    else:
        pattern = ConcentrationPattern.STEADY
    return pattern, _PATTERN_DURATIONS[pattern]


def time_of_day(hour: int) -> TimeOfDay:
    if 6 <= hour < 12:
        return TimeOfDay.MORNING
    if 12 <= hour < 17:
        return TimeOfDay.AFTERNOON
    if 17 <= hour < 22:
        return TimeOfDay.EVENING
    return TimeOfDay.NIGHT


def best_time_of_day(sessions: Sequence[ActivityRecord]) -> TimeOfDay:
    """Time-of-day bucket with the highest average focus."""
    focused = [s for s in sessions if s.focus_score is not None]
    if len(focused) < PROFILE_MIN_PATTERN_SESSIONS:
        return TimeOfDay.MORNING

    buckets: dict[TimeOfDay, list[float]] = {t: [] for t in TimeOfDay}
    for session in focused:
        buckets[time_of_day(session.started_at.hour)].append(session.focus_score)

    best, best_avg = TimeOfDay.MORNING, 0.0
    for bucket, values in buckets.items():
        if values:
            avg = sum(values) / len(values)
            if avg > best_avg:
                best, best_avg = bucket, avg
    return best


def build_profile(
    user_id: str,
    sessions: Sequence[ActivityRecord],
    assessments: Sequence[AssessmentRecord],
    now: datetime,
) -> LearningProfile:
    """Profile from already-fetched sessions (oldest first) and assessments."""
    scores = style_scores(sessions, assessments)
    dominant = dominant_style(scores)
    # Most recent sessions drive the length pattern
    pattern, optimal_minutes = concentration_pattern(
        [s for s in sessions if s.focus_score is not None][-PROFILE_PATTERN_SESSION_LIMIT:]
    )
    best_time = best_time_of_day(sessions)

    preferred = []
    for style in LearningStyle:
        if scores[style] > PROFILE_PREFERRED_SCORE:
            preferred.extend(PREFERRED_METHODS[style])

    recommendations = []
    if dominant == DominantStyle.MULTIMODAL:
        recommendations.append(
            "You learn effectively through multiple modalities - continue using varied approaches"
        )
    else:
        recommendations.append(
            f"Focus on {dominant.value.replace('_', ' ')} learning methods for optimal retention"
        )
    recommendations.append(_PATTERN_ADVICE[pattern])
    recommendations.append(f"Schedule important study sessions in the {best_time.value} when your focus peaks")

    focused_count = sum(1 for s in sessions if s.focus_score is not None)
    return LearningProfile(
        id=uuid.uuid4().hex[:12],
        user_id=user_id,
        dominant_style=dominant,
        style_scores={style.value: value for style, value in scores.items()},
        preferred_methods=preferred,
        optimal_session_minutes=optimal_minutes,
        best_time_of_day=best_time,
        concentration_pattern=pattern,
        confidence=min(100.0, focused_count / PROFILE_FULL_CONFIDENCE_SESSIONS * 100),
        session_count=focused_count,
        last_updated=now,
        recommendations=recommendations,
    )


def generate_learning_profile(
    store: StudyStore,
    user_id: str,
    now: Optional[datetime] = None,
    persist: bool = True,
) -> LearningProfile:
    """Profile a user's whole session history."""
    now = to_utc(now) if now is not None else datetime.now(timezone.utc)
    conn = store.connect()
    try:
        sessions = fetch_sessions(conn, user_id, until=now + timedelta(seconds=1))
        assessments = fetch_assessments(conn, user_id)
    finally:
        conn.close()

    profile = build_profile(user_id, sessions, assessments, now)
    logger.info(
        "Learning profile for %s: %s (confidence %.0f%%)",
        user_id, profile.dominant_style.value, profile.confidence,
    )
    if persist:
        store_learning_profile(store, profile)
    return profile


def store_learning_profile(store: StudyStore, profile: LearningProfile) -> None:
    conn = store.connect()
    try:
        conn.execute(
            """INSERT OR REPLACE INTO learning_profiles (id, user_id, payload, updated_at)
            VALUES (?, ?, ?, ?)""",
            (profile.id, profile.user_id, profile.model_dump_json(), now_iso()),
        )
        conn.commit()
    finally:
        conn.close()


def get_learning_profile(store: StudyStore, user_id: str) -> Optional[LearningProfile]:
    """Most recently stored profile for a user."""
    conn = store.connect()
    try:
        row = conn.execute(
            """SELECT payload FROM learning_profiles
            WHERE user_id = ?
            ORDER BY updated_at DESC
            LIMIT 1""",
            (user_id,),
        ).fetchone()
    finally:
        conn.close()
    if not row:
        return None
    return LearningProfile(**json.loads(row["payload"]))


def method_recommendations(profile: LearningProfile) -> list[dict]:
    """Concrete techniques for every style scoring above the multimodal bar."""
    result = []
    for style in LearningStyle:
        if profile.style_scores.get(style.value, 0.0) > PROFILE_MULTIMODAL_SCORE:
            category, suggestions = STYLE_SUGGESTIONS[style]
            result.append({"category": category, "suggestions": list(suggestions)})
    return result
