"""MCP server entry point - all tools for StudyCompass."""

from __future__ import annotations

import json
import logging
import sys
from datetime import date, datetime
from typing import Optional

from fastmcp import FastMCP

from . import config
from .db import StudyStore, default_store
from .preferences import get_preferences

config.init()

# Configure logging to stderr (stdout is reserved for MCP JSON-RPC)
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger("studycompass")

# Initialize data directory and database
store = default_store()

# Create the MCP server
mcp = FastMCP(
    "StudyCompass",
    instructions=(
        "StudyCompass analyzes a learner's study history. "
        "Use these tools to log sessions and assessments, schedule spaced reviews, "
        "check burnout risk and trends, plan weekly study time, and get ranked recommendations."
    ),
)


def _store() -> StudyStore:
    return store


def _user(user_id: Optional[str]) -> str:
    """Explicit id, else the preferred default user, else the configured one."""
    return user_id or get_preferences().default_user or config.DEFAULT_USER_ID


def _dump(value) -> object:
    if value is None:
        return None
    if isinstance(value, list):
        return [_dump(v) for v in value]
    return value.model_dump(mode="json")


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


# =============================================================================
# Record Tools (4)
# =============================================================================

@mcp.tool()
def subject_add(
    name: str,
    difficulty: str = "medium",
    priority: str = "medium",
    next_exam_date: str | None = None,
    target_performance: float | None = None,
    current_performance: float | None = None,
    user_id: str | None = None,
) -> str:
    """Add a subject to study.

    Difficulty: easy, medium, hard, very_hard. Priority: low, medium, high.
    Dates are YYYY-MM-DD. Target performance defaults to the preference.
    """
    from .records import add_subject

    try:
        if target_performance is None:
            target_performance = get_preferences().target_performance
        subject = add_subject(
            _store(), _user(user_id), name, difficulty, priority,
            _parse_date(next_exam_date), target_performance, current_performance,
        )
        return json.dumps({"status": "created", "subject": _dump(subject)})
    except Exception as e:
        logger.error("subject_add failed: %s", e, exc_info=True)
        return json.dumps({"error": str(e)})


@mcp.tool()
def session_log(
    duration_minutes: float,
    subject_id: str | None = None,
    focus_score: float | None = None,
    study_method: str | None = None,
    notes: str = "",
    started_at: str | None = None,
    user_id: str | None = None,
) -> str:
    """Log a completed study session. started_at is ISO 8601; defaults to now.

    Focus score is 0-10. Study methods include flashcards, practice_problems,
    lectures, reading, note_taking, diagrams and more.
    """
    from .records import log_session

    try:
        session = log_session(
            _store(), _user(user_id),
            _parse_datetime(started_at) or datetime.now().astimezone(),
            duration_minutes, subject_id, focus_score, study_method, notes,
        )
        return json.dumps({"status": "logged", "session": _dump(session)})
    except Exception as e:
        logger.error("session_log failed: %s", e, exc_info=True)
        return json.dumps({"error": str(e)})


@mcp.tool()
def assessment_log(
    subject_id: str,
    percentage: float,
    weaknesses: str = "",
    assessment_date: str | None = None,
    user_id: str | None = None,
) -> str:
    """Log a graded assessment (0-100%) for a subject."""
    from .records import log_assessment

    try:
        assessment = log_assessment(
            _store(), _user(user_id), subject_id,
            _parse_datetime(assessment_date) or datetime.now().astimezone(),
            percentage, weaknesses,
        )
        return json.dumps({"status": "logged", "assessment": _dump(assessment)})
    except Exception as e:
        logger.error("assessment_log failed: %s", e, exc_info=True)
        return json.dumps({"error": str(e)})


@mcp.tool()
def goal_add(
    goal_type: str,
    target_value: float,
    current_value: float = 0.0,
    subject_id: str | None = None,
    target_date: str | None = None,
    on_track_status: str = "unknown",
    user_id: str | None = None,
) -> str:
    """Add a study goal (e.g. study_hours, session_count, performance).

    On-track status: behind, on_track, ahead, unknown.
    """
    from .records import add_goal

    try:
        goal = add_goal(
            _store(), _user(user_id), goal_type, target_value, current_value,
            subject_id, _parse_date(target_date), on_track_status=on_track_status,
        )
        return json.dumps({"status": "created", "goal": _dump(goal)})
    except Exception as e:
        logger.error("goal_add failed: %s", e, exc_info=True)
        return json.dumps({"error": str(e)})


# =============================================================================
# Spaced Review Tools (3)
# =============================================================================

@mcp.tool()
def review_schedule_topic(
    subject_id: str,
    topic: str,
    confidence: int,
    difficulty: int = 3,
    chapter_reference: str = "",
    user_id: str | None = None,
) -> str:
    """Start tracking a topic for spaced review.

    Confidence is 1-10 after the first study; difficulty is 1-5.
    """
    from .spaced_repetition import schedule_review

    try:
        item = schedule_review(
            _store(), _user(user_id), subject_id, topic, confidence,
            difficulty, chapter_reference,
        )
        return json.dumps({"status": "scheduled", "item": _dump(item)})
    except Exception as e:
        logger.error("review_schedule_topic failed: %s", e, exc_info=True)
        return json.dumps({"error": str(e)})


@mcp.tool()
def review_record(
    item_id: str,
    confidence: int,
    result: str,
    time_spent_minutes: float = 0.0,
) -> str:
    """Record a review of a tracked topic. Result: easy, good, hard, forgot."""
    from .spaced_repetition import record_review

    try:
        item = record_review(_store(), item_id, confidence, time_spent_minutes, result)
        return json.dumps({"status": "recorded", "item": _dump(item)})
    except Exception as e:
        logger.error("review_record failed: %s", e, exc_info=True)
        return json.dumps({"error": str(e)})


@mcp.tool()
def review_due(
    subject_id: str | None = None,
    days: int = 0,
    user_id: str | None = None,
) -> str:
    """Topics due for review now, or the schedule for the next `days` days."""
    from .spaced_repetition import items_due_for_review, review_schedule, topics_at_risk

    try:
        store, user = _store(), _user(user_id)
        if days > 0:
            schedule = review_schedule(store, user, days)
            return json.dumps({
                "days": days,
                "schedule": {day: _dump(items) for day, items in schedule.items()},
            })
        due = items_due_for_review(store, user, subject_id)
        at_risk = topics_at_risk(store, user, get_preferences().retention_threshold)
        return json.dumps({
            "due_count": len(due),
            "due": _dump(due),
            "at_risk": _dump(at_risk),
        })
    except Exception as e:
        logger.error("review_due failed: %s", e, exc_info=True)
        return json.dumps({"error": str(e)})


# =============================================================================
# Analysis Tools (7)
# =============================================================================

@mcp.tool()
def burnout_assess(user_id: str | None = None) -> str:
    """Score burnout risk from the last 60 days and store the assessment."""
    from .burnout import assess_burnout_risk

    try:
        assessment = assess_burnout_risk(_store(), _user(user_id))
        return json.dumps(_dump(assessment))
    except Exception as e:
        logger.error("burnout_assess failed: %s", e, exc_info=True)
        return json.dumps({"error": str(e)})


@mcp.tool()
def trend_analyze(metric: str = "", user_id: str | None = None) -> str:
    """Trend for focus_rating, performance_score or study_hours.

    With no metric, returns the full report: all trends, the weekly focus
    pattern, and study-hour anomalies.
    """
    from .trends import analyze_trend, time_series_report

    try:
        store, user = _store(), _user(user_id)
        if metric:
            result = analyze_trend(store, user, metric)
            if result is None:
                return json.dumps({"metric": metric, "status": "insufficient_data"})
            return json.dumps(_dump(result))
        return json.dumps(_dump(time_series_report(store, user)))
    except Exception as e:
        logger.error("trend_analyze failed: %s", e, exc_info=True)
        return json.dumps({"error": str(e)})


@mcp.tool()
def allocation_plan(available_weekly_hours: float | None = None, user_id: str | None = None) -> str:
    """Weekly study-hour plan across active subjects, weighted by need."""
    from .allocation import generate_allocation_plan
    try:
        hours = available_weekly_hours
        if hours is None:
            hours = get_preferences().available_weekly_hours
        plan = generate_allocation_plan(_store(), _user(user_id), hours)
        return json.dumps(_dump(plan))
    except Exception as e:
        logger.error("allocation_plan failed: %s", e, exc_info=True)
        return json.dumps({"error": str(e)})


@mcp.tool()
def learning_profile(
    subject_id: str | None = None,
    refresh: bool = True,
    user_id: str | None = None,
) -> str:
    """Learning-style profile, plus optimal session length when subject_id is given.

    With refresh=False, returns the last stored profile if there is one.
    """
    from .duration import analyze_optimal_duration
    from .learning_profile import generate_learning_profile, get_learning_profile

    try:
        store, user = _store(), _user(user_id)
        profile = None if refresh else get_learning_profile(store, user)
        if profile is None:
            profile = generate_learning_profile(store, user)
        output = {"profile": _dump(profile)}
        if subject_id:
            output["duration"] = _dump(analyze_optimal_duration(store, user, subject_id))
        return json.dumps(output)
    except Exception as e:
        logger.error("learning_profile failed: %s", e, exc_info=True)
        return json.dumps({"error": str(e)})


@mcp.tool()
def correlations_analyze(
    subject_id: str | None = None,
    save: bool = True,
    user_id: str | None = None,
) -> str:
    """Correlate session duration, time of day and study method with assessment scores.

    With save=True, every result is stored as an active correlation pattern.
    """
    from .correlations import analyze_correlations, store_correlation_report

    try:
        store, user = _store(), _user(user_id)
        report = analyze_correlations(store, user, subject_id)
        output = _dump(report)
        if save:
            output["stored"] = store_correlation_report(store, user, report, subject_id)
        return json.dumps(output)
    except Exception as e:
        logger.error("correlations_analyze failed: %s", e, exc_info=True)
        return json.dumps({"error": str(e)})


@mcp.tool()
def correlations_active(
    subject_id: str | None = None,
    limit: int = 20,
    user_id: str | None = None,
) -> str:
    """Stored correlation patterns, most confident first."""
    from .correlations import active_correlation_patterns

    try:
        patterns = active_correlation_patterns(_store(), _user(user_id), subject_id, limit)
        return json.dumps({"count": len(patterns), "patterns": _dump(patterns)})
    except Exception as e:
        logger.error("correlations_active failed: %s", e, exc_info=True)
        return json.dumps({"error": str(e)})


@mcp.tool()
def recommendations_generate(
    subject_id: str | None = None,
    save: bool = True,
    user_id: str | None = None,
) -> str:
    """Ranked recommendations from every analysis that has enough data.

    failed_sources lists analyses that errored; the rest of the bundle is
    still returned. With save=True, recommendations are stored as pending.
    """
    from .recommendations import generate_recommendations, store_recommendations

    try:
        store = _store()
        prefs = get_preferences()
        bundle = generate_recommendations(
            store, _user(user_id), subject_id,
            available_weekly_hours=prefs.available_weekly_hours,
            retention_threshold=prefs.retention_threshold,
        )
        if save:
            store_recommendations(store, bundle)
        return json.dumps(_dump(bundle))
    except Exception as e:
        logger.error("recommendations_generate failed: %s", e, exc_info=True)
        return json.dumps({"error": str(e)})


@mcp.tool()
def recommendations_active(limit: int = 10, user_id: str | None = None) -> str:
    """Pending recommendations from the last week, most urgent first."""
    from .recommendations import active_recommendations

    try:
        recs = active_recommendations(_store(), _user(user_id), limit)
        return json.dumps({"count": len(recs), "recommendations": _dump(recs)})
    except Exception as e:
        logger.error("recommendations_active failed: %s", e, exc_info=True)
        return json.dumps({"error": str(e)})


@mcp.tool()
def recommendation_complete(recommendation_id: str, feedback: str | None = None) -> str:
    """Mark a recommendation done. Feedback: helpful, not_helpful."""
    from .recommendations import mark_recommendation_completed

    try:
        mark_recommendation_completed(_store(), recommendation_id, feedback)
        return json.dumps({"status": "completed", "recommendation_id": recommendation_id})
    except Exception as e:
        logger.error("recommendation_complete failed: %s", e, exc_info=True)
        return json.dumps({"error": str(e)})


# =============================================================================
# Preference Tools (2)
# =============================================================================

@mcp.tool()
def preferences_get() -> str:
    """Read study preferences (weekly hours, target performance, retention threshold)."""
    try:
        return json.dumps(_dump(get_preferences()))
    except Exception as e:
        logger.error("preferences_get failed: %s", e, exc_info=True)
        return json.dumps({"error": str(e)})


@mcp.tool()
def preferences_set(key: str, value: str) -> str:
    """Update one study preference."""
    from .preferences import update_preference

    try:
        return json.dumps(_dump(update_preference(key, value)))
    except Exception as e:
        logger.error("preferences_set failed: %s", e, exc_info=True)
        return json.dumps({"error": str(e)})


def main():
    """Run the MCP server."""
    logger.info("StudyCompass MCP server starting...")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
