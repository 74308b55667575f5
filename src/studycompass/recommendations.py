"""Recommendation synthesis.

Runs every analysis that has enough data behind it, concurrently, and turns
each signal into zero or more Recommendation records. A failing analysis is
logged and listed in `failed_sources`; the rest of the bundle is still built.
The final list is deduplicated by (type, title) and stably sorted by priority.
"""

from __future__ import annotations

import json
import logging
import math
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Sequence

import numpy as np
from pydantic import BaseModel

from . import config
from .allocation import generate_allocation_plan
from .burnout import assess_burnout_risk
from .correlations import analyze_correlations
from .db import (
    StudyStore,
    data_availability,
    fetch_assessments,
    fetch_sessions,
    iso,
    list_active_subjects,
    list_goals,
    now_iso,
    parse_dt,
    to_utc,
)
from .duration import analyze_optimal_duration
from .learning_profile import generate_learning_profile
from .models import (
    ActivityRecord,
    AllocationPlan,
    AllocationPriority,
    AssessmentRecord,
    BurnoutAssessment,
    BurnoutCategory,
    BurnoutSeverity,
    CorrelationReport,
    CorrelationStrength,
    DominantStyle,
    DurationAnalysis,
    GoalRecord,
    GoalStatus,
    LearningProfile,
    OnTrackStatus,
    OverallHealth,
    Recommendation,
    RecommendationBundle,
    RecommendationPriority,
    RecommendationSummary,
    RecommendationType,
    ReviewReminder,
    SubjectProfile,
    TrendDirection,
    TrendResult,
)
from .spaced_repetition import generate_review_reminders, items_due_for_review, topics_at_risk
from .trends import analyze_focus_trend, analyze_performance_trend, analyze_study_hours_trend

logger = logging.getLogger(__name__)

_URGENT = RecommendationPriority.URGENT
_HIGH = RecommendationPriority.HIGH
_MEDIUM = RecommendationPriority.MEDIUM
_LOW = RecommendationPriority.LOW

_STYLE_ACTIONS = {
    DominantStyle.VISUAL: [
        "Use diagrams, mind maps, and color-coded notes",
        "Watch video explanations for complex topics",
    ],
    DominantStyle.AUDITORY: [
        "Join study groups or discussion forums",
        "Listen to recorded lectures or podcasts",
    ],
    DominantStyle.KINESTHETIC: [
        "Solve practice problems actively",
        "Use hands-on demonstrations when possible",
    ],
    DominantStyle.READING_WRITING: [
        "Take detailed notes and rewrite summaries",
        "Create written outlines before exams",
    ],
    DominantStyle.MULTIMODAL: [
        "Rotate between your strongest study methods each week",
    ],
}

_GOAL_UNITS = {"study_hours": "hours", "session_count": "sessions"}


def _recommendation(
    user_id: str,
    created_at: datetime,
    type: RecommendationType,
    priority: RecommendationPriority,
    title: str,
    description: str,
    rationale: str = "",
    expected_outcome: str = "",
    action_items: Sequence[str] = (),
    confidence: float = 0.0,
    evidence: Sequence[str] = (),
    tags: Sequence[str] = (),
) -> Recommendation:
    """Build a recommendation, dropping empty action items and evidence."""
    return Recommendation(
        id=uuid.uuid4().hex[:12],
        user_id=user_id,
        type=type,
        priority=priority,
        title=title,
        description=description,
        rationale=rationale,
        expected_outcome=expected_outcome,
        action_items=tuple(item for item in action_items if item),
        confidence=confidence,
        evidence=tuple(item for item in evidence if item),
        tags=tuple(tags),
        created_at=created_at,
    )


# --- Direct store queries ---

def subject_insights(
    subjects: Sequence[SubjectProfile],
    sessions: Sequence[ActivityRecord],
    assessments: Sequence[AssessmentRecord],
) -> list[dict]:
    """Per-subject session and assessment aggregates, most-studied first."""
    insights = []
    for subject in subjects:
        own_sessions = [s for s in sessions if s.subject_id == subject.id]
        own_assessments = [a for a in assessments if a.subject_id == subject.id]
        focus = [s.focus_score for s in own_sessions if s.focus_score is not None]
        scores = [a.percentage for a in own_assessments]
        insights.append({
            "subject": subject,
            "session_count": len(own_sessions),
            "total_minutes": sum(s.duration_minutes for s in own_sessions),
            "avg_focus": float(np.mean(focus)) if focus else None,
            "min_focus": min(focus) if focus else None,
            "max_focus": max(focus) if focus else None,
            "performance_count": len(scores),
            "avg_performance": float(np.mean(scores)) if scores else None,
            "best_performance": max(scores) if scores else None,
            "worst_performance": min(scores) if scores else None,
            "has_weaknesses": any(a.weaknesses.strip() for a in own_assessments),
            "last_session": max((s.started_at for s in own_sessions), default=None),
            "last_assessment": max((a.assessment_date for a in own_assessments), default=None),
        })
    insights.sort(key=lambda i: i["session_count"], reverse=True)
    return insights


def load_subject_insights(store: StudyStore, user_id: str) -> list[dict]:
    conn = store.connect()
    try:
        subjects = list_active_subjects(conn, user_id)
        sessions = fetch_sessions(conn, user_id)
        assessments = fetch_assessments(conn, user_id)
    finally:
        conn.close()
    return subject_insights(subjects, sessions, assessments)


def load_goals(store: StudyStore, user_id: str) -> list[GoalRecord]:
    conn = store.connect()
    try:
        return list_goals(conn, user_id, statuses=(GoalStatus.ACTIVE.value, GoalStatus.PAUSED.value))
    finally:
        conn.close()


def session_patterns(
    store: StudyStore,
    user_id: str,
    now: datetime,
    days: int = config.SYNTH_PATTERN_DAYS,
    limit: int = 5,
) -> list[dict]:
    """Hour-of-day slots ranked by average focus, best first."""
    conn = store.connect()
    try:
        sessions = fetch_sessions(conn, user_id, since=now - timedelta(days=days))
    finally:
        conn.close()

    by_hour: dict[int, list[ActivityRecord]] = {}
    for session in sessions:
        by_hour.setdefault(session.started_at.hour, []).append(session)

    patterns = []
    for hour, group in by_hour.items():
        focus = [s.focus_score for s in group if s.focus_score is not None]
        if not focus:
            continue
        patterns.append({
            "hour": hour,
            "avg_focus": float(np.mean(focus)),
            "avg_duration": float(np.mean([s.duration_minutes for s in group])),
            "session_count": len(group),
        })
    patterns.sort(key=lambda p: (-p["avg_focus"], p["hour"]))
    return patterns[:limit]


# --- Signal templates ---

def _date_label(value: Optional[datetime]) -> str:
    return value.date().isoformat() if value else ""


def subject_recommendations(user_id: str, insights: Sequence[dict], now: datetime) -> list[Recommendation]:
    recs = []

    for info in insights:
        if info["session_count"] != 0:
            continue
        subject = info["subject"]
        recs.append(_recommendation(
            user_id, now, RecommendationType.SUBJECT_PRIORITY, _URGENT,
            f"{subject.name} - Zero Study Sessions",
            f"You haven't started studying {subject.name} yet. This subject needs "
            "immediate attention to avoid falling behind.",
            rationale="Subjects without any study time accumulate gaps that become harder to fill later.",
            expected_outcome="Start building foundation knowledge and momentum in this subject",
            action_items=[
                f"Schedule your first 45-minute session for {subject.name} TODAY",
                "Start with an overview of core concepts and syllabus",
                "Create a basic study plan with weekly targets",
                "Set a goal to complete 3 sessions this week",
                "Identify the easiest topic to start with for quick wins",
            ],
            confidence=95,
            evidence=[
                "0 study sessions recorded",
                f"Priority: {subject.priority.value}",
                f"Difficulty: {subject.difficulty.value}",
            ],
            tags=["urgent", "neglected", "subject-priority", subject.name.lower()],
        ))

    for info in insights:
        if not 0 < info["session_count"] <= 3:
            continue
        subject = info["subject"]
        hours = info["total_minutes"] / 60
        avg_focus = info["avg_focus"]
        recs.append(_recommendation(
            user_id, now, RecommendationType.SUBJECT_PRIORITY, _HIGH,
            f"{subject.name} - Insufficient Study Time",
            f"Only {info['session_count']} session(s) totaling {hours:.1f} hours. "
            "This subject needs more consistent attention.",
            rationale=(
                f"With just {info['session_count']} sessions, you haven't built enough "
                "study momentum for effective learning."
            ),
            expected_outcome="Establish consistent study rhythm and deepen understanding",
            action_items=[
                f"Increase to AT LEAST 3-4 sessions per week for {subject.name}",
                "Target minimum 5-6 hours total study time per week",
                "Create a recurring calendar block for this subject",
                "Review what you covered in previous sessions before starting new material",
                f"Current focus is {avg_focus:.1f}/10 - try shorter 30-min sessions"
                if avg_focus is not None and avg_focus < 7
                else "Maintain your current focus level",
            ],
            confidence=85,
            evidence=[
                f"Only {info['session_count']} sessions completed",
                f"Total time: {hours:.1f} hours",
                f"Average focus: {avg_focus:.1f}/10" if avg_focus is not None else "",
                f"Last studied: {_date_label(info['last_session'])}" if info["last_session"] else "",
            ],
            tags=["high-priority", "low-activity", subject.name.lower()],
        ))

    for info in insights:
        avg_focus = info["avg_focus"]
        if info["session_count"] < 2 or avg_focus is None or avg_focus >= 7:
            continue
        subject = info["subject"]
        focus_range = f" (ranging {info['min_focus']:.1f} to {info['max_focus']:.1f})"
        recs.append(_recommendation(
            user_id, now, RecommendationType.OPTIMIZATION, _URGENT if avg_focus < 5 else _HIGH,
            f"Improve Focus for {subject.name}",
            f"Your focus score for {subject.name} is {avg_focus:.1f}/10{focus_range}, "
            "significantly below optimal performance.",
            rationale=(
                f"Across {info['session_count']} sessions, you're struggling to maintain "
                "concentration for this subject."
            ),
            expected_outcome="Achieve 8+/10 focus scores consistently, leading to better retention and faster learning",
            action_items=[
                f"Study {subject.name} during your BEST focus hours (check session pattern recommendations)",
                "Use Pomodoro technique: 25 minutes intense focus, 5 minute break",
                "Remove ALL distractions before starting: phone on airplane mode, close extra tabs",
                "Try different study methods: switch from reading to practice problems or video tutorials",
                "For difficult subjects, start with easier sub-topics to build confidence"
                if subject.difficulty.value in ("hard", "very_hard")
                else "Make study sessions more interactive with active recall",
                'Set a specific micro-goal for each session (e.g., "Master topic X")',
                "Track what disrupts your focus and eliminate those factors",
                "Consider using focus apps or website blockers during study time",
            ],
            confidence=80,
            evidence=[
                f"{info['session_count']} sessions analyzed",
                f"Average focus: {avg_focus:.1f}/10",
                f"Lowest: {info['min_focus']:.1f}/10",
                f"Time invested: {info['total_minutes'] / 60:.1f} hours" if info["total_minutes"] else "",
            ],
            tags=["focus", "optimization", "concentration", subject.name.lower()],
        ))

    for info in insights:
        avg_perf = info["avg_performance"]
        if not info["performance_count"] or avg_perf is None or avg_perf >= 75:
            continue
        subject = info["subject"]
        gap = subject.target_performance - avg_perf
        hours = info["total_minutes"] / 60
        avg_focus = info["avg_focus"]
        recs.append(_recommendation(
            user_id, now, RecommendationType.LEARNING_METHOD, _URGENT if avg_perf < 60 else _HIGH,
            f"{subject.name} - Below Target Performance",
            f"Assessment average: {avg_perf:.1f}% ({gap:.1f}% below target). "
            "Current study approach needs significant improvement.",
            rationale=(
                f"After {info['performance_count']} assessment(s) and {info['session_count']} "
                "study sessions, results indicate ineffective learning strategies."
            ),
            expected_outcome="Raise performance to 80%+ through targeted improvement strategies",
            action_items=[
                "IMMEDIATE: Review ALL weaknesses from past assessments",
                "Your identified weak topics need focused attention - schedule dedicated review sessions"
                if info["has_weaknesses"]
                else "Track which specific topics you struggle with",
                f"Increase study time: current {hours:.1f}h may be insufficient",
                "Change study methods: switch from passive reading to practice problems and active recall",
                "Take practice tests BEFORE assessments to identify gaps early",
                "Analyze past mistakes: what types of questions do you miss?",
                f"Also address low focus ({avg_focus:.1f}/10) - see focus recommendations"
                if avg_focus is not None and avg_focus < 7 else "",
                "Consider getting help: tutoring, office hours, or online resources",
            ],
            confidence=90,
            evidence=[
                f"{info['performance_count']} assessments analyzed",
                f"Average score: {avg_perf:.1f}%",
                f"Lowest score: {info['worst_performance']:.1f}%",
                f"Best score: {info['best_performance']:.1f}%",
                f"{info['session_count']} study sessions",
                f"Study time: {hours:.1f} hours",
                f"Focus level: {avg_focus:.1f}/10" if avg_focus is not None else "",
                f"Last assessment: {_date_label(info['last_assessment'])}" if info["last_assessment"] else "",
            ],
            tags=["performance", "assessment", "improvement-needed", subject.name.lower()],
        ))

    if len(insights) >= 3:
        total = sum(i["session_count"] for i in insights)
        average = total / len(insights)
        over = [i for i in insights if i["session_count"] > average * 2]
        under = [i for i in insights if 0 < i["session_count"] < average * 0.3]
        if over and under:
            over_names = ", ".join(i["subject"].name for i in over)
            under_names = ", ".join(i["subject"].name for i in under)
            most, least = over[0], under[0]
            recs.append(_recommendation(
                user_id, now, RecommendationType.TIME_MANAGEMENT, _MEDIUM,
                "Rebalance Study Time Across Subjects",
                "Study time is heavily imbalanced. Some subjects are over-emphasized while others are neglected.",
                rationale=(
                    f"{over_names} has {most['session_count']} sessions while "
                    f"{under_names} only has {least['session_count']}."
                ),
                expected_outcome="More balanced progress across all subjects, preventing any subject from falling behind",
                action_items=[
                    f"Reduce sessions for: {over_names}",
                    f"Increase sessions for: {under_names}",
                    f"Target: ~{math.ceil(average)} sessions per subject for balance",
                    "Create weekly schedule with dedicated time blocks for each subject",
                    "Prioritize subjects based on upcoming assessments, difficulty, and current performance",
                    f"Note: {least['subject'].name} is marked as HIGH priority but severely underrepresented"
                    if least["subject"].priority.value == "high" else "",
                ],
                confidence=75,
                evidence=[
                    f"Total sessions: {total}",
                    f"Average per subject: {average:.1f}",
                    f"Most studied: {most['subject'].name} ({most['session_count']} sessions)",
                    f"Least studied: {least['subject'].name} ({least['session_count']} sessions)",
                    f"Imbalance ratio: {most['session_count'] / max(least['session_count'], 1):.1f}x",
                ],
                tags=["balance", "time-management", "allocation"],
            ))

    performers = [
        i for i in insights
        if i["performance_count"]
        and i["avg_performance"] >= 85
        and i["avg_focus"] is not None and i["avg_focus"] >= 7
        and i["session_count"] >= 3
    ]
    if performers:
        info = performers[0]
        subject = info["subject"]
        working = [
            "High focus" if info["avg_focus"] >= 8 else "",
            "Outstanding scores" if info["avg_performance"] >= 90 else "Great scores",
        ]
        recs.append(_recommendation(
            user_id, now, RecommendationType.OPTIMIZATION, _LOW,
            f"Excellent Progress in {subject.name}!",
            f"You're excelling in {subject.name} with {info['avg_performance']:.1f}% average and "
            f"{info['avg_focus']:.1f}/10 focus. Keep up the great work!",
            rationale=f"Your study approach for {subject.name} is working exceptionally well.",
            expected_outcome="Maintain excellence and apply successful strategies to other subjects",
            action_items=[
                f"Maintain current study rhythm: {info['session_count']} sessions so far",
                f"What's working: {', '.join(w for w in working if w)}",
                "Apply your study methods from this subject to struggling subjects",
                "Keep challenging yourself with advanced topics or practice problems",
                "Consider this subject a strength for future opportunities",
            ],
            confidence=95,
            evidence=[
                f"Performance: {info['avg_performance']:.1f}% average",
                f"Focus: {info['avg_focus']:.1f}/10",
                f"{info['session_count']} sessions",
                f"{info['performance_count']} assessments",
                f"Best score: {info['best_performance']:.1f}%",
            ],
            tags=["success", "strength", "positive", subject.name.lower()],
        ))
    return recs


def _days_left(goal: GoalRecord, now: datetime) -> Optional[int]:
    if goal.target_date is None:
        return None
    deadline = datetime(goal.target_date.year, goal.target_date.month, goal.target_date.day, tzinfo=timezone.utc)
    return math.ceil((deadline - now).total_seconds() / 86400)


def _fmt_value(value: float) -> str:
    return f"{value:g}"


def goal_recommendations(user_id: str, goals: Sequence[GoalRecord], now: datetime) -> list[Recommendation]:
    if not goals:
        return [_recommendation(
            user_id, now, RecommendationType.TIME_MANAGEMENT, _MEDIUM,
            "Set Clear Study Goals",
            "You haven't set any study goals yet. Goals provide direction and motivation.",
            rationale="Clear, measurable goals make progress visible and keep study time focused.",
            expected_outcome="Clear direction, better motivation, and measurable progress",
            action_items=[
                "Set 2-3 SMART goals (Specific, Measurable, Achievable, Relevant, Time-bound)",
                'Example: "Complete 20 hours of study by end of month"',
                'Example: "Achieve 85% average on next 3 assessments"',
                "Review goals weekly and adjust as needed",
            ],
            confidence=85,
            evidence=["No active goals found"],
            tags=["goals", "planning", "motivation"],
        )]

    recs = []
    for goal in goals:
        if goal.on_track_status != OnTrackStatus.BEHIND:
            continue
        label = goal.goal_type or "Goal"
        progress = goal.progress_percentage
        current, target = goal.current_value, goal.target_value
        days_left = _days_left(goal, now)
        deadline = goal.target_date.isoformat() if goal.target_date else ""

        if days_left is None:
            recs.append(_recommendation(
                user_id, now, RecommendationType.TIME_MANAGEMENT, _HIGH,
                f"Goal Behind Schedule: {label}",
                f"You're at {progress:.1f}% completion and behind your planned pace.",
                rationale="Without a target date the required daily pace cannot be planned.",
                expected_outcome="Get back on track with a concrete deadline",
                action_items=[
                    f"Current: {_fmt_value(current)} → Target: {_fmt_value(target)} (Gap: {_fmt_value(target - current)})",
                    "Set a realistic target date for this goal",
                    "Break remaining work into daily micro-milestones",
                ],
                confidence=95,
                evidence=[f"Progress: {progress:.1f}%", f"Current: {_fmt_value(current)}/{_fmt_value(target)}", f"Type: {label}"],
                tags=["goals", "deadline", label],
            ))
            continue

        priority = _URGENT if days_left <= 7 else _HIGH
        if days_left <= 0:
            recs.append(_recommendation(
                user_id, now, RecommendationType.TIME_MANAGEMENT, priority,
                f"Goal Behind Schedule: {label}",
                f"DEADLINE PASSED! You're at {progress:.1f}% completion. Immediate action required.",
                rationale="Goal deadline has passed - decide to extend or mark as incomplete.",
                expected_outcome="Resolve goal status",
                action_items=[
                    f"Goal deadline was {deadline}",
                    f"Reached {progress:.1f}% completion (needed 100%)",
                    "Decide: extend the deadline, set a new goal, or adjust the target value",
                    "Analyze what prevented completion to avoid repeating mistakes",
                    "Set more realistic deadlines for future goals",
                ],
                confidence=95,
                evidence=[
                    f"Progress: {progress:.1f}%",
                    f"Current: {_fmt_value(current)}/{_fmt_value(target)}",
                    "Deadline: PASSED",
                    f"Type: {label}",
                ],
                tags=["goals", "deadline", "urgent", label],
            ))
            continue

        daily_target = (100 - progress) / days_left
        unit = _GOAL_UNITS.get(goal.goal_type, "points")
        gap = target - current
        recs.append(_recommendation(
            user_id, now, RecommendationType.TIME_MANAGEMENT, priority,
            f"Goal Behind Schedule: {label}",
            f"You're at {progress:.1f}% with only {days_left} day(s) remaining. Current pace is INSUFFICIENT.",
            rationale=f"To complete this goal on time, you need {daily_target:.1f}% progress PER DAY from now on.",
            expected_outcome="Get back on track and achieve goal by deadline",
            action_items=[
                f"DAILY TARGET: {daily_target:.1f}% progress ({gap / days_left:.1f} {unit} per day)",
                f"Current: {_fmt_value(current)} → Target: {_fmt_value(target)} (Gap: {_fmt_value(gap)})",
                f"Block out dedicated time EVERY day until {deadline}",
                "Focus ONLY on high-impact activities that directly contribute to this goal",
                "CRISIS MODE: Consider canceling social plans to focus on goal" if days_left <= 3 else "",
                "Break remaining work into hourly or daily micro-milestones",
                "Track progress twice daily to ensure you stay on pace",
            ],
            confidence=95,
            evidence=[
                f"Progress: {progress:.1f}%",
                f"Current: {_fmt_value(current)}/{_fmt_value(target)}",
                f"Days remaining: {days_left}",
                f"Required daily progress: {daily_target:.1f}%",
                f"Type: {label}",
            ],
            tags=["goals", "deadline", "urgent", label],
        ))

    on_track = [g for g in goals if g.on_track_status == OnTrackStatus.ON_TRACK and g.status == GoalStatus.ACTIVE]
    for goal in on_track[:2]:
        label = goal.goal_type or "Goal"
        days_left = _days_left(goal, now)
        remaining = f"{days_left} days" if days_left is not None else "No deadline"
        recs.append(_recommendation(
            user_id, now, RecommendationType.TIME_MANAGEMENT, _MEDIUM,
            f"Maintain Pace: {label}",
            f"You're on track at {goal.progress_percentage:.1f}% completion. Keep up the consistent effort!",
            rationale="Your current pace will achieve the goal.",
            expected_outcome="Complete goal on time with consistent effort",
            action_items=[
                f"Continue current pace: {_fmt_value(goal.current_value)}/{_fmt_value(goal.target_value)} completed",
                f"{remaining} left - don't let up now!" if days_left is not None else "",
                "Schedule recurring study blocks to maintain momentum",
                "If you get ahead of schedule, you can ease up or set stretch goals",
            ],
            confidence=85,
            evidence=[
                f"Progress: {goal.progress_percentage:.1f}%",
                f"On track status: {goal.on_track_status.value}",
                f"Days remaining: {remaining}",
            ],
            tags=["goals", "on-track", "maintenance", label],
        ))

    for goal in goals:
        if goal.on_track_status != OnTrackStatus.AHEAD:
            continue
        label = goal.goal_type or "Goal"
        recs.append(_recommendation(
            user_id, now, RecommendationType.OPTIMIZATION, _LOW,
            f"Ahead of Schedule: {label}",
            f"Excellent work! You're at {goal.progress_percentage:.1f}% - ahead of your planned pace.",
            rationale="You have buffer time - use it wisely to maximize outcomes.",
            expected_outcome="Capitalize on momentum for even better results",
            action_items=[
                f"Current: {_fmt_value(goal.current_value)}/{_fmt_value(goal.target_value)} - you have breathing room!",
                "Option 1: Maintain current pace and enjoy less stress",
                "Option 2: Set a stretch goal to achieve even more",
                "Option 3: Reallocate some time to struggling subjects",
            ],
            confidence=90,
            evidence=[
                f"Progress: {goal.progress_percentage:.1f}%",
                "Status: Ahead of schedule",
                f"Deadline: {goal.target_date.isoformat()}" if goal.target_date else "",
            ],
            tags=["goals", "success", "ahead", label],
        ))

    completed = [g for g in goals if g.status == GoalStatus.COMPLETED or g.progress_percentage >= 100]
    if completed:
        recs.append(_recommendation(
            user_id, now, RecommendationType.OPTIMIZATION, _LOW,
            f"{len(completed)} Goal(s) Achieved!",
            f"Congratulations! You've completed {len(completed)} goal(s). "
            "This shows excellent discipline and follow-through.",
            rationale="Achieving goals builds momentum and confidence for future challenges.",
            expected_outcome="Sustained motivation and continued growth",
            action_items=[
                f"Completed goals: {', '.join(g.goal_type or 'Goal' for g in completed)}",
                "Reflect on what strategies led to success",
                "Set 2-3 new goals that build on this progress",
            ],
            confidence=100,
            evidence=[f"{len(completed)} goals completed"] + [
                f"{g.goal_type}: {_fmt_value(g.current_value)}/{_fmt_value(g.target_value)}" for g in completed
            ],
            tags=["success", "achievement", "motivation", "goals"],
        ))

    for goal in goals:
        if goal.status != GoalStatus.ACTIVE or goal.progress_percentage > 0:
            continue
        age = math.floor((now - goal.created_at).total_seconds() / 86400)
        if age < 3:
            continue
        label = goal.goal_type or "Goal"
        recs.append(_recommendation(
            user_id, now, RecommendationType.TIME_MANAGEMENT, _HIGH,
            f"Stagnant Goal: {label}",
            f"No progress on this goal for {age} days. Either start working or remove it.",
            rationale="Inactive goals clutter your focus and create false accountability.",
            expected_outcome="Clear action or decision on goal status",
            action_items=[
                f"Goal created {age} days ago with 0% progress",
                "Decide: start this week, postpone to a set date, or cancel it",
                "Keep only goals you're actively working on",
            ],
            confidence=80,
            evidence=[
                "Progress: 0%",
                f"Days since creation: {age}",
                f"Target: {_fmt_value(goal.target_value)}",
                f"Deadline: {goal.target_date.isoformat()}" if goal.target_date else "",
            ],
            tags=["goals", "stagnant", "action-needed", label],
        ))
    return recs


def format_hour(hour: int, compact: bool = False) -> str:
    """12-hour clock label: "9:00 AM", or "9AM" when compact."""
    if hour == 0:
        base, suffix = 12, "AM"
    elif hour < 12:
        base, suffix = hour, "AM"
    elif hour == 12:
        base, suffix = 12, "PM"
    else:
        base, suffix = hour - 12, "PM"
    return f"{base}{suffix}" if compact else f"{base}:00 {suffix}"


def _pattern_time_of_day(hour: int) -> str:
    if hour < 12:
        return "morning"
    if hour < 17:
        return "afternoon"
    if hour < 21:
        return "evening"
    return "night"


def session_pattern_recommendations(user_id: str, patterns: Sequence[dict], now: datetime) -> list[Recommendation]:
    if not patterns:
        return []
    recs = []
    best = patterns[0]
    peak = format_hour(best["hour"])
    period = _pattern_time_of_day(best["hour"])
    optimal_pct = best["avg_focus"] / 10 * 100

    recs.append(_recommendation(
        user_id, now, RecommendationType.TIME_MANAGEMENT, _HIGH,
        f"Peak Performance Window: {peak}",
        f"Your highest focus ({best['avg_focus']:.1f}/10) consistently occurs around {peak}. "
        "This is your GOLDEN HOUR for studying!",
        rationale=(
            f"Based on {best['session_count']} sessions, your brain performs "
            f"{optimal_pct:.0f}% optimally during this time window."
        ),
        expected_outcome="Maximize learning efficiency by studying during peak cognitive performance",
        action_items=[
            f"PRIORITY: Block {peak} for your most difficult/important subjects",
            f"Schedule ALL challenging topics (hard concepts, problem-solving) at {peak}",
            "PROTECT this time slot: no calls, no social media, notifications off",
            f"Average session length at this time: {round(best['avg_duration'])} minutes - this is your natural rhythm",
            "Consistency is key: Study at this time DAILY for 2 weeks to build routine",
            "Go to bed early to wake up refreshed for morning sessions" if period == "morning" else "",
            "Avoid heavy meals before this time to maintain focus" if period == "evening" else "",
            "Reserve low-focus times for passive review, organizing notes, or easy tasks",
        ],
        confidence=90,
        evidence=[
            f"Peak time: {peak} ({period})",
            f"Focus score: {best['avg_focus']:.1f}/10",
            f"{best['session_count']} sessions analyzed",
            f"Avg duration: {round(best['avg_duration'])} minutes",
        ],
        tags=["timing", "optimization", "focus", "peak-performance", period],
    ))

    if len(patterns) >= 3:
        worst = patterns[-1]
        low = format_hour(worst["hour"])
        drop = (best["avg_focus"] - worst["avg_focus"]) / best["avg_focus"] * 100 if best["avg_focus"] else 0.0
        recs.append(_recommendation(
            user_id, now, RecommendationType.OPTIMIZATION, _MEDIUM,
            f"Avoid Studying at {low}",
            f"Your focus drops {drop:.0f}% at {low} compared to your peak time. "
            "Avoid scheduling important study sessions then.",
            rationale=(
                f"Data shows {worst['avg_focus']:.1f}/10 focus at {low} vs "
                f"{best['avg_focus']:.1f}/10 at {peak} - that's a significant performance gap."
            ),
            expected_outcome="Eliminate low-productivity study time and reallocate to better hours",
            action_items=[
                f"AVOID {low} for focused study work",
                f"Use {low} for light tasks only: organizing materials, casual review, planning",
                f"Move important study sessions from {low} to {peak}",
                "Your body has natural energy cycles - work WITH them, not against them",
            ],
            confidence=75,
            evidence=[
                f"Worst time: {low}",
                f"Focus: {worst['avg_focus']:.1f}/10 ({drop:.0f}% lower than peak)",
                f"Best time: {peak} at {best['avg_focus']:.1f}/10",
                f"{worst['session_count']} low-performance sessions analyzed",
            ],
            tags=["timing", "avoid", "low-focus", "optimization"],
        ))

    if len(patterns) >= 5:
        total = sum(p["session_count"] for p in patterns)
        top_slots = ", ".join(format_hour(p["hour"], compact=True) for p in patterns[:3])
        recs.append(_recommendation(
            user_id, now, RecommendationType.OPTIMIZATION, _MEDIUM,
            "Build a Consistent Study Routine",
            f"You're studying across {len(patterns)} different time slots. While flexibility is good, "
            "consistency builds stronger habits.",
            rationale="Studying at the same times each day makes it easier to settle into focused work.",
            expected_outcome="Stronger habit formation and automatic transition into focused study mode",
            action_items=[
                f"Focus on your top 2-3 time slots: {top_slots}",
                "Create pre-study ritual: same location, same setup, same routine",
                "Occasional flexibility is fine, but make 80% of sessions at consistent times",
            ],
            confidence=70,
            evidence=[
                f"{len(patterns)} different study times",
                f"{total} total sessions",
                f"Most consistent: {peak} with {best['session_count']} sessions",
            ],
            tags=["consistency", "habits", "routine", "optimization"],
        ))
    return recs


def burnout_recommendation(user_id: str, burnout: BurnoutAssessment, now: datetime) -> list[Recommendation]:
    if burnout.total_score < config.BURNOUT_INTERVENTION_SCORE:
        return []
    detected = [i for i in burnout.indicators if i.detected]
    categories = {i.category for i in detected}
    actions = []
    if burnout.needs_intervention:
        actions.append("Take 2-3 days complete break from studying")
        actions.append("Reduce daily study hours by 40% for next week")
    if BurnoutCategory.FOCUS in categories:
        actions.append("Limit sessions to 30 minutes with 10-minute breaks")
    if BurnoutCategory.EMOTIONAL in categories:
        actions.append("Consider speaking with academic counselor or therapist")

    severe = burnout.severity in (BurnoutSeverity.CRITICAL, BurnoutSeverity.HIGH)
    return [_recommendation(
        user_id, now, RecommendationType.WELLBEING, _URGENT if severe else _HIGH,
        f"Burnout Risk: {burnout.severity.value.upper()}",
        f"Your burnout score is {burnout.total_score:.0f}/100. Immediate intervention needed.",
        rationale=f"Detected: {', '.join(i.name for i in detected)}" if detected else "",
        expected_outcome="Restored energy, improved focus, sustainable study habits",
        action_items=actions,
        confidence=90,
        evidence=burnout.recommendations[:3],
        tags=["wellbeing", "urgent", "burnout"],
    )]


def performance_trend_recommendation(
    user_id: str,
    performance: TrendResult,
    hours: Optional[TrendResult],
    now: datetime,
) -> list[Recommendation]:
    if performance.trend != TrendDirection.DECLINING:
        return []
    actions = [
        "Review study methods - current approach may not be effective",
        "Increase active recall and practice problem frequency",
        "Schedule review sessions for previously learned material",
    ]
    if hours is not None and hours.trend == TrendDirection.IMPROVING:
        actions.append("Hours are increasing but performance declining - focus on quality over quantity")
    drop = abs(performance.change_percent)
    return [_recommendation(
        user_id, now, RecommendationType.OPTIMIZATION, _HIGH if drop > 15 else _MEDIUM,
        f"Performance Declining by {drop:.1f}%",
        performance.description,
        rationale=performance.recommendation,
        expected_outcome="Reverse performance decline, return to baseline or better",
        action_items=actions,
        confidence=performance.confidence,
        evidence=[f"Momentum: {performance.momentum:.2f} points/day"],
        tags=["performance", "optimization"],
    )]


def focus_trend_recommendation(user_id: str, focus: TrendResult, now: datetime) -> list[Recommendation]:
    if focus.trend != TrendDirection.DECLINING or abs(focus.change_percent) <= 10:
        return []
    return [_recommendation(
        user_id, now, RecommendationType.WELLBEING, _HIGH,
        f"Focus Quality Declining ({abs(focus.change_percent):.1f}% drop)",
        focus.description,
        rationale="Sustained focus decline may indicate mental fatigue or ineffective study environment",
        expected_outcome="Restored concentration and study effectiveness",
        action_items=[
            "Reduce session duration by 25%",
            "Eliminate distractions (phone, notifications)",
            "Change study environment",
            "Ensure 7-8 hours sleep",
            "Take a full rest day",
        ],
        confidence=focus.confidence,
        evidence=[f"Momentum: {focus.momentum:.2f} points/day decline"],
        tags=["focus", "wellbeing"],
    )]


def learning_style_recommendation(user_id: str, profile: LearningProfile, now: datetime) -> list[Recommendation]:
    if profile.confidence < 50:
        return []
    style = profile.dominant_style.value
    return [_recommendation(
        user_id, now, RecommendationType.LEARNING_METHOD, _MEDIUM,
        f"Optimize for {style.replace('_', ' ').upper()} Learning",
        profile.recommendations[0] if profile.recommendations else "",
        rationale=f"Analysis of {profile.session_count} sessions shows strongest results with {style} methods",
        expected_outcome="Increased retention and comprehension efficiency",
        action_items=_STYLE_ACTIONS[profile.dominant_style],
        confidence=profile.confidence,
        evidence=profile.recommendations,
        tags=["learning_style", "personalization"],
    )]


def duration_recommendation(user_id: str, analysis: DurationAnalysis, now: datetime) -> list[Recommendation]:
    low, high = analysis.optimal_range
    chosen = next((b for b in analysis.buckets if b.min_minutes == low and b.max_minutes == high), None)
    evidence = (
        [f"Performance: {chosen.avg_performance:.1f}%", f"Focus: {chosen.avg_focus:.1f}/10"]
        if chosen and chosen.session_count
        else ["Based on your session patterns"]
    )
    return [_recommendation(
        user_id, now, RecommendationType.OPTIMIZATION, _MEDIUM,
        f"Optimal Session Length: {analysis.optimal_minutes} minutes",
        f"Your sweet spot is {low}-{high} minutes per session",
        rationale=analysis.reasoning,
        expected_outcome="Maximized performance per study hour",
        action_items=[
            f"Target {analysis.optimal_minutes} minutes for each session",
            "Set timer to maintain consistent duration",
            "Take 5-10 minute break between sessions",
        ],
        confidence=analysis.confidence,
        evidence=evidence,
        tags=["duration", "optimization"],
    )]


def correlation_recommendations(user_id: str, report: CorrelationReport, now: datetime) -> list[Recommendation]:
    recs = []
    duration = report.duration
    if duration and abs(duration.coefficient) > 0.5:
        recs.append(_recommendation(
            user_id, now, RecommendationType.OPTIMIZATION, _MEDIUM,
            "Study Duration Affects Your Scores",
            duration.recommendation,
            rationale=duration.description,
            expected_outcome="Session lengths matched to how you actually perform",
            action_items=[duration.recommendation],
            confidence=duration.confidence_level,
            evidence=[f"r = {duration.coefficient:.2f} (p = {duration.p_value:.3f}, n = {duration.sample_size})"],
            tags=["correlation", "duration"],
        ))

    methods = report.study_methods
    if len(methods) >= 2 and methods[0].strength in (CorrelationStrength.STRONG, CorrelationStrength.VERY_STRONG):
        best = methods[0]
        name = best.variable_x.removeprefix("study_method_")
        recs.append(_recommendation(
            user_id, now, RecommendationType.LEARNING_METHOD, _MEDIUM,
            f"Most Effective Method: {name.replace('_', ' ').title()}",
            best.recommendation,
            rationale=best.description,
            expected_outcome="Higher scores from the same study time",
            action_items=[
                f"Use {name} for your hardest topics",
                f"Compare against {methods[-1].variable_x.removeprefix('study_method_')} next week",
            ],
            confidence=best.confidence_level,
            evidence=[m.description for m in methods[:3]],
            tags=["correlation", "study_method"],
        ))
    return recs


def allocation_recommendation(user_id: str, plan: AllocationPlan, now: datetime) -> list[Recommendation]:
    critical = [a for a in plan.allocations if a.priority == AllocationPriority.CRITICAL]
    high = [a for a in plan.allocations if a.priority == AllocationPriority.HIGH]
    attention = (critical + high)[:3]
    if not attention:
        return []

    def first_reason(allocation) -> str:
        return allocation.reasons[0] if allocation.reasons else "Regular study"

    return [_recommendation(
        user_id, now, RecommendationType.SUBJECT_PRIORITY, _HIGH if critical else _MEDIUM,
        f"{len(attention)} Subjects Need Priority Attention",
        "; ".join(f"{a.subject_name}: {first_reason(a)}" for a in attention),
        rationale="Based on performance gaps, deadlines, and time since last study",
        expected_outcome="Balanced progress across all subjects",
        action_items=[
            f"{a.subject_name}: {a.recommended_hours:.1f} hours/week (currently {a.current_hours:.1f})"
            for a in attention
        ],
        confidence=85,
        evidence=[first_reason(a) for a in attention],
        tags=["subject_allocation", "time_management"],
    )]


def review_recommendation(user_id: str, reminders: Sequence[ReviewReminder], now: datetime) -> list[Recommendation]:
    urgent = [r for r in reminders if r.priority == "urgent"]
    if not urgent:
        return []
    total = sum(len(r.items) for r in urgent)
    return [_recommendation(
        user_id, now, RecommendationType.RETENTION, _URGENT,
        f"{total} Topics Need Immediate Review",
        "; ".join(r.description for r in urgent),
        rationale="Topics at high risk of being forgotten based on spaced repetition intervals",
        expected_outcome="Prevent knowledge loss, strengthen long-term retention",
        action_items=[f"Review: {item.topic_name}" for r in urgent for item in r.items[:5]],
        confidence=95,
        evidence=[r.title for r in urgent],
        tags=["spaced_repetition", "retention", "urgent"],
    )]


# --- Ranking and summary ---

def dedupe(recommendations: Sequence[Recommendation]) -> list[Recommendation]:
    """Keep the first recommendation for each (type, title)."""
    seen = set()
    unique = []
    for rec in recommendations:
        key = (rec.type, rec.title)
        if key in seen:
            continue
        seen.add(key)
        unique.append(rec)
    return unique


def rank(recommendations: Sequence[Recommendation]) -> list[Recommendation]:
    """Stable sort by priority; equal priorities keep discovery order."""
    return sorted(recommendations, key=lambda r: config.SYNTH_PRIORITY_ORDER[r.priority.value])


def summarize(
    recommendations: Sequence[Recommendation],
    burnout: Optional[BurnoutAssessment] = None,
) -> RecommendationSummary:
    urgent = sum(1 for r in recommendations if r.priority == _URGENT)
    high = sum(1 for r in recommendations if r.priority == _HIGH)
    burnout_severity = burnout.severity if burnout else None

    if urgent >= 2 or burnout_severity == BurnoutSeverity.CRITICAL:
        health = OverallHealth.CRITICAL
    elif urgent == 1 or burnout_severity == BurnoutSeverity.HIGH:
        health = OverallHealth.NEEDS_ATTENTION
    elif high > 2:
        health = OverallHealth.FAIR
    elif len(recommendations) <= 2:
        health = OverallHealth.EXCELLENT
    else:
        health = OverallHealth.GOOD

    return RecommendationSummary(
        critical_issues=urgent,
        optimization_opportunities=sum(1 for r in recommendations if r.type == RecommendationType.OPTIMIZATION),
        strengths_identified=sum(
            1 for r in recommendations if "effective" in r.description or "optimal" in r.description
        ),
        overall_health=health,
    )


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [_dump(v) for v in value]
    if isinstance(value, dict):
        return {k: _dump(v) for k, v in value.items()}
    return value


def _run_sources(sources: dict[str, Callable[[], Any]], max_workers: int) -> tuple[dict[str, Any], list[str]]:
    """Run independent analyses concurrently, isolating failures per source."""
    results: dict[str, Any] = {}
    failed: list[str] = []
    if not sources:
        return results, failed
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(sources)))) as pool:
        futures = {name: pool.submit(fn) for name, fn in sources.items()}
        for name, future in futures.items():
            try:
                results[name] = future.result()
            except Exception as e:
                logger.warning("%s analysis failed: %s", name, e, exc_info=True)
                failed.append(name)
                results[name] = None
    return results, failed


def generate_recommendations(
    store: StudyStore,
    user_id: str,
    subject_id: Optional[str] = None,
    now: Optional[datetime] = None,
    available_weekly_hours: float = config.ALLOCATION_DEFAULT_WEEKLY_HOURS,
    retention_threshold: float = config.SR_AT_RISK_THRESHOLD,
    max_workers: Optional[int] = None,
) -> RecommendationBundle:
    """Synthesize every available signal into a ranked recommendation bundle."""
    now = to_utc(now) if now is not None else datetime.now(timezone.utc)
    conn = store.connect()
    try:
        counts = data_availability(conn, user_id)
    finally:
        conn.close()

    sources: dict[str, Callable[[], Any]] = {
        "subject_insights": lambda: load_subject_insights(store, user_id),
        "goals": lambda: load_goals(store, user_id),
        "review_reminders": lambda: generate_review_reminders(store, user_id, now=now),
        "items_due": lambda: items_due_for_review(store, user_id, subject_id, now=now),
        "topics_at_risk": lambda: topics_at_risk(store, user_id, retention_threshold, now=now),
    }
    if counts["sessions"] >= config.SYNTH_MIN_SESSIONS:
        sources["burnout"] = lambda: assess_burnout_risk(store, user_id, now=now, persist=False)
        sources["focus_trend"] = lambda: analyze_focus_trend(store, user_id, now=now)
        sources["hours_trend"] = lambda: analyze_study_hours_trend(store, user_id, now=now)
        if subject_id:
            sources["duration"] = lambda: analyze_optimal_duration(store, user_id, subject_id)
    if counts["assessments"] >= config.SYNTH_MIN_ASSESSMENTS:
        sources["performance_trend"] = lambda: analyze_performance_trend(store, user_id, now=now)
        if counts["sessions"] >= config.SYNTH_MIN_SESSIONS:
            sources["correlations"] = lambda: analyze_correlations(store, user_id, subject_id)
    if counts["sessions"] >= config.SYNTH_MIN_PROFILE_SESSIONS:
        sources["learning_profile"] = lambda: generate_learning_profile(store, user_id, now=now, persist=False)
    if counts["subjects"] >= config.SYNTH_MIN_SUBJECTS:
        sources["allocation"] = lambda: generate_allocation_plan(store, user_id, available_weekly_hours, now=now)
    if counts["sessions"] >= config.SYNTH_MIN_PATTERN_SESSIONS:
        sources["session_patterns"] = lambda: session_patterns(store, user_id, now)

    skipped = sorted(
        {"burnout", "focus_trend", "hours_trend", "performance_trend", "correlations",
         "learning_profile", "allocation", "session_patterns"} - set(sources)
    )
    if skipped:
        logger.debug("Skipped for %s (not enough data): %s", user_id, ", ".join(skipped))

    results, failed = _run_sources(sources, max_workers or config.SYNTH_MAX_WORKERS)
    get = results.get

    recs: list[Recommendation] = []
    if get("subject_insights"):
        recs += subject_recommendations(user_id, get("subject_insights"), now)
    if get("goals") is not None:
        recs += goal_recommendations(user_id, get("goals"), now)
    if get("session_patterns"):
        recs += session_pattern_recommendations(user_id, get("session_patterns"), now)
    if get("burnout"):
        recs += burnout_recommendation(user_id, get("burnout"), now)
    if get("performance_trend"):
        recs += performance_trend_recommendation(user_id, get("performance_trend"), get("hours_trend"), now)
    if get("learning_profile"):
        recs += learning_style_recommendation(user_id, get("learning_profile"), now)
    if get("duration"):
        recs += duration_recommendation(user_id, get("duration"), now)
    if get("correlations"):
        recs += correlation_recommendations(user_id, get("correlations"), now)
    if get("allocation"):
        recs += allocation_recommendation(user_id, get("allocation"), now)
    if get("review_reminders"):
        recs += review_recommendation(user_id, get("review_reminders"), now)
    if get("focus_trend"):
        recs += focus_trend_recommendation(user_id, get("focus_trend"), now)

    ranked = rank(dedupe(recs))
    logger.info("Generated %d recommendations for %s", len(ranked), user_id)
    return RecommendationBundle(
        user_id=user_id,
        generated_at=now,
        recommendations=ranked,
        insights={
            "data_availability": counts,
            "burnout": _dump(get("burnout")),
            "performance": {
                "focus": _dump(get("focus_trend")),
                "performance": _dump(get("performance_trend")),
                "hours": _dump(get("hours_trend")),
            },
            "correlations": _dump(get("correlations")),
            "learning_style": _dump(get("learning_profile")),
            "subject_allocation": _dump(get("allocation")),
            "spaced_repetition": {
                "reminders": _dump(get("review_reminders") or []),
                "items_due": _dump(get("items_due") or []),
                "topics_at_risk": _dump(get("topics_at_risk") or []),
            },
        },
        summary=summarize(ranked, get("burnout")),
        failed_sources=failed,
    )


# --- Persistence ---

def store_recommendations(store: StudyStore, bundle: RecommendationBundle) -> int:
    """Persist a bundle's recommendations as pending. Returns the count stored."""
    conn = store.connect()
    try:
        for rec in bundle.recommendations:
            conn.execute(
                """INSERT INTO recommendations
                (id, user_id, type, priority, title, description, rationale,
                 expected_outcome, action_items, confidence, evidence, tags,
                 status, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending', ?)""",
                (
                    rec.id, rec.user_id, rec.type.value, rec.priority.value,
                    rec.title, rec.description, rec.rationale, rec.expected_outcome,
                    json.dumps(list(rec.action_items)), rec.confidence,
                    json.dumps(list(rec.evidence)), json.dumps(list(rec.tags)),
                    iso(rec.created_at),
                ),
            )
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
    return len(bundle.recommendations)


def _parse_recommendation_row(row) -> Recommendation:
    return Recommendation(
        id=row["id"],
        user_id=row["user_id"],
        type=row["type"],
        priority=row["priority"],
        title=row["title"],
        description=row["description"],
        rationale=row["rationale"],
        expected_outcome=row["expected_outcome"],
        action_items=json.loads(row["action_items"]),
        confidence=row["confidence"],
        evidence=json.loads(row["evidence"]),
        tags=json.loads(row["tags"]),
        created_at=parse_dt(row["created_at"]),
    )


def active_recommendations(
    store: StudyStore,
    user_id: str,
    limit: int = 10,
    now: Optional[datetime] = None,
) -> list[Recommendation]:
    """Pending recommendations from the last week, by priority then newest."""
    now = to_utc(now) if now is not None else datetime.now(timezone.utc)
    conn = store.connect()
    try:
        rows = conn.execute(
            """SELECT * FROM recommendations
            WHERE user_id = ? AND status = 'pending' AND created_at >= ?
            ORDER BY CASE priority
                WHEN 'urgent' THEN 0 WHEN 'high' THEN 1 WHEN 'medium' THEN 2 ELSE 3 END,
                created_at DESC
            LIMIT ?""",
            (user_id, iso(now - timedelta(days=config.SYNTH_ACTIVE_DAYS)), limit),
        ).fetchall()
    finally:
        conn.close()
    return [_parse_recommendation_row(r) for r in rows]


def mark_recommendation_completed(
    store: StudyStore,
    recommendation_id: str,
    feedback: Optional[str] = None,
) -> None:
    """Mark a stored recommendation completed, with optional helpful/not_helpful feedback."""
    if feedback is not None and feedback not in ("helpful", "not_helpful"):
        raise ValueError("Invalid feedback. Must be one of: helpful, not_helpful")
    conn = store.connect()
    try:
        cursor = conn.execute(
            """UPDATE recommendations
            SET status = 'completed', user_feedback = ?, completed_at = ?
            WHERE id = ?""",
            (feedback, now_iso(), recommendation_id),
        )
        conn.commit()
        if cursor.rowcount == 0:
            raise ValueError(f"Recommendation not found: {recommendation_id}")
    finally:
        conn.close()
