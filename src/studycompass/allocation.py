"""Weekly study-time allocation across subjects.

Every active subject gets a 0-100 need score from recency, performance gap,
difficulty, exam proximity, and pending reviews. The weekly hour budget is
split in proportion to need weighted by exam urgency, then sliced into
short blocks spread over the week.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Sequence

import numpy as np

from .config import (
    ALLOCATION_BLOCK_HOURS,
    ALLOCATION_DEADLINE_BUCKETS,
    ALLOCATION_DEFAULT_TARGET_PERFORMANCE,
    ALLOCATION_DEFAULT_WEEKLY_HOURS,
    ALLOCATION_DIFFICULTY_POINTS,
    ALLOCATION_EXCEEDING_TARGET_PENALTY,
    ALLOCATION_GAP_POINTS,
    ALLOCATION_NEVER_STUDIED_POINTS,
    ALLOCATION_PRIORITY_CUTOFFS,
    ALLOCATION_RECENCY_POINTS,
    ALLOCATION_REVIEW_WINDOW_DAYS,
    WEEKDAYS,
)
from .db import (
    StudyStore,
    fetch_assessments,
    fetch_sessions,
    last_studied_by_subject,
    list_active_subjects,
    list_review_items,
    to_utc,
)
from .models import (
    AllocationPlan,
    AllocationPriority,
    DifficultyTier,
    ScheduleBlock,
    SubjectAllocation,
    SubjectProfile,
)

logger = logging.getLogger(__name__)

_DIFFICULTY_REASONS = {
    DifficultyTier.VERY_HARD: "Very difficult subject needs more time",
    DifficultyTier.HARD: "Difficult subject",
}

# Remaining hours below this are float noise, not a block
_HOURS_EPSILON = 1e-9


def _now(now: Optional[datetime]) -> datetime:
    return to_utc(now) if now is not None else datetime.now(timezone.utc)


def _whole_days(delta: timedelta) -> int:
    return math.floor(delta.total_seconds() / 86400)


def days_until_exam(exam_date: Optional[date], now: datetime) -> Optional[int]:
    if exam_date is None:
        return None
    exam = datetime(exam_date.year, exam_date.month, exam_date.day, tzinfo=timezone.utc)
    return _whole_days(exam - now)


def deadline_factor(days_left: Optional[int]) -> tuple[int, float]:
    """(need points, urgency factor) for an exam `days_left` away.

    Past or absent exams contribute nothing.
    """
    if days_left is None or days_left < 0:
        return 0, 1.0
    for max_days, points, urgency in ALLOCATION_DEADLINE_BUCKETS:
        if days_left <= max_days:
            return points, urgency
    return 0, 1.0


def priority_for(score: float) -> AllocationPriority:
    for cutoff, name in ALLOCATION_PRIORITY_CUTOFFS:
        if score >= cutoff:
            return AllocationPriority(name)
    return AllocationPriority.LOW


def need_score(
    subject: SubjectProfile,
    now: datetime,
    last_studied: Optional[datetime] = None,
    current_performance: Optional[float] = None,
    reviews_due: int = 0,
) -> tuple[float, list[str]]:
    """Additive need score clamped to [0, 100], with the reasons behind it."""
    score = 0
    reasons: list[str] = []

    # Recency
    if last_studied is not None:
        days_since = _whole_days(now - last_studied)
        for min_days, points in ALLOCATION_RECENCY_POINTS:
            if days_since >= min_days:
                score += points
                if min_days == ALLOCATION_RECENCY_POINTS[0][0]:
                    reasons.append(f"Not studied in {days_since} days (urgency high)")
                else:
                    reasons.append(f"Last studied {days_since} days ago")
                break
    else:
        score += ALLOCATION_NEVER_STUDIED_POINTS
        reasons.append("Never studied before")

    # Performance gap
    target = subject.target_performance or ALLOCATION_DEFAULT_TARGET_PERFORMANCE
    gap = target - (current_performance or 0.0)
    for min_gap, points in ALLOCATION_GAP_POINTS:
        if gap > min_gap:
            score += points
            suffix = " performance" if min_gap == ALLOCATION_GAP_POINTS[0][0] else ""
            reasons.append(f"{gap:.0f}% below target{suffix}")
            break
    else:
        if gap < -5:
            score += ALLOCATION_EXCEEDING_TARGET_PENALTY
            reasons.append("Exceeding target (maintenance mode)")

    # Difficulty
    score += ALLOCATION_DIFFICULTY_POINTS[subject.difficulty.value]
    if subject.difficulty in _DIFFICULTY_REASONS:
        reasons.append(_DIFFICULTY_REASONS[subject.difficulty])

    # Deadline
    days_left = days_until_exam(subject.next_exam_date, now)
    points, _ = deadline_factor(days_left)
    if points:
        score += points
        if points == ALLOCATION_DEADLINE_BUCKETS[0][1]:
            reasons.append(f"Exam in {days_left} days - critical preparation")
        else:
            reasons.append(f"Exam in {days_left} days")

    # Forgetting risk
    if reviews_due > 5:
        score += 10
        reasons.append(f"{reviews_due} topics need review")
    elif reviews_due > 0:
        score += 5
        reasons.append(f"{reviews_due} topics need review")

    return float(max(0, min(100, score))), reasons


def distribute_hours(allocations: list[SubjectAllocation], available_hours: float) -> list[SubjectAllocation]:
    """Split `available_hours` by need x urgency. A zero total allocates nothing."""
    weights = [a.need_score * a.urgency_factor for a in allocations]
    total = sum(weights)
    if total <= 0:
        return allocations
    result = []
    for allocation, weight in zip(allocations, weights):
        hours = weight / total * available_hours
        result.append(allocation.model_copy(update={
            "recommended_hours": hours,
            "gap": hours - allocation.current_hours,
        }))
    return result


def build_weekly_schedule(allocations: Sequence[SubjectAllocation]) -> dict[str, list[ScheduleBlock]]:
    """Slice each subject's hours into blocks, one block per day in turn.

    Subjects are taken in the given order; the day cursor keeps advancing
    across subjects so blocks rotate Monday through Sunday.
    """
    schedule: dict[str, list[ScheduleBlock]] = {day: [] for day in WEEKDAYS}
    current_day = 0
    for allocation in allocations:
        remaining = allocation.recommended_hours
        window = "morning" if allocation.priority == AllocationPriority.CRITICAL else "flexible"
        reason = allocation.reasons[0] if allocation.reasons else "Regular study"
        while remaining > _HOURS_EPSILON:
            duration = min(ALLOCATION_BLOCK_HOURS, remaining)
            schedule[WEEKDAYS[current_day % 7]].append(ScheduleBlock(
                subject_id=allocation.subject_id,
                subject_name=allocation.subject_name,
                duration_hours=duration,
                time_window=window,
                reason=reason,
            ))
            remaining -= duration
            current_day += 1
    return schedule


def _subject_inputs(store: StudyStore, user_id: str, now: datetime):
    """Everything the allocator reads, in one connection."""
    review_horizon = (now + timedelta(days=ALLOCATION_REVIEW_WINDOW_DAYS)).date()
    conn = store.connect()
    try:
        subjects = list_active_subjects(conn, user_id)
        last_studied = last_studied_by_subject(conn, user_id)
        week_sessions = fetch_sessions(conn, user_id, since=now - timedelta(days=7))
        assessments = fetch_assessments(conn, user_id, since=now - timedelta(days=90))
        reviews = list_review_items(conn, user_id, status="active")
    finally:
        conn.close()

    current_hours: dict[str, float] = {}
    for session in week_sessions:
        if session.subject_id:
            current_hours[session.subject_id] = current_hours.get(session.subject_id, 0.0) + session.duration_minutes / 60

    scores_by_subject: dict[str, list[float]] = {}
    for assessment in assessments:
        scores_by_subject.setdefault(assessment.subject_id, []).append(assessment.percentage)

    due_counts: dict[str, int] = {}
    for item in reviews:
        if item.next_review_date.date() <= review_horizon:
            due_counts[item.subject_id] = due_counts.get(item.subject_id, 0) + 1

    return subjects, last_studied, current_hours, scores_by_subject, due_counts


def generate_allocation_plan(
    store: StudyStore,
    user_id: str,
    available_weekly_hours: float = ALLOCATION_DEFAULT_WEEKLY_HOURS,
    now: Optional[datetime] = None,
) -> AllocationPlan:
    """Need-weighted weekly plan for all active subjects."""
    if available_weekly_hours < 0:
        raise ValueError(f"Available weekly hours must be >= 0, got {available_weekly_hours}")
    now = _now(now)
    subjects, last_studied, current_hours, scores, due_counts = _subject_inputs(store, user_id, now)

    allocations = []
    for subject in subjects:
        performance = subject.current_performance
        if performance is None and scores.get(subject.id):
            performance = float(np.mean(scores[subject.id]))
        score, reasons = need_score(
            subject, now,
            last_studied=last_studied.get(subject.id),
            current_performance=performance,
            reviews_due=due_counts.get(subject.id, 0),
        )
        _, urgency = deadline_factor(days_until_exam(subject.next_exam_date, now))
        allocations.append(SubjectAllocation(
            subject_id=subject.id,
            subject_name=subject.name,
            need_score=score,
            current_hours=current_hours.get(subject.id, 0.0),
            priority=priority_for(score),
            urgency_factor=urgency,
            reasons=reasons,
            next_deadline=subject.next_exam_date,
        ))

    allocations = distribute_hours(allocations, available_weekly_hours)
    allocations.sort(key=lambda a: a.need_score, reverse=True)
    logger.debug("Allocated %.1fh across %d subjects for %s", available_weekly_hours, len(allocations), user_id)
    return AllocationPlan(
        total_available_hours=available_weekly_hours,
        allocations=allocations,
        weekly_schedule=build_weekly_schedule(allocations),
    )


def subject_priorities(
    store: StudyStore,
    user_id: str,
    available_weekly_hours: float = ALLOCATION_DEFAULT_WEEKLY_HOURS,
    now: Optional[datetime] = None,
) -> list[dict]:
    """Critical and high priority subjects with a suggested action."""
    plan = generate_allocation_plan(store, user_id, available_weekly_hours, now)
    return [
        {
            "subject_id": a.subject_id,
            "subject_name": a.subject_name,
            "priority": a.priority.value,
            "message": "; ".join(a.reasons),
            "action": (
                f"Increase study time by {a.gap:.1f} hours this week"
                if a.gap > 0
                else f"Maintain {a.recommended_hours:.1f} hours/week"
            ),
        }
        for a in plan.allocations
        if a.priority in (AllocationPriority.CRITICAL, AllocationPriority.HIGH)
    ]


def neglected_subjects(
    store: StudyStore,
    user_id: str,
    days_threshold: int = 5,
    now: Optional[datetime] = None,
) -> list[dict]:
    """Active subjects not studied for `days_threshold` days, never-studied first."""
    now = _now(now)
    conn = store.connect()
    try:
        subjects = list_active_subjects(conn, user_id)
        last_studied = last_studied_by_subject(conn, user_id)
    finally:
        conn.close()

    neglected = []
    for subject in subjects:
        last = last_studied.get(subject.id)
        if last is not None and (now - last).total_seconds() / 86400 < days_threshold:
            continue
        days_since = _whole_days(now - last) if last is not None else 999
        if days_since >= 14:
            advice = "Critical: Schedule a review session immediately"
        elif days_since >= 7:
            advice = "High Priority: Study within next 2 days"
        else:
            advice = "Moderate: Include in this week's schedule"
        neglected.append({
            "subject_id": subject.id,
            "subject_name": subject.name,
            "days_since_last_study": days_since,
            "recommendation": advice,
            "_last": last,
        })

    neglected.sort(key=lambda n: (n["_last"] is not None, n["_last"] or now))
    for entry in neglected:
        del entry["_last"]
    return neglected


def balance_cognitive_load(blocks: Sequence[dict]) -> list[dict]:
    """Annotate a day's ordered blocks with fatigue warnings.

    Each block is a dict with `subject_name`, `difficulty`, and `duration`
    (hours). Back-to-back hard subjects and blocks over two hours get a
    `warning`; the long-session warning wins when both apply.
    """
    hard = {DifficultyTier.HARD.value, DifficultyTier.VERY_HARD.value}
    balanced = [dict(block) for block in blocks]
    for i, block in enumerate(balanced):
        following = balanced[i + 1] if i + 1 < len(balanced) else None
        if following and block["difficulty"] in hard and following["difficulty"] in hard:
            block["warning"] = "Consider alternating with an easier subject to prevent mental fatigue"
        if block["duration"] > 2:
            block["warning"] = "Session too long - consider breaking into 2 shorter sessions with break"
    return balanced
