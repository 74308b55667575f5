"""Forgetting-curve review scheduling.

Each topic carries a memory strength S in days. Estimated retention after t
days without review is 100 * exp(-t / S). Reviews are scheduled for the day
retention is predicted to reach SR_TARGET_RETENTION, and each logged review
multiplies S by a factor depending on how the review went.
"""

from __future__ import annotations

import logging
import math
import uuid
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Optional

from .config import (
    SR_AT_RISK_THRESHOLD,
    SR_BASE_STRENGTH_DAYS,
    SR_CRITICAL_RETENTION,
    SR_DUE_LIMIT,
    SR_MASTERY_MIN_CONFIDENCE,
    SR_MASTERY_WINDOW,
    SR_MAX_INITIAL_STRENGTH,
    SR_MAX_STRENGTH,
    SR_MIN_STRENGTH,
    SR_REMINDER_RISK_THRESHOLD,
    SR_STRENGTH_MULTIPLIERS,
    SR_TARGET_RETENTION,
)
from .db import (
    StudyStore,
    get_review_item,
    insert_review_item,
    list_review_items,
    to_utc,
    update_review_item,
)
from .models import (
    ItemStatus,
    ReviewEvent,
    ReviewItem,
    ReviewItemCreate,
    ReviewLog,
    ReviewReminder,
    ReviewResult,
)

logger = logging.getLogger(__name__)

_SUCCESSFUL_RESULTS = {ReviewResult.EASY, ReviewResult.GOOD}


def _generate_id() -> str:
    return uuid.uuid4().hex[:12]


def _now(now: Optional[datetime]) -> datetime:
    return to_utc(now) if now is not None else datetime.now(timezone.utc)


# --- Curve math ---

def calculate_retention(days_since_study: float, memory_strength: float) -> float:
    """Estimated retention percentage, clamped to [0, 100]."""
    if memory_strength <= 0:
        raise ValueError(f"Memory strength must be positive, got {memory_strength}")
    retention = math.exp(-days_since_study / memory_strength) * 100
    return max(0.0, min(100.0, retention))


def initial_memory_strength(confidence: int, difficulty: int) -> float:
    """Seed strength from self-rated confidence (1-10) and difficulty (1-5)."""
    strength = SR_BASE_STRENGTH_DAYS * (confidence / 10) * ((6 - difficulty) / 5)
    return max(SR_MIN_STRENGTH, min(SR_MAX_INITIAL_STRENGTH, strength))


def calculate_next_review_date(
    last_study: datetime,
    memory_strength: float,
    target_retention: float = SR_TARGET_RETENTION,
) -> datetime:
    """Date at which retention decays to `target_retention`, rounded up to whole days."""
    days_until_review = -memory_strength * math.log(target_retention / 100)
    return last_study + timedelta(days=math.ceil(days_until_review))


def update_memory_strength(current_strength: float, result: ReviewResult | str) -> float:
    """Scale strength by the multiplier for `result`, clamped to [1, 90]."""
    result = ReviewResult(result)
    new_strength = current_strength * SR_STRENGTH_MULTIPLIERS[result.value]
    return max(SR_MIN_STRENGTH, min(SR_MAX_STRENGTH, new_strength))


def is_mastered(history: list[ReviewEvent]) -> bool:
    """True when the last SR_MASTERY_WINDOW reviews were all easy/good at high confidence."""
    recent = history[-SR_MASTERY_WINDOW:]
    return len(recent) >= SR_MASTERY_WINDOW and all(
        event.result in _SUCCESSFUL_RESULTS
        and event.confidence >= SR_MASTERY_MIN_CONFIDENCE
        for event in recent
    )


def days_since_study(item: ReviewItem, now: Optional[datetime] = None) -> int:
    """Whole days since the last review, or since first study if never reviewed."""
    reference = item.last_review_date or item.initial_study_date
    elapsed = _now(now) - reference
    return math.floor(elapsed.total_seconds() / 86400)


def with_retention(item: ReviewItem, now: Optional[datetime] = None) -> ReviewItem:
    """Copy of `item` with its current retention estimate filled in."""
    retention = calculate_retention(max(0, days_since_study(item, now)), item.memory_strength)
    return item.model_copy(update={"retention_estimate": retention})


# --- Store-backed operations ---

def schedule_review(
    store: StudyStore,
    user_id: str,
    subject_id: str,
    topic: str,
    confidence: int,
    difficulty: int = 3,
    chapter_reference: str = "",
    now: Optional[datetime] = None,
) -> ReviewItem:
    """Start tracking a newly studied topic.

    Raises ValueError when confidence is outside 1-10, difficulty outside
    1-5, or the topic is empty.
    """
    data = ReviewItemCreate(
        subject_id=subject_id,
        topic_name=topic,
        confidence=confidence,
        difficulty=difficulty,
        chapter_reference=chapter_reference,
    )
    studied_at = _now(now)
    strength = initial_memory_strength(data.confidence, data.difficulty)
    item = ReviewItem(
        id=_generate_id(),
        user_id=user_id,
        subject_id=data.subject_id,
        topic_name=data.topic_name,
        chapter_reference=data.chapter_reference,
        initial_study_date=studied_at,
        memory_strength=strength,
        initial_confidence=data.confidence,
        difficulty_level=data.difficulty,
        next_review_date=calculate_next_review_date(studied_at, strength),
    )

    conn = store.connect()
    try:
        insert_review_item(conn, item)
    finally:
        conn.close()

    logger.info(
        "Scheduled review item %s (%s), S=%.2f, next review %s",
        item.id, item.topic_name, strength, item.next_review_date.date(),
    )
    return item


def record_review(
    store: StudyStore,
    item_id: str,
    confidence: int,
    time_spent: float,
    result: ReviewResult | str,
    now: Optional[datetime] = None,
) -> ReviewItem:
    """Log a review of an active item and reschedule it.

    Read, update, and write happen inside one immediate transaction so two
    concurrent reviews of the same item are serialized.
    """
    log = ReviewLog(confidence=confidence, time_spent_minutes=time_spent, result=result)
    reviewed_at = _now(now)

    conn = store.connect()
    try:
        conn.execute("BEGIN IMMEDIATE")
        item = get_review_item(conn, item_id)
        if item is None:
            raise ValueError(f"Review item not found: {item_id}")
        if item.status != ItemStatus.ACTIVE:
            raise ValueError(
                f"Review item {item_id} is {item.status.value}; only active items can be reviewed"
            )

        strength = update_memory_strength(item.memory_strength, log.result)
        history = item.history + [ReviewEvent(
            date=reviewed_at,
            confidence=log.confidence,
            time_spent=log.time_spent_minutes,
            result=log.result,
        )]
        status = ItemStatus.MASTERED if is_mastered(history) else ItemStatus.ACTIVE

        updated = item.model_copy(update={
            "memory_strength": strength,
            "next_review_date": calculate_next_review_date(reviewed_at, strength),
            "review_count": item.review_count + 1,
            "last_review_date": reviewed_at,
            "last_review_confidence": log.confidence,
            "status": status,
            "history": history,
        })
        update_review_item(conn, updated, commit=False)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

    if status == ItemStatus.MASTERED:
        logger.info("Review item %s (%s) mastered", item_id, updated.topic_name)
    return updated


def set_item_status(store: StudyStore, item_id: str, status: ItemStatus | str) -> ReviewItem:
    """Pause or resume an item. Mastered items cannot change status."""
    status = ItemStatus(status)
    if status == ItemStatus.MASTERED:
        raise ValueError("Items become mastered only through reviews")

    conn = store.connect()
    try:
        item = get_review_item(conn, item_id)
        if item is None:
            raise ValueError(f"Review item not found: {item_id}")
        if item.status == ItemStatus.MASTERED:
            raise ValueError(f"Review item {item_id} is mastered")
        updated = item.model_copy(update={"status": status})
        update_review_item(conn, updated)
        return updated
    finally:
        conn.close()


def items_due_for_review(
    store: StudyStore,
    user_id: str,
    subject_id: Optional[str] = None,
    now: Optional[datetime] = None,
    limit: int = SR_DUE_LIMIT,
) -> list[ReviewItem]:
    """Active items whose next review date is today or earlier, soonest first."""
    current = _now(now)
    conn = store.connect()
    try:
        items = list_review_items(conn, user_id, status=ItemStatus.ACTIVE.value, subject_id=subject_id)
    finally:
        conn.close()
    due = [item for item in items if item.next_review_date.date() <= current.date()]
    return [with_retention(item, current) for item in due[:limit]]


def topics_at_risk(
    store: StudyStore,
    user_id: str,
    threshold: float = SR_AT_RISK_THRESHOLD,
    now: Optional[datetime] = None,
) -> list[ReviewItem]:
    """Active items with estimated retention below `threshold`, lowest first."""
    conn = store.connect()
    try:
        items = list_review_items(conn, user_id, status=ItemStatus.ACTIVE.value)
    finally:
        conn.close()
    # Weakest first, so equal retentions keep strength order after the stable sort
    items.sort(key=lambda item: item.memory_strength)
    at_risk = [
        scored for scored in (with_retention(item, now) for item in items)
        if scored.retention_estimate < threshold
    ]
    at_risk.sort(key=lambda item: item.retention_estimate)
    return at_risk


def review_schedule(
    store: StudyStore,
    user_id: str,
    days: int = 7,
    now: Optional[datetime] = None,
) -> OrderedDict[str, list[ReviewItem]]:
    """Active items due within `days`, grouped by ISO due date (overdue included)."""
    end_date = (_now(now) + timedelta(days=days)).date()
    conn = store.connect()
    try:
        items = list_review_items(conn, user_id, status=ItemStatus.ACTIVE.value)
    finally:
        conn.close()

    schedule: OrderedDict[str, list[ReviewItem]] = OrderedDict()
    for item in items:
        due = item.next_review_date.date()
        if due > end_date:
            continue
        schedule.setdefault(due.isoformat(), []).append(item)
    return schedule


def generate_review_reminders(
    store: StudyStore,
    user_id: str,
    now: Optional[datetime] = None,
) -> list[ReviewReminder]:
    """Reminders for overdue items and items at critical or moderate risk."""
    due = items_due_for_review(store, user_id, now=now)
    at_risk = topics_at_risk(store, user_id, SR_REMINDER_RISK_THRESHOLD, now=now)

    reminders = []
    if due:
        reminders.append(ReviewReminder(
            priority="urgent",
            title=f"{len(due)} Overdue Reviews",
            description="These topics need immediate review to prevent forgetting",
            items=due,
        ))

    critical = [item for item in at_risk if item.retention_estimate < SR_CRITICAL_RETENTION]
    if critical:
        reminders.append(ReviewReminder(
            priority="high",
            title=f"{len(critical)} Topics at Critical Risk",
            description="Retention below 40% - review urgently to avoid relearning",
            items=critical,
        ))

    moderate = [
        item for item in at_risk
        if SR_CRITICAL_RETENTION <= item.retention_estimate < SR_AT_RISK_THRESHOLD
    ]
    if moderate:
        reminders.append(ReviewReminder(
            priority="medium",
            title=f"{len(moderate)} Topics Need Attention",
            description="Retention dropping - review soon to maintain mastery",
            items=moderate,
        ))
    return reminders
