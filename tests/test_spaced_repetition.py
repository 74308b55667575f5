"""Tests for the forgetting-curve scheduler."""

import math
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from studycompass.spaced_repetition import (
    calculate_next_review_date,
    calculate_retention,
    days_since_study,
    generate_review_reminders,
    initial_memory_strength,
    is_mastered,
    items_due_for_review,
    record_review,
    review_schedule,
    schedule_review,
    set_item_status,
    topics_at_risk,
    update_memory_strength,
)
from studycompass.models import ItemStatus, ReviewEvent, ReviewResult


class TestRetention:
    def test_no_time_elapsed(self):
        assert calculate_retention(0, 5.0) == 100.0

    def test_one_strength_period(self):
        assert calculate_retention(5, 5.0) == pytest.approx(100 / math.e)

    def test_never_negative(self):
        assert calculate_retention(10_000, 1.0) >= 0.0

    def test_monotonic_in_time(self):
        values = [calculate_retention(t, 4.0) for t in range(0, 30)]
        assert values == sorted(values, reverse=True)

    def test_zero_strength_rejected(self):
        with pytest.raises(ValueError):
            calculate_retention(1, 0)


class TestInitialStrength:
    def test_confidence_eight_difficulty_two(self):
        assert initial_memory_strength(8, 2) == pytest.approx(1.92)

    def test_lower_bound(self):
        assert initial_memory_strength(1, 5) == 1.0

    def test_upper_bound_never_exceeded(self):
        for confidence in range(1, 11):
            for difficulty in range(1, 6):
                assert 1.0 <= initial_memory_strength(confidence, difficulty) <= 7.0


class TestNextReviewDate:
    def test_rounds_up_to_whole_day(self):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        # -1.92 * ln(0.75) = 0.55 days
        assert calculate_next_review_date(start, 1.92) == start + timedelta(days=1)

    def test_longer_strength_later_review(self):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        # -10 * ln(0.75) = 2.88 days
        assert calculate_next_review_date(start, 10.0) == start + timedelta(days=3)


class TestUpdateStrength:
    def test_multipliers(self):
        assert update_memory_strength(4.0, "easy") == 10.0
        assert update_memory_strength(4.0, "good") == 8.0
        assert update_memory_strength(4.0, "hard") == 6.0
        assert update_memory_strength(4.0, "forgot") == 2.0

    def test_clamped_to_bounds(self):
        assert update_memory_strength(80.0, ReviewResult.EASY) == 90.0
        assert update_memory_strength(1.5, ReviewResult.FORGOT) == 1.0

    def test_invalid_result(self):
        with pytest.raises(ValueError):
            update_memory_strength(4.0, "perfect")


def _events(results, confidence=9):
    when = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return [ReviewEvent(date=when, confidence=confidence, result=r) for r in results]


class TestMastery:
    def test_five_good_reviews(self):
        assert is_mastered(_events(["good", "easy", "good", "good", "easy"]))

    def test_needs_five_reviews(self):
        assert not is_mastered(_events(["good"] * 4))

    def test_low_confidence_blocks(self):
        assert not is_mastered(_events(["good"] * 5, confidence=7))

    def test_only_last_five_count(self):
        assert is_mastered(_events(["forgot", "hard"] + ["easy"] * 5))

    def test_hard_in_window_blocks(self):
        assert not is_mastered(_events(["easy"] * 4 + ["hard"]))


class TestScheduleReview:
    def test_creates_item(self, store, now):
        item = schedule_review(store, "u1", "math", "Derivatives", confidence=8, difficulty=2, now=now)
        assert item.memory_strength == pytest.approx(1.92)
        assert item.next_review_date == now + timedelta(days=1)
        assert item.status == ItemStatus.ACTIVE
        assert item.review_count == 0

    def test_invalid_confidence(self, store):
        with pytest.raises(ValidationError):
            schedule_review(store, "u1", "math", "Limits", confidence=11)

    def test_invalid_difficulty(self, store):
        with pytest.raises(ValidationError):
            schedule_review(store, "u1", "math", "Limits", confidence=5, difficulty=0)


class TestRecordReview:
    def test_good_review_doubles_strength(self, store, now):
        item = schedule_review(store, "u1", "math", "Integrals", confidence=8, difficulty=2, now=now)
        later = now + timedelta(days=1)
        updated = record_review(store, item.id, 7, 15, "good", now=later)
        assert updated.memory_strength == pytest.approx(3.84)
        assert updated.review_count == 1
        assert updated.last_review_date == later
        assert updated.last_review_confidence == 7
        assert len(updated.history) == 1
        # -3.84 * ln(0.75) = 1.1 days
        assert updated.next_review_date == later + timedelta(days=2)

    def test_five_strong_reviews_master_item(self, store, now):
        item = schedule_review(store, "u1", "bio", "Cells", confidence=9, difficulty=1, now=now)
        for i in range(5):
            item = record_review(store, item.id, 9, 10, "easy", now=now + timedelta(days=i + 1))
        assert item.status == ItemStatus.MASTERED
        assert item.memory_strength <= 90.0

    def test_mastered_item_rejects_reviews(self, store, now):
        item = schedule_review(store, "u1", "bio", "Cells", confidence=9, difficulty=1, now=now)
        for i in range(5):
            record_review(store, item.id, 9, 10, "good", now=now + timedelta(days=i + 1))
        with pytest.raises(ValueError, match="only active items"):
            record_review(store, item.id, 9, 10, "good", now=now + timedelta(days=10))

    def test_unknown_item(self, store):
        with pytest.raises(ValueError, match="not found"):
            record_review(store, "missing", 5, 10, "good")

    def test_paused_item_rejects_reviews(self, store, now):
        item = schedule_review(store, "u1", "bio", "Cells", confidence=5, now=now)
        set_item_status(store, item.id, "paused")
        with pytest.raises(ValueError):
            record_review(store, item.id, 5, 10, "good", now=now)

    def test_history_persisted(self, store, now):
        item = schedule_review(store, "u1", "bio", "Cells", confidence=5, now=now)
        record_review(store, item.id, 5, 10, "hard", now=now + timedelta(days=1))
        updated = record_review(store, item.id, 6, 12, "good", now=now + timedelta(days=3))
        assert [e.result for e in updated.history] == [ReviewResult.HARD, ReviewResult.GOOD]


class TestItemStatus:
    def test_pause_and_resume(self, store, now):
        item = schedule_review(store, "u1", "bio", "Cells", confidence=5, now=now)
        assert set_item_status(store, item.id, "paused").status == ItemStatus.PAUSED
        assert set_item_status(store, item.id, "active").status == ItemStatus.ACTIVE

    def test_cannot_set_mastered(self, store, now):
        item = schedule_review(store, "u1", "bio", "Cells", confidence=5, now=now)
        with pytest.raises(ValueError):
            set_item_status(store, item.id, "mastered")


class TestQueries:
    def test_days_since_study(self, store, now):
        item = schedule_review(store, "u1", "bio", "Cells", confidence=5, now=now)
        assert days_since_study(item, now + timedelta(days=3, hours=5)) == 3

    def test_due_items(self, store, now):
        first = schedule_review(store, "u1", "math", "Limits", confidence=8, difficulty=2, now=now)
        second = schedule_review(store, "u1", "math", "Series", confidence=10, difficulty=1, now=now)
        assert items_due_for_review(store, "u1", now=now) == []
        due = items_due_for_review(store, "u1", now=now + timedelta(days=1))
        assert {i.id for i in due} == {first.id, second.id}
        assert all(i.retention_estimate is not None for i in due)

    def test_due_respects_limit(self, store, now):
        for topic in ("A", "B", "C"):
            schedule_review(store, "u1", "math", topic, confidence=5, now=now)
        assert len(items_due_for_review(store, "u1", now=now + timedelta(days=2), limit=2)) == 2

    def test_reviewed_item_not_due_yet(self, store, now):
        item = schedule_review(store, "u1", "math", "Limits", confidence=10, difficulty=1, now=now)
        record_review(store, item.id, 9, 10, "easy", now=now + timedelta(days=1))
        # S=7.5 -> next review 3 days after the review
        assert items_due_for_review(store, "u1", now=now + timedelta(days=2)) == []
        assert len(items_due_for_review(store, "u1", now=now + timedelta(days=4))) == 1

    def test_due_filters_subject(self, store, now):
        schedule_review(store, "u1", "math", "Limits", confidence=8, difficulty=2, now=now)
        assert items_due_for_review(store, "u1", subject_id="bio", now=now + timedelta(days=5)) == []

    def test_paused_items_not_due(self, store, now):
        item = schedule_review(store, "u1", "math", "Limits", confidence=8, difficulty=2, now=now)
        set_item_status(store, item.id, "paused")
        assert items_due_for_review(store, "u1", now=now + timedelta(days=5)) == []

    def test_topics_at_risk_sorted(self, store, now):
        weak = schedule_review(store, "u1", "math", "Limits", confidence=1, difficulty=5, now=now)
        strong = schedule_review(store, "u1", "math", "Series", confidence=10, difficulty=1, now=now)
        later = now + timedelta(days=3)
        # S=1 -> 5%, S=3 -> 37%
        assert [i.id for i in topics_at_risk(store, "u1", threshold=60, now=later)] == [weak.id, strong.id]
        assert [i.id for i in topics_at_risk(store, "u1", threshold=30, now=later)] == [weak.id]

    def test_review_schedule_groups_by_day(self, store, now):
        schedule_review(store, "u1", "math", "Limits", confidence=8, difficulty=2, now=now)
        schedule_review(store, "u1", "math", "Sums", confidence=8, difficulty=2, now=now)
        schedule_review(store, "u1", "math", "Series", confidence=10, difficulty=1, now=now)
        schedule = review_schedule(store, "u1", days=7, now=now)
        first_day = (now + timedelta(days=1)).date().isoformat()
        assert list(schedule) == [first_day]
        assert len(schedule[first_day]) == 3
        assert review_schedule(store, "u1", days=0, now=now) == {}

    def test_reminders(self, store, now):
        schedule_review(store, "u1", "math", "Limits", confidence=1, difficulty=5, now=now)
        reminders = generate_review_reminders(store, "u1", now=now + timedelta(days=4))
        priorities = [r.priority for r in reminders]
        assert priorities[0] == "urgent"
        assert "high" in priorities
