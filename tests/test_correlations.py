"""Tests for study behaviour vs. performance correlations."""

import math
from datetime import datetime, timedelta, timezone

import pytest

from studycompass.correlations import (
    active_correlation_patterns,
    analyze_correlations,
    analyze_duration_performance,
    classify_strength,
    confidence_level,
    duration_performance,
    linked_pairs,
    p_value,
    pearson_correlation,
    store_correlation_pattern,
    store_correlation_report,
    study_method_performance,
    time_of_day_performance,
)
from studycompass.models import ActivityRecord, AssessmentRecord, CorrelationStrength
from studycompass.recommendations import generate_recommendations
from studycompass.records import add_subject, log_assessment, log_session


def _session(n, started, duration=45.0, subject_id="math", method=None, focus=7.0):
    return ActivityRecord(
        id=f"s{n}", user_id="u1", subject_id=subject_id, started_at=started,
        duration_minutes=duration, focus_score=focus, study_method=method,
    )


def _pairs(durations, scores, start=datetime(2024, 1, 1, 12, tzinfo=timezone.utc)):
    return [
        (_session(i, start + timedelta(days=i), duration=d), score)
        for i, (d, score) in enumerate(zip(durations, scores))
    ]


class TestPearson:
    def test_known_value(self):
        r = pearson_correlation(list(zip([1, 2, 3, 4, 5], [2, 4, 5, 4, 5])))
        assert r == pytest.approx(6 / math.sqrt(60))

    def test_perfect_lines(self):
        assert pearson_correlation([(1, 10), (2, 20), (3, 30)]) == pytest.approx(1.0)
        assert pearson_correlation([(1, 30), (2, 20), (3, 10)]) == pytest.approx(-1.0)

    def test_no_variance(self):
        assert pearson_correlation([(1, 5), (2, 5), (3, 5)]) == 0.0

    def test_too_few_pairs(self):
        assert pearson_correlation([]) == 0.0
        assert pearson_correlation([(1, 2)]) == 0.0


class TestPValue:
    def test_t_of_1_96_is_five_percent(self):
        # n=27 gives df=25, so t = 5 * 0.392 = 1.96
        r = 0.392 / math.sqrt(1 + 0.392 ** 2)
        assert p_value(r, 27) == pytest.approx(0.05, abs=1e-4)

    def test_small_samples_not_significant(self):
        assert p_value(0.99, 2) == 1.0

    def test_no_correlation(self):
        assert p_value(0.0, 50) == 1.0

    def test_perfect_correlation(self):
        assert p_value(1.0, 10) == 0.0
        assert p_value(-1.0, 10) == 0.0

    def test_more_samples_lower_p(self):
        assert p_value(0.5, 40) < p_value(0.5, 10)

    def test_confidence_level(self):
        assert confidence_level(0.01) == pytest.approx(99.0)


class TestStrength:
    @pytest.mark.parametrize("r,strength", [
        (0.8, CorrelationStrength.VERY_STRONG),
        (0.79, CorrelationStrength.STRONG),
        (0.6, CorrelationStrength.STRONG),
        (0.4, CorrelationStrength.MODERATE),
        (0.39, CorrelationStrength.WEAK),
        (-0.85, CorrelationStrength.VERY_STRONG),
        (0.0, CorrelationStrength.WEAK),
    ])
    def test_cutoffs(self, r, strength):
        assert classify_strength(r) == strength


class TestLinking:
    def test_week_window_newest_first(self, now):
        older = _session(1, now - timedelta(days=20))
        newer = _session(2, now - timedelta(days=5))
        unassigned = _session(3, now - timedelta(days=5), subject_id=None)
        assessments = [
            AssessmentRecord(id="a1", user_id="u1", subject_id="math",
                             assessment_date=now - timedelta(days=15), percentage=70),
            AssessmentRecord(id="a2", user_id="u1", subject_id="math",
                             assessment_date=now - timedelta(days=2), percentage=90),
            AssessmentRecord(id="a3", user_id="u1", subject_id="art",
                             assessment_date=now - timedelta(days=2), percentage=40),
        ]
        pairs = linked_pairs([older, newer, unassigned], assessments)
        assert [(s.id, score) for s, score in pairs] == [("s2", 90), ("s1", 70)]

    def test_assessment_after_a_week_ignored(self, now):
        session = _session(1, now - timedelta(days=10))
        late = AssessmentRecord(id="a1", user_id="u1", subject_id="math",
                                assessment_date=now - timedelta(days=2), percentage=80)
        assert linked_pairs([session], [late]) == []


class TestDurationPerformance:
    def test_longer_sessions_better(self):
        result = duration_performance(_pairs(
            [20 + 10 * i for i in range(8)], [50 + 5 * i for i in range(8)],
        ))
        assert result.coefficient == pytest.approx(1.0)
        assert result.p_value == 0.0
        assert result.confidence_level == 100.0
        assert result.strength == CorrelationStrength.VERY_STRONG
        assert result.description == (
            "Found very_strong positive correlation between study duration "
            "and performance (8 sessions analyzed)"
        )
        assert "55-66 minutes" in result.recommendation

    def test_shorter_sessions_better(self):
        result = duration_performance(_pairs(
            [20 + 10 * i for i in range(8)], [90 - 5 * i for i in range(8)],
        ))
        assert result.strength == CorrelationStrength.VERY_STRONG
        assert "negative" in result.description
        assert "under 44 minutes" in result.recommendation

    def test_needs_eight_pairs(self):
        assert duration_performance(_pairs(
            [20 + 10 * i for i in range(7)], [50 + 5 * i for i in range(7)],
        )) is None

    def test_zero_duration_excluded(self):
        pairs = _pairs([20 + 10 * i for i in range(8)], [50 + 5 * i for i in range(8)])
        pairs[0] = (_session(99, pairs[0][0].started_at, duration=0), 50)
        assert duration_performance(pairs) is None

    def test_not_significant(self):
        result = duration_performance(_pairs(
            [20 + 10 * i for i in range(8)], [70, 60, 80, 50, 50, 80, 60, 70],
        ))
        assert result is None


class TestGroupedPerformance:
    def test_time_windows(self):
        morning = datetime(2024, 6, 3, 9, tzinfo=timezone.utc)
        evening = datetime(2024, 6, 3, 18, tzinfo=timezone.utc)
        pairs = [(_session(i, morning), 90.0) for i in range(5)]
        pairs += [(_session(10 + i, evening), 60.0) for i in range(4)]
        results = time_of_day_performance(pairs)
        assert len(results) == 1
        window = results[0]
        assert window.variable_x == "time_window_morning"
        assert window.coefficient == pytest.approx(0.9)
        assert window.p_value == 0.01
        assert window.confidence_level == 95.0
        assert window.strength == CorrelationStrength.STRONG
        assert window.description == "morning sessions show 90.0% average performance"
        assert window.recommendation == "Prioritize studying during morning hours"

    def test_night_window_wraps_midnight(self):
        late = datetime(2024, 6, 3, 2, tzinfo=timezone.utc)
        results = time_of_day_performance([(_session(i, late), 72.0) for i in range(5)])
        assert results[0].variable_x == "time_window_night"
        assert results[0].strength == CorrelationStrength.MODERATE
        assert results[0].recommendation == "Consider studying during night hours"

    def test_study_methods(self, now):
        pairs = [(_session(i, now, method="reading", focus=None), 70.0) for i in range(3)]
        pairs += [(_session(10 + i, now, method="flashcards", focus=8), 90.0) for i in range(3)]
        pairs += [(_session(20 + i, now, method="summaries"), 99.0) for i in range(2)]
        pairs += [(_session(30, now), 10.0)]
        results = study_method_performance(pairs)
        assert [r.variable_x for r in results] == ["study_method_flashcards", "study_method_reading"]
        best, other = results
        assert best.strength == CorrelationStrength.VERY_STRONG
        assert best.description == "flashcards method: 90.0% avg performance, 8.0/10 focus"
        assert best.recommendation == "Highly effective - flashcards shows excellent results"
        assert other.strength == CorrelationStrength.MODERATE
        assert other.description == "reading method: 70.0% avg performance, 5.0/10 focus"


def _history(store, now):
    subject = add_subject(store, "u1", "Math")
    start = now - timedelta(days=100)
    for i in range(8):
        started = start + timedelta(days=10 * i)
        method = "flashcards" if i < 4 else "reading"
        log_session(store, "u1", started, 20 + 10 * i, subject.id, 7, method)
        log_assessment(store, "u1", subject.id, started + timedelta(days=1), 50 + 5 * i)
    return subject


class TestStoreBacked:
    def test_duration_from_store(self, store, now):
        _history(store, now)
        result = analyze_duration_performance(store, "u1")
        assert result.strength == CorrelationStrength.VERY_STRONG
        assert "55-66 minutes" in result.recommendation

    def test_report(self, store, now):
        subject = _history(store, now)
        report = analyze_correlations(store, "u1", subject.id)
        assert report.duration.sample_size == 8
        assert [w.variable_x for w in report.time_of_day] == ["time_window_afternoon"]
        assert [m.variable_x for m in report.study_methods] == [
            "study_method_reading", "study_method_flashcards",
        ]

    def test_other_users_excluded(self, store, now):
        _history(store, now)
        assert analyze_correlations(store, "u2").duration is None


class TestPatterns:
    def test_store_and_read_back(self, store, now):
        _history(store, now)
        report = analyze_correlations(store, "u1")
        assert store_correlation_report(store, "u1", report, now=now) == 4
        active = active_correlation_patterns(store, "u1")
        assert len(active) == 4
        assert active[0].variable_x == "study_duration"
        assert active[0].coefficient == pytest.approx(1.0)
        assert active[1].variable_x == "time_window_afternoon"

    def test_restore_replaces_previous(self, store, now):
        _history(store, now)
        report = analyze_correlations(store, "u1")
        store_correlation_report(store, "u1", report, now=now)
        store_correlation_report(store, "u1", report, now=now + timedelta(days=1))
        assert len(active_correlation_patterns(store, "u1")) == 4
        conn = store.connect()
        try:
            total = conn.execute("SELECT COUNT(*) AS n FROM correlation_patterns").fetchone()["n"]
        finally:
            conn.close()
        assert total == 8

    def test_subject_filter_includes_user_wide(self, store, now):
        subject = _history(store, now)
        report = analyze_correlations(store, "u1", subject.id)
        store_correlation_pattern(store, "u1", report.duration, subject.id, now=now)
        store_correlation_pattern(store, "u1", report.time_of_day[0], now=now)
        store_correlation_pattern(store, "u1", report.study_methods[0], "other", now=now)
        names = [p.variable_x for p in active_correlation_patterns(store, "u1", subject.id)]
        assert names == ["study_duration", "time_window_afternoon"]

    def test_limit(self, store, now):
        _history(store, now)
        store_correlation_report(store, "u1", analyze_correlations(store, "u1"), now=now)
        assert len(active_correlation_patterns(store, "u1", limit=2)) == 2

    def test_unknown_strength_read_as_weak(self, store):
        conn = store.connect()
        try:
            conn.execute(
                """INSERT INTO correlation_patterns
                (id, user_id, variable_x, variable_y, correlation_coefficient, p_value,
                 sample_size, confidence_level, pattern_strength, pattern_description,
                 recommendation_text, data_start_date, data_end_date, created_at)
                VALUES ('p1', 'u1', 'study_duration', 'performance_score', 1.4, 0.01,
                        10, 99, 'huge', '', '', '2024-05-13', '2024-06-12',
                        '2024-06-12T12:00:00+00:00')"""
            )
            conn.commit()
        finally:
            conn.close()
        (pattern,) = active_correlation_patterns(store, "u1")
        assert pattern.strength == CorrelationStrength.WEAK
        assert pattern.coefficient == 1.0


class TestSynthesizer:
    def test_correlation_recommendations(self, store, now):
        _history(store, now)
        bundle = generate_recommendations(store, "u1", now=now)
        titles = [r.title for r in bundle.recommendations]
        assert "Study Duration Affects Your Scores" in titles
        assert "Most Effective Method: Reading" in titles
        assert "correlations" not in bundle.failed_sources
        assert bundle.insights["correlations"]["duration"]["strength"] == "very_strong"

    def test_skipped_without_assessments(self, store, now):
        for day in range(1, 7):
            log_session(store, "u1", now - timedelta(days=day), 45, focus_score=7)
        bundle = generate_recommendations(store, "u1", now=now)
        assert bundle.insights["correlations"] is None
