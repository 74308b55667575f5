"""Tests for recommendation synthesis, ranking, and persistence."""

import json
from datetime import timedelta

import pytest

import studycompass.recommendations as recommendations_mod
from studycompass.models import (
    BurnoutAssessment,
    BurnoutCategory,
    BurnoutIndicator,
    BurnoutSeverity,
    GoalRecord,
    OverallHealth,
    Recommendation,
    RecommendationPriority,
    RecommendationType,
    TrendDirection,
    TrendResult,
)
from studycompass.recommendations import (
    active_recommendations,
    burnout_recommendation,
    dedupe,
    focus_trend_recommendation,
    format_hour,
    generate_recommendations,
    goal_recommendations,
    mark_recommendation_completed,
    performance_trend_recommendation,
    rank,
    session_pattern_recommendations,
    store_recommendations,
    summarize,
)
from studycompass.records import add_goal, add_subject, log_assessment, log_session


def _rec(title, priority="medium", type="optimization", description="", now=None):
    return Recommendation(
        id=title[:12],
        user_id="u1",
        type=type,
        priority=priority,
        title=title,
        description=description,
        created_at=now or "2024-06-12T12:00:00+00:00",
    )


def _goal(now, **kwargs):
    fields = {
        "id": "g1", "user_id": "u1", "goal_type": "study_hours",
        "target_value": 10.0, "current_value": 2.0, "created_at": now,
    }
    fields.update(kwargs)
    return GoalRecord(**fields)


def _burnout(now, total, severity, categories=()):
    indicators = [
        BurnoutIndicator(name=c.value, category=c, score=0, max_score=25, detected=True)
        for c in categories
    ]
    return BurnoutAssessment(
        user_id="u1",
        assessment_date=now,
        total_score=total,
        severity=severity,
        indicators=indicators,
        recommendations=["a", "b", "c", "d"],
        needs_intervention=total >= 60,
    )


class TestRanking:
    def test_stable_priority_sort(self):
        recs = [_rec("low one", "low"), _rec("first medium"), _rec("urgent", "urgent"), _rec("second medium")]
        assert [r.title for r in rank(recs)] == ["urgent", "first medium", "second medium", "low one"]

    def test_dedupe_keeps_first(self):
        first = _rec("Same", "high")
        recs = dedupe([first, _rec("Same", "low"), _rec("Same", type="wellbeing")])
        assert len(recs) == 2
        assert recs[0] is first

    def test_recommendation_is_frozen(self):
        rec = _rec("x")
        with pytest.raises(Exception):
            rec.title = "y"


class TestSummary:
    def test_two_urgent_is_critical(self):
        summary = summarize([_rec("a", "urgent"), _rec("b", "urgent")])
        assert summary.overall_health == OverallHealth.CRITICAL
        assert summary.critical_issues == 2

    def test_one_urgent_needs_attention(self):
        assert summarize([_rec("a", "urgent")]).overall_health == OverallHealth.NEEDS_ATTENTION

    def test_critical_burnout_overrides(self, now):
        burnout = _burnout(now, 90, BurnoutSeverity.CRITICAL)
        assert summarize([], burnout).overall_health == OverallHealth.CRITICAL

    def test_many_high_is_fair(self):
        recs = [_rec(str(i), "high") for i in range(3)]
        assert summarize(recs).overall_health == OverallHealth.FAIR

    def test_few_is_excellent(self):
        assert summarize([_rec("a"), _rec("b")]).overall_health == OverallHealth.EXCELLENT

    def test_otherwise_good(self):
        assert summarize([_rec(str(i)) for i in range(3)]).overall_health == OverallHealth.GOOD

    def test_counts(self):
        summary = summarize([
            _rec("a", description="Your optimal window"),
            _rec("b", type="wellbeing", description="effective habits"),
        ])
        assert summary.optimization_opportunities == 1
        assert summary.strengths_identified == 2


class TestHourFormat:
    @pytest.mark.parametrize("hour,label", [(0, "12:00 AM"), (9, "9:00 AM"), (12, "12:00 PM"), (15, "3:00 PM")])
    def test_labels(self, hour, label):
        assert format_hour(hour) == label

    def test_compact(self):
        assert format_hour(15, compact=True) == "3PM"


class TestGoalTemplates:
    def test_no_goals(self, now):
        recs = goal_recommendations("u1", [], now)
        assert [r.title for r in recs] == ["Set Clear Study Goals"]

    def test_behind_close_deadline_is_urgent(self, now):
        goal = _goal(now, on_track_status="behind", target_date=(now + timedelta(days=5)).date())
        rec = goal_recommendations("u1", [goal], now)[0]
        assert rec.title == "Goal Behind Schedule: study_hours"
        assert rec.priority == RecommendationPriority.URGENT
        assert any(item.startswith("DAILY TARGET") for item in rec.action_items)

    def test_behind_far_deadline_is_high(self, now):
        goal = _goal(now, on_track_status="behind", target_date=(now + timedelta(days=30)).date())
        assert goal_recommendations("u1", [goal], now)[0].priority == RecommendationPriority.HIGH

    def test_deadline_passed(self, now):
        goal = _goal(now, on_track_status="behind", target_date=(now - timedelta(days=2)).date())
        rec = goal_recommendations("u1", [goal], now)[0]
        assert "DEADLINE PASSED" in rec.description

    def test_stagnant(self, now):
        goal = _goal(now, current_value=0.0, created_at=now - timedelta(days=5))
        titles = [r.title for r in goal_recommendations("u1", [goal], now)]
        assert "Stagnant Goal: study_hours" in titles

    def test_new_goal_not_stagnant(self, now):
        goal = _goal(now, current_value=0.0, created_at=now - timedelta(days=1))
        assert goal_recommendations("u1", [goal], now) == []

    def test_completed_celebrated(self, now):
        goal = _goal(now, current_value=10.0)
        titles = [r.title for r in goal_recommendations("u1", [goal], now)]
        assert titles == ["1 Goal(s) Achieved!"]

    def test_on_track_limited_to_two(self, now):
        goals = [_goal(now, id=f"g{i}", goal_type=f"goal_{i}", on_track_status="on_track") for i in range(3)]
        recs = goal_recommendations("u1", goals, now)
        assert [r.title for r in recs] == ["Maintain Pace: goal_0", "Maintain Pace: goal_1"]


class TestSignalTemplates:
    def test_burnout_below_threshold(self, now):
        assert burnout_recommendation("u1", _burnout(now, 59, BurnoutSeverity.MILD), now) == []

    def test_burnout_high(self, now):
        burnout = _burnout(now, 80, BurnoutSeverity.HIGH, [BurnoutCategory.FOCUS, BurnoutCategory.EMOTIONAL])
        rec = burnout_recommendation("u1", burnout, now)[0]
        assert rec.priority == RecommendationPriority.URGENT
        assert rec.type == RecommendationType.WELLBEING
        assert rec.title == "Burnout Risk: HIGH"
        assert rec.evidence == ("a", "b", "c")
        assert len(rec.action_items) == 4

    def test_burnout_moderate_is_high(self, now):
        rec = burnout_recommendation("u1", _burnout(now, 65, BurnoutSeverity.MODERATE), now)[0]
        assert rec.priority == RecommendationPriority.HIGH

    def test_performance_decline(self, now):
        trend = TrendResult(metric="performance_score", trend=TrendDirection.DECLINING, change_percent=-20.0, momentum=-2.5)
        hours = TrendResult(metric="study_hours", trend=TrendDirection.IMPROVING)
        rec = performance_trend_recommendation("u1", trend, hours, now)[0]
        assert rec.title == "Performance Declining by 20.0%"
        assert rec.priority == RecommendationPriority.HIGH
        assert len(rec.action_items) == 4
        assert rec.evidence == ("Momentum: -2.50 points/day",)

    def test_performance_stable_ignored(self, now):
        trend = TrendResult(metric="performance_score", trend=TrendDirection.STABLE)
        assert performance_trend_recommendation("u1", trend, None, now) == []

    def test_small_focus_decline_ignored(self, now):
        trend = TrendResult(metric="focus_rating", trend=TrendDirection.DECLINING, change_percent=-8.0)
        assert focus_trend_recommendation("u1", trend, now) == []

    def test_focus_decline(self, now):
        trend = TrendResult(metric="focus_rating", trend=TrendDirection.DECLINING, change_percent=-12.5)
        rec = focus_trend_recommendation("u1", trend, now)[0]
        assert rec.title == "Focus Quality Declining (12.5% drop)"
        assert len(rec.action_items) == 5

    def test_session_patterns(self, now):
        patterns = [
            {"hour": 9, "avg_focus": 9.0, "avg_duration": 50.0, "session_count": 4},
            {"hour": 20, "avg_focus": 7.0, "avg_duration": 40.0, "session_count": 2},
            {"hour": 14, "avg_focus": 4.5, "avg_duration": 30.0, "session_count": 3},
        ]
        recs = session_pattern_recommendations("u1", patterns, now)
        assert [r.title for r in recs] == ["Peak Performance Window: 9:00 AM", "Avoid Studying at 2:00 PM"]


class TestGenerateRecommendations:
    def test_empty_store(self, store, now):
        bundle = generate_recommendations(store, "u1", now=now)
        assert [r.title for r in bundle.recommendations] == ["Set Clear Study Goals"]
        assert bundle.failed_sources == []
        assert bundle.summary.overall_health == OverallHealth.EXCELLENT
        assert bundle.insights["burnout"] is None

    def test_unstudied_subject_first(self, store, now):
        add_subject(store, "u1", "Math", priority="high")
        bundle = generate_recommendations(store, "u1", now=now)
        first = bundle.recommendations[0]
        assert first.title == "Math - Zero Study Sessions"
        assert first.priority == RecommendationPriority.URGENT
        assert bundle.summary.overall_health == OverallHealth.NEEDS_ATTENTION

    def test_sorted_by_priority(self, store, now):
        math = add_subject(store, "u1", "Math")
        add_subject(store, "u1", "History")
        for day in range(1, 4):
            log_session(store, "u1", now - timedelta(days=day), 45, subject_id=math.id, focus_score=4)
        log_assessment(store, "u1", math.id, now - timedelta(days=1), 55)
        add_goal(store, "u1", "study_hours", 20, 2, target_date=(now + timedelta(days=3)).date(),
                 on_track_status="behind")
        bundle = generate_recommendations(store, "u1", now=now)
        order = {"urgent": 0, "high": 1, "medium": 2, "low": 3}
        ranks = [order[r.priority.value] for r in bundle.recommendations]
        assert ranks == sorted(ranks)
        keys = [(r.type, r.title) for r in bundle.recommendations]
        assert len(keys) == len(set(keys))

    def test_failing_source_is_isolated(self, store, now, monkeypatch):
        add_subject(store, "u1", "Math")

        def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(recommendations_mod, "topics_at_risk", broken)
        bundle = generate_recommendations(store, "u1", now=now)
        assert bundle.failed_sources == ["topics_at_risk"]
        assert "Math - Zero Study Sessions" in [r.title for r in bundle.recommendations]

    def test_failing_burnout_is_isolated(self, store, now, monkeypatch):
        for day in range(1, 7):
            log_session(store, "u1", now - timedelta(days=day), 45, focus_score=7)

        def broken(*args, **kwargs):
            raise RuntimeError("db locked")

        monkeypatch.setattr(recommendations_mod, "assess_burnout_risk", broken)
        bundle = generate_recommendations(store, "u1", now=now)
        assert "burnout" in bundle.failed_sources
        assert bundle.insights["burnout"] is None

    def test_idempotent(self, store, now):
        math = add_subject(store, "u1", "Math")
        add_subject(store, "u1", "Art")
        for day in range(1, 8):
            log_session(store, "u1", now - timedelta(days=day), 60, subject_id=math.id, focus_score=6)
        first = generate_recommendations(store, "u1", now=now)
        second = generate_recommendations(store, "u1", now=now)

        def content(bundle):
            return [(r.type, r.priority, r.title, r.description, r.action_items) for r in bundle.recommendations]

        assert content(first) == content(second)
        assert first.summary == second.summary

    def test_retention_threshold_sets_topics_at_risk(self, store, now):
        from studycompass.spaced_repetition import schedule_review
        # strength 3 days, studied 2 days ago: retention about 51%
        schedule_review(store, "u1", "chem", "Moles", 10, 1, now=now - timedelta(days=2))
        strict = generate_recommendations(store, "u1", now=now, retention_threshold=60)
        lenient = generate_recommendations(store, "u1", now=now, retention_threshold=40)
        assert len(strict.insights["spaced_repetition"]["topics_at_risk"]) == 1
        assert lenient.insights["spaced_repetition"]["topics_at_risk"] == []

    def test_bundle_serializes(self, store, now):
        add_subject(store, "u1", "Math")
        bundle = generate_recommendations(store, "u1", now=now)
        data = json.loads(json.dumps(bundle.model_dump(mode="json")))
        assert data["user_id"] == "u1"
        assert "spaced_repetition" in data["insights"]


class TestPersistence:
    def test_store_and_list(self, store, now):
        add_subject(store, "u1", "Math")
        bundle = generate_recommendations(store, "u1", now=now)
        assert store_recommendations(store, bundle) == 2
        active = active_recommendations(store, "u1", now=now)
        assert [r.title for r in active] == ["Math - Zero Study Sessions", "Set Clear Study Goals"]
        assert active[0].action_items == bundle.recommendations[0].action_items

    def test_old_recommendations_expire(self, store, now):
        bundle = generate_recommendations(store, "u1", now=now)
        store_recommendations(store, bundle)
        assert active_recommendations(store, "u1", now=now + timedelta(days=8)) == []

    def test_mark_completed(self, store, now):
        bundle = generate_recommendations(store, "u1", now=now)
        store_recommendations(store, bundle)
        mark_recommendation_completed(store, bundle.recommendations[0].id, "helpful")
        assert active_recommendations(store, "u1", now=now) == []

    def test_invalid_feedback(self, store):
        with pytest.raises(ValueError, match="Invalid feedback"):
            mark_recommendation_completed(store, "x", "meh")

    def test_unknown_recommendation(self, store):
        with pytest.raises(ValueError, match="not found"):
            mark_recommendation_completed(store, "missing")
