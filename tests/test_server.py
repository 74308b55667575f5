"""Tests for server tool logic (testing underlying modules directly)."""

import json
from datetime import date, datetime, timedelta, timezone

import pytest

from studycompass.config import ensure_data_dirs
from studycompass.db import default_store


@pytest.fixture(autouse=True)
def setup_db(temp_data_dir):
    """Ensure DB is initialized for each test."""
    ensure_data_dirs()
    default_store()


def test_server_tools_registered():
    from studycompass.server import mcp

    tool_names = [t.name for t in mcp._tool_manager._tools.values()]
    expected = [
        "subject_add", "session_log", "assessment_log", "goal_add",
        "review_schedule_topic", "review_record", "review_due",
        "burnout_assess", "trend_analyze", "allocation_plan", "learning_profile",
        "correlations_analyze", "correlations_active",
        "recommendations_generate", "recommendations_active", "recommendation_complete",
        "preferences_get", "preferences_set",
    ]
    for name in expected:
        assert name in tool_names, f"Tool {name} not registered in MCP server"


class TestHelpers:
    def test_parse_date(self):
        from studycompass.server import _parse_date
        assert _parse_date("2024-07-01") == date(2024, 7, 1)
        assert _parse_date(None) is None
        assert _parse_date("") is None

    def test_parse_datetime(self):
        from studycompass.server import _parse_datetime
        assert _parse_datetime("2024-07-01T09:30:00+00:00") == datetime(2024, 7, 1, 9, 30, tzinfo=timezone.utc)

    def test_dump_list(self):
        from studycompass.models import StudyPreferences
        from studycompass.server import _dump
        dumped = _dump([StudyPreferences(), StudyPreferences(default_user="alex")])
        assert dumped[1]["default_user"] == "alex"
        json.dumps(dumped)

    def test_user_default(self):
        import studycompass.config as config
        from studycompass.server import _user
        assert _user(None) == config.DEFAULT_USER_ID
        assert _user("alex") == "alex"


class TestRecordTools:
    def test_subject_and_session(self):
        from studycompass.records import add_subject, get_sessions, log_session
        store = default_store()
        subject = add_subject(store, "local", "Chemistry", priority="high")
        log_session(store, "local", datetime.now(timezone.utc), 40, subject.id, 7)
        sessions = get_sessions(store, "local")
        assert sessions[0].subject_id == subject.id


class TestReviewTools:
    def test_schedule_then_record(self):
        from studycompass.spaced_repetition import record_review, schedule_review
        store = default_store()
        item = schedule_review(store, "local", "chem", "Stoichiometry", 6)
        updated = record_review(store, item.id, 8, 10, "good")
        assert updated.review_count == 1
        assert updated.memory_strength > item.memory_strength

    def test_unknown_item(self):
        from studycompass.spaced_repetition import record_review
        with pytest.raises(ValueError):
            record_review(default_store(), "missing", 8, 10, "good")


class TestAnalysisTools:
    def test_recommendations_round_trip(self):
        from studycompass.recommendations import (
            active_recommendations,
            generate_recommendations,
            store_recommendations,
        )
        store = default_store()
        bundle = generate_recommendations(store, "local")
        assert store_recommendations(store, bundle) == len(bundle.recommendations)
        active = active_recommendations(store, "local")
        assert [r.title for r in active] == [r.title for r in bundle.recommendations]
        json.dumps(bundle.model_dump(mode="json"))

    def test_empty_allocation_plan(self):
        from studycompass.allocation import generate_allocation_plan
        plan = generate_allocation_plan(default_store(), "local", 20)
        assert plan.allocations == []
        assert plan.total_available_hours == 20

    def test_empty_trend(self):
        from studycompass.trends import analyze_trend
        assert analyze_trend(default_store(), "local", "focus_rating") is None


def _tool(name):
    from studycompass.server import mcp
    return mcp._tool_manager._tools[name].fn


@pytest.fixture
def server_store(store, monkeypatch):
    """Point the server's module-level store at the test database."""
    import studycompass.server as server
    monkeypatch.setattr(server, "store", store)
    return store


class TestServerStore:
    def test_store_built_once(self):
        import studycompass.server as server
        assert server._store() is server.store
        assert server._store() is server._store()

    def test_tools_use_module_store(self, server_store):
        result = json.loads(_tool("subject_add")("Biology", user_id="u1"))
        assert result["status"] == "created"
        from studycompass.records import get_subjects
        assert [s.name for s in get_subjects(server_store, "u1")] == ["Biology"]


class TestPreferenceWiring:
    def test_default_user_preference(self, server_store):
        from studycompass.preferences import update_preference
        from studycompass.server import _user
        update_preference("default_user", "alex")
        assert _user(None) == "alex"
        assert _user("sam") == "sam"
        result = json.loads(_tool("subject_add")("Physics"))
        assert result["subject"]["user_id"] == "alex"

    def test_target_performance_preference(self, server_store):
        from studycompass.preferences import update_preference
        add = _tool("subject_add")
        before = json.loads(add("Physics", user_id="u1"))
        update_preference("target_performance", 95)
        after = json.loads(add("Chemistry", user_id="u1"))
        explicit = json.loads(add("History", target_performance=70, user_id="u1"))
        assert before["subject"]["target_performance"] == 85.0
        assert after["subject"]["target_performance"] == 95.0
        assert explicit["subject"]["target_performance"] == 70.0

    def test_retention_threshold_preference(self, server_store):
        from studycompass.preferences import update_preference
        from studycompass.spaced_repetition import schedule_review
        # strength 3 days, studied 2 days ago: retention about 51%
        schedule_review(
            server_store, "u1", "chem", "Moles", confidence=10, difficulty=1,
            now=datetime.now(timezone.utc) - timedelta(days=2),
        )
        due = _tool("review_due")
        assert len(json.loads(due(user_id="u1"))["at_risk"]) == 1
        update_preference("retention_threshold", 40)
        assert json.loads(due(user_id="u1"))["at_risk"] == []


class TestCorrelationTools:
    def test_analyze_and_list(self, server_store):
        from studycompass.records import add_subject, log_assessment, log_session
        subject = add_subject(server_store, "u1", "Math")
        start = datetime.now(timezone.utc) - timedelta(days=100)
        for i in range(8):
            started = start + timedelta(days=10 * i)
            log_session(server_store, "u1", started, 20 + 10 * i, subject.id, 7)
            log_assessment(server_store, "u1", subject.id, started + timedelta(days=1), 50 + 5 * i)

        report = json.loads(_tool("correlations_analyze")(user_id="u1"))
        assert report["duration"]["strength"] == "very_strong"
        assert report["stored"] == 1 + len(report["time_of_day"])

        active = json.loads(_tool("correlations_active")(user_id="u1"))
        assert active["count"] == report["stored"]
        assert active["patterns"][0]["variable_x"] == "study_duration"

    def test_analyze_without_saving(self, server_store):
        report = json.loads(_tool("correlations_analyze")(save=False, user_id="u1"))
        assert report["duration"] is None
        assert "stored" not in report
        assert json.loads(_tool("correlations_active")(user_id="u1"))["count"] == 0
