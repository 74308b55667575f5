"""Trend, anomaly, and weekly-seasonality detection over daily study metrics.

Series are smoothed with a simple moving average and the last two windows are
compared. A change under TREND_STABLE_PERCENT in either direction counts as
stable. Anomalies are points far from an exponential moving average, measured
in population standard deviations of the whole series.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

import numpy as np

from .config import (
    ANOMALY_MIN_SAMPLES,
    ANOMALY_THRESHOLD,
    ANOMALY_WARMUP,
    TREND_EMA_ALPHA,
    TREND_FOCUS_DAYS,
    TREND_HOURS_DAYS,
    TREND_PERFORMANCE_DAYS,
    TREND_PERFORMANCE_MIN_POINTS,
    TREND_STABLE_PERCENT,
    TREND_WINDOW,
    WEEKLY_PATTERN_DEVIATION,
    WEEKLY_PATTERN_MIN_DAYS,
)
from .db import StudyStore, fetch_assessments, fetch_sessions
from .models import (
    Anomaly,
    AnomalySeverity,
    TimeSeriesReport,
    TrendDirection,
    TrendResult,
    WeeklyPattern,
)

logger = logging.getLogger(__name__)

# Indexed by strftime("%w"), Sunday first
DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

_DECLINING_ADVICE = {
    "focus_rating": "Focus is declining. Consider: shorter sessions, more breaks, or changing study environment.",
    "performance_score": "Performance is declining. Review your study methods and time allocation. Consider revisiting difficult topics.",
    "study_hours": "Study time is decreasing. Set specific daily goals and schedule study sessions in advance.",
}


# --- Series statistics ---

def moving_average(data: Sequence[float], window: int) -> list[float]:
    """Trailing mean over at most `window` points ending at each index."""
    values = np.asarray(data, dtype=float)
    result = []
    for i in range(len(values)):
        start = max(0, i - window + 1)
        result.append(float(values[start:i + 1].mean()))
    return result


def exponential_moving_average(data: Sequence[float], alpha: float = TREND_EMA_ALPHA) -> list[float]:
    """EMA seeded with the first sample."""
    if len(data) == 0:
        return []
    result = [float(data[0])]
    for value in data[1:]:
        result.append(alpha * float(value) + (1 - alpha) * result[-1])
    return result


def standard_deviation(data: Sequence[float]) -> float:
    """Population standard deviation, 0 for an empty series."""
    if len(data) == 0:
        return 0.0
    return float(np.std(np.asarray(data, dtype=float)))


# --- Trend classification ---

def _metric_label(metric: str) -> str:
    return metric.replace("_", " ")


def _period_label(window: int) -> str:
    return "week" if window == 7 else f"{window} days"


def _describe(metric: str, trend: TrendDirection, change_percent: float, window: int) -> str:
    period = _period_label(window)
    if trend == TrendDirection.STABLE:
        return f"Your {_metric_label(metric)} has remained stable over the past {period}"
    verb = "improved" if trend == TrendDirection.IMPROVING else "declined"
    return (
        f"Your {_metric_label(metric)} has {verb} by "
        f"{abs(change_percent):.1f}% over the past {period}"
    )


def _advise(metric: str, trend: TrendDirection) -> str:
    if trend == TrendDirection.IMPROVING:
        return "Excellent! Your current approach is working. Maintain these study habits."
    if trend == TrendDirection.DECLINING and metric in _DECLINING_ADVICE:
        return _DECLINING_ADVICE[metric]
    return f"Continue monitoring your {_metric_label(metric)}."


def compare_windows(
    metric: str,
    recent: Sequence[float],
    previous: Sequence[float],
    window: int = TREND_WINDOW,
) -> TrendResult:
    """Classify the change between two (already smoothed) windows.

    A zero average on either side yields a zero-confidence stable result
    flagged as insufficient data.
    """
    recent_avg = float(np.mean(recent))
    previous_avg = float(np.mean(previous))

    if previous_avg == 0 or recent_avg == 0:
        return TrendResult(
            metric=metric,
            period="daily",
            trend=TrendDirection.STABLE,
            current_value=recent_avg,
            previous_value=previous_avg,
            confidence=0.0,
            insufficient_data=True,
            description=f"Insufficient {metric} data for trend analysis",
            recommendation="Continue collecting data to identify trends",
        )

    change = recent_avg - previous_avg
    change_percent = change * 100 / previous_avg
    momentum = change_percent / window

    if abs(change_percent) < TREND_STABLE_PERCENT:
        trend = TrendDirection.STABLE
    elif change > 0:
        trend = TrendDirection.IMPROVING
    else:
        trend = TrendDirection.DECLINING

    confidence = 100 - standard_deviation(recent) / recent_avg * 100
    confidence = max(0.0, min(100.0, confidence))

    return TrendResult(
        metric=metric,
        period="weekly",
        trend=trend,
        momentum=momentum,
        current_value=recent_avg,
        previous_value=previous_avg,
        change=change,
        change_percent=change_percent,
        confidence=confidence,
        description=_describe(metric, trend, change_percent, window),
        recommendation=_advise(metric, trend),
    )


def detect_trend(values: Sequence[float], metric: str, window: int = TREND_WINDOW) -> Optional[TrendResult]:
    """Compare the last two smoothed windows of a daily series.

    Returns None when fewer than 2 * window samples exist.
    """
    if window < 1 or len(values) < window * 2:
        return None
    smoothed = moving_average(values, window)
    recent = smoothed[-window:]
    previous = smoothed[-window * 2:-window]
    return compare_windows(metric, recent, previous, window)


def detect_anomalies(
    points: Sequence[tuple[str, float]],
    metric: str,
    threshold: float = ANOMALY_THRESHOLD,
) -> list[Anomaly]:
    """Flag points whose distance from the EMA exceeds `threshold` std devs.

    `points` is a list of (date label, value). The first ANOMALY_WARMUP points
    are skipped while the EMA settles.
    """
    if len(points) < ANOMALY_MIN_SAMPLES:
        return []

    values = [value for _, value in points]
    smoothed = exponential_moving_average(values)
    std_dev = standard_deviation(values)
    if std_dev == 0:
        return []

    anomalies = []
    for i in range(ANOMALY_WARMUP, len(points)):
        expected = smoothed[i]
        actual = values[i]
        deviation = abs(actual - expected) / std_dev
        if deviation <= threshold:
            continue
        if deviation > 3:
            severity = AnomalySeverity.HIGH
        elif deviation > 2.5:
            severity = AnomalySeverity.MEDIUM
        else:
            severity = AnomalySeverity.LOW
        direction = "significantly higher" if actual > expected else "significantly lower"
        anomalies.append(Anomaly(
            date=points[i][0],
            metric=metric,
            expected_value=expected,
            actual_value=actual,
            deviation=deviation,
            severity=severity,
            description=f"{metric} was {direction} than expected ({deviation:.1f} standard deviations)",
        ))
    return anomalies


def detect_weekly_pattern(values_by_weekday: dict[int, list[float]]) -> Optional[WeeklyPattern]:
    """Find weekdays whose average deviates from the mean of day averages.

    Keys follow strftime("%w"): 0 is Sunday. Needs at least
    WEEKLY_PATTERN_MIN_DAYS distinct weekdays.
    """
    day_averages = {
        day: float(np.mean(values))
        for day, values in values_by_weekday.items()
        if values
    }
    if len(day_averages) < WEEKLY_PATTERN_MIN_DAYS:
        return None

    averages = list(day_averages.values())
    overall = float(np.mean(averages))
    if overall == 0:
        return None

    outliers = []
    for day, avg in day_averages.items():
        deviation = (avg - overall) / overall * 100
        if abs(deviation) > WEEKLY_PATTERN_DEVIATION:
            outliers.append((day, deviation))
    if not outliers:
        return None

    strength = min(100.0, standard_deviation(averages) / overall * 100)
    names = [DAY_NAMES[day] for day, _ in outliers]
    direction = "higher" if outliers[0][1] > 0 else "lower"
    return WeeklyPattern(
        strength=strength,
        description=f"{', '.join(names)} show {direction} than average performance",
        affected_days=names,
    )


# --- Store-backed analyses ---

def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


def _daily_series(records, key, value, reducer) -> list[tuple[str, float]]:
    """Group records by calendar day and reduce each day's values."""
    by_day: dict[str, list[float]] = defaultdict(list)
    for record in records:
        v = value(record)
        if v is None:
            continue
        by_day[key(record).date().isoformat()].append(v)
    return [(day, reducer(vals)) for day, vals in sorted(by_day.items())]


def daily_focus(store: StudyStore, user_id: str, days: int, now: Optional[datetime] = None) -> list[tuple[str, float]]:
    """Average focus score per day over the last `days` days."""
    conn = store.connect()
    try:
        sessions = fetch_sessions(conn, user_id, since=_now(now) - timedelta(days=days))
    finally:
        conn.close()
    return _daily_series(
        sessions, lambda s: s.started_at, lambda s: s.focus_score,
        lambda vals: float(np.mean(vals)),
    )


def daily_performance(
    store: StudyStore,
    user_id: str,
    days: int,
    subject_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> list[tuple[str, float]]:
    """Average assessment percentage per day."""
    conn = store.connect()
    try:
        assessments = fetch_assessments(
            conn, user_id, since=_now(now) - timedelta(days=days), subject_id=subject_id,
        )
    finally:
        conn.close()
    return _daily_series(
        assessments, lambda a: a.assessment_date, lambda a: a.percentage,
        lambda vals: float(np.mean(vals)),
    )


def daily_hours(store: StudyStore, user_id: str, days: int, now: Optional[datetime] = None) -> list[tuple[str, float]]:
    """Total study hours per day."""
    conn = store.connect()
    try:
        sessions = fetch_sessions(conn, user_id, since=_now(now) - timedelta(days=days))
    finally:
        conn.close()
    return _daily_series(
        sessions, lambda s: s.started_at, lambda s: s.duration_minutes,
        lambda vals: sum(vals) / 60.0,
    )


def analyze_focus_trend(
    store: StudyStore, user_id: str, days: int = TREND_FOCUS_DAYS, now: Optional[datetime] = None,
) -> Optional[TrendResult]:
    series = daily_focus(store, user_id, days, now)
    if len(series) < TREND_WINDOW * 2:
        logger.debug("Focus trend skipped for %s: %d days of data", user_id, len(series))
        return None
    return detect_trend([v for _, v in series], "focus_rating")


def analyze_performance_trend(
    store: StudyStore,
    user_id: str,
    subject_id: Optional[str] = None,
    days: int = TREND_PERFORMANCE_DAYS,
    now: Optional[datetime] = None,
) -> Optional[TrendResult]:
    series = daily_performance(store, user_id, days, subject_id, now)
    if len(series) < TREND_PERFORMANCE_MIN_POINTS:
        logger.debug("Performance trend skipped for %s: %d days of data", user_id, len(series))
        return None
    return detect_trend([v for _, v in series], "performance_score")


def analyze_study_hours_trend(
    store: StudyStore, user_id: str, days: int = TREND_HOURS_DAYS, now: Optional[datetime] = None,
) -> Optional[TrendResult]:
    series = daily_hours(store, user_id, days, now)
    if len(series) < TREND_WINDOW * 2:
        logger.debug("Study hours trend skipped for %s: %d days of data", user_id, len(series))
        return None
    return detect_trend([v for _, v in series], "study_hours")


def detect_weekly_focus_pattern(
    store: StudyStore, user_id: str, days: int = TREND_PERFORMANCE_DAYS, now: Optional[datetime] = None,
) -> Optional[WeeklyPattern]:
    """Weekly seasonality of per-session focus scores."""
    conn = store.connect()
    try:
        sessions = fetch_sessions(conn, user_id, since=_now(now) - timedelta(days=days))
    finally:
        conn.close()
    by_day: dict[int, list[float]] = {}
    for session in sessions:
        if session.focus_score is None:
            continue
        day = int(session.started_at.strftime("%w"))
        by_day.setdefault(day, []).append(session.focus_score)
    return detect_weekly_pattern(by_day)


_METRICS = {
    "focus_rating": (analyze_focus_trend, TREND_FOCUS_DAYS),
    "performance_score": (analyze_performance_trend, TREND_PERFORMANCE_DAYS),
    "study_hours": (analyze_study_hours_trend, TREND_HOURS_DAYS),
}


def analyze_trend(
    store: StudyStore,
    user_id: str,
    metric: str,
    days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Optional[TrendResult]:
    """Trend for one named metric, or None when data is insufficient."""
    if metric not in _METRICS:
        raise ValueError(
            f"Invalid metric '{metric}'. Must be one of: {', '.join(_METRICS)}"
        )
    analyzer, default_days = _METRICS[metric]
    return analyzer(store, user_id, days=days or default_days, now=now)


def time_series_report(store: StudyStore, user_id: str, now: Optional[datetime] = None) -> TimeSeriesReport:
    """All trends, the weekly focus pattern, and study-hour anomalies."""
    trends = [
        result
        for result in (
            analyze_focus_trend(store, user_id, now=now),
            analyze_performance_trend(store, user_id, now=now),
            analyze_study_hours_trend(store, user_id, now=now),
        )
        if result is not None
    ]
    pattern = detect_weekly_focus_pattern(store, user_id, now=now)
    anomalies = detect_anomalies(daily_hours(store, user_id, TREND_HOURS_DAYS, now), "study_hours")
    return TimeSeriesReport(
        trends=trends,
        patterns=[pattern] if pattern else [],
        anomalies=anomalies,
    )
