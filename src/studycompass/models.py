"""Pydantic data models for StudyCompass."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# --- Enums ---

class DifficultyTier(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    VERY_HARD = "very_hard"


class PriorityTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class StudyMethod(str, Enum):
    WATCHING_VIDEOS = "watching_videos"
    DIAGRAMS = "diagrams"
    FLASHCARDS = "flashcards"
    MIND_MAPS = "mind_maps"
    LECTURES = "lectures"
    DISCUSSIONS = "discussions"
    PODCASTS = "podcasts"
    READING_ALOUD = "reading_aloud"
    PRACTICE_PROBLEMS = "practice_problems"
    LAB_WORK = "lab_work"
    EXPERIMENTS = "experiments"
    HANDS_ON = "hands_on"
    READING = "reading"
    NOTE_TAKING = "note_taking"
    ESSAYS = "essays"
    SUMMARIES = "summaries"


class ReviewResult(str, Enum):
    EASY = "easy"
    GOOD = "good"
    HARD = "hard"
    FORGOT = "forgot"


class ItemStatus(str, Enum):
    ACTIVE = "active"
    MASTERED = "mastered"
    PAUSED = "paused"


class GoalStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OnTrackStatus(str, Enum):
    BEHIND = "behind"
    ON_TRACK = "on_track"
    AHEAD = "ahead"
    UNKNOWN = "unknown"


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class AnomalySeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class BurnoutCategory(str, Enum):
    FOCUS = "focus"
    PERFORMANCE = "performance"
    AVOIDANCE = "avoidance"
    EMOTIONAL = "emotional"
    EXTREME_BEHAVIOR = "extreme_behavior"


class BurnoutSeverity(str, Enum):
    NONE = "none"
    MILD = "mild"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"


class AllocationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class LearningStyle(str, Enum):
    VISUAL = "visual"
    AUDITORY = "auditory"
    KINESTHETIC = "kinesthetic"
    READING_WRITING = "reading_writing"


class DominantStyle(str, Enum):
    VISUAL = "visual"
    AUDITORY = "auditory"
    KINESTHETIC = "kinesthetic"
    READING_WRITING = "reading_writing"
    MULTIMODAL = "multimodal"


class ConcentrationPattern(str, Enum):
    SPRINT = "sprint"
    MARATHON = "marathon"
    STEADY = "steady"


class TimeOfDay(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


class CorrelationStrength(str, Enum):
    WEAK = "weak"
    MODERATE = "moderate"
    STRONG = "strong"
    VERY_STRONG = "very_strong"


class RecommendationType(str, Enum):
    WELLBEING = "wellbeing"
    OPTIMIZATION = "optimization"
    LEARNING_METHOD = "learning_method"
    TIME_MANAGEMENT = "time_management"
    SUBJECT_PRIORITY = "subject_priority"
    RETENTION = "retention"


class RecommendationPriority(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class OverallHealth(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    NEEDS_ATTENTION = "needs_attention"
    CRITICAL = "critical"


# --- Record store inputs ---

class SubjectCreate(BaseModel):
    name: str = Field(..., min_length=1, description="Subject name")
    difficulty: DifficultyTier = Field(default=DifficultyTier.MEDIUM)
    priority: PriorityTier = Field(default=PriorityTier.MEDIUM)
    next_exam_date: Optional[date] = Field(default=None, description="Next exam date (YYYY-MM-DD)")
    target_performance: float = Field(default=85.0, ge=0.0, le=100.0)
    current_performance: Optional[float] = Field(default=None, ge=0.0, le=100.0)


class SessionCreate(BaseModel):
    subject_id: Optional[str] = None
    started_at: datetime
    duration_minutes: float = Field(..., ge=0.0)
    focus_score: Optional[float] = Field(default=None, ge=0.0, le=10.0)
    study_method: Optional[StudyMethod] = None
    notes: str = ""


class AssessmentCreate(BaseModel):
    subject_id: str
    assessment_date: datetime
    percentage: float = Field(..., ge=0.0, le=100.0)
    weaknesses: str = ""


class GoalCreate(BaseModel):
    goal_type: str = Field(..., min_length=1)
    subject_id: Optional[str] = None
    target_value: float = Field(..., ge=0.0)
    current_value: float = Field(default=0.0, ge=0.0)
    target_date: Optional[date] = None
    status: GoalStatus = Field(default=GoalStatus.ACTIVE)
    on_track_status: OnTrackStatus = Field(default=OnTrackStatus.UNKNOWN)


class ReviewItemCreate(BaseModel):
    subject_id: str
    topic_name: str = Field(..., min_length=1)
    confidence: int = Field(..., ge=1, le=10)
    difficulty: int = Field(default=3, ge=1, le=5)
    chapter_reference: str = ""


class ReviewLog(BaseModel):
    confidence: int = Field(..., ge=1, le=10)
    time_spent_minutes: float = Field(default=0.0, ge=0.0)
    result: ReviewResult


# --- Record store snapshots ---

class ActivityRecord(BaseModel):
    id: str
    user_id: str
    subject_id: Optional[str] = None
    started_at: datetime
    duration_minutes: float = Field(ge=0.0)
    focus_score: Optional[float] = Field(default=None, ge=0.0, le=10.0)
    study_method: Optional[StudyMethod] = None
    notes: str = ""


class AssessmentRecord(BaseModel):
    id: str
    user_id: str
    subject_id: str
    assessment_date: datetime
    percentage: float = Field(ge=0.0, le=100.0)
    weaknesses: str = ""


class SubjectProfile(BaseModel):
    id: str
    user_id: str
    name: str
    difficulty: DifficultyTier = DifficultyTier.MEDIUM
    priority: PriorityTier = PriorityTier.MEDIUM
    next_exam_date: Optional[date] = None
    target_performance: float = 85.0
    current_performance: Optional[float] = None
    is_active: bool = True


class GoalRecord(BaseModel):
    id: str
    user_id: str
    goal_type: str
    subject_id: Optional[str] = None
    target_value: float = 0.0
    current_value: float = 0.0
    target_date: Optional[date] = None
    status: GoalStatus = GoalStatus.ACTIVE
    on_track_status: OnTrackStatus = OnTrackStatus.UNKNOWN
    created_at: datetime

    @property
    def progress_percentage(self) -> float:
        if self.target_value <= 0:
            return 0.0
        return min(100.0, self.current_value / self.target_value * 100)


# --- Forgetting-curve scheduler ---

class ReviewEvent(BaseModel):
    date: datetime
    confidence: int = Field(ge=1, le=10)
    time_spent: float = Field(default=0.0, ge=0.0)
    result: ReviewResult


class ReviewItem(BaseModel):
    id: str
    user_id: str
    subject_id: str
    topic_name: str
    chapter_reference: str = ""
    initial_study_date: datetime
    memory_strength: float = Field(ge=1.0, le=90.0)
    initial_confidence: int = Field(ge=1, le=10)
    difficulty_level: int = Field(ge=1, le=5)
    next_review_date: datetime
    review_count: int = 0
    last_review_date: Optional[datetime] = None
    last_review_confidence: Optional[int] = None
    status: ItemStatus = ItemStatus.ACTIVE
    retention_estimate: Optional[float] = None
    history: list[ReviewEvent] = Field(default_factory=list)


class ReviewReminder(BaseModel):
    priority: str
    title: str
    description: str
    items: list[ReviewItem] = Field(default_factory=list)


# --- Trend detector ---

class TrendResult(BaseModel):
    metric: str
    period: str = "weekly"
    trend: TrendDirection
    momentum: float = 0.0
    current_value: float = 0.0
    previous_value: float = 0.0
    change: float = 0.0
    change_percent: float = 0.0
    confidence: float = Field(default=0.0, ge=0.0, le=100.0)
    insufficient_data: bool = False
    description: str = ""
    recommendation: str = ""


class Anomaly(BaseModel):
    date: str
    metric: str
    expected_value: float
    actual_value: float
    deviation: float
    severity: AnomalySeverity
    description: str


class WeeklyPattern(BaseModel):
    pattern: str = "weekly_cycle"
    frequency: str = "weekly"
    strength: float
    description: str
    affected_days: list[str] = Field(default_factory=list)


class TimeSeriesReport(BaseModel):
    trends: list[TrendResult] = Field(default_factory=list)
    patterns: list[WeeklyPattern] = Field(default_factory=list)
    anomalies: list[Anomaly] = Field(default_factory=list)


# --- Burnout scorer ---

class BurnoutIndicator(BaseModel):
    name: str
    category: BurnoutCategory
    score: float = Field(ge=0.0)
    max_score: float
    severity: str = "low"
    description: str = ""
    detected: bool = False

    @model_validator(mode="after")
    def _score_within_max(self) -> "BurnoutIndicator":
        if self.score > self.max_score:
            raise ValueError(f"score {self.score} exceeds max {self.max_score}")
        return self


class BurnoutAssessment(BaseModel):
    user_id: str
    assessment_date: datetime
    total_score: float = Field(ge=0.0, le=100.0)
    severity: BurnoutSeverity
    indicators: list[BurnoutIndicator] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    needs_intervention: bool = False


# --- Subject attention allocator ---

class SubjectAllocation(BaseModel):
    subject_id: str
    subject_name: str
    need_score: float = Field(ge=0.0, le=100.0)
    recommended_hours: float = Field(default=0.0, ge=0.0)
    current_hours: float = 0.0
    gap: float = 0.0
    priority: AllocationPriority = AllocationPriority.LOW
    urgency_factor: float = 1.0
    reasons: list[str] = Field(default_factory=list)
    next_deadline: Optional[date] = None


class ScheduleBlock(BaseModel):
    subject_id: str
    subject_name: str
    duration_hours: float
    time_window: str
    reason: str


class AllocationPlan(BaseModel):
    total_available_hours: float
    allocations: list[SubjectAllocation] = Field(default_factory=list)
    weekly_schedule: dict[str, list[ScheduleBlock]] = Field(default_factory=dict)


# --- Learning-preference profiler ---

class LearningProfile(BaseModel):
    id: str
    user_id: str
    dominant_style: DominantStyle
    style_scores: dict[str, float]
    preferred_methods: list[str] = Field(default_factory=list)
    optimal_session_minutes: int = 45
    best_time_of_day: TimeOfDay = TimeOfDay.MORNING
    concentration_pattern: ConcentrationPattern = ConcentrationPattern.STEADY
    confidence: float = Field(default=0.0, ge=0.0, le=100.0)
    session_count: int = 0
    last_updated: datetime
    recommendations: list[str] = Field(default_factory=list)


# --- Duration optimizer ---

class DurationBucket(BaseModel):
    label: str
    min_minutes: int
    max_minutes: int
    session_count: int = 0
    avg_performance: float = 0.0
    avg_focus: float = 0.0
    efficiency: float = 0.0
    marginal_benefit: float = 0.0


class DurationAnalysis(BaseModel):
    subject_id: Optional[str] = None
    optimal_minutes: int
    optimal_range: tuple[int, int]
    confidence: float
    buckets: list[DurationBucket] = Field(default_factory=list)
    recommendation: str
    reasoning: str


# --- Correlation analysis ---

class CorrelationResult(BaseModel):
    variable_x: str
    variable_y: str = "performance_score"
    coefficient: float = Field(ge=-1.0, le=1.0)
    p_value: float = Field(ge=0.0, le=1.0)
    sample_size: int = Field(ge=0)
    confidence_level: float = Field(ge=0.0, le=100.0)
    strength: CorrelationStrength
    description: str = ""
    recommendation: str = ""


class CorrelationReport(BaseModel):
    duration: Optional[CorrelationResult] = None
    time_of_day: list[CorrelationResult] = Field(default_factory=list)
    study_methods: list[CorrelationResult] = Field(default_factory=list)


# --- Recommendation synthesizer ---

class Recommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    type: RecommendationType
    priority: RecommendationPriority
    title: str
    description: str
    rationale: str = ""
    expected_outcome: str = ""
    action_items: tuple[str, ...] = ()
    confidence: float = 0.0
    evidence: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    created_at: datetime


class RecommendationSummary(BaseModel):
    critical_issues: int = 0
    optimization_opportunities: int = 0
    strengths_identified: int = 0
    overall_health: OverallHealth = OverallHealth.EXCELLENT


class RecommendationBundle(BaseModel):
    user_id: str
    generated_at: datetime
    recommendations: list[Recommendation] = Field(default_factory=list)
    insights: dict[str, Any] = Field(default_factory=dict)
    summary: RecommendationSummary = Field(default_factory=RecommendationSummary)
    failed_sources: list[str] = Field(default_factory=list)


# --- Preferences ---

class StudyPreferences(BaseModel):
    # Empty means STUDYCOMPASS_DEFAULT_USER / config.DEFAULT_USER_ID
    default_user: str = ""
    available_weekly_hours: float = Field(default=20.0, gt=0.0, le=168.0)
    target_performance: float = Field(default=85.0, ge=0.0, le=100.0)
    retention_threshold: float = Field(default=60.0, ge=0.0, le=100.0)
