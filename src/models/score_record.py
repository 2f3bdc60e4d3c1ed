"""
Teacher score record schema.

One ScoreRecord exists per (teacher, period type, period start). It carries
the four category metrics, cohort-independent analytics, the ranking block
filled in after the cohort is complete, goals, achievements, an append-only
audit trail and generation metadata.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, validator

from .utils import percentile_for_rank, score_category, score_to_grade


class PeriodType(str, Enum):
    """Reporting period granularity."""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class ScoreGrade(str, Enum):
    """Letter grade derived from the overall score."""
    A_PLUS = "A+"
    A = "A"
    B_PLUS = "B+"
    B = "B"
    C_PLUS = "C+"
    C = "C"
    D = "D"
    F = "F"


class ScoreStatus(str, Enum):
    """Lifecycle status of a score record."""
    ACTIVE = "active"
    UNDER_REVIEW = "under_review"
    FINAL = "final"
    ARCHIVED = "archived"


# Records that take part in ranking, leaderboards and previous-score lookups
LIVE_STATUSES = (ScoreStatus.ACTIVE, ScoreStatus.UNDER_REVIEW, ScoreStatus.FINAL)
COHORT_STATUSES = (ScoreStatus.ACTIVE, ScoreStatus.FINAL)


class GeneratedBy(str, Enum):
    """Who produced the score record."""
    SYSTEM = "system"
    ADMIN = "admin"
    MANUAL = "manual"


class TrendDirection(str, Enum):
    """Quality trend between consecutive periods."""
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class VolumeTrend(str, Enum):
    """Volume trend between consecutive periods."""
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


class Category(str, Enum):
    """The four weighted metric categories, in evaluation order."""
    STUDENT_RATING = "student_rating"
    COURSE_PERFORMANCE = "course_performance"
    ENGAGEMENT = "engagement"
    DEVELOPMENT = "development"

    @property
    def display_name(self) -> str:
        return CATEGORY_DISPLAY_NAMES[self]


CATEGORY_DISPLAY_NAMES = {
    Category.STUDENT_RATING: "Student Satisfaction",
    Category.COURSE_PERFORMANCE: "Course Performance",
    Category.ENGAGEMENT: "Student Engagement",
    Category.DEVELOPMENT: "Professional Development",
}


class AchievementKind(str, Enum):
    """Achievement collections on a score record."""
    BADGE = "badge"
    MILESTONE = "milestone"
    RECOGNITION = "recognition"
    AWARD = "award"


# Metric blocks

class StudentRatingMetrics(BaseModel):
    """Student satisfaction (default weight 40%)."""
    score: int = Field(..., ge=0, le=100)
    average_rating: float = Field(0.0, ge=0, le=5)
    total_ratings: int = Field(0, ge=0)
    response_rate: float = Field(0.0, ge=0, le=100)


class CoursePerformanceMetrics(BaseModel):
    """Course outcomes (default weight 30%)."""
    score: int = Field(..., ge=0, le=100)
    completion_rate: float = Field(0.0, ge=0, le=100)
    average_grade: float = Field(0.0, ge=0, le=100)
    dropout_rate: float = Field(0.0, ge=0, le=100)
    pass_rate: float = Field(0.0, ge=0, le=100)


class EngagementMetrics(BaseModel):
    """Engagement and activity (default weight 20%)."""
    score: int = Field(..., ge=0, le=100)
    response_time: float = Field(0.0, ge=0)  # Average hours to respond
    forum_participation: float = Field(0.0, ge=0, le=100)
    assignment_feedback_quality: float = Field(0.0, ge=0, le=100)
    availability_hours: float = Field(0.0, ge=0, le=168)
    telemetry_available: bool = True


class DevelopmentMetrics(BaseModel):
    """Professional development (default weight 10%)."""
    score: int = Field(..., ge=0, le=100)
    courses_created: int = Field(0, ge=0)
    content_updates: int = Field(0, ge=0)
    skills_improvement: float = Field(0.0, ge=0, le=100)
    certifications_earned: int = Field(0, ge=0)


class PerformanceMetrics(BaseModel):
    """All four category blocks."""
    student_rating: StudentRatingMetrics
    course_performance: CoursePerformanceMetrics
    engagement: EngagementMetrics
    development: DevelopmentMetrics

    def category_scores(self) -> Dict[Category, int]:
        """Category scores keyed by category, in evaluation order."""
        return {
            Category.STUDENT_RATING: self.student_rating.score,
            Category.COURSE_PERFORMANCE: self.course_performance.score,
            Category.ENGAGEMENT: self.engagement.score,
            Category.DEVELOPMENT: self.development.score,
        }


# Analytics blocks

class FeedbackSummary(BaseModel):
    """Sentiment tally over the period's ratings."""
    positive: int = 0
    neutral: int = 0
    negative: int = 0
    common_compliments: List[str] = []
    common_complaints: List[str] = []
    improvement_suggestions: List[str] = []


class TrendSummary(BaseModel):
    """Period-over-period trend classifications."""
    enrollment_trend: VolumeTrend = VolumeTrend.STABLE
    rating_trend: TrendDirection = TrendDirection.STABLE
    completion_trend: TrendDirection = TrendDirection.STABLE
    engagement_trend: VolumeTrend = VolumeTrend.STABLE


class RankingInfo(BaseModel):
    """Standing within the period cohort. Zeros until ranking has run."""
    overall_rank: int = Field(0, ge=0)
    department_rank: int = Field(0, ge=0)
    category_rank: int = Field(0, ge=0)
    total_teachers: int = Field(0, ge=0)
    percentile: int = Field(0, ge=0, le=100)

    @property
    def is_ranked(self) -> bool:
        return self.overall_rank > 0

    @classmethod
    def for_position(
        cls,
        overall_rank: int,
        total_teachers: int,
        department_rank: Optional[int] = None,
        category_rank: Optional[int] = None
    ) -> "RankingInfo":
        return cls(
            overall_rank=overall_rank,
            department_rank=department_rank or overall_rank,
            category_rank=category_rank or overall_rank,
            total_teachers=total_teachers,
            percentile=percentile_for_rank(overall_rank, total_teachers)
        )


class TeacherAnalytics(BaseModel):
    """Cohort-independent statistics plus the ranking block."""
    courses_active: int = 0
    courses_completed: int = 0
    total_students: int = 0
    total_enrollments: int = 0
    average_class_size: float = 0.0
    feedback: FeedbackSummary = Field(default_factory=FeedbackSummary)
    trends: TrendSummary = Field(default_factory=TrendSummary)
    ranking: RankingInfo = Field(default_factory=RankingInfo)


class Goals(BaseModel):
    """Targets and the improvement plan for the next period."""
    target_score: int = Field(..., ge=0, le=100)
    target_achieved: bool = False
    improvement_areas: List[str] = []
    strength_areas: List[str] = []
    action_plan: List[str] = []
    next_review_date: Optional[datetime] = None


class Achievements(BaseModel):
    """Append-only achievement sets."""
    badges: List[str] = []
    milestones: List[str] = []
    recognitions: List[str] = []
    awards: List[str] = []

    def items_for(self, kind: AchievementKind) -> List[str]:
        return getattr(self, f"{kind.value}s")

    def add(self, kind: AchievementKind, label: str) -> bool:
        """Add an achievement; returns False if it was already present."""
        items = self.items_for(kind)
        if label in items:
            return False
        items.append(label)
        return True


class AuditEntry(BaseModel):
    """One immutable audit trail entry."""
    action: str
    timestamp: datetime = Field(default_factory=datetime.now)
    actor: str
    details: str
    previous_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None


class ScoreMetadata(BaseModel):
    """How the record was produced."""
    generated_by: GeneratedBy = GeneratedBy.SYSTEM
    version: str = "1.0"
    calculation_method: str = "weighted_average"
    data_sources: List[str] = []
    confidence_level: int = Field(95, ge=0, le=100)


class ScoreRecord(BaseModel):
    """A teacher's performance score for one reporting period."""
    # Identity
    score_id: str
    teacher_id: str
    department: Optional[str] = None
    category: Optional[str] = None
    period_type: PeriodType
    period_start: datetime
    period_end: datetime
    generated_at: datetime = Field(default_factory=datetime.now)

    # Scores
    overall_score: int = Field(..., ge=0, le=100)
    previous_score: Optional[int] = Field(None, ge=0, le=100)
    score_change: int = 0
    score_grade: ScoreGrade

    metrics: PerformanceMetrics
    analytics: TeacherAnalytics = Field(default_factory=TeacherAnalytics)
    goals: Goals
    achievements: Achievements = Field(default_factory=Achievements)

    # Status and review
    status: ScoreStatus = ScoreStatus.ACTIVE
    superseded_by: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None

    audit_log: List[AuditEntry] = []
    metadata: ScoreMetadata = Field(default_factory=ScoreMetadata)

    class Config:
        from_attributes = True

    @validator("period_end")
    def validate_period_bounds(cls, v, values):
        start = values.get("period_start")
        if start is not None and v < start:
            raise ValueError("period_end must not precede period_start")
        return v

    @validator("score_grade")
    def validate_grade_matches_score(cls, v, values):
        """The grade is a pure function of the overall score."""
        overall = values.get("overall_score")
        if overall is not None and ScoreGrade(v).value != score_to_grade(overall):
            raise ValueError(f"grade {ScoreGrade(v).value} does not match overall score {overall}")
        return v

    @validator("goals")
    def sync_target_achieved(cls, v, values):
        overall = values.get("overall_score")
        if overall is not None:
            v.target_achieved = overall >= v.target_score
        return v

    @property
    def key(self) -> Tuple[str, PeriodType, datetime]:
        """Uniqueness key for live records."""
        return (self.teacher_id, self.period_type, self.period_start)

    @property
    def is_live(self) -> bool:
        return self.superseded_by is None and self.status in LIVE_STATUSES

    @property
    def score_category(self) -> str:
        return score_category(self.overall_score)

    @property
    def period_duration_days(self) -> int:
        seconds = (self.period_end - self.period_start).total_seconds()
        return int(-(-seconds // 86400))

    @property
    def improvement_needed(self) -> bool:
        return self.overall_score < self.goals.target_score

    def is_current_period(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now()
        return self.period_start <= now <= self.period_end

    def add_audit_entry(
        self,
        action: str,
        actor: str,
        details: str,
        previous_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None
    ) -> AuditEntry:
        entry = AuditEntry(
            action=action,
            actor=actor,
            details=details,
            previous_values=previous_values,
            new_values=new_values
        )
        self.audit_log.append(entry)
        return entry

    def add_achievement(self, kind: AchievementKind, label: str) -> bool:
        return self.achievements.add(kind, label)

    def set_target_score(
        self,
        target_score: int,
        action_plan: Optional[List[str]] = None,
        next_review_date: Optional[datetime] = None
    ) -> None:
        if not 0 <= target_score <= 100:
            raise ValueError("target_score must be between 0 and 100")
        self.goals.target_score = target_score
        self.goals.target_achieved = self.overall_score >= target_score
        if action_plan is not None:
            self.goals.action_plan = list(action_plan)
        if next_review_date is not None:
            self.goals.next_review_date = next_review_date

    def update_ranking(self, ranking: RankingInfo) -> None:
        self.analytics.ranking = ranking
