"""
Core data models for the teacher scoring system.

This package contains:
- Raw records read from the platform's data sources
- The ScoreRecord schema and its nested blocks
- Grade, percentile, period and trend helpers
"""

from .sources import (
    TeacherProfile,
    RatingRecord,
    EnrollmentRecord,
    CourseRecord,
    EngagementSnapshot,
    DevelopmentSnapshot,
    ModerationStatus,
    RatingStatus,
    EnrollmentStatus,
    CourseStatus,
    NEUTRAL_ENGAGEMENT,
    EMPTY_DEVELOPMENT,
)
from .score_record import (
    ScoreRecord,
    PeriodType,
    ScoreGrade,
    ScoreStatus,
    GeneratedBy,
    Category,
    AchievementKind,
    TrendDirection,
    VolumeTrend,
    StudentRatingMetrics,
    CoursePerformanceMetrics,
    EngagementMetrics,
    DevelopmentMetrics,
    PerformanceMetrics,
    FeedbackSummary,
    TrendSummary,
    RankingInfo,
    TeacherAnalytics,
    Goals,
    Achievements,
    AuditEntry,
    ScoreMetadata,
    LIVE_STATUSES,
    COHORT_STATUSES,
)
from . import utils

__all__ = [
    # Source records
    "TeacherProfile",
    "RatingRecord",
    "EnrollmentRecord",
    "CourseRecord",
    "EngagementSnapshot",
    "DevelopmentSnapshot",
    "ModerationStatus",
    "RatingStatus",
    "EnrollmentStatus",
    "CourseStatus",
    "NEUTRAL_ENGAGEMENT",
    "EMPTY_DEVELOPMENT",

    # Score record schema
    "ScoreRecord",
    "PeriodType",
    "ScoreGrade",
    "ScoreStatus",
    "GeneratedBy",
    "Category",
    "AchievementKind",
    "TrendDirection",
    "VolumeTrend",
    "StudentRatingMetrics",
    "CoursePerformanceMetrics",
    "EngagementMetrics",
    "DevelopmentMetrics",
    "PerformanceMetrics",
    "FeedbackSummary",
    "TrendSummary",
    "RankingInfo",
    "TeacherAnalytics",
    "Goals",
    "Achievements",
    "AuditEntry",
    "ScoreMetadata",
    "LIVE_STATUSES",
    "COHORT_STATUSES",

    # Utilities
    "utils",
]
